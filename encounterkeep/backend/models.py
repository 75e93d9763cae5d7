"""Domain models for encounter API responses and persistence contracts."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Encounter:
    id: int
    owner_username: str
    name: str
    description: str
    monsters: tuple[str, ...] = ()


@dataclass(frozen=True)
class UserRecord:
    username: str
    first_name: str
    last_name: str
    email: str
    is_admin: bool = False


@dataclass(frozen=True)
class MonsterDefinition:
    ref: str
    name: str


@dataclass(frozen=True)
class Caller:
    username: str
    is_admin: bool
