"""Seed data for local runs: users with access tokens and monster definitions.

File layout::

    {
      "users": [{"username": "alice", "firstName": "Alice", "lastName": "Smith",
                 "email": "alice@example.com", "isAdmin": false, "token": "alice-dev"}],
      "monsters": [{"ref": "goblin-1", "name": "Goblin"}]
    }
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from encounterkeep.backend.models import MonsterDefinition, UserRecord
from encounterkeep.backend.monsters import InMemoryMonsterCatalog
from encounterkeep.backend.users import InMemoryUserDirectory


logger = logging.getLogger(__name__)


class SeedUser(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    username: str = Field(min_length=1, max_length=25)
    first_name: str = Field(alias="firstName", min_length=1)
    last_name: str = Field(alias="lastName", min_length=1)
    email: str = Field(min_length=3)
    is_admin: bool = Field(default=False, alias="isAdmin")
    token: str = Field(min_length=8)

    def to_record(self) -> UserRecord:
        return UserRecord(
            username=self.username,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            is_admin=self.is_admin,
        )


class SeedMonster(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ref: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1)

    def to_definition(self) -> MonsterDefinition:
        return MonsterDefinition(ref=self.ref, name=self.name)


class SeedData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    users: list[SeedUser] = Field(default_factory=list)
    monsters: list[SeedMonster] = Field(default_factory=list)


def load_seed(path: str | Path) -> SeedData:
    return SeedData.model_validate_json(Path(path).read_text(encoding="utf-8"))


def seed_in_memory(seed: SeedData, users: InMemoryUserDirectory, monsters: InMemoryMonsterCatalog) -> None:
    for seed_user in seed.users:
        users.add_user(seed_user.to_record(), token=seed_user.token)
    for seed_monster in seed.monsters:
        monsters.definitions[seed_monster.ref] = seed_monster.to_definition()
    logger.info("Seeded %d users and %d monsters", len(seed.users), len(seed.monsters))
