"""Monster reference lookup over pre-existing monster definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from encounterkeep.backend.models import MonsterDefinition


class MonsterCatalog(Protocol):
    def resolve(self, ref: str) -> MonsterDefinition | None:
        """Return the definition behind a monster reference."""

    def unresolved(self, refs: Iterable[str]) -> list[str]:
        """Return refs without a definition, first-seen order, no duplicates."""


def _dedupe(refs: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(refs))


@dataclass
class InMemoryMonsterCatalog:
    definitions: dict[str, MonsterDefinition] = field(default_factory=dict)

    @classmethod
    def from_definitions(cls, definitions: Iterable[MonsterDefinition]) -> "InMemoryMonsterCatalog":
        return cls(definitions={definition.ref: definition for definition in definitions})

    def resolve(self, ref: str) -> MonsterDefinition | None:
        return self.definitions.get(ref)

    def unresolved(self, refs: Iterable[str]) -> list[str]:
        return [ref for ref in _dedupe(refs) if ref not in self.definitions]


@dataclass
class PostgresMonsterCatalog:
    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def resolve(self, ref: str) -> MonsterDefinition | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT ref, name FROM monsters WHERE ref = %s", (ref,))
                row = cur.fetchone()
        if row is None:
            return None
        return MonsterDefinition(ref=row[0], name=row[1])

    def unresolved(self, refs: Iterable[str]) -> list[str]:
        wanted = _dedupe(refs)
        if not wanted:
            return []
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT ref FROM monsters WHERE ref = ANY(%s)", (wanted,))
                known = {row[0] for row in cur.fetchall()}
        return [ref for ref in wanted if ref not in known]


def create_monster_catalog(database_url: str | None) -> MonsterCatalog:
    if database_url:
        return PostgresMonsterCatalog(database_url=database_url)
    return InMemoryMonsterCatalog()
