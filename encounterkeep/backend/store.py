"""Persistence interfaces and implementations for encounter data."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from encounterkeep.backend.errors import IntegrityError, NotFoundError
from encounterkeep.backend.models import Encounter
from encounterkeep.backend.users import UserDirectory


logger = logging.getLogger(__name__)


class EncounterStore(Protocol):
    def create_encounter(self, owner: str, name: str, description: str) -> Encounter:
        """Insert an encounter with an empty roster."""

    def get_encounter(self, encounter_id: int) -> Encounter:
        """Return an encounter joined with its roster."""

    def list_encounters_for_user(self, owner: str) -> dict[int, list[str]]:
        """Return encounter id -> roster for every encounter of an owner."""

    def replace_roster(self, encounter_id: int, monster_refs: Sequence[str]) -> Encounter:
        """Swap the whole roster of an encounter in one atomic unit."""

    def delete_encounter(self, encounter_id: int) -> int:
        """Delete the roster rows and the encounter, returning its id."""

    def delete_encounters_for_user(self, owner: str) -> list[int]:
        """Delete every encounter of an owner, returning the removed ids."""


def _not_found(encounter_id: int) -> NotFoundError:
    return NotFoundError(f"No encounter: {encounter_id}", {"encounter_id": encounter_id})


@dataclass
class InMemoryEncounterStore:
    users: UserDirectory | None = None

    def __post_init__(self) -> None:
        self._encounters: dict[int, Encounter] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def create_encounter(self, owner: str, name: str, description: str) -> Encounter:
        with self._lock:
            # Checked under the lock so a concurrent owner purge cannot interleave.
            if self.users is not None and not self.users.exists(owner):
                raise IntegrityError("Encounter owner does not exist", {"owner": owner})
            encounter = Encounter(
                id=next(self._ids),
                owner_username=owner,
                name=name,
                description=description,
            )
            self._encounters[encounter.id] = encounter
        logger.debug("Stored encounter %s for %s", encounter.id, owner)
        return encounter

    def get_encounter(self, encounter_id: int) -> Encounter:
        with self._lock:
            encounter = self._encounters.get(encounter_id)
        if encounter is None:
            raise _not_found(encounter_id)
        return encounter

    def list_encounters_for_user(self, owner: str) -> dict[int, list[str]]:
        with self._lock:
            return {
                encounter.id: list(encounter.monsters)
                for encounter in self._encounters.values()
                if encounter.owner_username == owner
            }

    def replace_roster(self, encounter_id: int, monster_refs: Sequence[str]) -> Encounter:
        with self._lock:
            current = self._encounters.get(encounter_id)
            if current is None:
                raise _not_found(encounter_id)
            updated = replace(current, monsters=tuple(monster_refs))
            self._encounters[encounter_id] = updated
        return updated

    def delete_encounter(self, encounter_id: int) -> int:
        with self._lock:
            if self._encounters.pop(encounter_id, None) is None:
                raise _not_found(encounter_id)
        return encounter_id

    def delete_encounters_for_user(self, owner: str) -> list[int]:
        with self._lock:
            removed = sorted(
                encounter.id for encounter in self._encounters.values() if encounter.owner_username == owner
            )
            for encounter_id in removed:
                del self._encounters[encounter_id]
        return removed


@dataclass
class PostgresEncounterStore:
    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def create_encounter(self, owner: str, name: str, description: str) -> Encounter:
        import psycopg

        now = datetime.now(timezone.utc)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO encounters (owner_username, name, description, created_at)
                        VALUES (%s, %s, %s, %s)
                        RETURNING id
                        """,
                        (owner, name, description, now),
                    )
                    row = cur.fetchone()
                conn.commit()
        except psycopg.IntegrityError as exc:
            raise IntegrityError("Encounter owner does not exist", {"owner": owner}) from exc

        logger.debug("Stored encounter %s for %s", row[0], owner)
        return Encounter(id=row[0], owner_username=owner, name=name, description=description)

    def get_encounter(self, encounter_id: int) -> Encounter:
        # One statement, one snapshot: the row and its roster always match.
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT e.id, e.owner_username, e.name, e.description, m.monster_ref
                    FROM encounters e
                    LEFT JOIN encounter_monsters m
                      ON m.encounter_id = e.id
                    WHERE e.id = %s
                    ORDER BY m.position
                    """,
                    (encounter_id,),
                )
                rows = cur.fetchall()

        if not rows:
            raise _not_found(encounter_id)
        first = rows[0]
        monsters = tuple(row[4] for row in rows if row[4] is not None)
        return Encounter(id=first[0], owner_username=first[1], name=first[2], description=first[3], monsters=monsters)

    def list_encounters_for_user(self, owner: str) -> dict[int, list[str]]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT e.id, m.monster_ref
                    FROM encounters e
                    LEFT JOIN encounter_monsters m
                      ON m.encounter_id = e.id
                    WHERE e.owner_username = %s
                    ORDER BY e.id, m.position
                    """,
                    (owner,),
                )
                rows = cur.fetchall()

        rosters: dict[int, list[str]] = {}
        for encounter_id, monster_ref in rows:
            roster = rosters.setdefault(encounter_id, [])
            if monster_ref is not None:
                roster.append(monster_ref)
        return rosters

    def replace_roster(self, encounter_id: int, monster_refs: Sequence[str]) -> Encounter:
        import psycopg

        refs = tuple(monster_refs)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    # Row lock serializes roster swaps against deletes of the same encounter.
                    cur.execute(
                        """
                        SELECT id, owner_username, name, description
                        FROM encounters
                        WHERE id = %s
                        FOR UPDATE
                        """,
                        (encounter_id,),
                    )
                    row = cur.fetchone()
                    if row is None:
                        raise _not_found(encounter_id)
                    cur.execute("DELETE FROM encounter_monsters WHERE encounter_id = %s", (encounter_id,))
                    if refs:
                        cur.executemany(
                            """
                            INSERT INTO encounter_monsters (encounter_id, position, monster_ref)
                            VALUES (%s, %s, %s)
                            """,
                            [(encounter_id, position, ref) for position, ref in enumerate(refs)],
                        )
                conn.commit()
        except psycopg.IntegrityError as exc:
            raise IntegrityError("Roster references an unknown monster", {"encounter_id": encounter_id}) from exc

        return Encounter(id=row[0], owner_username=row[1], name=row[2], description=row[3], monsters=refs)

    def delete_encounter(self, encounter_id: int) -> int:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM encounters WHERE id = %s FOR UPDATE", (encounter_id,))
                if cur.fetchone() is None:
                    raise _not_found(encounter_id)
                cur.execute("DELETE FROM encounter_monsters WHERE encounter_id = %s", (encounter_id,))
                cur.execute("DELETE FROM encounters WHERE id = %s", (encounter_id,))
            conn.commit()
        return encounter_id

    def delete_encounters_for_user(self, owner: str) -> list[int]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id FROM encounters WHERE owner_username = %s ORDER BY id FOR UPDATE",
                    (owner,),
                )
                removed = [row[0] for row in cur.fetchall()]
                if removed:
                    cur.execute("DELETE FROM encounter_monsters WHERE encounter_id = ANY(%s)", (removed,))
                    cur.execute("DELETE FROM encounters WHERE id = ANY(%s)", (removed,))
            conn.commit()
        return removed


def create_store(database_url: str | None, users: UserDirectory | None = None) -> EncounterStore:
    if database_url:
        return PostgresEncounterStore(database_url=database_url)
    return InMemoryEncounterStore(users=users)
