"""Encounter use cases composed from store, user directory and monster catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from encounterkeep.backend.errors import ForbiddenError, NotFoundError, ValidationError
from encounterkeep.backend.models import Encounter
from encounterkeep.backend.monsters import MonsterCatalog
from encounterkeep.backend.store import EncounterStore
from encounterkeep.backend.users import UserDirectory


logger = logging.getLogger(__name__)


@dataclass
class EncounterService:
    store: EncounterStore
    users: UserDirectory
    monsters: MonsterCatalog

    def create_with_monsters(
        self,
        owner: str,
        name: str,
        description: str,
        monster_refs: Sequence[str] | None = None,
    ) -> Encounter:
        """Create an encounter and attach its initial roster.

        Owner and monster references are checked before anything is written, so
        a rejected request leaves no encounter behind. Creation and roster
        attachment are still two store calls: a crash between them can leave an
        encounter with an empty roster.
        """
        self._check_text(name=name, description=description)
        refs = self._checked_refs(monster_refs) if monster_refs is not None else []
        if not self.users.exists(owner):
            raise NotFoundError(f"No user: {owner}", {"username": owner})

        encounter = self.store.create_encounter(owner=owner, name=name, description=description)
        if refs:
            encounter = self.store.replace_roster(encounter_id=encounter.id, monster_refs=refs)
        logger.info("Created encounter %s for %s with %d monsters", encounter.id, owner, len(refs))
        return encounter

    def get_owned_encounter(self, encounter_id: int, requesting_user: str) -> Encounter:
        encounter = self.store.get_encounter(encounter_id)
        self.assert_owner(encounter, requesting_user)
        return encounter

    def list_owned(self, username: str) -> dict[int, list[str]]:
        return self.store.list_encounters_for_user(username)

    def set_roster(
        self,
        encounter_id: int,
        monster_refs: Sequence[str],
        requesting_user: str | None = None,
    ) -> Encounter:
        refs = self._checked_refs(monster_refs)
        if requesting_user is not None:
            self.get_owned_encounter(encounter_id, requesting_user)
        encounter = self.store.replace_roster(encounter_id=encounter_id, monster_refs=refs)
        logger.info("Replaced roster of encounter %s with %d monsters", encounter_id, len(refs))
        return encounter

    def delete_owned(self, encounter_id: int, requesting_user: str | None = None) -> int:
        if requesting_user is not None:
            self.get_owned_encounter(encounter_id, requesting_user)
        deleted = self.store.delete_encounter(encounter_id)
        logger.info("Deleted encounter %s", deleted)
        return deleted

    def purge_owner(self, username: str) -> list[int]:
        removed = self.store.delete_encounters_for_user(username)
        if removed:
            logger.info("Deleted %d encounters of %s", len(removed), username)
        return removed

    def assert_owner(self, encounter: Encounter, requesting_user: str) -> None:
        if encounter.owner_username != requesting_user:
            raise ForbiddenError(
                "Encounter belongs to another user",
                {"encounter_id": encounter.id, "username": requesting_user},
            )

    def _check_text(self, name: Any, description: Any) -> None:
        if not isinstance(name, str) or name.strip() == "":
            raise ValidationError("name must be a non-empty string")
        if not isinstance(description, str):
            raise ValidationError("description must be a string")

    def _checked_refs(self, monster_refs: Any) -> list[str]:
        if isinstance(monster_refs, (str, bytes)) or not isinstance(monster_refs, (list, tuple)):
            raise ValidationError("monsters must be a list of monster references")
        refs = list(monster_refs)
        malformed = [ref for ref in refs if not isinstance(ref, str) or ref.strip() == ""]
        if malformed:
            raise ValidationError("Monster references must be non-empty strings", {"invalid": malformed})
        unknown = self.monsters.unresolved(refs)
        if unknown:
            raise ValidationError(f"Unknown monsters: {', '.join(unknown)}", {"unknown": unknown})
        return refs
