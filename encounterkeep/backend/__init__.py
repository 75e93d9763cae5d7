"""Backend package for the encounter API."""

from .auth import AuthGate
from .config import Settings, configure_logging, load_settings
from .errors import (
    EncounterKeepError,
    ForbiddenError,
    IntegrityError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from .models import Caller, Encounter, MonsterDefinition, UserRecord
from .monsters import InMemoryMonsterCatalog, MonsterCatalog, PostgresMonsterCatalog, create_monster_catalog
from .security import hash_token, verify_token
from .seed import SeedData, load_seed, seed_in_memory
from .service import EncounterService
from .store import EncounterStore, InMemoryEncounterStore, PostgresEncounterStore, create_store
from .users import InMemoryUserDirectory, PostgresUserDirectory, UserDirectory, create_user_directory

__all__ = [
    "AuthGate",
    "Caller",
    "configure_logging",
    "create_monster_catalog",
    "create_store",
    "create_user_directory",
    "Encounter",
    "EncounterKeepError",
    "EncounterService",
    "EncounterStore",
    "ForbiddenError",
    "hash_token",
    "InMemoryEncounterStore",
    "InMemoryMonsterCatalog",
    "InMemoryUserDirectory",
    "IntegrityError",
    "load_seed",
    "load_settings",
    "MonsterCatalog",
    "MonsterDefinition",
    "NotFoundError",
    "PostgresEncounterStore",
    "PostgresMonsterCatalog",
    "PostgresUserDirectory",
    "SeedData",
    "seed_in_memory",
    "Settings",
    "UnauthorizedError",
    "UserDirectory",
    "UserRecord",
    "ValidationError",
    "verify_token",
]
