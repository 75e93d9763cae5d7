"""FastAPI endpoints for user records and their encounters."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from .auth import AuthGate
from .config import Settings, load_settings
from .errors import (
    EncounterKeepError,
    ForbiddenError,
    IntegrityError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from .models import Caller, Encounter, UserRecord
from .monsters import InMemoryMonsterCatalog, MonsterCatalog, create_monster_catalog
from .seed import load_seed, seed_in_memory
from .service import EncounterService
from .store import EncounterStore, create_store
from .users import InMemoryUserDirectory, UserDirectory, create_user_directory


logger = logging.getLogger(__name__)

MonsterRef = Annotated[str, Field(min_length=1, max_length=100)]

bearer_scheme = HTTPBearer(auto_error=False)

ERROR_STATUS: dict[type[EncounterKeepError], int] = {
    NotFoundError: 404,
    ForbiddenError: 403,
    ValidationError: 400,
    UnauthorizedError: 401,
    IntegrityError: 500,
}


class CreateEncounterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    monsters: list[MonsterRef] | None = None


class ReplaceRosterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    monsters: list[MonsterRef]


class UserUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    first_name: str | None = Field(default=None, alias="firstName", min_length=1, max_length=30)
    last_name: str | None = Field(default=None, alias="lastName", min_length=1, max_length=30)
    email: str | None = Field(default=None, min_length=6, max_length=60, pattern=r"^[^@\s]+@[^@\s]+$")


class EncounterPayload(BaseModel):
    id: int
    username: str
    name: str
    description: str
    monsters: list[str]

    @classmethod
    def from_encounter(cls, encounter: Encounter) -> "EncounterPayload":
        return cls(
            id=encounter.id,
            username=encounter.owner_username,
            name=encounter.name,
            description=encounter.description,
            monsters=list(encounter.monsters),
        )


class EncounterResponse(BaseModel):
    encounter: EncounterPayload


class EncounterListResponse(BaseModel):
    encounters: dict[int, list[str]]


class DeletedEncounterResponse(BaseModel):
    deleted: int


class UserSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email: str


class UserDetail(UserSummary):
    is_admin: bool = Field(alias="isAdmin")

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserDetail":
        return cls(
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            is_admin=user.is_admin,
        )


class UsersResponse(BaseModel):
    users: list[UserSummary]


class UserResponse(BaseModel):
    user: UserDetail


class DeletedUserResponse(BaseModel):
    deleted: str


def _format_validation_error(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    return f"{location}: {error.get('msg', 'invalid value')}" if location else str(error.get("msg"))


def _apply_seed(seed_file: str, users: UserDirectory, monsters: MonsterCatalog) -> None:
    if not isinstance(users, InMemoryUserDirectory) or not isinstance(monsters, InMemoryMonsterCatalog):
        logger.warning("Ignoring seed file %s: PostgreSQL is seeded with encounterkeep-migrate --seed", seed_file)
        return
    seed_in_memory(load_seed(seed_file), users, monsters)


def create_app(
    store: EncounterStore | None = None,
    users: UserDirectory | None = None,
    monsters: MonsterCatalog | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    app = FastAPI(title="Encounterkeep API", version="0.1.0")
    local_settings = settings if settings is not None else load_settings()
    user_directory = users if users is not None else create_user_directory(
        local_settings.database_url, local_settings.server_salt
    )
    encounter_store = store if store is not None else create_store(local_settings.database_url, users=user_directory)
    monster_catalog = monsters if monsters is not None else create_monster_catalog(local_settings.database_url)
    if local_settings.seed_file:
        _apply_seed(local_settings.seed_file, user_directory, monster_catalog)

    gate = AuthGate(users=user_directory)
    encounter_service = EncounterService(store=encounter_store, users=user_directory, monsters=monster_catalog)
    app.state.encounter_service = encounter_service

    @app.exception_handler(EncounterKeepError)
    async def handle_domain_error(request: Request, exc: EncounterKeepError) -> JSONResponse:
        status_code = ERROR_STATUS.get(type(exc), 500)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
            return JSONResponse(status_code=status_code, content={"detail": "Storage constraint violated"})
        return JSONResponse(status_code=status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = [_format_validation_error(error) for error in exc.errors()]
        return JSONResponse(status_code=400, content={"detail": messages})

    def get_service() -> EncounterService:
        return encounter_service

    def get_users() -> UserDirectory:
        return user_directory

    def current_caller(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> Caller:
        return gate.authenticate(credentials.credentials if credentials is not None else None)

    def admin_caller(caller: Caller = Depends(current_caller)) -> Caller:
        return gate.ensure_admin(caller)

    def correct_user_or_admin(username: str, caller: Caller = Depends(current_caller)) -> Caller:
        return gate.ensure_correct_user_or_admin(caller, username)

    @app.get("/users", response_model=UsersResponse)
    def list_users(
        _: Caller = Depends(admin_caller),
        directory: UserDirectory = Depends(get_users),
    ) -> UsersResponse:
        summaries = [
            UserSummary(
                username=user.username,
                first_name=user.first_name,
                last_name=user.last_name,
                email=user.email,
            )
            for user in directory.find_all()
        ]
        return UsersResponse(users=summaries)

    @app.get("/users/{username}", response_model=UserResponse)
    def get_user(
        username: str,
        _: Caller = Depends(correct_user_or_admin),
        directory: UserDirectory = Depends(get_users),
    ) -> UserResponse:
        return UserResponse(user=UserDetail.from_record(directory.get(username)))

    @app.patch("/users/{username}", response_model=UserResponse)
    def update_user(
        username: str,
        payload: UserUpdateRequest,
        _: Caller = Depends(correct_user_or_admin),
        directory: UserDirectory = Depends(get_users),
    ) -> UserResponse:
        updated = directory.update(username, payload.model_dump(exclude_unset=True))
        return UserResponse(user=UserDetail.from_record(updated))

    @app.delete("/users/{username}", response_model=DeletedUserResponse)
    def delete_user(
        username: str,
        _: Caller = Depends(correct_user_or_admin),
        directory: UserDirectory = Depends(get_users),
        service: EncounterService = Depends(get_service),
    ) -> DeletedUserResponse:
        # Remove first so no encounter can be created for the user after the purge.
        directory.remove(username)
        service.purge_owner(username)
        return DeletedUserResponse(deleted=username)

    @app.post("/users/{username}/encounter", response_model=EncounterResponse, status_code=201)
    def create_encounter(
        username: str,
        payload: CreateEncounterRequest,
        _: Caller = Depends(correct_user_or_admin),
        service: EncounterService = Depends(get_service),
    ) -> EncounterResponse:
        created = service.create_with_monsters(
            owner=username,
            name=payload.name,
            description=payload.description,
            monster_refs=payload.monsters,
        )
        return EncounterResponse(encounter=EncounterPayload.from_encounter(created))

    @app.get("/users/{username}/encounter", response_model=EncounterListResponse)
    def list_encounters(
        username: str,
        _: Caller = Depends(correct_user_or_admin),
        service: EncounterService = Depends(get_service),
    ) -> EncounterListResponse:
        return EncounterListResponse(encounters=service.list_owned(username))

    @app.get("/users/{username}/encounter/{encounter_id}", response_model=EncounterResponse)
    def get_encounter(
        username: str,
        encounter_id: int,
        _: Caller = Depends(correct_user_or_admin),
        service: EncounterService = Depends(get_service),
    ) -> EncounterResponse:
        encounter = service.get_owned_encounter(encounter_id, requesting_user=username)
        return EncounterResponse(encounter=EncounterPayload.from_encounter(encounter))

    @app.put("/users/{username}/encounter/{encounter_id}", response_model=EncounterResponse)
    def replace_roster(
        username: str,
        encounter_id: int,
        payload: ReplaceRosterRequest,
        _: Caller = Depends(correct_user_or_admin),
        service: EncounterService = Depends(get_service),
    ) -> EncounterResponse:
        encounter = service.set_roster(encounter_id, payload.monsters, requesting_user=username)
        return EncounterResponse(encounter=EncounterPayload.from_encounter(encounter))

    @app.delete("/users/{username}/encounter/{encounter_id}", response_model=DeletedEncounterResponse)
    def delete_encounter(
        username: str,
        encounter_id: int,
        _: Caller = Depends(correct_user_or_admin),
        service: EncounterService = Depends(get_service),
    ) -> DeletedEncounterResponse:
        return DeletedEncounterResponse(deleted=service.delete_owned(encounter_id, requesting_user=username))

    return app


app = create_app()
