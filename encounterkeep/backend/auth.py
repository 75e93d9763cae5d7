"""Request gate: resolve the caller from a bearer token and check path access."""

from __future__ import annotations

from dataclasses import dataclass

from encounterkeep.backend.errors import UnauthorizedError
from encounterkeep.backend.models import Caller
from encounterkeep.backend.users import UserDirectory


@dataclass
class AuthGate:
    users: UserDirectory

    def authenticate(self, raw_token: str | None) -> Caller:
        if not raw_token:
            raise UnauthorizedError("Missing bearer token")
        user = self.users.find_by_token(raw_token)
        if user is None:
            raise UnauthorizedError("Invalid token")
        return Caller(username=user.username, is_admin=user.is_admin)

    def ensure_admin(self, caller: Caller) -> Caller:
        if not caller.is_admin:
            raise UnauthorizedError("Admin access required")
        return caller

    def ensure_correct_user_or_admin(self, caller: Caller, username: str) -> Caller:
        """Allow admins everywhere and everyone else only on their own username."""
        if not (caller.is_admin or caller.username == username):
            raise UnauthorizedError("Not allowed for this user", {"username": username})
        return caller
