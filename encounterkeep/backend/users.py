"""User directory: flat user records plus access-token lookup."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Protocol

from encounterkeep.backend.errors import NotFoundError, ValidationError
from encounterkeep.backend.models import UserRecord
from encounterkeep.backend.security import hash_token, verify_token


logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = ("first_name", "last_name", "email")


class UserDirectory(Protocol):
    def exists(self, username: str) -> bool:
        """Return whether a user with this username exists."""

    def find_all(self) -> list[UserRecord]:
        """Return every user ordered by username."""

    def get(self, username: str) -> UserRecord:
        """Return one user or raise NotFoundError."""

    def update(self, username: str, patch: dict[str, Any]) -> UserRecord:
        """Apply a partial update and return the stored user."""

    def remove(self, username: str) -> None:
        """Delete a user or raise NotFoundError."""

    def find_by_token(self, raw_token: str) -> UserRecord | None:
        """Return the user owning an access token, if any."""


def _checked_patch(patch: dict[str, Any]) -> dict[str, Any]:
    if not patch:
        raise ValidationError("No fields to update")
    unknown = sorted(set(patch) - set(PATCHABLE_FIELDS))
    if unknown:
        raise ValidationError("Unknown user fields", {"fields": unknown})
    for field, value in patch.items():
        if not isinstance(value, str) or value.strip() == "":
            raise ValidationError(f"{field} must be a non-empty string", {"field": field})
    return dict(patch)


@dataclass
class InMemoryUserDirectory:
    server_salt: str

    def __post_init__(self) -> None:
        self._users: dict[str, UserRecord] = {}
        self._token_hashes: dict[str, str] = {}
        self._lock = threading.Lock()

    def add_user(self, user: UserRecord, token: str) -> UserRecord:
        with self._lock:
            self._users[user.username] = user
            self._token_hashes[user.username] = hash_token(token, self.server_salt)
        return user

    def exists(self, username: str) -> bool:
        with self._lock:
            return username in self._users

    def find_all(self) -> list[UserRecord]:
        with self._lock:
            return [self._users[name] for name in sorted(self._users)]

    def get(self, username: str) -> UserRecord:
        with self._lock:
            user = self._users.get(username)
        if user is None:
            raise NotFoundError(f"No user: {username}", {"username": username})
        return user

    def update(self, username: str, patch: dict[str, Any]) -> UserRecord:
        changes = _checked_patch(patch)
        with self._lock:
            user = self._users.get(username)
            if user is None:
                raise NotFoundError(f"No user: {username}", {"username": username})
            updated = replace(user, **changes)
            self._users[username] = updated
        logger.info("Updated user %s fields=%s", username, sorted(changes))
        return updated

    def remove(self, username: str) -> None:
        with self._lock:
            if self._users.pop(username, None) is None:
                raise NotFoundError(f"No user: {username}", {"username": username})
            self._token_hashes.pop(username, None)
        logger.info("Removed user %s", username)

    def find_by_token(self, raw_token: str) -> UserRecord | None:
        with self._lock:
            for username, token_hash in self._token_hashes.items():
                if verify_token(raw_token, token_hash, self.server_salt):
                    return self._users[username]
        return None


@dataclass
class PostgresUserDirectory:
    database_url: str
    server_salt: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def exists(self, username: str) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 FROM users WHERE username = %s", (username,))
                row = cur.fetchone()
        return row is not None

    def find_all(self) -> list[UserRecord]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT username, first_name, last_name, email, is_admin
                    FROM users
                    ORDER BY username
                    """,
                    (),
                )
                rows = cur.fetchall()
        return [UserRecord(*row) for row in rows]

    def get(self, username: str) -> UserRecord:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT username, first_name, last_name, email, is_admin
                    FROM users
                    WHERE username = %s
                    """,
                    (username,),
                )
                row = cur.fetchone()
        if row is None:
            raise NotFoundError(f"No user: {username}", {"username": username})
        return UserRecord(*row)

    def update(self, username: str, patch: dict[str, Any]) -> UserRecord:
        changes = _checked_patch(patch)
        # Column names come from PATCHABLE_FIELDS only.
        columns = [field for field in PATCHABLE_FIELDS if field in changes]
        assignments = ", ".join(f"{column} = %s" for column in columns)
        params = tuple(changes[column] for column in columns) + (username,)
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE users
                    SET {assignments}
                    WHERE username = %s
                    RETURNING username, first_name, last_name, email, is_admin
                    """,
                    params,
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise NotFoundError(f"No user: {username}", {"username": username})
        logger.info("Updated user %s fields=%s", username, columns)
        return UserRecord(*row)

    def remove(self, username: str) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM users WHERE username = %s RETURNING username", (username,))
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise NotFoundError(f"No user: {username}", {"username": username})
        logger.info("Removed user %s", username)

    def find_by_token(self, raw_token: str) -> UserRecord | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT username, first_name, last_name, email, is_admin
                    FROM users
                    WHERE token_hash = %s
                    """,
                    (hash_token(raw_token, self.server_salt),),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return UserRecord(*row)


def create_user_directory(database_url: str | None, server_salt: str) -> UserDirectory:
    if database_url:
        return PostgresUserDirectory(database_url=database_url, server_salt=server_salt)
    return InMemoryUserDirectory(server_salt=server_salt)
