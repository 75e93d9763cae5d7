"""Create the PostgreSQL schema and optionally load seed users and monsters."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any

from encounterkeep.backend.config import configure_logging, load_settings
from encounterkeep.backend.security import hash_token
from encounterkeep.backend.seed import SeedData, load_seed


logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Encounterkeep database setup")
    parser.add_argument("--seed", default=None, help="JSON seed file with users and monsters")
    parser.add_argument("--skip-schema", action="store_true", help="only load the seed file")
    return parser.parse_args(argv)


def seed_database(cur: Any, seed: SeedData, server_salt: str) -> None:
    """Insert seed rows; rows that already exist are left untouched."""
    if seed.monsters:
        cur.executemany(
            "INSERT INTO monsters (ref, name) VALUES (%s, %s) ON CONFLICT (ref) DO NOTHING",
            [(monster.ref, monster.name) for monster in seed.monsters],
        )
    if seed.users:
        cur.executemany(
            """
            INSERT INTO users (username, first_name, last_name, email, is_admin, token_hash)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (username) DO NOTHING
            """,
            [
                (
                    user.username,
                    user.first_name,
                    user.last_name,
                    user.email,
                    user.is_admin,
                    hash_token(user.token, server_salt),
                )
                for user in seed.users
            ],
        )


def _connect(database_url: str) -> Any:
    import psycopg

    return psycopg.connect(database_url)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.database_url:
        raise RuntimeError("ENCOUNTERKEEP_DATABASE_URL is required for migration")

    seed_path = args.seed or settings.seed_file
    seed = load_seed(seed_path) if seed_path else None

    with _connect(settings.database_url) as conn:
        with conn.cursor() as cur:
            if not args.skip_schema:
                cur.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
            if seed is not None:
                seed_database(cur, seed, settings.server_salt)
        conn.commit()

    if not args.skip_schema:
        logger.info("Applied schema from %s", SCHEMA_PATH.name)
    if seed is not None:
        logger.info("Loaded %d users and %d monsters from %s", len(seed.users), len(seed.monsters), seed_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
