"""Configuration helpers for backend runtime."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    server_salt: str
    database_url: str | None
    host: str
    port: int
    log_level: str
    seed_file: str | None = None


def load_settings() -> Settings:
    port_raw = os.getenv("ENCOUNTERKEEP_PORT", "8000")
    return Settings(
        server_salt=os.getenv("ENCOUNTERKEEP_SERVER_SALT", "dev-salt"),
        database_url=os.getenv("ENCOUNTERKEEP_DATABASE_URL") or None,
        host=os.getenv("ENCOUNTERKEEP_HOST", "127.0.0.1"),
        port=int(port_raw),
        log_level=os.getenv("ENCOUNTERKEEP_LOG_LEVEL", "INFO").upper(),
        seed_file=os.getenv("ENCOUNTERKEEP_SEED_FILE") or None,
    )


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler unless the host process already configured one."""
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("encounterkeep").setLevel(level)
