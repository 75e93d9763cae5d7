"""Run the API under uvicorn using environment settings."""

from __future__ import annotations

import logging

import uvicorn

from encounterkeep.backend.api import create_app
from encounterkeep.backend.config import configure_logging, load_settings


logger = logging.getLogger(__name__)


def main() -> int:
    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.database_url and not settings.seed_file:
        logger.warning("In-memory backend without ENCOUNTERKEEP_SEED_FILE: no users can authenticate")
    app = create_app(settings=settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
