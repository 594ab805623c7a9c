from __future__ import annotations

import asyncio
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from logpond.config.logging_config import configure_logging
from logpond.config.settings import get_settings
from logpond.errors import LogPondError
from logpond.services.ingestion import run_from_settings

load_dotenv()

logger = logging.getLogger("logpond")


def main() -> int:
    try:
        settings = get_settings()
    except ValidationError as e:
        configure_logging()
        logger.error("Invalid configuration: %s", e)
        return 2

    configure_logging(settings.log_level)
    logger.info("%s %s: preparing to read log file %s", settings.name, settings.version, settings.input.log_path)
    try:
        summary = asyncio.run(run_from_settings(settings))
    except LogPondError as e:
        logger.error("Import aborted: %s", e)
        return 2
    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
