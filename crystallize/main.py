"""Crystallize entry point."""

import asyncio
import logging

from crystallize.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Start the interactive research console."""
    from crystallize.console import run

    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is empty — questions will fail until it is set")

    logger.info("Starting Crystallize with database %s", settings.database_path)
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
