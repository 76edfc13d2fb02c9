"""Process entry point: `python -m app` or the `auth-gateway` script."""

import asyncio
import logging
import sys

from app.config import get_settings
from app.infrastructure.observability import setup_logging
from app.lifecycle import LifecycleManager

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    logger.info(
        "Environment variables loaded: %s", settings.presence_flags(),
        extra={"phase": "init"},
    )

    from app.main import app

    sys.exit(asyncio.run(LifecycleManager(app, settings).run()))


if __name__ == "__main__":
    main()
