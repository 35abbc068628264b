"""Entry point: ``stagebot`` / ``python -m stagebot``."""

import logging
import sys

from telegram import Update

from . import __version__
from .config import load_config
from .errors import StartupConfigurationError
from .log import configure_logging
from .telegram_transport import build_application

logger = logging.getLogger("stagebot")


def main():
    """Start the bot."""
    try:
        config = load_config()
    except StartupConfigurationError as e:
        configure_logging()
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    configure_logging(debug=config.debug)
    logger.info(f"Starting stagebot {__version__}...")
    logger.info(f"Production control URL: {config.production_control.url}")
    logger.info(f"Release targets: {[t.name for t in config.release.targets]}")

    try:
        application = build_application(config)
    except StartupConfigurationError as e:
        logger.error(f"Startup error: {e}")
        sys.exit(1)

    logger.info("Bot started. Polling for updates...")
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
