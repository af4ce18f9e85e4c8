"""Command-line entry point for the PS5 watcher"""

import asyncio
import sys

from loguru import logger

from .config import DEFAULT_LOG_FILE, MONITORED_URLS
from .controller import RetryController
from .exceptions import ConfigurationError, RendererError
from .logging_config import setup_logging
from .models import ExitOutcome
from .renderer import BrowserRenderer
from .rotator import URLRotator


async def watch() -> ExitOutcome:
    """Open the browser and run the controller until it reaches an outcome"""
    rotator = URLRotator(MONITORED_URLS)
    async with BrowserRenderer() as renderer:
        controller = RetryController(renderer, rotator)
        return await controller.run()


def report(outcome: ExitOutcome) -> None:
    if outcome.is_success:
        logger.success(str(outcome))
    else:
        logger.error(str(outcome))


def main() -> None:
    """Run the watcher and exit with its outcome's status code"""
    setup_logging(log_file=DEFAULT_LOG_FILE)

    try:
        outcome = asyncio.run(watch())
    except (ConfigurationError, RendererError) as e:
        outcome = ExitOutcome.failure(str(e))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)

    report(outcome)
    sys.exit(outcome.code)


if __name__ == "__main__":
    main()
