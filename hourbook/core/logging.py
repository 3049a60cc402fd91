"""
Logging setup for the API process.
"""

import logging
import sys

from hourbook.core.config import settings


def setup_logging() -> None:
    """Configure the root logger to write to stdout at ``LOG_LEVEL``."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # Motor/pymongo are chatty at DEBUG
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)

    logging.getLogger(__name__).info("Logging configured (environment=%s)", settings.ENVIRONMENT)
