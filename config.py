"""
Configuration for the Composition FHIR server.
Values come from environment variables and are read once at import time.
"""

import logging
import os
import sys
from typing import Optional


def _get_env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


# Server
BASE_URL = os.getenv('FHIR_BASE_URL', 'http://localhost:8000')
HOST = os.getenv('HOST', '0.0.0.0')
PORT = _get_env_int('PORT', 8000)

# Search paging (None means return every match)
DEFAULT_PAGE_SIZE = _get_env_int('DEFAULT_PAGE_SIZE', None)
MAX_PAGE_SIZE = _get_env_int('MAX_PAGE_SIZE', 1000)

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger for console output."""
    level_name = (level or LOG_LEVEL).upper()
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)
