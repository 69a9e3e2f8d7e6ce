from __future__ import annotations

import logging
import sys

try:
    from constants import LOG_LEVEL
except ImportError:
    from .constants import LOG_LEVEL

LOGGER_NAME = "midi_composer"

logger = logging.getLogger(LOGGER_NAME)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
logger.setLevel(getattr(logging, str(LOG_LEVEL).upper(), logging.INFO))
