"""
Configuration du logging pour les points d'entree CLI.

Les modules du package se contentent de logging.getLogger(__name__); seul
le processus hote (CLI) installe un handler.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL_ENV = "VOICECMD_LOG_LEVEL"


def setup_logging(level: Optional[str] = None) -> None:
    """Niveau explicite, sinon VOICECMD_LOG_LEVEL, sinon INFO."""
    name = (level or os.getenv(LOG_LEVEL_ENV, "INFO")).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)
