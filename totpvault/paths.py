"""Platform data and log directory resolution."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import platformdirs

logger = logging.getLogger("totpvault.paths")

_APP_NAME = "TOTPVault"
_APP_AUTHOR = "TOTPVault"

ENV_DATA_DIR = "TOTPVAULT_HOME"


def get_data_dir() -> Path:
    """Return the data directory: ``$TOTPVAULT_HOME`` or the platform default."""
    override = os.environ.get(ENV_DATA_DIR)
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(_APP_NAME, _APP_AUTHOR))


def get_log_dir(data_dir: Path | None = None) -> Path:
    if data_dir is not None:
        return data_dir / "logs"
    return Path(platformdirs.user_log_dir(_APP_NAME, _APP_AUTHOR))
