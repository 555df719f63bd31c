"""Filesystem helpers."""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def create_folder(root_path: str | os.PathLike[str]) -> bool:
    """Make sure a directory exists at ``root_path``, creating parents as needed.

    Failures are logged rather than raised. Returns whether the directory
    exists once the call is done.
    """
    path = Path(root_path)
    if path.is_dir():
        logger.info("Folder already exists: %s", root_path)
        return True
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        logger.error("Folder creating folder: %s", err)
        return False
    logger.info("Folder created: %s", root_path)
    return True