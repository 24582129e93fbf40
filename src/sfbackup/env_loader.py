# src/sfbackup/env_loader.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv

_logger = logging.getLogger(__name__)


def load_env_files(
    candidates: Optional[Iterable[Path]] = None,
    *,
    quiet: bool = False,
    override: bool = False,
) -> Optional[Path]:
    """Load the first existing .env file; shared by the CLI and library use.

    - By default looks for .env / .sfbackup.env in the current working directory.
    - Existing environment variables win unless ``override`` is set.
    - Returns the path that was loaded, or None.
    """
    if candidates is None:
        cwd = Path.cwd()
        candidates = (cwd / ".env", cwd / ".sfbackup.env")

    for path in candidates:
        if path.exists():
            load_dotenv(path, override=override)
            if not quiet:
                _logger.debug("Loaded environment variables from %s", path)
            return path

    if not quiet:
        _logger.debug("No .env file found in %s", Path.cwd())
    return None
