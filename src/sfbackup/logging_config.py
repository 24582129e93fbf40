from __future__ import annotations

import logging
import os
from typing import Optional

_DEFAULT_FMT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DEFAULT_DATEFMT = "%H:%M:%S"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: Optional[int], log_file: Optional[str] = None) -> None:
    """Configure root logging once; safe to call multiple times.

    When ``log_file`` is given, a file handler is attached (once per path) so a
    long unattended backup leaves a record of which objects failed.
    """
    lvl = level if level is not None else logging.WARNING
    root = logging.getLogger()

    if root.handlers:
        root.setLevel(lvl)
    else:
        logging.basicConfig(
            level=lvl,
            format=_DEFAULT_FMT,
            datefmt=_DEFAULT_DATEFMT,
        )

    if log_file:
        already = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_file)
            for h in root.handlers
        )
        if not already:
            fh = logging.FileHandler(log_file, encoding="utf-8")
            fh.setFormatter(logging.Formatter(_DEFAULT_FMT, datefmt=_FILE_DATEFMT))
            root.addHandler(fh)

    # Bulk result streams are chatty at DEBUG; keep urllib3 quiet either way
    for name in ("urllib3.connection", "urllib3.connectionpool"):
        noisy = logging.getLogger(name)
        if noisy.level == logging.NOTSET or noisy.level < logging.WARNING:
            noisy.setLevel(logging.ERROR if name == "urllib3.connection" else logging.WARNING)
