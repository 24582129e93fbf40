from __future__ import annotations

import os
import re
from typing import Iterable, List


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def sanitize_filename(name: str, repl: str = "_") -> str:
    """
    Make a portable filename:
    - replace characters invalid on common filesystems (/:*?"<>|) with `_`
    - strip leading/trailing separators and dots
    - fallback to 'file' if empty
    """
    safe = re.sub(r'[\\/:*?"<>|\x00-\x1f]+', repl, name or "").strip(repl + ". ")
    return safe or "file"


def split_csv_option(value: str | None) -> List[str]:
    """Split a comma separated option ('Account, Contact') into clean names."""
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def dedupe_preserve_order(items: Iterable[str], *, ignore_case: bool = False) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for x in items:
        key = x.lower() if ignore_case else x
        if key not in seen:
            out.append(x)
            seen.add(key)
    return out


def parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on", "y"}
