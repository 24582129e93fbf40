"""
Backup configuration.

Everything is read from environment variables (optionally via a .env file);
the CLI overrides individual values. Env vars:

  SFBACKUP_OUTPUT_DIR          target directory (default ./backup)
  SFBACKUP_OBJECTS             comma separated objects, '*' = every queryable object
  SFBACKUP_SKIP_OBJECTS        comma separated objects to leave out
  SFBACKUP_USE_BULK_API        true/false, allow Bulk API jobs (default false)
  SFBACKUP_GLOBAL_WHERE        WHERE condition applied when no per-object query is set
  SFBACKUP_SOQL__<Object>      per-object query override
  SFBACKUP_ATTACHMENT_AS_FILE  file name pattern for binary payloads ($name, $id, $ext),
                               empty disables extraction (default $name)
  SFBACKUP_HOOK_EACH_BEFORE    command run before each export starts writing,
                               called with <object> <output path> appended
  SFBACKUP_POLL_INTERVAL       seconds between bulk batch polls (default 10)
  SFBACKUP_MAX_POLL_ATTEMPTS   give up on a bulk batch after this many polls (default unlimited)
  SFBACKUP_LOG_FILE            also write logs to this file
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from string import Template
from typing import Callable, Dict, List, Optional

from .exceptions import HookError
from .utils import ensure_dir, parse_bool, sanitize_filename, split_csv_option

_logger = logging.getLogger(__name__)

SOQL_ENV_PREFIX = "SFBACKUP_SOQL__"
DEFAULT_POLL_INTERVAL = 10.0

BeforeExportHook = Callable[[str, str], None]


def _soql_overrides_from_env(environ: Dict[str, str]) -> Dict[str, str]:
    return {
        key[len(SOQL_ENV_PREFIX) :]: value
        for key, value in environ.items()
        if key.startswith(SOQL_ENV_PREFIX) and value.strip()
    }


def _optional_int(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    return int(raw)


@dataclass
class BackupConfig:
    """Settings consulted by the mode selector, the retrievers and the orchestrator."""

    output_dir: str = "backup"
    objects: List[str] = field(default_factory=list)
    skip_objects: List[str] = field(default_factory=list)
    use_bulk_api: bool = False
    global_where: Optional[str] = None
    soql_overrides: Dict[str, str] = field(default_factory=dict)
    attachment_file_pattern: Optional[str] = "$name"
    hook_each_before: Optional[str] = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_poll_attempts: Optional[int] = None
    log_file: Optional[str] = None

    # In-process alternative to hook_each_before (used by library callers and tests)
    before_export_callback: Optional[BeforeExportHook] = field(default=None, repr=False)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> BackupConfig:
        env = dict(os.environ if environ is None else environ)
        pattern = env.get("SFBACKUP_ATTACHMENT_AS_FILE")
        return cls(
            output_dir=env.get("SFBACKUP_OUTPUT_DIR") or "backup",
            objects=split_csv_option(env.get("SFBACKUP_OBJECTS")),
            skip_objects=split_csv_option(env.get("SFBACKUP_SKIP_OBJECTS")),
            use_bulk_api=parse_bool(env.get("SFBACKUP_USE_BULK_API")),
            global_where=(env.get("SFBACKUP_GLOBAL_WHERE") or "").strip() or None,
            soql_overrides=_soql_overrides_from_env(env),
            attachment_file_pattern="$name" if pattern is None else (pattern.strip() or None),
            hook_each_before=(env.get("SFBACKUP_HOOK_EACH_BEFORE") or "").strip() or None,
            poll_interval=float(env.get("SFBACKUP_POLL_INTERVAL") or DEFAULT_POLL_INTERVAL),
            max_poll_attempts=_optional_int(env.get("SFBACKUP_MAX_POLL_ATTEMPTS")),
            log_file=env.get("SFBACKUP_LOG_FILE") or None,
        )

    # --------------------------- Lookups -------------------------------

    def soql_override(self, object_name: str) -> Optional[str]:
        """Per-object query, matched ignoring case."""
        wanted = object_name.lower()
        for name, soql in self.soql_overrides.items():
            if name.lower() == wanted:
                return soql
        return None

    def has_soql_override(self, object_name: str) -> bool:
        return self.soql_override(object_name) is not None

    def output_path_for(self, object_name: str) -> str:
        return os.path.join(self.output_dir, f"{object_name}.csv")

    # --------------------------- Helpers for binary payloads ----------

    def mkdirs(self, object_type: str) -> str:
        """Create (if needed) and return the folder for an object's payload files."""
        path = os.path.join(self.output_dir, object_type)
        ensure_dir(path)
        return path

    def format_attachment_file_name(
        self, name: Optional[object], record_id: Optional[str]
    ) -> Optional[str]:
        """Build a payload file name from the pattern, or None when extraction is off."""
        if not self.attachment_file_pattern or name is None or not str(name).strip():
            return None
        base = os.path.basename(str(name).replace("\\", "/"))
        _, ext = os.path.splitext(base)
        formatted = Template(self.attachment_file_pattern).safe_substitute(
            name=base,
            id=record_id or "",
            ext=ext.lstrip("."),
        )
        return sanitize_filename(formatted)

    # --------------------------- Hooks ---------------------------------

    def before_export(self, object_name: str, output_path: str) -> None:
        """Run the before-export hook; called once per export that produces output."""
        if self.before_export_callback is not None:
            self.before_export_callback(object_name, output_path)
        if not self.hook_each_before:
            return
        cmd = shlex.split(self.hook_each_before) + [object_name, output_path]
        _logger.debug("Running before-export hook: %s", cmd)
        try:
            subprocess.run(cmd, check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise HookError(f"Before-export hook failed for {object_name}: {e}") from e
