"""
Backup orchestration: one CSV file per object.

For every object the query is built (configured override or ``SELECT *``),
the retrieval mode is selected, and the mode's loader writes the file. A
failure is logged and recorded for that object only; the remaining objects
are still attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from tqdm import tqdm

from .config import BackupConfig
from .modes import OperationMode, select_mode
from .soql import Query, default_query
from .utils import dedupe_preserve_order, ensure_dir

_logger = logging.getLogger(__name__)

# Compound fields cannot be selected alongside their components
_COMPOUND_TYPES = {"address", "location"}


@dataclass
class ObjectExport:
    object_name: str
    mode: str
    count: int
    output_path: Optional[str]

    @property
    def unit(self) -> str:
        return "bytes" if self.mode.startswith("Async") else "rows"


@dataclass
class BackupResult:
    exported: List[ObjectExport] = field(default_factory=list)
    empty: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed


def queryable_field_names(describe: dict) -> List[str]:
    """Queryable scalar fields of a describe result, Id first."""
    names = [
        f["name"]
        for f in describe.get("fields", [])
        if f.get("queryable", True) and f.get("type") not in _COMPOUND_TYPES
    ]
    if "Id" in names:
        names = ["Id"] + [n for n in names if n != "Id"]
    return dedupe_preserve_order(names, ignore_case=True)


def resolve_objects(api, config: BackupConfig) -> List[str]:
    """Objects to back up; '*' (or nothing configured) means every queryable object."""
    wanted = config.objects or ["*"]
    if "*" in wanted:
        described = api.describe_global().get("sobjects", [])
        everything = [s["name"] for s in described if s.get("queryable", True)]
        wanted = everything + [w for w in wanted if w != "*"]
    skip = {s.lower() for s in config.skip_objects}
    return [o for o in dedupe_preserve_order(wanted, ignore_case=True) if o.lower() not in skip]


def plan_export(
    api, object_name: str, config: BackupConfig
) -> Tuple[OperationMode, Query, List[dict]]:
    """Build the final query for ``object_name`` and pick its retrieval mode."""
    describe = api.describe_object(object_name)
    fields: List[dict] = describe.get("fields", [])

    soql = config.soql_override(object_name) or default_query(object_name)
    query = Query.parse(soql).expand_star(queryable_field_names(describe))

    mode = select_mode(query, fields, config)
    if mode.allow_global_where:
        query = query.with_where(config.global_where)
    return mode, query, fields


def export_object(api, object_name: str, config: BackupConfig) -> ObjectExport:
    mode, query, _ = plan_export(api, object_name, config)
    output_path = config.output_path_for(object_name)
    _logger.info("%s: %s using %s", object_name, query.soql, mode)

    count = mode.load(api, object_name, query, query.field_list, output_path, config)
    return ObjectExport(
        object_name=object_name, mode=mode.name, count=count, output_path=output_path
    )


def run_backup(
    api,
    config: BackupConfig,
    objects: Optional[Iterable[str]] = None,
    *,
    progress: bool = True,
) -> BackupResult:
    ensure_dir(config.output_dir)
    names = list(objects) if objects is not None else resolve_objects(api, config)
    _logger.info("Backing up %d objects to %s", len(names), config.output_dir)

    result = BackupResult()
    for name in tqdm(names, desc="Objects", disable=not progress):
        try:
            export = export_object(api, name, config)
        except Exception as e:  # isolate per-object failures
            _logger.exception("Export of %s failed", name)
            result.failed[name] = str(e)
            continue

        if export.count:
            result.exported.append(export)
        else:
            result.empty.append(name)

    _logger.info(
        "Backup finished: exported=%d, empty=%d, failed=%d",
        len(result.exported),
        len(result.empty),
        len(result.failed),
    )
    return result
