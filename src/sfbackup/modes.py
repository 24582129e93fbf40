"""
Retrieval modes.

There are exactly four modes, built from two independent choices:
synchronous REST query vs. asynchronous Bulk API job, and whether the global
WHERE condition from the configuration may be applied. They are module level
constants; :data:`ALL_MODES` lists them in the order they are tried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from . import async_retriever, sync_retriever
from .config import BackupConfig
from .soql import Query

_logger = logging.getLogger(__name__)

Loader = Callable[..., int]

_LOADERS: Dict[bool, Loader] = {
    True: async_retriever.load,
    False: sync_retriever.load,
}


def _has_base64_fields(query: Query, fields: Iterable[Mapping]) -> bool:
    selected = {f.lower() for f in query.fields}
    return any(
        f.get("type") == "base64"
        and ("*" in selected or str(f.get("name", "")).lower() in selected)
        for f in fields
    )


@dataclass(frozen=True)
class OperationMode:
    name: str
    is_async: bool
    allow_global_where: bool

    @property
    def requires_global_where(self) -> bool:
        return self.allow_global_where

    def is_applicable(self, object_name: str, config: BackupConfig) -> bool:
        """Coarse check based on configuration only."""
        if self.is_async and not config.use_bulk_api:
            return False
        if self.requires_global_where:
            return not config.has_soql_override(object_name) and bool(config.global_where)
        return True

    def is_really_applicable(
        self,
        query: Query,
        fields: Sequence[Mapping],
        config: BackupConfig,
    ) -> bool:
        """Fine check against the parsed query and the object's field descriptors.

        Bulk query jobs can express neither relationship fields nor base64 fields.
        """
        if self.is_async and (query.has_relationship_fields or _has_base64_fields(query, fields)):
            return False
        return self.is_applicable(query.object_name, config)

    def load(
        self,
        connection,
        object_name: str,
        query: Query,
        field_list: Sequence[str],
        output_path: str,
        config: BackupConfig,
    ) -> int:
        """Export to ``output_path``; returns rows (sync) or bytes written (async)."""
        return _LOADERS[self.is_async](
            connection, object_name, query, list(field_list), output_path, config
        )

    def __str__(self) -> str:
        return self.name


ASYNC_WITH_GLOBAL_WHERE = OperationMode(
    "AsyncWithGlobalWhere", is_async=True, allow_global_where=True
)
ASYNC_WITHOUT_GLOBAL_WHERE = OperationMode(
    "AsyncWithoutGlobalWhere", is_async=True, allow_global_where=False
)
SYNC_WITH_GLOBAL_WHERE = OperationMode(
    "SyncWithGlobalWhere", is_async=False, allow_global_where=True
)
SYNC_WITHOUT_GLOBAL_WHERE = OperationMode(
    "SyncWithoutGlobalWhere", is_async=False, allow_global_where=False
)

ALL_MODES = (
    ASYNC_WITH_GLOBAL_WHERE,
    ASYNC_WITHOUT_GLOBAL_WHERE,
    SYNC_WITH_GLOBAL_WHERE,
    SYNC_WITHOUT_GLOBAL_WHERE,
)


def mode_by_name(name: str) -> Optional[OperationMode]:
    for mode in ALL_MODES:
        if mode.name.lower() == name.lower():
            return mode
    return None


def select_mode(
    query: Query,
    fields: Sequence[Mapping],
    config: BackupConfig,
) -> OperationMode:
    """Return the most specific mode that may run ``query``."""
    for mode in ALL_MODES:
        if mode.is_applicable(query.object_name, config) and mode.is_really_applicable(
            query, fields, config
        ):
            _logger.debug("Mode for %s: %s", query.object_name, mode)
            return mode
    # SyncWithoutGlobalWhere has no preconditions
    return SYNC_WITHOUT_GLOBAL_WHERE
