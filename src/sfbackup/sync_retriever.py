"""Synchronous export: paged REST query streamed into a CSV file."""

from __future__ import annotations

import logging
from typing import Any, List, Sequence

from .attachments import AttachmentExtractor
from .config import BackupConfig
from .output import LazyCsvWriter, LazyOutput
from .resolver import resolver_for
from .soql import Query

_logger = logging.getLogger(__name__)


def _to_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def record_values(record: dict, field_list: Sequence[str]) -> List[str]:
    """CSV cells for one record, in ``field_list`` order."""
    resolver = resolver_for(record)
    return [_to_cell(resolver.get_field_ignore_case(f)) for f in field_list]


def load(
    connection,
    object_name: str,
    query: Query,
    field_list: Sequence[str],
    output_path: str,
    config: BackupConfig,
) -> int:
    """Write every record matched by ``query`` to ``output_path``.

    Returns the total record count reported by the first result page. The file
    is only created (and the before-export hook only run) when there is at
    least one record.
    """
    if query.is_all_rows:
        page = connection.query_all(query.soql)
    else:
        page = connection.query(query.soql)

    size = int(page.get("totalSize") or 0)
    _logger.info("%s: %d records", object_name, size)

    output = LazyOutput(object_name, output_path, config)
    writer = LazyCsvWriter(output, field_list)
    extractor = AttachmentExtractor(config, connection)
    try:
        if size > 0:
            while True:
                for record in page.get("records", []):
                    writer.write_record(record_values(record, field_list))
                    extractor.process(record)
                if page.get("done", True) or not page.get("nextRecordsUrl"):
                    break
                page = connection.query_more(page["nextRecordsUrl"])
        writer.end_document()
    finally:
        output.close()

    if writer.rows_written != size:
        _logger.warning(
            "%s: query reported %d records but %d rows were written",
            object_name,
            size,
            writer.rows_written,
        )
    return size
