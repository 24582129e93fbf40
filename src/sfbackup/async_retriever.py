"""Asynchronous export: Bulk API query job whose CSV result parts are streamed to disk."""

from __future__ import annotations

import logging
import time
from typing import BinaryIO, Callable, List, Optional, Sequence

import requests

from .bulk import BatchInfo, BatchState, BulkConnection, JobInfo
from .config import BackupConfig
from .exceptions import BatchProcessingError, BatchTimeoutError, JobCreationError
from .output import LazyOutput
from .soql import Query

_logger = logging.getLogger(__name__)

# The service answers a query without matches with a one-line text body instead
# of an empty CSV. Detection is a plain prefix comparison, so a genuine result
# that starts with this exact text would be dropped as well.
EMPTY_RESULT_MESSAGE = b"Records not found for this query"
CHUNK_SIZE = 1024

BulkFactory = Callable[[object], BulkConnection]


def _read_up_to(stream: BinaryIO, size: int) -> bytes:
    buf = b""
    while len(buf) < size:
        chunk = stream.read(size - len(buf))
        if not chunk:
            break
        buf += chunk
    return buf


def is_empty_result(prefix: bytes) -> bool:
    """True when the first bytes of a result part are (a prefix of) the no-records message."""
    return len(prefix) <= len(EMPTY_RESULT_MESSAGE) and EMPTY_RESULT_MESSAGE.startswith(prefix)


def _drop_header_line(prefix: bytes, stream: BinaryIO) -> bytes:
    """Consume the CSV header of a follow-up result part; returns what remains of ``prefix``."""
    while b"\n" not in prefix:
        chunk = stream.read(CHUNK_SIZE)
        if not chunk:
            return b""
        prefix += chunk
    return prefix.split(b"\n", 1)[1]


def wait_for_batch(
    bulk: BulkConnection,
    batch: BatchInfo,
    config: BackupConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> List[str]:
    """Poll until the batch completes; returns its result ids.

    Polling is unbounded unless ``config.max_poll_attempts`` is set.
    """
    attempts = 0
    while True:
        sleep(config.poll_interval)
        attempts += 1
        batch = bulk.get_batch_info(batch.job_id, batch.id)
        if batch.state is BatchState.COMPLETED:
            return bulk.get_query_result_list(batch.job_id, batch.id)
        if batch.state is BatchState.FAILED:
            _logger.error("Bulk batch %s failed: %s", batch.id, batch.state_message)
            raise BatchProcessingError(batch.state_message)
        _logger.debug("Bulk batch %s is %s (poll %d)", batch.id, batch.state.value, attempts)
        if config.max_poll_attempts is not None and attempts >= config.max_poll_attempts:
            raise BatchTimeoutError(batch.id, attempts)


def load(
    connection,
    object_name: str,
    query: Query,
    field_list: Sequence[str],
    output_path: str,
    config: BackupConfig,
    *,
    bulk_factory: BulkFactory = BulkConnection.from_api,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Run ``query`` as a bulk job and write its CSV result to ``output_path``.

    Returns the number of bytes written, not a record count. ``field_list`` is
    unused: the service produces the CSV header itself.
    """
    bulk = bulk_factory(connection)
    operation = "queryAll" if query.is_all_rows else "query"
    job = bulk.create_job(JobInfo(object=object_name, operation=operation))
    if not job.id:
        raise JobCreationError(f"Failed to create Bulk Job for {object_name}")

    job = bulk.get_job_status(job.id)
    _logger.info("%s: bulk job %s is %s", object_name, job.id, job.state)

    written = 0
    output = LazyOutput(object_name, output_path, config, binary=True)
    try:
        batch = bulk.create_batch_from_query(job.id, query.soql)
        result_ids = wait_for_batch(bulk, batch, config, sleep=sleep)

        for result_id in result_ids:
            stream = bulk.get_query_result_stream(job.id, batch.id, result_id)
            written += _copy_part(stream, output, result_id)
    except BaseException:
        output.close()
        _close_job(bulk, job.id, quiet=True)
        raise
    try:
        output.close()
    finally:
        _close_job(bulk, job.id)

    _logger.info("%s: %d bytes written", object_name, written)
    return written


def _copy_part(stream: BinaryIO, output: LazyOutput, result_id: str) -> int:
    try:
        prefix = _read_up_to(stream, len(EMPTY_RESULT_MESSAGE))
        if is_empty_result(prefix):
            _logger.info("Result %s has no records", result_id)
            return 0

        if output.opened:
            prefix = _drop_header_line(prefix, stream)
        fh = output.stream()
        fh.write(prefix)
        size = len(prefix)
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            fh.write(chunk)
            size += len(chunk)
        return size
    finally:
        close = getattr(stream, "close", None)
        if close is not None:
            close()


def _close_job(bulk: BulkConnection, job_id: Optional[str], *, quiet: bool = False) -> None:
    """Close the job; with ``quiet`` a failure is only logged so the original error surfaces."""
    if not job_id:
        return
    try:
        bulk.close_job(job_id)
    except (requests.RequestException, RuntimeError) as e:
        if not quiet:
            raise
        _logger.warning("Could not close bulk job %s: %s", job_id, e)
