from __future__ import annotations

import csv
import enum
import logging
import os
from typing import IO, Any, Optional, Sequence

from .config import BackupConfig
from .utils import ensure_dir

_logger = logging.getLogger(__name__)


class OutputState(enum.Enum):
    NOT_OPENED = "not_opened"
    OPENED = "opened"
    CLOSED = "closed"


class LazyOutput:
    """Output file that is created on the first write attempt.

    Opening runs the configured before-export hook, so the hook fires at most
    once per export and only when something is actually written. Exports that
    never write leave no file behind.
    """

    def __init__(
        self,
        object_name: str,
        output_path: str,
        config: BackupConfig,
        *,
        binary: bool = False,
    ) -> None:
        self.object_name = object_name
        self.output_path = output_path
        self.config = config
        self.binary = binary
        self.state = OutputState.NOT_OPENED
        self._fh: Optional[IO[Any]] = None

    @property
    def opened(self) -> bool:
        return self.state is not OutputState.NOT_OPENED

    def _open(self) -> IO[Any]:
        if self.state is OutputState.OPENED and self._fh is not None:
            return self._fh
        if self.state is OutputState.CLOSED:
            raise ValueError(f"Output for {self.object_name} is already closed")

        _logger.debug("Starting output %s for %s", self.output_path, self.object_name)
        self.config.before_export(self.object_name, self.output_path)
        parent = os.path.dirname(self.output_path)
        if parent:
            ensure_dir(parent)
        if self.binary:
            self._fh = open(self.output_path, "wb")
        else:
            self._fh = open(self.output_path, "w", newline="", encoding="utf-8")
        self.state = OutputState.OPENED
        return self._fh

    def stream(self) -> IO[Any]:
        """The underlying file, opening it (and running the hook) if necessary."""
        return self._open()

    def close(self) -> None:
        if self.state is OutputState.OPENED and self._fh is not None:
            self._fh.close()
            self._fh = None
            self.state = OutputState.CLOSED

    def __enter__(self) -> LazyOutput:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class LazyCsvWriter:
    """CSV writer over a :class:`LazyOutput`; the header is written on first row."""

    def __init__(self, output: LazyOutput, header: Sequence[str]) -> None:
        self.output = output
        self.header = list(header)
        self._writer: Optional[Any] = None
        self.rows_written = 0

    def write_record(self, values: Sequence[str]) -> None:
        if len(values) != len(self.header):
            raise ValueError(
                f"Row has {len(values)} columns, header has {len(self.header)}"
            )
        if self._writer is None:
            self._writer = csv.writer(self.output.stream())
            self._writer.writerow(self.header)
        self._writer.writerow(values)
        self.rows_written += 1

    def end_document(self) -> None:
        if self.output.state is OutputState.OPENED:
            self.output.stream().flush()
