"""Tests for sfbackup.async_retriever."""

import io
from unittest.mock import MagicMock

import pytest
import requests

from sfbackup import async_retriever
from sfbackup.async_retriever import EMPTY_RESULT_MESSAGE, is_empty_result, load
from sfbackup.bulk import JobInfo
from sfbackup.exceptions import BatchProcessingError, BatchTimeoutError, JobCreationError
from sfbackup.soql import Query
from tests.fakes import FakeBulk

QUERY = Query.parse("SELECT Id, Name FROM Account")


def _run(bulk, path, config, query=QUERY, sleeps=None):
    sleeps = [] if sleeps is None else sleeps
    return load(
        object(),
        query.object_name,
        query,
        list(query.field_list),
        str(path),
        config,
        bulk_factory=lambda _conn: bulk,
        sleep=sleeps.append,
    )


class TestIsEmptyResult:
    def test_exact_message(self):
        assert is_empty_result(EMPTY_RESULT_MESSAGE)

    def test_prefix_of_message(self):
        assert is_empty_result(b"Records not")
        assert is_empty_result(b"")

    def test_csv_data(self):
        assert not is_empty_result(b'"Id","Name"\n')


class TestLoad:
    def test_job_lifecycle_and_byte_count(self, tmp_path, config, hook):
        data = b'"Id","Name"\n"001","Acme"\n"002","Globex"\n'
        bulk = FakeBulk(["Queued", "InProgress", "Completed"], {"752R": data})
        sleeps = []
        path = tmp_path / "Account.csv"

        n = _run(bulk, path, config, sleeps=sleeps)

        assert n == len(data)
        assert path.read_bytes() == data
        assert bulk.calls[0] == ("create_job", "Account", "query", "CSV")
        assert bulk.calls[1] == ("create_batch", "750A", "SELECT Id, Name FROM Account")
        assert bulk.polls == 3
        assert sleeps == [config.poll_interval] * 3
        assert bulk.closed == ["750A"]
        assert hook.calls == [("Account", str(path))]

    def test_large_part_streamed_in_chunks(self, tmp_path, config):
        data = b'"Id"\n' + b"".join(b'"%05d"\n' % i for i in range(2000))
        bulk = FakeBulk(["Completed"], {"752R": data})
        path = tmp_path / "Account.csv"

        assert _run(bulk, path, config) == len(data)
        assert path.read_bytes() == data

    def test_no_records_message_writes_nothing(self, tmp_path, config, hook):
        bulk = FakeBulk(["Completed"], {"752R": EMPTY_RESULT_MESSAGE})
        path = tmp_path / "Account.csv"

        n = _run(bulk, path, config)

        assert n == 0
        assert not path.exists()
        assert hook.calls == []
        assert bulk.closed == ["750A"]

    def test_multiple_parts_share_one_file_and_header(self, tmp_path, config, hook):
        bulk = FakeBulk(
            ["Completed"],
            {
                "r1": b'"Id","Name"\n"001","Acme"\n',
                "r2": EMPTY_RESULT_MESSAGE,
                "r3": b'"Id","Name"\n"002","Globex"\n',
            },
        )
        path = tmp_path / "Account.csv"

        n = _run(bulk, path, config)

        content = path.read_bytes()
        assert content == b'"Id","Name"\n"001","Acme"\n"002","Globex"\n'
        assert n == len(content)
        assert len(hook.calls) == 1

    def test_failed_batch_raises_with_message_and_stops_polling(self, tmp_path, config):
        bulk = FakeBulk(
            ["InProgress", "Failed", "Completed"],
            {"752R": b"x"},
            state_message="InvalidBatch : Failed to process query",
        )

        with pytest.raises(BatchProcessingError) as excinfo:
            _run(bulk, tmp_path / "Account.csv", config)

        assert "Failed to process query" in str(excinfo.value)
        assert excinfo.value.state_message == "InvalidBatch : Failed to process query"
        assert bulk.polls == 2
        assert not (tmp_path / "Account.csv").exists()
        assert bulk.closed == ["750A"]

    def test_close_failure_does_not_hide_batch_error(self, tmp_path, config):
        bulk = FakeBulk(["Failed"], state_message="InvalidBatch : bad field")
        bulk.close_job = MagicMock(side_effect=requests.HTTPError("503 Server Error"))

        with pytest.raises(BatchProcessingError) as excinfo:
            _run(bulk, tmp_path / "Account.csv", config)

        assert excinfo.value.state_message == "InvalidBatch : bad field"
        bulk.close_job.assert_called_once_with("750A")

    def test_close_failure_after_success_is_raised(self, tmp_path, config):
        bulk = FakeBulk(["Completed"], {"752R": b'"Id"\n"001"\n'})
        bulk.close_job = MagicMock(side_effect=requests.HTTPError("503 Server Error"))

        with pytest.raises(requests.HTTPError):
            _run(bulk, tmp_path / "Account.csv", config)

        bulk.close_job.assert_called_once_with("750A")

    def test_job_without_id_is_fatal(self, tmp_path, config):
        bulk = FakeBulk(["Completed"])
        bulk.create_job = lambda job: JobInfo(object=job.object)

        with pytest.raises(JobCreationError):
            _run(bulk, tmp_path / "Account.csv", config)

        assert bulk.polls == 0

    def test_max_poll_attempts(self, tmp_path, config):
        config.max_poll_attempts = 2
        bulk = FakeBulk(["Queued", "InProgress", "InProgress"])

        with pytest.raises(BatchTimeoutError):
            _run(bulk, tmp_path / "Account.csv", config)

        assert bulk.polls == 2
        assert bulk.closed == ["750A"]

    def test_all_rows_query_uses_query_all_operation(self, tmp_path, config):
        bulk = FakeBulk(["Completed"], {})
        query = Query.parse("SELECT Id FROM Task ALL ROWS")

        _run(bulk, tmp_path / "Task.csv", config, query=query)

        assert bulk.calls[0] == ("create_job", "Task", "queryAll", "CSV")
        assert bulk.calls[1] == ("create_batch", "750A", "SELECT Id FROM Task")


class TestCopyHelpers:
    def test_read_up_to_handles_short_reads(self):
        class Dribble(io.RawIOBase):
            def __init__(self, data):
                self.data = data

            def read(self, n=-1):
                chunk, self.data = self.data[:1], self.data[1:]
                return chunk

        assert async_retriever._read_up_to(Dribble(b"abcdef"), 4) == b"abcd"

    def test_drop_header_line_spanning_reads(self):
        stream = io.BytesIO(b'me"\n"001"\n')

        rest = async_retriever._drop_header_line(b'"Na', stream)

        assert rest + stream.read() == b'"001"\n'
