"""Test doubles shared across the unit tests."""

from __future__ import annotations

import io
from typing import List

from sfbackup.bulk import BatchInfo, BatchState, JobInfo


class HookRecorder:
    """Collects (object_name, output_path) calls of the before-export hook."""

    def __init__(self):
        self.calls: List[tuple] = []

    def __call__(self, object_name: str, output_path: str) -> None:
        self.calls.append((object_name, output_path))


class FakeConnection:
    """REST connection stand-in serving canned result pages."""

    def __init__(self, pages: List[dict], *, blobs: dict | None = None):
        self.pages = list(pages)
        self.blobs = blobs or {}
        self.calls: List[tuple] = []

    def _first(self, kind: str, soql: str) -> dict:
        self.calls.append((kind, soql))
        return self.pages[0]

    def query(self, soql: str) -> dict:
        return self._first("query", soql)

    def query_all(self, soql: str) -> dict:
        return self._first("query_all", soql)

    def query_more(self, next_records_url: str) -> dict:
        self.calls.append(("query_more", next_records_url))
        for page in self.pages:
            if page.get("url") == next_records_url:
                return page
        raise AssertionError(f"unexpected page {next_records_url}")

    def download_bytes(self, rel_url: str) -> bytes:
        self.calls.append(("download_bytes", rel_url))
        return self.blobs[rel_url]


def make_record(object_type: str, **fields) -> dict:
    url = f"/sobjects/{object_type}/{fields.get('Id')}"
    rec = {"attributes": {"type": object_type, "url": url}}
    rec.update(fields)
    return rec


class FakeBulk:
    """Bulk API stand-in: batch states are handed out one per poll."""

    def __init__(self, states, parts=None, *, job_id="750A", state_message=None):
        self.states = [BatchState(s) for s in states]
        self.parts = dict(parts or {})
        self.job_id = job_id
        self.state_message = state_message
        self.calls: List[tuple] = []
        self.closed: List[str] = []
        self.polls = 0

    def create_job(self, job):
        self.calls.append(("create_job", job.object, job.operation, job.content_type))
        return JobInfo(object=job.object, operation=job.operation, id=self.job_id, state="Open")

    def get_job_status(self, job_id):
        return JobInfo(id=job_id, state="Open")

    def create_batch_from_query(self, job_id, soql):
        self.calls.append(("create_batch", job_id, soql))
        return BatchInfo(id="751B", job_id=job_id, state=BatchState.QUEUED)

    def get_batch_info(self, job_id, batch_id):
        self.polls += 1
        state = self.states.pop(0)
        return BatchInfo(id=batch_id, job_id=job_id, state=state, state_message=self.state_message)

    def get_query_result_list(self, job_id, batch_id):
        return list(self.parts)

    def get_query_result_stream(self, job_id, batch_id, result_id):
        return io.BytesIO(self.parts[result_id])

    def close_job(self, job_id):
        self.closed.append(job_id)
