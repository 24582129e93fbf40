"""
Minimal Bulk API 1.0 client for query jobs.

Job and batch descriptors travel as XML; query results come back as CSV
streams. Only the calls needed for a query export are implemented.
"""

from __future__ import annotations

import enum
import logging
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Optional

import requests

_logger = logging.getLogger(__name__)

NS = "http://www.force.com/2009/06/asyncapi/dataload"
_XML_CONTENT_TYPE = "application/xml; charset=UTF-8"


class BatchState(str, enum.Enum):
    QUEUED = "Queued"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    NOT_PROCESSED = "NotProcessed"


class JobState(str, enum.Enum):
    OPEN = "Open"
    CLOSED = "Closed"
    ABORTED = "Aborted"
    FAILED = "Failed"


@dataclass
class JobInfo:
    object: Optional[str] = None
    operation: str = "query"
    content_type: str = "CSV"
    concurrency_mode: str = "Parallel"
    id: Optional[str] = None
    state: Optional[str] = None

    def to_xml(self) -> bytes:
        root = ET.Element("jobInfo", xmlns=NS)
        if self.id is None:
            ET.SubElement(root, "operation").text = self.operation
            ET.SubElement(root, "object").text = self.object
            ET.SubElement(root, "concurrencyMode").text = self.concurrency_mode
            ET.SubElement(root, "contentType").text = self.content_type
        if self.state is not None:
            ET.SubElement(root, "state").text = self.state
        return ET.tostring(root, encoding="utf-8", xml_declaration=True)

    @classmethod
    def from_xml(cls, payload: bytes) -> JobInfo:
        root = ET.fromstring(payload)
        return cls(
            id=_text(root, "id"),
            object=_text(root, "object"),
            operation=_text(root, "operation") or "query",
            content_type=_text(root, "contentType") or "CSV",
            concurrency_mode=_text(root, "concurrencyMode") or "Parallel",
            state=_text(root, "state"),
        )


@dataclass
class BatchInfo:
    id: str
    job_id: str
    state: BatchState
    state_message: Optional[str] = None

    @classmethod
    def from_xml(cls, payload: bytes) -> BatchInfo:
        root = ET.fromstring(payload)
        return cls(
            id=_text(root, "id") or "",
            job_id=_text(root, "jobId") or "",
            state=BatchState(_text(root, "state") or BatchState.QUEUED.value),
            state_message=_text(root, "stateMessage"),
        )


def _text(root: ET.Element, tag: str) -> Optional[str]:
    return root.findtext(f"{{{NS}}}{tag}")


def bulk_endpoint(instance_url: str, api_version: str) -> str:
    """Bulk API base url, e.g. https://x.my.salesforce.com/services/async/60.0"""
    return f"{instance_url.rstrip('/')}/services/async/{api_version.lstrip('v')}"


class BulkConnection:
    """Bulk API session bound to an authenticated REST client's credentials."""

    def __init__(self, endpoint: str, session_id: str, session: Optional[requests.Session] = None):
        self.endpoint = endpoint.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"X-SFDC-Session": session_id})

    @classmethod
    def from_api(cls, api) -> BulkConnection:
        if not api.access_token or not api.instance_url or not api.api_version:
            raise RuntimeError("SalesforceAPI must be connected before using the Bulk API.")
        return cls(bulk_endpoint(api.instance_url, api.api_version), api.access_token)

    # --------------------------- Jobs ----------------------------------

    def create_job(self, job: JobInfo) -> JobInfo:
        r = self._request("POST", "job", data=job.to_xml(), content_type=_XML_CONTENT_TYPE)
        created = JobInfo.from_xml(r.content)
        _logger.debug("Created bulk job %s for %s", created.id, job.object)
        return created

    def get_job_status(self, job_id: str) -> JobInfo:
        return JobInfo.from_xml(self._request("GET", f"job/{job_id}").content)

    def close_job(self, job_id: str) -> JobInfo:
        update = JobInfo(id=job_id, state=JobState.CLOSED.value)
        r = self._request(
            "POST", f"job/{job_id}", data=update.to_xml(), content_type=_XML_CONTENT_TYPE
        )
        _logger.debug("Closed bulk job %s", job_id)
        return JobInfo.from_xml(r.content)

    # --------------------------- Batches -------------------------------

    def create_batch_from_query(self, job_id: str, soql: str) -> BatchInfo:
        r = self._request(
            "POST",
            f"job/{job_id}/batch",
            data=soql.encode("utf-8"),
            content_type="text/csv; charset=UTF-8",
        )
        return BatchInfo.from_xml(r.content)

    def get_batch_info(self, job_id: str, batch_id: str) -> BatchInfo:
        return BatchInfo.from_xml(self._request("GET", f"job/{job_id}/batch/{batch_id}").content)

    def get_query_result_list(self, job_id: str, batch_id: str) -> List[str]:
        r = self._request("GET", f"job/{job_id}/batch/{batch_id}/result")
        root = ET.fromstring(r.content)
        return [el.text for el in root.iter(f"{{{NS}}}result") if el.text]

    def get_query_result_stream(self, job_id: str, batch_id: str, result_id: str) -> BinaryIO:
        """File-like object over one result part (decompressed)."""
        r = self._request("GET", f"job/{job_id}/batch/{batch_id}/result/{result_id}", stream=True)
        r.raw.decode_content = True
        return r.raw

    # --------------------------- HTTP ----------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        data: Optional[bytes] = None,
        content_type: Optional[str] = None,
        stream: bool = False,
        retries: int = 3,
        backoff: float = 0.8,
        timeout: float = 60.0,
    ) -> requests.Response:
        url = f"{self.endpoint}/{path}"
        headers: Dict[str, str] = {}
        if content_type:
            headers["Content-Type"] = content_type

        for attempt in range(1, retries + 1):
            try:
                r = self.session.request(
                    method, url, data=data, headers=headers, stream=stream, timeout=timeout
                )
            except requests.RequestException as e:
                _logger.warning("Bulk request error (attempt %d/%d): %s", attempt, retries, e)
                if attempt == retries:
                    raise
                time.sleep(backoff * attempt)
                continue

            if r.status_code < 400:
                return r

            if r.status_code in (429, 500, 502, 503, 504) and attempt < retries:
                _logger.warning("Bulk HTTP %s -> retrying %d/%d", r.status_code, attempt, retries)
                time.sleep(backoff * attempt)
                continue

            _logger.error("Bulk HTTP %s error for %s: %s", r.status_code, url, _error_message(r))
            r.raise_for_status()
        raise RuntimeError("Exceeded maximum retries.")


def _error_message(r: requests.Response) -> str:
    try:
        root = ET.fromstring(r.content)
    except ET.ParseError:
        return r.text[:500]
    code = _text(root, "exceptionCode")
    msg = _text(root, "exceptionMessage")
    return f"{code}: {msg}" if code or msg else r.text[:500]
