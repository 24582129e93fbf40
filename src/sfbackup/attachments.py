from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Any, Dict, Mapping, Optional, Set, Tuple

import requests

from .config import BackupConfig
from .resolver import resolver_for

_logger = logging.getLogger(__name__)

# object type (lower case) -> (file name field, body field)
FILE_OBJECT_TYPES: Dict[str, Tuple[str, str]] = {
    "attachment": ("Name", "Body"),
    "document": ("Name", "Body"),
    "contentversion": ("PathOnClient", "VersionData"),
}


class AttachmentExtractor:
    """Saves the binary payload of Attachment/Document/ContentVersion records as files.

    Failures are logged and swallowed: a payload that cannot be written must
    never stop the record's CSV row from being exported.
    """

    def __init__(self, config: BackupConfig, connection: Any = None) -> None:
        self.config = config
        self.connection = connection
        self._written: Set[str] = set()

    def process(self, record: Mapping[str, Any]) -> Optional[str]:
        resolver = resolver_for(record)
        record_type = resolver.record_type
        if not record_type or record_type.lower() not in FILE_OBJECT_TYPES:
            return None

        name_field, body_field = FILE_OBJECT_TYPES[record_type.lower()]
        file_name = self.config.format_attachment_file_name(
            resolver.get_field_ignore_case(name_field), resolver.record_id
        )
        if file_name is None:
            _logger.debug(
                "No file name for %s %s; skipping payload", record_type, resolver.record_id
            )
            return None

        try:
            target = os.path.join(self.config.mkdirs(record_type), file_name)
            data = self._payload(resolver.get_field_ignore_case(body_field))
            if not data:
                _logger.info("Empty payload for %s %s", record_type, resolver.record_id)
                return None
            target = self._unique_target(target, resolver.record_id)
            with open(target, "wb") as fh:
                fh.write(data)
            self._written.add(os.path.normcase(target))
        except (OSError, ValueError, binascii.Error) as e:
            _logger.warning(
                "Failed to save payload of %s %s (%s): %s",
                record_type,
                resolver.record_id,
                file_name,
                e,
            )
            return None
        except requests.RequestException as e:
            _logger.warning(
                "Failed to fetch payload of %s %s: %s", record_type, resolver.record_id, e
            )
            return None

        _logger.debug("Saved %d bytes → %s", len(data), target)
        return target

    def _unique_target(self, target: str, record_id: Optional[str]) -> str:
        """Qualify the name with the record id when an earlier record already took it."""
        if os.path.normcase(target) not in self._written or not record_id:
            return target
        folder, file_name = os.path.split(target)
        qualified = os.path.join(folder, f"{record_id}-{file_name}")
        _logger.warning("%s was already written; saving %s as %s", target, record_id, qualified)
        return qualified

    def _payload(self, body: Any) -> bytes:
        """Decode the body value; REST returns a blob URL instead of inline base64."""
        if body is None:
            return b""
        text = str(body)
        if text.startswith("/services/"):
            if self.connection is None:
                _logger.debug("Body is a blob url but no connection given: %s", text)
                return b""
            return self.connection.download_bytes(text)
        return base64.b64decode(text)
