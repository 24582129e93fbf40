"""
Field lookup against REST query records.

A record is the JSON dict returned by the query endpoint: scalar fields map to
values, relationship fields (e.g. ``Owner``) map to nested record dicts, and
every record dict carries an ``attributes`` entry with its type and url.

The resolver serves two purposes:

1. field names typed in mixed case in a SOQL override are matched against the
   canonical names the API returns, e.g. ``agents_name__c -> Agents_Name__c``
2. relationship paths such as ``Owner.Name`` are followed into child records
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple

ATTRIBUTES_KEY = "attributes"


def _find_child(local_name: str, record: Mapping[str, Any]) -> Tuple[bool, Any]:
    """Return (found, value) for the first key matching ``local_name`` ignoring case."""
    wanted = local_name.lower()
    for key, value in record.items():
        if key == ATTRIBUTES_KEY:
            continue
        if key.lower() == wanted:
            return True, value
    return False, None


class FieldResolver:
    """Case-insensitive, relationship-aware field access for one record."""

    def __init__(self, record: Mapping[str, Any]):
        self.record = record

    def get_field_ignore_case(self, path: str) -> Optional[Any]:
        """Resolve ``path`` (e.g. ``owner.name``) to a leaf value, or None if absent."""
        current: Mapping[str, Any] = self.record
        remaining = path
        while True:
            name, dot, rest = remaining.partition(".")
            if not name:
                return None
            found, value = _find_child(name, current)
            if not found:
                return None
            if not isinstance(value, Mapping):
                return value
            if not dot:
                # path stops on a relationship, there is no leaf value to return
                return None
            current = value
            remaining = rest

    @property
    def record_type(self) -> Optional[str]:
        attrs = self.record.get(ATTRIBUTES_KEY) or {}
        return attrs.get("type")

    @property
    def record_id(self) -> Optional[str]:
        return self.get_field_ignore_case("Id")


def resolver_for(record: Mapping[str, Any]) -> FieldResolver:
    return FieldResolver(record)
