"""
Just enough SOQL parsing to drive the exporters.

Only the SELECT list and the FROM object are interpreted; everything after the
object name (WHERE, ORDER BY, LIMIT ...) is carried through as-is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple

from .exceptions import SOQLParseError

_SELECT_RE = re.compile(r"^\s*select\s+", re.IGNORECASE)
_FROM_RE = re.compile(r"\s+from\s+(\w+)", re.IGNORECASE)
_ALL_ROWS_RE = re.compile(r"\s+all\s+rows\s*$", re.IGNORECASE)
_WHERE_RE = re.compile(r"\bwhere\b", re.IGNORECASE)
_AFTER_WHERE_RE = re.compile(r"\b(group\s+by|order\s+by|limit|offset)\b", re.IGNORECASE)
# toLabel(Status), convertCurrency(Amount) cur, FORMAT(CloseDate) ...
_WRAPPED_FIELD_RE = re.compile(r"^\w+\s*\(\s*([\w.]+)\s*\)(?:\s+(\w+))?$")
_SUBQUERY_RE = re.compile(r"^\(\s*select\b", re.IGNORECASE)


def _split_fields(select_list: str) -> List[str]:
    """Split a SELECT list on top level commas; nested sub-queries are kept whole."""
    fields: List[str] = []
    depth = 0
    buf: List[str] = []
    for ch in select_list:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            fields.append("".join(buf).strip())
            buf = []
        else:
            buf.append(ch)
    fields.append("".join(buf).strip())
    return [f for f in fields if f]


def _top_level_from(soql: str, start: int) -> Optional[re.Match]:
    """First FROM that is not inside a parenthesised sub-query."""
    for m in _FROM_RE.finditer(soql, start):
        if soql.count("(", start, m.start()) == soql.count(")", start, m.start()):
            return m
    return None


def _column_name(item: str) -> Optional[str]:
    """Key the REST API uses for a SELECT item; None for child sub-queries."""
    if _SUBQUERY_RE.match(item):
        return None
    m = _WRAPPED_FIELD_RE.match(item)
    if m:
        return m.group(2) or m.group(1)
    return item


@dataclass(frozen=True)
class Query:
    """A SOQL statement plus the metadata the exporters need."""

    text: str
    soql: str
    object_name: str
    fields: Tuple[str, ...]
    is_all_rows: bool
    tail: str = ""

    @classmethod
    def parse(cls, text: str) -> Query:
        soql = text.strip()
        is_all_rows = bool(_ALL_ROWS_RE.search(soql))
        if is_all_rows:
            soql = _ALL_ROWS_RE.sub("", soql)

        m_select = _SELECT_RE.match(soql)
        m_from = _top_level_from(soql, m_select.end()) if m_select else None
        if not m_select or not m_from:
            raise SOQLParseError(f"Not a SELECT ... FROM query: {text!r}")

        fields = tuple(_split_fields(soql[m_select.end() : m_from.start()]))
        if not fields:
            raise SOQLParseError(f"Query has an empty SELECT list: {text!r}")

        return cls(
            text=text,
            soql=soql,
            object_name=m_from.group(1),
            fields=fields,
            is_all_rows=is_all_rows,
            tail=soql[m_from.end() :].rstrip(),
        )

    @property
    def from_object(self) -> str:
        return self.object_name

    @property
    def has_relationship_fields(self) -> bool:
        return any("." in f or "(" in f for f in self.fields)

    @property
    def has_star(self) -> bool:
        return "*" in self.fields

    @property
    def field_list(self) -> List[str]:
        """Column names for the CSV header in query order; child sub-queries are left out."""
        names = (_column_name(f) for f in self.fields)
        return [n for n in names if n is not None]

    def _rebuild(self, fields: Iterable[str], tail: str) -> Query:
        soql = f"SELECT {', '.join(fields)} FROM {self.object_name}{tail}"
        text = soql + (" ALL ROWS" if self.is_all_rows else "")
        return replace(self, text=text, soql=soql, fields=tuple(fields), tail=tail)

    def expand_star(self, field_names: Iterable[str]) -> Query:
        """Replace ``*`` in the SELECT list with the given field names."""
        if not self.has_star:
            return self
        expanded: List[str] = []
        seen: set[str] = set()
        for f in self.fields:
            names = list(field_names) if f == "*" else [f]
            for n in names:
                if n.lower() not in seen:
                    expanded.append(n)
                    seen.add(n.lower())
        return self._rebuild(expanded, self.tail)

    def with_where(self, where: str | None) -> Query:
        """AND an extra condition into the query's WHERE clause (or add one)."""
        if not where or not where.strip():
            return self
        cond = where.strip()
        tail = self.tail
        m_where = _WHERE_RE.search(tail)
        if m_where:
            start = m_where.end()
            m_after = _AFTER_WHERE_RE.search(tail, start)
            end = m_after.start() if m_after else len(tail)
            existing = tail[start:end].strip()
            rest = tail[end:].strip()
            new_tail = f"{tail[:m_where.start()]}WHERE ({existing}) AND ({cond})"
        else:
            m_after = _AFTER_WHERE_RE.search(tail)
            end = m_after.start() if m_after else len(tail)
            rest = tail[end:].strip()
            new_tail = f"{tail[:end].rstrip()} WHERE {cond}"
        if rest:
            new_tail = f"{new_tail} {rest}"
        if not new_tail.startswith(" "):
            new_tail = " " + new_tail
        return self._rebuild(self.fields, new_tail)


def default_query(object_name: str) -> str:
    return f"SELECT * FROM {object_name}"
