from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol


class Record(Protocol):
    def to_dict(self) -> Any: ...


class ResponseBuilder:
    """Reply payload under construction, handed from the dispatcher to a handler."""

    def __init__(self) -> None:
        self._fields: dict[str, Any] = {}

    def add(self, key: str, value: Any) -> ResponseBuilder:
        self._fields[key] = value
        return self

    def add_array(self, key: str, records: Iterable[Record]) -> ResponseBuilder:
        self._fields[key] = [record.to_dict() for record in records]
        return self

    def add_record(self, record: Record) -> ResponseBuilder:
        """Merge a record's fields into the top level of the reply."""
        self._fields.update(record.to_dict())
        return self

    def build(self) -> dict[str, Any]:
        return dict(self._fields)
