"""
JSON serialization for table snapshots.

Snapshots are self-describing: they carry the table name, the column names
with a type hint per column, and the rows. Values JSON cannot represent
natively are wrapped in a single-key tag object so they survive the round
trip:

    - datetime: {"$datetime": "2024-01-01T10:00:00"} (always naive)
    - bytes:    {"$bytes": "<base64>"}
    - Decimal:  {"$decimal": "12.50"}
    - UUID:     serialized as its string form

Example:
    >>> snapshot = TableSnapshot("core_user", ["id", "tenant"], [{"id": "u1", "tenant": 1}])
    >>> TableSnapshot.from_json(snapshot.to_json()) == snapshot
    True
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

_DATETIME_TAG = "$datetime"
_BYTES_TAG = "$bytes"
_DECIMAL_TAG = "$decimal"


def make_naive(value: datetime) -> datetime:
    """Drop tzinfo, converting aware values to UTC first."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def normalize_value(value: Any) -> Any:
    """Normalize a value read from a store (naive datetimes, plain UUID strings)."""
    if isinstance(value, datetime):
        return make_naive(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, memoryview):
        return value.tobytes()
    return value


def type_name(value: Any) -> str:
    """Type hint recorded for a column, derived from its first non-null value."""
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, Decimal):
        return "decimal"
    if isinstance(value, datetime):
        return "datetime"
    if isinstance(value, date):
        return "date"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "bytes"
    return "str"


class SnapshotJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for snapshot rows.

    Handles datetime, date, bytes, Decimal and UUID values.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return {_DATETIME_TAG: make_naive(obj).isoformat()}
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, (bytes, bytearray, memoryview)):
            return {_BYTES_TAG: base64.b64encode(bytes(obj)).decode("ascii")}
        if isinstance(obj, Decimal):
            return {_DECIMAL_TAG: str(obj)}
        if isinstance(obj, UUID):
            return str(obj)
        return super().default(obj)


def _decode_tagged(obj: dict[str, Any]) -> Any:
    if len(obj) == 1:
        if _DATETIME_TAG in obj:
            return datetime.fromisoformat(obj[_DATETIME_TAG])
        if _BYTES_TAG in obj:
            return base64.b64decode(obj[_BYTES_TAG])
        if _DECIMAL_TAG in obj:
            return Decimal(obj[_DECIMAL_TAG])
    return obj


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, cls=SnapshotJSONEncoder)


def json_loads(s: str | bytes) -> Any:
    return json.loads(s, object_hook=_decode_tagged)


@dataclass
class TableSnapshot:
    """
    Rows of one table captured for a single user.

    Attributes:
        table: Table name.
        columns: Column names in select order.
        rows: Rows keyed by column name.
        column_types: Type hint per column ("str" when every value is null).
    """

    table: str
    columns: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)
    column_types: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for column in self.columns:
            if column not in self.column_types:
                sample = next(
                    (row[column] for row in self.rows if row.get(column) is not None),
                    None,
                )
                self.column_types[column] = "str" if sample is None else type_name(sample)

    def __len__(self) -> int:
        return len(self.rows)

    def to_json(self) -> str:
        return json_dumps(
            {
                "table": self.table,
                "columns": [
                    {"name": column, "type": self.column_types.get(column, "str")}
                    for column in self.columns
                ],
                "rows": [[row.get(column) for column in self.columns] for row in self.rows],
            }
        )

    @classmethod
    def from_json(cls, data: str | bytes) -> TableSnapshot:
        payload = json_loads(data)
        columns = [column["name"] for column in payload["columns"]]
        return cls(
            table=payload["table"],
            columns=columns,
            rows=[dict(zip(columns, values, strict=True)) for values in payload["rows"]],
            column_types={column["name"]: column["type"] for column in payload["columns"]},
        )


__all__ = [
    "SnapshotJSONEncoder",
    "TableSnapshot",
    "json_dumps",
    "json_loads",
    "make_naive",
    "normalize_value",
]
