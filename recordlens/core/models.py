"""
Data models and type definitions for RecordLens.

Decoded backend data is loosely typed JSON. ``ValueKind`` and
``classify_value`` give every formatter the same tagged view of it
(scalar, list, map) so dispatch happens on the tag rather than by probing
fields ad hoc.
"""

from __future__ import annotations

import json
import math
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class ValueKind(str, Enum):
    """Shape of a decoded value."""

    SCALAR = "scalar"
    LIST = "list"
    MAP = "map"


class ActionKind(str, Enum):
    """Audit action classification."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LOGIN = "login"
    LOGOUT = "logout"
    DEACTIVATE = "deactivate"
    UNKNOWN = "unknown"


# Substring markers tested in order; the first match wins.
ACTION_MARKERS = (
    (ActionKind.CREATE, ("CREATE",)),
    (ActionKind.UPDATE, ("UPDATE",)),
    (ActionKind.DELETE, ("DELETE",)),
    (ActionKind.LOGIN, ("LOGIN",)),
    (ActionKind.LOGOUT, ("LOGOUT",)),
    (ActionKind.DEACTIVATE, ("DEACT", "DISABLE")),
)


class _Missing:
    """Marker for a key absent from a snapshot (distinct from null)."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def classify_value(value: Any) -> ValueKind:
    """Return the tag for a decoded value."""
    if isinstance(value, Mapping):
        return ValueKind.MAP
    if isinstance(value, (list, tuple)):
        return ValueKind.LIST
    return ValueKind.SCALAR


def classify_action(action: Optional[str]) -> ActionKind:
    """Classify an audit action label by case-insensitive substring match."""
    label = (action or "").upper()
    for kind, markers in ACTION_MARKERS:
        if any(marker in label for marker in markers):
            return kind
    return ActionKind.UNKNOWN


def compact_json(value: Any) -> str:
    """Serialize a container the way the console shows nested values."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def stringify(value: Any) -> str:
    """
    Text form of a decoded value.

    Used both for display and for textual diff equality: ``1`` and ``"1"``
    share a text form, ``None`` is ``"null"`` and an absent key is
    ``"undefined"``.
    """
    if value is MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value
    if classify_value(value) is not ValueKind.SCALAR:
        return compact_json(value)
    return str(value)


def parse_snapshot(value: Any) -> Any:
    """
    Normalize an audit before/after snapshot.

    Empty values (null, false, blank text, NaN) become ``None`` while zero is
    kept; JSON text is parsed; anything that is not JSON is kept as the raw
    string.
    """
    if value is None or value is False or value == "":
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _first_present(record: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _first_truthy(record: Mapping[str, Any], keys: Sequence[str]) -> Any:
    # Blank labels fall through to the next alias
    for key in keys:
        value = record.get(key)
        if value:
            return value
    return None


class AuditEvent(BaseModel):
    """One audit trail entry with optional before/after snapshots."""

    action: str = ""
    table: str = ""
    before: Any = None
    after: Any = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def kind(self) -> ActionKind:
        return classify_action(self.action)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "AuditEvent":
        """Build an event from a backend audit row, honouring its field aliases."""
        action = _first_truthy(record, ("action_type", "action", "type"))
        table = _first_truthy(record, ("table_name", "table"))
        after = _first_present(record, ("after", "new_raw", "new_data", "new"))
        before = _first_present(record, ("before", "old_raw", "old_data", "old"))
        return cls(
            action="" if action is None else stringify(action),
            table="" if table is None else stringify(table),
            before=parse_snapshot(before),
            after=parse_snapshot(after),
        )


class PaginationMeta(BaseModel):
    """Pagination information reported alongside a page of rows."""

    page: int = 1
    limit: int = 10
    total: Optional[int] = None


class PageResult(BaseModel):
    """A decoded, display-ready page of records."""

    rows: List[Dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10
    error: Optional[str] = None

    @property
    def meta(self) -> PaginationMeta:
        return PaginationMeta(page=self.page, limit=self.limit, total=self.total)
