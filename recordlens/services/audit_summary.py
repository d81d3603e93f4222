"""
Audit trail summarization.

Each audit row becomes one short sentence: what kind of action happened,
to which table, and either who/what it touched or which fields changed.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Union

import structlog

from recordlens.core.config import DisplayConfig
from recordlens.core.models import (
    MISSING,
    ActionKind,
    AuditEvent,
    ValueKind,
    classify_value,
    stringify,
)
from recordlens.services.preview import PreviewFormatter, format_timestamp, parse_timestamp

logger = structlog.get_logger(__name__)

IDENTITY_FIELDS = ("username", "name")
FALLBACK_ID_FIELDS = ("id", "user_id", "record_id")


def identity(obj: Any) -> Optional[str]:
    """
    Short human label for a snapshot.

    Preference: ``username``, ``name``, ``first_name last_name``, ``id``,
    ``user_id``, ``record_id``. A bare string is its own identity.
    """
    if obj is None:
        return None
    if isinstance(obj, str):
        return obj or None
    if classify_value(obj) is not ValueKind.MAP:
        return None

    for field in IDENTITY_FIELDS:
        if obj.get(field):
            return stringify(obj[field])

    first = obj.get("first_name") or ""
    last = obj.get("last_name") or ""
    full_name = f"{stringify(first) if first else ''} {stringify(last) if last else ''}".strip()
    if full_name:
        return full_name

    for field in FALLBACK_ID_FIELDS:
        if obj.get(field):
            return stringify(obj[field])
    return None


def _values_differ(a: Any, b: Any, typed: bool) -> bool:
    if typed:
        if a is MISSING or b is MISSING:
            return a is not b
        return type(a) is not type(b) or a != b
    return stringify(a) != stringify(b)


def changed_fields(before: Mapping[str, Any], after: Mapping[str, Any], typed: bool = False) -> List[str]:
    """
    Keys whose values differ between two snapshots.

    Keys are ordered as in ``after`` followed by keys only ``before`` has.
    Equality is textual unless ``typed`` is set.
    """
    keys = list(dict.fromkeys([*after.keys(), *before.keys()]))
    return [
        k
        for k in keys
        if _values_differ(after.get(k, MISSING), before.get(k, MISSING), typed)
    ]


def _headline(verb: str, table: str, ident: Optional[str] = None) -> str:
    text = f"{verb} {table}".rstrip()
    if ident:
        text = f"{text}: {ident}"
    return text


class AuditSummarizer:
    """Produces one-line descriptions of audit events."""

    def __init__(
        self,
        display: Optional[DisplayConfig] = None,
        formatter: Optional[PreviewFormatter] = None,
    ):
        self.display = display or DisplayConfig()
        self.formatter = formatter or PreviewFormatter(self.display)

    def summarize(self, event: Union[AuditEvent, Mapping[str, Any]]) -> str:
        """Describe an audit event. Never raises."""
        try:
            if not isinstance(event, AuditEvent):
                event = AuditEvent.from_record(event)
            return self._describe(event)
        except Exception as e:
            logger.warning("Audit summary degraded", error_type=type(e).__name__)
            return self._fallback_label(event)

    def _describe(self, event: AuditEvent) -> str:
        kind = event.kind
        before, after, table = event.before, event.after, event.table

        if kind is ActionKind.CREATE:
            return _headline("Created", table, identity(after))

        if kind is ActionKind.UPDATE:
            return self._describe_update(table, before, after)

        if kind is ActionKind.DELETE:
            return _headline("Deleted", table, identity(before) or identity(after))

        if kind is ActionKind.LOGIN:
            return self._login_time(after) or "User logged in"

        if kind is ActionKind.LOGOUT:
            return "User logged out"

        if kind is ActionKind.DEACTIVATE:
            return _headline("Deactivated", table, identity(after) or identity(before))

        return event.action or self.formatter.preview(after) or table or ""

    def _describe_update(self, table: str, before: Any, after: Any) -> str:
        if classify_value(before) is ValueKind.MAP and classify_value(after) is ValueKind.MAP:
            changed = changed_fields(before, after, typed=self.display.typed_diff)
            if changed:
                return "Updated " + ", ".join(changed[: self.display.changed_fields_limit])
        return _headline("Updated", table)

    def _login_time(self, after: Any) -> Optional[str]:
        if classify_value(after) is not ValueKind.MAP or not after.get("login_time"):
            return None
        dt = parse_timestamp(after["login_time"])
        if dt is None:
            return None
        return f"Login Time {format_timestamp(dt, self.display)}"

    @staticmethod
    def _fallback_label(event: Any) -> str:
        if isinstance(event, AuditEvent):
            return event.action or event.table
        if isinstance(event, Mapping):
            for key in ("action_type", "action", "type", "table_name", "table"):
                if event.get(key):
                    return str(event[key])
        return ""
