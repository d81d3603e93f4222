"""
One-line previews of decoded values for audit tables.

Previews are lossy and bounded: a login/logout payload becomes a
localized timestamp, any other map shows its first few non-empty fields.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Mapping, Optional

import structlog
from dateutil import parser as date_parser
from dateutil import tz

from recordlens.core.config import DisplayConfig
from recordlens.core.models import ValueKind, classify_value, compact_json, stringify

logger = structlog.get_logger(__name__)

ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}T")
_WORD_START = re.compile(r"\b\w", re.ASCII)

# Dominant audit payload shapes, checked in this order.
TIMESTAMP_LABELS = (
    ("login_time", "Login Time"),
    ("logout_time", "Logout Time"),
)


def format_key_label(key: Any) -> str:
    """``"login_time"`` -> ``"Login Time"``."""
    return _WORD_START.sub(lambda m: m.group(0).upper(), str(key).replace("_", " "))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp into an aware datetime.

    Accepts datetimes, ISO-8601 or free-form date strings, and epoch
    milliseconds. Naive values are read as UTC. Returns ``None`` when the
    value is not a usable timestamp.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            dt = datetime.fromtimestamp(value / 1000, tz=tz.UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            dt = date_parser.isoparse(text)
        except (ValueError, OverflowError):
            try:
                dt = date_parser.parse(text)
            except (ValueError, OverflowError):
                return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz.UTC)
    return dt


def format_timestamp(dt: datetime, display: DisplayConfig) -> str:
    """Render a timestamp in the configured display timezone and format."""
    return dt.astimezone(display.tzinfo).strftime(display.timestamp_format)


def _parse_container(text: str) -> Optional[Any]:
    if text[:1] not in ("{", "["):
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def _plain_text(value: Any) -> str:
    if value is None:
        return ""
    try:
        return stringify(value)
    except Exception:
        # Mappings whose iteration itself fails
        return str(value)


class PreviewFormatter:
    """Turns decoded values into short human-readable summaries."""

    def __init__(self, display: Optional[DisplayConfig] = None, normalizer=None):
        self.display = display or DisplayConfig()
        # Optional ValueNormalizer; string values that are envelopes get decoded first
        self.normalizer = normalizer

    def preview(self, value: Any) -> str:
        """Summarize ``value`` in one line. Never raises."""
        try:
            return self._render(value)
        except Exception as e:
            logger.warning("Preview degraded to plain text", error_type=type(e).__name__)
            return _plain_text(value)

    def timestamp_label(self, obj: Mapping[str, Any]) -> Optional[str]:
        """``"Login Time ..."``/``"Logout Time ..."`` for session payloads, else ``None``."""
        for key, label in TIMESTAMP_LABELS:
            raw = obj.get(key)
            if raw:
                dt = parse_timestamp(raw)
                if dt is None:
                    return None
                return f"{label} {format_timestamp(dt, self.display)}"
        return None

    def _render(self, value: Any) -> str:
        if value is None:
            return ""
        kind = classify_value(value)
        if kind is ValueKind.MAP:
            return self.timestamp_label(value) or self._render_fields(value)
        if isinstance(value, str):
            return self._render_text(value)
        return stringify(value)

    def _render_text(self, text: str) -> str:
        if self.normalizer is not None:
            decoded = self.normalizer.normalize_field(text)
            if not isinstance(decoded, str):
                return self._render(decoded)
            text = decoded

        stripped = text.strip()
        parsed = _parse_container(stripped)
        if parsed is not None:
            return self._render(parsed)
        return stripped

    def _render_fields(self, obj: Mapping[str, Any]) -> str:
        entries = [(k, v) for k, v in obj.items() if v is not None and v != ""]
        parts = [
            f"{format_key_label(k)} {self._field_value(v)}"
            for k, v in entries[: self.display.preview_max_fields]
        ]
        return ", ".join(parts)

    def _field_value(self, value: Any) -> str:
        if isinstance(value, str):
            if ISO_DATETIME.match(value):
                dt = parse_timestamp(value)
                if dt is not None:
                    return dt.astimezone(tz.UTC).date().isoformat()
            return value
        if classify_value(value) is not ValueKind.SCALAR:
            return compact_json(value)
        return stringify(value)
