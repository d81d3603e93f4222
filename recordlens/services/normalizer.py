"""
Best-effort decoding of individually encrypted record fields.

List responses often carry per-field envelopes (names, emails) even when
the response body itself is plain. Nothing here raises: a field that looks
like an envelope but fails to decode is returned unchanged.
"""

from typing import Any, Dict, Iterable, Mapping

import structlog

from recordlens.core.exceptions import DecodeError
from recordlens.core.models import stringify
from recordlens.crypto.envelope import EnvelopeDecoder, looks_like_envelope

logger = structlog.get_logger(__name__)


class ValueNormalizer:
    """Decodes envelope-shaped field values with a shared decoder."""

    def __init__(self, decoder: EnvelopeDecoder):
        self.decoder = decoder

    def normalize_field(self, raw: Any) -> Any:
        """Decode ``raw`` if it looks like an envelope, else return it as-is."""
        if not looks_like_envelope(raw):
            return raw
        try:
            return self.decoder.decode(raw)
        except DecodeError as e:
            logger.debug("Field left undecoded", reason=e.message, length=len(raw))
            return raw

    def normalize_record(self, record: Mapping[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
        """Shallow copy of ``record`` with the named fields normalized."""
        normalized = dict(record)
        for field in fields:
            if field in normalized:
                normalized[field] = self.normalize_field(normalized[field])
        return normalized

    def display_text(self, raw: Any) -> Any:
        """
        Normalize a field for a table cell.

        Decoded strings are returned as-is, decoded containers as compact
        JSON and other decoded scalars as text. Undecoded values pass through.
        """
        if not looks_like_envelope(raw):
            return raw
        value = self.normalize_field(raw)
        if isinstance(value, str):
            return value
        return stringify(value)
