"""
Pagination total resolution.

Backends report totals in different places (``total``, ``count``,
``meta.total``, ``meta.count``), on the response body or inside the
decrypted payload, and sometimes not at all. When the resolved total equals
the number of rows on the current page it is treated as unreported and, if a
probe is available, a one-row request is issued to ask again. A true total
that happens to equal the page size is indistinguishable from a missing one,
so the result is an approximation.
"""

from __future__ import annotations

import math
from typing import Any, Callable, List, Optional, Tuple

import structlog

from recordlens.core.models import ValueKind, classify_value

logger = structlog.get_logger(__name__)

TOTAL_KEYS = ("total", "count")
ROW_LIST_KEYS = ("data", "logs", "users", "patients")

# Returns (response_body, decoded_payload) for page 1, limit 1, same filters
TotalProbe = Callable[[], Tuple[Any, Any]]


def _as_count(candidate: Any) -> Optional[int]:
    """Finite numeric value (or numeric text) as an int, else ``None``."""
    if isinstance(candidate, bool):
        return None
    if isinstance(candidate, (int, float)):
        number = float(candidate)
    elif isinstance(candidate, str) and candidate.strip():
        try:
            number = float(candidate.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def _candidates(source: Any):
    if classify_value(source) is not ValueKind.MAP:
        return
    for key in TOTAL_KEYS:
        yield source.get(key)
    meta = source.get("meta")
    if classify_value(meta) is ValueKind.MAP:
        for key in TOTAL_KEYS:
            yield meta.get(key)


def rows_of(payload: Any) -> List[Any]:
    """The row list of a payload: the payload itself or its first list-valued row key."""
    if classify_value(payload) is ValueKind.LIST:
        return list(payload)
    if classify_value(payload) is ValueKind.MAP:
        for key in ROW_LIST_KEYS:
            if classify_value(payload.get(key)) is ValueKind.LIST:
                return list(payload[key])
    return []


def extract_total(response: Any, payload: Any) -> int:
    """
    First reported total found on the response body, then on the payload.

    Falls back to the number of rows in the payload.
    """
    for source in (response, payload):
        for candidate in _candidates(source):
            count = _as_count(candidate)
            if count is not None:
                return count
    return len(rows_of(payload))


def resolve_total(
    response: Any,
    payload: Any,
    probe: Optional[TotalProbe] = None,
    page_rows: Optional[int] = None,
) -> int:
    """
    Resolve the size of the full result set.

    Args:
        response: Raw response body
        payload: Decoded payload (list of rows or a map holding them)
        probe: Optional one-row request used when the total looks unreported
        page_rows: Rows actually returned on this page; derived from the
            payload when omitted

    Returns:
        Best-known total. Probe failures keep the original value.
    """
    total = extract_total(response, payload)
    if page_rows is None:
        page_rows = len(rows_of(payload))

    if probe is None or total != page_rows:
        return total

    try:
        probe_response, probe_payload = probe()
        probed = extract_total(probe_response, probe_payload)
    except Exception as e:
        logger.warning(
            "Total probe failed; keeping page total",
            total=total,
            error=str(e),
            error_type=type(e).__name__,
        )
        return total

    if probed > total:
        logger.debug("Total replaced by probe", page_total=total, probed_total=probed)
        return probed
    return total
