"""
Records service: fetch, decrypt and prepare list pages for display.

Implements the fetch flow every sensitive list page shares: request a page,
unwrap an encrypted body if there is one, decode per-record envelope fields,
summarize audit rows and resolve the pagination total.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog

from recordlens.core.config import DisplayConfig
from recordlens.core.exceptions import DecodeError
from recordlens.core.models import AuditEvent, PageResult, ValueKind, classify_value
from recordlens.crypto.envelope import EnvelopeDecoder
from recordlens.data.api_client import BackendClient
from recordlens.services.audit_summary import AuditSummarizer
from recordlens.services.normalizer import ValueNormalizer
from recordlens.services.preview import PreviewFormatter
from recordlens.services.totals import resolve_total, rows_of
from recordlens.utils.reliability import track_performance

logger = structlog.get_logger(__name__)

USERS_PATH = "/api/users"
AUDIT_PATH = "/api/audit"
PATIENTS_PATH = "/api/patients"

ENCRYPTED_BODY_KEY = "encrypted_data"


class RecordsService:
    """Fetches and decodes users, audit logs and patients."""

    def __init__(
        self,
        client: BackendClient,
        decoder: EnvelopeDecoder,
        display: Optional[DisplayConfig] = None,
    ):
        self.client = client
        self.decoder = decoder
        self.display = display or DisplayConfig()
        self.normalizer = ValueNormalizer(decoder)
        self.formatter = PreviewFormatter(self.display)
        self.summarizer = AuditSummarizer(self.display, self.formatter)

    # ------------------------------------------------------------------ #
    # Payload handling
    # ------------------------------------------------------------------ #

    def decode_body(self, body: Any, list_key: str) -> Tuple[Any, Optional[str]]:
        """
        The decrypted value of an encrypted body, or the plain payload.

        Returns:
            ``(decoded, error)``; ``error`` is set when an encrypted body
            could not be decoded, in which case the value is an empty list.
        """
        if classify_value(body) is ValueKind.MAP and body.get(ENCRYPTED_BODY_KEY):
            try:
                return self.decoder.decode(body[ENCRYPTED_BODY_KEY]), None
            except DecodeError as e:
                logger.error("Failed to decrypt payload", list_key=list_key, reason=e.message)
                return [], f"Failed to decrypt {list_key} data"

        if classify_value(body) is ValueKind.MAP and body.get("data") is not None:
            return body["data"], None
        return body, None

    @staticmethod
    def rows_for(payload: Any, list_key: str) -> List[Dict[str, Any]]:
        """Map rows of a payload: the list itself, or its ``list_key``/``data`` list."""
        if classify_value(payload) is ValueKind.MAP and classify_value(payload.get(list_key)) is ValueKind.LIST:
            rows = payload[list_key]
        else:
            rows = rows_of(payload)
        return [row for row in rows if classify_value(row) is ValueKind.MAP]

    def _probe(self, path: str, list_key: str, filters: Mapping[str, Any]):
        def probe():
            # Failures are swallowed by resolve_total, so they must not open the breaker
            body = self.client.get(path, params={**filters, "page": 1, "limit": 1}, count_failure=False)
            decoded, _ = self.decode_body(body, list_key)
            return body, decoded

        return probe

    def _fetch_page(
        self,
        path: str,
        list_key: str,
        page: int,
        limit: int,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[List[Dict[str, Any]], int, Optional[str]]:
        filters = {k: v for k, v in (filters or {}).items() if v}
        body = self.client.get(path, params={"page": page, "limit": limit, **filters})
        # Totals may sit beside the rows inside the decrypted map
        decoded, error = self.decode_body(body, list_key)
        rows = self.rows_for(decoded, list_key)
        total = resolve_total(
            body,
            decoded,
            probe=self._probe(path, list_key, filters),
            page_rows=len(rows),
        )
        return rows, total, error

    # ------------------------------------------------------------------ #
    # Row preparation
    # ------------------------------------------------------------------ #

    def _author(self, row: Mapping[str, Any]) -> Optional[str]:
        first = self.normalizer.display_text(row.get("first_name"))
        last = self.normalizer.display_text(row.get("last_name"))
        if first or last:
            return " ".join(str(part) for part in (first, last) if part)
        return row.get("username")

    def prepare_user(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        """Decode a user's name/email fields and add a display name."""
        user = dict(row)
        for field in ("first_name", "last_name", "email"):
            user[field] = self.normalizer.display_text(row.get(field))
        name = " ".join(str(p) for p in (user["first_name"], user["last_name"]) if p).strip()
        user["display_name"] = name or row.get("username")
        roles = row.get("roles")
        user["roles"] = [r for r in roles if r] if classify_value(roles) is ValueKind.LIST else []
        return user

    def prepare_audit_row(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        """Decode before/after snapshots and attach previews, author and summary."""
        new_raw = self.normalizer.normalize_field(
            row.get("new_data") if row.get("new_data") is not None else row.get("new")
        )
        old_raw = self.normalizer.normalize_field(
            row.get("old_data") if row.get("old_data") is not None else row.get("old")
        )
        prepared = dict(row)
        prepared.update(
            author=self._author(row),
            new_raw=new_raw,
            old_raw=old_raw,
            new_data=self.formatter.preview(new_raw),
            old_data=self.formatter.preview(old_raw),
        )
        prepared["summary"] = self.summarizer.summarize(AuditEvent.from_record(prepared))
        return prepared

    def prepare_patient(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        return self.normalizer.normalize_record(row, self.display.encrypted_field_list)

    # ------------------------------------------------------------------ #
    # Public fetches
    # ------------------------------------------------------------------ #

    @track_performance("fetch_users")
    def fetch_users(self, page: int = 1, limit: int = 10) -> PageResult:
        """Fetch one page of users with decoded names and emails."""
        rows, total, error = self._fetch_page(USERS_PATH, "users", page, limit)
        return PageResult(
            rows=[self.prepare_user(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
            error=error,
        )

    @track_performance("fetch_audit_logs")
    def fetch_audit_logs(
        self,
        page: int = 1,
        limit: int = 50,
        search: Optional[str] = None,
        action: Optional[str] = None,
        table: Optional[str] = None,
    ) -> PageResult:
        """Fetch one page of the audit trail with summaries."""
        filters = {"search": search, "action_type": action, "table_name": table}
        rows, total, error = self._fetch_page(AUDIT_PATH, "logs", page, limit, filters)
        return PageResult(
            rows=[self.prepare_audit_row(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
            error=error,
        )

    @track_performance("fetch_patients")
    def fetch_patients(self, page: int = 1, limit: int = 10) -> PageResult:
        """Fetch one page of patients with configured fields decoded."""
        rows, total, error = self._fetch_page(PATIENTS_PATH, "patients", page, limit)
        return PageResult(
            rows=[self.prepare_patient(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
            error=error,
        )
