"""
The decoding engine as the rest of the console sees it.

``RecordLens`` bundles the decoder and formatters behind four calls:
``decode``, ``preview``, ``summarize`` and ``resolve_total``.
"""

from typing import Any, Mapping, Optional, Union

from recordlens.core.config import Settings, get_settings
from recordlens.core.models import AuditEvent
from recordlens.crypto.envelope import EnvelopeDecoder
from recordlens.services import totals
from recordlens.services.audit_summary import AuditSummarizer
from recordlens.services.normalizer import ValueNormalizer
from recordlens.services.preview import PreviewFormatter
from recordlens.services.totals import TotalProbe


class RecordLens:
    """Facade over envelope decoding, previews, audit summaries and totals."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.decoder = EnvelopeDecoder(settings.crypto.encryption_key)
        self.normalizer = ValueNormalizer(self.decoder)
        self.formatter = PreviewFormatter(settings.display, normalizer=self.normalizer)
        self.summarizer = AuditSummarizer(settings.display, self.formatter)

    def decode(self, envelope: str) -> Any:
        """Decode an envelope; raises ``DecodeError``."""
        return self.decoder.decode(envelope)

    def preview(self, value: Any) -> str:
        return self.formatter.preview(value)

    def summarize(self, event: Union[AuditEvent, Mapping[str, Any]]) -> str:
        return self.summarizer.summarize(event)

    def resolve_total(
        self, response: Any, payload: Any, probe: Optional[TotalProbe] = None
    ) -> int:
        return totals.resolve_total(response, payload, probe=probe)


def create_engine(settings: Optional[Settings] = None) -> RecordLens:
    """Build the engine from explicit or global settings."""
    return RecordLens(settings or get_settings())
