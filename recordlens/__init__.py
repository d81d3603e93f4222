"""RecordLens: envelope decoding and audit summarization for the outreach records console."""

from recordlens.core.exceptions import DecodeError
from recordlens.engine import RecordLens, create_engine

__version__ = "0.1.0"

__all__ = ["DecodeError", "RecordLens", "create_engine", "__version__"]
