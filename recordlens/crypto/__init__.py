"""Envelope encryption helpers."""

from .envelope import EnvelopeDecoder, looks_like_envelope, seal
