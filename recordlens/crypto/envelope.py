"""
Envelope decoding for backend payloads.

The backend returns sensitive data as an *envelope*: the text
``"<iv>:<ciphertext>"`` where the IV is 16 bytes and the ciphertext is
AES-CBC with PKCS#7 padding under a shared secret. Different backend code
paths serialize the ciphertext as hex or as base64 with no format flag, so
decoding tries hex first and falls back to base64.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any, Callable, Optional, Tuple

import structlog
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from recordlens.core.config import VALID_KEY_LENGTHS
from recordlens.core.exceptions import ConfigurationError, DecodeError
from recordlens.core.models import compact_json

logger = structlog.get_logger(__name__)

# --------------------------------------------------------------------------- #
# Constants
# --------------------------------------------------------------------------- #

IV_SIZE = 16
BLOCK_SIZE_BITS = algorithms.AES.block_size  # 128
SEPARATOR = ":"


def _from_hex(text: str) -> bytes:
    return bytes.fromhex(text)


def _from_base64(text: str) -> bytes:
    return base64.b64decode(text, validate=True)


# Ciphertext text encodings in the order they are attempted.
CIPHER_ENCODINGS: Tuple[Tuple[str, Callable[[str], bytes]], ...] = (
    ("hex", _from_hex),
    ("base64", _from_base64),
)

_TO_TEXT = {
    "hex": lambda raw: raw.hex(),
    "base64": lambda raw: base64.b64encode(raw).decode("ascii"),
}


def looks_like_envelope(value: Any) -> bool:
    """Cheap check used before attempting a decode: a string with a colon."""
    return isinstance(value, str) and SEPARATOR in value


def _key_bytes(secret: Optional[str]) -> bytes:
    if not secret:
        raise ConfigurationError("ENCRYPTION_KEY is not configured")
    key = secret.encode("utf-8")
    if len(key) not in VALID_KEY_LENGTHS:
        raise ConfigurationError(
            "ENCRYPTION_KEY must be 16, 24 or 32 bytes once UTF-8 encoded",
            details={"length": len(key)},
        )
    return key


def split_envelope(envelope: Any) -> Tuple[str, str]:
    """Split an envelope on its first colon into (iv_text, cipher_text)."""
    if not isinstance(envelope, str):
        raise DecodeError("malformed envelope", details={"type": type(envelope).__name__})
    iv_text, sep, cipher_text = envelope.strip().partition(SEPARATOR)
    if not sep or not iv_text or not cipher_text:
        raise DecodeError("malformed envelope")
    return iv_text, cipher_text


class EnvelopeDecoder:
    """
    Decrypts envelopes with an injected shared secret.

    Instances hold no state besides the key, so one decoder can serve any
    number of calls.
    """

    def __init__(self, secret: Optional[str]):
        self._key = _key_bytes(secret)

    def __repr__(self) -> str:
        return f"EnvelopeDecoder(key_bits={len(self._key) * 8})"

    def decode(self, envelope: str) -> Any:
        """
        Decode one envelope into a string, list or dict.

        Raises:
            DecodeError: the envelope is malformed, neither ciphertext encoding
                yields text, or container-shaped text is not valid JSON
        """
        iv_text, cipher_text = split_envelope(envelope)
        iv = self._decode_iv(iv_text)

        text = None
        for encoding, to_bytes in CIPHER_ENCODINGS:
            text = self._attempt(iv, cipher_text, to_bytes)
            if text:
                logger.debug(
                    "Envelope decrypted",
                    encoding=encoding,
                    cipher_length=len(cipher_text),
                )
                break

        if not text:
            raise DecodeError("empty result", details={"cipher_length": len(cipher_text)})

        return parse_plaintext(text)

    def _decode_iv(self, iv_text: str) -> bytes:
        for _, to_bytes in CIPHER_ENCODINGS:
            try:
                iv = to_bytes(iv_text)
            except ValueError:
                continue
            if len(iv) == IV_SIZE:
                return iv
        raise DecodeError("invalid initialization vector", details={"iv_length": len(iv_text)})

    def _attempt(
        self, iv: bytes, cipher_text: str, to_bytes: Callable[[str], bytes]
    ) -> Optional[str]:
        """One decryption pass; ``None`` when this encoding does not yield text."""
        try:
            data = to_bytes(cipher_text)
        except (ValueError, binascii.Error):
            return None
        if not data or len(data) % (BLOCK_SIZE_BITS // 8):
            return None

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        try:
            padded = decryptor.update(data) + decryptor.finalize()
            plain = unpadder.update(padded) + unpadder.finalize()
            return plain.decode("utf-8")
        except ValueError:
            # Bad padding or not UTF-8: wrong encoding guess
            return None


def parse_plaintext(text: str) -> Any:
    """
    Parse decrypted text.

    Container-shaped text (``{...}`` or ``[...]``) must be valid JSON. Any
    other text is returned verbatim: single-field values such as names are
    encrypted without JSON quoting, so ``"123"`` or ``"null"`` stay strings.
    """
    stripped = text.strip()
    if stripped[:1] not in ("{", "["):
        return text
    try:
        return json.loads(stripped, parse_constant=_reject_constant)
    except ValueError as e:
        raise DecodeError("decrypted payload is not valid JSON") from e


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON
    raise ValueError(f"non-standard JSON constant: {name}")


def seal(
    value: Any,
    secret: Optional[str],
    iv: Optional[bytes] = None,
    encoding: str = "hex",
) -> str:
    """
    Encrypt a value into an envelope the same way the backend does.

    Strings are encrypted verbatim, everything else as compact JSON. Maps,
    lists and strings round-trip through ``EnvelopeDecoder.decode``; other
    scalars come back as their JSON text.

    Args:
        value: Value to encrypt
        secret: Shared secret (16, 24 or 32 UTF-8 bytes)
        iv: Optional 16-byte IV; random when omitted
        encoding: Ciphertext text encoding, ``"hex"`` or ``"base64"``

    Returns:
        Envelope text ``"<hex iv>:<ciphertext>"``
    """
    if encoding not in _TO_TEXT:
        raise ValueError(f"Unsupported ciphertext encoding: {encoding}")
    key = _key_bytes(secret)
    iv = iv if iv is not None else os.urandom(IV_SIZE)
    if len(iv) != IV_SIZE:
        raise ValueError("IV must be 16 bytes")

    plaintext = value if isinstance(value, str) else compact_json(value)
    padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}{SEPARATOR}{_TO_TEXT[encoding](ciphertext)}"
