"""Security layer — Payload encryption and signed tokens.

``PayloadCipher``
    AES-256-GCM authenticated encryption for digital payloads at rest.  Every
    call draws a fresh 96-bit nonce, so encrypting the same plaintext twice
    yields different envelopes.  The envelope is versioned::

        v1.<base64url(nonce || ciphertext || tag)>

    Any tampering (flipped byte, truncated envelope, wrong key) fails the GCM
    tag check and raises ``DecryptionError``.

``TokenSigner``
    HMAC-SHA256 signed, base64-carried tokens with an embedded issue time and
    TTL.  Verification never raises; it returns a ``TokenVerification``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import os
import time
from typing import Any, Callable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ticketgate.exceptions import ConfigurationError, DecryptionError
from ticketgate.logging import get_logger
from ticketgate.security.models import TokenFailure, TokenVerification

log = get_logger(__name__)

_ENVELOPE_VERSION = "v1"
_NONCE_BYTES = 12
_TAG_BYTES = 16
_KEY_BYTES = 32


def generate_key() -> str:
    """Return a fresh random 256-bit key, hex encoded."""
    return os.urandom(_KEY_BYTES).hex()


def _decode_key(hex_key: str, name: str, expected: int | None = None) -> bytes:
    try:
        key = bytes.fromhex(hex_key)
    except ValueError as exc:
        raise ConfigurationError(f"{name} is not valid hex", context={"setting": name}) from exc
    if expected is not None and len(key) != expected:
        raise ConfigurationError(
            f"{name} must be {expected} bytes, got {len(key)}",
            context={"setting": name},
        )
    return key


class PayloadCipher:
    """AES-256-GCM with a random nonce per call.

    Usage::

        cipher = PayloadCipher.from_hex(settings.security.encryption_key)
        envelope = cipher.encrypt("license-key-123")
        assert cipher.decrypt(envelope) == "license-key-123"
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != _KEY_BYTES:
            raise ConfigurationError(f"Encryption key must be {_KEY_BYTES} bytes")
        self._aead = AESGCM(key)

    @classmethod
    def from_hex(cls, hex_key: str | None) -> "PayloadCipher":
        if hex_key is None:
            log.warning(
                "encryption_key_generated",
                detail="No encryption key configured; payloads will not survive a restart.",
            )
            return cls(os.urandom(_KEY_BYTES))
        return cls(_decode_key(hex_key, "security.encryption_key", _KEY_BYTES))

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(_NONCE_BYTES)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), _ENVELOPE_VERSION.encode())
        body = base64.urlsafe_b64encode(nonce + sealed).decode("ascii")
        return f"{_ENVELOPE_VERSION}.{body}"

    def decrypt(self, envelope: str) -> str:
        version, sep, body = envelope.partition(".")
        if not sep or version != _ENVELOPE_VERSION:
            raise DecryptionError("unsupported envelope version")
        try:
            raw = base64.urlsafe_b64decode(body.encode("ascii"))
        except (binascii.Error, ValueError) as exc:
            raise DecryptionError("envelope is not valid base64") from exc
        if len(raw) < _NONCE_BYTES + _TAG_BYTES:
            raise DecryptionError("envelope too short")
        nonce, sealed = raw[:_NONCE_BYTES], raw[_NONCE_BYTES:]
        try:
            plaintext = self._aead.decrypt(nonce, sealed, _ENVELOPE_VERSION.encode())
        except InvalidTag as exc:
            raise DecryptionError("authentication tag mismatch") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("plaintext is not valid UTF-8") from exc


class TokenSigner:
    """HMAC-SHA256 token issuer/verifier.

    Token layout: ``base64url(<payload-json>.<hex-signature>)`` where the
    payload JSON is ``{"data": ..., "iat": <epoch>, "ttl": <seconds>}``.
    """

    def __init__(
        self,
        key: bytes,
        default_ttl: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._key = key
        self._default_ttl = default_ttl
        self._clock = clock

    @classmethod
    def from_hex(cls, hex_key: str | None, default_ttl: int = 3600) -> "TokenSigner":
        if hex_key is None:
            log.warning(
                "signing_key_generated",
                detail="No signing key configured; tokens will not survive a restart.",
            )
            return cls(os.urandom(_KEY_BYTES), default_ttl)
        return cls(_decode_key(hex_key, "security.signing_key"), default_ttl)

    def _sign(self, body: str) -> str:
        return hmac.new(self._key, body.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self, data: Any, ttl: int | None = None) -> str:
        body = json.dumps(
            {"data": data, "iat": self._clock(), "ttl": ttl if ttl is not None else self._default_ttl},
            separators=(",", ":"),
            sort_keys=True,
            default=str,
        )
        token = f"{body}.{self._sign(body)}"
        return base64.urlsafe_b64encode(token.encode("utf-8")).decode("ascii")

    def verify(self, token: str) -> TokenVerification:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8")
        except (binascii.Error, ValueError):
            return TokenVerification(valid=False, failure=TokenFailure.MALFORMED)
        body, sep, signature = decoded.rpartition(".")
        if not sep:
            return TokenVerification(valid=False, failure=TokenFailure.MALFORMED)
        if not hmac.compare_digest(self._sign(body), signature):
            return TokenVerification(valid=False, failure=TokenFailure.BAD_SIGNATURE)
        try:
            payload = json.loads(body)
            issued_at = float(payload["iat"])
            ttl = float(payload["ttl"])
        except (ValueError, KeyError, TypeError):
            return TokenVerification(valid=False, failure=TokenFailure.MALFORMED)
        if self._clock() - issued_at > ttl:
            return TokenVerification(valid=False, failure=TokenFailure.EXPIRED)
        return TokenVerification(valid=True, payload=payload["data"])
