"""Unit tests — PayloadCipher and TokenSigner."""

from __future__ import annotations

import base64
import os

import pytest

from ticketgate.exceptions import ConfigurationError, DecryptionError
from ticketgate.security.crypto import PayloadCipher, TokenSigner, generate_key
from ticketgate.security.models import TokenFailure


@pytest.fixture
def cipher() -> PayloadCipher:
    return PayloadCipher(os.urandom(32))


@pytest.mark.unit
class TestPayloadCipher:
    def test_round_trip(self, cipher: PayloadCipher) -> None:
        assert cipher.decrypt(cipher.encrypt("LICENSE-ABC-123")) == "LICENSE-ABC-123"

    def test_same_plaintext_gives_distinct_envelopes(self, cipher: PayloadCipher) -> None:
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_envelope_is_versioned(self, cipher: PayloadCipher) -> None:
        assert cipher.encrypt("x").startswith("v1.")

    def test_flipped_byte_fails_authentication(self, cipher: PayloadCipher) -> None:
        envelope = cipher.encrypt("secret")
        raw = bytearray(base64.urlsafe_b64decode(envelope[3:]))
        raw[-1] ^= 0x01
        tampered = "v1." + base64.urlsafe_b64encode(bytes(raw)).decode()
        with pytest.raises(DecryptionError):
            cipher.decrypt(tampered)

    def test_wrong_key_fails(self, cipher: PayloadCipher) -> None:
        other = PayloadCipher(os.urandom(32))
        with pytest.raises(DecryptionError):
            other.decrypt(cipher.encrypt("secret"))

    @pytest.mark.parametrize("envelope", ["", "v2.AAAA", "v1.%%%", "v1.AAAA"])
    def test_malformed_envelopes(self, cipher: PayloadCipher, envelope: str) -> None:
        with pytest.raises(DecryptionError):
            cipher.decrypt(envelope)

    def test_from_hex_rejects_short_key(self) -> None:
        with pytest.raises(ConfigurationError):
            PayloadCipher.from_hex("abcd")

    def test_from_hex_accepts_generated_key(self) -> None:
        cipher = PayloadCipher.from_hex(generate_key())
        assert cipher.decrypt(cipher.encrypt("ok")) == "ok"


@pytest.mark.unit
class TestTokenSigner:
    def test_issue_and_verify(self, clock) -> None:
        signer = TokenSigner(b"k" * 32, default_ttl=60, clock=clock)
        result = signer.verify(signer.issue({"sale_id": 7}))
        assert result.valid
        assert result.payload == {"sale_id": 7}

    def test_expired_token(self, clock) -> None:
        signer = TokenSigner(b"k" * 32, default_ttl=60, clock=clock)
        token = signer.issue("x")
        clock.advance(61)
        result = signer.verify(token)
        assert not result.valid
        assert result.failure == TokenFailure.EXPIRED

    def test_explicit_zero_ttl_is_kept(self, clock) -> None:
        signer = TokenSigner(b"k" * 32, default_ttl=60, clock=clock)
        token = signer.issue("x", ttl=0)
        assert signer.verify(token).valid
        clock.advance(1)
        assert signer.verify(token).failure == TokenFailure.EXPIRED

    def test_foreign_signature(self, clock) -> None:
        token = TokenSigner(b"a" * 32, clock=clock).issue("x")
        result = TokenSigner(b"b" * 32, clock=clock).verify(token)
        assert result.failure == TokenFailure.BAD_SIGNATURE

    def test_garbage_is_malformed(self, clock) -> None:
        result = TokenSigner(b"a" * 32, clock=clock).verify("not a token!")
        assert result.failure == TokenFailure.MALFORMED
