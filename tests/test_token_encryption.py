"""
Tests for credential encryption.

Verifies that:
- Encryption round-trips and is randomized per call
- Any corruption of a ciphertext is detected
- Only 32-byte keys are accepted
- Token-level helpers skip empty fields and never half-apply
"""

import base64

import pytest

from social_queue.social.encryption import NONCE_SIZE, TokenCipher
from social_queue.social.errors import ConfigurationError, IntegrityError
from social_queue.types.social import PlatformToken, SocialPlatform

from conftest import TEST_KEY


class TestTokenCipher:
    """Tests for single-value encrypt/decrypt."""

    @pytest.mark.parametrize(
        "plaintext",
        ["AT1", "x" * 4096, "ünïcødé ✓", "token with spaces and = signs"],
    )
    def test_round_trip(self, cipher, plaintext):
        assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext

    def test_encrypt_is_randomized(self, cipher):
        first = cipher.encrypt("same-secret")
        second = cipher.encrypt("same-secret")

        assert first != second
        assert cipher.decrypt(first) == cipher.decrypt(second) == "same-secret"

    def test_ciphertext_is_standard_base64_with_leading_nonce(self, cipher):
        raw = base64.b64decode(cipher.encrypt("secret"), validate=True)

        # nonce + plaintext + 16-byte tag
        assert len(raw) == NONCE_SIZE + len("secret") + 16

    def test_ciphertext_does_not_contain_plaintext(self, cipher):
        assert "super-secret-token" not in cipher.encrypt("super-secret-token")

    def test_flipping_any_byte_is_detected(self, cipher):
        raw = bytearray(base64.b64decode(cipher.encrypt("access-token-value")))

        for i in range(len(raw)):
            tampered = bytearray(raw)
            tampered[i] ^= 0x01
            with pytest.raises(IntegrityError):
                cipher.decrypt(base64.b64encode(bytes(tampered)).decode())

    def test_truncated_ciphertext_rejected(self, cipher):
        raw = base64.b64decode(cipher.encrypt("secret"))

        with pytest.raises(IntegrityError):
            cipher.decrypt(base64.b64encode(raw[:NONCE_SIZE + 4]).decode())

    def test_invalid_base64_rejected(self, cipher):
        with pytest.raises(IntegrityError):
            cipher.decrypt("not base64 at all!")

    def test_wrong_key_rejected(self, cipher):
        other = TokenCipher("ffffffffffffffffffffffffffffffff")

        with pytest.raises(IntegrityError):
            other.decrypt(cipher.encrypt("secret"))

    @pytest.mark.parametrize("length", [0, 16, 31, 33, 64])
    def test_key_length_guard(self, length):
        with pytest.raises(ConfigurationError):
            TokenCipher("k" * length)

    def test_accepts_32_byte_key_as_bytes(self):
        cipher = TokenCipher(TEST_KEY.encode())
        assert cipher.decrypt(cipher.encrypt("v")) == "v"

    def test_repr_hides_key(self, cipher):
        assert TEST_KEY not in repr(cipher)


class TestTokenFieldEncryption:
    """Tests for encrypt_token / decrypt_token."""

    def test_encrypts_both_fields(self, cipher, make_token):
        token = make_token(access_token="AT1", refresh_token="RT1")

        cipher.encrypt_token(token)

        assert token.access_token != "AT1"
        assert token.refresh_token != "RT1"
        cipher.decrypt_token(token)
        assert (token.access_token, token.refresh_token) == ("AT1", "RT1")

    def test_absent_refresh_token_stays_absent(self, cipher, make_token):
        token = make_token(refresh_token=None)

        cipher.encrypt_token(token)

        assert token.refresh_token is None
        cipher.decrypt_token(token)
        assert token.access_token == "AT1"

    def test_empty_refresh_token_not_encrypted(self, cipher, make_token):
        token = make_token(refresh_token="")

        cipher.encrypt_token(token)

        assert token.refresh_token == ""

    def test_failed_decrypt_leaves_token_untouched(self, cipher, make_token):
        token = make_token(access_token="AT1", refresh_token="RT1")
        cipher.encrypt_token(token)
        encrypted_access = token.access_token
        token.refresh_token = "corrupted"

        with pytest.raises(IntegrityError):
            cipher.decrypt_token(token)

        assert token.access_token == encrypted_access

    def test_secrets_not_serialized(self, make_token):
        token = make_token(access_token="AT1", refresh_token="RT1")

        dumped = token.model_dump()

        assert "access_token" not in dumped
        assert "refresh_token" not in dumped
        assert "AT1" not in repr(token)
        assert "RT1" not in repr(token)

    def test_token_model_defaults(self):
        token = PlatformToken(principal_id="p", platform=SocialPlatform.TWITTER)

        assert token.is_valid
        assert not token.has_refresh_token
        assert not token.is_expired()
