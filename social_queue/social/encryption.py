"""
Encryption of platform credentials at rest.

Tokens are sealed with AES-256-GCM. Every ciphertext is the base64 (standard
alphabet) encoding of ``nonce || sealed payload``, where the nonce is 12
random bytes drawn fresh for each call.
"""

import base64
import binascii
import os
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from social_queue.types.social import PlatformToken

from .errors import ConfigurationError, IntegrityError


KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


class TokenCipher:
    """
    Symmetric cipher for access and refresh tokens.

    The key is checked once, at construction; the instance is immutable and
    safe to share between concurrent tasks.
    """

    def __init__(self, key: Union[str, bytes]) -> None:
        key_bytes = key.encode("utf-8") if isinstance(key, str) else bytes(key)
        if len(key_bytes) != KEY_SIZE:
            raise ConfigurationError(
                f"Encryption key must be exactly {KEY_SIZE} bytes, got {len(key_bytes)}"
            )
        self._aead = AESGCM(key_bytes)

    def __repr__(self) -> str:
        return "TokenCipher(key=[REDACTED])"

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Authenticate and decrypt a value produced by :meth:`encrypt`.

        Raises:
            IntegrityError: The value is not valid base64, is too short to
                hold a nonce and tag, or fails authentication.
        """
        try:
            raw = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise IntegrityError("Ciphertext is not valid base64") from e

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise IntegrityError("Ciphertext too short")

        nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            plaintext = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            raise IntegrityError("Ciphertext failed authentication") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise IntegrityError("Decrypted value is not valid UTF-8") from e

    def encrypt_token(self, token: PlatformToken) -> None:
        """
        Encrypt the secret fields of ``token`` in place.

        Empty fields are left as they are. Both fields are computed before
        either is assigned, so a failure leaves the token untouched.
        """
        access = self.encrypt(token.access_token) if token.access_token else token.access_token
        refresh = self.encrypt(token.refresh_token) if token.refresh_token else token.refresh_token
        token.access_token = access
        token.refresh_token = refresh

    def decrypt_token(self, token: PlatformToken) -> None:
        """Decrypt the secret fields of ``token`` in place; see :meth:`encrypt_token`."""
        access = self.decrypt(token.access_token) if token.access_token else token.access_token
        refresh = self.decrypt(token.refresh_token) if token.refresh_token else token.refresh_token
        token.access_token = access
        token.refresh_token = refresh
