"""Decryption of values encrypted by the Pterodactyl (Laravel) panel.

Laravel's ``encrypt()`` stores a base64 encoded JSON envelope
``{"iv": ..., "value": ..., "mac": ...}`` produced with AES-256-CBC and
the application's ``APP_KEY``. Node daemon tokens and database passwords
are stored this way.
"""

import base64
import binascii
import json
import re
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.hmac import HMAC

from feather_migration.client.exceptions import DecryptionError
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)

KEY_LENGTH = 32

# PHP serialize() output of a string: s:<length>:"<value>";
PHP_SERIALIZED_STRING = re.compile(r'^s:(\d+):"(.*)";?$', re.DOTALL)


def derive_key(app_key: str) -> bytes:
    """Turn an ``APP_KEY`` into a 32 byte AES key.

    ``base64:`` prefixed keys are decoded, anything else is used as UTF-8.
    Keys of the wrong length are truncated or zero padded.
    """
    if app_key.lower().startswith("base64:"):
        try:
            key = base64.b64decode(app_key[7:], validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError(f"APP_KEY is not valid base64: {e}") from e
    else:
        key = app_key.encode("utf-8")

    if len(key) != KEY_LENGTH:
        logger.warning("app_key_length_unexpected", length=len(key), expected=KEY_LENGTH)
        key = key[:KEY_LENGTH].ljust(KEY_LENGTH, b"\0")
    return key


def unserialize_php_string(value: str) -> str:
    """Unwrap a PHP serialized string, returning other values untouched.

    The declared length counts UTF-8 bytes, not characters.
    """
    match = PHP_SERIALIZED_STRING.match(value)
    if match and len(match.group(2).encode("utf-8")) == int(match.group(1)):
        return match.group(2)
    return value


def _load_envelope(encrypted: str) -> dict[str, Any]:
    text = encrypted.strip()
    if not text.startswith("{"):
        try:
            text = base64.b64decode(text, validate=True).decode("utf-8")
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Encrypted value is neither base64 nor JSON") from e

    try:
        envelope = json.loads(text)
    except ValueError as e:
        raise DecryptionError(f"Encrypted payload is not valid JSON: {e}") from e

    if not isinstance(envelope, dict) or "iv" not in envelope or "value" not in envelope:
        raise DecryptionError("Encrypted payload is missing iv or value")
    return envelope


class LaravelDecryptor:
    """Decrypt values with a panel's ``APP_KEY``."""

    def __init__(self, app_key: str):
        if not app_key:
            raise DecryptionError("APP_KEY is required for decryption")
        self.key = derive_key(app_key)

    def _verify_mac(self, envelope: dict[str, Any]) -> bool:
        # Laravel signs the base64 iv and value strings, not the raw bytes
        mac = HMAC(self.key, hashes.SHA256())
        mac.update(f"{envelope['iv']}{envelope['value']}".encode())
        try:
            mac.verify(bytes.fromhex(str(envelope["mac"])))
        except (InvalidSignature, ValueError):
            return False
        return True

    def decrypt(self, encrypted: str) -> str:
        """Decrypt one Laravel encrypted value.

        A MAC mismatch is logged but does not stop decryption.

        Raises:
            DecryptionError: If the value cannot be decoded or decrypted
        """
        if not encrypted:
            raise DecryptionError("Nothing to decrypt")

        envelope = _load_envelope(encrypted)

        try:
            iv = base64.b64decode(envelope["iv"])
            ciphertext = base64.b64decode(envelope["value"])
        except (binascii.Error, ValueError, TypeError) as e:
            raise DecryptionError(f"Encrypted payload is not valid base64: {e}") from e

        if envelope.get("mac") and not self._verify_mac(envelope):
            logger.warning("decryption_mac_mismatch")

        try:
            decryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            decoded = plaintext.decode("utf-8")
        except ValueError as e:
            raise DecryptionError(f"Failed to decrypt value: {e}") from e

        return unserialize_php_string(decoded)

    def decrypt_or_fallback(self, encrypted: str | None, field: str = "value") -> str | None:
        """Decrypt a value, returning it unchanged if decryption fails."""
        if not encrypted:
            return encrypted
        try:
            return self.decrypt(encrypted)
        except DecryptionError as e:
            logger.warning("decryption_failed_using_raw_value", field=field, error=str(e))
            return encrypted
