"""Tests for decrypting Laravel encrypted values."""

import base64
import hashlib
import hmac
import json
import os

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from feather_migration.client.exceptions import DecryptionError
from feather_migration.utils.crypto import (
    LaravelDecryptor,
    derive_key,
    unserialize_php_string,
)

RAW_KEY = bytes(range(32))
APP_KEY = "base64:" + base64.b64encode(RAW_KEY).decode()


def laravel_encrypt(plaintext: str, key: bytes = RAW_KEY, mac: str | None = None) -> str:
    """Encrypt a value the way Laravel's ``encrypt()`` does."""
    iv = os.urandom(16)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode()) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    iv_b64 = base64.b64encode(iv).decode()
    value_b64 = base64.b64encode(ciphertext).decode()
    if mac is None:
        mac = hmac.new(key, f"{iv_b64}{value_b64}".encode(), hashlib.sha256).hexdigest()

    envelope = {"iv": iv_b64, "value": value_b64, "mac": mac, "tag": ""}
    return base64.b64encode(json.dumps(envelope).encode()).decode()


class TestDeriveKey:
    def test_base64_key(self):
        assert derive_key(APP_KEY) == RAW_KEY

    def test_plain_key_is_padded(self):
        key = derive_key("short")
        assert len(key) == 32
        assert key.startswith(b"short")

    def test_long_key_is_truncated(self):
        assert derive_key("x" * 40) == b"x" * 32

    def test_invalid_base64(self):
        with pytest.raises(DecryptionError):
            derive_key("base64:not*base64")


class TestUnserialize:
    def test_serialized_string(self):
        assert unserialize_php_string('s:5:"hello";') == "hello"

    def test_length_mismatch_is_left_alone(self):
        assert unserialize_php_string('s:9:"hello";') == 's:9:"hello";'

    def test_length_counts_bytes(self):
        assert unserialize_php_string('s:5:"päss";') == "päss"
        assert unserialize_php_string('s:4:"päss";') == 's:4:"päss";'

    def test_plain_value(self):
        assert unserialize_php_string("hello") == "hello"


class TestLaravelDecryptor:
    def test_empty_key(self):
        with pytest.raises(DecryptionError):
            LaravelDecryptor("")

    def test_decrypts_token(self):
        decryptor = LaravelDecryptor(APP_KEY)
        assert decryptor.decrypt(laravel_encrypt("daemon-secret-token")) == "daemon-secret-token"

    def test_unwraps_serialized_value(self):
        decryptor = LaravelDecryptor(APP_KEY)
        assert decryptor.decrypt(laravel_encrypt('s:6:"s3cret";')) == "s3cret"

    def test_unwraps_multibyte_serialized_value(self):
        decryptor = LaravelDecryptor(APP_KEY)
        assert decryptor.decrypt(laravel_encrypt('s:6:"päss!";')) == "päss!"

    def test_accepts_raw_json_envelope(self):
        encrypted = base64.b64decode(laravel_encrypt("value")).decode()
        assert LaravelDecryptor(APP_KEY).decrypt(encrypted) == "value"

    def test_mac_mismatch_still_decrypts(self):
        encrypted = laravel_encrypt("password", mac="00" * 32)
        assert LaravelDecryptor(APP_KEY).decrypt(encrypted) == "password"

    def test_wrong_key_fails(self):
        other = "base64:" + base64.b64encode(b"\x01" * 32).decode()
        with pytest.raises(DecryptionError):
            # Decrypting with the wrong key breaks the padding
            LaravelDecryptor(other).decrypt(laravel_encrypt("x" * 15))

    @pytest.mark.parametrize("value", ["plain-token", "bm90IGpzb24=", "e30="])
    def test_invalid_input(self, value):
        with pytest.raises(DecryptionError):
            LaravelDecryptor(APP_KEY).decrypt(value)

    def test_fallback_returns_raw_value(self):
        decryptor = LaravelDecryptor(APP_KEY)

        assert decryptor.decrypt_or_fallback("plain-token", field="daemon_token") == "plain-token"
        assert decryptor.decrypt_or_fallback(None) is None
        assert decryptor.decrypt_or_fallback("") == ""
        assert decryptor.decrypt_or_fallback(laravel_encrypt("ok")) == "ok"
