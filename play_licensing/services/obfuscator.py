"""
Obfuscator - Install-bound encryption of locally stored values.

The key is derived from (salt, application id, device id), so a value
written by one install cannot be read back by another. Each value also
embeds the entity key it was stored under, which stops a valid token from
being copied into a different preference slot.

Token layout (URL-safe Base64):

    version (1) | iv (16) | AES-256-CBC ciphertext | HMAC-SHA256 (32)

Plaintext framing:

    flag (1: 0 = absent, 1 = string) | entity key length (4, big-endian) | entity key | value
"""

import base64
import os
import struct
from typing import Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.hmac import HMAC
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from structlog import get_logger

from play_licensing.config import settings
from play_licensing.exceptions import ValidationException

logger = get_logger(__name__)

TOKEN_VERSION = 1
IV_SIZE = 16
KEY_SIZE = 32
MAC_SIZE = 32

_FRAME_HEADER = struct.Struct(">BI")
_FLAG_ABSENT = 0
_FLAG_STRING = 1
_MIN_TOKEN_SIZE = 1 + IV_SIZE + algorithms.AES.block_size // 8 + MAC_SIZE


class Obfuscator(Protocol):
    """
    Obfuscator protocol.

    Implementations must be reversible for a given entity key and must
    signal every kind of failure as ValidationException.
    """

    def obfuscate(self, original: str | None, key: str) -> str:
        """
        Obfuscate a value for storage.

        Args:
            original: Value to protect; None is representable
            key: Entity key the value is stored under

        Returns:
            Printable token safe for a text-only key/value store
        """
        ...

    def unobfuscate(self, obfuscated: str, key: str) -> str | None:
        """
        Recover a value written by obfuscate().

        Raises:
            ValidationException: If the token is invalid, tampered with,
                foreign to this install, or bound to another entity key
        """
        ...


def _frame(original: str | None, key: str) -> bytes:
    key_bytes = key.encode("utf-8")
    if original is None:
        return _FRAME_HEADER.pack(_FLAG_ABSENT, len(key_bytes)) + key_bytes
    return (
        _FRAME_HEADER.pack(_FLAG_STRING, len(key_bytes)) + key_bytes + original.encode("utf-8")
    )


def _unframe(plaintext: bytes, key: str) -> str | None:
    flag, key_length = _FRAME_HEADER.unpack_from(plaintext)
    start = _FRAME_HEADER.size
    stored_key = plaintext[start : start + key_length]
    if len(stored_key) != key_length or stored_key != key.encode("utf-8"):
        raise ValueError("entity key mismatch")

    value = plaintext[start + key_length :]
    if flag == _FLAG_ABSENT:
        if value:
            raise ValueError("absent value carries data")
        return None
    if flag != _FLAG_STRING:
        raise ValueError("unknown value flag")
    return value.decode("utf-8")


class AESObfuscator:
    """
    AES based Obfuscator bound to one application install.

    Usage:
        obfuscator = AESObfuscator(SALT, "com.example.app", device_id)
        token = obfuscator.obfuscate("1279578835423", "validityTimestamp")
        obfuscator.unobfuscate(token, "validityTimestamp")
    """

    def __init__(
        self,
        salt: bytes,
        app_id: str,
        device_id: str,
        iterations: int | None = None,
    ) -> None:
        """
        Derive the install key.

        Args:
            salt: Application-chosen random bytes
            app_id: Application identifier (e.g. package name)
            device_id: Stable device identifier
            iterations: PBKDF2 cost (defaults to settings.kdf_iterations)
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA1(),
            length=KEY_SIZE * 2,
            salt=bytes(salt),
            iterations=iterations or settings.kdf_iterations,
        )
        derived = kdf.derive((app_id + device_id).encode("utf-8"))
        self._cipher_key = derived[:KEY_SIZE]
        self._mac_key = derived[KEY_SIZE:]

        logger.debug("obfuscator_initialized", app_id=app_id)

    def _sign(self, data: bytes) -> bytes:
        mac = HMAC(self._mac_key, hashes.SHA256())
        mac.update(data)
        return mac.finalize()

    def obfuscate(self, original: str | None, key: str, iv: bytes | None = None) -> str:
        """
        Encrypt a value bound to an entity key.

        A fresh random IV is used unless one is given; passing the same IV
        makes the token deterministic.
        """
        if iv is None:
            iv = os.urandom(IV_SIZE)
        elif len(iv) != IV_SIZE:
            raise ValueError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(_frame(original, key)) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._cipher_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        body = bytes([TOKEN_VERSION]) + iv + ciphertext
        return base64.urlsafe_b64encode(body + self._sign(body)).decode("ascii")

    def unobfuscate(self, obfuscated: str, key: str) -> str | None:
        """
        Decrypt and validate a token.

        Raises:
            ValidationException: On any failure; the cause is never exposed
        """
        try:
            return self._open(obfuscated, key)
        except (ValueError, TypeError, struct.error, InvalidSignature):
            # binascii.Error, UnicodeError and padding errors are ValueErrors
            raise ValidationException() from None

    def _open(self, obfuscated: str, key: str) -> str | None:
        token = base64.urlsafe_b64decode(obfuscated.encode("ascii"))
        if len(token) < _MIN_TOKEN_SIZE or token[0] != TOKEN_VERSION:
            raise ValueError("not a token")

        body, tag = token[:-MAC_SIZE], token[-MAC_SIZE:]
        mac = HMAC(self._mac_key, hashes.SHA256())
        mac.update(body)
        mac.verify(tag)

        iv, ciphertext = body[1 : 1 + IV_SIZE], body[1 + IV_SIZE :]
        decryptor = Cipher(algorithms.AES(self._cipher_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()

        return _unframe(plaintext, key)
