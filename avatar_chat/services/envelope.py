"""Confidentiality envelope for stored message content.

Stored values come in several historical formats, so decoding walks a fixed
priority chain and always returns a string:

1. empty or non-string input            -> placeholder
2. ``FALLBACK:`` + base64(plaintext)    -> plaintext
3. short legacy plaintext rows          -> returned unchanged
4. salted AES with the current key
5. salted AES with legacy candidate keys
6. base64 of ``UNENCRYPTED:`` text or of a JSON object
7. anything else                        -> placeholder

The salted AES format is the OpenSSL ``enc`` layout produced by CryptoJS with
a passphrase: ``base64("Salted__" + salt[8] + AES-256-CBC(PKCS7(data)))``, key
and IV derived with ``EVP_BytesToKey`` (MD5, one round).
"""

import base64
import hashlib
import json
import os
import re
from abc import ABC, abstractmethod

import structlog
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = structlog.get_logger()

PLACEHOLDER = "[Encrypted Content]"
FALLBACK_PREFIX = "FALLBACK:"
UNENCRYPTED_PREFIX = "UNENCRYPTED:"

# base64("Salted__") without its final, salt-dependent character
SALTED_MARKER = "U2FsdGVkX1"
SALTED_HEADER = b"Salted__"

PLAINTEXT_MAX_LENGTH = 100
BASE64_LIKE = re.compile(r"[A-Za-z0-9+/=]{20,}")

SALT_SIZE = 8
KEY_SIZE = 32
IV_SIZE = 16
REPLACEMENT_CHAR = "�"


def _b64decode(text: str) -> bytes:
    """Strict base64 decode that tolerates missing padding."""
    cleaned = "".join(text.split())
    cleaned += "=" * (-len(cleaned) % 4)
    return base64.b64decode(cleaned, validate=True)


def _utf8(text: str) -> bytes:
    """UTF-8 bytes of ``text``. Lone surrogates become ``?``."""
    return text.encode("utf-8", errors="replace")


def evp_bytes_to_key(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    """OpenSSL EVP_BytesToKey with MD5 and a single iteration."""
    derived = b""
    block = b""
    while len(derived) < KEY_SIZE + IV_SIZE:
        block = hashlib.md5(block + passphrase + salt).digest()  # noqa: S324
        derived += block
    return derived[:KEY_SIZE], derived[KEY_SIZE : KEY_SIZE + IV_SIZE]


def salted_aes_encrypt(plaintext: str, passphrase: str) -> str:
    """Encrypt in the OpenSSL/CryptoJS passphrase format."""
    salt = os.urandom(SALT_SIZE)
    key, iv = evp_bytes_to_key(passphrase.encode(), salt)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(_utf8(plaintext)) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(SALTED_HEADER + salt + ciphertext).decode()


def salted_aes_decrypt(stored: str, passphrase: str) -> str:
    """Decrypt an OpenSSL/CryptoJS passphrase ciphertext.

    Raises ValueError (including binascii.Error and UnicodeDecodeError) when
    the value is not a valid ciphertext for this passphrase.
    """
    raw = _b64decode(stored)
    if not raw.startswith(SALTED_HEADER) or len(raw) <= len(SALTED_HEADER) + SALT_SIZE:
        raise ValueError("missing salted header")
    salt = raw[len(SALTED_HEADER) : len(SALTED_HEADER) + SALT_SIZE]
    ciphertext = raw[len(SALTED_HEADER) + SALT_SIZE :]
    key, iv = evp_bytes_to_key(passphrase.encode(), salt)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    data = unpadder.update(padded) + unpadder.finalize()
    return data.decode("utf-8")


def _is_clean(text: str) -> bool:
    return bool(text) and REPLACEMENT_CHAR not in text


class MessageEnvelope(ABC):
    """Encode/decode contract used by every code path that stores messages."""

    @abstractmethod
    def encode(self, plaintext: str) -> str:
        """Turn plaintext into a value safe to persist."""

    @abstractmethod
    def decode(self, stored: object) -> str:
        """Recover plaintext. Must never raise."""


class LegacyAesEnvelope(MessageEnvelope):
    """Static-key salted AES envelope, compatible with every stored format."""

    def __init__(self, key: str) -> None:
        self._key = key

    def legacy_keys(self, stored: str) -> list[str]:
        """Ordered candidate keys used by earlier app versions."""
        return [
            hashlib.sha256(b"default_key").hexdigest(),
            "user_specific_key",
            stored[:32],
        ]

    def encode(self, plaintext: str) -> str:
        try:
            return salted_aes_encrypt(plaintext, self._key)
        except Exception:
            logger.exception("Message encryption failed, storing fallback encoding")
            return FALLBACK_PREFIX + base64.b64encode(_utf8(plaintext)).decode()

    def decode(self, stored: object) -> str:
        try:
            return self._decode_chain(stored)
        except Exception:
            logger.exception("Unexpected envelope decode failure")
            return PLACEHOLDER

    def _decode_chain(self, stored: object) -> str:
        if not isinstance(stored, str) or not stored:
            logger.warning("Envelope received invalid input", kind=type(stored).__name__)
            return PLACEHOLDER

        if stored.startswith(FALLBACK_PREFIX):
            try:
                return _b64decode(stored[len(FALLBACK_PREFIX) :]).decode("utf-8")
            except ValueError:
                logger.warning("Failed to decode fallback envelope")
                return PLACEHOLDER

        if (
            not stored.startswith(SALTED_MARKER)
            and not BASE64_LIKE.fullmatch(stored)
            and len(stored) < PLAINTEXT_MAX_LENGTH
        ):
            return stored

        text = self._try_key(stored, self._key)
        if text is not None:
            return text

        for candidate in self.legacy_keys(stored):
            text = self._try_key(stored, candidate)
            if text is not None:
                logger.info("Message decrypted with legacy key")
                return text

        recovered = self._recover_unencrypted(stored)
        if recovered is not None:
            return recovered

        logger.warning("All envelope decode methods failed", length=len(stored))
        return PLACEHOLDER

    @staticmethod
    def _try_key(stored: str, key: str) -> str | None:
        try:
            text = salted_aes_decrypt(stored, key)
        except ValueError:
            return None
        return text if _is_clean(text) else None

    @staticmethod
    def _recover_unencrypted(stored: str) -> str | None:
        """Handle values that were base64-encoded instead of encrypted."""
        try:
            decoded = _b64decode(stored).decode("utf-8")
        except ValueError:
            return None
        if decoded.startswith(UNENCRYPTED_PREFIX):
            return decoded[len(UNENCRYPTED_PREFIX) :]
        if decoded.startswith("{") and decoded.endswith("}"):
            try:
                json.loads(decoded)
            except ValueError:
                return None
            return decoded
        return None
