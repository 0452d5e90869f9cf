"""
Vault Crypto Core — Field decryption for every encoding found in a blob.

A vault field may be stored in one of several layouts; the layout is
detected from the ciphertext itself:
- empty:     ``b""``, passed through
- CBC:       ``b"!" + IV(16) + AES-256-CBC(ciphertext)``
- ECB:       ``AES-256-ECB(ciphertext)``, legacy short fields
- plaintext: anything else, fields written before encryption was mandatory

Textual fields use ``"!<base64 iv>|<base64 ciphertext>"`` or plain base64.

Security Note:
    Never log plaintext or ciphertext values.
"""
import re
import base64
import binascii
import logging
from enum import Enum
from typing import Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .exceptions import DecodeError, PaddingError, SessionClosed
from .keys import KDF_HASH_LEN, DecryptionKey

logger = logging.getLogger("vault_blob")

BLOCK_SIZE = 16  # AES block
IV_SIZE = 16
CBC_MARKER = b"!"
# marker + IV + at least one block
_MIN_CBC_LENGTH = len(CBC_MARKER) + IV_SIZE + BLOCK_SIZE

_BASE64_TEXT = re.compile(rb"^!?[A-Za-z0-9+/=]+(\|[A-Za-z0-9+/=]+)?$")

KeyLike = Union[DecryptionKey, bytes]


class Encoding(Enum):
    EMPTY = "empty"
    ECB = "ecb"
    CBC = "cbc"
    PLAINTEXT = "plaintext"


def detect_encoding(ciphertext: bytes) -> Encoding:
    """Work out how a field was encoded from its length and marker byte."""
    length = len(ciphertext)
    if length == 0:
        return Encoding.EMPTY
    if (
        ciphertext[:1] == CBC_MARKER
        and length >= _MIN_CBC_LENGTH
        and length % BLOCK_SIZE == 1
    ):
        return Encoding.CBC
    if length % BLOCK_SIZE == 0:
        return Encoding.ECB
    return Encoding.PLAINTEXT


# ---------------------------------------------------------------------------
# Block decryption
# ---------------------------------------------------------------------------

def unpad(data: bytes) -> bytes:
    """Strip PKCS#7 padding.

    Raises:
        PaddingError: If the pad value is outside [1, 16] or the pad bytes
            are inconsistent.
    """
    unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
    try:
        return unpadder.update(data) + unpadder.finalize()
    except ValueError as err:
        raise PaddingError("Invalid PKCS#7 padding") from err


def key_bytes(key: KeyLike) -> bytes:
    """Raw AES-256 key material.

    Raises:
        SessionClosed: If the key has already been wiped.
        DecodeError: If the key is not exactly 32 bytes long.
    """
    if isinstance(key, DecryptionKey) and key.wiped:
        raise SessionClosed("Decryption key has been wiped")
    raw = bytes(key)
    if len(raw) != KDF_HASH_LEN:
        raise DecodeError(
            f"Unusable decryption key: expected {KDF_HASH_LEN} bytes, got {len(raw)}"
        )
    return raw


def _run_cipher(key: KeyLike, mode: modes.Mode, ciphertext: bytes) -> bytes:
    cipher = Cipher(algorithms.AES(key_bytes(key)), mode)
    decryptor = cipher.decryptor()
    try:
        return decryptor.update(ciphertext) + decryptor.finalize()
    except ValueError as err:
        raise DecodeError(f"Unable to decrypt: {err}") from err


def decrypt(
    ciphertext: bytes, key: KeyLike, allow_plaintext: bool = True,
) -> bytes:
    """Decrypt one vault field with the session key.

    Args:
        ciphertext: Raw field bytes as stored in the blob.
        key: 32-byte decryption key.
        allow_plaintext: When False, input without a recognizable cipher
            layout is an error instead of being returned unchanged.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        PaddingError: If the decrypted padding is invalid.
        DecodeError: If the key or ciphertext cannot be used.
        SessionClosed: If the key has been wiped.
    """
    ciphertext = bytes(ciphertext)
    encoding = detect_encoding(ciphertext)
    if encoding is Encoding.EMPTY:
        return b""
    if encoding is Encoding.CBC:
        iv = ciphertext[1:1 + IV_SIZE]
        body = ciphertext[1 + IV_SIZE:]
        return unpad(_run_cipher(key, modes.CBC(iv), body))
    if encoding is Encoding.ECB:
        return unpad(_run_cipher(key, modes.ECB(), ciphertext))
    if not allow_plaintext:
        raise DecodeError(
            f"No cipher layout recognized in {len(ciphertext)} byte(s)"
        )
    return ciphertext


# ---------------------------------------------------------------------------
# Textual (base64) forms
# ---------------------------------------------------------------------------

def _b64decode(value: Union[str, bytes]) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise DecodeError("Value is not valid base64") from err


def looks_like_base64(data: bytes) -> bool:
    """True if ``data`` is one of the textual cipher forms."""
    return bool(_BASE64_TEXT.match(data.strip()))


def cipher_unbase64(value: Union[str, bytes]) -> bytes:
    """Convert a textual cipher value into its binary layout.

    ``"!<iv>|<data>"`` becomes ``b"!" + iv + data``; anything else is
    treated as plain base64.

    Raises:
        DecodeError: If the value is not valid base64.
    """
    if isinstance(value, bytes):
        try:
            value = value.decode("ascii")
        except UnicodeDecodeError as err:
            raise DecodeError("Value is not ASCII text") from err
    value = value.strip()
    if not value.startswith("!"):
        return _b64decode(value)
    iv, sep, data = value[1:].partition("|")
    if not sep:
        raise DecodeError("IV-prefixed value is missing its '|' separator")
    return CBC_MARKER + _b64decode(iv) + _b64decode(data)


def decrypt_base64(value: Union[str, bytes], key: KeyLike) -> bytes:
    """Decode a textual cipher value and decrypt it.

    Raises:
        DecodeError: If decoding or decryption fails.
    """
    if not value:
        return b""
    return decrypt(cipher_unbase64(value), key)
