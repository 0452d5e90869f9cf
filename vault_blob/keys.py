"""
Vault Keys — Master-password key derivation and login hash calculation.

Derivation matches the upstream service bit-for-bit:
- 1 iteration:  key = SHA256(username + password)
                login = hex(SHA256(hex(key) + password))
- N iterations: key = PBKDF2-HMAC-SHA256(password, salt=username, N)
                login = hex(PBKDF2-HMAC-SHA256(key, salt=password, 1))

The username is lower-cased before use.

Security Note:
    Key objects keep their material in a mutable buffer that is zeroed on
    ``wipe()``, on context-manager exit and on garbage collection.
    ``repr()`` never shows key bytes. Never log key material.
"""
import hmac
import base64
import binascii
import logging
from typing import Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import DecodeError, InvalidIterationCount, KeyMismatch

logger = logging.getLogger("vault_blob")

KDF_HASH_LEN = 32  # SHA-256 digest size, AES-256 key size


class _SecretBuffer:
    """Fixed-length secret held in a wipeable bytearray."""

    LEN = KDF_HASH_LEN

    def __init__(self, raw: Union[bytes, bytearray]):
        if len(raw) != self.LEN:
            raise ValueError(
                f"{type(self).__name__} must be exactly {self.LEN} bytes, "
                f"got {len(raw)}"
            )
        self._buffer = bytearray(raw)
        self._wiped = False

    @property
    def wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        """Zero the key material in place."""
        buffer = getattr(self, "_buffer", None)
        if buffer is None:
            return
        for i in range(len(buffer)):
            buffer[i] = 0
        self._wiped = True

    def __bytes__(self) -> bytes:
        # cryptography only accepts immutable bytes, so callers get a copy.
        if self._wiped:
            raise ValueError(f"{type(self).__name__} has been wiped")
        return bytes(self._buffer)

    def __len__(self) -> int:
        return self.LEN

    def __eq__(self, other: object) -> bool:
        if isinstance(other, _SecretBuffer):
            other = bytes(other._buffer)
        if not isinstance(other, (bytes, bytearray)):
            return NotImplemented
        return hmac.compare_digest(bytes(self._buffer), bytes(other))

    __hash__ = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(<redacted>)"

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.wipe()

    def __del__(self):
        self.wipe()


class DecryptionKey(_SecretBuffer):
    """An AES-256 key used to decrypt vault fields."""

    @classmethod
    def from_raw(cls, raw: bytes) -> "DecryptionKey":
        return cls(raw)

    @classmethod
    def from_hex(cls, value: Union[str, bytes]) -> "DecryptionKey":
        """Build a key from its hex representation.

        Raises:
            DecodeError: If the value is not hex or has the wrong length.
        """
        try:
            raw = bytes.fromhex(
                value.decode("ascii") if isinstance(value, bytes) else value
            )
        except (ValueError, UnicodeDecodeError) as err:
            raise DecodeError("Key is not valid hex") from err
        if len(raw) != cls.LEN:
            raise DecodeError(
                f"Key must decode to {cls.LEN} bytes, got {len(raw)}"
            )
        return cls(raw)

    @classmethod
    def from_base64(cls, value: Union[str, bytes]) -> "DecryptionKey":
        """Build a key from its base64 representation.

        Raises:
            DecodeError: If the value is not base64 or has the wrong length.
        """
        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as err:
            raise DecodeError("Key is not valid base64") from err
        if len(raw) != cls.LEN:
            raise DecodeError(
                f"Key must decode to {cls.LEN} bytes, got {len(raw)}"
            )
        return cls(raw)


class LoginHash(_SecretBuffer):
    """Hex-encoded hash submitted to the service to authenticate."""

    LEN = KDF_HASH_LEN * 2

    @property
    def hex(self) -> str:
        """The login hash as the lowercase hex string the server expects."""
        return bytes(self).decode("ascii")


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def _check_iterations(iterations: int) -> None:
    if isinstance(iterations, bool) or not isinstance(iterations, int):
        raise InvalidIterationCount(iterations)
    if iterations < 1:
        raise InvalidIterationCount(iterations)


def _sha256(*parts: bytes) -> bytes:
    digest = hashes.Hash(hashes.SHA256())
    for part in parts:
        digest.update(part)
    return digest.finalize()


def _pbkdf2(password: bytes, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KDF_HASH_LEN,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password)


def derive_decryption_key(
    username: str, password: str, iterations: int,
) -> DecryptionKey:
    """Derive the vault decryption key from the master password.

    Raises:
        InvalidIterationCount: If iterations is not a positive integer.
    """
    _check_iterations(iterations)
    user = username.lower().encode("utf-8")
    secret = password.encode("utf-8")
    if iterations == 1:
        return DecryptionKey(_sha256(user, secret))
    return DecryptionKey(_pbkdf2(secret, user, iterations))


def derive_login_hash(key: DecryptionKey, password: str, iterations: int) -> LoginHash:
    """Hash an already-derived decryption key into the login hash."""
    _check_iterations(iterations)
    secret = password.encode("utf-8")
    if iterations == 1:
        first_pass = bytes(key).hex().encode("ascii")
        second_pass = _sha256(first_pass, secret)
    else:
        second_pass = _pbkdf2(bytes(key), secret, 1)
    return LoginHash(second_pass.hex().encode("ascii"))


def derive(
    username: str, password: str, iterations: int,
) -> tuple[DecryptionKey, LoginHash]:
    """Derive the (decryption key, login hash) pair for a session.

    Args:
        username: Account e-mail; compared case-insensitively upstream.
        password: Master password.
        iterations: Key-stretching rounds reported by the service.

    Returns:
        Tuple of (DecryptionKey, LoginHash).

    Raises:
        InvalidIterationCount: If iterations is not a positive integer.
    """
    key = derive_decryption_key(username, password, iterations)
    login_hash = derive_login_hash(key, password, iterations)
    logger.debug("Derived session keys with %d iteration(s)", iterations)
    return key, login_hash


def verify_login_hash(login_hash: LoginHash, server_hash: Union[str, bytes]) -> None:
    """Compare a derived login hash with the one the server computed.

    Raises:
        KeyMismatch: If the hashes differ.
    """
    if isinstance(server_hash, (bytes, bytearray)):
        server_hash = bytes(server_hash).decode("ascii", errors="replace")
    expected = server_hash.strip().lower().encode("ascii", errors="replace")
    if not hmac.compare_digest(bytes(login_hash), expected):
        raise KeyMismatch("Login hash does not match the server's")
