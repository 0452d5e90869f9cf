"""
Vault Exceptions — Error taxonomy for key derivation, decryption and parsing.

Two families with different propagation rules:
- Framing errors (``VaultParseError`` and subclasses) abort a parse; the
  byte alignment of the blob can no longer be trusted.
- Decode errors (``DecodeError`` and subclasses) are local to one field or
  one attachment and are absorbed by the caller.
"""


class VaultError(Exception):
    """Base class for every error raised by vault_blob."""


class InvalidIterationCount(VaultError, ValueError):
    """The key-stretching iteration count is not a positive integer."""

    def __init__(self, iterations):
        self.iterations = iterations
        super().__init__(
            f"Iteration count must be a positive integer, got {iterations!r}"
        )


class KeyMismatch(VaultError):
    """The locally derived login hash disagrees with the server's."""


class DecodeError(VaultError):
    """A single ciphertext could not be decrypted or decoded."""


class PaddingError(DecodeError):
    """PKCS#7 padding was out of range or inconsistent."""


class VaultParseError(VaultError):
    """The blob framing is broken; the parse cannot continue."""


class TruncatedStream(VaultParseError):
    """The byte source ran out in the middle of a chunk."""

    def __init__(self, expected: int, available: int, what: str = "chunk"):
        self.expected = expected
        self.available = available
        super().__init__(
            f"Truncated {what}: expected {expected} byte(s), "
            f"only {available} available"
        )


class MalformedChunk(VaultParseError):
    """A recognized chunk whose payload is missing required sub-fields."""

    def __init__(self, tag: bytes, reason: str = ""):
        self.tag = tag
        self.reason = reason
        name = tag.decode("ascii", errors="replace")
        message = f"Malformed {name} chunk"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MissingField(VaultParseError):
    """A blob ended without a chunk every vault must carry."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Blob is missing its {field}")


class SessionClosed(VaultError):
    """The session's keys have been wiped; nothing more can be decrypted."""
