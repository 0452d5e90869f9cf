"""Vault Blob — Key derivation and decoding of encrypted password-vault blobs.

Security Note (Threat Model):
    Derived keys and decrypted account fields live in process memory while a
    VaultSession is open. Key buffers are zeroed on close, but copies made
    by the cipher backend and decrypted strings cannot be scrubbed.
    Callers that need stronger guarantees should keep sessions short.
"""

from .attachments import attachment_key, decrypt_attachment, decrypt_filename
from .chunks import Chunk, ChunkKind, ChunkReader, pack_chunk, pack_item, read_chunks
from .config import VaultConfig
from .crypto import decrypt, decrypt_base64
from .exceptions import (
    DecodeError,
    InvalidIterationCount,
    KeyMismatch,
    MalformedChunk,
    MissingField,
    PaddingError,
    SessionClosed,
    TruncatedStream,
    VaultError,
    VaultParseError,
)
from .keys import DecryptionKey, LoginHash, derive, verify_login_hash
from .models import Account, AttachmentMetadata, Field, Vault
from .parser import ParserState, VaultParser, parse_vault
from .session import VaultSession
from .version import __version__

__all__ = [
    "Account",
    "AttachmentMetadata",
    "Chunk",
    "ChunkKind",
    "ChunkReader",
    "DecodeError",
    "DecryptionKey",
    "Field",
    "InvalidIterationCount",
    "KeyMismatch",
    "LoginHash",
    "MalformedChunk",
    "MissingField",
    "PaddingError",
    "SessionClosed",
    "ParserState",
    "TruncatedStream",
    "Vault",
    "VaultConfig",
    "VaultError",
    "VaultParseError",
    "VaultParser",
    "VaultSession",
    "attachment_key",
    "decrypt",
    "decrypt_attachment",
    "decrypt_base64",
    "decrypt_filename",
    "derive",
    "pack_chunk",
    "pack_item",
    "parse_vault",
    "read_chunks",
    "verify_login_hash",
    "__version__",
]
