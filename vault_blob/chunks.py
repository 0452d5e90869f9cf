"""
Vault Chunks — Lazy reader for the tagged, length-prefixed blob framing.

Blob layout, repeated until the input is exhausted:
    [tag 4B][length 4B uint32 BE][payload `length` bytes]

Most payloads are themselves a run of items:
    [length 4B uint32 BE][item `length` bytes] ...
"""
import io
import struct
import logging
from enum import Enum
from typing import BinaryIO, Iterator, Optional, Union
from dataclasses import dataclass

from .exceptions import MalformedChunk, TruncatedStream

logger = logging.getLogger("vault_blob")

TAG_SIZE = 4
LENGTH_SIZE = 4  # uint32 big-endian
HEADER_SIZE = TAG_SIZE + LENGTH_SIZE

_LENGTH = struct.Struct("!I")


class ChunkKind(Enum):
    """Closed set of chunk kinds the parser understands."""

    VERSION = b"LPAV"
    ACCOUNT = b"ACCT"
    NAME = b"ACNM"
    USERNAME = b"ACUN"
    PASSWORD = b"ACPW"
    URL = b"ACUR"
    GROUP = b"ACGR"
    NOTES = b"ACNT"
    SECURE_NOTE = b"ACSN"
    LAST_TOUCH = b"ACLT"
    FIELD = b"ACFL"
    OTHER_FIELD = b"ACOF"
    ATTACHMENT = b"ATTA"
    LOCAL = b"LOCL"
    UNKNOWN = b""

    @classmethod
    def from_tag(cls, tag: bytes) -> "ChunkKind":
        try:
            kind = cls(bytes(tag))
        except ValueError:
            return cls.UNKNOWN
        return kind if tag else cls.UNKNOWN


@dataclass(frozen=True)
class Chunk:
    tag: bytes
    payload: bytes

    @property
    def kind(self) -> ChunkKind:
        return ChunkKind.from_tag(self.tag)

    @property
    def name(self) -> str:
        return self.tag.decode("ascii", errors="replace")

    def __repr__(self) -> str:
        return f"<Chunk {self.name} ({len(self.payload)} bytes)>"


class ChunkReader:
    """Single-pass iterator of chunks over a byte source.

    The source may be bytes-like or a binary file object; it is consumed as
    chunks are pulled, so the reader cannot be restarted.
    """

    def __init__(
        self,
        source: Union[bytes, bytearray, memoryview, BinaryIO],
        max_chunk_length: Optional[int] = None,
    ):
        if isinstance(source, (bytes, bytearray, memoryview)):
            source = io.BytesIO(bytes(source))
        self._source = source
        self._max_length = max_chunk_length
        self._count = 0
        self._exhausted = False

    @property
    def count(self) -> int:
        """Number of chunks read so far."""
        return self._count

    def __iter__(self) -> "ChunkReader":
        return self

    def __next__(self) -> Chunk:
        if self._exhausted:
            raise StopIteration
        header = self._source.read(HEADER_SIZE)
        if not header:
            self._exhausted = True
            logger.debug("Chunk stream exhausted after %d chunk(s)", self._count)
            raise StopIteration
        if len(header) < HEADER_SIZE:
            self._exhausted = True
            raise TruncatedStream(HEADER_SIZE, len(header), "chunk header")
        tag = header[:TAG_SIZE]
        (length,) = _LENGTH.unpack(header[TAG_SIZE:])
        if self._max_length is not None and length > self._max_length:
            self._exhausted = True
            raise MalformedChunk(
                tag, f"declared length {length} exceeds {self._max_length}"
            )
        payload = self._source.read(length)
        if len(payload) < length:
            self._exhausted = True
            raise TruncatedStream(length, len(payload), "chunk payload")
        self._count += 1
        return Chunk(tag=tag, payload=payload)


def read_chunks(
    source: Union[bytes, BinaryIO], max_chunk_length: Optional[int] = None,
) -> Iterator[Chunk]:
    """Iterate over the chunks of a blob."""
    return iter(ChunkReader(source, max_chunk_length=max_chunk_length))


# ---------------------------------------------------------------------------
# Items inside a chunk payload
# ---------------------------------------------------------------------------

class ItemReader:
    """Splits a chunk payload into length-prefixed items."""

    def __init__(self, chunk: Chunk):
        self._tag = chunk.tag
        self._payload = memoryview(chunk.payload)
        self._offset = 0

    @property
    def at_end(self) -> bool:
        return self._offset >= len(self._payload)

    def read(self, field: str) -> bytes:
        """Return the next item.

        Raises:
            MalformedChunk: If the item is missing or truncated.
        """
        remaining = len(self._payload) - self._offset
        if remaining < LENGTH_SIZE:
            raise MalformedChunk(self._tag, f"missing {field}")
        (length,) = _LENGTH.unpack_from(self._payload, self._offset)
        start = self._offset + LENGTH_SIZE
        if length > len(self._payload) - start:
            raise MalformedChunk(self._tag, f"truncated {field}")
        self._offset = start + length
        return bytes(self._payload[start:self._offset])

    def read_str(self, field: str) -> str:
        raw = self.read(field)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedChunk(self._tag, f"{field} is not UTF-8") from None

    def read_int(self, field: str) -> int:
        raw = self.read_str(field)
        try:
            return int(raw)
        except ValueError:
            raise MalformedChunk(self._tag, f"{field} is not a number") from None

    def read_optional(self, field: str) -> Optional[bytes]:
        """Like ``read`` but returns None once the payload is exhausted."""
        if self.at_end:
            return None
        return self.read(field)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def pack_item(value: Union[str, bytes]) -> bytes:
    """Frame one item as ``[length][bytes]``."""
    if isinstance(value, str):
        value = value.encode("utf-8")
    return _LENGTH.pack(len(value)) + value


def pack_chunk(tag: Union[ChunkKind, bytes], payload: bytes = b"") -> bytes:
    """Frame one chunk as ``[tag][length][payload]``."""
    if isinstance(tag, ChunkKind):
        tag = tag.value
    if len(tag) != TAG_SIZE:
        raise ValueError(f"Chunk tag must be {TAG_SIZE} bytes, got {tag!r}")
    return tag + _LENGTH.pack(len(payload)) + payload
