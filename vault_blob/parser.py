"""
Vault Parser — State machine turning a chunk stream into a Vault.

States:
    IDLE              no account in progress
    BUILDING_ACCOUNT  an ACCT chunk opened an account; field and attachment
                      chunks attach to it
    DONE              the stream ended; the Vault has been produced

Framing problems (``MalformedChunk``, ``TruncatedStream``) and a blob without
a version chunk (``MissingField``) abort the parse.
A field that fails to decrypt is left blank and recorded in
``Account.invalid_fields``; unknown chunk tags are skipped.

Security Note:
    Only tags, ids, field names and counts are logged, never values.
"""
import logging
from enum import Enum
from typing import Iterable, Optional

from .chunks import Chunk, ChunkKind, ChunkReader, ItemReader
from .config import VaultConfig
from .crypto import KeyLike, decrypt
from .exceptions import DecodeError, MalformedChunk, MissingField, SessionClosed
from .keys import DecryptionKey
from .models import Account, AccountBuilder, AttachmentMetadata, Field, Vault

logger = logging.getLogger("vault_blob")

# Item kinds inside an ACCT payload
ENCRYPTED = "encrypted"
HEX = "hex"
TEXT = "text"
BOOL = "bool"
SKIP = "skip"

# Upstream ACCT record layout, after the leading id item:
# (upstream item name, AccountBuilder attribute, item kind)
ACCOUNT_LAYOUT = (
    ("account.name", "name", ENCRYPTED),
    ("account.group", "group", ENCRYPTED),
    ("account.url", "url", HEX),
    ("account.note", "notes", ENCRYPTED),
    ("account.fav", "favourite", BOOL),
    ("account.sharedfromaid", None, SKIP),
    ("account.username", "username", ENCRYPTED),
    ("account.password", "password", ENCRYPTED),
    ("account.pwprotect", "password_protected", BOOL),
    ("account.genpw", None, SKIP),
    ("account.sn", "is_secure_note", BOOL),
    ("account.last_touch", "last_touch", TEXT),
    ("account.autologin", None, SKIP),
    ("account.never_autofill", None, SKIP),
    ("account.realm_data", None, SKIP),
    ("account.fiid", None, SKIP),
    ("account.custom_js", None, SKIP),
    ("account.submit_id", None, SKIP),
    ("account.captcha_id", None, SKIP),
    ("account.urid", None, SKIP),
    ("account.basic_auth", None, SKIP),
    ("account.method", None, SKIP),
    ("account.action", None, SKIP),
    ("account.groupid", None, SKIP),
    ("account.deleted", None, SKIP),
    ("account.attachkey_encrypted", "attachment_key", TEXT),
    ("account.attachpresent", "attachment_present", BOOL),
    ("account.individualshare", None, SKIP),
    ("account.notetype", "note_type", TEXT),
    ("account.noalert", None, SKIP),
    ("account.last_modified_gmt", "last_modified", TEXT),
    ("account.hasbeenshared", None, SKIP),
    ("account.last_pwchange_gmt", None, SKIP),
    ("account.created_gmt", None, SKIP),
    ("account.vulnerable", None, SKIP),
)

# Single-field chunks whose payload is an encrypted value
ENCRYPTED_FIELD_CHUNKS = {
    ChunkKind.NAME: "name",
    ChunkKind.USERNAME: "username",
    ChunkKind.PASSWORD: "password",
    ChunkKind.URL: "url",
    ChunkKind.GROUP: "group",
    ChunkKind.NOTES: "notes",
}

# Custom field types whose value is stored encrypted
ENCRYPTED_FIELD_TYPES = frozenset({"email", "tel", "text", "password", "textarea"})

SECURE_NOTE_URL = "http://sn"


class ParserState(Enum):
    IDLE = "idle"
    BUILDING_ACCOUNT = "building_account"
    DONE = "done"


class VaultParser:
    """Consumes chunks one at a time and assembles a Vault.

    A parser instance holds only the state of a single parse; use one per
    blob. The decryption key is supplied by the caller's session and never
    stored beyond the parser's lifetime.
    """

    def __init__(self, key: KeyLike, config: Optional[VaultConfig] = None):
        if isinstance(key, DecryptionKey) and key.wiped:
            raise SessionClosed("Cannot parse with a wiped decryption key")
        self._key = key
        self._config = config or VaultConfig()
        self._state = ParserState.IDLE
        self._version: Optional[int] = None
        self._is_local = False
        self._accounts: list[Account] = []
        self._current: Optional[AccountBuilder] = None
        self._skipped = 0
        self._handlers = {
            ChunkKind.VERSION: self._handle_version,
            ChunkKind.ACCOUNT: self._handle_account,
            ChunkKind.NAME: self._handle_encrypted_field,
            ChunkKind.USERNAME: self._handle_encrypted_field,
            ChunkKind.PASSWORD: self._handle_encrypted_field,
            ChunkKind.URL: self._handle_encrypted_field,
            ChunkKind.GROUP: self._handle_encrypted_field,
            ChunkKind.NOTES: self._handle_encrypted_field,
            ChunkKind.SECURE_NOTE: self._handle_secure_note,
            ChunkKind.LAST_TOUCH: self._handle_last_touch,
            ChunkKind.FIELD: self._handle_custom_field,
            ChunkKind.OTHER_FIELD: self._handle_custom_field,
            ChunkKind.ATTACHMENT: self._handle_attachment,
            ChunkKind.LOCAL: self._handle_local,
            ChunkKind.UNKNOWN: self._handle_unknown,
        }

    @property
    def state(self) -> ParserState:
        return self._state

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, chunks: Iterable[Chunk]) -> Vault:
        """Run the whole chunk sequence through the parser.

        Raises:
            MalformedChunk: If a recognized chunk is structurally broken.
            TruncatedStream: If the underlying reader runs out of bytes.
        """
        for chunk in chunks:
            self.feed(chunk)
        return self.finish()

    def feed(self, chunk: Chunk) -> None:
        """Process a single chunk."""
        if self._state is ParserState.DONE:
            raise RuntimeError("Parser already produced its Vault")
        logger.debug("Handling %s (%d bytes)", chunk.name, len(chunk.payload))
        self._handlers[chunk.kind](chunk)

    def finish(self) -> Vault:
        """Finalize any open account and return the Vault.

        Raises:
            MissingField: If no version chunk was seen.
        """
        if self._state is ParserState.DONE:
            raise RuntimeError("Parser already produced its Vault")
        self._finalize_current()
        self._state = ParserState.DONE
        if self._version is None:
            raise MissingField("vault version")
        vault = Vault(
            version=self._version,
            is_local=self._is_local,
            accounts=tuple(self._accounts),
        )
        logger.info(
            "Parsed vault v%d: %d account(s), %d attachment(s), %d skipped chunk(s)",
            vault.version, len(vault.accounts),
            sum(len(a.attachments) for a in vault.accounts), self._skipped,
        )
        return vault

    # ------------------------------------------------------------------
    # Account lifecycle
    # ------------------------------------------------------------------

    def _finalize_current(self) -> None:
        builder = self._current
        if builder is None:
            return
        if builder.url == SECURE_NOTE_URL:
            builder.is_secure_note = True
        self._accounts.append(builder.build())
        self._current = None
        self._state = ParserState.IDLE

    def _require_account(self, chunk: Chunk) -> Optional[AccountBuilder]:
        """Current account, or None when an orphan chunk is to be skipped."""
        if self._current is not None:
            return self._current
        if self._config.skip_orphans:
            logger.warning("Skipping %s chunk outside of an account", chunk.name)
            self._skipped += 1
            return None
        raise MalformedChunk(chunk.tag, "no account in progress")

    # ------------------------------------------------------------------
    # Field decoding
    # ------------------------------------------------------------------

    def _decrypt_text(self, raw: bytes) -> str:
        return decrypt(raw, self._key).decode("utf-8")

    def _set_decrypted(self, builder: AccountBuilder, attr: str, raw: bytes) -> None:
        try:
            value = self._decrypt_text(raw)
        except (DecodeError, UnicodeDecodeError) as err:
            logger.warning(
                "Unable to decrypt %s of account %s: %s",
                attr, builder.id, type(err).__name__,
            )
            builder.mark_invalid(attr)
            return
        setattr(builder, attr, value)

    def _set_item(
        self, builder: AccountBuilder, attr: str, kind: str, raw: bytes,
    ) -> None:
        if kind == ENCRYPTED:
            self._set_decrypted(builder, attr, raw)
            return
        if kind == BOOL:
            setattr(builder, attr, raw == b"1")
            return
        try:
            if kind == HEX:
                value = bytes.fromhex(raw.decode("ascii")).decode("utf-8")
            else:
                value = raw.decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            logger.warning("Unable to decode %s of account %s", attr, builder.id)
            builder.mark_invalid(attr)
            return
        setattr(builder, attr, value)

    # ------------------------------------------------------------------
    # Chunk handlers
    # ------------------------------------------------------------------

    def _handle_version(self, chunk: Chunk) -> None:
        digits = chunk.payload.strip()
        if not digits.isdigit():
            raise MalformedChunk(chunk.tag, "version is not a decimal number")
        self._version = int(digits.decode("ascii"))

    def _handle_local(self, chunk: Chunk) -> None:
        self._is_local = True

    def _handle_unknown(self, chunk: Chunk) -> None:
        logger.debug("Skipping unrecognized %s chunk", chunk.name)
        self._skipped += 1

    def _handle_account(self, chunk: Chunk) -> None:
        items = ItemReader(chunk)
        account_id = items.read_str("account.id")
        self._finalize_current()
        builder = AccountBuilder(id=account_id)
        for item_name, attr, kind in ACCOUNT_LAYOUT:
            raw = items.read_optional(item_name)
            if raw is None:
                break
            if kind != SKIP:
                self._set_item(builder, attr, kind, raw)
        self._current = builder
        self._state = ParserState.BUILDING_ACCOUNT

    def _handle_encrypted_field(self, chunk: Chunk) -> None:
        builder = self._require_account(chunk)
        if builder is not None:
            self._set_decrypted(builder, ENCRYPTED_FIELD_CHUNKS[chunk.kind], chunk.payload)

    def _handle_secure_note(self, chunk: Chunk) -> None:
        builder = self._require_account(chunk)
        if builder is not None:
            builder.is_secure_note = chunk.payload.strip() == b"1"

    def _handle_last_touch(self, chunk: Chunk) -> None:
        builder = self._require_account(chunk)
        if builder is not None:
            self._set_item(builder, "last_touch", TEXT, chunk.payload)

    def _handle_custom_field(self, chunk: Chunk) -> None:
        builder = self._require_account(chunk)
        if builder is None:
            return
        items = ItemReader(chunk)
        name = items.read_str("account.field.name")
        field_type = items.read_str("account.field.type")
        raw_value = items.read("account.field.value")
        checked = items.read_optional("account.field.checked") == b"1"
        try:
            if field_type in ENCRYPTED_FIELD_TYPES:
                value = self._decrypt_text(raw_value)
            else:
                value = raw_value.decode("utf-8")
        except (DecodeError, UnicodeDecodeError) as err:
            logger.warning(
                "Unable to decrypt field %s of account %s: %s",
                name, builder.id, type(err).__name__,
            )
            builder.mark_invalid(f"fields.{name}")
            value = ""
        builder.fields.append(
            Field(name=name, field_type=field_type, value=value, checked=checked)
        )

    def _handle_attachment(self, chunk: Chunk) -> None:
        items = ItemReader(chunk)
        attachment_id = items.read_str("attachment.id")
        parent_id = items.read_str("attachment.parent")
        mime_type = items.read_str("attachment.mimetype")
        storage_id = items.read_str("attachment.storagekey")
        size = items.read_int("attachment.size")
        filename = items.read_str("attachment.filename")

        if self._current is not None and self._current.id == parent_id:
            self._current.attachments.append(AttachmentMetadata(
                id=attachment_id,
                parent_account_id=parent_id,
                mime_type=mime_type,
                storage_key=self._current.attachment_key,
                size=size,
                filename=filename,
                storage_id=storage_id,
            ))
            return

        for index, account in enumerate(self._accounts):
            if account.id == parent_id:
                self._accounts[index] = account.with_attachment(AttachmentMetadata(
                    id=attachment_id,
                    parent_account_id=parent_id,
                    mime_type=mime_type,
                    storage_key=account.attachment_key,
                    size=size,
                    filename=filename,
                    storage_id=storage_id,
                ))
                return

        if self._config.skip_orphans:
            logger.warning(
                "Skipping attachment %s: no account %s", attachment_id, parent_id,
            )
            self._skipped += 1
            return
        raise MalformedChunk(chunk.tag, f"no account {parent_id} for attachment")


def parse_vault(
    raw, key: KeyLike, config: Optional[VaultConfig] = None,
) -> Vault:
    """Parse a complete blob into a Vault.

    Args:
        raw: Blob bytes (already base64-decoded) or a binary file object.
        key: Session decryption key.
        config: Optional parser settings.

    Returns:
        The decoded Vault.

    Raises:
        VaultParseError: If the blob framing is broken.
    """
    config = config or VaultConfig()
    reader = ChunkReader(raw, max_chunk_length=config.max_chunk_length)
    return VaultParser(key, config).parse(reader)
