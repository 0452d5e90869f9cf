"""
Vault Models — Immutable records produced by the blob parser.

Accounts are assembled with ``AccountBuilder`` while their chunks stream in
and frozen into ``Account`` values at each account boundary. A ``Vault`` is
built once per fetch and never mutated; a new fetch yields a new Vault.
"""
import dataclasses
from dataclasses import dataclass
from collections.abc import Iterator
from typing import Any, Optional

import orjson


@dataclass(frozen=True)
class Field:
    """A custom form field saved alongside an account."""

    name: str
    field_type: str
    value: str = ""
    checked: bool = False


@dataclass(frozen=True)
class AttachmentMetadata:
    """Metadata about a file attached to an account.

    ``storage_key`` is the attachment's content key, still encrypted with
    the vault key, and ``filename`` is encrypted with that content key;
    both are decrypted on demand by :mod:`vault_blob.attachments`.
    ``storage_id`` is the opaque handle the service uses to locate the
    current version of the file.
    """

    id: str
    parent_account_id: str
    mime_type: str
    storage_key: str
    size: int
    filename: str
    storage_id: str = ""


@dataclass(frozen=True)
class Account:
    """A single vault entry, typically a password or a secure note."""

    id: str
    name: str = ""
    username: str = ""
    password: str = ""
    url: str = ""
    group: str = ""
    notes: str = ""
    is_secure_note: bool = False
    last_touch: str = ""
    attachments: tuple[AttachmentMetadata, ...] = ()
    note_type: str = ""
    favourite: bool = False
    # prompt for the master password before revealing details
    password_protected: bool = False
    last_modified: str = ""
    attachment_present: bool = False
    attachment_key: str = ""
    fields: tuple[Field, ...] = ()
    # names of fields that failed to decrypt and were left blank
    invalid_fields: tuple[str, ...] = ()

    def with_attachment(self, attachment: AttachmentMetadata) -> "Account":
        """Return a copy of this account with one more attachment."""
        return dataclasses.replace(
            self, attachments=self.attachments + (attachment,),
        )


@dataclass
class AccountBuilder:
    """Mutable accumulator for the account currently being parsed."""

    id: str
    name: str = ""
    username: str = ""
    password: str = ""
    url: str = ""
    group: str = ""
    notes: str = ""
    is_secure_note: bool = False
    last_touch: str = ""
    note_type: str = ""
    favourite: bool = False
    password_protected: bool = False
    last_modified: str = ""
    attachment_present: bool = False
    attachment_key: str = ""
    attachments: list[AttachmentMetadata] = dataclasses.field(default_factory=list)
    fields: list[Field] = dataclasses.field(default_factory=list)
    invalid_fields: list[str] = dataclasses.field(default_factory=list)

    def mark_invalid(self, name: str) -> None:
        """Blank out a field that could not be decoded."""
        if isinstance(getattr(self, name, None), str):
            setattr(self, name, "")
        if name not in self.invalid_fields:
            self.invalid_fields.append(name)

    def build(self) -> Account:
        return Account(
            id=self.id,
            name=self.name,
            username=self.username,
            password=self.password,
            url=self.url,
            group=self.group,
            notes=self.notes,
            is_secure_note=self.is_secure_note,
            last_touch=self.last_touch,
            attachments=tuple(self.attachments),
            note_type=self.note_type,
            favourite=self.favourite,
            password_protected=self.password_protected,
            last_modified=self.last_modified,
            attachment_present=self.attachment_present,
            attachment_key=self.attachment_key,
            fields=tuple(self.fields),
            invalid_fields=tuple(self.invalid_fields),
        )


@dataclass(frozen=True)
class Vault:
    """Every account decoded from one blob fetch."""

    version: int
    is_local: bool = False
    accounts: tuple[Account, ...] = ()

    def attachments(self) -> Iterator[AttachmentMetadata]:
        for account in self.accounts:
            yield from account.attachments

    def get_account(self, account_id: str) -> Optional[Account]:
        """Look up an account by id."""
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    def is_stale(self, server_version: int) -> bool:
        """True if the service reports a newer vault than this one."""
        return self.version < server_version

    # --- Serialization helpers ---

    def dumps(self) -> bytes:
        """Serialize for the caller's cache (account secrets included)."""
        return orjson.dumps(self)

    @classmethod
    def loads(cls, data: bytes) -> "Vault":
        return cls.from_dict(orjson.loads(data))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Vault":
        accounts = []
        for raw in data.get("accounts", ()):
            raw = dict(raw)
            raw["attachments"] = tuple(
                AttachmentMetadata(**item) for item in raw.get("attachments", ())
            )
            raw["fields"] = tuple(Field(**item) for item in raw.get("fields", ()))
            raw["invalid_fields"] = tuple(raw.get("invalid_fields", ()))
            accounts.append(Account(**raw))
        return cls(
            version=data["version"],
            is_local=data.get("is_local", False),
            accounts=tuple(accounts),
        )
