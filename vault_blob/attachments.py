"""
Vault Attachments — Decryption of downloaded attachment files.

Each attachment has its own content key. That key is stored encrypted with
the vault key (``AttachmentMetadata.storage_key``) and, once decrypted, is
the hex form of a 32-byte AES key. File bodies and filenames are encrypted
with the content key using the IV-prefixed CBC layout.

A failure here concerns one attachment only; the Vault it came from stays
valid.
"""
import logging
from typing import Union

from .crypto import (
    KeyLike,
    cipher_unbase64,
    decrypt,
    decrypt_base64,
    looks_like_base64,
)
from .exceptions import DecodeError
from .keys import KDF_HASH_LEN, DecryptionKey
from .models import AttachmentMetadata

logger = logging.getLogger("vault_blob")


def attachment_key(metadata: AttachmentMetadata, vault_key: KeyLike) -> DecryptionKey:
    """Decrypt the content key of an attachment.

    Raises:
        DecodeError: If the stored key is missing or does not decrypt to a
            usable AES-256 key.
    """
    if not metadata.storage_key:
        raise DecodeError(f"Attachment {metadata.id} has no storage key")
    plaintext = decrypt_base64(metadata.storage_key, vault_key)
    if len(plaintext) == KDF_HASH_LEN:
        return DecryptionKey(plaintext)
    return DecryptionKey.from_hex(plaintext)


def decrypt_attachment(
    raw_bytes: Union[bytes, str],
    metadata: AttachmentMetadata,
    vault_key: KeyLike,
) -> bytes:
    """Decrypt a downloaded attachment body.

    Args:
        raw_bytes: Body as returned by the download collaborator, either
            the textual ``"!iv|data"`` form or the binary layout.
        metadata: Parsed metadata of the attachment.
        vault_key: Session decryption key.

    Returns:
        The decrypted file contents.

    Raises:
        DecodeError: If the key or the body cannot be decrypted.
    """
    if isinstance(raw_bytes, str):
        raw_bytes = raw_bytes.encode("ascii", errors="replace")
    with attachment_key(metadata, vault_key) as content_key:
        if looks_like_base64(raw_bytes):
            raw_bytes = cipher_unbase64(raw_bytes)
        data = decrypt(raw_bytes, content_key, allow_plaintext=False)
    logger.debug(
        "Decrypted attachment %s of account %s (%d bytes)",
        metadata.id, metadata.parent_account_id, len(data),
    )
    return data


def decrypt_filename(metadata: AttachmentMetadata, vault_key: KeyLike) -> str:
    """Decrypt the original filename of an attachment.

    Raises:
        DecodeError: If the key or the filename cannot be decrypted.
    """
    with attachment_key(metadata, vault_key) as content_key:
        raw = decrypt_base64(metadata.filename, content_key)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DecodeError(f"Filename of attachment {metadata.id} is not UTF-8") from err
