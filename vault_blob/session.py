"""
VaultSession — Caller-owned context holding one user's derived keys.

Provides the public API for decoding a user's vault:
- ``login(username, password, iterations)`` — derive the session keys
- ``verify(server_hash)`` — check the login hash against the service
- ``load(raw)`` — parse a fetched blob and keep the newest Vault
- ``needs_refresh(server_version)`` — compare with the service's version
- ``decrypt_attachment(raw, metadata)`` / ``attachment_filename(metadata)``
- ``close()`` — wipe the keys (also on ``with`` exit)

Security Note:
    Keys live only as long as the session. Never log key material, the
    master password or decrypted values; only usernames, ids and versions.
"""
import logging
from typing import Optional, Union

from .attachments import decrypt_attachment, decrypt_filename
from .config import VaultConfig
from .exceptions import KeyMismatch, SessionClosed
from .keys import DecryptionKey, LoginHash, derive, verify_login_hash
from .models import AttachmentMetadata, Vault
from .parser import parse_vault

logger = logging.getLogger("vault_blob")


class VaultSession:
    """Decryption context for one user's vault.

    Each session owns its own keys; nothing is shared between sessions or
    kept at module level.
    """

    def __init__(
        self,
        username: str,
        key: DecryptionKey,
        login_hash: LoginHash,
        config: Optional[VaultConfig] = None,
    ):
        self._username = username
        self._key = key
        self._login_hash = login_hash
        self._config = config or VaultConfig()
        self._vault: Optional[Vault] = None

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def login(
        cls,
        username: str,
        password: str,
        iterations: Optional[int] = None,
        config: Optional[VaultConfig] = None,
    ) -> "VaultSession":
        """Derive session keys from the master password.

        Args:
            username: Account e-mail.
            password: Master password.
            iterations: Count reported by the iteration lookup; falls back
                to ``config.iterations``.
            config: Optional settings.

        Returns:
            A new VaultSession.

        Raises:
            InvalidIterationCount: If iterations is not a positive integer.
        """
        config = config or VaultConfig()
        if iterations is None:
            iterations = config.iterations
        key, login_hash = derive(username, password, iterations)
        logger.info("Vault session opened for user=%s", username)
        return cls(username, key, login_hash, config=config)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def username(self) -> str:
        return self._username

    @property
    def login_hash(self) -> LoginHash:
        return self._login_hash

    @property
    def vault(self) -> Optional[Vault]:
        return self._vault

    @property
    def closed(self) -> bool:
        return self._key.wiped

    def _ensure_open(self) -> None:
        if self.closed:
            raise SessionClosed(f"Vault session for user={self._username} is closed")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def verify(self, server_hash: Union[str, bytes]) -> None:
        """Check the derived login hash against the server's.

        Raises:
            KeyMismatch: If the hashes differ.
        """
        try:
            verify_login_hash(self._login_hash, server_hash)
        except KeyMismatch:
            logger.warning("Login hash mismatch for user=%s", self._username)
            raise

    def load(self, raw) -> Vault:
        """Parse a freshly fetched blob.

        A parsed vault older than the cached one is discarded, so
        ``vault.version`` never goes backwards within a session.

        Args:
            raw: Blob bytes or binary file object.

        Returns:
            The newest Vault known to this session.

        Raises:
            VaultParseError: If the blob framing is broken.
            SessionClosed: If the session keys have been wiped.
        """
        self._ensure_open()
        vault = parse_vault(raw, self._key, self._config)
        if self._vault is not None and vault.version < self._vault.version:
            logger.warning(
                "Ignoring vault v%d for user=%s, already have v%d",
                vault.version, self._username, self._vault.version,
            )
            return self._vault
        self._vault = vault
        return vault

    def needs_refresh(self, server_version: int) -> bool:
        """True when no vault is loaded or the service has a newer one."""
        return self._vault is None or self._vault.is_stale(server_version)

    def decrypt_attachment(
        self, raw_bytes: Union[bytes, str], metadata: AttachmentMetadata,
    ) -> bytes:
        """Decrypt a downloaded attachment.

        Raises:
            DecodeError: If this attachment cannot be decrypted.
            SessionClosed: If the session keys have been wiped.
        """
        self._ensure_open()
        return decrypt_attachment(raw_bytes, metadata, self._key)

    def attachment_filename(self, metadata: AttachmentMetadata) -> str:
        self._ensure_open()
        return decrypt_filename(metadata, self._key)

    def close(self) -> None:
        """Wipe the session keys."""
        self._key.wipe()
        self._login_hash.wipe()
        logger.debug("Vault session closed for user=%s", self._username)

    def __enter__(self) -> "VaultSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
