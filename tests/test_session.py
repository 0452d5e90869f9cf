"""
Tests for VaultSession.

Tests cover:
- Login key derivation and server hash verification
- Iteration fallback from configuration
- Keeping the newest parsed vault
- Attachment decryption through the session
- Key wiping on close / context exit
"""
import pytest

from vault_blob.chunks import pack_chunk, pack_item
from vault_blob.config import VaultConfig
from vault_blob.exceptions import InvalidIterationCount, KeyMismatch, SessionClosed
from vault_blob.keys import LoginHash, derive
from vault_blob.models import AttachmentMetadata
from vault_blob.session import VaultSession


USERNAME = "michaelfbryan@gmail.com"
PASSWORD = "My Super Secret Password!"
SHA256_LOGIN = "b8a31d9784fa9a263d0e7a0d866b70612687f7067733126d74ccde02d3bab494"

STORAGE_KEY = (
    "!MOeCidDT4GAmmh8eoMWyRA==|BWdjMSoIvClMRyWrDdIlz38tZiU3O1nmcbg95PRXCT4z"
    "KLTTG4s0OD9v/cO2L2pWnAkl4oaVPSIb8OuFhk1KaL77qBbrkAH03lWY/wIModA="
)
FILENAME = "!zdLMAcQ9okxR3MFWNjoCaw==|B7NqfcNPX0IayFXNtxkqEw=="


@pytest.fixture
def session(vault_key) -> VaultSession:
    return VaultSession(
        "user@example.com",
        vault_key,
        LoginHash(b"0" * LoginHash.LEN),
    )


def blob(version: int, *chunks: bytes) -> bytes:
    return pack_chunk(b"LPAV", str(version).encode()) + b"".join(chunks)


class TestLogin:
    """Tests for VaultSession.login() and verify()."""

    def test_login_and_verify(self):
        session = VaultSession.login(USERNAME, PASSWORD, iterations=1)
        assert session.username == USERNAME
        assert session.login_hash.hex == SHA256_LOGIN
        session.verify(SHA256_LOGIN)

    def test_wrong_password(self):
        session = VaultSession.login(USERNAME, "not my password", iterations=1)
        with pytest.raises(KeyMismatch):
            session.verify(SHA256_LOGIN)

    def test_iterations_from_config(self):
        config = VaultConfig(iterations=2)
        session = VaultSession.login(USERNAME, PASSWORD, config=config)
        _, expected = derive(USERNAME, PASSWORD, 2)
        assert session.login_hash == expected

    def test_invalid_iterations(self):
        with pytest.raises(InvalidIterationCount):
            VaultSession.login(USERNAME, PASSWORD, iterations=0)


class TestLoad:
    """Tests for load() and needs_refresh()."""

    def test_load(self, session, encrypt, account_chunk):
        vault = session.load(blob(5, account_chunk("1"), pack_chunk(b"ACNM", encrypt("github"))))
        assert session.vault is vault
        assert vault.version == 5
        assert vault.accounts[0].name == "github"

    def test_keeps_newer_vault(self, session, account_chunk):
        newer = session.load(blob(8, account_chunk("1")))
        assert session.load(blob(6, account_chunk("1"), account_chunk("2"))) is newer
        assert session.vault.version == 8
        assert len(session.vault.accounts) == 1

    def test_replaces_with_newer_vault(self, session):
        session.load(blob(3))
        session.load(blob(4))
        assert session.vault.version == 4

    def test_needs_refresh(self, session):
        assert session.needs_refresh(1) is True
        session.load(blob(7))
        assert session.needs_refresh(7) is False
        assert session.needs_refresh(8) is True

    def test_uses_session_config(self, vault_key, account_chunk):
        session = VaultSession(
            "user@example.com",
            vault_key,
            LoginHash(b"0" * LoginHash.LEN),
            config=VaultConfig(orphan_policy="skip"),
        )
        vault = session.load(blob(1, pack_chunk(b"ACSN", b"1"), account_chunk("1")))
        assert [a.id for a in vault.accounts] == ["1"]


class TestAttachments:
    """Attachment decryption through the session keys."""

    def test_filename_and_body(self, session, encrypt_text, account_chunk):
        record = ("",) * 25 + (STORAGE_KEY, "1")
        attachment = pack_chunk(b"ATTA", b"".join(pack_item(i) for i in (
            "1-1", "1", "other:txt", "100000027282", "70", FILENAME,
        )))
        vault = session.load(blob(1, account_chunk("1", *record), attachment))
        (metadata,) = vault.attachments()

        assert session.attachment_filename(metadata) == "hello-world.txt"
        content_key = bytes.fromhex(
            "c99ed055093356fb3a0a8e20e34146b8740dfcd09072540096fe1aec329ebbdf"
        )
        body = encrypt_text("file contents", key=content_key)
        assert session.decrypt_attachment(body, metadata) == b"file contents"


class TestClose:
    """Tests for key wiping."""

    def test_close_wipes_keys(self, session):
        assert session.closed is False
        session.close()
        assert session.closed is True
        assert session.login_hash == bytes(LoginHash.LEN)

    def test_context_manager(self):
        with VaultSession.login(USERNAME, PASSWORD, iterations=1) as session:
            session.verify(SHA256_LOGIN)
        assert session.closed is True

    def test_load_after_close(self, session, encrypt, account_chunk):
        """A closed session refuses to parse instead of blanking every field."""
        raw = blob(5, account_chunk("1"), pack_chunk(b"ACNM", encrypt("github")))
        session.close()
        with pytest.raises(SessionClosed):
            session.load(raw)
        assert session.vault is None

    def test_load_after_close_keeps_cached_vault(self, session, encrypt, account_chunk):
        cached = session.load(blob(5, account_chunk("1"), pack_chunk(b"ACNM", encrypt("github"))))
        session.close()
        with pytest.raises(SessionClosed):
            session.load(blob(6, account_chunk("1"), pack_chunk(b"ACNM", encrypt("github"))))
        assert session.vault is cached
        assert session.vault.accounts[0].name == "github"

    def test_attachments_after_close(self, session):
        metadata = AttachmentMetadata(
            id="1-1", parent_account_id="1", mime_type="other:txt",
            storage_key=STORAGE_KEY, size=70, filename=FILENAME,
        )
        session.close()
        with pytest.raises(SessionClosed):
            session.attachment_filename(metadata)
        with pytest.raises(SessionClosed):
            session.decrypt_attachment(b"", metadata)
