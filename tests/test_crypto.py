"""
Tests for field decryption.

Tests cover:
- Encoding detection (empty, CBC, ECB, plaintext)
- Known-answer CBC vector from a real blob
- PKCS#7 padding validation
- Textual ``!iv|data`` and plain base64 forms
"""
import base64

import pytest

from vault_blob.crypto import (
    Encoding,
    cipher_unbase64,
    decrypt,
    decrypt_base64,
    detect_encoding,
    unpad,
)
from vault_blob.exceptions import DecodeError, PaddingError, SessionClosed

# "Example password without folder", CBC-encrypted with the conftest key
KNOWN_CBC = bytes.fromhex(
    "210b97baa5d8a53a9acfeedb8a131ab28d5bf11f1c45bd27050aa14c390af089"
    "0b7c2a81d57bc0b6b2c254af491368897b"
)
# "github", ECB-encrypted with the conftest key
KNOWN_ECB = bytes.fromhex("bd2f02338e51404fc67e63f724d49091")


class TestDetectEncoding:
    """Tests for detect_encoding()."""

    def test_empty(self):
        assert detect_encoding(b"") is Encoding.EMPTY

    def test_cbc_with_marker(self):
        assert detect_encoding(KNOWN_CBC) is Encoding.CBC

    def test_single_block_without_marker_is_ecb(self):
        assert detect_encoding(KNOWN_ECB) is Encoding.ECB

    def test_marker_with_wrong_length_is_not_cbc(self):
        """A leading '!' alone does not make a value CBC."""
        assert detect_encoding(b"!hello") is Encoding.PLAINTEXT
        assert detect_encoding(b"!" + bytes(16)) is Encoding.PLAINTEXT

    def test_unstructured_is_plaintext(self):
        assert detect_encoding(b"http://example.com") is Encoding.PLAINTEXT


class TestDecrypt:
    """Tests for decrypt()."""

    def test_known_cbc_vector(self, vault_key):
        """A CBC value lifted from a real blob decrypts to its plaintext."""
        assert decrypt(KNOWN_CBC, vault_key) == b"Example password without folder"

    def test_cbc_round_trip(self, vault_key, encrypt):
        plaintext = "correct horse battery staple " * 3
        ciphertext = encrypt(plaintext)
        assert decrypt(ciphertext, vault_key) == plaintext.encode("utf-8")

    def test_ecb_single_block_needs_no_iv(self, vault_key):
        assert decrypt(KNOWN_ECB, vault_key) == b"github"

    def test_ecb_multi_block(self, vault_key, encrypt_ecb):
        """Legacy ECB fields longer than one block still decode."""
        plaintext = b"a legacy field longer than a block"
        assert decrypt(encrypt_ecb(plaintext), vault_key) == plaintext

    def test_empty_input(self, vault_key):
        assert decrypt(b"", vault_key) == b""

    def test_plaintext_passthrough(self, vault_key):
        assert decrypt(b"hello", vault_key) == b"hello"

    def test_plaintext_rejected_when_disallowed(self, vault_key):
        with pytest.raises(DecodeError):
            decrypt(b"hello", vault_key, allow_plaintext=False)

    def test_accepts_raw_bytes_key(self, raw_key):
        assert decrypt(KNOWN_ECB, raw_key) == b"github"

    def test_bad_padding_raises(self, vault_key, bad_padding):
        with pytest.raises(PaddingError):
            decrypt(bad_padding, vault_key)

    def test_padding_error_is_decode_error(self, vault_key, bad_padding):
        with pytest.raises(DecodeError):
            decrypt(bad_padding, vault_key)

    def test_unusable_key(self):
        with pytest.raises(DecodeError):
            decrypt(KNOWN_ECB, b"short key")

    @pytest.mark.parametrize("length", [16, 24, 31, 33])
    def test_only_aes256_keys(self, raw_key, length):
        """Shorter AES key sizes are rejected rather than silently used."""
        key = (raw_key * 2)[:length]
        with pytest.raises(DecodeError):
            decrypt(KNOWN_ECB, key)

    def test_wiped_key(self, vault_key):
        vault_key.wipe()
        with pytest.raises(SessionClosed):
            decrypt(KNOWN_ECB, vault_key)
        assert not issubclass(SessionClosed, DecodeError)


class TestUnpad:
    """Tests for PKCS#7 unpadding."""

    def test_valid_padding(self):
        assert unpad(b"abc" + b"\x0d" * 13) == b"abc"

    def test_full_block_of_padding(self):
        assert unpad(b"\x10" * 16) == b""

    @pytest.mark.parametrize("block", [
        b"A" * 15 + b"\x00",          # pad value zero
        b"A" * 15 + b"\x11",          # pad value above block size
        b"A" * 13 + b"\x01\x02\x03",  # inconsistent pad bytes
    ])
    def test_invalid_padding(self, block):
        with pytest.raises(PaddingError):
            unpad(block)


class TestTextualForms:
    """Tests for cipher_unbase64() and decrypt_base64()."""

    def test_iv_form(self):
        iv = base64.b64encode(KNOWN_CBC[1:17]).decode()
        data = base64.b64encode(KNOWN_CBC[17:]).decode()
        assert cipher_unbase64(f"!{iv}|{data}") == KNOWN_CBC

    def test_plain_base64(self):
        assert cipher_unbase64(base64.b64encode(KNOWN_ECB)) == KNOWN_ECB

    def test_decrypt_base64(self, vault_key, encrypt_text):
        assert decrypt_base64(encrypt_text("hello-world"), vault_key) == b"hello-world"

    def test_decrypt_base64_empty(self, vault_key):
        assert decrypt_base64("", vault_key) == b""

    def test_missing_separator(self):
        with pytest.raises(DecodeError):
            cipher_unbase64("!AAAAAAAAAAAAAAAAAAAAAA==")

    def test_invalid_base64(self):
        with pytest.raises(DecodeError):
            cipher_unbase64("!not*base64|also not")
        with pytest.raises(DecodeError):
            cipher_unbase64("%%%")
