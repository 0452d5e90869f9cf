"""Shared fixtures for the vault_blob test-suite."""
import os
import base64

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from vault_blob.chunks import pack_chunk, pack_item
from vault_blob.keys import DecryptionKey

# Decryption key of a throwaway upstream account whose password has since
# been changed; the known-answer vectors below were produced with it.
VAULT_KEY_HEX = "08c9bb2d9b48b39efb774e3fef32a38cb0d46c5c6c75f7f9d65259bfd374e120"


def _pad(plaintext: bytes) -> bytes:
    padder = padding.PKCS7(128).padder()
    return padder.update(plaintext) + padder.finalize()


def _encrypt_cbc(plaintext, key: bytes, iv: bytes = None) -> bytes:
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    iv = iv or os.urandom(16)
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return b"!" + iv + encryptor.update(_pad(plaintext)) + encryptor.finalize()


def _encrypt_ecb(plaintext, key: bytes, pad: bool = True) -> bytes:
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    if pad:
        plaintext = _pad(plaintext)
    encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
    return encryptor.update(plaintext) + encryptor.finalize()


def _to_text(ciphertext: bytes) -> str:
    """Binary IV-prefixed layout to the textual ``!iv|data`` form."""
    iv, data = ciphertext[1:17], ciphertext[17:]
    return "!{}|{}".format(
        base64.b64encode(iv).decode("ascii"),
        base64.b64encode(data).decode("ascii"),
    )


@pytest.fixture
def raw_key() -> bytes:
    return bytes.fromhex(VAULT_KEY_HEX)


@pytest.fixture
def vault_key() -> DecryptionKey:
    return DecryptionKey.from_hex(VAULT_KEY_HEX)


@pytest.fixture
def encrypt(raw_key):
    """CBC-encrypt a value with the vault key (binary layout)."""
    def _encrypt(plaintext, key: bytes = None, iv: bytes = None) -> bytes:
        return _encrypt_cbc(plaintext, key or raw_key, iv)
    return _encrypt


@pytest.fixture
def encrypt_ecb(raw_key):
    """ECB-encrypt a value with the vault key."""
    def _encrypt(plaintext, key: bytes = None, pad: bool = True) -> bytes:
        return _encrypt_ecb(plaintext, key or raw_key, pad)
    return _encrypt


@pytest.fixture
def encrypt_text(raw_key):
    """CBC-encrypt a value and return the textual ``!iv|data`` form."""
    def _encrypt(plaintext, key: bytes = None) -> str:
        return _to_text(_encrypt_cbc(plaintext, key or raw_key))
    return _encrypt


@pytest.fixture
def bad_padding(encrypt_ecb) -> bytes:
    """A single ECB block that decrypts to an invalid pad byte."""
    return encrypt_ecb(b"not-padded-data\x00", pad=False)


@pytest.fixture
def account_chunk():
    """Build an ACCT chunk from an id and the record items that follow it."""
    def _build(account_id: str, *items) -> bytes:
        payload = pack_item(account_id) + b"".join(pack_item(i) for i in items)
        return pack_chunk(b"ACCT", payload)
    return _build
