"""Vault Blob Meta information.
   Vault Blob derives vault keys and decodes encrypted password-vault blobs.
"""
__title__ = 'vault_blob'
__description__ = (
   'Vault Blob derives vault keys and decodes encrypted '
   'password-vault blobs into structured accounts.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/vault-blob'
