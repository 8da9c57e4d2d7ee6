from __future__ import annotations

import logging
import os
import re

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from sheet_ingest.errors import ConfigurationError, CredentialError
from sheet_ingest.models.config_models import CentralStoreConfig, ProjectRecord, ResolvedCredentials

"""Tenant credential resolver.

Routing rule:
- normalized project address present and different from the normalized
  central address -> external: the project's own secret (decrypted)
- otherwise -> central: shared secret; only when no shared secret is
  configured, fall back to decrypting the project's secret

Secrets are stored as ``<iv hex>:<ciphertext hex>`` (AES-256-CBC, PKCS7),
key = first 32 characters of the encryption key, UTF-8 encoded.
Error messages never contain ciphertext, key or plaintext.
"""

__all__ = [
    "normalize_address",
    "decrypt_secret",
    "encrypt_secret",
    "CredentialResolver",
]

logger = logging.getLogger(__name__)

_DASHBOARD_URL = re.compile(r"supabase\.com/dashboard/project/([a-z0-9]+)", re.IGNORECASE)
_KEY_LENGTH = 32
_BLOCK_BITS = 128


def normalize_address(url: str | None) -> str | None:
    """Rewrite dashboard-style project URLs to the API address.

    ``https://supabase.com/dashboard/project/<ref>/...`` -> ``https://<ref>.supabase.co``
    Other addresses only lose trailing slashes.
    """
    if not url:
        return url
    m = _DASHBOARD_URL.search(url)
    if m:
        return f"https://{m.group(1)}.supabase.co"
    return url.strip().rstrip("/")


def _key_bytes(encryption_key: str | None) -> bytes:
    if not encryption_key:
        raise CredentialError("Encryption key is not configured")
    key = encryption_key[:_KEY_LENGTH].encode("utf-8")
    if len(key) != _KEY_LENGTH:
        raise CredentialError("Encryption key must provide 32 bytes")
    return key


def decrypt_secret(ciphertext: str, encryption_key: str | None) -> str:
    key = _key_bytes(encryption_key)
    iv_hex, sep, body_hex = ciphertext.partition(":")
    if not sep:
        raise CredentialError("Could not decrypt the project secret (malformed value)")
    try:
        iv = bytes.fromhex(iv_hex)
        body = bytes.fromhex(body_hex)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()
        unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
    except ValueError:
        # 元例外は秘密情報を含み得るため連鎖させない
        raise CredentialError("Could not decrypt the project secret") from None


def encrypt_secret(plaintext: str, encryption_key: str, iv: bytes | None = None) -> str:
    """Inverse of decrypt_secret (project configuration tooling / tests)."""
    key = _key_bytes(encryption_key)
    iv = iv or os.urandom(16)
    padder = padding.PKCS7(_BLOCK_BITS).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    body = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}:{body.hex()}"


class CredentialResolver:
    """Decide central vs. external routing for a project.

    The central configuration is passed in once and never re-read.
    """

    def __init__(self, central: CentralStoreConfig) -> None:
        self.central = central
        self._central_address = normalize_address(central.address)

    def is_external(self, project: ProjectRecord) -> bool:
        address = normalize_address(project.datastore_url)
        return bool(address) and address != self._central_address

    def resolve(self, project: ProjectRecord) -> ResolvedCredentials:
        if self.is_external(project):
            address = normalize_address(project.datastore_url)
            if not project.encrypted_secret:
                logger.error("external project %s has no secret configured", project.project_id)
                raise ConfigurationError(
                    "No service key configured for this project",
                    "Update the connection settings of the project.",
                )
            secret = decrypt_secret(project.encrypted_secret, self.central.encryption_key)
            logger.info("routing project %s to external datastore %s", project.project_id, address)
            return ResolvedCredentials(address=address, secret=secret, is_central=False)

        if not self._central_address:
            raise ConfigurationError(
                "Central datastore address is not configured",
                "Set CENTRAL_DATASTORE_URL.",
            )
        secret = self.central.secret
        if not secret:
            try:
                if not project.encrypted_secret:
                    raise CredentialError("no project secret")
                secret = decrypt_secret(project.encrypted_secret, self.central.encryption_key)
            except CredentialError:
                raise ConfigurationError(
                    "Central datastore secret is not configured",
                    "Set CENTRAL_DATASTORE_SECRET or configure a project service key.",
                ) from None
        logger.info("routing project %s to central datastore", project.project_id)
        return ResolvedCredentials(address=self._central_address, secret=secret, is_central=True)
