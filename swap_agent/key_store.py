"""
Encrypted storage of delegated wallet keys using Fernet

Each owner's key is encrypted with a Fernet key derived (PBKDF2) from the
store secret, the owner address and a random per-entry salt. The backend is
any str -> str mapping: a dict in tests, a database-backed mapping in
production.
"""
import os
import base64
import logging
from typing import MutableMapping, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import KeyStoreError

logger = logging.getLogger(__name__)

SALT_BYTES = 16
KDF_ITERATIONS = 200_000


class EncryptedKeyStore:
    """Owner address -> private key, encrypted at rest"""

    def __init__(
        self,
        secret: str,
        backend: Optional[MutableMapping[str, str]] = None,
        iterations: int = KDF_ITERATIONS,
    ):
        if not secret:
            raise KeyStoreError("Key store secret must not be empty")
        self._secret = secret.encode()
        self.backend = backend if backend is not None else {}
        self.iterations = iterations

    @staticmethod
    def _owner_key(owner: str) -> str:
        return owner.lower()

    def _fernet(self, owner: str, salt: bytes) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.iterations,
        )
        material = self._secret + b":" + self._owner_key(owner).encode()
        return Fernet(base64.urlsafe_b64encode(kdf.derive(material)))

    def store_key(self, owner: str, private_key: str):
        salt = os.urandom(SALT_BYTES)
        token = self._fernet(owner, salt).encrypt(private_key.encode())
        self.backend[self._owner_key(owner)] = (
            base64.urlsafe_b64encode(salt).decode() + ":" + token.decode()
        )
        logger.info(f"Stored wallet key for {owner}")

    def load_key(self, owner: str) -> str:
        """
        Decrypt the key stored for owner

        Raises:
            KeyStoreError: no entry, malformed entry, or wrong secret/tampering
        """
        entry = self.backend.get(self._owner_key(owner))
        if entry is None:
            raise KeyStoreError(f"No wallet key stored for {owner}")

        try:
            salt_b64, token = entry.split(":", 1)
            salt = base64.urlsafe_b64decode(salt_b64.encode())
            return self._fernet(owner, salt).decrypt(token.encode()).decode()
        except InvalidToken as e:
            raise KeyStoreError(f"Wallet key for {owner} could not be decrypted") from e
        except ValueError as e:
            raise KeyStoreError(f"Malformed key store entry for {owner}") from e

    def has_key(self, owner: str) -> bool:
        return self._owner_key(owner) in self.backend

    def delete_key(self, owner: str) -> bool:
        removed = self.backend.pop(self._owner_key(owner), None) is not None
        if removed:
            logger.info(f"Deleted wallet key for {owner}")
        return removed
