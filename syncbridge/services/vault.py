"""Credential storage for per-sync API keys"""
import base64
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from syncbridge.config import settings
from syncbridge.errors import ConfigurationError
from syncbridge.services.events import Side


class Encryption:
    """Encrypt and decrypt API keys at rest."""

    def __init__(self, key: Optional[str] = None, key_path: Optional[str] = None):
        # Lazily initialized to avoid filesystem writes at import time.
        self._configured_key = key
        self._key_path = key_path
        self._cipher: Optional[Fernet] = None

    def _get_or_create_key(self) -> bytes:
        """Get or create an encryption key."""
        # - If a key is configured (ENCRYPTION_KEY), use it directly.
        # - Otherwise read/write the key file (ENCRYPTION_KEY_PATH).
        if self._configured_key:
            key = self._configured_key.encode("utf-8")
            Fernet(key)
            return key

        key_file = self._key_path or settings.encryption_key_path
        os.makedirs(os.path.dirname(key_file) or ".", exist_ok=True)

        if os.path.exists(key_file):
            with open(key_file, "rb") as f:
                key = f.read().strip()
            Fernet(key)
            return key

        key = Fernet.generate_key()
        with open(key_file, "wb") as f:
            f.write(key)
        try:
            os.chmod(key_file, 0o600)
        except OSError:
            pass
        return key

    def _get_cipher(self) -> Fernet:
        if self._cipher is None:
            self._cipher = Fernet(self._get_or_create_key())
        return self._cipher

    def encrypt(self, data: str) -> str:
        """Encrypt a string and return base64 encoded result."""
        encrypted = self._get_cipher().encrypt(data.encode())
        return base64.b64encode(encrypted).decode()

    def decrypt(self, encrypted_data: str) -> str:
        """Decrypt a base64 encoded string."""
        try:
            encrypted = base64.b64decode(encrypted_data.encode())
            return self._get_cipher().decrypt(encrypted).decode()
        except (InvalidToken, ValueError) as e:
            raise ValueError("Failed to decrypt payload (invalid key or ciphertext)") from e


class CredentialVault:
    """Resolve the API key to use for one side of a sync.

    Precedence: global override from the environment, then the sync's own
    encrypted key. Anonymous Linear access (GitHub senders without a sync)
    always uses the application admin key.
    """

    def __init__(self, encryption: Encryption, config=settings):
        self.encryption = encryption
        self.config = config

    def seal(self, secret: str) -> str:
        return self.encryption.encrypt(secret)

    def get_credential(self, side: Side, sync, *, anonymous: bool = False) -> str:
        if side is Side.LINEAR:
            if anonymous:
                if not self.config.linear_application_admin_key:
                    raise ConfigurationError("No Linear application key configured for anonymous users.")
                return self.config.linear_application_admin_key
            if self.config.linear_api_key:
                return self.config.linear_api_key
            return self.encryption.decrypt(sync.linear_api_key)

        if self.config.github_api_key:
            return self.config.github_api_key
        return self.encryption.decrypt(sync.github_api_key)


encryption = Encryption(key=settings.encryption_key)
vault = CredentialVault(encryption)
