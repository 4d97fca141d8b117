"""Fernet encryption of token values stored at rest."""

from cryptography.fernet import Fernet, InvalidToken

from oauthcore.core.errors import ConfigurationError


class TokenCipher:
    """Encrypts and decrypts token strings with a Fernet key."""

    def __init__(self, fernet_key: str) -> None:
        if not fernet_key:
            raise ConfigurationError("token encryption key is not configured")
        try:
            self._fernet = Fernet(fernet_key.encode())
        except ValueError as exc:
            msg = "token encryption key is not a Fernet key"
            raise ConfigurationError(msg) from exc

    def encrypt(self, value: str) -> str:
        """Encrypt a token value for database storage."""
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, encrypted: str) -> str:
        """Decrypt a stored token value.

        Raises:
            ConfigurationError: the stored value was written under another key.
        """
        try:
            return self._fernet.decrypt(encrypted.encode()).decode()
        except InvalidToken as exc:
            raise ConfigurationError("stored token cannot be decrypted") from exc
