"""Access to secrets from the environment or a JSON file, with caching."""

from __future__ import annotations

import enum
import json
import os
import secrets
import string
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .errors import ConfigurationError

_CHARSET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "!@#$%^&*"
_WEAK_EXACT = ("123456", "admin")
_WEAK_SUBSTRINGS = ("password", "secret")


class SecretsProvider(enum.Enum):
    ENVIRONMENT = "environment"
    FILE = "file"
    HASHICORP_VAULT = "hashicorp_vault"
    AWS_SECRETS_MANAGER = "aws_secrets_manager"
    AZURE_KEY_VAULT = "azure_key_vault"
    GOOGLE_SECRET_MANAGER = "google_secret_manager"


_UNSUPPORTED = {
    SecretsProvider.HASHICORP_VAULT: "Vault integration",
    SecretsProvider.AWS_SECRETS_MANAGER: "AWS Secrets Manager integration",
    SecretsProvider.AZURE_KEY_VAULT: "Azure Key Vault integration",
    SecretsProvider.GOOGLE_SECRET_MANAGER: "Google Secret Manager integration",
}


@dataclass
class VaultConfig:
    address: str
    token: str
    mount_path: str
    namespace: Optional[str] = None


@dataclass
class AwsSecretsConfig:
    region: str
    secret_name: str
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None


@dataclass
class AzureKeyVaultConfig:
    vault_url: str
    client_id: str
    client_secret: str
    tenant_id: str


@dataclass
class SecretsConfig:
    provider: SecretsProvider
    file_path: Optional[str] = None
    vault_config: Optional[VaultConfig] = None
    aws_config: Optional[AwsSecretsConfig] = None
    azure_config: Optional[AzureKeyVaultConfig] = None


class SecretManager:
    """Fetches secrets from a provider and caches them for ``cache_ttl`` seconds."""

    def __init__(
        self,
        provider: SecretsProvider,
        path: Union[str, os.PathLike, None] = None,
        cache_ttl: float = 300.0,
    ) -> None:
        if provider is SecretsProvider.FILE and path is None:
            raise ConfigurationError("File secrets provider requires a path")
        self.provider = provider
        self.path = None if path is None else Path(path)
        self._cache: dict[str, str] = {}
        self._cache_ttl = cache_ttl
        self._last_refresh = time.monotonic()

    async def get_secret(self, key: str) -> str:
        if key in self._cache and time.monotonic() - self._last_refresh < self._cache_ttl:
            return self._cache[key]

        value = self._fetch(key)
        self._cache[key] = value
        self._last_refresh = time.monotonic()
        return value

    async def refresh_cache(self) -> None:
        """Re-read every cached key whose cache entry has expired."""
        for key in list(self._cache):
            await self.get_secret(key)

    def clear_cache(self) -> None:
        self._cache.clear()

    def _fetch(self, key: str) -> str:
        if self.provider is SecretsProvider.ENVIRONMENT:
            return self._from_env(key)
        if self.provider is SecretsProvider.FILE:
            return self._from_file(key)
        raise ConfigurationError(f"{_UNSUPPORTED[self.provider]} is not available")

    @staticmethod
    def _from_env(key: str) -> str:
        try:
            return os.environ[key]
        except KeyError:
            raise ConfigurationError(f"Environment variable {key} not found") from None

    def _from_file(self, key: str) -> str:
        assert self.path is not None
        if not self.path.exists():
            raise ConfigurationError(f"Secrets file {self.path} not found")
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Failed to read secrets file: {exc}") from exc
        try:
            data = json.loads(content)
        except ValueError as exc:
            raise ConfigurationError(f"Failed to parse secrets file: {exc}") from exc
        if not isinstance(data, dict) or not all(
            isinstance(v, str) for v in data.values()
        ):
            raise ConfigurationError(
                "Failed to parse secrets file: expected an object of strings"
            )
        try:
            return data[key]
        except KeyError:
            raise ConfigurationError(f"Secret {key} not found in file") from None


def validate_secret_strength(secret: str, min_length: int) -> str:
    """Return ``secret`` unchanged, or raise ConfigurationError if it is weak."""
    if len(secret.encode("utf-8")) < min_length:
        raise ConfigurationError(
            f"Secret must be at least {min_length} characters long"
        )
    lowered = secret.lower()
    if any(word in lowered for word in _WEAK_SUBSTRINGS) or secret in _WEAK_EXACT:
        raise ConfigurationError("Secret contains common weak patterns")
    return secret


def generate_secure_secret(length: int) -> str:
    """Return a random string of ``length`` characters from a fixed alphabet."""
    return "".join(secrets.choice(_CHARSET) for _ in range(length))