import json

import pytest

from astor.errors import ConfigurationError
from astor.secret_manager import (
    SecretManager,
    SecretsProvider,
    generate_secure_secret,
    validate_secret_strength,
)

ALPHABET = set(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!@#$%^&*"
)


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.mark.asyncio
async def test_environment_provider(monkeypatch):
    monkeypatch.setenv("ASTOR_TEST_TOKEN", "token")
    manager = SecretManager(SecretsProvider.ENVIRONMENT)
    assert await manager.get_secret("ASTOR_TEST_TOKEN") == "token"


@pytest.mark.asyncio
async def test_environment_missing(monkeypatch):
    monkeypatch.delenv("ASTOR_MISSING_VAR", raising=False)
    manager = SecretManager(SecretsProvider.ENVIRONMENT)
    with pytest.raises(ConfigurationError, match="ASTOR_MISSING_VAR"):
        await manager.get_secret("ASTOR_MISSING_VAR")


@pytest.mark.asyncio
async def test_file_provider_reads_key(tmp_path):
    path = tmp_path / "secrets.json"
    _write(path, {"DB_PASSWORD": "password"})
    manager = SecretManager(SecretsProvider.FILE, path)
    assert await manager.get_secret("DB_PASSWORD") == "password"
    with pytest.raises(ConfigurationError, match="not found in file"):
        await manager.get_secret("OTHER")


@pytest.mark.asyncio
async def test_file_provider_missing_and_malformed(tmp_path):
    missing = SecretManager(SecretsProvider.FILE, tmp_path / "nope.json")
    with pytest.raises(ConfigurationError, match="not found"):
        await missing.get_secret("K")
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="parse"):
        await SecretManager(SecretsProvider.FILE, bad).get_secret("K")


def test_file_provider_requires_path():
    with pytest.raises(ConfigurationError):
        SecretManager(SecretsProvider.FILE)


@pytest.mark.asyncio
async def test_cache_and_clear(tmp_path):
    path = tmp_path / "secrets.json"
    _write(path, {"API": "password"})
    manager = SecretManager(SecretsProvider.FILE, path)
    assert await manager.get_secret("API") == "password"
    _write(path, {"API": "token"})
    assert await manager.get_secret("API") == "password"
    manager.clear_cache()
    assert await manager.get_secret("API") == "token"


@pytest.mark.asyncio
async def test_expired_cache_refetches(tmp_path):
    path = tmp_path / "secrets.json"
    _write(path, {"API": "password"})
    manager = SecretManager(SecretsProvider.FILE, path, cache_ttl=0)
    assert await manager.get_secret("API") == "password"
    _write(path, {"API": "token"})
    assert await manager.get_secret("API") == "token"


@pytest.mark.asyncio
async def test_refresh_cache_propagates_errors(tmp_path):
    path = tmp_path / "secrets.json"
    _write(path, {"API": "password"})
    manager = SecretManager(SecretsProvider.FILE, path, cache_ttl=0)
    await manager.get_secret("API")
    path.unlink()
    with pytest.raises(ConfigurationError):
        await manager.refresh_cache()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "provider",
    [
        SecretsProvider.HASHICORP_VAULT,
        SecretsProvider.AWS_SECRETS_MANAGER,
        SecretsProvider.AZURE_KEY_VAULT,
        SecretsProvider.GOOGLE_SECRET_MANAGER,
    ],
)
async def test_remote_providers_raise(provider):
    with pytest.raises(ConfigurationError):
        await SecretManager(provider).get_secret("K")


def test_validate_secret_strength_too_short():
    with pytest.raises(ConfigurationError, match="at least 8 characters"):
        validate_secret_strength("token", 8)


@pytest.mark.parametrize("weak", ["password", "secret"])
def test_validate_secret_strength_weak_patterns(weak):
    with pytest.raises(ConfigurationError, match="weak patterns"):
        validate_secret_strength(weak, 4)


def test_validate_secret_strength_accepts():
    assert validate_secret_strength("placeholder", 8) == "placeholder"


def test_generate_secure_secret():
    first = generate_secure_secret(32)
    second = generate_secure_secret(32)
    assert len(first) == 32
    assert set(first) <= ALPHABET
    assert first != second
    assert generate_secure_secret(0) == ""