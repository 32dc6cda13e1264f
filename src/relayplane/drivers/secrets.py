"""Secret provider implementations.

These back the environment tier of credential resolution: a provider's
API key is looked up under its environment variable name.
"""

import os
from pathlib import Path

from dotenv import dotenv_values, find_dotenv

from relayplane.protocols.secrets import SecretProvider


class EnvVarSecretProvider:
    """Reads secrets from os.environ. Empty values count as missing."""

    def get_secret(self, key: str, default: str | None = None) -> str | None:
        return os.environ.get(key) or default

    def has_secret(self, key: str) -> bool:
        return bool(os.environ.get(key))


class DotEnvSecretProvider:
    """Reads secrets from the nearest .env file.

    The file is located and parsed once, on first lookup. Values are
    never written back into os.environ.
    """

    def __init__(self, env_file: Path | None = None) -> None:
        self._env_file = env_file
        self._secrets: dict[str, str] | None = None

    def _load(self) -> dict[str, str]:
        if self._secrets is None:
            path = self._env_file
            if path is None:
                found = find_dotenv(usecwd=True)
                path = Path(found) if found else None
            values = dotenv_values(path) if path and path.exists() else {}
            self._secrets = {k: v for k, v in values.items() if v}
        return self._secrets

    def get_secret(self, key: str, default: str | None = None) -> str | None:
        return self._load().get(key, default)

    def has_secret(self, key: str) -> bool:
        return key in self._load()


class DictSecretProvider:
    """Secrets from an in-memory mapping, for tests and embedding."""

    def __init__(self, secrets: dict[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def get_secret(self, key: str, default: str | None = None) -> str | None:
        return self._secrets.get(key) or default

    def has_secret(self, key: str) -> bool:
        return bool(self._secrets.get(key))


class ChainedSecretProvider:
    """Tries each provider in order until a secret is found.

    The default chain is environment variables, then .env.
    """

    def __init__(self, providers: list[SecretProvider]) -> None:
        self._providers = providers

    def get_secret(self, key: str, default: str | None = None) -> str | None:
        for provider in self._providers:
            value = provider.get_secret(key)
            if value:
                return value
        return default

    def has_secret(self, key: str) -> bool:
        return any(p.has_secret(key) for p in self._providers)


def default_secret_provider() -> ChainedSecretProvider:
    return ChainedSecretProvider([EnvVarSecretProvider(), DotEnvSecretProvider()])
