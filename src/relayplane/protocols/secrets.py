"""SecretProvider protocol definition."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class SecretProvider(Protocol):
    """Protocol for secret providers.

    Backs the environment tier of credential resolution.
    """

    def get_secret(self, key: str, default: str | None = None) -> str | None:
        """Get a secret value by key.

        Args:
            key: Secret identifier (e.g., "OPENAI_API_KEY")
            default: Value to return if secret not found

        Returns:
            Secret value, or default if not found
        """
        ...

    def has_secret(self, key: str) -> bool:
        """Check if a non-empty secret exists."""
        ...
