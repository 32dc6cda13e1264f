"""Adapter registry and executor.

The executor sits between the dispatcher and provider adapters. It
looks up the adapter for a provider, checks that a credential is
present, retries recoverable failures, and turns anything an adapter
raises into a categorized AdapterResult so that nothing escapes past
this boundary.
"""

import logging
import time
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_none,
)

from relayplane.exceptions import ErrorType
from relayplane.protocols.adapter import AdapterError, AdapterRequest, AdapterResult, AIAdapter

logger = logging.getLogger(__name__)

KEYLESS_PROVIDERS = frozenset({"local"})

_RATE_LIMIT_MARKERS = ("rate limit", "429", "too many requests")
_TIMEOUT_MARKERS = ("timeout", "timed out", "etimedout", "econnrefused")
_AUTH_MARKERS = ("unauthorized", "401", "403", "invalid api key")
_SERVER_MARKERS = ("500", "502", "503")


class AdapterRegistry:
    """Registry of provider adapters, keyed by provider name."""

    def __init__(self) -> None:
        self._adapters: dict[str, AIAdapter] = {}

    def register(self, provider: str, adapter: AIAdapter) -> None:
        """Register an adapter for a provider, replacing any previous one."""
        self._adapters[provider] = adapter

    def get(self, provider: str) -> AIAdapter | None:
        return self._adapters.get(provider)

    def require(self, provider: str) -> AIAdapter:
        """Get an adapter by provider, raising if not registered."""
        adapter = self.get(provider)
        if adapter is None:
            available = ", ".join(sorted(self._adapters)) or "(none)"
            raise KeyError(f"Adapter '{provider}' not found. Available: {available}")
        return adapter

    def list_all(self) -> list[str]:
        return list(self._adapters)


def normalize_error(error: Any) -> AdapterError:
    """Categorize anything an adapter raised or reported.

    Structured errors pass through unchanged. Exceptions are classified
    by type and message: rate limits, timeouts and 5xx responses are
    recoverable, authentication failures are not.
    """
    if isinstance(error, AdapterError):
        return error
    if isinstance(error, dict) and "type" in error and "message" in error:
        return AdapterError(
            type=str(error["type"]),
            message=str(error["message"]),
            recoverable=bool(error.get("recoverable", False)),
        )
    if not isinstance(error, BaseException):
        return AdapterError(type=ErrorType.UNKNOWN.value, message=str(error))

    message = str(error) or type(error).__name__
    lowered = message.lower()

    if isinstance(error, ImportError):
        return AdapterError(type=ErrorType.MISSING_DEPENDENCY.value, message=message)
    if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return AdapterError(type=ErrorType.RATE_LIMIT.value, message=message, recoverable=True)
    if isinstance(error, (TimeoutError, ConnectionRefusedError)) or any(
        marker in lowered for marker in _TIMEOUT_MARKERS
    ):
        return AdapterError(type=ErrorType.TIMEOUT.value, message=message, recoverable=True)
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AdapterError(type=ErrorType.AUTHENTICATION.value, message=message)
    if any(marker in lowered for marker in _SERVER_MARKERS):
        return AdapterError(type=ErrorType.PROVIDER.value, message=message, recoverable=True)
    return AdapterError(type=ErrorType.PROVIDER.value, message=message)


def _failed(error_type: ErrorType, message: str, started: float) -> AdapterResult:
    return AdapterResult(
        success=False,
        error=AdapterError(type=error_type.value, message=message),
        duration_ms=(time.perf_counter() - started) * 1000,
    )


def _is_recoverable(result: AdapterResult) -> bool:
    return not result.success and result.error is not None and result.error.recoverable


def _last_result(retry_state: RetryCallState) -> AdapterResult:
    return retry_state.outcome.result()  # type: ignore[union-attr]


class AdapterExecutor:
    """Routes AI step requests to registered adapters.

    Usage:
        registry = AdapterRegistry()
        registry.register("openai", OpenAIAdapter())
        result = await AdapterExecutor(registry).execute(request)
    """

    def __init__(self, registry: AdapterRegistry | None = None) -> None:
        self.registry = registry or AdapterRegistry()

    async def execute(self, request: AdapterRequest) -> AdapterResult:
        """Execute a request, retrying recoverable failures.

        Never raises: every failure comes back as an unsuccessful result.
        """
        started = time.perf_counter()

        if not request.provider:
            return _failed(ErrorType.VALIDATION, "Request must include a provider", started)

        adapter = self.registry.get(request.provider)
        if adapter is None:
            registered = ", ".join(sorted(self.registry.list_all())) or "(none)"
            return _failed(
                ErrorType.VALIDATION,
                f"No adapter registered for provider: {request.provider}. "
                f"Registered providers: {registered}",
                started,
            )

        if request.provider not in KEYLESS_PROVIDERS and not request.api_key:
            return _failed(
                ErrorType.VALIDATION,
                f"No API key provided for provider: {request.provider}",
                started,
            )

        policy = request.retry
        attempts = 1 + (policy.max_retries if policy else 0)
        if policy and policy.backoff_ms:
            wait = wait_exponential(multiplier=policy.backoff_ms / 1000, max=60)
        else:
            wait = wait_none()

        def log_retry(retry_state: RetryCallState) -> None:
            result = retry_state.outcome.result()  # type: ignore[union-attr]
            logger.info(
                "Retrying %s (attempt %d/%d): %s",
                request.step_name or request.model,
                retry_state.attempt_number + 1,
                attempts,
                result.error.message if result.error else "unknown error",
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait,
            retry=retry_if_result(_is_recoverable),
            before_sleep=log_retry,
            retry_error_callback=_last_result,
        )
        result: AdapterResult = await retrying(self._call, adapter, request)
        if not result.duration_ms:
            result = result.model_copy(
                update={"duration_ms": (time.perf_counter() - started) * 1000}
            )
        return result

    async def _call(self, adapter: AIAdapter, request: AdapterRequest) -> AdapterResult:
        started = time.perf_counter()
        try:
            result = await adapter.execute(request)
            if isinstance(result, AdapterResult):
                return result
            # A dict carrying "success" is a result envelope; any other dict is output
            if isinstance(result, dict) and "success" in result:
                return AdapterResult.model_validate(result)
            return AdapterResult(success=True, output=result)
        except Exception as e:
            logger.debug("Adapter for %s raised %r", request.provider, e)
            return AdapterResult(
                success=False,
                error=normalize_error(e),
                duration_ms=(time.perf_counter() - started) * 1000,
            )
