"""
Rotating multi-key client.

Wraps one provider call per request with key selection, bounded rotation on
quota errors, usage accounting and an offline fallback:

    SELECT -> CALL -> SUCCESS
                   -> quota error: rotate to the least-used untried key, CALL again
                      (at most max_rotations times)
                   -> validation / transient error: propagate
           -> no eligible key, rotations spent or key store down: FALLBACK

Rotation state (the set of keys tried) lives in each invoke() call, so
concurrent requests never share a rotation pointer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from mvp_planner_server.exceptions import (
    KeyStoreError,
    ProviderValidationError,
    QuotaExceededError,
    TransientProviderError,
)
from mvp_planner_server.key_manager import KeySelector, UsageAccountant
from mvp_planner_server.logging_config import get_logger, log_fallback_used, log_key_rotation
from mvp_planner_server.providers import ProviderAdapter

logger = get_logger(__name__)

DEFAULT_MAX_ROTATIONS = 1


class CallOutcome(str, Enum):
    """Result of one underlying provider call."""
    SUCCESS = "success"
    QUOTA_EXCEEDED = "quota-exceeded"
    TRANSIENT_ERROR = "transient-error"
    VALIDATION_ERROR = "validation-error"


@dataclass
class CallAttempt:
    """One outbound request made while serving an invoke() call."""
    provider: str
    selected_key_id: Any
    outcome: CallOutcome
    retries_used: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "selected_key_id": self.selected_key_id,
            "outcome": self.outcome.value,
            "retries_used": self.retries_used,
        }


@dataclass
class InvocationResult:
    """Value returned by invoke() plus how it was obtained."""
    value: Any
    provider: str
    degraded: bool = False
    key_id: Any = None
    attempts: List[CallAttempt] = field(default_factory=list)
    fallback_reason: Optional[str] = None


@dataclass
class InvocationStats:
    """Counters for the metrics endpoint."""
    invocations: int = 0
    successes: int = 0
    rotations: int = 0
    fallbacks: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "invocations": self.invocations,
            "successes": self.successes,
            "rotations": self.rotations,
            "fallbacks": self.fallbacks,
            "errors": self.errors,
        }


class RotatingClient:
    """
    Provider calls with key rotation and fallback.

    Usage:
        client = RotatingClient(
            selector, accountant,
            adapters={"content-gen": GeminiContentProvider()},
            fallbacks={"content-gen": fallback_content},
        )
        result = await client.invoke("content-gen", TextGenerationRequest(prompt))
        if result.degraded:
            ...
    """

    def __init__(
        self,
        selector: KeySelector,
        accountant: UsageAccountant,
        adapters: Dict[str, ProviderAdapter],
        fallbacks: Dict[str, Callable[[Any], Any]],
        max_rotations: int = DEFAULT_MAX_ROTATIONS,
    ):
        """
        Initialize RotatingClient.

        Args:
            selector: Key selector shared by all providers
            accountant: Usage accountant shared by all providers
            adapters: Provider name -> adapter performing the call
            fallbacks: Provider name -> offline substitute taking the request
            max_rotations: Extra attempts allowed after a quota error

        Raises:
            ValueError: If an adapter has no fallback
        """
        missing = set(adapters) - set(fallbacks)
        if missing:
            raise ValueError(f"No fallback registered for providers: {sorted(missing)}")
        if max_rotations < 0:
            raise ValueError("max_rotations must not be negative")

        self.selector = selector
        self.accountant = accountant
        self.adapters = dict(adapters)
        self.fallbacks = dict(fallbacks)
        self.max_rotations = max_rotations
        self.stats: Dict[str, InvocationStats] = {name: InvocationStats() for name in adapters}

    async def invoke(self, provider: str, request: Any) -> InvocationResult:
        """
        Serve one request through the provider, rotating keys on quota errors.

        Args:
            provider: Provider name
            request: Provider-specific request object

        Returns:
            InvocationResult; degraded=True when the fallback produced the value

        Raises:
            ValueError: If the provider is unknown
            ProviderValidationError: Provider rejected the request
            TransientProviderError: Timeout or connection failure
        """
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise ValueError(f"Unknown provider: {provider}")

        stats = self.stats[provider]
        stats.invocations += 1

        tried: set = set()
        attempts: List[CallAttempt] = []

        try:
            key = await self.selector.select(provider, exclude=tried)
        except KeyStoreError as e:
            logger.error("key_store_unavailable", provider=provider, error=str(e))
            return self._fallback(provider, request, attempts, "key store unavailable")
        if key is None:
            return self._fallback(provider, request, attempts, "no eligible key")

        while True:
            tried.add(key.id)
            retries_used = len(attempts)
            try:
                value = await adapter.call(key.secret, request)
            except QuotaExceededError as e:
                attempts.append(CallAttempt(provider, key.id, CallOutcome.QUOTA_EXCEEDED, retries_used))

                if len(attempts) > self.max_rotations:
                    log_key_rotation(provider, key.id, None, "quota_exceeded", error=str(e))
                    return self._fallback(provider, request, attempts, "rotations exhausted")

                try:
                    next_key = await self.selector.select(provider, exclude=tried)
                except KeyStoreError as store_error:
                    logger.error("key_store_unavailable", provider=provider, error=str(store_error))
                    return self._fallback(provider, request, attempts, "key store unavailable")
                log_key_rotation(
                    provider,
                    key.id,
                    next_key.id if next_key else None,
                    "quota_exceeded",
                    error=str(e),
                )
                if next_key is None:
                    return self._fallback(provider, request, attempts, "all keys tried")

                stats.rotations += 1
                key = next_key
                continue
            except ProviderValidationError:
                attempts.append(CallAttempt(provider, key.id, CallOutcome.VALIDATION_ERROR, retries_used))
                stats.errors += 1
                raise
            except TransientProviderError:
                attempts.append(CallAttempt(provider, key.id, CallOutcome.TRANSIENT_ERROR, retries_used))
                stats.errors += 1
                raise

            attempts.append(CallAttempt(provider, key.id, CallOutcome.SUCCESS, retries_used))
            await self.accountant.record_success(key)
            stats.successes += 1
            return InvocationResult(
                value=value,
                provider=provider,
                degraded=False,
                key_id=key.id,
                attempts=attempts,
            )

    def _fallback(
        self,
        provider: str,
        request: Any,
        attempts: List[CallAttempt],
        reason: str,
    ) -> InvocationResult:
        log_fallback_used(provider, reason, len(attempts))
        self.stats[provider].fallbacks += 1
        return InvocationResult(
            value=self.fallbacks[provider](request),
            provider=provider,
            degraded=True,
            attempts=attempts,
            fallback_reason=reason,
        )

    def get_stats(self) -> Dict[str, Dict[str, int]]:
        """Invocation counters per provider."""
        return {name: s.to_dict() for name, s in self.stats.items()}
