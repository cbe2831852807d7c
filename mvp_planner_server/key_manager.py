"""
Key selection and usage accounting for rotating provider credentials.

Features:
- Least-used selection among active keys, ties broken by id order
- Per-request exclusion of keys already tried
- Daily quota enforcement (key deactivated once usage reaches the cap)
- 24h usage reset that re-enables keys
- Bootstrap seeding of keys from configured secrets

Accounting is best-effort: a failed key store write is logged and never fails
the request that used the key.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from mvp_planner_server.exceptions import KeyStoreError
from mvp_planner_server.key_store import ApiKey, KeyStore, utcnow
from mvp_planner_server.logging_config import (
    get_logger,
    log_accounting_failure,
    log_key_deactivated,
    log_key_reset,
    log_key_selected,
)

logger = get_logger(__name__)

DEFAULT_DAILY_QUOTA = 50
DEFAULT_RESET_INTERVAL = timedelta(hours=24)


class KeySelector:
    """
    Chooses the key a provider call should use.

    Usage:
        selector = KeySelector(store, quota=50)
        key = await selector.select("content-gen")
        retry_key = await selector.select("content-gen", exclude={key.id})
    """

    def __init__(
        self,
        store: KeyStore,
        quota: int = DEFAULT_DAILY_QUOTA,
        default_keys: Optional[Dict[str, Optional[str]]] = None,
    ):
        """
        Initialize KeySelector.

        Args:
            store: Key store to read from
            quota: Daily usage cap per key
            default_keys: Provider -> secret used when a provider has no keys at all
        """
        self.store = store
        self.quota = quota
        self.default_keys = {p: s for p, s in (default_keys or {}).items() if s}

    async def select(self, provider: str, exclude: Iterable[Any] = ()) -> Optional[ApiKey]:
        """
        Return the least-used eligible key for a provider.

        Args:
            provider: Provider name
            exclude: Key ids already tried by the current request

        Returns:
            Selected key, or None if no key is eligible

        Raises:
            ValueError: If provider is empty
        """
        if not provider:
            raise ValueError("provider is required")

        excluded = set(exclude)
        keys = await self.store.list_active_keys(provider)
        eligible = [
            k for k in keys
            if k.id not in excluded and k.daily_usage < self.quota
        ]

        if eligible:
            # min() keeps the first of equal minima, so id order breaks ties
            key = min(eligible, key=lambda k: k.daily_usage)
            log_key_selected(provider, key.id, key.daily_usage, self.quota)
            return key

        if not keys:
            return await self._default_key(provider, excluded)
        return None

    async def _default_key(self, provider: str, excluded: set) -> Optional[ApiKey]:
        secret = self.default_keys.get(provider)
        if not secret:
            return None

        default_id = f"default:{provider}"
        if default_id in excluded:
            return None

        # Only a provider that was never seeded gets the configured default
        if await self.store.list_keys(provider):
            return None

        logger.info("default_key_used", provider=provider)
        return ApiKey(id=default_id, provider=provider, secret=secret, is_default=True)


class UsageAccountant:
    """
    Maintains daily usage counters and the quota cap.

    Usage:
        accountant = UsageAccountant(store, quota=50)
        await accountant.record_success(key)
        await accountant.reset_stale_keys(["content-gen", "image-search"])
    """

    def __init__(
        self,
        store: KeyStore,
        quota: int = DEFAULT_DAILY_QUOTA,
        reset_interval: timedelta = DEFAULT_RESET_INTERVAL,
    ):
        self.store = store
        self.quota = quota
        self.reset_interval = reset_interval

    async def record_success(self, key: ApiKey) -> Optional[ApiKey]:
        """
        Count one successful call against a key.

        Deactivates the key when the new usage reaches the quota. Store
        failures are logged and swallowed.

        Args:
            key: Key the call was made with

        Returns:
            Updated key, or None if nothing was recorded
        """
        if key.is_default:
            return None

        try:
            updated = await self.store.increment_usage(key.id)
            if updated.daily_usage >= self.quota and updated.active:
                updated = await self.store.update_key(key.id, active=False)
                log_key_deactivated(key.provider, key.id, updated.daily_usage, self.quota)
            return updated
        except KeyStoreError as e:
            log_accounting_failure(key.provider, key.id, str(e))
            return None

    async def reset_if_stale(self, key: ApiKey, now: Optional[datetime] = None) -> bool:
        """
        Zero a key's usage and re-enable it if its last reset is old enough.

        Args:
            key: Key to check
            now: Current time (naive UTC); defaults to utcnow()

        Returns:
            True if the key was reset
        """
        now = now or utcnow()
        if now - key.last_reset < self.reset_interval:
            return False

        await self.store.update_key(key.id, daily_usage=0, active=True, last_reset=now)
        log_key_reset(key.provider, key.id)
        return True

    async def reset_stale_keys(
        self,
        providers: Iterable[str],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Reset every stale key of the given providers.

        A failure on one key is logged and the sweep continues.

        Returns:
            Number of keys reset
        """
        now = now or utcnow()
        reset_count = 0

        for provider in providers:
            try:
                keys = await self.store.list_keys(provider)
            except KeyStoreError as e:
                logger.warning("reset_sweep_failed", provider=provider, error=str(e))
                continue

            for key in keys:
                try:
                    if await self.reset_if_stale(key, now):
                        reset_count += 1
                except KeyStoreError as e:
                    log_accounting_failure(provider, key.id, str(e), operation="reset")

        return reset_count


async def seed_keys_from_settings(store: KeyStore, settings) -> Dict[str, int]:
    """
    Create store entries for configured secrets that are not stored yet.

    Args:
        store: Key store to populate
        settings: Application settings

    Returns:
        Number of keys created per provider
    """
    created: Dict[str, int] = {}

    for provider, secrets in settings.configured_secrets().items():
        created[provider] = 0
        for secret in secrets:
            if await store.get_key_by_secret(secret):
                continue
            await store.create_key(provider, secret)
            created[provider] += 1

        total = len(await store.list_active_keys(provider))
        logger.info(
            "keys_seeded",
            provider=provider,
            created=created[provider],
            active_total=total,
        )

    return created


async def get_key_stats(store: KeyStore, provider: str, quota: int = DEFAULT_DAILY_QUOTA) -> Dict[str, Any]:
    """
    Aggregate key statistics for a provider.

    Returns:
        Dictionary with total, active, quota_reached and total_usage counts
    """
    keys = await store.list_keys(provider)
    return {
        "provider": provider,
        "total": len(keys),
        "active": sum(1 for k in keys if k.active),
        "quota_reached": sum(1 for k in keys if k.daily_usage >= quota),
        "total_usage": sum(k.daily_usage for k in keys),
        "quota": quota,
    }


def list_masked_keys(keys: List[ApiKey]) -> List[Dict[str, Any]]:
    """Serialize keys for output with secrets masked."""
    return [k.to_dict() for k in keys]
