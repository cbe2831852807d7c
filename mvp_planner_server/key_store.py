"""
Key store for provider credentials.

Two interchangeable backends implement the same async interface:
- InMemoryKeyStore: process-local dict, used when no DATABASE_URL is configured
- SQLKeyStore: SQLAlchemy-backed `api_keys` table (PostgreSQL or SQLite)

Both serialize individual record updates; callers never hold locks across
provider calls.
"""

import asyncio
import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, select, update, delete, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mvp_planner_server.db_models import Base, ApiKeyRecord
from mvp_planner_server.exceptions import KeyStoreError, KeyNotFoundError
from mvp_planner_server.logging_config import mask_secret


UPDATABLE_FIELDS = {"secret", "active", "daily_usage", "last_reset"}


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class ApiKey:
    """Provider credential and its usage counters."""
    id: Any
    provider: str
    secret: str
    active: bool = True
    daily_usage: int = 0
    last_reset: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    is_default: bool = False

    @property
    def masked_secret(self) -> str:
        """Secret reduced to a short prefix for logs and API output."""
        return mask_secret(self.secret)

    def to_dict(self) -> Dict[str, Any]:
        """Convert key to dictionary without the secret."""
        return {
            "id": self.id,
            "provider": self.provider,
            "secret": self.masked_secret,
            "active": self.active,
            "daily_usage": self.daily_usage,
            "last_reset": self.last_reset.isoformat() if self.last_reset else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "is_default": self.is_default,
        }


def _check_patch(patch: Dict[str, Any]) -> None:
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {sorted(unknown)}")
    if "daily_usage" in patch and patch["daily_usage"] < 0:
        raise ValueError("daily_usage must not be negative")


class KeyStore(ABC):
    """Async interface the key selector and usage accountant depend on."""

    @abstractmethod
    async def list_active_keys(self, provider: str) -> List[ApiKey]:
        """Active keys for a provider in id order."""

    @abstractmethod
    async def list_keys(self, provider: str) -> List[ApiKey]:
        """All keys for a provider in id order."""

    @abstractmethod
    async def get_key(self, key_id: Any) -> Optional[ApiKey]:
        """Key by id, or None."""

    @abstractmethod
    async def get_key_by_secret(self, secret: str) -> Optional[ApiKey]:
        """Key by credential value, or None."""

    @abstractmethod
    async def create_key(
        self,
        provider: str,
        secret: str,
        active: bool = True,
        daily_usage: int = 0,
    ) -> ApiKey:
        """Persist a new key."""

    @abstractmethod
    async def update_key(self, key_id: Any, **patch: Any) -> ApiKey:
        """Apply a partial update. Raises KeyNotFoundError."""

    @abstractmethod
    async def increment_usage(self, key_id: Any) -> ApiKey:
        """Add one to daily_usage at the store. Raises KeyNotFoundError."""

    @abstractmethod
    async def delete_key(self, key_id: Any) -> bool:
        """Hard delete. Returns False if the key did not exist."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the store is reachable."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryKeyStore(KeyStore):
    """
    Process-local key store.

    Usage:
        store = InMemoryKeyStore()
        key = await store.create_key("content-gen", "AIza...")
        await store.increment_usage(key.id)
    """

    def __init__(self):
        self._keys: Dict[int, ApiKey] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def list_active_keys(self, provider: str) -> List[ApiKey]:
        return [k for k in await self.list_keys(provider) if k.active]

    async def list_keys(self, provider: str) -> List[ApiKey]:
        async with self._lock:
            return [
                dataclasses.replace(k)
                for key_id, k in sorted(self._keys.items())
                if k.provider == provider
            ]

    async def get_key(self, key_id: Any) -> Optional[ApiKey]:
        async with self._lock:
            key = self._keys.get(key_id)
            return dataclasses.replace(key) if key else None

    async def get_key_by_secret(self, secret: str) -> Optional[ApiKey]:
        async with self._lock:
            for key_id in sorted(self._keys):
                if self._keys[key_id].secret == secret:
                    return dataclasses.replace(self._keys[key_id])
            return None

    async def create_key(
        self,
        provider: str,
        secret: str,
        active: bool = True,
        daily_usage: int = 0,
    ) -> ApiKey:
        if not provider or not secret:
            raise ValueError("provider and secret are required")
        async with self._lock:
            key = ApiKey(
                id=self._next_id,
                provider=provider,
                secret=secret,
                active=active,
                daily_usage=daily_usage,
            )
            self._keys[key.id] = key
            self._next_id += 1
            return dataclasses.replace(key)

    async def update_key(self, key_id: Any, **patch: Any) -> ApiKey:
        _check_patch(patch)
        async with self._lock:
            key = self._keys.get(key_id)
            if key is None:
                raise KeyNotFoundError(f"API key {key_id} not found")
            for name, value in patch.items():
                setattr(key, name, value)
            return dataclasses.replace(key)

    async def increment_usage(self, key_id: Any) -> ApiKey:
        async with self._lock:
            key = self._keys.get(key_id)
            if key is None:
                raise KeyNotFoundError(f"API key {key_id} not found")
            key.daily_usage += 1
            return dataclasses.replace(key)

    async def delete_key(self, key_id: Any) -> bool:
        async with self._lock:
            return self._keys.pop(key_id, None) is not None

    async def ping(self) -> bool:
        return True

    def clear(self) -> None:
        """Remove all keys from the store."""
        self._keys.clear()
        self._next_id = 1


def _to_api_key(record: ApiKeyRecord) -> ApiKey:
    return ApiKey(
        id=record.id,
        provider=record.provider,
        secret=record.secret,
        active=record.is_active,
        daily_usage=record.daily_usage,
        last_reset=record.last_reset,
        created_at=record.created_at,
    )


class SQLKeyStore(KeyStore):
    """
    SQLAlchemy-backed key store.

    Queries run on a worker thread through asyncio.to_thread so the event loop
    is never blocked on the database. Usage increments are a single UPDATE
    (`daily_usage = daily_usage + 1`), leaving serialization to the database.
    """

    def __init__(self, database_url: str, echo: bool = False, engine=None):
        if engine is None:
            kwargs: Dict[str, Any] = {"echo": echo}
            if database_url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if database_url in ("sqlite://", "sqlite:///:memory:"):
                    kwargs["poolclass"] = StaticPool
            else:
                kwargs["pool_pre_ping"] = True
            engine = create_engine(database_url, **kwargs)
        self.engine = engine
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_tables(self) -> None:
        """Create the api_keys table if it does not exist."""
        Base.metadata.create_all(self.engine)

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except SQLAlchemyError as e:
            raise KeyStoreError(f"Key store operation failed: {e}") from e

    def _list_sync(self, provider: str, active_only: bool) -> List[ApiKey]:
        with self._session_factory() as session:
            query = select(ApiKeyRecord).where(ApiKeyRecord.provider == provider)
            if active_only:
                query = query.where(ApiKeyRecord.is_active.is_(True))
            records = session.execute(query.order_by(ApiKeyRecord.id)).scalars().all()
            return [_to_api_key(r) for r in records]

    async def list_active_keys(self, provider: str) -> List[ApiKey]:
        return await self._run(self._list_sync, provider, True)

    async def list_keys(self, provider: str) -> List[ApiKey]:
        return await self._run(self._list_sync, provider, False)

    def _get_sync(self, key_id: Any) -> Optional[ApiKey]:
        with self._session_factory() as session:
            record = session.get(ApiKeyRecord, key_id)
            return _to_api_key(record) if record else None

    async def get_key(self, key_id: Any) -> Optional[ApiKey]:
        return await self._run(self._get_sync, key_id)

    def _get_by_secret_sync(self, secret: str) -> Optional[ApiKey]:
        with self._session_factory() as session:
            record = session.execute(
                select(ApiKeyRecord).where(ApiKeyRecord.secret == secret).order_by(ApiKeyRecord.id)
            ).scalars().first()
            return _to_api_key(record) if record else None

    async def get_key_by_secret(self, secret: str) -> Optional[ApiKey]:
        return await self._run(self._get_by_secret_sync, secret)

    def _create_sync(self, provider: str, secret: str, active: bool, daily_usage: int) -> ApiKey:
        now = utcnow()
        with self._session_factory() as session:
            record = ApiKeyRecord(
                provider=provider,
                secret=secret,
                is_active=active,
                daily_usage=daily_usage,
                last_reset=now,
                created_at=now,
            )
            session.add(record)
            session.commit()
            return _to_api_key(record)

    async def create_key(
        self,
        provider: str,
        secret: str,
        active: bool = True,
        daily_usage: int = 0,
    ) -> ApiKey:
        if not provider or not secret:
            raise ValueError("provider and secret are required")
        return await self._run(self._create_sync, provider, secret, active, daily_usage)

    def _update_sync(self, key_id: Any, values: Dict[str, Any]) -> ApiKey:
        with self._session_factory() as session:
            result = session.execute(
                update(ApiKeyRecord).where(ApiKeyRecord.id == key_id).values(**values)
            )
            session.commit()
            if result.rowcount == 0:
                raise KeyNotFoundError(f"API key {key_id} not found")
            return _to_api_key(session.get(ApiKeyRecord, key_id))

    async def update_key(self, key_id: Any, **patch: Any) -> ApiKey:
        _check_patch(patch)
        values = dict(patch)
        if "active" in values:
            values["is_active"] = values.pop("active")
        return await self._run(self._update_sync, key_id, values)

    async def increment_usage(self, key_id: Any) -> ApiKey:
        return await self._run(
            self._update_sync,
            key_id,
            {"daily_usage": ApiKeyRecord.daily_usage + 1},
        )

    def _delete_sync(self, key_id: Any) -> bool:
        with self._session_factory() as session:
            result = session.execute(delete(ApiKeyRecord).where(ApiKeyRecord.id == key_id))
            session.commit()
            return result.rowcount > 0

    async def delete_key(self, key_id: Any) -> bool:
        return await self._run(self._delete_sync, key_id)

    def _ping_sync(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    async def ping(self) -> bool:
        return await self._run(self._ping_sync)

    async def close(self) -> None:
        self.engine.dispose()


def create_key_store(settings) -> KeyStore:
    """
    Build the key store selected by configuration.

    Args:
        settings: Application settings

    Returns:
        SQLKeyStore when DATABASE_URL is set, otherwise InMemoryKeyStore
    """
    if settings.database_url:
        store = SQLKeyStore(settings.database_url, echo=settings.database_echo)
        if settings.database_url.startswith("sqlite"):
            store.create_tables()
        return store
    return InMemoryKeyStore()
