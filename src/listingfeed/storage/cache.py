"""Tenant-scoped cache for external feed responses.

Keys have the form::

    <scope>:external_feed:<tenant_id>:<provider_name>:<operation>:<md5>

where the md5 is taken over the normalized request parameters, so that
semantically identical requests share an entry regardless of key order or
whether a key was given as an enum or a string. Values are stored as JSON
wrapped in a CacheEntry, and every hit is deserialized into fresh objects.
"""

import asyncio
import hashlib
import json
import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ClassVar, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..config import Settings
from ..config import config as default_settings
from .backends import CacheBackend, create_backend

if TYPE_CHECKING:
    from ..models.tenant import Tenant

logger = logging.getLogger(__name__)


class FeedOperation(str, Enum):
    """Unit of cache-key and TTL scoping."""

    SEARCH = "search"
    PROPERTY = "property"
    SIMILAR = "similar"
    LOCATIONS = "locations"
    PROPERTY_TYPES = "property_types"
    FEATURES = "features"


# Default TTLs in seconds
DEFAULT_TTLS: dict[str, int] = {
    FeedOperation.SEARCH.value: 3600,  # 1 hour
    FeedOperation.PROPERTY.value: 86400,  # 24 hours
    FeedOperation.SIMILAR.value: 21600,  # 6 hours
    FeedOperation.LOCATIONS.value: 604800,  # 1 week
    FeedOperation.PROPERTY_TYPES.value: 604800,
    FeedOperation.FEATURES.value: 604800,
}

_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)

Operation = Union[FeedOperation, str]


class CacheEntry(BaseModel):
    """Cached payload plus the metadata describing where it came from."""

    data: Any = None
    cached_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    provider: Optional[str] = None
    operation: str


def _op(operation: Operation) -> str:
    return operation.value if isinstance(operation, Enum) else str(operation)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def _normalize_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return normalize_params(value.model_dump(mode="json"))
    if isinstance(value, dict):
        return normalize_params(value)
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize_value(v) for v in value), key=repr)
    if isinstance(value, (list, tuple)):
        return [_normalize_value(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def normalize_params(params: Optional[dict[Any, Any]]) -> dict[str, Any]:
    """Canonical form of request parameters for cache keys.

    Keys are converted to strings (enum keys to their value) recursively,
    blank values (None, whitespace-only strings, empty collections) are
    dropped and keys are sorted.
    """
    if not params:
        return {}

    normalized: dict[str, Any] = {}
    for key, value in params.items():
        if _is_blank(value):
            continue
        value = _normalize_value(value)
        if _is_blank(value):
            continue
        name = key.value if isinstance(key, Enum) else key
        normalized[str(name)] = value
    return dict(sorted(normalized.items()))


class CacheStore:
    """Cache wrapper for one tenant's external feed.

    Example:
        cache = CacheStore(tenant)

        result = await cache.fetch_data(
            "search",
            params,
            lambda: provider.search(params),
            adapter=TypeAdapter(NormalizedSearchResult),
        )

        cache.invalidate_operation("search")
    """

    # Loads in progress, shared by every store in the process
    _in_flight: ClassVar[dict[str, asyncio.Future]] = {}

    def __init__(
        self,
        tenant: "Tenant",
        backend: Optional[CacheBackend] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the cache store.

        Args:
            tenant: Tenant used for key scoping and TTL overrides
            backend: Backing store (default from settings.cache_backend)
            settings: Process settings (default: module config)
        """
        self.tenant = tenant
        self.settings = settings or default_settings
        self.backend = backend if backend is not None else create_backend(self.settings)
        self.provider_name = tenant.external_feed_provider
        self.config = {str(k): v for k, v in tenant.external_feed_config.items()}
        self.scope = self.settings.cache_scope
        self.single_flight = self.settings.single_flight

        self._can_delete_matched = bool(
            getattr(self.backend, "supports_pattern_delete", False)
        )

    # Keys and TTLs

    def cache_key(self, operation: Operation, params: Optional[dict[Any, Any]]) -> str:
        """Full cache key for an operation and its parameters."""
        payload = json.dumps(normalize_params(params), sort_keys=True, default=str)
        params_hash = hashlib.md5(payload.encode("utf-8")).hexdigest()
        return f"{self._prefix()}:{self.provider_name}:{_op(operation)}:{params_hash}"

    def ttl_for(self, operation: Operation) -> int:
        """TTL in seconds: tenant ``cache_ttl_<operation>`` or the default."""
        op = _op(operation)
        override = self.config.get(f"cache_ttl_{op}")
        if override not in (None, ""):
            try:
                return int(override)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid cache_ttl_{op}={override!r}")
        return DEFAULT_TTLS.get(op, DEFAULT_TTLS[FeedOperation.SEARCH.value])

    def _prefix(self) -> str:
        return f"{self.scope}:external_feed:{self.tenant.id}"

    # Reads and writes

    async def fetch(
        self,
        operation: Operation,
        params: Optional[dict[Any, Any]],
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
        adapter: Optional[TypeAdapter] = None,
    ) -> CacheEntry:
        """Return the cached entry, or run ``loader`` and cache its result.

        Args:
            operation: Operation type (search, property...)
            params: Parameters included in the cache key
            loader: Coroutine function producing fresh data on a miss
            ttl: TTL override in seconds
            adapter: TypeAdapter used to serialize and revive the data

        Returns:
            CacheEntry whose ``data`` is a fresh copy revived via ``adapter``
        """
        adapter = adapter or _ANY_ADAPTER
        key = self.cache_key(operation, params)

        cached = self._read_entry(key, adapter)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached

        logger.debug(f"Cache miss: {key}")
        ttl = ttl if ttl is not None else self.ttl_for(operation)

        async def load() -> str:
            data = await loader()
            raw = self._encode(operation, data, adapter)
            self.backend.write(key, raw, ttl)
            return raw

        if self.single_flight:
            raw = await self._load_once(key, load)
        else:
            raw = await load()
        return self._decode(raw, adapter)

    async def fetch_data(
        self,
        operation: Operation,
        params: Optional[dict[Any, Any]],
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
        adapter: Optional[TypeAdapter] = None,
    ) -> Any:
        """Same as fetch(), returning the data without cache metadata."""
        entry = await self.fetch(operation, params, loader, ttl=ttl, adapter=adapter)
        return entry.data

    def read(
        self,
        operation: Operation,
        params: Optional[dict[Any, Any]],
        adapter: Optional[TypeAdapter] = None,
    ) -> Optional[CacheEntry]:
        """Cached entry without running anything on a miss."""
        return self._read_entry(self.cache_key(operation, params), adapter or _ANY_ADAPTER)

    def write(
        self,
        operation: Operation,
        params: Optional[dict[Any, Any]],
        data: Any,
        ttl: Optional[int] = None,
        adapter: Optional[TypeAdapter] = None,
    ) -> None:
        key = self.cache_key(operation, params)
        ttl = ttl if ttl is not None else self.ttl_for(operation)
        self.backend.write(key, self._encode(operation, data, adapter or _ANY_ADAPTER), ttl)

    def cached(self, operation: Operation, params: Optional[dict[Any, Any]]) -> bool:
        return self.backend.exists(self.cache_key(operation, params))

    # Invalidation

    def invalidate(self, operation: Operation, params: Optional[dict[Any, Any]]) -> bool:
        """Remove one exact entry."""
        return self.backend.delete(self.cache_key(operation, params))

    def invalidate_operation(self, operation: Operation) -> int:
        """Remove all entries for one operation of this tenant's provider."""
        return self._delete_matched(
            f"{self._prefix()}:{self.provider_name}:{_op(operation)}:*"
        )

    def invalidate_all(self) -> int:
        """Remove every external feed entry of this tenant."""
        return self._delete_matched(f"{self._prefix()}:*")

    def _delete_matched(self, pattern: str) -> int:
        if not self._can_delete_matched:
            logger.warning(
                f"Cache backend {type(self.backend).__name__} doesn't support "
                f"pattern deletion; skipping invalidation of {pattern}"
            )
            return 0
        return self.backend.delete_matched(pattern)

    # Internals

    def _read_entry(self, key: str, adapter: TypeAdapter) -> Optional[CacheEntry]:
        """Decoded entry, or None when missing or no longer valid.

        Entries that fail to decode are deleted so the next fetch reloads them.
        """
        raw = self.backend.read(key)
        if raw is None:
            return None
        try:
            return self._decode(raw, adapter)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Dropping undecodable cache entry {key}: {e}")
            self.backend.delete(key)
            return None

    async def _load_once(self, key: str, load: Callable[[], Awaitable[str]]) -> str:
        """Run ``load`` at most once at a time per key within this process.

        If the task owning a load is cancelled, its waiters are not: the
        first of them to wake up starts a new load.
        """
        while True:
            pending = self._in_flight.get(key)
            if pending is None:
                break
            logger.debug(f"Waiting for in-flight load: {key}")
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                logger.debug(f"In-flight load cancelled, retrying: {key}")

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            raw = await load()
            future.set_result(raw)
            return raw
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unawaited future doesn't log the error again
            future.exception()
            raise
        finally:
            if not future.done():
                future.cancel()
            self._in_flight.pop(key, None)

    def _encode(self, operation: Operation, data: Any, adapter: TypeAdapter) -> str:
        entry = CacheEntry(
            data=adapter.dump_python(data, mode="json"),
            provider=self.provider_name,
            operation=_op(operation),
        )
        return entry.model_dump_json()

    def _decode(self, raw: str, adapter: TypeAdapter) -> CacheEntry:
        entry = CacheEntry.model_validate_json(raw)
        entry.data = adapter.validate_python(entry.data)
        return entry
