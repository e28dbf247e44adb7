import re
import copy
import json
import time
import asyncio
import hashlib
import logging
from decimal import Decimal
from datetime import date, datetime
from typing import List, Dict, Any, Optional, Callable

from .models import CacheEntry, CacheStats, QueryResult

logger = logging.getLogger(__name__)

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"--[^\n]*")
_WHITESPACE = re.compile(r"\s+")


# Custom JSON encoder to handle Decimal and temporal values
class DecimalEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super(DecimalEncoder, self).default(obj)


def normalize_query(query: str) -> str:
    """
    Normalize SQL text so that formatting differences share one cache entry

    Comments are stripped before whitespace is collapsed so that a `--` comment
    only ever swallows the rest of its own line.
    """
    query = _BLOCK_COMMENT.sub(" ", query)
    query = _LINE_COMMENT.sub(" ", query)
    return _WHITESPACE.sub(" ", query).strip().lower()


class QueryCache:
    """
    In-memory cache of query results with TTL expiry and LRU eviction.

    Entries are keyed by the normalized query text, the serialized parameter
    list and the database id. Expired entries are dropped lazily on lookup and
    eagerly by a periodic sweep that runs as an asyncio task. The cache is a
    pure optimization: none of its operations raise to the caller.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 300.0,
        cleanup_interval: float = 60.0,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the query cache

        Args:
            max_size: Maximum number of entries before LRU eviction kicks in
            default_ttl: Time to live of an entry in seconds when none is given
            cleanup_interval: Seconds between two background expiry sweeps
            clock: Callable returning the current time in epoch seconds
        """
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock

        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._cleanup_task: Optional[asyncio.Task] = None

        # Start sweeping right away when built inside a running event loop,
        # otherwise the owner calls start() once a loop is available
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, cache sweep deferred until start()")
        else:
            self.start()

    def __len__(self) -> int:
        return len(self._entries)

    async def __aenter__(self) -> "QueryCache":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    def generate_cache_key(self, query: str, parameters: Optional[List[Any]], database_id: int) -> str:
        """
        Build the cache key for a query

        Raises:
            TypeError, ValueError: If the parameters cannot be serialized
        """
        normalized = normalize_query(query)
        params = json.dumps(parameters or [], cls=DecimalEncoder)
        digest = hashlib.sha256(f"{normalized}\x00{params}".encode("utf-8")).hexdigest()
        return f"{database_id}:{digest}"

    def get(self, query: str, parameters: Optional[List[Any]], database_id: int) -> Optional[QueryResult]:
        """
        Look up a cached result

        Args:
            query: SQL text
            parameters: Query parameters
            database_id: Target database

        Returns:
            Optional[QueryResult]: A copy of the cached result, or None on a miss
        """
        try:
            key = self.generate_cache_key(query, parameters, database_id)
        except (TypeError, ValueError) as e:
            logger.warning(f"Unable to build cache key, treating as miss: {str(e)}")
            self._misses += 1
            return None

        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            self._misses += 1
            return None

        try:
            result = copy.deepcopy(entry.result)
        except Exception as e:
            logger.warning(f"Unable to copy cached result, treating as miss: {str(e)}")
            self._misses += 1
            return None

        entry.access_count += 1
        entry.last_accessed = now
        self._hits += 1
        logger.debug(f"Cache hit for query: {query[:50]}...")
        return result

    def set(
        self,
        query: str,
        result: QueryResult,
        database_id: int,
        parameters: Optional[List[Any]] = None,
        ttl: Optional[float] = None
    ) -> None:
        """
        Store a copy of a query result

        Args:
            query: SQL text
            result: Result to cache
            database_id: Target database
            parameters: Query parameters
            ttl: Time to live in seconds (default: the cache's default TTL)
        """
        try:
            key = self.generate_cache_key(query, parameters, database_id)
            stored = copy.deepcopy(result)
        except Exception as e:
            logger.warning(f"Unable to cache query result: {str(e)}")
            return

        now = self._clock()
        entry = CacheEntry(
            id=key,
            query=normalize_query(query),
            parameters=list(parameters or []),
            result=stored,
            timestamp=now,
            database_id=database_id,
            ttl=ttl if ttl is not None else self.default_ttl,
            access_count=0,
            last_accessed=now,
        )

        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_lru()

        self._entries[key] = entry
        logger.debug(f"Cached query result: {query[:50]}...")

    def invalidate(self, pattern: Optional[str] = None, database_id: Optional[int] = None) -> int:
        """
        Remove entries from the cache

        With no arguments the whole cache is cleared. Otherwise an entry is
        removed when it belongs to `database_id` OR its normalized query
        contains `pattern` (case-insensitive).

        Returns:
            int: Number of entries removed
        """
        if not pattern and database_id is None:
            removed = len(self._entries)
            self._entries.clear()
            logger.info(f"Cleared entire query cache ({removed} entries)")
            return removed

        needle = pattern.lower() if pattern else None
        keys_to_delete = [
            key for key, entry in self._entries.items()
            if (database_id is not None and entry.database_id == database_id)
            or (needle is not None and needle in entry.query)
        ]
        for key in keys_to_delete:
            del self._entries[key]

        logger.info(f"Invalidated {len(keys_to_delete)} cache entries")
        return len(keys_to_delete)

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k].last_accessed)
        evicted = self._entries.pop(oldest_key)
        logger.debug(f"Evicted LRU cache entry: {evicted.query[:30]}...")

    def cleanup(self) -> int:
        """Remove every expired entry and return how many were dropped"""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                self.cleanup()
            except Exception as e:
                logger.error(f"Error during cache cleanup: {str(e)}")

    def start(self) -> None:
        """
        Start the background expiry sweep

        Must be called from within a running event loop. Calling it while the
        sweep is already running does nothing.
        """
        if self.is_running:
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())
        logger.debug(f"Cache sweep started (every {self.cleanup_interval}s)")

    async def close(self) -> None:
        """Cancel the background sweep and drop every entry"""
        task, self._cleanup_task = self._cleanup_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._entries.clear()
        logger.info("Query cache closed")

    def get_stats(self) -> CacheStats:
        total = self._hits + self._misses
        hit_rate = self._hits / total if total else 0.0

        memory_usage = 0
        total_time = 0.0
        timed = 0
        for entry in self._entries.values():
            try:
                memory_usage += len(json.dumps(entry.to_dict(), cls=DecimalEncoder)) * 2
            except (TypeError, ValueError) as e:
                logger.debug(f"Skipping entry in memory estimate: {str(e)}")
            if entry.result.execution_time:
                total_time += entry.result.execution_time
                timed += 1

        return CacheStats(
            entry_count=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            hit_rate=round(hit_rate, 4),
            approximate_memory_bytes=memory_usage,
            average_execution_time=round(total_time / timed, 2) if timed else 0.0,
        )

    def warm_cache(self, queries: List[Dict[str, Any]]) -> int:
        """
        Pre-populate the cache with empty results

        Args:
            queries: Definitions with `query`, `database_id` and optional `parameters`

        Returns:
            int: Number of new entries created
        """
        logger.info(f"Warming cache with {len(queries)} predefined queries...")
        warmed = 0
        for definition in queries:
            parameters = definition.get("parameters") or []
            try:
                key = self.generate_cache_key(definition["query"], parameters, definition["database_id"])
            except (TypeError, ValueError, KeyError) as e:
                logger.warning(f"Skipping invalid warm-up definition: {str(e)}")
                continue
            if key in self._entries:
                continue

            placeholder = QueryResult(
                rows=[],
                row_count=0,
                query=definition["query"],
                parameters=parameters,
                execution_time=0.0,
            )
            self.set(definition["query"], placeholder, definition["database_id"], parameters)
            warmed += 1

        logger.info(f"Cache warmed with {warmed} new entries")
        return warmed

    def get_cache_entries(self, database_id: Optional[int] = None, limit: int = 50) -> List[CacheEntry]:
        """Entries sorted by most recent access, optionally for one database"""
        entries = [
            entry for entry in self._entries.values()
            if database_id is None or entry.database_id == database_id
        ]
        entries.sort(key=lambda e: e.last_accessed, reverse=True)
        return entries[:limit]

    def export_cache(self) -> str:
        """Dump stats and entries as JSON, keeping at most 10 rows per result"""
        exported = []
        for entry in self._entries.values():
            data = entry.to_dict()
            data["result"]["rows"] = data["result"]["rows"][:10]
            exported.append(data)

        export_data = {
            "timestamp": self._clock(),
            "stats": self.get_stats().to_dict(),
            "entries": exported,
        }
        return json.dumps(export_data, cls=DecimalEncoder, indent=2)
