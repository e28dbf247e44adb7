import asyncio
import json
import unittest
from decimal import Decimal

from mcp_broker.models import QueryResult
from mcp_broker.query_cache import QueryCache, normalize_query


class FakeClock:
    """Manually advanced epoch-seconds clock"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_result(query="SELECT * FROM users", rows=None, execution_time=12.5):
    rows = rows if rows is not None else [{"id": 1, "name": "John Doe"}, {"id": 2, "name": "Jane Smith"}]
    return QueryResult(rows=rows, row_count=len(rows), query=query, execution_time=execution_time)


class TestNormalizeQuery(unittest.TestCase):
    """Test cases for query text normalization"""

    def test_collapses_whitespace_and_case(self):
        self.assertEqual(normalize_query("  SELECT *\n\tFROM   Users  "), "select * from users")

    def test_strips_comments_before_collapsing(self):
        query = "SELECT * -- all columns\nFROM users /* main table */ WHERE id = 1"
        self.assertEqual(normalize_query(query), "select * from users where id = 1")


class TestQueryCache(unittest.TestCase):
    """Test cases for the in-memory query result cache"""

    def setUp(self):
        """Set up a cache with a controllable clock"""
        self.clock = FakeClock()
        self.cache = QueryCache(max_size=3, default_ttl=60.0, clock=self.clock)

    def test_get_returns_stored_result(self):
        """A stored result is returned for the same query, parameters and database"""
        self.cache.set("SELECT * FROM users", make_result(), 1)

        result = self.cache.get("SELECT * FROM users", [], 1)

        self.assertIsNotNone(result)
        self.assertEqual(result.row_count, 2)
        self.assertEqual(result.rows[0]["name"], "John Doe")

    def test_get_returns_independent_copy(self):
        original = make_result()
        self.cache.set("SELECT * FROM users", original, 1)

        # Mutating either side must not leak into the cache
        original.rows.append({"id": 3})
        first = self.cache.get("SELECT * FROM users", [], 1)
        first.rows.clear()
        second = self.cache.get("SELECT * FROM users", [], 1)

        self.assertEqual(len(second.rows), 2)

    def test_equivalent_query_text_shares_entry(self):
        self.cache.set("SELECT * FROM users", make_result(), 1)

        result = self.cache.get("select *\n  from USERS -- everyone", None, 1)

        self.assertIsNotNone(result)
        self.assertEqual(len(self.cache), 1)

    def test_parameters_and_database_are_part_of_key(self):
        self.cache.set("SELECT * FROM users WHERE id = %s", make_result(), 1, [1])

        self.assertIsNone(self.cache.get("SELECT * FROM users WHERE id = %s", [2], 1))
        self.assertIsNone(self.cache.get("SELECT * FROM users WHERE id = %s", [1], 2))
        self.assertIsNotNone(self.cache.get("SELECT * FROM users WHERE id = %s", [1], 1))

    def test_decimal_parameters_are_keyed(self):
        self.cache.set("SELECT * FROM orders WHERE total > %s", make_result(), 1, [Decimal("100.50")])

        self.assertIsNotNone(self.cache.get("SELECT * FROM orders WHERE total > %s", [Decimal("100.50")], 1))

    def test_unserializable_parameters_are_a_miss(self):
        self.cache.set("SELECT 1", make_result(), 1, [object()])

        self.assertEqual(len(self.cache), 0)
        self.assertIsNone(self.cache.get("SELECT 1", [object()], 1))

    def test_entry_expires_after_ttl(self):
        """Expired entries are removed lazily on lookup"""
        self.cache.set("SELECT * FROM users", make_result(), 1, ttl=10)

        self.clock.advance(10)
        self.assertIsNotNone(self.cache.get("SELECT * FROM users", [], 1))

        self.clock.advance(1)
        self.assertIsNone(self.cache.get("SELECT * FROM users", [], 1))
        self.assertEqual(len(self.cache), 0)

    def test_default_ttl_applies(self):
        self.cache.set("SELECT * FROM users", make_result(), 1)

        self.clock.advance(61)

        self.assertIsNone(self.cache.get("SELECT * FROM users", [], 1))

    def test_evicts_least_recently_accessed(self):
        self.cache.set("SELECT 1", make_result("SELECT 1"), 1)
        self.clock.advance(1)
        self.cache.set("SELECT 2", make_result("SELECT 2"), 1)
        self.clock.advance(1)
        self.cache.set("SELECT 3", make_result("SELECT 3"), 1)
        self.clock.advance(1)
        # Touch the oldest entry so the second one becomes the LRU
        self.cache.get("SELECT 1", [], 1)
        self.clock.advance(1)

        self.cache.set("SELECT 4", make_result("SELECT 4"), 1)

        self.assertEqual(len(self.cache), 3)
        self.assertIsNone(self.cache.get("SELECT 2", [], 1))
        self.assertIsNotNone(self.cache.get("SELECT 1", [], 1))
        self.assertIsNotNone(self.cache.get("SELECT 4", [], 1))

    def test_overwrite_at_capacity_does_not_evict(self):
        for index in range(3):
            self.cache.set(f"SELECT {index}", make_result(), 1)
            self.clock.advance(1)

        self.cache.set("SELECT 0", make_result(rows=[]), 1)

        self.assertEqual(len(self.cache), 3)
        self.assertEqual(self.cache.get("SELECT 0", [], 1).row_count, 0)

    def test_invalidate_by_database(self):
        self.cache.set("SELECT * FROM users", make_result(), 1)
        self.cache.set("SELECT * FROM orders", make_result(), 1)
        self.cache.set("SELECT * FROM users", make_result(), 2)

        removed = self.cache.invalidate(database_id=1)

        self.assertEqual(removed, 2)
        self.assertIsNone(self.cache.get("SELECT * FROM users", [], 1))
        self.assertIsNotNone(self.cache.get("SELECT * FROM users", [], 2))

    def test_invalidate_by_pattern(self):
        self.cache.set("SELECT * FROM users", make_result(), 1)
        self.cache.set("SELECT * FROM orders", make_result(), 2)

        removed = self.cache.invalidate(pattern="ORDERS")

        self.assertEqual(removed, 1)
        self.assertIsNotNone(self.cache.get("SELECT * FROM users", [], 1))

    def test_invalidate_without_filters_clears_everything(self):
        self.cache.set("SELECT * FROM users", make_result(), 1)
        self.cache.set("SELECT * FROM orders", make_result(), 2)

        self.assertEqual(self.cache.invalidate(), 2)
        self.assertEqual(len(self.cache), 0)

    def test_invalidate_with_both_filters_matches_either(self):
        """An entry goes when it belongs to the database or matches the pattern"""
        self.cache.set("SELECT * FROM users", make_result(), 1)
        self.cache.set("SELECT * FROM orders", make_result(), 2)
        self.cache.set("SELECT * FROM users", make_result(), 3)

        removed = self.cache.invalidate(pattern="orders", database_id=1)

        self.assertEqual(removed, 2)
        self.assertIsNone(self.cache.get("SELECT * FROM users", [], 1))
        self.assertIsNone(self.cache.get("SELECT * FROM orders", [], 2))
        self.assertIsNotNone(self.cache.get("SELECT * FROM users", [], 3))

    def test_stats_track_hits_and_misses(self):
        self.cache.set("SELECT * FROM users", make_result(execution_time=10.0), 1)
        self.cache.set("SELECT * FROM orders", make_result(execution_time=20.0), 1)
        self.cache.get("SELECT * FROM users", [], 1)
        self.cache.get("SELECT * FROM users", [], 1)
        self.cache.get("SELECT * FROM missing", [], 1)

        stats = self.cache.get_stats()

        self.assertEqual(stats.entry_count, 2)
        self.assertEqual(stats.hits, 2)
        self.assertEqual(stats.misses, 1)
        self.assertAlmostEqual(stats.hit_rate, 0.6667)
        self.assertEqual(stats.average_execution_time, 15.0)
        self.assertTrue(stats.approximate_memory_bytes > 0)

    def test_stats_of_empty_cache(self):
        stats = self.cache.get_stats()

        self.assertEqual(stats.hit_rate, 0)
        self.assertEqual(stats.entry_count, 0)

    def test_cleanup_removes_expired_entries(self):
        self.cache.set("SELECT 1", make_result(), 1, ttl=5)
        self.cache.set("SELECT 2", make_result(), 1, ttl=100)

        self.clock.advance(10)

        self.assertEqual(self.cache.cleanup(), 1)
        self.assertEqual(len(self.cache), 1)

    def test_warm_cache(self):
        self.cache.set("SELECT * FROM users", make_result(), 1)

        warmed = self.cache.warm_cache([
            {"query": "SELECT * FROM users", "database_id": 1},
            {"query": "SELECT COUNT(*) FROM orders", "database_id": 1},
            {"query": "SELECT 1"},
        ])

        self.assertEqual(warmed, 1)
        placeholder = self.cache.get("SELECT COUNT(*) FROM orders", [], 1)
        self.assertEqual(placeholder.rows, [])

    def test_get_cache_entries_orders_by_recent_access(self):
        self.cache.set("SELECT 1", make_result(), 1)
        self.clock.advance(1)
        self.cache.set("SELECT 2", make_result(), 2)
        self.clock.advance(1)
        self.cache.get("SELECT 1", [], 1)

        entries = self.cache.get_cache_entries()

        self.assertEqual([e.database_id for e in entries], [1, 2])
        self.assertEqual(entries[0].access_count, 1)
        self.assertEqual(len(self.cache.get_cache_entries(database_id=2)), 1)

    def test_export_truncates_rows(self):
        rows = [{"id": index} for index in range(25)]
        self.cache.set("SELECT * FROM big", make_result(rows=rows), 1)

        exported = json.loads(self.cache.export_cache())

        self.assertEqual(len(exported["entries"]), 1)
        self.assertEqual(len(exported["entries"][0]["result"]["rows"]), 10)
        self.assertEqual(exported["stats"]["entry_count"], 1)


class TestQueryCacheLifecycle(unittest.IsolatedAsyncioTestCase):
    """Test cases for the background expiry sweep"""

    async def test_sweep_starts_inside_running_loop(self):
        cache = QueryCache(cleanup_interval=60)
        try:
            self.assertTrue(cache.is_running)
        finally:
            await cache.close()
        self.assertFalse(cache.is_running)

    async def test_context_manager_releases_sweep(self):
        async with QueryCache(cleanup_interval=60) as cache:
            cache.set("SELECT 1", make_result(), 1)
            self.assertTrue(cache.is_running)

        self.assertFalse(cache.is_running)
        self.assertEqual(len(cache), 0)

    async def test_sweep_removes_expired_entries_without_lookup(self):
        clock = FakeClock()
        cache = QueryCache(default_ttl=1, cleanup_interval=0.05, clock=clock)
        try:
            cache.set("SELECT * FROM users", make_result(), 1)
            clock.advance(2)

            await asyncio.sleep(0.2)

            self.assertEqual(len(cache), 0)
        finally:
            await cache.close()

    async def test_close_is_idempotent(self):
        cache = QueryCache()
        await cache.close()
        await cache.close()
        self.assertFalse(cache.is_running)


class TestQueryCacheWithoutLoop(unittest.TestCase):

    def test_sweep_deferred_without_loop(self):
        cache = QueryCache()
        self.assertFalse(cache.is_running)


if __name__ == "__main__":
    unittest.main()
