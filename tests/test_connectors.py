import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

from mcp_broker.connectors import (
    ConnectorRegistry,
    DatabricksConnector,
    PostgresConnector,
    SalesforceConnector,
    SnowflakeConnector,
    SqlServerConnector,
    default_registry,
    mask_connection_string,
)
from mcp_broker.exceptions import UnsupportedDatabaseError


class TestMaskConnectionString(unittest.TestCase):

    def test_masks_password(self):
        masked = mask_connection_string("server=db;user=sa;Password=s3cret;database=ops")
        self.assertEqual(masked, "server=db;user=sa;password=***;database=ops")

    def test_empty_connection_string(self):
        self.assertEqual(mask_connection_string(""), "mock://connection")
        self.assertEqual(mask_connection_string(None), "mock://connection")


class TestMockConnectors(unittest.IsolatedAsyncioTestCase):
    """Test cases for the canned demo backends"""

    async def asyncSetUp(self):
        self.connector = SnowflakeConnector(latency=0)
        self.handle = await self.connector.connect("account=demo;password=hunter2")

    async def test_connect_returns_masked_handle(self):
        self.assertTrue(self.handle["connected"])
        self.assertEqual(self.handle["type"], "snowflake")
        self.assertNotIn("hunter2", self.handle["connection_string"])

    async def test_query_routing(self):
        users = await self.connector.execute_query(self.handle, "SELECT * FROM users")
        orders = await self.connector.execute_query(self.handle, "select id from orders")
        count = await self.connector.execute_query(self.handle, "SELECT COUNT(*) FROM events")
        other = await self.connector.execute_query(self.handle, "SHOW WAREHOUSES")

        self.assertEqual(users["row_count"], 2)
        self.assertEqual(users["rows"][0]["name"], "John Doe")
        self.assertEqual(orders["rows"][1]["total"], 199.50)
        self.assertEqual(count["rows"], [{"count": 42}])
        self.assertEqual(other["rows"], [{"result": "Query executed successfully"}])

    async def test_returned_rows_are_fresh_copies(self):
        first = await self.connector.execute_query(self.handle, "SELECT * FROM users")
        first["rows"][0]["name"] = "changed"

        second = await self.connector.execute_query(self.handle, "SELECT * FROM users")

        self.assertEqual(second["rows"][0]["name"], "John Doe")

    async def test_backend_specific_tables(self):
        snowflake = await self.connector.get_schema(self.handle)
        databricks = await DatabricksConnector(latency=0).get_schema(None)
        sqlserver = await SqlServerConnector(latency=0).get_schema(None)
        salesforce = await SalesforceConnector(latency=0).get_schema(None)

        self.assertEqual([t.name for t in snowflake.tables], ["users", "orders", "warehouse_analytics"])
        self.assertEqual([t.name for t in databricks.tables], ["users", "orders", "ml_models"])
        self.assertEqual([t.name for t in sqlserver.tables], ["users", "orders"])
        self.assertEqual([t.name for t in salesforce.tables], ["Account", "Contact"])

    async def test_schema_with_sample_data(self):
        schema = await self.connector.get_schema(self.handle, include_data=True)

        users = schema.get_table("users")
        self.assertTrue(schema.include_data)
        self.assertEqual(users.row_count, 2)
        self.assertEqual(len(users.sample_data), 2)
        self.assertEqual(schema.get_table("warehouse_analytics").row_count, 0)

    async def test_disconnect_marks_handle(self):
        await self.connector.disconnect(self.handle)
        self.assertFalse(self.handle["connected"])


class TestConnectorRegistry(unittest.TestCase):

    def test_default_registry(self):
        registry = default_registry(latency=0)

        self.assertEqual(registry.types(), ["databricks", "postgres", "salesforce", "snowflake", "sqlserver"])
        self.assertIsInstance(registry.get("Snowflake"), SnowflakeConnector)
        self.assertIn("postgres", registry)

    def test_unknown_type(self):
        with self.assertRaises(UnsupportedDatabaseError) as context:
            ConnectorRegistry().get("oracle")
        self.assertIn("oracle", str(context.exception))

    def test_register_replaces(self):
        registry = ConnectorRegistry()
        first, second = SqlServerConnector(latency=0), SqlServerConnector(latency=0)

        registry.register("sqlserver", first)
        registry.register("SQLSERVER", second)

        self.assertIs(registry.get("sqlserver"), second)


class TestPostgresConnector(unittest.IsolatedAsyncioTestCase):
    """Test cases for the PostgreSQL connector against a mocked psycopg2 connection"""

    def setUp(self):
        self.connector = PostgresConnector(sample_size=2)
        self.cursor = MagicMock()
        self.conn = MagicMock()
        self.conn.closed = False
        self.conn.cursor.return_value.__enter__.return_value = self.cursor

    def test_verify_query_safety(self):
        self.assertEqual(self.connector.verify_query_safety("SELECT * FROM users"), (True, ""))
        self.assertTrue(self.connector.verify_query_safety("SELECT updated_at FROM users")[0])
        self.assertTrue(self.connector.verify_query_safety("WITH t AS (SELECT 1) SELECT * FROM t")[0])

        is_safe, reason = self.connector.verify_query_safety("DROP TABLE users")
        self.assertFalse(is_safe)
        self.assertIn("DROP", reason)

    async def test_connect_uses_psycopg2(self):
        with patch("mcp_broker.connectors.postgres.psycopg2.connect", return_value=self.conn) as connect:
            handle = await self.connector.connect("postgresql://localhost/app")

        connect.assert_called_once_with("postgresql://localhost/app")
        self.assertIs(handle, self.conn)

    async def test_execute_query_converts_decimals(self):
        self.cursor.description = [("id",), ("total",)]
        self.cursor.fetchall.return_value = [{"id": 1, "total": Decimal("299.99")}]

        result = await self.connector.execute_query(self.conn, "SELECT id, total FROM orders WHERE id = %s", [1])

        self.cursor.execute.assert_called_once_with("SELECT id, total FROM orders WHERE id = %s", [1])
        self.assertEqual(result, {"rows": [{"id": 1, "total": 299.99}], "row_count": 1})
        self.conn.rollback.assert_called()

    async def test_execute_query_rejects_writes(self):
        with self.assertRaises(ValueError):
            await self.connector.execute_query(self.conn, "DELETE FROM users")
        self.cursor.execute.assert_not_called()

    async def test_get_schema(self):
        self.cursor.fetchall.side_effect = [
            [{"table_name": "orders", "column_name": "id", "constraint_type": "PRIMARY KEY"},
             {"table_name": "orders", "column_name": "user_id", "constraint_type": "FOREIGN KEY"}],
            [{"table_name": "orders", "column_name": "id", "data_type": "integer",
              "column_default": None, "is_nullable": "NO"},
             {"table_name": "orders", "column_name": "user_id", "data_type": "integer",
              "column_default": None, "is_nullable": "YES"}],
            [{"table_name": "recent_orders", "view_definition": "SELECT * FROM orders"}],
        ]

        schema = await self.connector.get_schema(self.conn)

        orders = schema.get_table("orders")
        self.assertEqual([c.name for c in orders.columns], ["id", "user_id"])
        self.assertTrue(orders.columns[0].primary_key)
        self.assertFalse(orders.columns[0].nullable)
        self.assertTrue(orders.columns[1].foreign_key)
        self.assertEqual(schema.views[0].name, "recent_orders")

    async def test_disconnect_closes_connection(self):
        await self.connector.disconnect(self.conn)
        self.conn.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
