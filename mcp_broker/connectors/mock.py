"""
Mock connectors for the demo backends.

They return canned rows and schemas so the broker can be exercised end to end
without any real warehouse behind it.
"""
import random
import asyncio
import logging
from typing import List, Dict, Any, Optional

from .base import DBConnector, mask_connection_string
from ..models import ColumnInfo, SchemaInfo, TableInfo

logger = logging.getLogger(__name__)

MOCK_USERS = [
    {"id": 1, "name": "John Doe", "email": "john@example.com", "created_at": "2024-01-15T10:30:00Z"},
    {"id": 2, "name": "Jane Smith", "email": "jane@example.com", "created_at": "2024-01-16T14:22:00Z"},
]

MOCK_ORDERS = [
    {"id": 101, "user_id": 1, "total": 299.99, "status": "completed", "created_at": "2024-01-20T09:15:00Z"},
    {"id": 102, "user_id": 2, "total": 199.50, "status": "pending", "created_at": "2024-01-21T16:45:00Z"},
]


def base_tables() -> List[TableInfo]:
    return [
        TableInfo(
            name="users",
            columns=[
                ColumnInfo("id", "INTEGER", nullable=False, primary_key=True),
                ColumnInfo("name", "VARCHAR(255)", nullable=False),
                ColumnInfo("email", "VARCHAR(255)", nullable=False),
                ColumnInfo("created_at", "TIMESTAMP", nullable=False),
            ],
        ),
        TableInfo(
            name="orders",
            columns=[
                ColumnInfo("id", "INTEGER", nullable=False, primary_key=True),
                ColumnInfo("user_id", "INTEGER", nullable=False, foreign_key=True),
                ColumnInfo("total", "DECIMAL(10,2)", nullable=False),
                ColumnInfo("status", "VARCHAR(50)", nullable=False),
                ColumnInfo("created_at", "TIMESTAMP", nullable=False),
            ],
        ),
    ]


class MockConnector(DBConnector):
    """Connector answering from canned data after a simulated delay"""

    db_type = "mock"

    def __init__(self, latency: float = 0.1):
        """
        Args:
            latency: Average simulated round trip in seconds (0 disables the delay)
        """
        self.latency = latency

    async def _simulate_latency(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(random.uniform(self.latency * 0.5, self.latency * 1.5))

    async def connect(self, connection_string: str) -> Dict[str, Any]:
        await self._simulate_latency()
        logger.info(f"Mock {self.db_type} connection opened")
        return {
            "type": self.db_type,
            "connected": True,
            "connection_string": mask_connection_string(connection_string),
        }

    async def disconnect(self, handle: Any) -> None:
        if isinstance(handle, dict):
            handle["connected"] = False

    def tables(self) -> List[TableInfo]:
        """Tables exposed by this backend"""
        return base_tables()

    def sample_rows(self, table_name: str) -> List[Dict[str, Any]]:
        return {"users": MOCK_USERS, "orders": MOCK_ORDERS}.get(table_name, [])

    async def execute_query(self, handle: Any, query: str, parameters: Optional[List[Any]] = None) -> Dict[str, Any]:
        await self._simulate_latency()
        normalized = query.lower().strip()

        if "select" in normalized and "users" in normalized:
            rows = [dict(row) for row in MOCK_USERS]
        elif "select" in normalized and "orders" in normalized:
            rows = [dict(row) for row in MOCK_ORDERS]
        elif "count" in normalized:
            rows = [{"count": 42}]
        else:
            rows = [{"result": "Query executed successfully"}]

        return {"rows": rows, "row_count": len(rows)}

    async def get_schema(self, handle: Any, include_data: bool = False) -> SchemaInfo:
        await self._simulate_latency()
        tables = self.tables()
        if include_data:
            for table in tables:
                sample = self.sample_rows(table.name)
                table.sample_data = [dict(row) for row in sample]
                table.row_count = len(sample)
        return SchemaInfo(tables=tables, include_data=include_data)


class SnowflakeConnector(MockConnector):
    db_type = "snowflake"

    def tables(self) -> List[TableInfo]:
        return base_tables() + [
            TableInfo(
                name="warehouse_analytics",
                columns=[
                    ColumnInfo("warehouse_id", "VARCHAR(100)", nullable=False, primary_key=True),
                    ColumnInfo("query_count", "NUMBER(38,0)", nullable=False),
                    ColumnInfo("execution_time", "NUMBER(38,3)", nullable=False),
                    ColumnInfo("date", "DATE", nullable=False),
                ],
            )
        ]


class DatabricksConnector(MockConnector):
    db_type = "databricks"

    def tables(self) -> List[TableInfo]:
        return base_tables() + [
            TableInfo(
                name="ml_models",
                columns=[
                    ColumnInfo("model_id", "STRING", nullable=False, primary_key=True),
                    ColumnInfo("model_name", "STRING", nullable=False),
                    ColumnInfo("accuracy", "DOUBLE", nullable=True),
                    ColumnInfo("created_at", "TIMESTAMP", nullable=False),
                ],
            )
        ]


class SqlServerConnector(MockConnector):
    db_type = "sqlserver"


class SalesforceConnector(MockConnector):
    db_type = "salesforce"

    def tables(self) -> List[TableInfo]:
        # Salesforce exposes objects rather than the shared users/orders tables
        return [
            TableInfo(
                name="Account",
                columns=[
                    ColumnInfo("Id", "ID", nullable=False, primary_key=True),
                    ColumnInfo("Name", "STRING", nullable=False),
                    ColumnInfo("Industry", "PICKLIST", nullable=True),
                    ColumnInfo("CreatedDate", "DATETIME", nullable=False),
                ],
            ),
            TableInfo(
                name="Contact",
                columns=[
                    ColumnInfo("Id", "ID", nullable=False, primary_key=True),
                    ColumnInfo("FirstName", "STRING", nullable=True),
                    ColumnInfo("LastName", "STRING", nullable=False),
                    ColumnInfo("Email", "EMAIL", nullable=True),
                    ColumnInfo("AccountId", "REFERENCE", nullable=True, foreign_key=True),
                ],
            ),
        ]
