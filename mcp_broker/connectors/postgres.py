import re
import logging
from decimal import Decimal
from typing import List, Dict, Any, Optional, Tuple

import psycopg2
from psycopg2.extras import RealDictCursor

from .base import DBConnector
from ..models import ColumnInfo, SchemaInfo, TableInfo, ViewInfo

logger = logging.getLogger(__name__)

DANGEROUS_KEYWORDS = [
    "DROP", "DELETE", "TRUNCATE", "UPDATE", "INSERT", "ALTER", "CREATE",
    "GRANT", "REVOKE", "COPY", "EXECUTE", "DO"
]

COLUMNS_QUERY = """
SELECT
    c.table_name,
    c.column_name,
    c.data_type,
    c.column_default,
    c.is_nullable
FROM
    information_schema.columns c
JOIN
    information_schema.tables t ON t.table_name = c.table_name AND t.table_schema = c.table_schema
WHERE
    c.table_schema = 'public' AND t.table_type = 'BASE TABLE'
ORDER BY
    c.table_name, c.ordinal_position;
"""

KEY_COLUMNS_QUERY = """
SELECT
    tc.table_name,
    kcu.column_name,
    tc.constraint_type
FROM
    information_schema.table_constraints AS tc
JOIN
    information_schema.key_column_usage AS kcu
    ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema
WHERE
    tc.table_schema = 'public' AND tc.constraint_type IN ('PRIMARY KEY', 'FOREIGN KEY');
"""

VIEWS_QUERY = """
SELECT table_name, view_definition
FROM information_schema.views
WHERE table_schema = 'public'
ORDER BY table_name;
"""


class PostgresConnector(DBConnector):
    """
    PostgreSQL database connector implementation

    Only read-only statements are executed; anything containing a data or
    schema modifying keyword is rejected before it reaches the server.
    """

    db_type = "postgres"

    def __init__(self, sample_size: int = 5):
        self.sample_size = sample_size

    async def connect(self, connection_string: str) -> Any:
        """
        Establish connection to the PostgreSQL database

        Args:
            connection_string: libpq DSN or URI
        """
        try:
            conn = psycopg2.connect(connection_string)
            logger.info("Successfully connected to PostgreSQL database")
            return conn
        except Exception as e:
            logger.error(f"Failed to connect to PostgreSQL database: {str(e)}")
            raise

    async def disconnect(self, handle: Any) -> None:
        if handle is not None and not handle.closed:
            handle.close()
            logger.info("Disconnected from PostgreSQL database")

    def _convert_for_json(self, value):
        """Convert values that are not JSON serializable to serializable types"""
        if isinstance(value, Decimal):
            return float(value)
        return value

    def verify_query_safety(self, query: str) -> Tuple[bool, str]:
        """
        Verify if a query is safe to execute (no potentially harmful operations)

        Args:
            query (str): SQL query to verify

        Returns:
            Tuple[bool, str]: (is_safe, reason_if_not_safe)
        """
        normalized_query = query.strip().upper()
        for keyword in DANGEROUS_KEYWORDS:
            if re.search(rf"\b{keyword}\b", normalized_query):
                return False, f"Query contains potentially harmful operation: {keyword}"
        return True, ""

    async def execute_query(self, handle: Any, query: str, parameters: Optional[List[Any]] = None) -> Dict[str, Any]:
        is_safe, reason = self.verify_query_safety(query)
        if not is_safe:
            raise ValueError(f"Query rejected: {reason}")

        try:
            with handle.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(query, parameters or None)
                if cursor.description is None:
                    handle.rollback()
                    raise ValueError("Only queries returning rows are allowed")

                rows = [
                    {key: self._convert_for_json(value) for key, value in dict(row).items()}
                    for row in cursor.fetchall()
                ]
            # Read-only session: never keep a transaction open between calls
            handle.rollback()
            return {"rows": rows, "row_count": len(rows)}
        except psycopg2.Error as e:
            handle.rollback()
            logger.error(f"Query execution error: {str(e)}")
            raise

    async def get_schema(self, handle: Any, include_data: bool = False) -> SchemaInfo:
        """
        Retrieve the PostgreSQL schema of the `public` namespace
        """
        tables: Dict[str, TableInfo] = {}
        try:
            with handle.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(KEY_COLUMNS_QUERY)
                primary_keys = set()
                foreign_keys = set()
                for row in cursor.fetchall():
                    key = (row["table_name"], row["column_name"])
                    if row["constraint_type"] == "PRIMARY KEY":
                        primary_keys.add(key)
                    else:
                        foreign_keys.add(key)

                cursor.execute(COLUMNS_QUERY)
                for row in cursor.fetchall():
                    table = tables.setdefault(row["table_name"], TableInfo(name=row["table_name"]))
                    key = (row["table_name"], row["column_name"])
                    table.columns.append(ColumnInfo(
                        name=row["column_name"],
                        type=row["data_type"],
                        nullable=row["is_nullable"] == "YES",
                        primary_key=key in primary_keys,
                        foreign_key=key in foreign_keys,
                        default_value=row["column_default"],
                    ))

                cursor.execute(VIEWS_QUERY)
                views = [
                    ViewInfo(name=row["table_name"], definition=row["view_definition"] or "")
                    for row in cursor.fetchall()
                ]

                if include_data:
                    for table in tables.values():
                        # Identifiers come from information_schema, quoted to keep case
                        cursor.execute(f'SELECT COUNT(*) AS count FROM "{table.name}"')
                        table.row_count = cursor.fetchone()["count"]
                        cursor.execute(f'SELECT * FROM "{table.name}" LIMIT %s', (self.sample_size,))
                        table.sample_data = [
                            {key: self._convert_for_json(value) for key, value in dict(row).items()}
                            for row in cursor.fetchall()
                        ]
            handle.rollback()
        except psycopg2.Error as e:
            handle.rollback()
            logger.error(f"Error fetching database schema: {str(e)}")
            raise

        return SchemaInfo(tables=list(tables.values()), views=views, include_data=include_data)
