"""
MCP broker: query result caching, schema snapshots and database routing.
"""

from .broker import MCPBroker
from .connectors import ConnectorRegistry, DBConnector, default_registry
from .exceptions import (
    BrokerError,
    NotConnectedError,
    SnapshotNotFoundError,
    UnsupportedDatabaseError,
    UpstreamError,
)
from .models import (
    BrokerResponse,
    CacheStats,
    ColumnInfo,
    Connection,
    DatabaseConfig,
    QueryResult,
    SchemaChange,
    SchemaInfo,
    SchemaSnapshot,
    TableInfo,
)
from .query_cache import QueryCache
from .schema_snapshot import SchemaSnapshotService

__version__ = "0.1.0"

__all__ = [
    "MCPBroker",
    "QueryCache",
    "SchemaSnapshotService",
    "ConnectorRegistry",
    "DBConnector",
    "default_registry",
    "BrokerError",
    "NotConnectedError",
    "SnapshotNotFoundError",
    "UnsupportedDatabaseError",
    "UpstreamError",
    "BrokerResponse",
    "CacheStats",
    "ColumnInfo",
    "Connection",
    "DatabaseConfig",
    "QueryResult",
    "SchemaChange",
    "SchemaInfo",
    "SchemaSnapshot",
    "TableInfo",
]
