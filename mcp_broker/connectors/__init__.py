"""
Database connectors the broker dispatches to by type tag.
"""

from .base import DBConnector, mask_connection_string
from .mock import (
    MockConnector,
    SnowflakeConnector,
    DatabricksConnector,
    SqlServerConnector,
    SalesforceConnector,
)
from .postgres import PostgresConnector
from .registry import ConnectorRegistry, default_registry

__all__ = [
    "DBConnector",
    "mask_connection_string",
    "MockConnector",
    "SnowflakeConnector",
    "DatabricksConnector",
    "SqlServerConnector",
    "SalesforceConnector",
    "PostgresConnector",
    "ConnectorRegistry",
    "default_registry",
]
