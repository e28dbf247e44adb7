import logging
from typing import Dict, List, Optional

from .base import DBConnector
from .mock import (
    DatabricksConnector,
    SalesforceConnector,
    SnowflakeConnector,
    SqlServerConnector,
)
from .postgres import PostgresConnector
from ..exceptions import UnsupportedDatabaseError

logger = logging.getLogger(__name__)


class ConnectorRegistry:
    """Lookup table from database type tag to connector instance"""

    def __init__(self, connectors: Optional[Dict[str, DBConnector]] = None):
        self._connectors: Dict[str, DBConnector] = {}
        for db_type, connector in (connectors or {}).items():
            self.register(db_type, connector)

    def register(self, db_type: str, connector: DBConnector) -> None:
        key = db_type.lower()
        if key in self._connectors:
            logger.warning(f"Replacing connector registered for {key}")
        self._connectors[key] = connector

    def get(self, db_type: str) -> DBConnector:
        """
        Get the connector for a type tag

        Raises:
            UnsupportedDatabaseError: If nothing is registered for the tag
        """
        connector = self._connectors.get(db_type.lower())
        if connector is None:
            raise UnsupportedDatabaseError(db_type)
        return connector

    def types(self) -> List[str]:
        return sorted(self._connectors)

    def __contains__(self, db_type: str) -> bool:
        return db_type.lower() in self._connectors


def default_registry(latency: float = 0.1) -> ConnectorRegistry:
    """Registry with the demo mock backends and the PostgreSQL connector"""
    return ConnectorRegistry({
        "snowflake": SnowflakeConnector(latency=latency),
        "databricks": DatabricksConnector(latency=latency),
        "sqlserver": SqlServerConnector(latency=latency),
        "salesforce": SalesforceConnector(latency=latency),
        "postgres": PostgresConnector(),
    })
