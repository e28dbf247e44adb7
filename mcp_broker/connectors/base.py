import re
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional

from ..models import SchemaInfo

_PASSWORD_PATTERN = re.compile(r"password=[^;]+", re.IGNORECASE)


def mask_connection_string(connection_string: Optional[str]) -> str:
    """Hide the password part of a `key=value;` style connection string"""
    if not connection_string:
        return "mock://connection"
    return _PASSWORD_PATTERN.sub("password=***", connection_string)


class DBConnector(ABC):
    """
    Abstract base class for database connectors.

    This provides a common interface for the different backends the broker
    can talk to. A connector is stateless with respect to connections: every
    call receives the handle returned by `connect`, so one connector instance
    serves every database of its type.
    """

    #: Type tag the connector is registered under
    db_type: str = ""

    @abstractmethod
    async def connect(self, connection_string: str) -> Any:
        """
        Establish a connection to the database

        Args:
            connection_string: Backend specific connection string

        Returns:
            Any: Opaque connection handle passed back to the other methods
        """
        pass

    @abstractmethod
    async def execute_query(self, handle: Any, query: str, parameters: Optional[List[Any]] = None) -> Dict[str, Any]:
        """
        Execute a query

        Args:
            handle: Handle returned by connect
            query: SQL query to execute
            parameters: Positional query parameters

        Returns:
            Dict[str, Any]: `{"rows": [...], "row_count": int}`
        """
        pass

    @abstractmethod
    async def get_schema(self, handle: Any, include_data: bool = False) -> SchemaInfo:
        """
        Introspect the database structure

        Args:
            handle: Handle returned by connect
            include_data: Whether to attach row counts and sample rows to each table

        Returns:
            SchemaInfo: Tables, views and procedures of the database
        """
        pass

    async def disconnect(self, handle: Any) -> None:
        """Release a connection handle"""
        pass
