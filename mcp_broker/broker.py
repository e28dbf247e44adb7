import time
import logging
import traceback
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Awaitable

from llm_services.query_assistant import ProcessQueryRequest, QueryAssistant

from .connectors.base import mask_connection_string
from .connectors.registry import ConnectorRegistry, default_registry
from .exceptions import BrokerError, NotConnectedError, UpstreamError
from .models import (
    BrokerResponse,
    Connection,
    DatabaseConfig,
    QueryResult,
    SchemaInfo,
)
from .query_cache import QueryCache
from .schema_snapshot import SchemaSnapshotService

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


class MCPBroker:
    """
    Routes database work between the query cache, the schema snapshot service,
    the connectors and the LLM assistant.

    Every public operation returns a BrokerResponse envelope with the elapsed
    wall-clock time in milliseconds, on success and on failure alike. Errors
    raised by connectors or the assistant are logged and turned into failed
    envelopes here; nothing propagates to the caller.
    """

    def __init__(
        self,
        query_cache: Optional[QueryCache] = None,
        schema_service: Optional[SchemaSnapshotService] = None,
        assistant: Optional[QueryAssistant] = None,
        connectors: Optional[ConnectorRegistry] = None,
        broadcaster=None
    ):
        """
        Initialize the broker

        Args:
            query_cache: Result cache (if None, one with default settings is created)
            schema_service: Snapshot service (if None, a new one is created)
            assistant: LLM collaborator for natural-language questions
            connectors: Connector registry (default: mock backends + PostgreSQL)
            broadcaster: Optional object with an async `broadcast_json(dict)` used
                to publish connection status changes
        """
        self.query_cache = query_cache or QueryCache()
        self.schema_service = schema_service or SchemaSnapshotService()
        self.assistant = assistant or QueryAssistant()
        self.connectors = connectors or default_registry()
        self.broadcaster = broadcaster

        self.connections: Dict[str, Connection] = {}
        self._started_at = time.time()
        self._closed = False

    # Lifecycle

    def start(self) -> None:
        """Start background work (the cache sweep); needs a running event loop"""
        self.query_cache.start()

    async def shutdown(self) -> None:
        """Disconnect every database and release the cache sweep"""
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down MCP broker...")

        try:
            for connection in list(self.connections.values()):
                await self.disconnect_database(connection.database_id)
        finally:
            await self.query_cache.close()
            if self.assistant.provider is not None:
                try:
                    await self.assistant.provider.aclose()
                except Exception as e:
                    logger.warning(f"Error closing LLM provider: {str(e)}")

        logger.info("MCP broker shutdown complete")

    # Helpers

    def _fail(self, start_time: float, message: str) -> BrokerResponse:
        return BrokerResponse(success=False, error=message, execution_time=_elapsed_ms(start_time))

    def _find_connection(self, database_id: int) -> Optional[Connection]:
        for connection in self.connections.values():
            if connection.database_id == database_id:
                return connection
        return None

    def _require_connection(self, database_id: int) -> Connection:
        connection = self._find_connection(database_id)
        if connection is None or connection.status != "connected":
            raise NotConnectedError(database_id)
        return connection

    async def _upstream(self, awaitable: Awaitable, source: str):
        """Await a collaborator call, wrapping its failures in UpstreamError"""
        try:
            return await awaitable
        except BrokerError:
            raise
        except Exception as e:
            raise UpstreamError(f"{source}: {str(e)}") from e

    async def _publish_status(self, connection: Connection) -> None:
        if self.broadcaster is None:
            return
        try:
            await self.broadcaster.broadcast_json({
                "type": "database_status",
                "data": {
                    "database_id": connection.database_id,
                    "connection_id": connection.id,
                    "status": connection.status,
                    "timestamp": _now().isoformat(),
                },
            })
        except Exception as e:
            logger.warning(f"Failed to broadcast status for {connection.id}: {str(e)}")

    def _latest_schemas(self, database_ids: Optional[List[int]]) -> List[SchemaInfo]:
        schemas = []
        for database_id in database_ids or []:
            latest = self.schema_service.get_latest_snapshot(database_id)
            if latest is not None:
                schemas.append(latest.schema)
        return schemas

    # Connections

    async def connect_database(self, config: DatabaseConfig) -> BrokerResponse:
        """
        Open a connection and capture the initial schema snapshot

        Args:
            config: Registration of the target database

        Returns:
            BrokerResponse: Connection id, status and baseline snapshot details
        """
        start_time = time.time()
        connection_id = f"{config.type}-{config.id}"

        try:
            connector = self.connectors.get(config.type)

            # A database keeps a single connection record, whatever its previous type
            previous = self._find_connection(config.id)
            if previous is not None:
                del self.connections[previous.id]
                logger.warning(f"Replacing existing connection {previous.id} with {connection_id}")
                self.query_cache.invalidate(database_id=config.id)
                await self._upstream(
                    self.connectors.get(previous.type).disconnect(previous.handle),
                    f"{previous.type} connector",
                )

            handle = await self._upstream(connector.connect(config.connection_string), f"{config.type} connector")
            connection = Connection(
                id=connection_id,
                database_id=config.id,
                type=config.type,
                status="connected",
                last_activity=_now(),
                metadata={
                    "name": config.name,
                    "connection_string": mask_connection_string(config.connection_string),
                },
                handle=handle,
            )
            self.connections[connection_id] = connection

            try:
                schema = await self._upstream(connector.get_schema(handle), f"{config.type} connector")
            except UpstreamError:
                connection.status = "error"
                raise
            snapshot = self.schema_service.capture_snapshot(config.id, schema)

            logger.info(f"MCP connection established for {config.name} ({config.type})")
            await self._publish_status(connection)

            return BrokerResponse(
                success=True,
                data={
                    "connection_id": connection_id,
                    "status": "connected",
                    "message": f"Successfully connected to {config.name}",
                    "snapshot_id": snapshot.id,
                    "schema_version": snapshot.version,
                },
                execution_time=_elapsed_ms(start_time),
            )
        except Exception as e:
            logger.error(f"MCP connection failed for {config.name}: {str(e)}")
            return self._fail(start_time, f"Connection failed: {str(e)}")

    async def disconnect_database(self, database_id: int) -> BrokerResponse:
        """Drop the connection record and every cached result of the database"""
        start_time = time.time()

        try:
            connection = self._find_connection(database_id)
            if connection is None:
                raise NotConnectedError(database_id)

            del self.connections[connection.id]
            connection.status = "disconnected"
            removed = self.query_cache.invalidate(database_id=database_id)

            connector = self.connectors.get(connection.type)
            await self._upstream(connector.disconnect(connection.handle), f"{connection.type} connector")

            logger.info(f"MCP connection closed for database {database_id}")
            await self._publish_status(connection)

            return BrokerResponse(
                success=True,
                data={"message": "Database disconnected successfully", "invalidated_entries": removed},
                execution_time=_elapsed_ms(start_time),
            )
        except Exception as e:
            logger.error(f"Disconnection failed for database {database_id}: {str(e)}")
            return self._fail(start_time, f"Disconnection failed: {str(e)}")

    def get_connection_status(self, database_id: int) -> Optional[Connection]:
        return self._find_connection(database_id)

    def get_all_connections(self) -> List[Connection]:
        return list(self.connections.values())

    # Queries

    async def execute_query(
        self,
        database_id: int,
        query: str,
        parameters: Optional[List[Any]] = None
    ) -> BrokerResponse:
        """
        Execute a query, serving it from the cache when possible

        The returned result carries the time of the whole operation (cache
        lookup plus any execution); the cached copy keeps the connector time.
        Concurrent misses on the same query may each reach the connector.

        Args:
            database_id: Target database
            query: SQL text
            parameters: Positional query parameters

        Returns:
            BrokerResponse: QueryResult on success
        """
        start_time = time.time()
        parameters = list(parameters or [])

        try:
            connection = self._require_connection(database_id)

            cached = self.query_cache.get(query, parameters, database_id)
            if cached is not None:
                cached.execution_time = _elapsed_ms(start_time)
                return BrokerResponse(success=True, data=cached, execution_time=cached.execution_time)

            connector = self.connectors.get(connection.type)
            query_start = time.time()
            raw = await self._upstream(
                connector.execute_query(connection.handle, query, parameters),
                f"{connection.type} connector",
            )
            rows = raw.get("rows", [])
            result = QueryResult(
                rows=rows,
                row_count=raw.get("row_count", len(rows)),
                query=query,
                parameters=parameters,
                execution_time=_elapsed_ms(query_start),
            )

            self.query_cache.set(query, result, database_id, parameters)
            connection.last_activity = _now()

            result.execution_time = _elapsed_ms(start_time)
            return BrokerResponse(success=True, data=result, execution_time=result.execution_time)
        except Exception as e:
            logger.error(f"Query execution failed for database {database_id}: {str(e)}")
            return self._fail(start_time, f"Query execution failed: {str(e)}")

    def invalidate_cache(self, pattern: Optional[str] = None, database_id: Optional[int] = None) -> BrokerResponse:
        start_time = time.time()
        removed = self.query_cache.invalidate(pattern=pattern, database_id=database_id)
        return BrokerResponse(success=True, data={"removed": removed}, execution_time=_elapsed_ms(start_time))

    # Natural language

    async def process_natural_language_query(
        self,
        query: str,
        database_ids: List[int],
        context: Optional[str] = None,
        api_key: Optional[str] = None
    ) -> BrokerResponse:
        """
        Forward a natural-language question to the assistant with schema context

        The most recent snapshot of each target database is attached; databases
        without a snapshot are skipped.
        """
        start_time = time.time()

        try:
            request = ProcessQueryRequest(
                query=query,
                database_ids=list(database_ids),
                schema=self._latest_schemas(database_ids),
                context=context,
            )
            response = await self._upstream(
                self.assistant.process_natural_language_query(request, api_key),
                "LLM assistant",
            )
            return BrokerResponse(success=True, data=response, execution_time=_elapsed_ms(start_time))
        except Exception as e:
            logger.error(f"Natural language processing failed: {str(e)}")
            logger.debug(traceback.format_exc())
            return self._fail(start_time, f"Processing failed: {str(e)}")

    async def generate_etl_pipeline(
        self,
        source: str,
        target: str,
        requirements: str,
        database_ids: Optional[List[int]] = None,
        api_key: Optional[str] = None
    ) -> BrokerResponse:
        start_time = time.time()

        try:
            response = await self._upstream(
                self.assistant.generate_etl_pipeline(
                    source, target, requirements, self._latest_schemas(database_ids), api_key
                ),
                "LLM assistant",
            )
            return BrokerResponse(success=True, data=response, execution_time=_elapsed_ms(start_time))
        except Exception as e:
            logger.error(f"ETL pipeline generation failed: {str(e)}")
            return self._fail(start_time, f"Pipeline generation failed: {str(e)}")

    async def validate_query(
        self,
        sql: str,
        database_ids: Optional[List[int]] = None,
        api_key: Optional[str] = None
    ) -> BrokerResponse:
        start_time = time.time()

        try:
            verdict = await self._upstream(
                self.assistant.validate_query(sql, self._latest_schemas(database_ids), api_key),
                "LLM assistant",
            )
            return BrokerResponse(success=True, data=verdict, execution_time=_elapsed_ms(start_time))
        except Exception as e:
            logger.error(f"Query validation failed: {str(e)}")
            return self._fail(start_time, f"Validation failed: {str(e)}")

    # Schemas

    async def get_schema(self, database_id: int, include_data: bool = False) -> BrokerResponse:
        """
        Latest schema of a database

        When no snapshot exists yet the schema is introspected through the
        connector and captured as a new snapshot.
        """
        start_time = time.time()

        try:
            latest = self.schema_service.get_latest_snapshot(database_id)
            if latest is not None:
                schema = latest.schema
            else:
                connection = self._require_connection(database_id)
                connector = self.connectors.get(connection.type)
                schema = await self._upstream(
                    connector.get_schema(connection.handle, include_data),
                    f"{connection.type} connector",
                )
                self.schema_service.capture_snapshot(database_id, schema)

            return BrokerResponse(success=True, data=schema, execution_time=_elapsed_ms(start_time))
        except Exception as e:
            logger.error(f"Schema retrieval failed for database {database_id}: {str(e)}")
            return self._fail(start_time, f"Schema retrieval failed: {str(e)}")

    async def refresh_schema(self, database_id: int, include_data: bool = False) -> BrokerResponse:
        """Re-introspect a database, diff it against the latest snapshot and capture it"""
        start_time = time.time()

        try:
            connection = self._require_connection(database_id)
            connector = self.connectors.get(connection.type)
            schema = await self._upstream(
                connector.get_schema(connection.handle, include_data),
                f"{connection.type} connector",
            )

            changes = self.schema_service.compare_schemas(database_id, schema)
            snapshot = self.schema_service.capture_snapshot(database_id, schema)
            connection.last_activity = _now()

            if changes:
                logger.info(f"Detected {len(changes)} schema change(s) for database {database_id}")

            return BrokerResponse(
                success=True,
                data={
                    "snapshot_id": snapshot.id,
                    "version": snapshot.version,
                    "checksum": snapshot.checksum,
                    "changes": [change.to_dict() for change in changes],
                },
                execution_time=_elapsed_ms(start_time),
            )
        except Exception as e:
            logger.error(f"Schema refresh failed for database {database_id}: {str(e)}")
            return self._fail(start_time, f"Schema refresh failed: {str(e)}")

    def get_schema_diff(self, snapshot_id_a: str, snapshot_id_b: str) -> BrokerResponse:
        start_time = time.time()

        try:
            changes = self.schema_service.generate_schema_diff(snapshot_id_a, snapshot_id_b)
            return BrokerResponse(success=True, data=changes, execution_time=_elapsed_ms(start_time))
        except BrokerError as e:
            logger.error(f"Schema diff failed: {str(e)}")
            return self._fail(start_time, f"Schema diff failed: {str(e)}")

    def get_schema_changes(self, database_id: int, since: Optional[datetime] = None) -> BrokerResponse:
        start_time = time.time()
        changes = self.schema_service.get_schema_changes(database_id, since)
        return BrokerResponse(success=True, data=changes, execution_time=_elapsed_ms(start_time))

    def get_snapshot_history(self, database_id: int, limit: int = 10) -> BrokerResponse:
        start_time = time.time()
        history = self.schema_service.get_snapshot_history(database_id, limit)
        return BrokerResponse(success=True, data=history, execution_time=_elapsed_ms(start_time))

    # Stats

    def get_service_stats(self) -> Dict[str, Any]:
        return {
            "connections": len(self.connections),
            "cache": self.query_cache.get_stats().to_dict(),
            "schema": self.schema_service.get_stats().to_dict(),
            "uptime": round(time.time() - self._started_at, 2),
        }
