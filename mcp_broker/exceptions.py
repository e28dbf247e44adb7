"""
Exceptions raised by the broker core.

Only the broker's calls into external collaborators (connectors, the LLM
assistant) are expected to fail in normal operation; the broker converts every
one of these into a failed response envelope.
"""


class BrokerError(Exception):
    """Base class for all broker errors"""
    pass


class NotConnectedError(BrokerError):
    """Raised when an operation references a database with no active connection"""

    def __init__(self, database_id: int):
        self.database_id = database_id
        super().__init__(f"Database {database_id} not connected")


class SnapshotNotFoundError(BrokerError):
    """Raised when a schema snapshot id cannot be found in any history"""

    def __init__(self, *snapshot_ids: str):
        self.snapshot_ids = snapshot_ids
        super().__init__(f"Snapshot(s) not found: {', '.join(snapshot_ids)}")


class UnsupportedDatabaseError(BrokerError):
    """Raised when no connector is registered for a database type tag"""

    def __init__(self, database_type: str):
        self.database_type = database_type
        super().__init__(f"Unsupported database type: {database_type}")


class UpstreamError(BrokerError):
    """Raised when a connector or the LLM collaborator fails"""
    pass
