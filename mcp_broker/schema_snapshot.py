import copy
import json
import hashlib
import logging
import itertools
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Callable

from .exceptions import SnapshotNotFoundError
from .models import (
    ColumnInfo,
    SchemaChange,
    SchemaInfo,
    SchemaServiceStats,
    SchemaSnapshot,
    TableInfo,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def calculate_checksum(schema: SchemaInfo) -> str:
    """
    SHA-256 over the canonical JSON form of a schema's structure

    Row counts, sample rows and the include_data flag are left out, so the same
    structure captured with or without data has the same checksum.
    """
    structure = {
        "tables": [
            {"name": table.name, "columns": [column.to_dict() for column in table.columns]}
            for table in schema.tables
        ],
        "views": [view.to_dict() for view in schema.views],
        "procedures": [procedure.to_dict() for procedure in schema.procedures],
    }
    canonical = json.dumps(structure, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def generate_version(timestamp: datetime) -> str:
    return timestamp.strftime("v%Y.%m.%d-%H%M")


def has_column_changed(old_column: ColumnInfo, new_column: ColumnInfo) -> bool:
    return (
        old_column.type != new_column.type
        or old_column.nullable != new_column.nullable
        or old_column.primary_key != new_column.primary_key
        or old_column.default_value != new_column.default_value
    )


def diff_table_columns(
    table_name: str,
    old_table: TableInfo,
    new_table: TableInfo,
    timestamp: datetime
) -> List[SchemaChange]:
    """Column-level changes of one table: additions, removals, then modifications"""
    old_columns = {column.name: column for column in old_table.columns}
    new_columns = {column.name: column for column in new_table.columns}
    changes = []

    for name, column in new_columns.items():
        if name not in old_columns:
            changes.append(SchemaChange(
                type="column_added",
                table_name=table_name,
                column_name=name,
                new_value=column,
                timestamp=timestamp,
            ))

    for name, column in old_columns.items():
        if name not in new_columns:
            changes.append(SchemaChange(
                type="column_removed",
                table_name=table_name,
                column_name=name,
                old_value=column,
                timestamp=timestamp,
            ))

    for name, new_column in new_columns.items():
        old_column = old_columns.get(name)
        if old_column is not None and has_column_changed(old_column, new_column):
            changes.append(SchemaChange(
                type="column_modified",
                table_name=table_name,
                column_name=name,
                old_value=old_column,
                new_value=new_column,
                timestamp=timestamp,
            ))

    return changes


def diff_schemas(old_schema: SchemaInfo, new_schema: SchemaInfo, timestamp: datetime) -> List[SchemaChange]:
    """
    Structural diff between two schemas

    Tables are matched by name. Changes come out as table additions (new
    order), table removals (old order), then the column-level changes of each
    table present in both, in the new schema's table order.

    Args:
        old_schema: Baseline schema
        new_schema: Schema to compare against the baseline
        timestamp: Comparison time stamped on every change

    Returns:
        List[SchemaChange]: Changes turning old_schema into new_schema
    """
    old_tables = {table.name: table for table in old_schema.tables}
    new_tables = {table.name: table for table in new_schema.tables}
    changes = []

    for name in new_tables:
        if name not in old_tables:
            changes.append(SchemaChange(type="table_added", table_name=name, timestamp=timestamp))

    for name in old_tables:
        if name not in new_tables:
            changes.append(SchemaChange(type="table_removed", table_name=name, timestamp=timestamp))

    for name, new_table in new_tables.items():
        old_table = old_tables.get(name)
        if old_table is not None:
            changes.extend(diff_table_columns(name, old_table, new_table, timestamp))

    return changes


class SchemaSnapshotService:
    """
    Bounded, ordered history of schema captures per database.

    Each database keeps an append-only list of snapshots capped at
    `history_limit`; once full, the oldest capture is dropped first. The most
    recent snapshot is always the last element of that list.
    """

    def __init__(self, history_limit: int = 50, clock: Callable[[], datetime] = utc_now):
        self.history_limit = history_limit
        self._clock = clock
        self._snapshots: Dict[int, List[SchemaSnapshot]] = {}
        self._sequence = itertools.count(1)

    def _trim(self, history: List[SchemaSnapshot]) -> None:
        overflow = len(history) - self.history_limit
        if overflow > 0:
            del history[:overflow]

    def capture_snapshot(self, database_id: int, schema: SchemaInfo) -> SchemaSnapshot:
        """
        Record a new point-in-time capture of a database schema

        Every call appends, even when the content matches the previous capture.
        """
        timestamp = self._clock()
        snapshot = SchemaSnapshot(
            id=f"{database_id}-{int(timestamp.timestamp() * 1000)}-{next(self._sequence)}",
            database_id=database_id,
            timestamp=timestamp,
            schema=copy.deepcopy(schema),
            version=generate_version(timestamp),
            checksum=calculate_checksum(schema),
        )

        history = self._snapshots.setdefault(database_id, [])
        history.append(snapshot)
        self._trim(history)

        logger.info(f"Schema snapshot captured for database {database_id}: {snapshot.version}")
        return snapshot

    def get_latest_snapshot(self, database_id: int) -> Optional[SchemaSnapshot]:
        history = self._snapshots.get(database_id)
        return history[-1] if history else None

    def compare_schemas(self, database_id: int, new_schema: SchemaInfo) -> List[SchemaChange]:
        """
        Diff the latest stored snapshot of a database against a candidate schema

        Returns an empty list when the database has no snapshot yet: the first
        capture is a baseline, not a diff point.
        """
        latest = self.get_latest_snapshot(database_id)
        if latest is None:
            return []
        return diff_schemas(latest.schema, new_schema, self._clock())

    def find_snapshot(self, snapshot_id: str) -> Optional[SchemaSnapshot]:
        for history in self._snapshots.values():
            for snapshot in history:
                if snapshot.id == snapshot_id:
                    return snapshot
        return None

    def generate_schema_diff(self, snapshot_id_a: str, snapshot_id_b: str) -> List[SchemaChange]:
        """
        Diff two stored snapshots by id, A being the baseline

        Raises:
            SnapshotNotFoundError: If either id is absent from every history
        """
        snapshot_a = self.find_snapshot(snapshot_id_a)
        snapshot_b = self.find_snapshot(snapshot_id_b)
        missing = [sid for sid, snap in ((snapshot_id_a, snapshot_a), (snapshot_id_b, snapshot_b)) if snap is None]
        if missing:
            raise SnapshotNotFoundError(*missing)

        return diff_schemas(snapshot_a.schema, snapshot_b.schema, self._clock())

    def get_snapshot_history(self, database_id: int, limit: int = 10) -> List[SchemaSnapshot]:
        """Snapshots of a database, most recent first"""
        history = self._snapshots.get(database_id, [])
        return list(reversed(history))[:limit]

    def get_schema_changes(self, database_id: int, since: Optional[datetime] = None) -> List[SchemaChange]:
        """
        Accumulated changes between adjacent snapshots, most recent pair first

        Args:
            database_id: Database whose history is walked
            since: Stop once the newer snapshot of a pair was captured before this time

        Returns:
            List[SchemaChange]: Changes of every walked pair
        """
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)

        history = self.get_snapshot_history(database_id, self.history_limit)
        changes = []

        for newer, older in zip(history, history[1:]):
            if since is not None and newer.timestamp < since:
                break
            changes.extend(diff_schemas(older.schema, newer.schema, self._clock()))

        return changes

    def get_stats(self) -> SchemaServiceStats:
        timestamps = [s.timestamp for history in self._snapshots.values() for s in history]
        return SchemaServiceStats(
            total_snapshots=len(timestamps),
            database_count=len(self._snapshots),
            oldest_snapshot_time=min(timestamps) if timestamps else None,
            newest_snapshot_time=max(timestamps) if timestamps else None,
        )

    def export_snapshot(self, snapshot_id: str) -> Optional[str]:
        snapshot = self.find_snapshot(snapshot_id)
        if snapshot is None:
            return None
        return json.dumps(snapshot.to_dict(), indent=2, default=str)

    def import_snapshot(self, snapshot_data: str) -> Optional[SchemaSnapshot]:
        """
        Restore a snapshot previously produced by export_snapshot

        The snapshot is placed in timestamp order within its database history
        and the history cap is enforced. Malformed input is logged and ignored.

        Returns:
            Optional[SchemaSnapshot]: The imported snapshot, or None if invalid
        """
        try:
            data = json.loads(snapshot_data)
            if not data.get("id") or data.get("database_id") is None or not data.get("schema"):
                raise ValueError("Invalid snapshot format")
            snapshot = SchemaSnapshot.from_dict(data)
            if snapshot.timestamp.tzinfo is None:
                snapshot.timestamp = snapshot.timestamp.replace(tzinfo=timezone.utc)
            if not snapshot.checksum:
                snapshot.checksum = calculate_checksum(snapshot.schema)
            if not snapshot.version:
                snapshot.version = generate_version(snapshot.timestamp)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Failed to import snapshot: {str(e)}")
            return None

        if self.find_snapshot(snapshot.id) is not None:
            logger.warning(f"Snapshot {snapshot.id} already present, skipping import")
            return None

        history = self._snapshots.setdefault(snapshot.database_id, [])
        history.append(snapshot)
        history.sort(key=lambda s: s.timestamp)
        self._trim(history)

        logger.info(f"Schema snapshot imported: {snapshot.id}")
        return snapshot
