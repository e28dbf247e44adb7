"""
Data model shared by the query cache, the schema snapshot service and the broker.
"""
import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

ChangeType = Literal[
    "table_added",
    "table_removed",
    "column_added",
    "column_removed",
    "column_modified",
]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class ColumnInfo:
    """A single column of a table or view"""
    name: str
    type: str
    nullable: bool = True
    primary_key: bool = False
    foreign_key: bool = False
    default_value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "nullable": self.nullable,
            "primary_key": self.primary_key,
            "foreign_key": self.foreign_key,
            "default_value": self.default_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnInfo":
        return cls(
            name=data["name"],
            type=data["type"],
            nullable=data.get("nullable", True),
            primary_key=data.get("primary_key", False),
            foreign_key=data.get("foreign_key", False),
            default_value=data.get("default_value"),
        )


@dataclass
class TableInfo:
    name: str
    columns: List[ColumnInfo] = field(default_factory=list)
    row_count: Optional[int] = None
    sample_data: Optional[List[Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "columns": [column.to_dict() for column in self.columns],
            "row_count": self.row_count,
            "sample_data": self.sample_data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableInfo":
        return cls(
            name=data["name"],
            columns=[ColumnInfo.from_dict(c) for c in data.get("columns", [])],
            row_count=data.get("row_count"),
            sample_data=data.get("sample_data"),
        )


@dataclass
class ViewInfo:
    name: str
    definition: str
    columns: List[ColumnInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "definition": self.definition,
            "columns": [column.to_dict() for column in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ViewInfo":
        return cls(
            name=data["name"],
            definition=data.get("definition", ""),
            columns=[ColumnInfo.from_dict(c) for c in data.get("columns", [])],
        )


@dataclass
class ParameterInfo:
    name: str
    type: str
    direction: Literal["IN", "OUT", "INOUT"] = "IN"
    required: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "direction": self.direction,
            "required": self.required,
        }


@dataclass
class ProcedureInfo:
    name: str
    parameters: List[ParameterInfo] = field(default_factory=list)
    return_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "parameters": [p.to_dict() for p in self.parameters],
            "return_type": self.return_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcedureInfo":
        return cls(
            name=data["name"],
            parameters=[
                ParameterInfo(
                    name=p["name"],
                    type=p["type"],
                    direction=p.get("direction", "IN"),
                    required=p.get("required", True),
                )
                for p in data.get("parameters", [])
            ],
            return_type=data.get("return_type"),
        )


@dataclass
class SchemaInfo:
    """Structure of one database as reported by a connector"""
    tables: List[TableInfo] = field(default_factory=list)
    views: List[ViewInfo] = field(default_factory=list)
    procedures: List[ProcedureInfo] = field(default_factory=list)
    include_data: bool = False

    def get_table(self, name: str) -> Optional[TableInfo]:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tables": [table.to_dict() for table in self.tables],
            "views": [view.to_dict() for view in self.views],
            "procedures": [proc.to_dict() for proc in self.procedures],
            "include_data": self.include_data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaInfo":
        return cls(
            tables=[TableInfo.from_dict(t) for t in data.get("tables", [])],
            views=[ViewInfo.from_dict(v) for v in data.get("views", [])],
            procedures=[ProcedureInfo.from_dict(p) for p in data.get("procedures", [])],
            include_data=data.get("include_data", False),
        )


@dataclass
class QueryResult:
    """Rows returned for one query; execution_time is in milliseconds"""
    rows: List[Dict[str, Any]]
    row_count: int
    query: str
    parameters: List[Any] = field(default_factory=list)
    execution_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": self.rows,
            "row_count": self.row_count,
            "query": self.query,
            "parameters": self.parameters,
            "execution_time": self.execution_time,
        }


@dataclass
class CacheEntry:
    """
    One cached query result.

    `timestamp` and `last_accessed` are epoch seconds, `ttl` is in seconds.
    """
    id: str
    query: str
    parameters: List[Any]
    result: QueryResult
    timestamp: float
    database_id: int
    ttl: float
    access_count: int = 0
    last_accessed: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "parameters": self.parameters,
            "result": self.result.to_dict(),
            "timestamp": self.timestamp,
            "database_id": self.database_id,
            "ttl": self.ttl,
            "access_count": self.access_count,
            "last_accessed": self.last_accessed,
        }


@dataclass
class CacheStats:
    entry_count: int
    hits: int
    misses: int
    hit_rate: float
    approximate_memory_bytes: int
    average_execution_time: float

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class SchemaSnapshot:
    id: str
    database_id: int
    timestamp: datetime
    schema: SchemaInfo
    version: str
    checksum: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "database_id": self.database_id,
            "timestamp": _iso(self.timestamp),
            "schema": self.schema.to_dict(),
            "version": self.version,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaSnapshot":
        return cls(
            id=data["id"],
            database_id=int(data["database_id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            schema=SchemaInfo.from_dict(data["schema"]),
            version=data.get("version", ""),
            checksum=data.get("checksum", ""),
        )


@dataclass
class SchemaChange:
    """One structural delta between two schemas, stamped with the comparison time"""
    type: ChangeType
    table_name: str
    timestamp: datetime
    column_name: Optional[str] = None
    old_value: Optional[ColumnInfo] = None
    new_value: Optional[ColumnInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "table_name": self.table_name,
            "column_name": self.column_name,
            "old_value": self.old_value.to_dict() if self.old_value else None,
            "new_value": self.new_value.to_dict() if self.new_value else None,
            "timestamp": _iso(self.timestamp),
        }


@dataclass
class SchemaServiceStats:
    total_snapshots: int
    database_count: int
    oldest_snapshot_time: Optional[datetime] = None
    newest_snapshot_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_snapshots": self.total_snapshots,
            "database_count": self.database_count,
            "oldest_snapshot_time": _iso(self.oldest_snapshot_time),
            "newest_snapshot_time": _iso(self.newest_snapshot_time),
        }


@dataclass
class DatabaseConfig:
    """Registration details for one target database"""
    id: int
    name: str
    type: str
    connection_string: str = ""
    status: Literal["online", "offline", "warning"] = "online"
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Connection:
    id: str
    database_id: int
    type: str
    status: Literal["connected", "disconnected", "error"]
    last_activity: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    handle: Any = None

    def to_dict(self) -> Dict[str, Any]:
        # The connector handle is never exposed
        return {
            "id": self.id,
            "database_id": self.database_id,
            "type": self.type,
            "status": self.status,
            "last_activity": _iso(self.last_activity),
            "metadata": copy.deepcopy(self.metadata),
        }


@dataclass
class BrokerResponse:
    """Uniform envelope returned by every broker operation; execution_time in ms"""
    success: bool
    data: Any = None
    error: Optional[str] = None
    execution_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = self.data
        if hasattr(data, "to_dict"):
            data = data.to_dict()
        elif isinstance(data, list):
            data = [item.to_dict() if hasattr(item, "to_dict") else item for item in data]
        return {
            "success": self.success,
            "data": data,
            "error": self.error,
            "execution_time": self.execution_time,
        }
