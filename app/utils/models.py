from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional, Literal

class Envelope(BaseModel):
    """Response body of every REST endpoint; execution_time in milliseconds"""
    success: bool
    data: Any = None
    error: Optional[str] = None
    execution_time: float = 0.0

class ConnectDatabaseRequest(BaseModel):
    """Registration of a database to connect"""
    id: int
    name: str
    type: str
    connection_string: str = ""
    status: Literal["online", "offline", "warning"] = "online"
    description: Optional[str] = None
    metadata: Dict[str, Any] = {}

class ExecuteQueryRequest(BaseModel):
    query: str
    parameters: List[Any] = []

class InvalidateCacheRequest(BaseModel):
    """Empty body clears the whole cache"""
    pattern: Optional[str] = None
    database_id: Optional[int] = None

class ChatQueryRequest(BaseModel):
    """Natural-language question against one or more connected databases"""
    query: str
    database_ids: List[int] = []
    context: Optional[str] = None
    api_key: Optional[str] = None

class EtlPipelineRequest(BaseModel):
    source: str
    target: str
    requirements: str
    database_ids: List[int] = []
    api_key: Optional[str] = None

class ValidateQueryRequest(BaseModel):
    sql: str = Field(..., min_length=1)
    database_ids: List[int] = []
    api_key: Optional[str] = None

class DatabaseStatusEvent(BaseModel):
    """Periodic status message pushed on the status websocket"""
    type: Literal["database_status_update"] = "database_status_update"
    data: Dict[str, Any]
