from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .commands import Command
from .errors import ParseError
from .models import Session, Student


class QueryMetadata(BaseModel):
    match_count: int = 0
    execution_time_ms: float = 0.0
    applied_filters: List[str] = Field(default_factory=list)


class QueryResult(BaseModel):
    students: List[Student] = Field(default_factory=list)
    sessions: List[Session] = Field(default_factory=list)
    commands: List[Command] = Field(default_factory=list)
    # Filled in once, for the whole tree, by QueryExecutor.execute
    metadata: Optional[QueryMetadata] = None


class SearchResult(BaseModel):
    command: Command
    score: float
    matched_text: str
    highlights: List[int] = Field(default_factory=list)


class OverallStatistics(BaseModel):
    total_students: int
    total_sessions: int
    total_marks: int
    present_marks: int
    overall_percentage: float


class SessionStatistics(BaseModel):
    session: Optional[Session] = None
    present_count: int = 0
    absent_count: int = 0
    medical_count: int = 0
    total_students: int = 0
    present_percentage: float = 0.0


# ---------------------------------------------------------------------------
# HTTP request / response shapes
# ---------------------------------------------------------------------------


class QueryRequest(BaseModel):
    query: str
    limit: Optional[int] = None
    students: List[Student] = Field(default_factory=list)
    sessions: List[Session] = Field(default_factory=list)
    attendance_data: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    selected_date: Optional[str] = None
    current_mode: str = "detailed"


class CommandInfo(BaseModel):
    id: str
    label: str
    description: str
    category: str
    keywords: List[str]


class QueryMeta(BaseModel):
    query: str
    has_advanced_syntax: bool
    fallback_used: bool
    parse_errors: List[ParseError] = Field(default_factory=list)
    match_count: int = 0
    execution_time_ms: float = 0.0
    applied_filters: List[str] = Field(default_factory=list)
    debug: Dict[str, Any] = Field(default_factory=dict)


class QueryResponse(BaseModel):
    ok: bool
    meta: QueryMeta
    students: List[Student] = Field(default_factory=list)
    sessions: List[Session] = Field(default_factory=list)
    commands: List[CommandInfo] = Field(default_factory=list)
    error: Optional[str] = None


class SearchHit(BaseModel):
    command: CommandInfo
    score: float
    matched_text: str
    highlights: List[int] = Field(default_factory=list)


class SearchResponse(BaseModel):
    ok: bool
    query: str
    results: List[SearchHit] = Field(default_factory=list)
    error: Optional[str] = None
