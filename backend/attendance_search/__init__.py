"""Structured query engine behind the attendance dashboard search box."""

from .engine import AdvancedSearchEngine
from .errors import ExecutionError, QueryError, QueryFieldError, QuerySyntaxError
from .parser import QueryParser
from .search_context import SearchContext

__all__ = [
    "AdvancedSearchEngine",
    "ExecutionError",
    "QueryError",
    "QueryFieldError",
    "QueryParser",
    "QuerySyntaxError",
    "SearchContext",
]
