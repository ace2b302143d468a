from typing import Literal, Optional

from pydantic import BaseModel


ParseErrorType = Literal["syntax", "field"]


class QueryError(Exception):
    """
    Bad user input. The top-level search recovers from these by falling
    back to plain fuzzy matching, so they never reach the search box.
    """

    error_type: ParseErrorType = "syntax"

    def __init__(self, message: str, position: int = 0, suggestion: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.position = position
        self.suggestion = suggestion

    def to_parse_error(self) -> "ParseError":
        return ParseError(
            message=self.message,
            position=self.position,
            type=self.error_type,
            suggestion=self.suggestion,
        )


class QuerySyntaxError(QueryError):
    """Malformed query structure, such as an unmatched paren or a dangling operator."""

    error_type: ParseErrorType = "syntax"


class QueryFieldError(QueryError):
    """Unknown field, or a value that does not make sense for its field."""

    error_type: ParseErrorType = "field"


class ExecutionError(RuntimeError):
    """
    Caller misuse (e.g. running the executor without a SearchContext).
    Not a QueryError, so it is never turned into a fuzzy-search fallback.
    """


class ParseError(BaseModel):
    message: str
    position: int
    type: ParseErrorType
    suggestion: Optional[str] = None
