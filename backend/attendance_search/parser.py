import difflib
import logging
import re
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from .config import QueryParserConfig
from .errors import ParseError, QueryError, QueryFieldError, QuerySyntaxError
from .query_ast import (
    SUPPORTED_FIELDS,
    ComparisonOperator,
    CompoundNode,
    FilterNode,
    FilterValue,
    QueryAST,
    QueryNode,
    StudentRefNode,
    TextSearchNode,
)
from .tokenizer import tokenize
from .tokens import Token, TokenType

log = logging.getLogger(__name__)


# Any one of these makes a query eligible for structured parsing
ADVANCED_SYNTAX_PATTERNS = [
    re.compile(r"@\w+"),                           # @student
    re.compile(r"\w+:"),                           # field:
    re.compile(r"\b(AND|OR|NOT)\b", re.IGNORECASE),  # logical operators
    re.compile(r"[><]=?|!="),                      # comparisons
    re.compile(r"[()]"),                           # grouping
]

NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")
INTEGER_RE = re.compile(r"[+-]?\d+")

COMPARISON_OPERATORS: Dict[str, ComparisonOperator] = {
    ">": "greater_than",
    "<": "less_than",
    ">=": "greater_equal",
    "<=": "less_equal",
    "!=": "not_equals",
}

RELATIVE_DATES: Dict[str, Callable[[date], date]] = {
    "today": lambda today: today,
    "yesterday": lambda today: today - timedelta(days=1),
    "last-week": lambda today: today - timedelta(days=7),
    # Weeks start on Sunday
    "this-week": lambda today: today - timedelta(days=(today.weekday() + 1) % 7),
}

# Deepest parenthesised nesting the parser accepts
MAX_NESTING_DEPTH = 32

_PRIMARY_START = {
    TokenType.LPAREN,
    TokenType.STUDENT_REF,
    TokenType.FIELD,
    TokenType.VALUE,
    TokenType.QUOTED_STRING,
}


def _today() -> date:
    return date.today()


def has_advanced_syntax(query: str) -> bool:
    return any(pattern.search(query) for pattern in ADVANCED_SYNTAX_PATTERNS)


def parse_date(raw: str, date_formats: Optional[List[str]] = None, position: int = 0) -> date:
    """
    Resolve a date filter value.

    Relative keywords (today, yesterday, last-week, this-week) are resolved
    against the system clock at the moment of parsing. Anything else must be
    an ISO date/datetime or match one of `date_formats`.
    """
    key = raw.strip().lower()
    if key in RELATIVE_DATES:
        return RELATIVE_DATES[key](_today())

    text = raw.strip()
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    for fmt in date_formats or []:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    raise QueryFieldError(f"Invalid date format: {raw}", position)


def parse_value(
    field: str,
    raw: str,
    date_formats: Optional[List[str]] = None,
    position: int = 0,
) -> FilterValue:
    """Coerce a raw filter value: percentages, dates, numbers, booleans, else the string itself."""
    if raw.endswith("%"):
        number = raw[:-1].strip()
        if not NUMBER_RE.fullmatch(number):
            raise QueryFieldError(f"Invalid percentage: {raw}", position)
        return float(number)

    if field == "date":
        return parse_date(raw, date_formats, position)

    if INTEGER_RE.fullmatch(raw):
        return int(raw)
    if NUMBER_RE.fullmatch(raw):
        return float(raw)

    if raw.lower() == "true":
        return True
    if raw.lower() == "false":
        return False

    return raw


class ParseResult(BaseModel):
    ast: Optional[QueryAST] = None
    errors: List[ParseError] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.ast is not None and not self.errors


class _TokenStream:
    """Recursive-descent parser over one query's tokens."""

    def __init__(self, tokens: List[Token], config: QueryParserConfig):
        self.tokens = tokens
        self.current = 0
        self.depth = 0
        self.config = config

    # -- token helpers -----------------------------------------------------

    def peek(self) -> Token:
        return self.tokens[self.current]

    def is_at_end(self) -> bool:
        return self.peek().type == TokenType.EOF

    def check(self, token_type: TokenType) -> bool:
        if self.is_at_end():
            return False
        return self.peek().type == token_type

    def check_operator(self, name: str) -> bool:
        return self.check(TokenType.OPERATOR) and self.peek().value == name

    def advance(self) -> Token:
        token = self.peek()
        if not self.is_at_end():
            self.current += 1
        return token

    def starts_operand(self) -> bool:
        token = self.peek()
        return token.type in _PRIMARY_START or (token.type == TokenType.OPERATOR and token.value == "NOT")

    def require_operand(self, operator: Token) -> None:
        if not self.starts_operand():
            raise QuerySyntaxError(f"Missing operand after {operator.value}", operator.position)

    # -- grammar -----------------------------------------------------------

    def parse_query(self) -> QueryNode:
        root = self.parse_or()
        if not self.is_at_end():
            token = self.peek()
            if token.type == TokenType.RPAREN:
                raise QuerySyntaxError("Unmatched ')'", token.position)
            raise QuerySyntaxError(f"Unexpected token: {token.value}", token.position)
        return root

    def parse_or(self) -> QueryNode:
        left = self.parse_and()
        while self.check_operator("OR"):
            operator = self.advance()
            self.require_operand(operator)
            right = self.parse_and()
            left = CompoundNode(operator="OR", left=left, right=right)
        return left

    def parse_and(self) -> QueryNode:
        left = self.parse_not()
        while True:
            if self.check_operator("AND"):
                operator = self.advance()
                self.require_operand(operator)
                right = self.parse_not()
                left = CompoundNode(operator="AND", left=left, right=right)
            elif self.starts_operand():
                # Adjacent clauses without an operator
                right = self.parse_not()
                left = CompoundNode(operator=self.config.default_operator, left=left, right=right)
            else:
                return left

    def parse_not(self) -> QueryNode:
        if self.check_operator("NOT"):
            operator = self.advance()
            if self.peek().type not in _PRIMARY_START:
                raise QuerySyntaxError("Missing operand after NOT", operator.position)
            return CompoundNode(operator="NOT", left=self.parse_primary())
        return self.parse_primary()

    def parse_primary(self) -> QueryNode:
        token = self.peek()

        if token.type == TokenType.LPAREN:
            self.advance()
            if self.check(TokenType.RPAREN):
                raise QuerySyntaxError("Empty parentheses", token.position)
            if self.depth >= MAX_NESTING_DEPTH:
                raise QuerySyntaxError("Query nested too deeply", token.position)
            self.depth += 1
            expr = self.parse_or()
            self.depth -= 1
            if not self.check(TokenType.RPAREN):
                raise QuerySyntaxError("Expected ')' after expression", token.position)
            self.advance()
            return expr

        if token.type == TokenType.STUDENT_REF:
            self.advance()
            return StudentRefNode(student_name=token.value, fuzzy=self.config.allow_fuzzy_student_names)

        if token.type == TokenType.FIELD:
            return self.parse_filter()

        if token.type in (TokenType.VALUE, TokenType.QUOTED_STRING):
            self.advance()
            return TextSearchNode(query=token.value)

        if token.type == TokenType.EOF:
            raise QuerySyntaxError("Unexpected end of query", token.position)
        if token.type == TokenType.OPERATOR:
            raise QuerySyntaxError(f"Missing operand before {token.value}", token.position)
        raise QuerySyntaxError(f"Unexpected token: {token.value}", token.position)

    def parse_filter(self) -> FilterNode:
        field_token = self.advance()
        field = field_token.value if self.config.case_sensitive else field_token.value.lower()

        if field not in self.config.supported_fields or field not in SUPPORTED_FIELDS:
            close = difflib.get_close_matches(field, self.config.supported_fields, n=1, cutoff=0.6)
            raise QueryFieldError(
                f"Unknown field: {field_token.value}",
                field_token.position,
                suggestion=f"{close[0]}:" if close else None,
            )

        operator: ComparisonOperator = "equals"
        if self.check(TokenType.COMPARISON):
            operator = COMPARISON_OPERATORS.get(self.advance().value, "equals")

        if not (self.check(TokenType.VALUE) or self.check(TokenType.QUOTED_STRING)):
            raise QuerySyntaxError(f"Expected value after '{field_token.value}:'", field_token.position)

        value_token = self.advance()
        value = parse_value(field, value_token.value, self.config.date_formats, value_token.position)
        return FilterNode(field=field, operator=operator, value=value)


class QueryParser:
    """
    Turns a raw search-box string into a QueryAST.

    Plain prose ("aarav attendance") never goes through the grammar: it
    becomes a single text search. Queries with structured syntax are parsed
    by recursive descent; failures are reported in ParseResult.errors rather
    than raised.
    """

    def __init__(self, config: Optional[QueryParserConfig] = None):
        self.config = config or QueryParserConfig()

    def parse(self, query: str) -> ParseResult:
        if not has_advanced_syntax(query):
            return ParseResult(
                ast=QueryAST(
                    root=TextSearchNode(query=query.strip()),
                    original_query=query,
                    has_advanced_syntax=False,
                )
            )

        stream = _TokenStream(tokenize(query), self.config)
        try:
            root = stream.parse_query()
        except QueryError as exc:
            log.debug("Structured parse failed for %r: %s (position %d)", query, exc.message, exc.position)
            suggestions = [exc.suggestion] if exc.suggestion else []
            return ParseResult(errors=[exc.to_parse_error()], suggestions=suggestions)

        return ParseResult(ast=QueryAST(root=root, original_query=query, has_advanced_syntax=True))
