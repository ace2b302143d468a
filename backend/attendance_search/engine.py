import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from .commands import ActionDispatcher, Command, CommandFactory
from .config import SearchSettings, load_settings
from .errors import ExecutionError, ParseError, QueryError
from .executor import QueryExecutor
from .fuzzy import FuzzySearchEngine
from .parser import QueryParser
from .query_ast import QueryAST, TextSearchNode
from .schemas import QueryResult, SearchResult
from .search_context import SearchContext

log = logging.getLogger(__name__)

STUDENT_RESULT_LIMIT = 5
SESSION_RESULT_LIMIT = 3


class QueryOutcome(BaseModel):
    result: QueryResult
    ast: Optional[QueryAST] = None
    parse_errors: List[ParseError] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    # True when the structured path was abandoned for plain text search
    fallback_used: bool = False


class AdvancedSearchEngine(FuzzySearchEngine):
    """
    Entry point for the search box.

    search() never raises for bad user input: parse failures, plain prose
    and field errors during execution all degrade to fuzzy matching over
    the registered commands. A missing SearchContext in run_query() is
    caller misuse and raises ExecutionError.
    """

    def __init__(
        self,
        commands: Optional[List[Command]] = None,
        parser: Optional[QueryParser] = None,
        settings: Optional[SearchSettings] = None,
        dispatcher: Optional[ActionDispatcher] = None,
    ):
        self.settings = settings or load_settings()
        super().__init__(commands, threshold=self.settings.fuzzy_threshold)
        self.parser = parser or QueryParser()
        self.command_factory = CommandFactory(dispatcher)
        self.search_context: Optional[SearchContext] = None

    def set_search_context(self, context: SearchContext) -> None:
        self.search_context = context

    def _executor(self) -> QueryExecutor:
        # A plain engine over the same commands, so text-search clauses do
        # not recurse back into the structured search below.
        fuzzy = FuzzySearchEngine(self.commands, threshold=self.threshold)
        return QueryExecutor(
            self.search_context,
            command_factory=self.command_factory,
            fuzzy_engine=fuzzy,
            text_search_limit=self.settings.text_search_limit,
        )

    def search(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        if limit is None:
            limit = self.settings.default_limit

        if self.search_context is None:
            return super().search(query, limit)

        parse_result = self.parser.parse(query)
        if not parse_result.ok:
            log.debug("Parse failed for %r, using fuzzy search: %s", query, [e.message for e in parse_result.errors])
            return super().search(query, limit)

        if not parse_result.ast.has_advanced_syntax:
            return super().search(query, limit)

        try:
            result = self._executor().execute(parse_result.ast)
        except QueryError as exc:
            log.warning("Query execution failed, falling back to fuzzy search: %s", exc)
            return super().search(query, limit)

        return self.to_search_results(result, limit)

    def run_query(self, query: str) -> QueryOutcome:
        """
        Evaluate `query` and return the raw QueryResult rather than ranked
        commands. Unparsable or failing structured queries are evaluated as
        one text search over the whole string instead.
        """
        if self.search_context is None:
            raise ExecutionError("Search context not available")

        executor = self._executor()
        parse_result = self.parser.parse(query)

        if parse_result.ok:
            try:
                return QueryOutcome(result=executor.execute(parse_result.ast), ast=parse_result.ast)
            except QueryError as exc:
                log.warning("Query execution failed, falling back to text search: %s", exc)
                errors = [exc.to_parse_error()]
        else:
            errors = parse_result.errors

        fallback_ast = QueryAST(
            root=TextSearchNode(query=query.strip()),
            original_query=query,
            has_advanced_syntax=False,
        )
        return QueryOutcome(
            result=executor.execute(fallback_ast),
            ast=fallback_ast,
            parse_errors=errors,
            suggestions=parse_result.suggestions,
            fallback_used=True,
        )

    def to_search_results(self, result: QueryResult, limit: int) -> List[SearchResult]:
        """Rank a QueryResult for the command palette: query commands, then students, then sessions."""
        results: List[SearchResult] = [
            SearchResult(command=command, score=1.0, matched_text=command.label)
            for command in result.commands
        ]

        for index, student in enumerate(result.students[:STUDENT_RESULT_LIMIT]):
            for command in self.command_factory.student_commands(student, f"result-{index}"):
                results.append(SearchResult(command=command, score=0.9, matched_text=command.label))

        for index, session in enumerate(result.sessions[:SESSION_RESULT_LIMIT]):
            for command in self.command_factory.session_commands(session, f"result-{index}"):
                results.append(SearchResult(command=command, score=0.8, matched_text=command.label))

        return results[:limit]
