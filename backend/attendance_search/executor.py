import logging
import math
import time
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, TypeVar, Union

from .commands import CommandFactory
from .errors import ExecutionError, QueryFieldError
from .fuzzy import FuzzySearchEngine
from .models import ATTENDANCE_STATUSES, Session, Student
from .parser import parse_date
from .query_ast import (
    ComparisonOperator,
    CompoundNode,
    FilterNode,
    FilterValue,
    QueryAST,
    QueryNode,
    StudentRefNode,
    TextSearchNode,
    format_filter_value,
    iter_filter_nodes,
)
from .schemas import QueryMetadata, QueryResult
from .search_context import SearchContext, parse_time

log = logging.getLogger(__name__)

T = TypeVar("T", Student, Session)

# Filter operator -> SearchContext operator, per field family
DATE_OPERATORS: Dict[str, str] = {
    "equals": "equals",
    "not_equals": "not_equals",
    "greater_than": "after",
    "less_than": "before",
    "greater_equal": "on_or_after",
    "less_equal": "on_or_before",
}
TIME_OPERATORS: Dict[str, str] = {
    "equals": "at",
    "not_equals": "not_at",
    "greater_than": "after",
    "less_than": "before",
    "greater_equal": "on_or_after",
    "less_equal": "on_or_before",
}
PERCENTAGE_OPERATORS = {"equals", "not_equals", "greater_than", "less_than", "greater_equal", "less_equal"}
MATCH_OPERATORS = {"equals", "contains"}


def intersect_by_id(left: Sequence[T], right: Sequence[T]) -> List[T]:
    """Items of `left` whose id also appears in `right`, left order, no duplicates."""
    right_ids = {item.id for item in right}
    seen = set()
    out: List[T] = []
    for item in left:
        if item.id in right_ids and item.id not in seen:
            seen.add(item.id)
            out.append(item)
    return out


def union_by_id(left: Sequence[T], right: Sequence[T]) -> List[T]:
    """`left` then the unseen items of `right`, deduplicated by id."""
    seen = set()
    out: List[T] = []
    for item in list(left) + list(right):
        if item.id not in seen:
            seen.add(item.id)
            out.append(item)
    return out


def extract_filters(node: QueryNode) -> List[str]:
    return [f"{f.field}:{format_filter_value(f.value)}" for f in iter_filter_nodes(node)]


class QueryExecutor:
    """
    Evaluates a QueryAST against one SearchContext snapshot.

    Every node yields a partial QueryResult; compound nodes combine their
    operands with set algebra on entity ids:
      - AND: intersection (students and sessions independently)
      - OR:  union, left-first, deduplicated
      - NOT: every student not in the operand (sessions are dropped)
    """

    def __init__(
        self,
        context: Optional[SearchContext],
        command_factory: Optional[CommandFactory] = None,
        fuzzy_engine: Optional[FuzzySearchEngine] = None,
        text_search_limit: int = 50,
    ):
        self.context = context
        self.commands = command_factory or CommandFactory()
        self.fuzzy_engine = fuzzy_engine or FuzzySearchEngine()
        self.text_search_limit = text_search_limit

    def _require_context(self) -> SearchContext:
        if self.context is None:
            raise ExecutionError("Search context not available")
        return self.context

    def execute(self, ast: QueryAST) -> QueryResult:
        self._require_context()
        start = time.perf_counter()

        result = self.execute_node(ast.root)

        execution_time_ms = (time.perf_counter() - start) * 1000
        metadata = QueryMetadata(
            match_count=len(result.students) + len(result.sessions),
            execution_time_ms=execution_time_ms,
            applied_filters=extract_filters(ast.root),
        )
        log.debug(
            "Executed %r: %d matches in %.2fms", ast.original_query, metadata.match_count, execution_time_ms
        )
        return result.model_copy(update={"metadata": metadata})

    def execute_node(self, node: QueryNode) -> QueryResult:
        self._require_context()

        if isinstance(node, StudentRefNode):
            return self.execute_student_ref(node)
        if isinstance(node, FilterNode):
            return self.execute_filter(node)
        if isinstance(node, CompoundNode):
            return self.execute_compound(node)
        if isinstance(node, TextSearchNode):
            return self.execute_text_search(node)
        raise ExecutionError(f"Unknown node type: {getattr(node, 'type', type(node).__name__)}")

    # ------------------------------------------------------------------
    # Node kinds
    # ------------------------------------------------------------------

    def execute_student_ref(self, node: StudentRefNode) -> QueryResult:
        student = self.context.find_student_by_name(node.student_name, node.fuzzy)
        if student is None:
            return QueryResult()
        return QueryResult(students=[student], commands=self.commands.student_commands(student))

    def execute_filter(self, node: FilterNode) -> QueryResult:
        handlers: Dict[str, Callable[[ComparisonOperator, FilterValue], QueryResult]] = {
            "student": self.filter_by_student,
            "email": self.filter_by_email,
            "session": self.filter_by_session,
            "status": self.filter_by_status,
            "attendance": self.filter_by_attendance,
            "date": self.filter_by_date,
            "time": self.filter_by_time,
        }
        handler = handlers.get(node.field)
        if handler is None:
            raise QueryFieldError(f"Unknown field: {node.field}")
        return handler(node.operator, node.value)

    def execute_compound(self, node: CompoundNode) -> QueryResult:
        if node.operator == "NOT":
            return self.negate(self.execute_node(node.left))

        if node.operator not in ("AND", "OR"):
            raise ExecutionError(f"Unknown compound operator: {node.operator}")

        # The parser builds left-leaning chains ("a b c d" is ((a AND b) AND c) AND d).
        # Walk the chain in a loop so evaluation depth does not grow with its length.
        rights: List[QueryNode] = []
        current: QueryNode = node
        while isinstance(current, CompoundNode) and current.operator == node.operator:
            if current.right is None:
                raise ExecutionError(f"{current.operator} node is missing its right operand")
            rights.append(current.right)
            current = current.left

        result = self.execute_node(current)
        for right_node in reversed(rights):
            result = self.combine(node.operator, result, self.execute_node(right_node))
        return result

    def combine(self, operator: str, left: QueryResult, right: QueryResult) -> QueryResult:
        if operator == "AND":
            return QueryResult(
                students=intersect_by_id(left.students, right.students),
                sessions=intersect_by_id(left.sessions, right.sessions),
                commands=left.commands + right.commands,
            )
        return QueryResult(
            students=union_by_id(left.students, right.students),
            sessions=union_by_id(left.sessions, right.sessions),
            commands=left.commands + right.commands,
        )

    def execute_text_search(self, node: TextSearchNode) -> QueryResult:
        needle = node.query.strip().lower()
        if not needle:
            return QueryResult()

        fuzzy_results = self.fuzzy_engine.search(node.query, self.text_search_limit)
        students = [
            s
            for s in self.context.get_students()
            if needle in s.name.lower() or needle in s.email.lower() or needle in s.student_id.lower()
        ]
        return QueryResult(students=students, commands=[r.command for r in fuzzy_results])

    def negate(self, result: QueryResult) -> QueryResult:
        excluded = {s.id for s in result.students}
        students = [s for s in self.context.get_students() if s.id not in excluded]
        commands = []
        for index, student in enumerate(students):
            commands.extend(self.commands.student_commands(student, f"negate-{index}"))
        return QueryResult(students=students, commands=commands)

    # ------------------------------------------------------------------
    # Field handlers
    # ------------------------------------------------------------------

    def _student_result(self, students: List[Student], prefix: str) -> QueryResult:
        commands = []
        for index, student in enumerate(students):
            commands.extend(self.commands.student_commands(student, f"{prefix}-{index}"))
        return QueryResult(students=students, commands=commands)

    def filter_by_student(self, operator: ComparisonOperator, value: FilterValue) -> QueryResult:
        text = format_filter_value(value)

        if operator == "equals":
            # exact id, then exact name, then the fuzzy name lookup used by @refs
            student = (
                self.context.find_student_by_id(text)
                or self.context.find_student_by_name(text, fuzzy=False)
                or self.context.find_student_by_name(text, fuzzy=True)
            )
            students = [student] if student else []
        elif operator == "contains":
            needle = text.lower()
            students = [
                s
                for s in self.context.get_students()
                if needle in s.name.lower() or needle in s.student_id.lower()
            ]
        else:
            raise QueryFieldError(f"Unsupported operator for student field: {operator}")

        return self._student_result(students, "student")

    def filter_by_email(self, operator: ComparisonOperator, value: FilterValue) -> QueryResult:
        text = format_filter_value(value)

        if operator == "contains":
            students = self.context.filter_students_by_email(text)
        elif operator == "equals":
            if "@" in text:
                students = [s for s in self.context.get_students() if s.email.lower() == text.lower()]
            else:
                # A bare domain or fragment: match it anywhere
                students = self.context.filter_students_by_email(text)
        else:
            raise QueryFieldError(f"Unsupported operator for email field: {operator}")

        return self._student_result(students, "email")

    def filter_by_session(self, operator: ComparisonOperator, value: FilterValue) -> QueryResult:
        if operator not in MATCH_OPERATORS:
            raise QueryFieldError(f"Unsupported operator for session field: {operator}")

        if isinstance(value, (int, float)) and not isinstance(value, bool):
            session = self.context.find_session_by_number(int(value)) if float(value).is_integer() else None
        else:
            session = self.context.find_session_by_name(format_filter_value(value))

        sessions = [session] if session else []
        commands = []
        for index, s in enumerate(sessions):
            commands.extend(self.commands.session_commands(s, f"session-{index}"))
        return QueryResult(sessions=sessions, commands=commands)

    def filter_by_status(self, operator: ComparisonOperator, value: FilterValue) -> QueryResult:
        if operator not in MATCH_OPERATORS:
            raise QueryFieldError(f"Unsupported operator for status field: {operator}")

        status = format_filter_value(value).lower()
        if status not in ATTENDANCE_STATUSES:
            raise QueryFieldError(f"Invalid status: {value}")

        students = self.context.filter_students_by_attendance_status(status)
        return QueryResult(students=students, commands=self.commands.bulk_commands(students, status))

    def filter_by_attendance(self, operator: ComparisonOperator, value: FilterValue) -> QueryResult:
        if operator not in PERCENTAGE_OPERATORS:
            raise QueryFieldError(f"Unsupported operator for attendance field: {operator}")

        threshold = _as_number(value)
        if threshold is None:
            raise QueryFieldError(f"Invalid attendance percentage: {value}")

        students = self.context.filter_students_by_attendance_percentage(operator, threshold)
        return QueryResult(
            students=students,
            commands=self.commands.attendance_commands(students, operator, threshold),
        )

    def filter_by_date(self, operator: ComparisonOperator, value: FilterValue) -> QueryResult:
        context_operator = DATE_OPERATORS.get(operator)
        if context_operator is None:
            raise QueryFieldError(f"Unsupported operator for date field: {operator}")

        if isinstance(value, date):
            target = value
        else:
            target = parse_date(format_filter_value(value))

        matches = self.context.filter_attendance_by_date(target, context_operator)
        students = [student for student, _records in matches]
        return QueryResult(students=students, commands=self.commands.date_commands(students, target))

    def filter_by_time(self, operator: ComparisonOperator, value: FilterValue) -> QueryResult:
        context_operator = TIME_OPERATORS.get(operator)
        if context_operator is None:
            raise QueryFieldError(f"Unsupported operator for time field: {operator}")

        text = format_filter_value(value)
        if parse_time(text) is None:
            raise QueryFieldError(f"Invalid time: {text}")

        sessions = self.context.filter_sessions_by_time(context_operator, text)
        commands = []
        for index, session in enumerate(sessions):
            commands.extend(self.commands.session_commands(session, f"session-{index}"))
        return QueryResult(sessions=sessions, commands=commands)


def _as_number(value: Union[FilterValue, None]) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).rstrip("%"))
        except ValueError:
            return None
    # "nan" and "inf" parse as floats but are not thresholds
    return number if math.isfinite(number) else None
