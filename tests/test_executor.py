from datetime import date

import pytest

from attendance_search.commands import CommandFactory
from attendance_search.errors import ExecutionError, QueryFieldError
from attendance_search.executor import QueryExecutor, intersect_by_id, union_by_id
from attendance_search.fuzzy import FuzzySearchEngine
from attendance_search.models import Session, Student
from attendance_search.parser import QueryParser
from attendance_search.query_ast import FilterNode, QueryAST, TextSearchNode
from attendance_search.search_context import SearchContext

from .conftest import names


@pytest.fixture
def run(context, palette_commands, dispatched):
    qp = QueryParser()
    executor = QueryExecutor(
        context,
        command_factory=CommandFactory(lambda event, payload: dispatched.append((event, payload))),
        fuzzy_engine=FuzzySearchEngine(palette_commands),
    )

    def _run(query):
        result = qp.parse(query)
        assert result.ok, result.errors
        return executor.execute(result.ast)

    return _run


def test_student_ref_with_absent_history(sessions):
    aarav = Student(
        id="1",
        student_id="UX23001",
        name="Aarav Patel",
        email="aarav.patel@gmail.com",
        attendance_history=[{"date": date(2024, 1, 10), "status": "absent"}],
    )
    context = SearchContext([aarav], sessions)
    ast = QueryParser().parse("@Aarav AND status:absent").ast

    result = QueryExecutor(context).execute(ast)

    assert names(result.students) == ["Aarav Patel"]
    assert result.metadata.applied_filters == ["status:absent"]
    assert result.metadata.match_count == 1


def test_attendance_threshold_is_strict(run):
    result = run("attendance:>80%")

    assert names(result.students) == ["Aarav Patel", "Meera Iyer"]
    assert result.metadata.applied_filters == ["attendance:80"]
    assert result.commands[0].label == "2 students with attendance greater_than 80%"


def test_attendance_boundary(run):
    assert names(run("attendance:>90").students) == ["Meera Iyer"]
    assert names(run("attendance:>=90").students) == ["Aarav Patel", "Meera Iyer"]
    assert names(run("attendance:90%").students) == ["Aarav Patel"]


def test_or_is_deduplicated_union(run):
    result = run("email:gmail.com OR email:jlu.edu.in")

    assert names(result.students) == ["Aarav Patel", "Kabir Singh", "Diya Sharma", "Meera Iyer"]
    assert result.metadata.applied_filters == ["email:gmail.com", "email:jlu.edu.in"]

    assert names(run("email:gmail.com OR @Aarav").students) == ["Aarav Patel", "Kabir Singh"]


def test_and_is_intersection(run):
    assert names(run("email:gmail.com AND attendance:<50").students) == ["Kabir Singh"]


def test_implicit_and(run):
    assert names(run("email:gmail.com attendance:<50").students) == ["Kabir Singh"]


def test_grouping(run):
    result = run("(status:medical OR attendance:<50) AND email:gmail.com")
    assert names(result.students) == ["Aarav Patel", "Kabir Singh"]


def test_not_is_complement_over_students(run):
    result = run("NOT status:medical")

    assert names(result.students) == ["Diya Sharma", "Kabir Singh", "Meera Iyer", "Rohan Gupta"]
    assert result.sessions == []
    assert len(result.commands) == 8


def test_not_drops_sessions(run):
    result = run("NOT session:1")

    assert len(result.students) == 5
    assert result.sessions == []


def test_status_uses_history_and_live_marks(run):
    result = run("status:medical")

    assert names(result.students) == ["Aarav Patel"]
    assert result.commands[0].label == "Mark 1 students medical"


def test_invalid_status(run):
    with pytest.raises(QueryFieldError):
        run("status:late")


def test_student_field(run):
    assert names(run("student:UX23002").students) == ["Diya Sharma"]
    assert names(run('student:"Kabir Singh"').students) == ["Kabir Singh"]
    assert names(run("student:meera").students) == ["Meera Iyer"]
    assert run("student:nobodyatall").students == []


def test_comparison_on_text_field_is_rejected(run):
    with pytest.raises(QueryFieldError):
        run("student:>5")
    with pytest.raises(QueryFieldError):
        run("email:>gmail")


def test_email_exact_address(run):
    assert names(run("email:aarav.patel@gmail.com").students) == ["Aarav Patel"]
    assert run("email:aarav@gmail.com").students == []


def test_session_by_number_and_name(run):
    assert names(run("session:2").sessions) == ["UX Research"]
    assert names(run('session:"typo"').sessions) == ["Typography"]
    assert run("session:9").sessions == []
    assert run("session:2").students == []


def test_time_filters(run):
    assert names(run("time:>10:00").sessions) == ["UX Research", "Typography"]
    assert names(run("time:10:15").sessions) == ["UX Research"]
    assert names(run("time:!=10:15").sessions) == ["Design Studio", "Typography"]

    with pytest.raises(QueryFieldError):
        run("time:afternoon")


def test_date_filters(run):
    result = run("date:2024-01-15")

    assert names(result.students) == ["Rohan Gupta"]
    assert result.commands[0].label == "1 students for 2024-01-15"
    assert names(run("date:>2024-01-10").students) == ["Rohan Gupta"]
    assert len(run("date:<=2024-01-01").students) == 5


def test_text_search_clause(run):
    result = run('"Diya" OR "Kabir"')
    assert names(result.students) == ["Diya Sharma", "Kabir Singh"]

    assert names(run("gmail AND attendance:>50").students) == ["Aarav Patel"]


def test_text_search_includes_matching_commands(run):
    result = run("report OR status:medical")

    assert "Export Report" in [c.label for c in result.commands]


def test_empty_text_search(context):
    ast = QueryAST(root=TextSearchNode(query="  "), original_query="  ", has_advanced_syntax=False)
    result = QueryExecutor(context).execute(ast)

    assert result.students == []
    assert result.commands == []


def test_commands_are_not_dispatched_during_execution(run, dispatched):
    result = run("@Kabir")

    assert dispatched == []
    labels = [c.label for c in result.commands]
    assert labels == ["Focus on Kabir Singh", "Mark Kabir Singh Present"]

    result.commands[1].action()
    assert dispatched == [("mark_student", {"student_id": "3", "status": "present"})]


def test_command_ids_are_unique(run):
    first = run("@Kabir").commands[0].id
    second = run("@Kabir").commands[0].id

    assert first.startswith("adv-focus-3")
    assert first != second


def test_missing_context_raises():
    ast = QueryAST(root=FilterNode(field="status", value="absent"), original_query="status:absent", has_advanced_syntax=True)

    with pytest.raises(ExecutionError):
        QueryExecutor(None).execute(ast)


def test_set_helpers_keep_left_order():
    a, b, c = (Session(id=i, name=i, start_time="09:00", end_time="10:00") for i in "abc")

    assert [s.id for s in union_by_id([b, a], [a, c])] == ["b", "a", "c"]
    assert [s.id for s in intersect_by_id([c, b, a, c], [a, c])] == ["c", "a"]


def test_execution_time_is_recorded(run):
    metadata = run("status:absent").metadata

    assert metadata.execution_time_ms >= 0
    assert metadata.match_count == 5


@pytest.mark.parametrize("query", ["attendance:nan", "attendance:>inf", "attendance:<-inf"])
def test_non_finite_attendance_threshold(run, query):
    with pytest.raises(QueryFieldError):
        run(query)


def test_slash_date_filter(run):
    assert names(run("date:01/15/2024").students) == ["Rohan Gupta"]


def test_time_equality_normalises_hours(run):
    assert names(run("time:9:00").sessions) == ["Design Studio"]
