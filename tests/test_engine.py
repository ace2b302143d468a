import pytest

from attendance_search.config import SearchSettings, load_settings
from attendance_search.engine import AdvancedSearchEngine
from attendance_search.errors import ExecutionError

from .conftest import names


def labels(results):
    return [r.command.label for r in results]


def test_search_without_context_is_plain_fuzzy(palette_commands):
    engine = AdvancedSearchEngine(commands=palette_commands)

    assert labels(engine.search("status:absent")) == []
    assert labels(engine.search("export")) == ["Export Report"]


def test_run_query_without_context_raises(palette_commands):
    engine = AdvancedSearchEngine(commands=palette_commands)

    with pytest.raises(ExecutionError):
        engine.run_query("status:absent")


def test_plain_prose_uses_fuzzy_commands(engine):
    assert labels(engine.search("export")) == ["Export Report"]


def test_structured_search_ranks_students(engine):
    results = engine.search("@Aarav AND status:absent")

    assert labels(results) == [
        "Focus on Aarav Patel",
        "Mark Aarav Patel Present",
        "Mark 5 students absent",
        "Focus on Aarav Patel",
        "Mark Aarav Patel Present",
    ]
    assert [r.score for r in results] == [1.0, 1.0, 1.0, 0.9, 0.9]


def test_structured_search_respects_limit(engine):
    results = engine.search("status:absent", limit=3)

    # bulk command first, then per-student commands
    assert labels(results) == ["Mark 5 students absent", "Focus on Aarav Patel", "Mark Aarav Patel Present"]


def test_sessions_rank_below_students(engine):
    results = engine.search("time:>10:00")

    session_hits = [r for r in results if r.score == 0.8]
    assert [r.command.label for r in session_hits] == ["Focus on UX Research", "Focus on Typography"]


def test_malformed_query_falls_back(engine):
    # "status:" has no value: parse error, fuzzy search over the raw text
    assert engine.search("status:") == []
    # a lone operator cannot parse, but "and" is in one description
    assert labels(engine.search("and")) == ["Toggle Fast Mode"]


def test_execution_error_falls_back(engine):
    assert engine.search("status:late") == []


def test_run_query(engine):
    outcome = engine.run_query("email:gmail.com OR email:jlu.edu.in")

    assert not outcome.fallback_used
    assert outcome.parse_errors == []
    assert outcome.ast.has_advanced_syntax
    assert names(outcome.result.students) == ["Aarav Patel", "Kabir Singh", "Diya Sharma", "Meera Iyer"]


def test_run_query_falls_back_on_parse_error(engine):
    outcome = engine.run_query("stauts:absent")

    assert outcome.fallback_used
    assert outcome.parse_errors[0].type == "field"
    assert outcome.suggestions == ["status:"]
    assert outcome.result.students == []


def test_run_query_falls_back_on_field_error(engine):
    outcome = engine.run_query("status:late")

    assert outcome.fallback_used
    assert outcome.parse_errors[0].message == "Invalid status: late"


def test_run_query_plain_text(engine):
    outcome = engine.run_query("patel")

    assert not outcome.fallback_used
    assert names(outcome.result.students) == ["Aarav Patel"]


def test_dispatcher_is_only_called_by_actions(engine, dispatched):
    results = engine.search("@Meera")
    assert dispatched == []

    results[0].command.action()
    assert dispatched == [("focus_student", {"student_id": "4"})]


def test_settings_threshold_is_used(palette_commands):
    engine = AdvancedSearchEngine(commands=palette_commands, settings=SearchSettings(fuzzy_threshold=0.9))
    assert engine.search("every") == []


def test_load_settings_from_env(monkeypatch):
    monkeypatch.setenv("ATTENDANCE_SEARCH_FUZZY_THRESHOLD", "0.5")
    monkeypatch.setenv("ATTENDANCE_SEARCH_DEFAULT_LIMIT", "4")
    monkeypatch.setenv("ATTENDANCE_SEARCH_TEXT_LIMIT", "7")
    monkeypatch.setenv("ATTENDANCE_SEARCH_LOG_LEVEL", "debug")
    monkeypatch.setenv("ATTENDANCE_SEARCH_CORS_ORIGINS", "https://a.example, https://b.example")

    settings = load_settings()

    assert settings.fuzzy_threshold == 0.5
    assert settings.default_limit == 4
    assert settings.text_search_limit == 7
    assert settings.log_level == "debug"
    assert settings.cors_origins == ["https://a.example", "https://b.example"]


def test_long_pasted_paragraph_does_not_overflow(engine):
    query = "(note) " + " ".join(f"w{i}" for i in range(1000))

    assert isinstance(engine.search(query), list)

    outcome = engine.run_query(query)
    assert not outcome.fallback_used
    assert outcome.result.students == []


def test_long_or_chain_is_evaluated(engine):
    query = " OR ".join(["status:medical"] * 600)

    assert names(engine.run_query(query).result.students) == ["Aarav Patel"]


def test_deeply_nested_query_falls_back(engine):
    query = "(" * 250 + "x"

    assert engine.search(query) == []

    outcome = engine.run_query(query)
    assert outcome.fallback_used
    assert outcome.parse_errors[0].message == "Query nested too deeply"


def test_reasonable_nesting_still_parses(engine):
    outcome = engine.run_query("((((status:medical))))")

    assert not outcome.fallback_used
    assert names(outcome.result.students) == ["Aarav Patel"]


def test_non_finite_attendance_threshold_falls_back(engine):
    for query in ("attendance:nan", "attendance:>inf"):
        outcome = engine.run_query(query)

        assert outcome.fallback_used
        assert outcome.parse_errors[0].type == "field"


def test_settings_defaults_ignore_empty_env(monkeypatch):
    monkeypatch.setenv("ATTENDANCE_SEARCH_CORS_ORIGINS", "")

    settings = load_settings()

    assert settings.cors_origins == ["http://localhost:3000", "http://localhost:5173"]
    assert settings.text_search_limit == 50


def test_settings_accept_keyword_overrides():
    settings = SearchSettings(text_search_limit=5, cors_origins="https://a.example")

    assert settings.text_search_limit == 5
    assert settings.cors_origins == ["https://a.example"]
