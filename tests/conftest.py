"""Pytest fixtures: a small classroom snapshot with known attendance percentages."""

from datetime import date, timedelta
from typing import Dict, List

import pytest

from attendance_search.commands import Command
from attendance_search.engine import AdvancedSearchEngine
from attendance_search.models import Session, Student
from attendance_search.search_context import SearchContext


START = date(2024, 1, 1)


def make_student(id: str, student_id: str, name: str, email: str, statuses: List[str]) -> Student:
    """One attendance record per status, on consecutive days from 2024-01-01."""
    return Student(
        id=id,
        student_id=student_id,
        name=name,
        email=email,
        attendance_history=[
            {"date": START + timedelta(days=i), "status": status} for i, status in enumerate(statuses)
        ],
        session_attendance_history=[
            {"date": START + timedelta(days=i), "session_id": "s1", "status": status}
            for i, status in enumerate(statuses)
        ],
    )


@pytest.fixture
def students() -> List[Student]:
    # Attendance percentages: 90, 40, 30, 100, 55
    return [
        make_student("1", "UX23001", "Aarav Patel", "aarav.patel@gmail.com",
                     ["present"] * 8 + ["medical"] + ["absent"]),
        make_student("2", "UX23002", "Diya Sharma", "diya.sharma@jlu.edu.in",
                     ["present"] * 4 + ["absent"] * 6),
        make_student("3", "UX23003", "Kabir Singh", "kabir.singh@gmail.com",
                     ["present"] * 3 + ["absent"] * 7),
        make_student("4", "UX23004", "Meera Iyer", "meera.iyer@jlu.edu.in",
                     ["present"] * 10),
        make_student("5", "UX23005", "Rohan Gupta", "rohan.gupta@yahoo.com",
                     ["present"] * 11 + ["absent"] * 9),
    ]


@pytest.fixture
def sessions() -> List[Session]:
    return [
        Session(id="s1", name="Design Studio", start_time="09:00", end_time="10:00"),
        Session(id="s2", name="UX Research", start_time="10:15", end_time="11:15"),
        Session(id="s3", name="Typography", start_time="14:00", end_time="15:00"),
    ]


@pytest.fixture
def attendance_data() -> Dict[str, Dict[str, str]]:
    # Today's sheet: Aarav marked present, Meera (no absences on record) marked absent
    return {"1": {"s1": "present"}, "4": {"s1": "absent"}}


@pytest.fixture
def context(students, sessions, attendance_data) -> SearchContext:
    return SearchContext(students, sessions, attendance_data, selected_date="2024-01-10")


@pytest.fixture
def palette_commands() -> List[Command]:
    return [
        Command(
            id="mark-all-present",
            label="Mark All Present",
            description="Mark every student present",
            category="attendance",
            keywords=["bulk", "attendance"],
        ),
        Command(
            id="export-report",
            label="Export Report",
            description="Download the attendance sheet",
            category="analytics",
            keywords=["csv", "download"],
        ),
        Command(
            id="toggle-mode",
            label="Toggle Fast Mode",
            description="Switch between detailed and fast marking",
            category="settings",
            keywords=["mode"],
        ),
    ]


@pytest.fixture
def dispatched() -> List[tuple]:
    return []


@pytest.fixture
def engine(context, palette_commands, dispatched) -> AdvancedSearchEngine:
    engine = AdvancedSearchEngine(
        commands=palette_commands,
        dispatcher=lambda event, payload: dispatched.append((event, payload)),
    )
    engine.set_search_context(context)
    return engine


def names(items) -> List[str]:
    return [item.name for item in items]
