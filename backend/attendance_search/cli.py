"""
Run a search-box query against a JSON snapshot from the command line.

    attendance-search --snapshot class.json "@Aarav AND status:absent"

The snapshot holds the same data the dashboard hands the engine:

    {
      "students": [{"id": "1", "studentId": "UX23001", "name": "...", ...}],
      "sessions": [{"id": "s1", "name": "...", "startTime": "10:15", ...}],
      "attendanceData": {"1": {"s1": "present"}},
      "selectedDate": "2024-01-10"
    }
"""

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import load_settings
from .engine import AdvancedSearchEngine
from .models import Session, Student
from .search_context import SearchContext


def load_snapshot(path: Path) -> SearchContext:
    data: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))

    students = [Student.model_validate(s) for s in data.get("students", [])]
    sessions = [Session.model_validate(s) for s in data.get("sessions", [])]
    attendance = data.get("attendanceData", data.get("attendance_data", {})) or {}
    selected_date = data.get("selectedDate", data.get("selected_date"))

    return SearchContext(
        students=students,
        sessions=sessions,
        attendance_data=attendance,
        selected_date=selected_date,
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="attendance-search",
        description="Evaluate a structured attendance query against a JSON snapshot",
    )
    p.add_argument("query", help='Query text, e.g. "attendance:<75 OR status:medical"')
    p.add_argument("-s", "--snapshot", type=Path, required=True, help="Path to the snapshot JSON file")
    p.add_argument("-n", "--limit", type=int, default=None, help="Show at most this many students/sessions")
    p.add_argument(
        "--log-level",
        default=load_settings().log_level,
        help="Logging level (default: WARNING or $ATTENDANCE_SEARCH_LOG_LEVEL)",
    )
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    if not args.query.strip():
        build_parser().error("query must not be empty")

    engine = AdvancedSearchEngine()
    engine.set_search_context(load_snapshot(args.snapshot))
    outcome = engine.run_query(args.query)
    result = outcome.result

    if outcome.fallback_used:
        for error in outcome.parse_errors:
            print(f"[!] {error.type} error at {error.position}: {error.message} (treated as text search)")
        for suggestion in outcome.suggestions:
            print(f"[?] did you mean {suggestion}")

    students = result.students if args.limit is None else result.students[: args.limit]
    sessions = result.sessions if args.limit is None else result.sessions[: args.limit]

    print(f"[+] Students ({len(result.students)}):")
    for student in students:
        print(f"    {student.student_id:<10} {student.name:<24} {student.email}")

    if result.sessions:
        print(f"[+] Sessions ({len(result.sessions)}):")
        for session in sessions:
            print(f"    {session.name:<24} {session.start_time}-{session.end_time}")

    if result.commands:
        print(f"[+] Commands ({len(result.commands)}):")
        for command in result.commands:
            print(f"    {command.label}")

    if result.metadata is not None and result.metadata.applied_filters:
        print(f"[+] Filters: {', '.join(result.metadata.applied_filters)}")

    return 0
