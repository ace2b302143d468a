import logging
import uuid
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Session, Student

log = logging.getLogger(__name__)

# (event_name, payload) -> None. Supplied by the UI layer; the engine only
# closes over it inside Command.action and never calls it itself.
ActionDispatcher = Callable[[str, Dict[str, Any]], None]


def log_dispatcher(event: str, payload: Dict[str, Any]) -> None:
    """Default dispatcher for callers that have not wired one up."""
    log.info("Command event %s dispatched with no handler registered: %s", event, payload)


def _noop() -> None:
    return None


class Command(BaseModel):
    id: str
    label: str
    description: str = ""
    category: str = "general"
    keywords: List[str] = Field(default_factory=list)
    action: Callable[[], None] = Field(default=_noop, exclude=True, repr=False)


def _unique_suffix(suffix: str = "") -> str:
    # List rendering needs ids that are unique per render, not stable ones
    token = uuid.uuid4().hex[:9]
    return f"-{suffix}-{token}" if suffix else f"-{token}"


class CommandFactory:
    """Builds the action descriptors attached to query results."""

    def __init__(self, dispatcher: Optional[ActionDispatcher] = None):
        self.dispatcher = dispatcher or log_dispatcher

    def _action(self, event: str, payload: Dict[str, Any]) -> Callable[[], None]:
        dispatcher = self.dispatcher

        def action() -> None:
            dispatcher(event, payload)

        return action

    def student_commands(self, student: Student, suffix: str = "") -> List[Command]:
        unique = _unique_suffix(suffix)
        return [
            Command(
                id=f"adv-focus-{student.id}{unique}",
                label=f"Focus on {student.name}",
                description=f"Scroll to and highlight {student.name}",
                category="student",
                keywords=[student.name, "focus", "highlight"],
                action=self._action("focus_student", {"student_id": student.id}),
            ),
            Command(
                id=f"adv-mark-present-{student.id}{unique}",
                label=f"Mark {student.name} Present",
                description=f"Mark {student.name} as present",
                category="attendance",
                keywords=[student.name, "present", "mark"],
                action=self._action("mark_student", {"student_id": student.id, "status": "present"}),
            ),
        ]

    def session_commands(self, session: Session, suffix: str = "") -> List[Command]:
        return [
            Command(
                id=f"adv-focus-session-{session.id}{_unique_suffix(suffix)}",
                label=f"Focus on {session.name}",
                description=f"Jump to {session.name} column",
                category="session",
                keywords=[session.name, "session", "focus"],
                action=self._action("focus_session", {"session_id": session.id}),
            )
        ]

    def bulk_commands(self, students: List[Student], status: str) -> List[Command]:
        if not students:
            return []
        return [
            Command(
                id=f"adv-bulk-mark-{status}{_unique_suffix()}",
                label=f"Mark {len(students)} students {status}",
                description=f"Bulk mark filtered students as {status}",
                category="attendance",
                keywords=["bulk", "mark", status],
                action=self._action(
                    "bulk_mark", {"student_ids": [s.id for s in students], "status": status}
                ),
            )
        ]

    def attendance_commands(self, students: List[Student], operator: str, threshold: float) -> List[Command]:
        if not students:
            return []
        shown = int(threshold) if float(threshold).is_integer() else threshold
        return [
            Command(
                id=f"adv-attendance-filtered{_unique_suffix()}",
                label=f"{len(students)} students with attendance {operator} {shown}%",
                description="View students matching attendance criteria",
                category="analytics",
                keywords=["attendance", "filter", "percentage"],
                action=self._action(
                    "show_report", {"type": "attendance", "student_ids": [s.id for s in students]}
                ),
            )
        ]

    def date_commands(self, students: List[Student], on: date) -> List[Command]:
        if not students:
            return []
        return [
            Command(
                id=f"adv-date-filtered{_unique_suffix()}",
                label=f"{len(students)} students for {on.isoformat()}",
                description="View attendance for specific date",
                category="analytics",
                keywords=["date", "filter", "attendance"],
                action=self._action(
                    "show_report",
                    {"type": "date", "student_ids": [s.id for s in students], "date": on.isoformat()},
                ),
            )
        ]
