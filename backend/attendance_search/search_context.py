"""
Read-only view over one snapshot of students, sessions and attendance.

The context wraps the caller's lists and dicts without copying them, so the
caller must not mutate them while a query is running. Build a fresh context
for every query.
"""

import difflib
import math
import re
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .models import ATTENDANCE_STATUSES, AttendanceRecord, Session, Student
from .schemas import OverallStatistics, SessionStatistics

TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

DateRange = Tuple[date, date]
AttendanceData = Dict[str, Dict[str, str]]


def parse_time(value: str) -> Optional[int]:
    """'HH:MM' -> minutes since midnight, or None when it is not a valid time."""
    match = TIME_RE.match(value.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours * 60 + minutes


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SearchContext:
    def __init__(
        self,
        students: Sequence[Student],
        sessions: Sequence[Session],
        attendance_data: Optional[AttendanceData] = None,
        selected_date: Optional[str] = None,
        current_mode: str = "detailed",
    ):
        self.students = students
        self.sessions = sessions
        self.attendance_data: AttendanceData = attendance_data if attendance_data is not None else {}
        self.selected_date = selected_date
        self.current_mode = current_mode

    # ------------------------------------------------------------------
    # Students
    # ------------------------------------------------------------------

    def get_students(self) -> List[Student]:
        return list(self.students)

    def find_student_by_name(self, name: str, fuzzy: bool = True) -> Optional[Student]:
        """
        Exact mode: case-insensitive full-name equality.

        Fuzzy mode: first student whose name or external id contains `name`;
        failing that, the closest name (or single name word) by difflib, so
        "@Aarv" still finds "Aarav Patel".
        """
        needle = name.strip().lower()
        if not needle:
            return None

        if not fuzzy:
            return next((s for s in self.students if s.name.lower() == needle), None)

        for student in self.students:
            if needle in student.name.lower() or needle in student.student_id.lower():
                return student

        candidates: Dict[str, Student] = {}
        for student in self.students:
            for key in [student.name.lower()] + student.name.lower().split():
                # keep the first student for a shared first name
                candidates.setdefault(key, student)
        close = difflib.get_close_matches(needle, list(candidates.keys()), n=1, cutoff=0.6)
        if close:
            return candidates[close[0]]
        return None

    def find_student_by_id(self, student_id: str) -> Optional[Student]:
        return next((s for s in self.students if s.id == student_id or s.student_id == student_id), None)

    def filter_students_by_email(self, pattern: str) -> List[Student]:
        needle = pattern.lower()
        return [s for s in self.students if needle in s.email.lower()]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_sessions(self) -> List[Session]:
        return list(self.sessions)

    def find_session_by_number(self, number: int) -> Optional[Session]:
        """1-based, in timetable order."""
        if number < 1 or number > len(self.sessions):
            return None
        return self.sessions[number - 1]

    def find_session_by_name(self, name: str) -> Optional[Session]:
        needle = name.lower()
        return next((s for s in self.sessions if needle in s.name.lower()), None)

    def filter_sessions_by_time(self, time_operator: str, time: str) -> List[Session]:
        """
        Compare each session's start time with `time`.

        time_operator: before | after | at | not_at | on_or_before | on_or_after.
        Returns [] for an unparsable target time.
        """
        target = parse_time(time)
        if target is None:
            return []

        matched: List[Session] = []
        for session in self.sessions:
            start = parse_time(session.start_time)
            if start is None:
                continue
            if time_operator == "before":
                ok = start < target
            elif time_operator == "after":
                ok = start > target
            elif time_operator == "on_or_before":
                ok = start <= target
            elif time_operator == "on_or_after":
                ok = start >= target
            elif time_operator == "at":
                ok = start == target
            elif time_operator == "not_at":
                ok = start != target
            else:
                ok = False
            if ok:
                matched.append(session)
        return matched

    # ------------------------------------------------------------------
    # Attendance
    # ------------------------------------------------------------------

    def get_attendance_data(self) -> AttendanceData:
        return self.attendance_data

    def get_selected_date(self) -> Optional[str]:
        return self.selected_date

    def get_student_attendance(
        self, student_id: str, session_id: Optional[str] = None
    ) -> Union[str, Dict[str, str], None]:
        student_data = self.attendance_data.get(student_id)
        if not student_data:
            return None
        if session_id:
            return student_data.get(session_id)
        return student_data

    def filter_students_by_attendance_status(self, status: str, session_id: Optional[str] = None) -> List[Student]:
        """
        Students whose live mark OR any historical record has `status`.

        The history check matters for queries like "students with medical
        leave" where today's sheet has nothing for them yet.
        """
        matched: List[Student] = []
        for student in self.students:
            current = self.get_student_attendance(student.id, session_id)
            if session_id:
                in_current = current == status
                in_history = any(
                    r.session_id == session_id and r.status == status for r in student.session_attendance_history
                )
            else:
                in_current = isinstance(current, dict) and status in current.values()
                in_history = any(r.status == status for r in student.attendance_history)
            if in_current or in_history:
                matched.append(student)
        return matched

    def calculate_student_attendance_percentage(
        self, student_id: str, date_range: Optional[DateRange] = None
    ) -> int:
        student = self.find_student_by_id(student_id)
        if student is None:
            return 0

        history: List[AttendanceRecord] = student.attendance_history
        if date_range is not None:
            start, end = date_range
            history = [r for r in history if start <= r.date <= end]

        if not history:
            return 0

        attended = sum(1 for r in history if r.status in ("present", "medical"))
        return _round_half_up(100 * attended / len(history))

    def filter_students_by_attendance_percentage(
        self, operator: str, threshold: float, date_range: Optional[DateRange] = None
    ) -> List[Student]:
        matched: List[Student] = []
        for student in self.students:
            percentage = self.calculate_student_attendance_percentage(student.id, date_range)
            if operator == "greater_than":
                ok = percentage > threshold
            elif operator == "less_than":
                ok = percentage < threshold
            elif operator == "greater_equal":
                ok = percentage >= threshold
            elif operator == "less_equal":
                ok = percentage <= threshold
            elif operator == "equals":
                ok = abs(percentage - threshold) < 0.1
            elif operator == "not_equals":
                ok = abs(percentage - threshold) >= 0.1
            else:
                ok = False
            if ok:
                matched.append(student)
        return matched

    def filter_attendance_by_date(
        self, target: date, operator: str = "equals"
    ) -> List[Tuple[Student, List[AttendanceRecord]]]:
        """
        Per student, the history records on / before / after `target`.

        operator: equals | not_equals | before | after | on_or_before | on_or_after.
        Students with no matching record are left out.
        """
        results: List[Tuple[Student, List[AttendanceRecord]]] = []
        for student in self.students:
            records: List[AttendanceRecord] = []
            for record in student.attendance_history:
                if operator == "equals":
                    ok = record.date == target
                elif operator == "not_equals":
                    ok = record.date != target
                elif operator == "before":
                    ok = record.date < target
                elif operator == "after":
                    ok = record.date > target
                elif operator == "on_or_before":
                    ok = record.date <= target
                elif operator == "on_or_after":
                    ok = record.date >= target
                else:
                    ok = False
                if ok:
                    records.append(record)
            if records:
                results.append((student, records))
        return results

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_overall_statistics(self) -> OverallStatistics:
        total_marks = 0
        present_marks = 0
        for student in self.students:
            for session in self.sessions:
                total_marks += 1
                if self.get_student_attendance(student.id, session.id) in ("present", "medical"):
                    present_marks += 1

        return OverallStatistics(
            total_students=len(self.students),
            total_sessions=len(self.sessions),
            total_marks=total_marks,
            present_marks=present_marks,
            overall_percentage=(present_marks / total_marks) * 100 if total_marks > 0 else 0.0,
        )

    def get_session_statistics(self, session_id: str) -> SessionStatistics:
        session = next((s for s in self.sessions if s.id == session_id), None)
        if session is None:
            return SessionStatistics()

        counts = {status: 0 for status in ATTENDANCE_STATUSES}
        for student in self.students:
            status = self.get_student_attendance(student.id, session_id)
            if status in counts:
                counts[status] += 1

        marked = sum(counts.values())
        return SessionStatistics(
            session=session,
            present_count=counts["present"],
            absent_count=counts["absent"],
            medical_count=counts["medical"],
            total_students=len(self.students),
            present_percentage=(counts["present"] / marked) * 100 if marked > 0 else 0.0,
        )

    def get_irregular_students(self, threshold: int = 3) -> List[Student]:
        """Students whose last 7 records flip status at least `threshold` times."""
        irregular: List[Student] = []
        for student in self.students:
            history = student.attendance_history[-7:]
            if len(history) < 3:
                continue
            flips = sum(1 for prev, cur in zip(history, history[1:]) if prev.status != cur.status)
            if flips >= threshold:
                irregular.append(student)
        return irregular

    def get_student_recent_attendance(self, student_id: str, count: int) -> List[AttendanceRecord]:
        """The last `count` records, newest first."""
        student = self.find_student_by_id(student_id)
        if student is None or count <= 0:
            return []
        return sorted(student.attendance_history[-count:], key=lambda r: r.date, reverse=True)

    def get_student_session_attendance(self, student_id: str, on: date) -> List[Dict[str, str]]:
        student = self.find_student_by_id(student_id)
        if student is None:
            return []
        return [
            {"session_id": r.session_id, "status": r.status}
            for r in student.session_attendance_history
            if r.date == on
        ]
