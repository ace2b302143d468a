import datetime
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


AttendanceStatus = Literal["present", "absent", "medical"]

ATTENDANCE_STATUSES = ("present", "absent", "medical")


class _SnapshotModel(BaseModel):
    # The dashboard API sends camelCase keys; Python callers use snake_case.
    model_config = ConfigDict(populate_by_name=True)


class AttendanceRecord(_SnapshotModel):
    date: datetime.date
    status: AttendanceStatus


class SessionAttendanceRecord(_SnapshotModel):
    date: datetime.date
    session_id: str = Field(alias="sessionId")
    status: AttendanceStatus


class Student(_SnapshotModel):
    id: str
    student_id: str = Field(alias="studentId")
    name: str
    email: str = ""
    attendance_history: List[AttendanceRecord] = Field(default_factory=list, alias="attendanceHistory")
    session_attendance_history: List[SessionAttendanceRecord] = Field(
        default_factory=list, alias="sessionAttendanceHistory"
    )


class Session(_SnapshotModel):
    id: str
    name: str
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
