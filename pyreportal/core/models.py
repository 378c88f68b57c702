from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

PersonType = Literal["staff", "student"]


class Person(BaseModel):
    id: Optional[int] = None
    name: str
    group: str = ""
    type: PersonType = "student"

    @property
    def key(self) -> str:
        # Student and staff ids are separate id spaces on the server
        return f"{self.type}-{self.id}"

    @property
    def sort_name(self) -> str:
        return self.name.lower()


class TagAssignmentCheck(BaseModel):
    assigned: bool = False
    person: Optional[Person] = None

    @property
    def state(self) -> str:
        return "assigned" if self.assigned else "unassigned"


class AssignTagResult(BaseModel):
    success: bool
    previous_tag: Optional[str] = None
    message: Optional[str] = None


class ScannerStatus(BaseModel):
    available: bool
    platform: str
    last_error: Optional[str] = None


class AttendanceStatus(BaseModel):
    person: Person
    status: Literal["checked_in", "checked_out", "not_checked_in"] = "not_checked_in"
    room: Optional[str] = None

    @property
    def next_action(self) -> str:
        return "check_out" if self.status == "checked_in" else "check_in"


class AttendanceToggleResult(BaseModel):
    action: Literal["checked_in", "checked_out", "cancelled"]
    person: Person
    message: Optional[str] = None


class Operator(BaseModel):
    """The staff member operating the kiosk. `pin` doubles as the auth token."""
    pin: str
    staff_id: int
    name: str = ""
    supervisor_ids: List[int] = Field(default_factory=list)

    @property
    def roster_teacher_ids(self) -> List[int]:
        # If no supervisors were selected, fall back to the operator's own id
        return self.supervisor_ids or [self.staff_id]


def person_from_student(data: Dict[str, Any]) -> Person:
    first = data.get("first_name", "")
    last = data.get("last_name", "")
    return Person(
        id=data.get("student_id", data.get("id")),
        name=data.get("name") or f"{first} {last}".strip(),
        group=data.get("school_class") or data.get("group") or "",
        type="student",
    )


def person_from_staff(data: Dict[str, Any]) -> Person:
    name = (data.get("display_name") or data.get("name")
            or f"{data.get('first_name', '')} {data.get('last_name', '')}".strip())
    return Person(
        id=data.get("staff_id", data.get("id")),
        name=name,
        group=data.get("group", ""),
        type="staff",
    )


def parse_person(data: Dict[str, Any]) -> Person:
    """Parses a person payload that may come in student, staff or already-normalised shape."""
    kind = data.get("type") or data.get("person_type")
    if kind in ("staff", "teacher") or "staff_id" in data:
        return person_from_staff(data)
    return person_from_student(data)
