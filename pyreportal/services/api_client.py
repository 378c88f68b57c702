import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar
from urllib.parse import quote

import requests
from pydantic import ValidationError

from pyreportal.core.exceptions import ApiError, AuthMissing
from pyreportal.core.models import (
    AssignTagResult,
    AttendanceStatus,
    AttendanceToggleResult,
    Person,
    TagAssignmentCheck,
    parse_person,
    person_from_staff,
    person_from_student,
)
from pyreportal.core.roster import RosterFilter, apply_roster_filter
from pyreportal.services.io_utils import io_bound

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Raised while reading a 2xx body that does not have the expected shape
RESPONSE_SHAPE_ERRORS = (ValidationError, AttributeError, TypeError, KeyError, ValueError)


def _unwrap(body: Any) -> Any:
    """The API wraps most payloads as {"status": ..., "data": ..., "message": ...}."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _tag_assignment_check(body: Any) -> TagAssignmentCheck:
    data = _unwrap(body) or {}
    person_data = data.get("person") or data.get("student")
    person = parse_person(person_data) if person_data else None
    if person is None and data.get("staff"):
        person = person_from_staff(data["staff"])

    assigned = bool(data.get("assigned", person is not None))
    return TagAssignmentCheck(assigned=assigned, person=person if assigned else None)


def _assign_tag_result(body: Any) -> AssignTagResult:
    if isinstance(body, dict) and "success" not in body and "status" in body:
        data = body.get("data") or {}
        return AssignTagResult(
            success=body.get("status") == "success",
            previous_tag=data.get("previous_tag"),
            message=body.get("message"),
        )
    return AssignTagResult.model_validate(body)


def _attendance_status(body: Any) -> AttendanceStatus:
    data = _unwrap(body) or {}
    attendance = data.get("attendance") or {}
    return AttendanceStatus(
        person=parse_person(data.get("student") or data.get("person") or {}),
        status=attendance.get("status", "not_checked_in"),
        room=attendance.get("room"),
    )


def _attendance_toggle_result(body: Any) -> AttendanceToggleResult:
    data = _unwrap(body) or {}
    return AttendanceToggleResult(
        action=data.get("action", "cancelled"),
        person=parse_person(data.get("student") or data.get("person") or {}),
        message=data.get("message"),
    )


class AssignmentServiceClient:
    """
    Client for the remote service that owns the tag <-> person mapping.

    Every operator call needs the operator PIN as `auth_token`. It is checked
    locally before any request is made.
    """

    def __init__(self, base_url: str, device_api_key: str = "", timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.device_api_key = device_api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "AssignmentServiceClient":
        return cls(
            base_url=config["api_base_url"],
            device_api_key=config.get("device_api_key", ""),
            timeout=float(config.get("request_timeout_seconds", 10.0)),
        )

    @staticmethod
    def _require_auth(auth_token: Optional[str]) -> str:
        if not auth_token:
            raise AuthMissing("No operator PIN available for an authenticated request")
        return auth_token

    def _headers(self, auth_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.device_api_key:
            headers["Authorization"] = f"Bearer {self.device_api_key}"
        if auth_token:
            headers["X-Staff-PIN"] = auth_token
        return headers

    def _request(self, method: str, path: str, auth_token: Optional[str] = None, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, headers=self._headers(auth_token),
                                            timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ApiError(f"Request to {path} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            message = response.reason or "Request failed"
            code = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    message = body.get("message") or body.get("error") or message
                    code = body.get("code")
            except ValueError:
                pass
            raise ApiError(message, status_code=response.status_code, code=code)

        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {path}", status_code=response.status_code) from e

    async def _call(self, method: str, path: str, auth_token: Optional[str] = None, **kwargs) -> Any:
        return await io_bound(self._request, method, path, auth_token, **kwargs)

    @staticmethod
    def _parse(path: str, parser: Callable[[Any], T], body: Any) -> T:
        """Runs `parser` on a 2xx body. A body of the wrong shape becomes ApiError."""
        try:
            return parser(body)
        except RESPONSE_SHAPE_ERRORS as e:
            logger.error(f"Unexpected response from {path}: {e}")
            raise ApiError(f"Invalid response from {path}") from e

    # Tag assignment

    async def check_tag_assignment(self, auth_token: Optional[str], tag_id: str) -> TagAssignmentCheck:
        pin = self._require_auth(auth_token)
        path = f"/api/iot/rfid/{quote(tag_id, safe='')}"
        body = await self._call("GET", path, pin)
        return self._parse(path, _tag_assignment_check, body)

    async def assign_tag(self, auth_token: Optional[str], person: Person, tag_id: str) -> AssignTagResult:
        pin = self._require_auth(auth_token)
        if person.type == "staff":
            path = f"/api/iot/staff/{person.id}/rfid"
        else:
            path = f"/api/iot/students/{person.id}/rfid"

        body = await self._call("POST", path, pin, json={"rfid_tag": tag_id})
        return self._parse(path, _assign_tag_result, body)

    # Roster

    async def get_students(self, auth_token: Optional[str], teacher_ids: Optional[List[int]] = None) -> List[Person]:
        pin = self._require_auth(auth_token)
        params = {}
        if teacher_ids:
            params["teacher_ids"] = ",".join(str(t) for t in teacher_ids)
        body = await self._call("GET", "/api/iot/students", pin, params=params)
        return self._parse("/api/iot/students",
                           lambda b: [person_from_student(s) for s in (_unwrap(b) or [])], body)

    async def get_teachers(self) -> List[Person]:
        # Device-authenticated, no operator PIN needed
        body = await self._call("GET", "/api/iot/teachers")
        return self._parse("/api/iot/teachers",
                           lambda b: [person_from_staff(t) for t in (_unwrap(b) or [])], body)

    async def list_roster(self, auth_token: Optional[str], filters: Optional[RosterFilter] = None,
                          teacher_ids: Optional[List[int]] = None) -> List[Person]:
        """Students of the given supervisors plus all staff, filtered and sorted by name."""
        self._require_auth(auth_token)
        students, teachers = await asyncio.gather(
            self.get_students(auth_token, teacher_ids),
            self.get_teachers(),
        )
        logger.info(f"Roster fetched: {len(students)} students, {len(teachers)} staff")
        return apply_roster_filter([*students, *teachers], filters)

    # Attendance

    async def get_attendance_status(self, auth_token: Optional[str], staff_id: int, tag_id: str) -> AttendanceStatus:
        pin = self._require_auth(auth_token)
        path = f"/api/iot/attendance/status/{quote(tag_id, safe='')}"
        body = await self._call("GET", path, pin, params={"staff_id": staff_id})
        return self._parse(path, _attendance_status, body)

    async def toggle_attendance(self, auth_token: Optional[str], staff_id: int, tag_id: str,
                                action: str = "confirm") -> AttendanceToggleResult:
        pin = self._require_auth(auth_token)
        path = "/api/iot/attendance/toggle"
        body = await self._call("POST", path, pin,
                                json={"rfid": tag_id, "action": action, "staff_id": staff_id})
        if isinstance(body, dict) and body.get("status") not in (None, "success"):
            raise ApiError(body.get("message") or "Attendance toggle rejected")
        return self._parse(path, _attendance_toggle_result, body)
