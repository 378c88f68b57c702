import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pyreportal.core.exceptions import WorkflowError
from pyreportal.core.models import AssignTagResult, AttendanceStatus, AttendanceToggleResult, Person, TagAssignmentCheck

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    SCANNED = "scanned"
    SELECTING_OWNER = "selecting_owner"
    COMMITTING = "committing"
    TOGGLING = "toggling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ScanSession:
    phase: Phase = Phase.IDLE
    scanned_tag: Optional[str] = None
    error: Optional[WorkflowError] = None

    def clear(self):
        self.scanned_tag = None
        self.error = None


@dataclass
class WorkflowSession(ScanSession):
    """Page-scoped state of one tag assignment attempt. Never persisted."""
    assignment_check: Optional[TagAssignmentCheck] = None
    candidate_pool: List[Person] = field(default_factory=list)
    selected_person_key: Optional[str] = None
    commit_result: Optional[AssignTagResult] = None
    person_name: Optional[str] = None

    def clear(self):
        super().clear()
        self.assignment_check = None
        self.candidate_pool = []
        self.selected_person_key = None
        self.commit_result = None
        self.person_name = None

    @property
    def scanned_state(self) -> Optional[str]:
        if self.assignment_check is None:
            return None
        return self.assignment_check.state

    @property
    def current_owner(self) -> Optional[Person]:
        if self.assignment_check is None or not self.assignment_check.assigned:
            return None
        return self.assignment_check.person

    @property
    def selected_person(self) -> Optional[Person]:
        if self.selected_person_key is None:
            return None
        return next((p for p in self.candidate_pool if p.key == self.selected_person_key), None)


@dataclass
class AttendanceSession(ScanSession):
    status: Optional[AttendanceStatus] = None
    toggle_result: Optional[AttendanceToggleResult] = None

    def clear(self):
        super().clear()
        self.status = None
        self.toggle_result = None


class NavigationState(BaseModel):
    """
    State handed between the scan screen and the roster screen.
    Serialised with camelCase keys, which is what both screens exchange.
    """
    model_config = ConfigDict(populate_by_name=True)

    scanned_tag: Optional[str] = Field(default=None, alias="scannedTag")
    tag_assignment: Optional[TagAssignmentCheck] = Field(default=None, alias="tagAssignment")
    assignment_success: bool = Field(default=False, alias="assignmentSuccess")
    person_name: Optional[str] = Field(default=None, alias="personName")
    previous_tag: Optional[str] = Field(default=None, alias="previousTag")

    @property
    def is_complete(self) -> bool:
        return bool(self.scanned_tag) and self.tag_assignment is not None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude_none=True)
        if not self.assignment_success:
            payload.pop("assignmentSuccess", None)
        return payload

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["NavigationState"]:
        """Returns None for a missing or unusable payload instead of raising."""
        if not isinstance(payload, dict) or not payload:
            return None
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Discarding malformed navigation payload: {e}")
            return None
