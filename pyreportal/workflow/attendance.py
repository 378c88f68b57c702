import logging
from typing import Optional

from pyreportal.core.exceptions import ApiError, AttendanceFailed, AuthMissing
from pyreportal.core.models import AttendanceToggleResult
from pyreportal.core.session import AttendanceSession, Phase
from pyreportal.core.user_actions import log_user_action
from pyreportal.workflow.base import ScanDrivenWorkflow

logger = logging.getLogger(__name__)


class AttendanceWorkflow(ScanDrivenWorkflow):
    """Scan a wristband, show the holder's attendance, then check in or out."""

    name = "attendance"
    session: AttendanceSession

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._toggle_in_flight = False

    def _new_session(self) -> AttendanceSession:
        return AttendanceSession()

    def _require_operator(self):
        if self.operator is None or not self.operator.pin:
            raise AuthMissing("No operator configured for attendance")
        return self.operator

    async def _after_scan(self, tag_id: str, generation: int):
        try:
            operator = self._require_operator()
            status = await self.client.get_attendance_status(operator.pin, operator.staff_id, tag_id)
        except AuthMissing as e:
            if self._is_current(generation):
                self._fail(e)
            return
        except ApiError as e:
            if self._is_current(generation):
                self._fail(AttendanceFailed(str(e)))
            return

        if not self._is_current(generation):
            return
        self.session.status = status
        self.session.phase = Phase.SCANNED
        logger.info(f"{status.person.name} is {status.status}, next action {status.next_action}")
        self._notify()

    @property
    def can_confirm(self) -> bool:
        return (self.session.phase == Phase.SCANNED and self.session.status is not None
                and not self._toggle_in_flight)

    async def confirm(self) -> Optional[AttendanceToggleResult]:
        """SCANNED -> TOGGLING -> SUCCEEDED. Ignored unless a status is on screen."""
        if not self.can_confirm:
            return None
        tag_id = self.session.scanned_tag

        self._toggle_in_flight = True
        self.session.phase = Phase.TOGGLING
        self._notify()
        try:
            operator = self._require_operator()
            result = await self.client.toggle_attendance(operator.pin, operator.staff_id, tag_id, action="confirm")
        except AuthMissing as e:
            self._fail(e)
            return None
        except ApiError as e:
            self._fail(AttendanceFailed(str(e)))
            return None
        finally:
            self._toggle_in_flight = False

        self.session.toggle_result = result
        self.session.phase = Phase.SUCCEEDED
        log_user_action("attendance_toggled", tag=tag_id, person=result.person.name, action=result.action)
        self._notify()
        return result

    def dismiss(self):
        """Drops the scanned status without contacting the server."""
        if self.session.phase == Phase.SCANNED:
            log_user_action("attendance_dismissed", tag=self.session.scanned_tag)
            self.reset()
