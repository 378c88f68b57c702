import sys
import os
import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

sys.path.append(os.getcwd())

from pyreportal.core.exceptions import ApiError, AttendanceFailed, AuthMissing
from pyreportal.core.models import AttendanceStatus, AttendanceToggleResult, Operator, Person
from pyreportal.core.session import Phase
from pyreportal.services.scanner.adapters import ScanAdapter, ScanOutcome
from pyreportal.workflow.attendance import AttendanceWorkflow

TAG = "04:D6:94:82:97:6A:80"
ANNA = Person(id=3, name="Anna Berg", group="3a")


class FixedAdapter(ScanAdapter):
    def __init__(self, tag_id=TAG):
        self.tag_id = tag_id

    async def begin_scan(self):
        return ScanOutcome(tag_id=self.tag_id)


def make_client(status="checked_in", action="checked_out"):
    client = MagicMock()
    client.get_attendance_status = AsyncMock(return_value=AttendanceStatus(person=ANNA, status=status))
    client.toggle_attendance = AsyncMock(return_value=AttendanceToggleResult(action=action, person=ANNA))
    return client


class TestAttendanceWorkflow(unittest.IsolatedAsyncioTestCase):
    def make_workflow(self, client, operator=Operator(pin="1234", staff_id=5)):
        wf = AttendanceWorkflow(FixedAdapter(), client, operator, {"error_modal_timeout_ms": 50})
        self.addCleanup(wf.dispose)
        return wf

    async def test_scan_shows_status_then_toggles(self):
        client = make_client()
        wf = self.make_workflow(client)

        await wf.start_scan()
        self.assertEqual(wf.phase, Phase.SCANNED)
        self.assertEqual(wf.session.status.next_action, "check_out")
        client.get_attendance_status.assert_awaited_once_with("1234", 5, TAG)
        client.toggle_attendance.assert_not_awaited()

        result = await wf.confirm()
        self.assertEqual(result.action, "checked_out")
        self.assertEqual(wf.phase, Phase.SUCCEEDED)
        client.toggle_attendance.assert_awaited_once_with("1234", 5, TAG, action="confirm")

        # Next wristband straight from the result
        self.assertTrue(wf.can_start_scan)

    async def test_confirm_requires_scanned_status(self):
        client = make_client()
        wf = self.make_workflow(client)
        self.assertIsNone(await wf.confirm())
        client.toggle_attendance.assert_not_awaited()

    async def test_double_confirm_toggles_once(self):
        gate = asyncio.Event()

        async def slow_toggle(*args, **kwargs):
            await gate.wait()
            return AttendanceToggleResult(action="checked_in", person=ANNA)

        client = make_client(status="not_checked_in")
        client.toggle_attendance.side_effect = slow_toggle
        wf = self.make_workflow(client)
        await wf.start_scan()

        task = asyncio.create_task(wf.confirm())
        await asyncio.sleep(0)
        self.assertEqual(wf.phase, Phase.TOGGLING)
        self.assertIsNone(await wf.confirm())
        gate.set()
        await task
        self.assertEqual(client.toggle_attendance.await_count, 1)

    async def test_status_failure(self):
        client = make_client()
        client.get_attendance_status.side_effect = ApiError("not found", status_code=404)
        wf = self.make_workflow(client)
        await wf.start_scan()
        self.assertEqual(wf.phase, Phase.FAILED)
        self.assertIsInstance(wf.session.error, AttendanceFailed)

    async def test_toggle_failure(self):
        client = make_client()
        client.toggle_attendance.side_effect = ApiError("closed")
        wf = self.make_workflow(client)
        await wf.start_scan()
        self.assertIsNone(await wf.confirm())
        self.assertIsInstance(wf.session.error, AttendanceFailed)

    async def test_no_operator(self):
        client = make_client()
        wf = self.make_workflow(client, operator=None)
        await wf.start_scan()
        self.assertIsInstance(wf.session.error, AuthMissing)
        client.get_attendance_status.assert_not_awaited()

    async def test_dismiss_returns_to_idle(self):
        client = make_client()
        wf = self.make_workflow(client)
        await wf.start_scan()
        wf.dismiss()
        self.assertEqual(wf.phase, Phase.IDLE)
        self.assertIsNone(wf.session.status)
        client.toggle_attendance.assert_not_awaited()


if __name__ == '__main__':
    unittest.main()
