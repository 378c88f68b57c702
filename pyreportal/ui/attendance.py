from nicegui import ui
from typing import Any, Dict, Optional
import logging

from pyreportal.core import config_manager
from pyreportal.core.models import ScannerStatus
from pyreportal.core.session import Phase
from pyreportal.services.api_client import AssignmentServiceClient
from pyreportal.services.scanner.adapters import select_scan_adapter
from pyreportal.services.scanner.bridge import DeviceBridge, poll_scanner_status
from pyreportal.ui.components.timed_modal import TimedModal
from pyreportal.ui.tag_assignment import render_scanner_status
from pyreportal.workflow.attendance import AttendanceWorkflow

logger = logging.getLogger(__name__)

ACTION_LABELS = {
    'checked_in': "checked in",
    'checked_out': "checked out",
    'cancelled': "cancelled",
}

STATUS_LABELS = {
    'checked_in': "Checked in",
    'checked_out': "Checked out",
    'not_checked_in': "Not checked in",
}


class AttendancePage:
    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or config_manager.load_config()
        self.client = AssignmentServiceClient.from_config(self.config)
        self.bridge = DeviceBridge.from_config(self.config)
        self.operator = config_manager.get_operator(self.config)
        self.scanner_status: Optional[ScannerStatus] = None
        self.workflow: Optional[AttendanceWorkflow] = None

    async def init(self):
        self.scanner_status = await poll_scanner_status(self.bridge)
        adapter = select_scan_adapter(self.bridge, self.scanner_status, self.config)
        self.workflow = AttendanceWorkflow(adapter, self.client, self.operator, self.config)
        self.workflow.add_listener(lambda wf: self.render.refresh())

    async def start_scan(self):
        await self.workflow.start_scan()

    async def confirm(self):
        result = await self.workflow.confirm()
        if result:
            ui.notify(f"{result.person.name} {ACTION_LABELS.get(result.action, result.action)}", type='positive')

    def leave(self):
        ui.navigate.to(self.workflow.abandon())

    @ui.refreshable
    def render(self):
        wf = self.workflow
        session = wf.session

        with ui.row().classes('w-full items-center justify-between'):
            ui.button("Back", icon='arrow_back', on_click=self.leave).props('flat size=lg')
            ui.label("Attendance").classes('text-3xl font-bold')
            render_scanner_status(self.scanner_status, wf.adapter.is_mock)

        with ui.column().classes('w-full items-center gap-6 mt-8'):
            if session.phase == Phase.SCANNED and session.status:
                status = session.status
                ui.label(status.person.name).classes('text-3xl font-bold')
                ui.label(STATUS_LABELS[status.status] + (f" ({status.room})" if status.room else "")) \
                    .classes('text-xl text-gray-400')
                with ui.row().classes('gap-4'):
                    ui.button("Cancel", on_click=wf.dismiss).props('size=lg outline')
                    label = "Check out" if status.next_action == 'check_out' else "Check in"
                    ui.button(label, icon='how_to_reg', on_click=self.confirm) \
                        .props('size=xl color=primary').set_enabled(wf.can_confirm)

            elif session.phase == Phase.TOGGLING:
                ui.spinner(size='xl')

            elif session.phase == Phase.SUCCEEDED and session.toggle_result:
                result = session.toggle_result
                ui.icon('check_circle', size='6rem').classes('text-positive')
                ui.label(f"{result.person.name} {ACTION_LABELS.get(result.action, result.action)}") \
                    .classes('text-2xl font-bold')
                ui.button("Next", icon='nfc', on_click=self.start_scan).props('size=lg color=primary')

            else:
                ui.icon('contactless', size='6rem').classes('text-primary')
                if session.phase == Phase.FAILED and session.error:
                    ui.label(session.error.user_message).classes('text-xl text-negative text-center')
                else:
                    ui.label("Hold a wristband to the scanner").classes('text-xl')
                ui.button("Start scan", icon='nfc', on_click=self.start_scan) \
                    .props('size=xl color=primary').set_enabled(wf.can_start_scan)

    def _render_scan_modal(self, content):
        ui.spinner('dots', size='xl').classes('text-primary')
        ui.label("Scanning...").classes('text-2xl font-bold')
        ui.button("Cancel", on_click=self.workflow.scan_modal.cancel).props('outline')

    def _render_error_modal(self, message):
        ui.icon('error', size='4rem').classes('text-negative')
        ui.label(message or "").classes('text-xl text-center')

    async def build(self):
        await self.init()
        TimedModal(self.workflow.scan_modal, self._render_scan_modal)
        TimedModal(self.workflow.error_modal, self._render_error_modal)
        with ui.column().classes('w-full max-w-5xl mx-auto p-6'):
            self.render()
        ui.context.client.on_disconnect(self.workflow.dispose)
