from nicegui import ui
from typing import Any, Callable, Dict, Optional
import logging

from pyreportal.core import config_manager
from pyreportal.core.exceptions import InvalidSelection
from pyreportal.core.models import ScannerStatus
from pyreportal.core.roster import RosterFilter
from pyreportal.core.selection_grid import SelectionGrid
from pyreportal.core.session import Phase
from pyreportal.services.api_client import AssignmentServiceClient
from pyreportal.services.scanner.adapters import select_scan_adapter
from pyreportal.services.scanner.bridge import DeviceBridge, poll_scanner_status
from pyreportal.ui.components.selection_grid_view import SelectionGridView
from pyreportal.ui.components.timed_modal import TimedModal
from pyreportal.ui.router import ScreenRouter
from pyreportal.workflow.tag_assignment import TagAssignmentWorkflow

logger = logging.getLogger(__name__)

ALL_GROUPS = "All"
STAFF_ONLY = "Staff"


def render_scanner_status(status: Optional[ScannerStatus], is_mock: bool):
    if status is None:
        return
    if is_mock:
        text, color = f"Mock scanner ({status.platform})", 'warning'
    elif status.available:
        text, color = f"Scanner ready ({status.platform})", 'positive'
    else:
        text, color = f"Scanner unavailable ({status.platform})", 'negative'
    ui.badge(text, color=color).classes('text-sm p-2')


class TagAssignmentScreen:
    """Scan a wristband and show who it belongs to."""

    def __init__(self, workflow: TagAssignmentWorkflow, scanner_status: Optional[ScannerStatus],
                 on_proceed: Callable[[Dict[str, Any]], Any], on_exit: Callable[[str], Any]):
        self.workflow = workflow
        self.scanner_status = scanner_status
        self.on_proceed = on_proceed
        self.on_exit = on_exit

    async def start_scan(self):
        await self.workflow.start_scan()

    async def scan_another(self):
        await self.workflow.scan_another()

    async def proceed(self):
        payload = self.workflow.proceed_to_selection()
        if payload:
            await self.on_proceed(payload)

    def leave(self):
        self.on_exit(self.workflow.abandon())

    @ui.refreshable
    def render(self):
        wf = self.workflow
        session = wf.session

        with ui.row().classes('w-full items-center justify-between'):
            ui.button("Back", icon='arrow_back', on_click=self.leave).props('flat size=lg')
            ui.label("Assign wristband").classes('text-3xl font-bold')
            render_scanner_status(self.scanner_status, wf.adapter.is_mock)

        with ui.column().classes('w-full items-center gap-6 mt-8'):
            if session.phase in (Phase.IDLE, Phase.SCANNING):
                ui.icon('contactless', size='6rem').classes('text-primary')
                ui.label("Hold a wristband to the scanner").classes('text-xl')
                ui.button("Start scan", icon='nfc', on_click=self.start_scan) \
                    .props('size=xl color=primary').set_enabled(wf.can_start_scan)

            elif session.phase == Phase.SCANNED:
                ui.label(f"Tag: {session.scanned_tag}").classes('text-lg font-mono')
                owner = session.current_owner
                if session.commit_result:
                    with ui.row().classes('items-center gap-2'):
                        ui.icon('check_circle', size='2rem').classes('text-positive')
                        ui.label(f"Wristband assigned to {session.person_name}").classes('text-2xl font-bold')
                    if session.commit_result.previous_tag:
                        ui.label(f"Previous wristband {session.commit_result.previous_tag} was released") \
                            .classes('text-gray-400')
                elif owner:
                    ui.label(f"Currently assigned to {owner.name}").classes('text-2xl font-bold')
                    if owner.group:
                        ui.label(owner.group).classes('text-gray-400')
                else:
                    ui.label("This wristband is not assigned").classes('text-2xl font-bold')
                with ui.row().classes('gap-4'):
                    ui.button("Scan another", icon='refresh', on_click=self.scan_another) \
                        .props('size=lg outline').set_enabled(wf.can_start_scan)
                    ui.button("Assign person" if owner is None else "Reassign", icon='person_add',
                              on_click=self.proceed).props('size=lg color=primary')

            elif session.phase == Phase.SUCCEEDED:
                ui.icon('check_circle', size='6rem').classes('text-positive')
                ui.label(f"Wristband assigned to {session.person_name}").classes('text-2xl font-bold')
                if session.commit_result and session.commit_result.previous_tag:
                    ui.label(f"Previous wristband {session.commit_result.previous_tag} was released") \
                        .classes('text-gray-400')
                ui.button("Scan another", icon='refresh', on_click=self.scan_another).props('size=lg color=primary')

            elif session.phase == Phase.FAILED:
                ui.icon('error', size='6rem').classes('text-negative')
                if session.error:
                    ui.label(session.error.user_message).classes('text-xl text-center')
                ui.button("Try again", icon='refresh', on_click=self.scan_another) \
                    .props('size=lg color=primary').set_enabled(wf.can_start_scan)


class PersonSelectionScreen:
    """Pick the new owner of the scanned wristband from the roster."""

    def __init__(self, workflow: TagAssignmentWorkflow, page_size: int,
                 on_back: Callable[[Optional[Dict[str, Any]]], Any],
                 on_success: Callable[[Dict[str, Any]], Any]):
        self.workflow = workflow
        self.grid = SelectionGrid(page_size=page_size)
        self.grid_view = SelectionGridView(self.grid, on_select=self.select,
                                           is_enabled=lambda: workflow.session.phase != Phase.COMMITTING)
        self.on_back = on_back
        self.on_success = on_success
        self.filter_value = ALL_GROUPS

    async def load(self, roster_filter: Optional[RosterFilter] = None):
        people = await self.workflow.load_roster(roster_filter)
        self.grid.set_items(people)
        self.grid.clear_selection()
        self.render.refresh()

    async def on_filter_change(self, e):
        self.filter_value = e.value
        if e.value == STAFF_ONLY:
            roster_filter = RosterFilter(staff_only=True)
        elif e.value == ALL_GROUPS or not e.value:
            roster_filter = RosterFilter()
        else:
            roster_filter = RosterFilter(group=e.value)
        await self.load(roster_filter)

    async def select(self, key: str):
        try:
            self.workflow.select_person(key)
        except InvalidSelection as e:
            logger.warning(f"Selection rejected: {e.detail}")
            return
        self.grid.select(key)
        self.render.refresh()

    async def commit(self):
        payload = await self.workflow.commit()
        if payload:
            await self.on_success(payload)
        else:
            self.render.refresh()

    async def back(self):
        await self.on_back(self.workflow.back_to_scan())

    @ui.refreshable
    def render(self):
        wf = self.workflow
        session = wf.session

        with ui.row().classes('w-full items-center justify-between'):
            ui.button("Back", icon='arrow_back', on_click=self.back).props('flat size=lg')
            ui.label("Select person").classes('text-3xl font-bold')
            ui.label(f"Tag: {session.scanned_tag}").classes('font-mono text-gray-400')

        with ui.row().classes('w-full items-center gap-4'):
            options = [ALL_GROUPS, STAFF_ONLY] + wf.groups
            ui.select(options, value=self.filter_value, label="Filter",
                      on_change=self.on_filter_change).classes('w-48')
            if wf.roster_loading:
                ui.spinner(size='lg')
            ui.space()
            selected = session.selected_person
            if selected:
                ui.label(f"Selected: {selected.name}").classes('text-lg font-bold')

        self.grid_view.render()

        with ui.row().classes('w-full justify-end mt-4'):
            label = "Assigning..." if session.phase == Phase.COMMITTING else "Assign wristband"
            ui.button(label, icon='check', on_click=self.commit) \
                .props('size=xl color=positive').set_enabled(wf.can_commit)


class TagAssignmentPage:
    """Wires config, services and the two screens of the assignment flow."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or config_manager.load_config()
        self.client = AssignmentServiceClient.from_config(self.config)
        self.bridge = DeviceBridge.from_config(self.config)
        self.operator = config_manager.get_operator(self.config)
        self.scanner_status: Optional[ScannerStatus] = None
        self.workflow: Optional[TagAssignmentWorkflow] = None
        self.router: Optional[ScreenRouter] = None
        self.active_screen = None

    async def init(self):
        self.scanner_status = await poll_scanner_status(self.bridge)
        adapter = select_scan_adapter(self.bridge, self.scanner_status, self.config)
        self.workflow = TagAssignmentWorkflow(adapter, self.client, self.operator, self.config)
        self.workflow.add_listener(lambda wf: self.refresh())
        logger.info(f"Tag assignment page ready (scanner: {self.scanner_status.platform}, "
                    f"available={self.scanner_status.available}, mock={adapter.is_mock})")

    def refresh(self):
        if self.active_screen is not None:
            self.active_screen.render.refresh()

    async def show_scan(self, payload: Optional[Dict[str, Any]] = None):
        screen = TagAssignmentScreen(
            self.workflow, self.scanner_status,
            on_proceed=lambda p: self.router.go('select', p),
            on_exit=ui.navigate.to,
        )
        self.active_screen = screen
        screen.render()
        if payload:
            await self.workflow.resume(payload)

    async def show_selection(self, payload: Optional[Dict[str, Any]] = None):
        if not self.workflow.enter_selection(payload):
            await self.router.go('scan')
            return
        screen = PersonSelectionScreen(
            self.workflow, self.config["roster_page_size"],
            on_back=lambda p: self.router.go('scan', p),
            on_success=lambda p: self.router.go('scan', p),
        )
        self.active_screen = screen
        screen.render()
        await screen.load()

    def _render_scan_modal(self, content):
        ui.spinner('dots', size='xl').classes('text-primary')
        ui.label("Scanning...").classes('text-2xl font-bold')
        ui.label("Hold the wristband to the scanner").classes('text-gray-400')
        ui.button("Cancel", on_click=self.workflow.scan_modal.cancel).props('outline')

    def _render_error_modal(self, message):
        ui.icon('error', size='4rem').classes('text-negative')
        ui.label(message or "").classes('text-xl text-center')
        ui.button("OK", on_click=self.workflow.error_modal.cancel).props('color=primary')

    def _render_success_modal(self, person_name):
        ui.icon('check_circle', size='4rem').classes('text-positive')
        ui.label(f"Wristband assigned to {person_name}").classes('text-xl text-center')

    async def build(self):
        await self.init()
        TimedModal(self.workflow.scan_modal, self._render_scan_modal)
        TimedModal(self.workflow.error_modal, self._render_error_modal)
        TimedModal(self.workflow.success_modal, self._render_success_modal)

        with ui.column().classes('w-full max-w-5xl mx-auto p-6'):
            self.router = ScreenRouter()
            self.router.register('scan', self.show_scan)
            self.router.register('select', self.show_selection)
        await self.router.go('scan')

        ui.context.client.on_disconnect(self.workflow.dispose)
