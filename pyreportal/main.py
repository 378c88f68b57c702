from nicegui import ui
import logging
import os

from pyreportal.core import config_manager
from pyreportal.ui.attendance import AttendancePage
from pyreportal.ui.tag_assignment import TagAssignmentPage

config = config_manager.load_config()

logging.basicConfig(
    level=getattr(logging, str(config.get("log_level", "INFO")).upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@ui.page('/')
def home_page():
    operator = config_manager.get_operator(config)
    with ui.column().classes('w-full h-screen items-center justify-center gap-8'):
        ui.label("PyrePortal").classes('text-5xl font-bold')
        if operator:
            ui.label(f"Operator: {operator.name or operator.staff_id}").classes('text-xl text-gray-400')
        else:
            ui.label("No operator configured").classes('text-xl text-negative')
        with ui.row().classes('gap-8'):
            ui.button("Assign wristband", icon='nfc',
                      on_click=lambda: ui.navigate.to('/tag-assignment')).props('size=xl color=primary')
            ui.button("Attendance", icon='how_to_reg',
                      on_click=lambda: ui.navigate.to('/attendance')).props('size=xl color=secondary')


@ui.page('/tag-assignment')
async def tag_assignment_page():
    page = TagAssignmentPage(config_manager.load_config())
    await page.build()


@ui.page('/attendance')
async def attendance_page():
    page = AttendancePage(config_manager.load_config())
    await page.build()


def main():
    port = int(os.environ.get("PYREPORTAL_PORT", "8090"))
    logger.info(f"Starting PyrePortal on port {port} (API: {config['api_base_url']})")
    ui.run(title="PyrePortal", port=port, dark=True, reload=False)


if __name__ in {"__main__", "__mp_main__"}:
    main()
