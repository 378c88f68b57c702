from nicegui import ui
from typing import Any, Callable, Optional
import logging

from pyreportal.core.models import Person
from pyreportal.core.selection_grid import GRID_COLUMNS, GridSlot, SelectionGrid

logger = logging.getLogger(__name__)


class SelectionGridView:
    """Renders a SelectionGrid as fixed 5-column tiles with prev/next controls."""

    def __init__(self, grid: SelectionGrid, on_select: Callable[[Any], Any],
                 is_enabled: Optional[Callable[[], bool]] = None):
        self.grid = grid
        self.on_select = on_select
        self.is_enabled = is_enabled or (lambda: True)

    def change_page(self, delta: int):
        moved = self.grid.next_page() if delta > 0 else self.grid.prev_page()
        if moved:
            self.render.refresh()

    async def _on_tile_click(self, slot: GridSlot):
        if slot.is_placeholder or not self.is_enabled():
            return
        await self.on_select(self.grid.key(slot.item))

    def _render_tile(self, slot: GridSlot):
        if slot.is_placeholder:
            ui.card().classes('h-28 w-full opacity-20 bg-gray-700 shadow-none')
            return

        person: Person = slot.item
        border = 'border-4 border-primary' if slot.selected else 'border border-gray-600'
        with ui.card().classes(f'h-28 w-full cursor-pointer items-center justify-center {border}') \
                .on('click', lambda s=slot: self._on_tile_click(s)):
            icon = 'badge' if person.type == 'staff' else 'person'
            ui.icon(icon, size='md').classes('text-primary' if slot.selected else 'text-gray-400')
            ui.label(person.name).classes('text-center font-bold leading-tight')
            if person.group:
                ui.label(person.group).classes('text-xs text-gray-400')

    @ui.refreshable
    def render(self):
        if self.grid.item_count == 0:
            ui.label("No people found").classes('text-gray-400 text-lg w-full text-center p-8')
            return

        with ui.grid(columns=GRID_COLUMNS).classes('w-full gap-3'):
            for slot in self.grid.slots():
                self._render_tile(slot)

        if self.grid.show_controls:
            with ui.row().classes('w-full justify-center items-center gap-4 mt-2'):
                ui.button(icon='chevron_left', on_click=lambda: self.change_page(-1)) \
                    .props('flat round size=lg').set_enabled(self.grid.can_go_prev)
                ui.label(f"Page {self.grid.current_page + 1} of {self.grid.total_pages}").classes('text-lg')
                ui.button(icon='chevron_right', on_click=lambda: self.change_page(1)) \
                    .props('flat round size=lg').set_enabled(self.grid.can_go_next)
