from nicegui import ui
from typing import Any, Callable, Optional
import asyncio
import logging

from pyreportal.core.modal_timeout import ModalTimeoutController

logger = logging.getLogger(__name__)

ESCAPE_GRACE_SECONDS = 0.15


class BrowserDismissal:
    """
    Works out why the browser hid a dialog.

    Quasar reports Esc twice, as an `escape-key` event and as a model-value
    change, and the two can reach the server in either order. A model-value
    change therefore only counts as a backdrop click when no escape arrives
    within the grace period.
    """

    def __init__(self, controller: ModalTimeoutController, grace: float = ESCAPE_GRACE_SECONDS):
        self.controller = controller
        self.grace = grace
        self._pending: Optional[asyncio.TimerHandle] = None

    def escape(self):
        self._cancel()
        self.controller.escape()

    def hidden(self):
        if not self.controller.is_open or self._pending is not None:
            return
        self._pending = asyncio.get_running_loop().call_later(self.grace, self._settle)

    def _settle(self):
        self._pending = None
        if self.controller.is_open:
            self.controller.backdrop_click()

    def _cancel(self):
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


class TimedModal(ui.dialog):
    """
    Renders a ModalTimeoutController as a Quasar dialog.

    The controller owns open/close and the timer; this element only mirrors
    its state. Dismissals done by the browser (escape, backdrop) are reported
    back to the controller so they go through its close path.
    """

    def __init__(self, controller: ModalTimeoutController, render: Callable[[Any], None],
                 card_classes: str = 'w-[520px] p-6 items-center gap-4'):
        super().__init__()
        self.controller = controller
        self.render_content = render
        self.card_classes = card_classes
        self.dismissal = BrowserDismissal(controller)

        with self, ui.card().classes(self.card_classes):
            self.render_body()

        self.on('escape-key', self.dismissal.escape)
        self.on_value_change(self._on_value_change)
        controller.add_listener(self._sync)

    @ui.refreshable
    def render_body(self):
        if self.controller.is_open:
            self.render_content(self.controller.content)

    def _sync(self, controller: ModalTimeoutController):
        if controller.is_open:
            opts = controller.options
            self.props(remove='no-backdrop-dismiss no-esc-dismiss')
            if not opts.close_on_backdrop_click:
                self.props('no-backdrop-dismiss')
            if not opts.close_on_escape:
                self.props('no-esc-dismiss')
            self.render_body.refresh()
            self.open()
        else:
            self.close()

    def _on_value_change(self, e):
        # Closed by the browser while the controller still thinks it is open
        if not e.value:
            self.dismissal.hidden()
