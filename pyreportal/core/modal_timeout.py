import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


class CloseCause(str, Enum):
    TIMEOUT = "timeout"
    BACKDROP = "backdrop"
    ESCAPE = "escape"
    MANUAL = "manual"
    CANCEL = "cancel"


@dataclass
class ModalOptions:
    auto_close_ms: Optional[int] = None
    close_on_backdrop_click: bool = True
    close_on_escape: bool = True


class ModalTimeoutController:
    """
    Lifecycle of one overlay: open, optional auto-close timer, close.

    At most one timer is armed at any time. Re-opening an open modal re-arms
    the timer instead of stacking a second one. Every close, whatever caused
    it, goes through `on_close(cause)` exactly once.
    """

    def __init__(self, name: str = "modal", on_close: Optional[Callable[[CloseCause], Any]] = None):
        self.name = name
        self.on_close = on_close
        self.is_open = False
        self.content: Any = None
        self.options = ModalOptions()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._listeners: List[Callable[["ModalTimeoutController"], Any]] = []

    def add_listener(self, callback: Callable[["ModalTimeoutController"], Any]):
        """Views register here to re-render on open/close."""
        self._listeners.append(callback)

    def _notify(self):
        for cb in list(self._listeners):
            try:
                cb(self)
            except Exception as e:
                logger.error(f"Modal '{self.name}' listener failed: {e}")

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    def open(self, content: Any = None, *, auto_close_ms: Optional[int] = None,
             close_on_backdrop_click: bool = True, close_on_escape: bool = True):
        self._disarm()
        self.content = content
        self.options = ModalOptions(
            auto_close_ms=auto_close_ms,
            close_on_backdrop_click=close_on_backdrop_click,
            close_on_escape=close_on_escape,
        )
        self.is_open = True

        if auto_close_ms is not None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(max(auto_close_ms, 0) / 1000.0, self._on_timer)

        logger.debug(f"Modal '{self.name}' opened (auto_close_ms={auto_close_ms})")
        self._notify()

    def _on_timer(self):
        self._timer = None
        if self.is_open:
            logger.debug(f"Modal '{self.name}' timed out")
            self.close(CloseCause.TIMEOUT)

    def _disarm(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self, cause: CloseCause = CloseCause.MANUAL) -> bool:
        """Closes the modal. Returns False when it was already closed."""
        if not self.is_open:
            return False
        self._disarm()
        self.is_open = False
        logger.debug(f"Modal '{self.name}' closed ({cause.value})")
        self._notify()
        if self.on_close:
            self.on_close(cause)
        return True

    def backdrop_click(self) -> bool:
        if not self.options.close_on_backdrop_click:
            return False
        return self.close(CloseCause.BACKDROP)

    def escape(self) -> bool:
        if not self.options.close_on_escape:
            return False
        return self.close(CloseCause.ESCAPE)

    def cancel(self) -> bool:
        return self.close(CloseCause.CANCEL)

    def dispose(self):
        """Unmount: drop the timer without reporting a close."""
        self._disarm()
        self.is_open = False
        self._listeners.clear()
