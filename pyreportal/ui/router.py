from nicegui import ui
from typing import Any, Awaitable, Callable, Dict, Optional, Union
import inspect
import logging

logger = logging.getLogger(__name__)

ScreenBuilder = Callable[[Optional[Dict[str, Any]]], Union[None, Awaitable[None]]]


class ScreenRouter:
    """
    Swaps screens inside one page. The payload is handed to the next screen
    explicitly; nothing survives a browser refresh.
    """

    def __init__(self):
        self.container = ui.column().classes('w-full h-full')
        self.screens: Dict[str, ScreenBuilder] = {}
        self.current: Optional[str] = None

    def register(self, name: str, builder: ScreenBuilder):
        self.screens[name] = builder

    async def go(self, name: str, payload: Optional[Dict[str, Any]] = None):
        if name not in self.screens:
            raise KeyError(f"Unknown screen: {name}")
        logger.info(f"Navigating {self.current} -> {name} (payload keys: {sorted(payload or {})})")
        self.current = name
        self.container.clear()
        with self.container:
            result = self.screens[name](payload)
            if inspect.isawaitable(result):
                await result
