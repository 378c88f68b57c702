import asyncio

from nicegui import run


async def io_bound(func, *args, **kwargs):
    """Runs blocking I/O off the event loop."""
    started = False

    def call():
        nonlocal started
        started = True
        return func(*args, **kwargs)

    try:
        return await run.io_bound(call)
    except RuntimeError:
        # A RuntimeError from the call itself must not trigger a second request
        if started:
            raise
        # Fallback for environments without NiceGUI event loop integration
        return await asyncio.to_thread(func, *args, **kwargs)
