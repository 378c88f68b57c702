import sys
import os
import asyncio
import unittest
from unittest.mock import MagicMock

sys.path.append(os.getcwd())

from pyreportal.core.modal_timeout import CloseCause, ModalTimeoutController


class TestModalTimeoutController(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.causes = []
        self.modal = ModalTimeoutController("test", on_close=self.causes.append)

    async def test_auto_close_reports_timeout_once(self):
        self.modal.open("content", auto_close_ms=20)
        self.assertTrue(self.modal.timer_armed)
        await asyncio.sleep(0.08)
        self.assertFalse(self.modal.is_open)
        self.assertFalse(self.modal.timer_armed)
        self.assertEqual(self.causes, [CloseCause.TIMEOUT])

    async def test_no_timer_without_auto_close(self):
        self.modal.open("content")
        self.assertFalse(self.modal.timer_armed)
        await asyncio.sleep(0.03)
        self.assertTrue(self.modal.is_open)

    async def test_reopen_rearms_instead_of_stacking(self):
        self.modal.open("first", auto_close_ms=80)
        await asyncio.sleep(0.05)
        self.modal.open("second", auto_close_ms=80)
        await asyncio.sleep(0.05)
        # The first timer would have fired by now
        self.assertTrue(self.modal.is_open)
        self.assertEqual(self.modal.content, "second")
        await asyncio.sleep(0.08)
        self.assertFalse(self.modal.is_open)
        self.assertEqual(self.causes, [CloseCause.TIMEOUT])

    async def test_manual_close_disarms_timer(self):
        self.modal.open("content", auto_close_ms=30)
        self.assertTrue(self.modal.close())
        await asyncio.sleep(0.06)
        self.assertEqual(self.causes, [CloseCause.MANUAL])

    async def test_close_when_closed_is_noop(self):
        self.assertFalse(self.modal.close())
        self.modal.open("content")
        self.modal.close()
        self.assertFalse(self.modal.close())
        self.assertEqual(self.causes, [CloseCause.MANUAL])

    async def test_backdrop_and_escape_respect_options(self):
        self.modal.open("content", close_on_backdrop_click=False, close_on_escape=False)
        self.assertFalse(self.modal.backdrop_click())
        self.assertFalse(self.modal.escape())
        self.assertTrue(self.modal.is_open)
        self.assertEqual(self.causes, [])

        self.assertTrue(self.modal.cancel())
        self.assertEqual(self.causes, [CloseCause.CANCEL])

    async def test_escape_and_backdrop_causes(self):
        self.modal.open("a")
        self.modal.escape()
        self.modal.open("b")
        self.modal.backdrop_click()
        self.assertEqual(self.causes, [CloseCause.ESCAPE, CloseCause.BACKDROP])

    async def test_dispose_drops_timer_without_callback(self):
        listener = MagicMock()
        self.modal.add_listener(listener)
        self.modal.open("content", auto_close_ms=20)
        self.modal.dispose()
        await asyncio.sleep(0.05)
        self.assertEqual(self.causes, [])
        self.assertFalse(self.modal.is_open)
        listener.assert_called_once()

    async def test_listeners_see_open_and_close(self):
        states = []
        self.modal.add_listener(lambda m: states.append(m.is_open))
        self.modal.open("content")
        self.modal.close()
        self.assertEqual(states, [True, False])

    async def test_failing_listener_does_not_break_close(self):
        self.modal.add_listener(MagicMock(side_effect=RuntimeError("render failed")))
        self.modal.open("content")
        self.assertTrue(self.modal.close())
        self.assertEqual(self.causes, [CloseCause.MANUAL])


if __name__ == '__main__':
    unittest.main()
