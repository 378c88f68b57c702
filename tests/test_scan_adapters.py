import sys
import os
import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import requests

sys.path.append(os.getcwd())

from pyreportal.core.exceptions import BridgeUnavailable
from pyreportal.core.models import ScannerStatus
from pyreportal.core.tags import DEFAULT_MOCK_TAGS
from pyreportal.services.scanner.adapters import (
    ERROR_HARDWARE,
    ERROR_TIMEOUT,
    ERROR_UNAVAILABLE,
    HardwareScanAdapter,
    MockScanAdapter,
    select_scan_adapter,
)
from pyreportal.services.scanner.bridge import DEV_PLATFORM, DeviceBridge, poll_scanner_status


async def run_inline(func, *args, **kwargs):
    return func(*args, **kwargs)


def kiosk_status(available=True):
    return ScannerStatus(available=available, platform="Linux ARM")


class TestDeviceBridge(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.session = MagicMock()
        self.bridge = DeviceBridge("http://127.0.0.1:7777/", enabled=True, timeout=3, session=self.session)
        self.patcher = patch('pyreportal.services.scanner.bridge.io_bound', side_effect=run_inline)
        self.patcher.start()

    def tearDown(self):
        self.patcher.stop()

    async def test_unconfigured_bridge_is_unavailable(self):
        for bridge in (DeviceBridge(""), DeviceBridge("http://127.0.0.1:7777", enabled=False)):
            self.assertFalse(bridge.available)
            with self.assertRaises(BridgeUnavailable):
                await bridge.scan_once()

    async def test_invoke_posts_command(self):
        self.session.post.return_value.json.return_value = {"success": True, "tag_id": "04:A7:B3"}
        result = await self.bridge.scan_once()
        self.assertEqual(result["tag_id"], "04:A7:B3")
        self.session.post.assert_called_once_with(
            "http://127.0.0.1:7777/invoke/scan_rfid_single", json={}, timeout=3)

    async def test_scanner_status(self):
        self.session.post.return_value.json.return_value = {"is_available": True, "platform": "Linux ARM"}
        status = await self.bridge.get_scanner_status()
        self.assertTrue(status.available)
        self.assertEqual(status.platform, "Linux ARM")

    async def test_poll_without_bridge_reports_development(self):
        status = await poll_scanner_status(DeviceBridge(""))
        self.assertFalse(status.available)
        self.assertEqual(status.platform, DEV_PLATFORM)

    async def test_poll_unreachable_bridge_reports_development(self):
        self.session.post.side_effect = requests.ConnectionError("refused")
        status = await poll_scanner_status(self.bridge)
        self.assertFalse(status.available)
        self.assertEqual(status.platform, DEV_PLATFORM)

    async def test_poll_http_error_keeps_kiosk_platform(self):
        self.session.post.return_value.raise_for_status.side_effect = requests.HTTPError("500")
        status = await poll_scanner_status(self.bridge)
        self.assertFalse(status.available)
        self.assertNotEqual(status.platform, DEV_PLATFORM)


class TestHardwareScanAdapter(unittest.IsolatedAsyncioTestCase):
    def make_adapter(self, scan_once, timeout=0.05, available=True):
        bridge = MagicMock()
        bridge.scan_once = scan_once
        return HardwareScanAdapter(bridge, kiosk_status(available), timeout_seconds=timeout)

    async def test_successful_scan(self):
        adapter = self.make_adapter(AsyncMock(return_value={"success": True, "tag_id": "04:A7:B3", "error": None}))
        outcome = await adapter.begin_scan()
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.tag_id, "04:A7:B3")

    async def test_bound_elapses_without_cancelling_bridge_call(self):
        finished = asyncio.Event()

        async def slow_scan():
            await asyncio.sleep(0.15)
            finished.set()
            return {"success": True, "tag_id": "04:A7:B3"}

        adapter = self.make_adapter(slow_scan)
        outcome = await adapter.begin_scan()
        self.assertEqual(outcome.error_kind, ERROR_TIMEOUT)
        self.assertIsNone(outcome.tag_id)

        await asyncio.wait_for(finished.wait(), timeout=1.0)
        self.assertTrue(finished.is_set())

    async def test_bridge_error_messages(self):
        adapter = self.make_adapter(AsyncMock(return_value={"success": False, "error": "No card detected"}))
        self.assertEqual((await adapter.begin_scan()).error_kind, ERROR_TIMEOUT)

        adapter = self.make_adapter(AsyncMock(return_value={"success": False, "error": "SPI read failed"}))
        outcome = await adapter.begin_scan()
        self.assertEqual(outcome.error_kind, ERROR_HARDWARE)
        self.assertEqual(outcome.error, "SPI read failed")

    async def test_bridge_gone_mid_session(self):
        adapter = self.make_adapter(AsyncMock(side_effect=BridgeUnavailable("gone")))
        self.assertEqual((await adapter.begin_scan()).error_kind, ERROR_UNAVAILABLE)

    async def test_http_failure_is_hardware_error(self):
        adapter = self.make_adapter(AsyncMock(side_effect=requests.Timeout("read timeout")))
        self.assertEqual((await adapter.begin_scan()).error_kind, ERROR_HARDWARE)

    def test_readiness_follows_status(self):
        self.assertTrue(self.make_adapter(AsyncMock(), available=True).is_ready)
        self.assertFalse(self.make_adapter(AsyncMock(), available=False).is_ready)


class TestMockScanAdapter(unittest.IsolatedAsyncioTestCase):
    async def test_latency_window_and_tag_pool(self):
        adapter = MockScanAdapter(seed=7)
        with patch('pyreportal.services.scanner.adapters.asyncio.sleep', new_callable=AsyncMock) as sleep:
            outcome = await adapter.begin_scan()
        delay = sleep.await_args.args[0]
        self.assertGreaterEqual(delay, 2.0)
        self.assertLessEqual(delay, 3.0)
        self.assertIn(outcome.tag_id, DEFAULT_MOCK_TAGS)
        self.assertTrue(adapter.is_ready)

    async def test_seed_makes_sequence_reproducible(self):
        a = MockScanAdapter(latency=(0.0, 0.001), seed=42)
        b = MockScanAdapter(latency=(0.0, 0.001), seed=42)
        tags_a = [(await a.begin_scan()).tag_id for _ in range(5)]
        tags_b = [(await b.begin_scan()).tag_id for _ in range(5)]
        self.assertEqual(tags_a, tags_b)

    async def test_error_rate(self):
        adapter = MockScanAdapter(latency=(0.0, 0.0), error_rate=1.0, seed=1)
        outcome = await adapter.begin_scan()
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error_kind, ERROR_HARDWARE)

    async def test_custom_pool(self):
        adapter = MockScanAdapter(tags=["DEV_TAG_001"], latency=(0.0, 0.0))
        self.assertEqual((await adapter.begin_scan()).tag_id, "DEV_TAG_001")


class TestSelectScanAdapter(unittest.TestCase):
    def test_development_context_gets_mock(self):
        bridge = DeviceBridge("")
        status = ScannerStatus(available=False, platform=DEV_PLATFORM)
        adapter = select_scan_adapter(bridge, status, {"mock_seed": 3})
        self.assertIsInstance(adapter, MockScanAdapter)
        self.assertTrue(adapter.is_ready)

    def test_kiosk_gets_hardware_even_when_unavailable(self):
        bridge = DeviceBridge("http://127.0.0.1:7777", enabled=True)
        adapter = select_scan_adapter(bridge, kiosk_status(available=False), {"scan_timeout_seconds": 8})
        self.assertIsInstance(adapter, HardwareScanAdapter)
        self.assertFalse(adapter.is_ready)
        self.assertEqual(adapter.timeout_seconds, 8.0)

    def test_disabled_rfid_gets_mock(self):
        bridge = DeviceBridge("http://127.0.0.1:7777", enabled=False)
        adapter = select_scan_adapter(bridge, kiosk_status(), {"mock_rfid_tags": ["A1"]})
        self.assertIsInstance(adapter, MockScanAdapter)
        self.assertEqual(adapter.tags, ["A1"])


if __name__ == '__main__':
    unittest.main()
