import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from pyreportal.core.config_manager import get_mock_tags
from pyreportal.core.exceptions import BridgeUnavailable
from pyreportal.core.models import ScannerStatus
from pyreportal.core.tags import DEFAULT_MOCK_TAGS
from pyreportal.services.scanner.bridge import DEV_PLATFORM, DeviceBridge

logger = logging.getLogger(__name__)

DEFAULT_SCAN_TIMEOUT = 10.0

ERROR_TIMEOUT = "timeout"
ERROR_HARDWARE = "hardware"
ERROR_UNAVAILABLE = "unavailable"

_TIMEOUT_MARKERS = ("timeout", "timed out", "no card detected")


@dataclass
class ScanOutcome:
    """Exactly one of `tag_id` / `error` is set."""
    tag_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.tag_id is not None

    @classmethod
    def failure(cls, kind: str, message: str) -> "ScanOutcome":
        return cls(error=message, error_kind=kind)


class ScanAdapter:
    is_mock = False

    @property
    def is_ready(self) -> bool:
        return True

    async def begin_scan(self) -> ScanOutcome:
        raise NotImplementedError


class HardwareScanAdapter(ScanAdapter):
    def __init__(self, bridge: DeviceBridge, status: ScannerStatus, timeout_seconds: float = DEFAULT_SCAN_TIMEOUT):
        self.bridge = bridge
        self.status = status
        self.timeout_seconds = timeout_seconds

    @property
    def is_ready(self) -> bool:
        return self.status.available

    async def begin_scan(self) -> ScanOutcome:
        # shield: the bridge call keeps running after the bound elapses
        task = asyncio.ensure_future(self.bridge.scan_once())
        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            task.add_done_callback(_consume_late_result)
            logger.warning(f"Hardware scan gave no result within {self.timeout_seconds}s")
            return ScanOutcome.failure(ERROR_TIMEOUT, f"No tag within {self.timeout_seconds}s")
        except BridgeUnavailable as e:
            return ScanOutcome.failure(ERROR_UNAVAILABLE, str(e))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Hardware scan failed: {e}")
            return ScanOutcome.failure(ERROR_HARDWARE, str(e))
        return _outcome_from_bridge(result)


def _outcome_from_bridge(result: Dict[str, Any]) -> ScanOutcome:
    if result.get("success") and result.get("tag_id"):
        return ScanOutcome(tag_id=result["tag_id"])
    message = result.get("error") or "Unknown scanner error"
    if any(marker in message.lower() for marker in _TIMEOUT_MARKERS):
        return ScanOutcome.failure(ERROR_TIMEOUT, message)
    return ScanOutcome.failure(ERROR_HARDWARE, message)


def _consume_late_result(task: asyncio.Future):
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Late bridge scan failed after timeout: {exc}")
    else:
        logger.debug(f"Discarding late bridge scan result: {task.result()}")


class MockScanAdapter(ScanAdapter):
    """Development stand-in: returns a random tag from a pool after a short delay."""
    is_mock = True

    def __init__(self, tags: Sequence[str] = (), latency: Sequence[float] = (2.0, 3.0),
                 error_rate: float = 0.0, seed: Optional[int] = None):
        self.tags: List[str] = list(tags) or list(DEFAULT_MOCK_TAGS)
        self.latency = (min(latency), max(latency))
        self.error_rate = error_rate
        self.rng = random.Random(seed)

    async def begin_scan(self) -> ScanOutcome:
        delay = self.rng.uniform(*self.latency)
        await asyncio.sleep(delay)
        if self.error_rate and self.rng.random() < self.error_rate:
            return ScanOutcome.failure(ERROR_HARDWARE, "Simulated read error")
        tag_id = self.rng.choice(self.tags)
        logger.info(f"Mock scan returned {tag_id} after {delay:.2f}s")
        return ScanOutcome(tag_id=tag_id)


def select_scan_adapter(bridge: Optional[DeviceBridge], status: ScannerStatus,
                        settings: Dict[str, Any]) -> ScanAdapter:
    """
    Chooses the adapter once per session. A kiosk whose bridge answered gets
    the hardware adapter even when the reader reports unavailable, so the
    operator sees the scanner error instead of fake tags.
    """
    if bridge is not None and bridge.available and status.platform != DEV_PLATFORM:
        return HardwareScanAdapter(
            bridge, status,
            timeout_seconds=float(settings.get("scan_timeout_seconds", DEFAULT_SCAN_TIMEOUT)),
        )

    logger.info("Using mock RFID scanner")
    return MockScanAdapter(
        tags=get_mock_tags(settings),
        latency=settings.get("mock_scan_latency_seconds") or (2.0, 3.0),
        error_rate=float(settings.get("mock_error_rate", 0.0)),
        seed=settings.get("mock_seed"),
    )
