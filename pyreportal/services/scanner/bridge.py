import logging
import platform
from typing import Any, Dict, Optional

import requests

from pyreportal.core.exceptions import BridgeUnavailable
from pyreportal.core.models import ScannerStatus
from pyreportal.services.io_utils import io_bound

logger = logging.getLogger(__name__)

DEV_PLATFORM = "Development (Web)"


class DeviceBridge:
    """
    Talks to the local bridge daemon that owns the RFID reader on the kiosk.

    Every command is a POST to `{url}/invoke/{command}` with the arguments as
    JSON body. Without a configured URL (development machine) or with RFID
    disabled the bridge is unavailable and every invoke raises
    BridgeUnavailable.
    """

    def __init__(self, url: str = "", enabled: bool = True, timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        self.url = (url or "").rstrip('/')
        self.enabled = enabled
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "DeviceBridge":
        # The HTTP timeout must outlast the scan bound or the scan always fails first
        timeout = float(config.get("scan_timeout_seconds", 10.0)) + 5.0
        return cls(url=config.get("rfid_bridge_url", ""),
                   enabled=bool(config.get("enable_rfid", False)),
                   timeout=timeout)

    @property
    def available(self) -> bool:
        return self.enabled and bool(self.url)

    def _post(self, command: str, args: Dict[str, Any]) -> Any:
        try:
            response = self.session.post(f"{self.url}/invoke/{command}", json=args, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.ConnectionError as e:
            raise BridgeUnavailable(f"Device bridge at {self.url} unreachable: {e}") from e

    async def invoke(self, command: str, **args) -> Any:
        if not self.available:
            raise BridgeUnavailable("No device bridge configured")
        logger.debug(f"Bridge invoke: {command} {args}")
        return await io_bound(self._post, command, args)

    async def get_scanner_status(self) -> ScannerStatus:
        data = await self.invoke("get_rfid_scanner_status")
        return ScannerStatus(
            available=bool(data.get("is_available", data.get("available", False))),
            platform=data.get("platform") or platform.system(),
            last_error=data.get("last_error"),
        )

    async def scan_once(self) -> Dict[str, Any]:
        """Returns the raw `{success, tag_id, error}` result of one blocking read."""
        return await self.invoke("scan_rfid_single")


async def poll_scanner_status(bridge: Optional[DeviceBridge]) -> ScannerStatus:
    """
    Polled once per session. Never raises: a bridge that cannot be reached is
    reported as an unavailable development platform.
    """
    if bridge is None or not bridge.available:
        return ScannerStatus(available=False, platform=DEV_PLATFORM,
                             last_error="No device bridge configured")
    try:
        return await bridge.get_scanner_status()
    except BridgeUnavailable as e:
        logger.warning(f"Scanner status unavailable: {e}")
        return ScannerStatus(available=False, platform=DEV_PLATFORM, last_error=str(e))
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Scanner status check failed: {e}")
        return ScannerStatus(available=False, platform=platform.system(), last_error=str(e))
