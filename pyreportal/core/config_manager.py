import os
import copy
import json
import logging
from typing import Any, Dict, List, Optional

from pyreportal.core.models import Operator
from pyreportal.core.tags import DEFAULT_MOCK_TAGS

logger = logging.getLogger(__name__)

DATA_DIR = os.path.join(os.getcwd(), "data")
CONFIG_FILE = os.path.join(DATA_DIR, "config.json")

ENV_PREFIX = "PYREPORTAL_"

# Head start of the scan modal over the hardware scan bound
SCAN_MODAL_MARGIN_SECONDS = 2.0

DEFAULT_CONFIG: Dict[str, Any] = {
    "api_base_url": "http://localhost:8080",
    "device_api_key": "",
    "request_timeout_seconds": 10.0,

    # Scanner
    "enable_rfid": False,
    "rfid_bridge_url": "",
    "scan_timeout_seconds": 10.0,
    "scan_modal_timeout_seconds": 12.0,
    "mock_rfid_tags": list(DEFAULT_MOCK_TAGS),
    "mock_scan_latency_seconds": [2.0, 3.0],
    "mock_seed": None,
    "mock_error_rate": 0.0,
    "strict_tag_format": False,

    # UI
    "error_modal_timeout_ms": 3000,
    "success_modal_timeout_ms": 3000,
    "roster_page_size": 10,

    # Operator (no login screen on the kiosk)
    "operator_pin": "",
    "operator_staff_id": None,
    "operator_name": "",
    "supervisor_ids": [],

    "log_level": "INFO",
}

_BOOL_TRUE = {"1", "true", "yes", "on"}


def _coerce(key: str, raw: str) -> Any:
    default = DEFAULT_CONFIG.get(key)
    if isinstance(default, bool):
        return raw.strip().lower() in _BOOL_TRUE
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, list):
        parts = [p.strip() for p in raw.split(",") if p.strip()]
        if key == "mock_scan_latency_seconds":
            return [float(p) for p in parts]
        if key == "supervisor_ids":
            return [int(p) for p in parts]
        return parts
    if key in ("mock_seed", "operator_staff_id"):
        return int(raw) if raw.strip() else None
    return raw


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    for key in DEFAULT_CONFIG:
        env_key = ENV_PREFIX + key.upper()
        if env_key in os.environ:
            try:
                config[key] = _coerce(key, os.environ[env_key])
            except ValueError as e:
                logger.error(f"Ignoring invalid value for {env_key}: {e}")
    return config


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads the kiosk configuration.
    Defaults < data/config.json < PYREPORTAL_* environment variables.
    """
    path = path or CONFIG_FILE
    config = copy.deepcopy(DEFAULT_CONFIG)

    if os.path.exists(path):
        try:
            with open(path, 'r', encoding='utf-8') as f:
                stored = json.load(f)
            if isinstance(stored, dict):
                config.update({k: v for k, v in stored.items() if k in DEFAULT_CONFIG})
            else:
                logger.warning(f"Config file {path} is not a JSON object, using defaults")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read config file {path}: {e}")

    config = _apply_env_overrides(config)
    return _normalise(config)


def _normalise(config: Dict[str, Any]) -> Dict[str, Any]:
    # The scan modal must never give up before the bridge does
    if config["scan_modal_timeout_seconds"] <= config["scan_timeout_seconds"]:
        raised = config["scan_timeout_seconds"] + SCAN_MODAL_MARGIN_SECONDS
        logger.warning(
            f"scan_modal_timeout_seconds ({config['scan_modal_timeout_seconds']}) does not exceed "
            f"scan_timeout_seconds ({config['scan_timeout_seconds']}), raising it to {raised}"
        )
        config["scan_modal_timeout_seconds"] = raised

    latency = config.get("mock_scan_latency_seconds") or [2.0, 3.0]
    if len(latency) == 1:
        latency = [latency[0], latency[0]]
    low, high = float(latency[0]), float(latency[1])
    config["mock_scan_latency_seconds"] = [min(low, high), max(low, high)]

    if config.get("roster_page_size", 0) < 1:
        config["roster_page_size"] = DEFAULT_CONFIG["roster_page_size"]
    return config


def save_config(config: Dict[str, Any], path: Optional[str] = None):
    path = path or CONFIG_FILE
    os.makedirs(os.path.dirname(path), exist_ok=True)
    content = {k: v for k, v in config.items() if k in DEFAULT_CONFIG}
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(content, f, indent=2)


def get_mock_tags(config: Dict[str, Any]) -> List[str]:
    tags = config.get("mock_rfid_tags") or []
    return list(tags) or list(DEFAULT_MOCK_TAGS)


def get_operator(config: Dict[str, Any]) -> Optional[Operator]:
    """Returns the configured operator, or None when no PIN is set."""
    pin = config.get("operator_pin")
    staff_id = config.get("operator_staff_id")
    if not pin or staff_id is None:
        return None
    return Operator(
        pin=str(pin),
        staff_id=int(staff_id),
        name=config.get("operator_name", ""),
        supervisor_ids=list(config.get("supervisor_ids") or []),
    )
