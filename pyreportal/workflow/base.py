import logging
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from pyreportal.core.config_manager import SCAN_MODAL_MARGIN_SECONDS
from pyreportal.core.exceptions import ScanHardwareError, ScannerUnavailable, ScanTimeout, WorkflowError
from pyreportal.core.modal_timeout import CloseCause, ModalTimeoutController
from pyreportal.core.models import Operator
from pyreportal.core.session import Phase, ScanSession
from pyreportal.core.tags import validate_tag
from pyreportal.core.user_actions import log_user_action
from pyreportal.services.scanner.adapters import ERROR_TIMEOUT, ERROR_UNAVAILABLE, ScanAdapter, ScanOutcome

logger = logging.getLogger(__name__)

HOME_ROUTE = "/"


class ScanDrivenWorkflow:
    """
    Shared scan handling for the kiosk workflows.

    Owns the scan modal and the error modal, and guarantees that only one scan
    is outstanding per session. Subclasses implement `_after_scan` to decide
    what a scanned tag means.
    """

    START_PHASES: FrozenSet[Phase] = frozenset({Phase.IDLE, Phase.FAILED, Phase.SUCCEEDED})
    name = "scan"

    def __init__(self, adapter: ScanAdapter, client, operator: Optional[Operator] = None,
                 settings: Optional[Dict[str, Any]] = None, exit_route: str = HOME_ROUTE):
        self.adapter = adapter
        self.client = client
        self.operator = operator
        self.settings = settings or {}
        self.exit_route = exit_route
        self.session = self._new_session()

        self._scan_in_flight = False
        self._generation = 0
        self._listeners: List[Callable[["ScanDrivenWorkflow"], Any]] = []

        self.scan_modal = ModalTimeoutController(f"{self.name}-scan", on_close=self._on_scan_modal_closed)
        self.error_modal = ModalTimeoutController(f"{self.name}-error", on_close=self._on_error_modal_closed)

    def _new_session(self) -> ScanSession:
        return ScanSession()

    # Settings

    @property
    def auth_token(self) -> Optional[str]:
        return self.operator.pin if self.operator else None

    @property
    def scan_modal_timeout_ms(self) -> int:
        seconds = self.settings.get("scan_modal_timeout_seconds")
        if seconds is None:
            seconds = float(self.settings.get("scan_timeout_seconds", 10.0)) + SCAN_MODAL_MARGIN_SECONDS
        return int(float(seconds) * 1000)

    @property
    def error_modal_timeout_ms(self) -> int:
        return int(self.settings.get("error_modal_timeout_ms", 3000))

    @property
    def strict_tags(self) -> bool:
        return bool(self.settings.get("strict_tag_format", False))

    # Listeners

    def add_listener(self, callback: Callable[["ScanDrivenWorkflow"], Any]):
        self._listeners.append(callback)

    def _notify(self):
        for cb in list(self._listeners):
            try:
                cb(self)
            except Exception as e:
                logger.error(f"Workflow listener failed: {e}")

    # Scanning

    @property
    def phase(self) -> Phase:
        return self.session.phase

    @property
    def scan_in_flight(self) -> bool:
        return self._scan_in_flight

    @property
    def can_start_scan(self) -> bool:
        return not self._scan_in_flight and self.session.phase in self.START_PHASES

    async def start_scan(self) -> bool:
        """
        Runs one scan to completion, including whatever `_after_scan` does with
        the tag. Returns False when the call was ignored because a scan is
        already outstanding or the phase does not allow scanning.
        """
        if not self.can_start_scan:
            logger.debug(f"Ignoring start_scan in phase {self.session.phase.value} "
                         f"(scan in flight: {self._scan_in_flight})")
            return False

        self.session.clear()
        self.error_modal.close(CloseCause.MANUAL)

        if not self.adapter.is_ready:
            self._fail(ScannerUnavailable("Scanner reported unavailable"))
            return True

        self._generation += 1
        generation = self._generation
        self._scan_in_flight = True
        self.session.phase = Phase.SCANNING
        log_user_action("scan_started", workflow=self.name, mock=self.adapter.is_mock)
        self.scan_modal.open("scanning", auto_close_ms=self.scan_modal_timeout_ms)
        self._notify()

        try:
            outcome = await self.adapter.begin_scan()
            if generation != self._generation:
                logger.info(f"Discarding scan result after the scan was dismissed: {outcome}")
                return True
            self.scan_modal.close(CloseCause.MANUAL)
            await self._handle_outcome(outcome, generation)
        finally:
            self._scan_in_flight = False
            self._notify()
        return True

    async def _handle_outcome(self, outcome: ScanOutcome, generation: int):
        if not outcome.ok:
            if outcome.error_kind == ERROR_TIMEOUT:
                self._fail(ScanTimeout(outcome.error or ""))
            elif outcome.error_kind == ERROR_UNAVAILABLE:
                self._fail(ScannerUnavailable(outcome.error or ""))
            else:
                self._fail(ScanHardwareError(outcome.error or ""))
            return

        try:
            tag_id = validate_tag(outcome.tag_id, strict=self.strict_tags)
        except ValueError as e:
            self._fail(ScanHardwareError(str(e)))
            return

        self.session.scanned_tag = tag_id
        log_user_action("tag_scanned", workflow=self.name, tag=tag_id)
        await self._after_scan(tag_id, generation)

    async def _after_scan(self, tag_id: str, generation: int):
        raise NotImplementedError

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _on_scan_modal_closed(self, cause: CloseCause):
        if cause == CloseCause.MANUAL or self.session.phase != Phase.SCANNING:
            return
        # Whatever the adapter delivers from here on is stale
        self._generation += 1
        if cause == CloseCause.TIMEOUT:
            self._fail(ScanTimeout("Scan modal timed out"))
        else:
            log_user_action("scan_cancelled", workflow=self.name, cause=cause.value)
            self.session.clear()
            self.session.phase = Phase.IDLE
            self._notify()

    # Errors

    def _fail(self, error: WorkflowError):
        self.session.phase = Phase.FAILED
        self._report(error)

    def _report(self, error: WorkflowError):
        """Shows an error without changing the phase."""
        self.session.error = error
        logger.error(f"{self.name} workflow error [{error.kind}]: {error.detail or error.user_message}")
        self.error_modal.open(error.user_message, auto_close_ms=self.error_modal_timeout_ms)
        self._notify()

    def _on_error_modal_closed(self, cause: CloseCause):
        self._notify()

    # Leaving

    def reset(self):
        self._generation += 1
        self.scan_modal.close(CloseCause.CANCEL)
        self.error_modal.close(CloseCause.MANUAL)
        self.session = self._new_session()
        self._notify()

    def abandon(self) -> str:
        """Drops the session. Returns the route to navigate to."""
        log_user_action("workflow_abandoned", workflow=self.name, phase=self.session.phase.value)
        self.reset()
        return self.exit_route

    def dispose(self):
        """Unmount: stop timers, ignore any late result."""
        self._generation += 1
        self.scan_modal.dispose()
        self.error_modal.dispose()
        self._listeners.clear()
