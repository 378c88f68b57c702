import logging
from typing import Any, Dict, List, Optional

from pyreportal.core.exceptions import (
    ApiError,
    AssignmentCommitFailed,
    AssignmentLookupFailed,
    AuthMissing,
    InvalidSelection,
    RosterLoadFailed,
)
from pyreportal.core.modal_timeout import CloseCause, ModalTimeoutController
from pyreportal.core.models import AssignTagResult, Person
from pyreportal.core.roster import RosterFilter, available_groups
from pyreportal.core.session import NavigationState, Phase, WorkflowSession
from pyreportal.core.tags import is_valid_tag
from pyreportal.core.user_actions import log_user_action
from pyreportal.workflow.base import ScanDrivenWorkflow

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "This wristband or person already has a different assignment. Please check and try again."


class TagAssignmentWorkflow(ScanDrivenWorkflow):
    """
    Scan a wristband, show who owns it, pick a new owner, commit.

    One instance backs one screen. The scan screen and the roster screen each
    get their own instance and exchange state only through the navigation
    payload (`NavigationState`).
    """

    START_PHASES = frozenset({Phase.IDLE, Phase.SCANNED, Phase.FAILED, Phase.SUCCEEDED})
    name = "tag_assignment"
    session: WorkflowSession

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._lookup_in_flight = False
        self._commit_in_flight = False
        self._roster_loading = False
        self._in_selection = False
        self.roster_filter = RosterFilter()
        self.groups: List[str] = []
        self.success_modal = ModalTimeoutController(f"{self.name}-success", on_close=self._on_success_modal_closed)

    def _new_session(self) -> WorkflowSession:
        return WorkflowSession()

    @property
    def success_modal_timeout_ms(self) -> int:
        return int(self.settings.get("success_modal_timeout_ms", 3000))

    async def start_scan(self) -> bool:
        if self.can_start_scan:
            self.success_modal.close(CloseCause.MANUAL)
            self._in_selection = False
        return await super().start_scan()

    # Lookup

    async def _after_scan(self, tag_id: str, generation: int):
        await self._lookup(tag_id, generation)

    async def _lookup(self, tag_id: str, generation: int):
        if self._lookup_in_flight:
            logger.debug(f"Lookup for {tag_id} skipped, another lookup is running")
            return
        self._lookup_in_flight = True
        try:
            check = await self.client.check_tag_assignment(self.auth_token, tag_id)
        except AuthMissing as e:
            if self._is_current(generation):
                self._fail(e)
            return
        except ApiError as e:
            if self._is_current(generation):
                self._fail(AssignmentLookupFailed(str(e)))
            return
        finally:
            self._lookup_in_flight = False

        if not self._is_current(generation):
            logger.info(f"Discarding lookup result for {tag_id}, workflow moved on")
            return

        self.session.assignment_check = check
        self.session.phase = Phase.SCANNED
        owner = check.person.name if check.person else None
        logger.info(f"Tag {tag_id} is {check.state}" + (f" to {owner}" if owner else ""))
        self._notify()

    # Scan screen

    def _navigation_state(self, **extra) -> NavigationState:
        return NavigationState(
            scanned_tag=self.session.scanned_tag,
            tag_assignment=self.session.assignment_check,
            **extra,
        )

    def proceed_to_selection(self) -> Optional[Dict[str, Any]]:
        """SCANNED -> SELECTING_OWNER. Returns the payload for the roster screen."""
        if self.session.phase != Phase.SCANNED or self.session.assignment_check is None:
            logger.warning(f"proceed_to_selection ignored in phase {self.session.phase.value}")
            return None
        self.session.phase = Phase.SELECTING_OWNER
        self._in_selection = True
        log_user_action("person_selection_opened", tag=self.session.scanned_tag)
        self._notify()
        return self._navigation_state().to_payload()

    async def resume(self, payload: Any) -> bool:
        """
        Re-entry on the scan screen from a navigation payload. Never raises.
        Returns True when a tag was restored.
        """
        state = NavigationState.from_payload(payload)
        if state is None or not is_valid_tag(state.scanned_tag, strict=self.strict_tags):
            self.reset()
            return False

        self._generation += 1
        generation = self._generation
        self.session = self._new_session()
        self.session.scanned_tag = state.scanned_tag

        if state.tag_assignment is None:
            # Only the tag survived, ask the server once
            logger.info(f"Resuming with tag {state.scanned_tag} only, looking up assignment")
            await self._lookup(state.scanned_tag, generation)
            return True

        self.session.assignment_check = state.tag_assignment
        self.session.phase = Phase.SCANNED
        if state.assignment_success:
            # Back on the scan screen after a commit: same tag, confirmation on top
            self.session.person_name = state.person_name
            self.session.commit_result = AssignTagResult(success=True, previous_tag=state.previous_tag)
            self.success_modal.open(state.person_name, auto_close_ms=self.success_modal_timeout_ms)
        self._notify()
        return True

    async def scan_another(self) -> bool:
        if self.session.phase not in (Phase.FAILED, Phase.SUCCEEDED, Phase.SCANNED):
            return False
        self.success_modal.close(CloseCause.MANUAL)
        self.session = self._new_session()
        self._in_selection = False
        return await self.start_scan()

    def _on_success_modal_closed(self, cause: CloseCause):
        self._notify()

    # Roster screen

    def enter_selection(self, payload: Any) -> bool:
        """Rebuilds SELECTING_OWNER from the scan screen's payload. No scan, no lookup."""
        state = NavigationState.from_payload(payload)
        if state is None or not state.is_complete:
            logger.warning("Person selection opened without a scanned tag")
            return False
        self.session = self._new_session()
        self.session.scanned_tag = state.scanned_tag
        self.session.assignment_check = state.tag_assignment
        self.session.phase = Phase.SELECTING_OWNER
        self._in_selection = True
        self._notify()
        return True

    @property
    def selection_active(self) -> bool:
        # A failed commit leaves the roster on screen for a retry
        return self._in_selection and self.session.phase in (Phase.SELECTING_OWNER, Phase.FAILED)

    @property
    def roster_loading(self) -> bool:
        return self._roster_loading

    async def load_roster(self, filters: Optional[RosterFilter] = None) -> List[Person]:
        """Fetches the candidate pool. A filter change always clears the selection."""
        if not self.selection_active:
            return []
        self.roster_filter = filters or RosterFilter()
        self.session.selected_person_key = None
        teacher_ids = self.operator.roster_teacher_ids if self.operator else None

        self._roster_loading = True
        self._notify()
        try:
            people = await self.client.list_roster(self.auth_token, self.roster_filter, teacher_ids=teacher_ids)
        except AuthMissing as e:
            self._report(e)
            return []
        except ApiError as e:
            self._report(RosterLoadFailed(str(e)))
            return []
        finally:
            self._roster_loading = False

        self.session.candidate_pool = people
        if self.roster_filter.is_empty:
            self.groups = available_groups(people)
        logger.info(f"Loaded {len(people)} candidates (filter={self.roster_filter})")
        self._notify()
        return people

    def select_person(self, key: str) -> Person:
        if not self.selection_active or self._commit_in_flight:
            raise InvalidSelection(f"Cannot select in phase {self.session.phase.value}")
        person = next((p for p in self.session.candidate_pool if p.key == key), None)
        if person is None:
            raise InvalidSelection(f"Unknown person key {key}")
        self.session.selected_person_key = key
        self.session.phase = Phase.SELECTING_OWNER
        log_user_action("person_selected", person=person.name, key=key)
        self._notify()
        return person

    @property
    def can_commit(self) -> bool:
        return (self.selection_active and not self._commit_in_flight
                and bool(self.session.scanned_tag) and self.session.selected_person is not None)

    async def commit(self) -> Optional[Dict[str, Any]]:
        """
        Assigns the scanned tag to the selected person. Returns the success
        payload for the scan screen, or None when ignored or failed.
        """
        if self._commit_in_flight or self.session.phase == Phase.COMMITTING:
            logger.debug("Ignoring commit while a commit is in flight")
            return None
        if not self.selection_active:
            logger.warning(f"commit ignored in phase {self.session.phase.value}")
            return None

        tag_id = self.session.scanned_tag
        person = self.session.selected_person
        if not tag_id or person is None:
            self._fail(InvalidSelection("Commit without tag or person"))
            return None
        if not self.auth_token:
            self._fail(AuthMissing("Commit without operator PIN"))
            return None

        self._commit_in_flight = True
        self.session.phase = Phase.COMMITTING
        self._notify()
        try:
            result = await self.client.assign_tag(self.auth_token, person, tag_id)
        except AuthMissing as e:
            self._fail(e)
            return None
        except ApiError as e:
            if e.status_code == 409:
                self._fail(AssignmentCommitFailed(str(e), user_message=CONFLICT_MESSAGE))
            else:
                self._fail(AssignmentCommitFailed(str(e)))
            return None
        finally:
            self._commit_in_flight = False

        if not result.success:
            self._fail(AssignmentCommitFailed(result.message or "Assignment rejected by server"))
            return None

        self.session.commit_result = result
        self.session.person_name = person.name
        self.session.phase = Phase.SUCCEEDED
        self.session.candidate_pool = []
        self.session.selected_person_key = None
        self._in_selection = False
        log_user_action("tag_assigned", tag=tag_id, person=person.name, previous_tag=result.previous_tag)
        self._notify()

        return self._navigation_state(
            assignment_success=True,
            person_name=person.name,
            previous_tag=result.previous_tag,
        ).to_payload()

    def back_to_scan(self) -> Optional[Dict[str, Any]]:
        """Returns the payload that restores SCANNED on the scan screen."""
        if not self.session.scanned_tag:
            return None
        self._in_selection = False
        self.session.phase = Phase.SCANNED
        self.session.candidate_pool = []
        self.session.selected_person_key = None
        self._notify()
        return self._navigation_state().to_payload()

    def reset(self):
        self.success_modal.close(CloseCause.MANUAL)
        self._in_selection = False
        super().reset()

    def dispose(self):
        self.success_modal.dispose()
        super().dispose()
