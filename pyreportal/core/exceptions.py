from typing import Optional


class ApiError(Exception):
    """Raised by the service client when a request fails or the server answers non-2xx."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __str__(self):
        if self.status_code is not None:
            return f"API Error: {self.status_code} - {self.message}"
        return f"API Error: {self.message}"


class BridgeUnavailable(Exception):
    """The device bridge cannot be reached (non-kiosk context or bridge disabled)."""


class WorkflowError(Exception):
    """
    Base class for everything that ends a workflow attempt.

    `user_message` is what the operator sees. `detail` carries the technical
    reason and only ever goes to the log.
    """
    kind = "workflow_error"
    user_message = "Something went wrong. Please try again."

    def __init__(self, detail: str = "", user_message: Optional[str] = None):
        super().__init__(detail or self.user_message)
        self.detail = detail
        if user_message is not None:
            self.user_message = user_message


class ScannerUnavailable(WorkflowError):
    kind = "scanner_unavailable"
    user_message = "The RFID scanner is not available. Please check the reader and try again."


class ScanTimeout(WorkflowError):
    kind = "scan_timeout"
    user_message = "No wristband was detected. Please hold the wristband to the scanner and try again."


class ScanHardwareError(WorkflowError):
    kind = "scan_hardware_error"
    user_message = "The wristband could not be read. Please try again."


class AssignmentLookupFailed(WorkflowError):
    kind = "assignment_lookup_failed"
    user_message = "The wristband could not be checked. Please try again."


class AssignmentCommitFailed(WorkflowError):
    kind = "assignment_commit_failed"
    user_message = "The wristband could not be assigned. Please try again."


class InvalidSelection(WorkflowError):
    kind = "invalid_selection"
    user_message = "Please select a person."


class AuthMissing(WorkflowError):
    kind = "auth_missing"
    user_message = "No authenticated operator. Please log in again."


class RosterLoadFailed(WorkflowError):
    kind = "roster_load_failed"
    user_message = "The list of people could not be loaded."


class AttendanceFailed(WorkflowError):
    kind = "attendance_failed"
    user_message = "The attendance could not be updated. Please try again."
