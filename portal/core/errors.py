"""
Error taxonomy for the eligibility and academic-year reset core.

Every error carries a user-facing message. The HTTP layer maps each class
to a status code (see portal.main); services never raise HTTPException.

- ValidationError       400  malformed input, no state change
- AuthenticationError   401  password re-verification failed, no state change
- AuthorityError        403  actor lacks rights over a range, no state change
- RangeNotFoundError    404
- InvalidTransitionError 409 reset wizard step called out of order
- ResetInProgressError  409  another reset holds the reset lock
- TransactionError      500  reset transaction rolled back completely
- AuditWriteError       500  audit entry could not be written
- ExternalCleanupError  never raised to callers, collected into CleanupSummary
"""


class PortalError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    status_code = 400


class AuthenticationError(PortalError):
    status_code = 401


class AuthorityError(PortalError):
    status_code = 403


class RangeNotFoundError(PortalError):
    status_code = 404

    def __init__(self, range_id: int):
        super().__init__(f"PRN range {range_id} not found")
        self.range_id = range_id


class InvalidTransitionError(PortalError):
    status_code = 409


class ResetInProgressError(PortalError):
    status_code = 409

    def __init__(self):
        super().__init__("An academic year reset is already in progress. Try again once it has finished.")


class TransactionError(PortalError):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(
            "Academic year reset failed. All database changes have been rolled back; no changes were made."
        )
        self.detail = detail


class AuditWriteError(PortalError):
    status_code = 500


class ExternalCleanupError(PortalError):
    """Failure deleting one asset or folder on the external host."""

    def __init__(self, reference: str, reason: str):
        super().__init__(f"Failed to delete {reference}: {reason}")
        self.reference = reference
        self.reason = reason
