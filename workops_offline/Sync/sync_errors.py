# sync_errors.py
# Description: Cycle- and record-level errors raised by the sync engine.
#
# Imports
from typing import Optional
#
# Local Imports
from workops_offline.workops_api.exceptions import APIConnectionError, APIResponseError, AuthenticationError
#
########################################################################################################################
#
# Functions:

class SyncError(Exception):
    """Base exception for sync engine errors."""
    pass


class TransientSyncError(SyncError):
    """A network or server failure that the next attempt may get past."""

    def __init__(self, message: str, entity: Optional[str] = None, record_id: Optional[str] = None):
        super().__init__(message)
        self.entity = entity
        self.record_id = record_id


class PullError(TransientSyncError):
    """The server refused or garbled a collection fetch."""
    pass


class ExhaustedRetriesError(SyncError):
    """Every attempt of a sync cycle failed."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        message = f"Sync failed after {attempts} attempt(s)"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


# Statuses worth another attempt; any other 4xx will fail the same way next time.
RETRYABLE_STATUS_CODES = frozenset({408, 429})


def is_transient_error(error: BaseException) -> bool:
    """True for network failures, 5xx answers and a few throttling statuses."""
    if isinstance(error, (TransientSyncError, APIConnectionError)):
        return True
    if isinstance(error, APIResponseError):
        return error.status_code >= 500 or error.status_code in RETRYABLE_STATUS_CODES
    return False


__all__ = ["SyncError", "TransientSyncError", "PullError", "ExhaustedRetriesError", "AuthenticationError",
           "is_transient_error"]

#
# End of sync_errors.py
########################################################################################################################
