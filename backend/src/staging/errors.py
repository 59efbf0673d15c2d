"""Error taxonomy for staging and commit.

Every error carries the session it concerns and the operation id of the
request or task that raised it, so a caller can quote both when reporting.
"""

from typing import List, Optional

from observability.request_id import get_operation_id


class StagingError(Exception):
    """Base exception for draft staging and commit."""

    error_code = "staging_error"
    http_status = 400

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        operation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.operation_id = operation_id or get_operation_id()

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "field": None,
            "session_id": self.session_id,
            "operation_id": self.operation_id,
        }


class ValidationError(StagingError):
    """Bad input or a failed business rule, tagged with its field path."""

    error_code = "validation_error"
    http_status = 422

    def __init__(self, message: str, field: str, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["field"] = self.field
        return data

    def __repr__(self):
        return f"<ValidationError(field={self.field!r}, message={self.message!r})>"


class DraftValidationError(StagingError):
    """Aggregate of every rule violation found in a draft."""

    error_code = "draft_invalid"
    http_status = 422

    def __init__(self, errors: List[ValidationError], **kwargs):
        fields = ", ".join(e.field for e in errors)
        super().__init__(f"Draft failed {len(errors)} business rule(s): {fields}", **kwargs)
        self.errors = list(errors)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = [{"field": e.field, "message": e.message} for e in self.errors]
        return data


class ConflictError(StagingError):
    """State conflict: stale price, duplicate record, held lock or wrong state."""

    error_code = "conflict"
    http_status = 409

    REASONS = ("stale_price", "duplicate", "lock", "state")

    def __init__(self, message: str, reason: str, **kwargs):
        if reason not in self.REASONS:
            raise ValueError(f"Unknown conflict reason: {reason}")
        super().__init__(message, **kwargs)
        self.reason = reason

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class NotFoundError(StagingError):
    """Session absent, expired, or owned by someone else."""

    error_code = "not_found"
    http_status = 404


class BackendError(StagingError):
    """Failure talking to the durable backend."""

    error_code = "backend_error"
    http_status = 502


class TransientBackendError(BackendError):
    """Timeout, connection failure, throttling or 5xx. Safe to retry."""

    error_code = "backend_unavailable"
    http_status = 503


class FatalBackendError(BackendError):
    """Backend rejected the call; retrying will not help."""

    error_code = "backend_rejected"
    http_status = 502


class OrphanRecordWarning(UserWarning):
    """A compensating delete failed and the record was left behind.

    Reported through logs, metrics and the orphan quarantine. Never raised.
    """

    def __init__(self, record_id: str, record_type: str, session_id: str, reason: str):
        super().__init__(
            f"Orphan {record_type} record {record_id} left by session {session_id}: {reason}"
        )
        self.record_id = record_id
        self.record_type = record_type
        self.session_id = session_id
        self.reason = reason
