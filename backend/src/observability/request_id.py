"""Operation ID management for audit correlation.

Every HTTP request, Celery task and commit attempt runs under one operation
id. Errors returned to callers and every published event carry it, so a
single draft operation can be followed from the API through the audit log.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Context variable for operation_id (async-safe)
operation_id_var: ContextVar[Optional[str]] = ContextVar("operation_id", default=None)

NO_OPERATION_ID = "no-operation-id"


def generate_operation_id() -> str:
    """Generate a new unique operation ID (uuid4 string)."""
    return str(uuid.uuid4())


def get_operation_id() -> str:
    """Get current operation ID from context, or "no-operation-id"."""
    return operation_id_var.get() or NO_OPERATION_ID


def set_operation_id(operation_id: str) -> None:
    """Set operation ID in current context."""
    operation_id_var.set(operation_id)


@contextmanager
def operation_scope(operation_id: Optional[str] = None) -> Iterator[str]:
    """Run a block under an operation id, restoring the previous one after.

    Used by background tasks, which have no request middleware:

        with operation_scope(payload.get("operation_id")) as op_id:
            ...
    """
    op_id = operation_id or generate_operation_id()
    token = operation_id_var.set(op_id)
    try:
        yield op_id
    finally:
        operation_id_var.reset(token)
