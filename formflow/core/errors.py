"""Error taxonomy for the approval engine.

Every error carries a machine-readable ``code`` and the HTTP-style
``status_code`` a caller boundary should map it to.
"""

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base class for all engine errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(WorkflowError):
    """Raised when input or current state does not permit the operation."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(WorkflowError):
    """Raised when a workflow, instance or approval does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(WorkflowError):
    """Raised when a uniqueness rule would be violated."""

    code = "CONFLICT"
    status_code = 409


class TransitionError(ValidationError):
    """Raised when a state transition is invalid."""

    def __init__(self, message: str, from_state, action):
        super().__init__(message)
        self.from_state = from_state
        self.action = action


def to_error_response(exc: Exception) -> Dict[str, Any]:
    """
    Render an exception as a response body.

    Unknown exceptions are reported as a generic internal error so that
    nothing about the failure leaks to the caller.

    Returns:
        Dict with ``status_code`` and ``body`` keys
    """
    if isinstance(exc, WorkflowError):
        return {
            "status_code": exc.status_code,
            "body": {
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "details": exc.details,
                },
            },
        }

    return {
        "status_code": 500,
        "body": {
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        },
    }
