"""
Error taxonomy for the IdLE Engine.

Plan-build errors (validation, security, capability, session) are raised to
the caller before any side effect happens. Step-level errors are raised by
handlers and captured into the step result by the executor.
"""

from typing import Any, Dict, Optional


class IdleEngineError(Exception):
    """Base class for all engine errors.

    Every error carries a human-readable message and a structured ``detail``
    dictionary with enough context to reconstruct what happened.
    """

    error_code: str = "engine_error"
    transient: bool = False

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error_code": self.error_code, "message": self.message, "detail": self.detail}


class WorkflowValidationError(IdleEngineError):
    """Malformed workflow, condition or request."""
    error_code = "validation_error"

    def __init__(self, message: str, *, errors: Optional[list] = None,
                 detail: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, detail=detail)
        self.errors = list(errors or [message])
        self.detail.setdefault("errors", self.errors)


class SecurityViolationError(IdleEngineError):
    """Executable content found where only data is allowed."""
    error_code = "security_violation"

    def __init__(self, message: str, *, path: str = "") -> None:
        super().__init__(message, detail={"path": path})
        self.path = path


class CapabilityError(IdleEngineError):
    """Steps require capabilities no configured provider advertises."""
    error_code = "capability_error"

    def __init__(self, missing, affected_steps, available) -> None:
        self.missing = sorted(missing)
        self.affected_steps = list(affected_steps)
        self.available = sorted(available)
        message = (
            f"Missing required provider capabilities: {', '.join(self.missing)}. "
            f"Affected steps: {', '.join(self.affected_steps)}. "
            f"Available capabilities: {', '.join(self.available) or '(none)'}."
        )
        super().__init__(message, detail={
            "missing_capabilities": self.missing,
            "affected_steps": self.affected_steps,
            "available_capabilities": self.available,
        })


class DispatchError(IdleEngineError):
    """No handler is registered for a step type."""
    error_code = "dispatch_error"


class StepError(IdleEngineError):
    """A step handler failed. Not retried."""
    error_code = "step_error"


class TransientStepError(StepError):
    """A step handler failed in a way the handler considers retryable."""
    error_code = "transient_step_error"
    transient = True


class SessionError(IdleEngineError):
    """Auth session could not be resolved."""
    error_code = "session_error"


class NoDefaultSessionError(SessionError):
    error_code = "no_default_session"


class NoMatchingSessionError(SessionError):
    error_code = "no_matching_session"


class AmbiguousSessionError(SessionError):
    error_code = "ambiguous_session"


class InvalidSessionDescriptorError(SessionError):
    error_code = "invalid_session_descriptor"


def is_transient(error: BaseException) -> bool:
    """Return True when a handler explicitly tagged the error as retryable."""
    return getattr(error, "transient", False) is True


# Errors that abort plan building; the API maps these to 400 responses.
PLAN_BUILD_ERRORS = (WorkflowValidationError, SecurityViolationError, CapabilityError, SessionError)
