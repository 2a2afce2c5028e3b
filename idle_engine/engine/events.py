"""
Event stream and execution context.

Each ``execute`` call owns one EventRecorder (append-only, strictly ordered)
and one ExecutionContext. Both are injected into handlers; neither is shared
across runs.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Dict, List, Optional

from ..errors import SessionError, StepError
from ..models import Event, Plan
from .redaction import redact_object, redact_text
from .security_guard import assert_no_executable_content

logger = logging.getLogger(__name__)

RUN_STARTED = "RunStarted"
RUN_COMPLETED = "RunCompleted"
STEP_STARTED = "StepStarted"
STEP_COMPLETED = "StepCompleted"
STEP_FAILED = "StepFailed"
STEP_NOT_APPLICABLE = "StepNotApplicable"
STEP_RETRYING = "StepRetrying"
ON_FAILURE_STARTED = "OnFailureStarted"
ON_FAILURE_COMPLETED = "OnFailureCompleted"
CUSTOM = "Custom"

LIFECYCLE_EVENTS = frozenset({
    RUN_STARTED,
    RUN_COMPLETED,
    STEP_STARTED,
    STEP_COMPLETED,
    STEP_FAILED,
    STEP_NOT_APPLICABLE,
    STEP_RETRYING,
    ON_FAILURE_STARTED,
    ON_FAILURE_COMPLETED,
})


class EventSink(ABC):
    """Receives events live, in order."""

    @abstractmethod
    def write_event(self, event: Event) -> None:
        pass


class AuthSessionAcquirer(ABC):
    """Resolves auth sessions by name and routing options."""

    @abstractmethod
    def acquire_auth_session(self, name: Optional[str] = "", options: Optional[Mapping] = None) -> Any:
        pass


class EventRecorder:
    """Buffers events for the result and forwards each one to an optional sink."""

    def __init__(self, correlation_id: str, sink: Optional[Any] = None):
        self.correlation_id = correlation_id
        self.sink = sink
        self._events: List[Event] = []

    def emit(self, name: str, message: str, step_name: Optional[str] = None,
             data: Optional[Dict[str, Any]] = None) -> Event:
        """Record an event. Message and data are redacted before they are stored or forwarded."""
        event = Event(
            name=name,
            message=redact_text(message),
            step_name=step_name,
            data=redact_object(data or {}),
            correlation_id=self.correlation_id,
        )
        self._events.append(event)
        if self.sink is not None:
            self.sink.write_event(event)
        return event

    @property
    def events(self) -> List[Event]:
        return list(self._events)


class ExecutionContext:
    """
    Per-run context handed to step handlers.

    Collaborators are injected at construction: the event recorder and the
    auth session acquirer (normally the broker from the provider registry).
    ``plan`` and ``request`` return deep copies; handlers never see the
    plan being executed.
    """

    def __init__(
        self,
        plan: Plan,
        providers: Mapping,
        events: EventRecorder,
        auth_session_acquirer: Optional[Any] = None,
    ):
        self._plan = plan
        self.providers = MappingProxyType(dict(providers))
        self.events = events
        self._acquirer = auth_session_acquirer
        self.current_step: Optional[str] = None

    @property
    def plan(self) -> Plan:
        return self._plan.model_copy(deep=True)

    @property
    def request(self):
        return self._plan.request.model_copy(deep=True)

    @property
    def correlation_id(self) -> str:
        return self._plan.correlation_id

    def emit_event(self, name: str, message: str, data: Optional[Dict[str, Any]] = None) -> Event:
        """
        Emit an event attributed to the running step.

        Raises:
            StepError: If ``name`` is one of the engine's lifecycle event names
        """
        if name in LIFECYCLE_EVENTS:
            raise StepError(f"Event name '{name}' is reserved for the engine")
        return self.events.emit(name, message, step_name=self.current_step, data=data)

    def acquire_auth_session(self, name: Optional[str] = "", options: Optional[Mapping] = None) -> Any:
        """
        Resolve an auth session through the configured broker.

        Raises:
            SessionError: When no broker is configured or resolution fails
        """
        if self._acquirer is None:
            raise SessionError(f"Auth session '{name}' requested but no auth session broker is configured")
        if options is not None:
            assert_no_executable_content(options, "AuthSessionOptions")
        return self._acquirer.acquire_auth_session(name or "", options)

    def get_provider(self, alias: str) -> Any:
        provider = self.providers.get(alias)
        if provider is None:
            raise KeyError(alias)
        return provider
