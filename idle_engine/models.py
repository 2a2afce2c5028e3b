"""
Core data models for the IdLE Engine.

This module defines the Pydantic models used throughout the system
for workflow definitions, lifecycle requests, plans, execution results
and the event stream.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlanStepStatus(str, Enum):
    """Plan-time status of a step, fixed when the plan is built."""
    PLANNED = "PLANNED"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class StepStatus(str, Enum):
    """Outcome of a single executed step."""
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class RunStatus(str, Enum):
    """Outcome of a whole run."""
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class OnFailureStatus(str, Enum):
    """Outcome of the on-failure step sequence."""
    NOT_RUN = "NOT_RUN"
    COMPLETED = "COMPLETED"
    PARTIALLY_FAILED = "PARTIALLY_FAILED"


class AuthSessionKind(str, Enum):
    """Kinds of auth session a broker may hand out."""
    CREDENTIAL = "CREDENTIAL"
    OAUTH = "OAUTH"
    REMOTE_EXECUTION = "REMOTE_EXECUTION"


class StepSpec(BaseModel):
    """A single declared step of a workflow document."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str = Field(..., min_length=1, description="Unique step name within its list")
    type: str = Field(..., min_length=1, description="Dispatch key resolved against the step registry")
    condition: Optional[Any] = Field(None, description="Declarative boolean expression")
    with_: Dict[str, Any] = Field(default_factory=dict, alias="with",
                                  description="Opaque configuration forwarded to the handler")
    requires_capabilities: List[str] = Field(default_factory=list,
                                             description="Capability tags the providers must advertise")

    @field_validator('name', 'type')
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('must not be blank')
        return v.strip()

    @field_validator('with_', mode='before')
    @classmethod
    def validate_with(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator('requires_capabilities', mode='before')
    @classmethod
    def validate_capabilities(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class WorkflowDefinition(BaseModel):
    """A validated workflow document."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., min_length=1, description="Workflow name")
    lifecycle_event: str = Field(..., min_length=1, description="Joiner/Mover/Leaver classification tag")
    description: Optional[str] = Field(None, description="Human-readable description")
    steps: List[StepSpec] = Field(default_factory=list)
    on_failure_steps: List[StepSpec] = Field(default_factory=list)

    @field_validator('steps', 'on_failure_steps', mode='before')
    @classmethod
    def validate_step_lists(cls, v: Any) -> Any:
        return [] if v is None else v


class LifecycleRequest(BaseModel):
    """Request describing which lifecycle event to run for which identity."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    lifecycle_event: str = Field(..., min_length=1)
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()),
                                description="Run identifier used for log correlation and retry seeding")
    actor: Optional[str] = Field(None, description="Who or what initiated the run")
    identity_keys: Dict[str, Any] = Field(default_factory=dict)
    desired_state: Dict[str, Any] = Field(default_factory=dict)
    changes: Optional[Dict[str, Any]] = Field(None)


class PlanStep(BaseModel):
    """A normalized step with its plan-time status."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    type: str
    condition: Optional[Any] = None
    with_: Dict[str, Any] = Field(default_factory=dict, alias="with")
    requires_capabilities: List[str] = Field(default_factory=list)
    status: PlanStepStatus = PlanStepStatus.PLANNED

    @property
    def auth_session_name(self) -> Optional[str]:
        """Session routing name declared in the step configuration, if any."""
        if "auth_session_name" not in self.with_:
            return None
        return self.with_["auth_session_name"] or ""

    @property
    def auth_session_options(self) -> Optional[Dict[str, Any]]:
        return self.with_.get("auth_session_options")


class Plan(BaseModel):
    """Immutable execution plan; the sole contract between builder and executor."""
    model_config = ConfigDict(frozen=True)

    workflow_name: str
    lifecycle_event: str
    correlation_id: str
    actor: Optional[str] = None
    request: LifecycleRequest
    steps: List[PlanStep] = Field(default_factory=list)
    on_failure_steps: List[PlanStep] = Field(default_factory=list)
    created_utc: datetime = Field(default_factory=_utcnow)
    engine_version: str = ""


class StepResult(BaseModel):
    """Result of executing one plan step."""
    name: str
    type: str
    index: int = 0
    status: StepStatus
    changed: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None
    attempts: int = Field(1, ge=1)
    data: Dict[str, Any] = Field(default_factory=dict)


class OnFailureResult(BaseModel):
    """Result of the best-effort on-failure sequence."""
    status: OnFailureStatus = OnFailureStatus.NOT_RUN
    steps: List[StepResult] = Field(default_factory=list)


class Event(BaseModel):
    """An entry in the ordered event stream of a run."""
    name: str
    message: str
    step_name: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    correlation_id: Optional[str] = None
    timestamp_utc: datetime = Field(default_factory=_utcnow)


class ExecutionResult(BaseModel):
    """Result of a complete plan execution."""
    status: RunStatus
    correlation_id: str
    actor: Optional[str] = None
    workflow_name: str
    steps: List[StepResult] = Field(default_factory=list)
    on_failure: OnFailureResult = Field(default_factory=OnFailureResult)
    events: List[Event] = Field(default_factory=list)
    providers: Dict[str, Any] = Field(default_factory=dict, description="Redacted provider registry")
    started_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED


class AuthSessionDescriptor(BaseModel):
    """Routing target of the auth session broker."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_kind: AuthSessionKind
    session: Any = Field(..., description="Opaque credential or connection handle")

    @field_validator('session_kind', mode='before')
    @classmethod
    def normalize_session_kind(cls, v: Any) -> Any:
        """Accept ``RemoteExecution``, ``remote_execution`` and ``REMOTE_EXECUTION`` alike."""
        if isinstance(v, str):
            folded = v.replace("_", "").replace("-", "").upper()
            for kind in AuthSessionKind:
                if kind.value.replace("_", "") == folded:
                    return kind
        return v


# Type aliases for convenience
PlanSteps = List[PlanStep]
StepResults = List[StepResult]
Events = List[Event]
