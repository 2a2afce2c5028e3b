"""
Plan Builder for the IdLE Engine.

Turns a workflow definition and a lifecycle request into an immutable Plan.
Everything that can be decided without touching a backend is decided here:
schema validation, condition evaluation, placeholder substitution, capability
checks and auth session availability. Building never calls a provider method
other than ``capabilities()``.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from .. import __version__
from ..errors import CapabilityError, SessionError, WorkflowValidationError
from ..models import LifecycleRequest, Plan, PlanStep, PlanStepStatus, StepSpec, WorkflowDefinition
from ..providers.registry import (
    assert_safe_provider_registry,
    available_capabilities,
    get_auth_session_broker,
)
from ..workflows.loader import WorkflowSource, load_workflow_definition
from .conditions import evaluate_condition
from .redaction import to_data_snapshot
from .security_guard import assert_no_executable_content
from .templates import resolve_templates

logger = logging.getLogger(__name__)


def snapshot_request(request: Union[LifecycleRequest, Mapping]) -> LifecycleRequest:
    """
    Deep, data-only copy of a request.

    Later changes to the caller's objects cannot reach a plan built from it.
    """
    if isinstance(request, Mapping):
        assert_no_executable_content(request, "Request")
        data = to_data_snapshot(request)
    elif isinstance(request, LifecycleRequest):
        assert_no_executable_content(request, "Request")
        data = to_data_snapshot(request)
    else:
        raise WorkflowValidationError(
            f"Request must be a LifecycleRequest or mapping, got {type(request).__name__}"
        )
    try:
        return LifecycleRequest.model_validate(data)
    except ValidationError as e:
        raise WorkflowValidationError(f"Lifecycle request is invalid: {e}") from e


class PlanBuilder:
    """
    Builds Plans from workflow definitions.

    Building is pure with respect to providers: only capability declarations
    are read, so the same inputs always yield the same plan steps.
    """

    def build(
        self,
        workflow_source: WorkflowSource,
        request: Union[LifecycleRequest, Mapping],
        providers: Optional[Mapping] = None,
    ) -> Plan:
        """
        Build a plan.

        Args:
            workflow_source: Path, mapping or WorkflowDefinition
            request: The lifecycle request
            providers: Provider registry consulted for capabilities and auth sessions

        Returns:
            Immutable Plan

        Raises:
            WorkflowValidationError: Malformed workflow, request or template
            SecurityViolationError: Executable content in any input
            CapabilityError: Required capabilities are not available
            SessionError: Steps request auth sessions but no broker is configured
        """
        workflow = load_workflow_definition(workflow_source)
        request_snapshot = snapshot_request(request)
        assert_safe_provider_registry(providers)

        if workflow.lifecycle_event.casefold() != request_snapshot.lifecycle_event.casefold():
            raise WorkflowValidationError(
                f"Workflow '{workflow.name}' handles lifecycle event '{workflow.lifecycle_event}' "
                f"but the request is for '{request_snapshot.lifecycle_event}'"
            )

        created_utc = datetime.now(timezone.utc)
        context = self._planning_context(workflow, request_snapshot, created_utc)

        steps = [self._normalize_step(spec, context, f"steps[{i}]")
                 for i, spec in enumerate(workflow.steps)]
        on_failure_steps = [self._normalize_step(spec, context, f"on_failure_steps[{i}]")
                            for i, spec in enumerate(workflow.on_failure_steps)]

        self._check_capabilities(steps + on_failure_steps, providers)
        self._check_auth_sessions(steps + on_failure_steps, providers)

        plan = Plan(
            workflow_name=workflow.name,
            lifecycle_event=request_snapshot.lifecycle_event,
            correlation_id=request_snapshot.correlation_id,
            actor=request_snapshot.actor,
            request=request_snapshot,
            steps=steps,
            on_failure_steps=on_failure_steps,
            created_utc=created_utc,
            engine_version=__version__,
        )

        skipped = sum(1 for s in steps if s.status == PlanStepStatus.NOT_APPLICABLE)
        logger.info(f"Built plan for workflow '{workflow.name}' ({plan.correlation_id}): "
                    f"{len(steps)} steps ({skipped} not applicable), "
                    f"{len(on_failure_steps)} on-failure steps")
        return plan

    @staticmethod
    def _planning_context(workflow: WorkflowDefinition, request: LifecycleRequest,
                          created_utc: datetime) -> Mapping:
        request_data = to_data_snapshot(request)
        return MappingProxyType({
            "plan": {
                "workflow_name": workflow.name,
                "lifecycle_event": request.lifecycle_event,
                "correlation_id": request.correlation_id,
                "actor": request.actor,
                "created_utc": created_utc.isoformat(),
            },
            "request": request_data,
            "workflow": {
                "name": workflow.name,
                "lifecycle_event": workflow.lifecycle_event,
                "description": workflow.description,
            },
        })

    @staticmethod
    def _normalize_step(spec: StepSpec, context: Mapping, where: str) -> PlanStep:
        applicable = evaluate_condition(spec.condition, context)
        with_config = to_data_snapshot(spec.with_)
        if applicable:
            # Placeholders only have to resolve for steps that will run.
            with_config = resolve_templates(with_config, context, f"{where}.with")

        capabilities: List[str] = []
        for capability in spec.requires_capabilities:
            if capability not in capabilities:
                capabilities.append(capability)

        return PlanStep(
            name=spec.name,
            type=spec.type,
            condition=to_data_snapshot(spec.condition),
            with_=with_config,
            requires_capabilities=capabilities,
            status=PlanStepStatus.PLANNED if applicable else PlanStepStatus.NOT_APPLICABLE,
        )

    @staticmethod
    def _check_capabilities(steps: List[PlanStep], providers: Optional[Mapping]) -> None:
        available = available_capabilities(providers)
        missing: Dict[str, None] = {}
        affected: List[str] = []
        for step in steps:
            step_missing = [c for c in step.requires_capabilities if c not in available]
            if step_missing:
                affected.append(step.name)
                for capability in step_missing:
                    missing[capability] = None

        if missing:
            error = CapabilityError(missing.keys(), affected, available)
            logger.error(error.message)
            raise error

    @staticmethod
    def _check_auth_sessions(steps: List[PlanStep], providers: Optional[Mapping]) -> None:
        requesting = [s.name for s in steps if s.auth_session_name is not None]
        if requesting and get_auth_session_broker(providers) is None:
            raise SessionError(
                f"Steps request auth sessions but no auth session broker is configured: {', '.join(requesting)}",
                detail={"affected_steps": requesting},
            )


def build_plan(
    workflow_source: WorkflowSource,
    request: Union[LifecycleRequest, Mapping],
    providers: Optional[Mapping] = None,
) -> Plan:
    """Build a plan with a default PlanBuilder."""
    return PlanBuilder().build(workflow_source, request, providers)
