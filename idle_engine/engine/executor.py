"""
Execution Engine for the IdLE Engine.

Runs a Plan step by step, strictly in declared order:

    RunStarted
      StepNotApplicable | StepStarted -> (StepRetrying)* -> StepCompleted | StepFailed
      ... fail-fast on the first failed step ...
    OnFailureStarted -> on-failure steps (best effort) -> OnFailureCompleted
    RunCompleted

Handlers receive copies of plan data, so the plan is never modified. The
provider registry is only read, and the result carries a redacted view of
it, never the live registry.
"""

import logging
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import RetryPolicy
from ..errors import DispatchError, SessionError, StepError
from ..models import (
    ExecutionResult,
    OnFailureResult,
    OnFailureStatus,
    Plan,
    PlanStep,
    PlanStepStatus,
    RunStatus,
    StepResult,
    StepStatus,
)
from ..providers.registry import (
    assert_safe_provider_registry,
    get_auth_session_broker,
    get_step_handlers,
)
from ..steps.builtin import builtin_step_registry
from ..steps.registry import StepRegistry
from . import events as ev
from .redaction import redact_object, redact_providers, redact_text
from .retry import invoke_with_retry, retry_seed
from .security_guard import assert_no_executable_content

logger = logging.getLogger(__name__)

MAIN_PHASE = "main"
ON_FAILURE_PHASE = "on_failure"


class PlanExecutor:
    """
    Executes plans against a provider registry.

    One executor may run many plans; all per-run state lives in the
    EventRecorder and ExecutionContext created by each ``execute`` call.
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        step_registry: Optional[StepRegistry] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the executor.

        Args:
            retry_policy: Backoff settings for transient failures
            step_registry: Handlers available to every run (defaults to built-ins)
            sleep: Sleep function used between retry attempts
        """
        self.retry_policy = retry_policy or RetryPolicy()
        self.step_registry = step_registry if step_registry is not None else builtin_step_registry()
        self.sleep = sleep

    def execute(
        self,
        plan: Plan,
        providers: Optional[Mapping] = None,
        event_sink: Optional[Any] = None,
    ) -> ExecutionResult:
        """
        Execute a plan.

        Args:
            plan: Plan produced by the PlanBuilder
            providers: Provider registry (handlers, broker, providers)
            event_sink: Optional object with ``write_event(event)`` receiving events live

        Returns:
            ExecutionResult with step results, ordered events and redacted providers

        Raises:
            SecurityViolationError: If the plan or registry embeds executable content
        """
        if not isinstance(plan, Plan):
            raise TypeError(f"execute() expects a Plan, got {type(plan).__name__}")

        assert_no_executable_content(plan, "Plan")
        assert_safe_provider_registry(providers)
        providers = providers or {}

        registry = self.step_registry.merged_with(get_step_handlers(providers))
        recorder = ev.EventRecorder(plan.correlation_id, event_sink)
        context = ev.ExecutionContext(plan, providers, recorder, get_auth_session_broker(providers))
        started_at = datetime.now(timezone.utc)

        logger.info(f"Starting run {plan.correlation_id} for workflow '{plan.workflow_name}'")
        recorder.emit(ev.RUN_STARTED, f"Run started for workflow '{plan.workflow_name}'", data={
            "workflow_name": plan.workflow_name,
            "lifecycle_event": plan.lifecycle_event,
            "actor": plan.actor,
            "step_count": len(plan.steps),
        })

        step_results: List[StepResult] = []
        failed = False
        for index, step in enumerate(plan.steps):
            result = self._run_step(context, registry, step, index, MAIN_PHASE)
            step_results.append(result)
            if result.status == StepStatus.FAILED:
                failed = True
                break

        on_failure = OnFailureResult()
        if failed and plan.on_failure_steps:
            on_failure = self._run_on_failure(context, registry, plan.on_failure_steps)

        status = RunStatus.FAILED if failed else RunStatus.COMPLETED
        context.current_step = None
        recorder.emit(ev.RUN_COMPLETED, f"Run {status.value.lower()}", data={
            "status": status.value,
            "steps_executed": len(step_results),
            "on_failure_status": on_failure.status.value,
        })
        logger.info(f"Completed run {plan.correlation_id}: {status.value} "
                    f"({len(step_results)}/{len(plan.steps)} steps)")

        return ExecutionResult(
            status=status,
            correlation_id=plan.correlation_id,
            actor=plan.actor,
            workflow_name=plan.workflow_name,
            steps=step_results,
            on_failure=on_failure,
            events=recorder.events,
            providers=redact_providers(providers),
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )

    def _run_on_failure(self, context, registry: StepRegistry, steps: List[PlanStep]) -> OnFailureResult:
        context.current_step = None
        context.events.emit(ev.ON_FAILURE_STARTED, "Running on-failure steps",
                            data={"step_count": len(steps)})

        results = [self._run_step(context, registry, step, index, ON_FAILURE_PHASE)
                   for index, step in enumerate(steps)]
        any_failed = any(r.status == StepStatus.FAILED for r in results)
        status = OnFailureStatus.PARTIALLY_FAILED if any_failed else OnFailureStatus.COMPLETED

        context.current_step = None
        context.events.emit(ev.ON_FAILURE_COMPLETED, f"On-failure steps {status.value.lower()}",
                            data={"status": status.value})
        return OnFailureResult(status=status, steps=results)

    def _run_step(self, context, registry: StepRegistry, step: PlanStep, index: int, phase: str) -> StepResult:
        context.current_step = step.name
        recorder = context.events

        if step.status == PlanStepStatus.NOT_APPLICABLE:
            recorder.emit(ev.STEP_NOT_APPLICABLE, f"Step '{step.name}' is not applicable",
                          step_name=step.name, data={"type": step.type, "index": index, "phase": phase})
            return StepResult(name=step.name, type=step.type, index=index,
                              status=StepStatus.NOT_APPLICABLE, attempts=1)

        recorder.emit(ev.STEP_STARTED, f"Step '{step.name}' started", step_name=step.name,
                      data={"type": step.type, "index": index, "phase": phase})

        handler = registry.resolve(step.type)
        if handler is None:
            error = DispatchError(f"No step handler registered for type '{step.type}'",
                                  detail={"type": step.type})
            return self._failed(context, step, index, phase, error, attempts=1)

        session = None
        if handler.supports_session and step.auth_session_name is not None:
            try:
                session = context.acquire_auth_session(step.auth_session_name, step.auth_session_options)
            except SessionError as e:
                return self._failed(context, step, index, phase, e, attempts=1)

        def on_retry(attempt: int, delay_ms: int, error: BaseException) -> None:
            recorder.emit(ev.STEP_RETRYING,
                          f"Step '{step.name}' failed transiently, retrying in {delay_ms} ms",
                          step_name=step.name,
                          data={"type": step.type, "index": index, "attempt": attempt,
                                "next_attempt": attempt + 1, "delay_ms": delay_ms,
                                "error": redact_text(str(error))})

        outcome = invoke_with_retry(
            lambda: handler.execute(context, step.model_copy(deep=True), session),
            self.retry_policy,
            retry_seed(context.correlation_id, step.type, step.name, index),
            on_retry=on_retry,
            sleep=self.sleep,
        )
        if not outcome.success:
            return self._failed(context, step, index, phase, outcome.error, attempts=outcome.attempts)

        try:
            changed, data = self._normalize_return(outcome.value)
        except StepError as e:
            return self._failed(context, step, index, phase, e, attempts=outcome.attempts)

        recorder.emit(ev.STEP_COMPLETED, f"Step '{step.name}' completed", step_name=step.name,
                      data={"type": step.type, "index": index, "phase": phase,
                            "changed": changed, "attempts": outcome.attempts})
        logger.info(f"Step '{step.name}' ({step.type}) completed "
                    f"(changed={changed}, attempts={outcome.attempts})")
        return StepResult(name=step.name, type=step.type, index=index, status=StepStatus.COMPLETED,
                          changed=changed, attempts=outcome.attempts, data=redact_object(data))

    @staticmethod
    def _normalize_return(value: Any) -> Tuple[bool, Dict[str, Any]]:
        """Interpret a handler's return value as ``(changed, data)``."""
        if value is None:
            return False, {}
        if isinstance(value, StepResult):
            if value.status == StepStatus.FAILED:
                raise StepError(value.error or "Step handler reported failure")
            return value.changed, dict(value.data)
        if isinstance(value, Mapping):
            status = str(value.get("status", StepStatus.COMPLETED.value)).upper()
            if status == StepStatus.FAILED.value:
                raise StepError(str(value.get("error") or "Step handler reported failure"))
            data = value.get("data") or {}
            if not isinstance(data, Mapping):
                data = {"value": data}
            return bool(value.get("changed", False)), dict(data)
        raise StepError(f"Step handler returned unsupported type {type(value).__name__}")

    @staticmethod
    def _failed(context, step: PlanStep, index: int, phase: str, error: BaseException,
                attempts: int) -> StepResult:
        message = redact_text(getattr(error, "message", None) or str(error) or type(error).__name__)
        logger.error(f"Step '{step.name}' ({step.type}) at index {index} failed "
                     f"after {attempts} attempt(s): {message}")
        context.events.emit(ev.STEP_FAILED, f"Step '{step.name}' failed: {message}", step_name=step.name,
                            data={"type": step.type, "index": index, "phase": phase,
                                  "error": message, "error_type": type(error).__name__,
                                  "attempts": attempts})
        return StepResult(name=step.name, type=step.type, index=index, status=StepStatus.FAILED,
                          error=message, error_type=type(error).__name__, attempts=attempts)


def execute_plan(
    plan: Plan,
    providers: Optional[Mapping] = None,
    event_sink: Optional[Any] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> ExecutionResult:
    """Execute a plan with a default PlanExecutor."""
    return PlanExecutor(retry_policy=retry_policy).execute(plan, providers, event_sink)
