"""
Engine Package.

This package provides the planning and execution core: the security guard,
the condition evaluator, the plan builder and the plan executor.
"""

from .conditions import evaluate_condition, validate_condition
from .events import AuthSessionAcquirer, EventRecorder, EventSink, ExecutionContext
from .executor import PlanExecutor, execute_plan
from .plan_builder import PlanBuilder, build_plan, snapshot_request
from .plan_export import export_plan, plan_to_document
from .redaction import redact_object, redact_providers, to_data_snapshot
from .security_guard import assert_no_executable_content

__all__ = [
    "PlanBuilder",
    "PlanExecutor",
    "build_plan",
    "execute_plan",
    "snapshot_request",
    "export_plan",
    "plan_to_document",
    "evaluate_condition",
    "validate_condition",
    "assert_no_executable_content",
    "redact_object",
    "redact_providers",
    "to_data_snapshot",
    "EventSink",
    "EventRecorder",
    "ExecutionContext",
    "AuthSessionAcquirer",
]
