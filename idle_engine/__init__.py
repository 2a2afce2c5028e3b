"""
Identity Lifecycle Engine (IdLE Engine)

Plans and runs declarative Joiner-Mover-Leaver workflows against one or more
identity providers, with deterministic retries, routed auth sessions, an
ordered event stream and redaction at the output boundary.
"""

__version__ = "1.0.0"
__author__ = "IdLE Engine Team"
__email__ = "team@example.com"

from .auth import AuthSessionBroker
from .engine.executor import PlanExecutor, execute_plan
from .engine.plan_builder import PlanBuilder, build_plan
from .engine.plan_export import export_plan
from .models import ExecutionResult, LifecycleRequest, Plan, WorkflowDefinition
from .workflows import load_workflow_definition, validate_workflow

__all__ = [
    "AuthSessionBroker",
    "PlanBuilder",
    "PlanExecutor",
    "build_plan",
    "execute_plan",
    "export_plan",
    "load_workflow_definition",
    "validate_workflow",
    "LifecycleRequest",
    "WorkflowDefinition",
    "Plan",
    "ExecutionResult",
]
