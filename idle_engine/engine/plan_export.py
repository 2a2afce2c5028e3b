"""
Canonical JSON export of a Plan.

The export is meant for audit trails and CI diffs: keys are sorted, the
output is indented, encoded as UTF-8 without a byte-order mark and ends with
a newline. Field names are part of the contract; change ``SCHEMA_VERSION``
when they change.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .. import __version__
from ..models import Plan, PlanStep
from .redaction import redact_object, to_data_snapshot

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
ENGINE_NAME = "idle-engine"


def _step_document(step: PlanStep, index: int) -> Dict[str, Any]:
    return {
        "index": index,
        "name": step.name,
        "type": step.type,
        "status": step.status.value,
        "condition": to_data_snapshot(step.condition),
        "with": redact_object(step.with_),
        "requires_capabilities": list(step.requires_capabilities),
    }


def plan_to_document(plan: Plan) -> Dict[str, Any]:
    """Stable, redacted document representation of a plan."""
    return {
        "schema_version": SCHEMA_VERSION,
        "engine": {"name": ENGINE_NAME, "version": plan.engine_version or __version__},
        "plan": {
            "workflow_name": plan.workflow_name,
            "lifecycle_event": plan.lifecycle_event,
            "correlation_id": plan.correlation_id,
            "actor": plan.actor,
            "created_utc": plan.created_utc.isoformat(),
            "request": redact_object(plan.request),
            "steps": [_step_document(step, i) for i, step in enumerate(plan.steps)],
            "on_failure_steps": [_step_document(step, i) for i, step in enumerate(plan.on_failure_steps)],
        },
    }


def export_plan(plan: Plan, path: Optional[Union[str, Path]] = None) -> str:
    """
    Serialize a plan to canonical JSON.

    Args:
        plan: Plan to export
        path: Optional file to write (UTF-8, no BOM)

    Returns:
        The JSON text
    """
    text = json.dumps(plan_to_document(plan), indent=2, sort_keys=True, ensure_ascii=False) + "\n"

    if path is not None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        logger.info(f"Exported plan {plan.correlation_id} to {path}")

    return text
