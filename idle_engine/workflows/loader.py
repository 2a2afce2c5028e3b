"""
Workflow document loading and validation.

Workflow documents are YAML or JSON files (or already-parsed mappings) with a
strict schema. Loading runs the security guard over the raw document before
any field is interpreted.
"""

import json
import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, List, Union

import yaml
from pydantic import ValidationError

from ..engine.conditions import validate_condition
from ..engine.security_guard import assert_no_executable_content
from ..errors import SecurityViolationError, WorkflowValidationError
from ..models import StepSpec, WorkflowDefinition

logger = logging.getLogger(__name__)

WorkflowSource = Union[str, Path, Mapping, WorkflowDefinition]

CAPABILITY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]*(\.[A-Za-z0-9][A-Za-z0-9_\-]*)*$")
WORKFLOW_FILE_SUFFIXES = (".yaml", ".yml", ".json")


def read_workflow_document(path: Union[str, Path]) -> Any:
    """
    Read a raw workflow document from disk.

    Raises:
        WorkflowValidationError: For unsupported file types or unparsable content
    """
    path = Path(path)
    if path.suffix.lower() not in WORKFLOW_FILE_SUFFIXES:
        raise WorkflowValidationError(
            f"Unsupported workflow file type '{path.suffix}' (expected one of {', '.join(WORKFLOW_FILE_SUFFIXES)})"
        )

    with open(path, encoding="utf-8") as f:
        try:
            if path.suffix.lower() == ".json":
                document = json.load(f)
            else:
                document = yaml.safe_load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise WorkflowValidationError(f"Workflow file {path} could not be parsed: {e}") from e

    logger.info(f"Read workflow document from {path}")
    return document


def _format_pydantic_errors(error: ValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "workflow"
        messages.append(f"{location}: {item['msg']}")
    return messages


def _check_steps(steps: List[StepSpec], list_name: str) -> List[str]:
    errors = []
    seen = set()
    for index, step in enumerate(steps):
        where = f"{list_name}[{index}]"

        if step.name in seen:
            errors.append(f"{where}: duplicate step name '{step.name}'")
        seen.add(step.name)

        if step.condition is not None:
            try:
                validate_condition(step.condition, f"{where}.condition")
            except WorkflowValidationError as e:
                errors.append(e.message)

        for capability in step.requires_capabilities:
            if not isinstance(capability, str) or not CAPABILITY_PATTERN.match(capability):
                errors.append(f"{where}.requires_capabilities: invalid capability tag '{capability}'")

        if "auth_session_name" in step.with_ and not isinstance(step.with_["auth_session_name"], (str, type(None))):
            errors.append(f"{where}.with.auth_session_name: must be a string")
        options = step.with_.get("auth_session_options")
        if options is not None and not isinstance(options, Mapping):
            errors.append(f"{where}.with.auth_session_options: must be a mapping")
    return errors


def load_workflow_definition(source: WorkflowSource) -> WorkflowDefinition:
    """
    Load and strictly validate a workflow definition.

    Args:
        source: Path to a YAML/JSON file, a parsed mapping, or a WorkflowDefinition

    Returns:
        Validated WorkflowDefinition

    Raises:
        SecurityViolationError: If the document embeds executable content
        WorkflowValidationError: If the document does not match the schema
    """
    if isinstance(source, WorkflowDefinition):
        assert_no_executable_content(source, "Workflow")
        definition = source
    else:
        document = read_workflow_document(source) if isinstance(source, (str, Path)) else source
        if not isinstance(document, Mapping):
            raise WorkflowValidationError(
                f"Workflow document must be a mapping, got {type(document).__name__}"
            )
        assert_no_executable_content(document, "Workflow")
        try:
            definition = WorkflowDefinition.model_validate(dict(document))
        except ValidationError as e:
            errors = _format_pydantic_errors(e)
            raise WorkflowValidationError(
                f"Workflow definition is invalid: {'; '.join(errors)}", errors=errors
            ) from e

    errors = _check_steps(definition.steps, "steps") + _check_steps(definition.on_failure_steps, "on_failure_steps")
    if errors:
        raise WorkflowValidationError(
            f"Workflow '{definition.name}' is invalid: {'; '.join(errors)}", errors=errors
        )

    logger.debug(f"Loaded workflow '{definition.name}' with {len(definition.steps)} steps "
                 f"and {len(definition.on_failure_steps)} on-failure steps")
    return definition


def validate_workflow(source: WorkflowSource) -> List[str]:
    """
    Validate a workflow definition without raising.

    Returns:
        List of validation error messages (empty if valid)
    """
    try:
        load_workflow_definition(source)
    except WorkflowValidationError as e:
        return list(e.errors)
    except SecurityViolationError as e:
        return [e.message]
    return []
