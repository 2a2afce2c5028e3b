"""
Condition Evaluator for the IdLE Engine.

Conditions are a small declarative boolean DSL written as plain data:

    condition:
      all:
        - equals: {path: request.desired_state.department, value: IT}
        - exists: request.identity_keys.employee_id

Supported shapes are ``exists``, ``equals``, ``not_equals``, ``in``,
``all``, ``any``, ``not`` and literal booleans. Conditions are validated once
while a plan is built and evaluated against a read-only context.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any, List, Tuple

from pydantic import BaseModel

from ..errors import WorkflowValidationError

logger = logging.getLogger(__name__)

_MISSING = object()

_SEGMENT = r"[A-Za-z_][A-Za-z0-9_\-]*(?:\[\d+\])*"
PATH_PATTERN = re.compile(rf"^{_SEGMENT}(?:\.{_SEGMENT})*$")
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")

GROUP_OPERATORS = ("all", "any")
PATH_OPERATORS = ("exists", "equals", "not_equals", "in")
CONDITION_OPERATORS = GROUP_OPERATORS + PATH_OPERATORS + ("not",)


def _split_path(path: str) -> List[Any]:
    parts: List[Any] = []
    for segment in path.split("."):
        name, _, _ = segment.partition("[")
        parts.append(name)
        parts.extend(int(i) for i in _INDEX_PATTERN.findall(segment))
    return parts


def resolve_path(context: Any, path: str) -> Tuple[bool, Any]:
    """
    Resolve a dotted/indexed path (``request.changes.groups[0]``) in a context.

    Returns:
        Tuple of (found, value)
    """
    current = context
    for part in _split_path(path):
        current = _step_into(current, part)
        if current is _MISSING:
            return False, None
    return True, current


def _step_into(current: Any, part: Any) -> Any:
    if isinstance(part, int):
        if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            return current[part] if part < len(current) else _MISSING
        return _MISSING
    if isinstance(current, Mapping):
        return current.get(part, _MISSING)
    if isinstance(current, BaseModel) and part in type(current).model_fields:
        return getattr(current, part)
    return _MISSING


def _fail(message: str, where: str):
    raise WorkflowValidationError(f"Invalid condition at {where}: {message}")


def _validate_path(path: Any, where: str) -> None:
    if not isinstance(path, str) or not PATH_PATTERN.match(path):
        _fail(f"'{path}' is not a valid path", where)


def validate_condition(condition: Any, where: str = "condition") -> None:
    """
    Validate the schema of a condition without evaluating it.

    Args:
        condition: Condition document
        where: Location used in error messages (``steps[1].condition``)

    Raises:
        WorkflowValidationError: If the condition is malformed or uses an unknown shape
    """
    if isinstance(condition, bool):
        return
    if not isinstance(condition, Mapping):
        _fail(f"expected a mapping or boolean, got {type(condition).__name__}", where)
    if len(condition) != 1:
        _fail(f"expected exactly one operator, got {sorted(map(str, condition))}", where)

    operator, operand = next(iter(condition.items()))
    if operator not in CONDITION_OPERATORS:
        _fail(f"unknown operator '{operator}'", where)

    if operator in GROUP_OPERATORS:
        if isinstance(operand, (str, bytes)) or not isinstance(operand, Sequence) or not operand:
            _fail(f"'{operator}' requires a non-empty list of conditions", where)
        for index, child in enumerate(operand):
            validate_condition(child, f"{where}.{operator}[{index}]")
    elif operator == "not":
        validate_condition(operand, f"{where}.not")
    elif operator == "exists":
        if isinstance(operand, Mapping):
            if set(operand) != {"path"}:
                _fail("'exists' accepts only a 'path' key", where)
            operand = operand["path"]
        _validate_path(operand, where)
    else:
        if not isinstance(operand, Mapping):
            _fail(f"'{operator}' requires a mapping", where)
        expected = {"path", "values"} if operator == "in" else {"path", "value"}
        if set(operand) != expected:
            _fail(f"'{operator}' requires exactly the keys {sorted(expected)}", where)
        _validate_path(operand["path"], where)
        if operator == "in":
            values = operand["values"]
            if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
                _fail("'in' requires a list of values", where)


def evaluate_condition(condition: Any, context: Any) -> bool:
    """
    Evaluate a validated condition against a context.

    Missing paths never raise: ``exists`` is False and comparisons are
    False (``not_equals`` is True).
    """
    if condition is None:
        return True
    if isinstance(condition, bool):
        return condition

    operator, operand = next(iter(condition.items()))

    if operator == "all":
        return all(evaluate_condition(child, context) for child in operand)
    if operator == "any":
        return any(evaluate_condition(child, context) for child in operand)
    if operator == "not":
        return not evaluate_condition(operand, context)
    if operator == "exists":
        path = operand["path"] if isinstance(operand, Mapping) else operand
        found, value = resolve_path(context, path)
        return found and value is not None

    found, actual = resolve_path(context, operand["path"])
    if operator == "equals":
        return found and actual == operand["value"]
    if operator == "not_equals":
        return not (found and actual == operand["value"])
    if operator == "in":
        return found and actual in list(operand["values"])

    raise WorkflowValidationError(f"Unknown condition operator '{operator}'")
