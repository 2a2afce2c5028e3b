"""
Placeholder substitution for step configuration.

String values in a step's ``with`` block may reference the planning context
with ``{{request.identity_keys.employee_id}}``. Placeholders are resolved once,
when the plan is built.
"""

import re
from collections.abc import Mapping
from typing import Any

from ..errors import WorkflowValidationError
from .conditions import PATH_PATTERN, resolve_path

TEMPLATE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def resolve_templates(value: Any, context: Any, where: str = "with") -> Any:
    """
    Return a copy of ``value`` with every placeholder substituted.

    A string made of a single placeholder is replaced by the raw resolved
    value, so lists and numbers keep their type.

    Raises:
        WorkflowValidationError: For malformed or unresolvable placeholders
    """
    if isinstance(value, str):
        return _resolve_string(value, context, where)
    if isinstance(value, Mapping):
        return {key: resolve_templates(item, context, f"{where}.{key}") for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_templates(item, context, f"{where}[{i}]") for i, item in enumerate(value)]
    return value


def _lookup(path: str, context: Any, where: str) -> Any:
    if not PATH_PATTERN.match(path):
        raise WorkflowValidationError(f"Invalid placeholder '{{{{{path}}}}}' at {where}")
    found, resolved = resolve_path(context, path)
    if not found:
        raise WorkflowValidationError(f"Placeholder '{{{{{path}}}}}' at {where} could not be resolved")
    return resolved


def _resolve_string(text: str, context: Any, where: str) -> Any:
    whole = TEMPLATE_PATTERN.fullmatch(text)
    if whole:
        return _lookup(whole.group(1), context, where)

    def replace(match):
        resolved = _lookup(match.group(1), context, where)
        return "" if resolved is None else str(resolved)

    return TEMPLATE_PATTERN.sub(replace, text)
