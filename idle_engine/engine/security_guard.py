"""
Security Guard for the IdLE Engine.

Workflow definitions, step configuration, session options and request data
are data, never code. The guard walks any value recursively and rejects the
first embedded executable object it finds.
"""

import dataclasses
import logging
import types
from collections.abc import Mapping
from enum import Enum
from typing import Any, Iterator, Set, Tuple

from pydantic import BaseModel

from ..errors import SecurityViolationError

logger = logging.getLogger(__name__)

_EXECUTABLE_TYPES = (
    types.CodeType,
    types.GeneratorType,
    types.CoroutineType,
    types.AsyncGeneratorType,
    types.FrameType,
)


def is_executable(value: Any) -> bool:
    """Return True for callables and other objects that carry executable code."""
    if isinstance(value, (str, bytes, int, float, bool)) or value is None:
        return False
    return callable(value) or isinstance(value, _EXECUTABLE_TYPES)


def _key_path(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


def assert_no_executable_content(value: Any, path: str = "Input") -> None:
    """
    Fail if ``value`` contains an executable object at any depth.

    Mappings, sequences, sets, pydantic models, dataclasses and plain records
    (instance ``__dict__`` and ``__slots__`` attributes) are descended into.
    Strings, numbers and enum members are leaves.

    Args:
        value: Value to inspect
        path: Name of the root, used to build the reported path
              (``Workflow.steps[2].with.config``)

    Raises:
        SecurityViolationError: On the first executable value found
    """
    _walk(value, path, set())


def _walk(value: Any, path: str, seen: Set[int]) -> None:
    if is_executable(value):
        logger.error(f"Executable content rejected at {path}")
        raise SecurityViolationError(
            f"Executable content is not allowed in data: found {type(value).__name__} at '{path}'",
            path=path,
        )

    if isinstance(value, (str, bytes, bytearray, int, float, bool)) or value is None:
        return

    # Shared or self-referencing containers are only walked once.
    marker = id(value)
    if marker in seen:
        return
    seen.add(marker)

    if isinstance(value, Mapping):
        for key, item in value.items():
            if is_executable(key):
                raise SecurityViolationError(
                    f"Executable mapping key is not allowed at '{path}'", path=path
                )
            _walk(item, _key_path(path, key), seen)
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _walk(item, f"{path}[{index}]", seen)
    elif isinstance(value, (set, frozenset)):
        for index, item in enumerate(sorted(value, key=repr)):
            _walk(item, f"{path}[{index}]", seen)
    elif isinstance(value, BaseModel):
        for field_name, field_info in type(value).model_fields.items():
            _walk(getattr(value, field_name), _key_path(path, field_info.alias or field_name), seen)
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        for field in dataclasses.fields(value):
            _walk(getattr(value, field.name), _key_path(path, field.name), seen)
    elif isinstance(value, Enum):
        return
    else:
        for name, item in _record_attributes(value):
            _walk(item, _key_path(path, name), seen)


def _record_attributes(value: Any) -> Iterator[Tuple[str, Any]]:
    """Instance attributes of a plain record, from ``__dict__`` and ``__slots__``."""
    instance_dict = getattr(value, "__dict__", None)
    if isinstance(instance_dict, Mapping):
        yield from list(instance_dict.items())
    for klass in type(value).__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for name in slots:
            if name in ("__dict__", "__weakref__") or not hasattr(value, name):
                continue
            yield name, getattr(value, name)
