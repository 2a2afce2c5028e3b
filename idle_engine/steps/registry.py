"""
Step handler contract and registry.

Handlers are registered explicitly per step type. Whether a handler wants an
auth session is declared with ``supports_session`` rather than discovered
from its signature.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class StepHandler(ABC):
    """
    Executes one step type.

    ``execute`` returns None (completed, unchanged), a StepResult, or a
    mapping with any of ``changed``, ``status``, ``error`` and ``data``.
    Raise to fail the step; raise a TransientStepError (or any error with
    ``transient = True``) to have it retried.
    """

    supports_session: bool = False

    @abstractmethod
    def execute(self, context, step, session: Any = None) -> Any:
        pass


class FunctionStepHandler(StepHandler):
    """Adapts a plain function ``func(context, step[, session])``."""

    def __init__(self, func: Callable, supports_session: bool = False):
        self.func = func
        self.supports_session = supports_session

    def execute(self, context, step, session: Any = None) -> Any:
        if self.supports_session:
            return self.func(context, step, session)
        return self.func(context, step)

    def __repr__(self):
        return f"FunctionStepHandler({getattr(self.func, '__name__', self.func)!r})"


def step_handler(supports_session: bool = False):
    """Decorator marking a function as a step handler."""
    def decorate(func: Callable) -> FunctionStepHandler:
        return FunctionStepHandler(func, supports_session=supports_session)
    return decorate


def as_step_handler(handler: Any) -> StepHandler:
    if isinstance(handler, StepHandler):
        return handler
    if callable(handler):
        return FunctionStepHandler(handler, supports_session=getattr(handler, "supports_session", False))
    raise TypeError(f"Step handler must be a StepHandler or callable, got {type(handler).__name__}")


class StepRegistry:
    """Mapping from step type to handler."""

    def __init__(self, handlers: Optional[Mapping] = None):
        self._handlers: Dict[str, StepHandler] = {}
        for step_type, handler in (handlers or {}).items():
            self.register(step_type, handler)

    def register(self, step_type: str, handler: Any) -> None:
        """Register (or replace) the handler for a step type."""
        if not isinstance(step_type, str) or not step_type.strip():
            raise ValueError("Step type must be a non-empty string")
        self._handlers[step_type] = as_step_handler(handler)
        logger.debug(f"Registered step handler for '{step_type}'")

    def resolve(self, step_type: str) -> Optional[StepHandler]:
        return self._handlers.get(step_type)

    def merged_with(self, handlers: Optional[Mapping]) -> "StepRegistry":
        """Return a new registry where ``handlers`` override existing entries."""
        merged = StepRegistry(self._handlers)
        for step_type, handler in (handlers or {}).items():
            merged.register(step_type, handler)
        return merged

    @property
    def step_types(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, step_type: str) -> bool:
        return step_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
