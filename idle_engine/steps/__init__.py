"""
Steps Package for the IdLE Engine.

This package provides the step handler contract, the step registry and the
built-in identity lifecycle steps.
"""

from .builtin import BUILTIN_STEP_HANDLERS, builtin_step_registry
from .registry import FunctionStepHandler, StepHandler, StepRegistry, step_handler

__all__ = [
    "StepHandler",
    "FunctionStepHandler",
    "StepRegistry",
    "step_handler",
    "BUILTIN_STEP_HANDLERS",
    "builtin_step_registry",
]
