"""
Workflows Package for the IdLE Engine.

This package loads and validates declarative workflow documents.
"""

from .loader import load_workflow_definition, read_workflow_document, validate_workflow

__all__ = [
    "load_workflow_definition",
    "read_workflow_document",
    "validate_workflow",
]
