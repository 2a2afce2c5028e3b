"""
Providers Package for the IdLE Engine.

This package provides the provider contract, the in-memory mock provider and
the reserved aliases of a provider registry. Registries are built from
settings by ``idle_engine.providers.factory.build_provider_registry``.
"""

from .base_provider import BaseProvider, ProviderResult
from .mock_provider import MOCK_CAPABILITIES, MockProvider
from .registry import (
    AUTH_SESSION_BROKER_KEY,
    STEP_REGISTRY_KEY,
    available_capabilities,
    get_auth_session_broker,
)

__all__ = [
    "BaseProvider",
    "MockProvider",
    "ProviderResult",
    "MOCK_CAPABILITIES",
    "AUTH_SESSION_BROKER_KEY",
    "STEP_REGISTRY_KEY",
    "available_capabilities",
    "get_auth_session_broker",
]
