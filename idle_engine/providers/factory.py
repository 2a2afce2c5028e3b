"""
Provider registry construction from engine settings.
"""

import logging
from typing import Any, Dict

from ..auth.session_broker import AuthSessionBroker
from ..config import EngineSettings
from .mock_provider import MockProvider
from .registry import AUTH_SESSION_BROKER_KEY

logger = logging.getLogger(__name__)


def _get_provider_class(provider_type: str):
    """Get provider class for a configured provider type."""
    if provider_type == "mock":
        return MockProvider
    raise ValueError(f"Unknown provider type: {provider_type}")


def build_provider_registry(settings: EngineSettings) -> Dict[str, Any]:
    """
    Build a live provider registry from settings.

    Args:
        settings: Engine settings with ``providers`` and ``auth_sessions`` sections

    Returns:
        Mapping of alias to provider, plus the auth session broker when configured
    """
    providers: Dict[str, Any] = {}
    for alias, provider_settings in settings.providers.items():
        provider_class = _get_provider_class(provider_settings.type)
        config = dict(provider_settings.config)
        if provider_settings.capabilities is not None:
            config["capabilities"] = provider_settings.capabilities
        providers[alias] = provider_class(config)

    if settings.auth_sessions is not None:
        providers[AUTH_SESSION_BROKER_KEY] = AuthSessionBroker(
            [(entry.pattern, entry.descriptor) for entry in settings.auth_sessions.sessions],
            default_session=settings.auth_sessions.default,
        )

    logger.info(f"Built provider registry with aliases: {', '.join(sorted(providers))}")
    return providers
