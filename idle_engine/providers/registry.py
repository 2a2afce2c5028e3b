"""
Provider registry helpers.

A provider registry is a plain mapping from alias to provider object. Two
aliases are reserved: ``auth_session_broker`` holds the session broker and
``step_registry`` holds provider-supplied step handlers.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterator, Optional, Set, Tuple

from ..engine.security_guard import assert_no_executable_content, is_executable
from ..errors import SecurityViolationError

logger = logging.getLogger(__name__)

AUTH_SESSION_BROKER_KEY = "auth_session_broker"
STEP_REGISTRY_KEY = "step_registry"
RESERVED_KEYS = (AUTH_SESSION_BROKER_KEY, STEP_REGISTRY_KEY)


def iter_capability_providers(providers: Optional[Mapping]) -> Iterator[Tuple[str, Any]]:
    """Yield ``(alias, provider)`` for every entry exposing ``capabilities()``."""
    for alias, provider in (providers or {}).items():
        if alias in RESERVED_KEYS:
            continue
        if callable(getattr(provider, "capabilities", None)):
            yield alias, provider


def available_capabilities(providers: Optional[Mapping]) -> Set[str]:
    """Union of capability tags advertised by all configured providers."""
    capabilities: Set[str] = set()
    for alias, provider in iter_capability_providers(providers):
        advertised = provider.capabilities() or set()
        logger.debug(f"Provider '{alias}' advertises {len(advertised)} capabilities")
        capabilities.update(str(c) for c in advertised)
    return capabilities


def get_auth_session_broker(providers: Optional[Mapping]) -> Optional[Any]:
    return (providers or {}).get(AUTH_SESSION_BROKER_KEY)


def get_step_handlers(providers: Optional[Mapping]) -> Dict[str, Any]:
    handlers = (providers or {}).get(STEP_REGISTRY_KEY) or {}
    if not isinstance(handlers, Mapping):
        raise TypeError(f"'{STEP_REGISTRY_KEY}' must be a mapping of step type to handler")
    return dict(handlers)


def assert_safe_provider_registry(providers: Optional[Mapping]) -> None:
    """
    Run the security guard over the data in a provider registry.

    Provider objects are opaque: the entry itself must not be callable, but
    its attributes are not walked. Data entries (mappings, sequences) are
    walked in full. The step registry is skipped because its values are
    handlers by contract.
    """
    if providers is None:
        return
    if not isinstance(providers, Mapping):
        raise TypeError(f"Provider registry must be a mapping, got {type(providers).__name__}")
    for alias, provider in providers.items():
        if alias == STEP_REGISTRY_KEY:
            continue
        path = f"Providers.{alias}"
        if isinstance(provider, (Mapping, list, tuple, set, frozenset)):
            assert_no_executable_content(provider, path)
        elif is_executable(provider):
            logger.error(f"Executable provider entry rejected at {path}")
            raise SecurityViolationError(
                f"Provider registry entry '{alias}' is executable ({type(provider).__name__})",
                path=path,
            )
