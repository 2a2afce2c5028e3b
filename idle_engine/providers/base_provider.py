"""
Base Provider Classes for the IdLE Engine.

Providers are the backend integrations (directory, cloud identity, mailbox)
that perform the actual identity operations. The engine only reads their
capability declarations and calls their domain methods through step handlers.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set

logger = logging.getLogger(__name__)


class ProviderResult:
    """Result of a provider operation."""

    def __init__(self, success: bool, message: str = "", data: Optional[Any] = None,
                 error: Optional[str] = None, changed: bool = False, transient: bool = False):
        self.success = success
        self.message = message
        self.data = data
        self.error = error
        self.changed = changed
        self.transient = transient

    def __bool__(self):
        return self.success

    def __str__(self):
        return f"{'✓' if self.success else '✗'} {self.message}"


class BaseProvider(ABC):
    """
    Abstract base class for identity providers.

    Providers that accept an auth session set ``supports_auth_session`` and
    take a trailing ``auth_session`` keyword on every domain method.
    """

    supports_auth_session: bool = False

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the provider.

        Args:
            config: Provider configuration (endpoints, credentials, ...)
        """
        self.config = config or {}
        self.provider_name = self.__class__.__name__.replace('Provider', '').lower()

        logger.info(f"Initialized {self.__class__.__name__}")

    @abstractmethod
    def capabilities(self) -> Set[str]:
        """Capability tags this provider advertises (``Identity.Create``, ...)."""
        pass

    @abstractmethod
    def create_identity(self, identity_key: str, attributes: Dict[str, Any]) -> ProviderResult:
        """
        Create an identity.

        Args:
            identity_key: Key identifying the identity in this backend
            attributes: Initial attributes

        Returns:
            ProviderResult; ``changed`` is False when the identity already existed
        """
        pass

    @abstractmethod
    def get_identity(self, identity_key: str) -> ProviderResult:
        pass

    @abstractmethod
    def ensure_attribute(self, identity_key: str, name: str, value: Any) -> ProviderResult:
        """Set an attribute to the desired value if it differs."""
        pass

    @abstractmethod
    def disable_identity(self, identity_key: str) -> ProviderResult:
        pass

    @abstractmethod
    def enable_identity(self, identity_key: str) -> ProviderResult:
        pass

    @abstractmethod
    def delete_identity(self, identity_key: str) -> ProviderResult:
        pass

    @abstractmethod
    def grant_entitlement(self, identity_key: str, entitlement: Dict[str, Any]) -> ProviderResult:
        pass

    @abstractmethod
    def revoke_entitlement(self, identity_key: str, entitlement: Dict[str, Any]) -> ProviderResult:
        pass

    @abstractmethod
    def list_entitlements(self, identity_key: str) -> ProviderResult:
        pass

    @abstractmethod
    def move_identity(self, identity_key: str, target_container: str) -> ProviderResult:
        pass

    def get_provider_name(self) -> str:
        return self.provider_name
