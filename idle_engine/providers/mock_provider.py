"""
In-memory identity provider.

Used for tests, demos and dry runs of workflows without touching a real
directory. Operations are idempotent and report ``changed`` accurately.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from .base_provider import BaseProvider, ProviderResult

logger = logging.getLogger(__name__)

MOCK_CAPABILITIES = {
    "Identity.Read",
    "Identity.Create",
    "Identity.Attribute.Ensure",
    "Identity.Disable",
    "Identity.Enable",
    "Identity.Delete",
    "Identity.Move",
    "Identity.Entitlement.List",
    "Identity.Entitlement.Grant",
    "Identity.Entitlement.Revoke",
}


class MockProvider(BaseProvider):
    """
    Provider backed by in-memory state.

    Config keys:
        capabilities: Override the advertised capability tags
        transient_failures: ``{operation: count}`` - the first ``count`` calls of
                            an operation fail with a transient error
    """

    supports_auth_session = True

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)

        self.identities: Dict[str, Dict[str, Any]] = {}
        self.calls: list = []
        self.sessions_seen: list = []
        self._pending_failures: Dict[str, int] = dict(self.config.get("transient_failures", {}))

        capabilities = self.config.get("capabilities")
        self._capabilities: Set[str] = set(capabilities) if capabilities is not None else set(MOCK_CAPABILITIES)

    def capabilities(self) -> Set[str]:
        return set(self._capabilities)

    def _begin(self, operation: str, auth_session: Any) -> Optional[ProviderResult]:
        self.calls.append(operation)
        if auth_session is not None:
            self.sessions_seen.append(auth_session)
        remaining = self._pending_failures.get(operation, 0)
        if remaining > 0:
            self._pending_failures[operation] = remaining - 1
            logger.info(f"Mock injected transient failure for {operation}")
            return ProviderResult(False, f"{operation} temporarily unavailable",
                                  error="service unavailable", transient=True)
        return None

    def _missing(self, identity_key: str) -> ProviderResult:
        return ProviderResult(False, f"Identity {identity_key} not found",
                              error=f"Identity {identity_key} not found")

    def create_identity(self, identity_key: str, attributes: Dict[str, Any],
                        auth_session: Any = None) -> ProviderResult:
        """Mock identity creation."""
        failure = self._begin("create_identity", auth_session)
        if failure is not None:
            return failure

        if identity_key in self.identities:
            return ProviderResult(True, f"Identity {identity_key} already exists", changed=False)

        self.identities[identity_key] = {
            "attributes": dict(attributes or {}),
            "enabled": True,
            "container": None,
            "entitlements": [],
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        logger.info(f"Mock created identity: {identity_key}")
        return ProviderResult(True, f"Created identity {identity_key}", changed=True)

    def get_identity(self, identity_key: str, auth_session: Any = None) -> ProviderResult:
        failure = self._begin("get_identity", auth_session)
        if failure is not None:
            return failure
        if identity_key not in self.identities:
            return self._missing(identity_key)
        return ProviderResult(True, f"Found identity {identity_key}", self.identities[identity_key])

    def ensure_attribute(self, identity_key: str, name: str, value: Any,
                         auth_session: Any = None) -> ProviderResult:
        """Mock attribute update."""
        failure = self._begin("ensure_attribute", auth_session)
        if failure is not None:
            return failure
        if identity_key not in self.identities:
            return self._missing(identity_key)

        attributes = self.identities[identity_key]["attributes"]
        if attributes.get(name) == value:
            return ProviderResult(True, f"{name} already set on {identity_key}", changed=False)
        attributes[name] = value
        logger.info(f"Mock set {name} on {identity_key}")
        return ProviderResult(True, f"Set {name} on {identity_key}", changed=True)

    def _set_enabled(self, operation: str, identity_key: str, enabled: bool,
                     auth_session: Any) -> ProviderResult:
        failure = self._begin(operation, auth_session)
        if failure is not None:
            return failure
        if identity_key not in self.identities:
            return self._missing(identity_key)

        identity = self.identities[identity_key]
        if identity["enabled"] == enabled:
            return ProviderResult(True, f"Identity {identity_key} unchanged", changed=False)
        identity["enabled"] = enabled
        logger.info(f"Mock {'enabled' if enabled else 'disabled'} identity: {identity_key}")
        return ProviderResult(True, f"{'Enabled' if enabled else 'Disabled'} {identity_key}", changed=True)

    def disable_identity(self, identity_key: str, auth_session: Any = None) -> ProviderResult:
        return self._set_enabled("disable_identity", identity_key, False, auth_session)

    def enable_identity(self, identity_key: str, auth_session: Any = None) -> ProviderResult:
        return self._set_enabled("enable_identity", identity_key, True, auth_session)

    def delete_identity(self, identity_key: str, auth_session: Any = None) -> ProviderResult:
        """Mock identity deletion."""
        failure = self._begin("delete_identity", auth_session)
        if failure is not None:
            return failure
        if identity_key not in self.identities:
            return ProviderResult(True, f"Identity {identity_key} already absent", changed=False)
        del self.identities[identity_key]
        logger.info(f"Mock deleted identity: {identity_key}")
        return ProviderResult(True, f"Deleted {identity_key}", changed=True)

    def grant_entitlement(self, identity_key: str, entitlement: Dict[str, Any],
                          auth_session: Any = None) -> ProviderResult:
        failure = self._begin("grant_entitlement", auth_session)
        if failure is not None:
            return failure
        if identity_key not in self.identities:
            return self._missing(identity_key)

        entitlements = self.identities[identity_key]["entitlements"]
        if entitlement in entitlements:
            return ProviderResult(True, f"{identity_key} already holds {entitlement.get('id')}", changed=False)
        entitlements.append(dict(entitlement))
        logger.info(f"Mock granted {entitlement.get('id')} to {identity_key}")
        return ProviderResult(True, f"Granted {entitlement.get('id')} to {identity_key}", changed=True)

    def revoke_entitlement(self, identity_key: str, entitlement: Dict[str, Any],
                           auth_session: Any = None) -> ProviderResult:
        failure = self._begin("revoke_entitlement", auth_session)
        if failure is not None:
            return failure
        if identity_key not in self.identities:
            return self._missing(identity_key)

        entitlements = self.identities[identity_key]["entitlements"]
        if entitlement not in entitlements:
            return ProviderResult(True, f"{identity_key} does not hold {entitlement.get('id')}", changed=False)
        entitlements.remove(entitlement)
        logger.info(f"Mock revoked {entitlement.get('id')} from {identity_key}")
        return ProviderResult(True, f"Revoked {entitlement.get('id')} from {identity_key}", changed=True)

    def list_entitlements(self, identity_key: str, auth_session: Any = None) -> ProviderResult:
        failure = self._begin("list_entitlements", auth_session)
        if failure is not None:
            return failure
        if identity_key not in self.identities:
            return self._missing(identity_key)
        return ProviderResult(True, f"Entitlements for {identity_key}",
                              list(self.identities[identity_key]["entitlements"]))

    def move_identity(self, identity_key: str, target_container: str,
                      auth_session: Any = None) -> ProviderResult:
        failure = self._begin("move_identity", auth_session)
        if failure is not None:
            return failure
        if identity_key not in self.identities:
            return self._missing(identity_key)

        identity = self.identities[identity_key]
        if identity["container"] == target_container:
            return ProviderResult(True, f"{identity_key} already in {target_container}", changed=False)
        identity["container"] = target_container
        logger.info(f"Mock moved {identity_key} to {target_container}")
        return ProviderResult(True, f"Moved {identity_key} to {target_container}", changed=True)

    def get_mock_state(self) -> Dict[str, Any]:
        """Get current mock state for inspection."""
        return {"identities": self.identities, "calls": list(self.calls)}
