"""
Built-in step handlers.

Identity steps resolve a provider by alias (``with.provider``, default
``identity``) and call the matching domain method. A provider result with
``success=False`` fails the step; ``transient=True`` makes it retryable.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict

from ..errors import StepError, TransientStepError
from .registry import StepHandler, StepRegistry

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_ALIAS = "identity"


def _require(step, key: str) -> Any:
    value = step.with_.get(key)
    if value is None or value == "":
        raise StepError(f"Step '{step.name}' ({step.type}) requires 'with.{key}'",
                        detail={"step": step.name, "missing": key})
    return value


def _call_provider(context, step, operation: str, *args, session: Any = None) -> Dict[str, Any]:
    alias = step.with_.get("provider", DEFAULT_PROVIDER_ALIAS)
    provider = context.providers.get(alias)
    if provider is None:
        raise StepError(f"No provider configured under alias '{alias}'", detail={"provider": alias})

    method = getattr(provider, operation, None)
    if not callable(method):
        raise StepError(f"Provider '{alias}' does not implement {operation}",
                        detail={"provider": alias, "operation": operation})

    kwargs = {}
    if session is not None and getattr(provider, "supports_auth_session", False):
        kwargs["auth_session"] = session

    result = method(*args, **kwargs)

    if result is None:
        return {"changed": False}
    if not hasattr(result, "success"):
        return {"changed": bool(getattr(result, "changed", False))}
    if not result.success:
        message = f"{alias}.{operation}: {result.error or result.message or 'Unknown error'}"
        if getattr(result, "transient", False):
            raise TransientStepError(message, detail={"provider": alias, "operation": operation})
        raise StepError(message, detail={"provider": alias, "operation": operation})

    logger.info(f"Step completed: {alias}.{operation} ({result.message})")
    data = {"message": result.message}
    if isinstance(result.data, Mapping):
        data["result"] = dict(result.data)
    return {"changed": bool(result.changed), "data": data}


class EmitEventStep(StepHandler):
    """Emits a custom event into the run's event stream."""

    def execute(self, context, step, session: Any = None) -> Any:
        message = step.with_.get("message") or f"Step '{step.name}' emitted an event"
        data = step.with_.get("data") or {}
        if not isinstance(data, Mapping):
            raise StepError(f"Step '{step.name}' expects 'with.data' to be a mapping")
        context.emit_event("Custom", str(message), data=dict(data))
        return {"changed": False}


class CreateIdentityStep(StepHandler):
    supports_session = True

    def execute(self, context, step, session: Any = None) -> Any:
        attributes = step.with_.get("attributes") or {}
        return _call_provider(context, step, "create_identity",
                              _require(step, "identity_key"), dict(attributes), session=session)


class EnsureAttributeStep(StepHandler):
    supports_session = True

    def execute(self, context, step, session: Any = None) -> Any:
        if "value" not in step.with_:
            raise StepError(f"Step '{step.name}' ({step.type}) requires 'with.value'")
        return _call_provider(context, step, "ensure_attribute",
                              _require(step, "identity_key"), _require(step, "name"),
                              step.with_["value"], session=session)


class _IdentityOperationStep(StepHandler):
    supports_session = True
    operation = ""

    def execute(self, context, step, session: Any = None) -> Any:
        return _call_provider(context, step, self.operation, _require(step, "identity_key"), session=session)


class DisableIdentityStep(_IdentityOperationStep):
    operation = "disable_identity"


class EnableIdentityStep(_IdentityOperationStep):
    operation = "enable_identity"


class DeleteIdentityStep(_IdentityOperationStep):
    operation = "delete_identity"


class EnsureEntitlementStep(StepHandler):
    """Grants (``state: present``) or revokes (``state: absent``) an entitlement."""

    supports_session = True
    operation_map = {
        "present": "grant_entitlement",
        "absent": "revoke_entitlement",
    }

    def execute(self, context, step, session: Any = None) -> Any:
        entitlement = _require(step, "entitlement")
        if not isinstance(entitlement, Mapping) or "id" not in entitlement:
            raise StepError(f"Step '{step.name}' expects 'with.entitlement' to be a mapping with an 'id'")
        state = str(step.with_.get("state", "present")).lower()
        if state not in self.operation_map:
            raise StepError(f"Step '{step.name}' has invalid entitlement state '{state}'")
        return _call_provider(context, step, self.operation_map[state],
                              _require(step, "identity_key"), dict(entitlement), session=session)


class MoveIdentityStep(StepHandler):
    supports_session = True

    def execute(self, context, step, session: Any = None) -> Any:
        return _call_provider(context, step, "move_identity",
                              _require(step, "identity_key"), _require(step, "target_container"),
                              session=session)


BUILTIN_STEP_HANDLERS = {
    "EmitEvent": EmitEventStep(),
    "CreateIdentity": CreateIdentityStep(),
    "EnsureAttribute": EnsureAttributeStep(),
    "DisableIdentity": DisableIdentityStep(),
    "EnableIdentity": EnableIdentityStep(),
    "DeleteIdentity": DeleteIdentityStep(),
    "EnsureEntitlement": EnsureEntitlementStep(),
    "MoveIdentity": MoveIdentityStep(),
}


def builtin_step_registry() -> StepRegistry:
    """Registry pre-populated with the built-in handlers."""
    return StepRegistry(BUILTIN_STEP_HANDLERS)
