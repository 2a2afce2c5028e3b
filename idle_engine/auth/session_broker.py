"""
Auth Session Broker for the IdLE Engine.

Routes credential requests to previously registered session handles. A
broker is built from an ordered session map of ``(pattern, descriptor)``
pairs plus an optional default descriptor. Patterns are attribute mappings;
the reserved ``auth_session_name`` attribute routes by name, all other
attributes must match the requested options exactly.

Matching never guesses: two equally good matches are a configuration bug
and fail with ``AmbiguousSessionError``.
"""

import logging
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from ..engine.events import AuthSessionAcquirer
from ..engine.security_guard import assert_no_executable_content
from ..errors import (
    AmbiguousSessionError,
    InvalidSessionDescriptorError,
    NoDefaultSessionError,
    NoMatchingSessionError,
    SessionError,
)
from ..models import AuthSessionDescriptor

logger = logging.getLogger(__name__)

AUTH_SESSION_NAME_KEY = "auth_session_name"

DescriptorLike = Union[AuthSessionDescriptor, Mapping]


class AuthSessionBroker(AuthSessionAcquirer):
    """
    Maps a routing key (name + option attributes) to a session handle.

    The broker owns the routing table; handlers only ever receive the
    session handle returned by ``acquire_auth_session``.
    """

    def __init__(
        self,
        session_map: Optional[Iterable[Tuple[Mapping, DescriptorLike]]] = None,
        default_session: Optional[DescriptorLike] = None,
    ):
        """
        Initialize the broker.

        Args:
            session_map: Ordered ``(pattern, descriptor)`` pairs
            default_session: Descriptor returned for the default request
                             and when nothing matches
        """
        self._entries: List[Tuple[dict, DescriptorLike]] = []
        for index, entry in enumerate(session_map or []):
            try:
                pattern, descriptor = entry
            except (TypeError, ValueError) as e:
                raise SessionError(f"Session map entry {index} must be a (pattern, descriptor) pair") from e
            if not isinstance(pattern, Mapping) or not pattern:
                raise SessionError(f"Session map entry {index} has an empty or non-mapping pattern")
            assert_no_executable_content(pattern, f"SessionMap[{index}].pattern")
            self._entries.append((dict(pattern), descriptor))
        self._default = default_session

        logger.info(f"Initialized AuthSessionBroker with {len(self._entries)} session patterns "
                    f"(default={'yes' if default_session is not None else 'no'})")

    @property
    def has_default(self) -> bool:
        return self._default is not None

    @property
    def session_names(self) -> List[str]:
        """Names used by name-keyed patterns, in registration order."""
        names: List[str] = []
        for pattern, _ in self._entries:
            name = pattern.get(AUTH_SESSION_NAME_KEY)
            if name is not None and name not in names:
                names.append(name)
        return names

    def acquire_auth_session(self, name: Optional[str] = "", options: Optional[Mapping] = None) -> Any:
        """
        Resolve a session handle.

        Args:
            name: Session name; empty requests the default session
            options: Attribute values used for pattern matching

        Returns:
            The opaque session handle of the single matching descriptor

        Raises:
            NoDefaultSessionError: Default requested but none configured
            NoMatchingSessionError: Nothing matched and no default configured
            AmbiguousSessionError: More than one pattern matched
            InvalidSessionDescriptorError: The matched descriptor is malformed
        """
        name = name or ""
        if options is not None:
            if not isinstance(options, Mapping):
                raise SessionError(f"Auth session options must be a mapping, got {type(options).__name__}")
            assert_no_executable_content(options, "AuthSessionOptions")
        options = dict(options or {})

        if not name:
            if self._default is None:
                raise NoDefaultSessionError("Default auth session requested but no default session is configured")
            logger.debug("Resolved default auth session")
            return self._validate(self._default, "default").session

        matches = self._match_named(name, options) or self._match_legacy(options)

        if len(matches) > 1:
            raise AmbiguousSessionError(
                f"Auth session request '{name}' matched {len(matches)} session patterns; "
                "make the session map patterns unique",
                detail={"auth_session_name": name, "option_keys": sorted(options),
                        "matched_patterns": [index for index, _ in matches]},
            )
        if len(matches) == 1:
            index, descriptor = matches[0]
            logger.debug(f"Resolved auth session '{name}' via pattern {index}")
            return self._validate(descriptor, f"pattern {index}").session

        if self._default is not None:
            logger.debug(f"No pattern matched auth session '{name}', using default session")
            return self._validate(self._default, "default").session

        raise NoMatchingSessionError(
            f"No auth session matches '{name}' and no default session is configured",
            detail={"auth_session_name": name, "option_keys": sorted(options)},
        )

    def _match_named(self, name: str, options: dict) -> List[Tuple[int, DescriptorLike]]:
        matches = []
        for index, (pattern, descriptor) in enumerate(self._entries):
            if pattern.get(AUTH_SESSION_NAME_KEY) != name:
                continue
            extra = {k: v for k, v in pattern.items() if k != AUTH_SESSION_NAME_KEY}
            if not extra:
                if not options:
                    matches.append((index, descriptor))
            elif all(key in options and options[key] == value for key, value in extra.items()):
                matches.append((index, descriptor))
        return matches

    def _match_legacy(self, options: dict) -> List[Tuple[int, DescriptorLike]]:
        if not options:
            return []
        return [
            (index, descriptor)
            for index, (pattern, descriptor) in enumerate(self._entries)
            if AUTH_SESSION_NAME_KEY not in pattern
            and all(key in options and options[key] == value for key, value in pattern.items())
        ]

    @staticmethod
    def _validate(descriptor: DescriptorLike, where: str) -> AuthSessionDescriptor:
        if isinstance(descriptor, AuthSessionDescriptor):
            return descriptor
        if not isinstance(descriptor, Mapping):
            raise InvalidSessionDescriptorError(
                f"Session descriptor for {where} must be a mapping, got {type(descriptor).__name__}"
            )
        try:
            return AuthSessionDescriptor.model_validate(descriptor)
        except ValidationError as e:
            raise InvalidSessionDescriptorError(
                f"Session descriptor for {where} is invalid: {e.errors()[0]['msg']}",
                detail={"where": where},
            ) from e
