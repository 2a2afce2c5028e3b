"""
Auth Package.

Exports the AuthSessionBroker and its reserved routing key.
"""

from .session_broker import AUTH_SESSION_NAME_KEY, AuthSessionBroker

__all__ = ["AuthSessionBroker", "AUTH_SESSION_NAME_KEY"]
