"""
Shared fixtures for the IdLE Engine tests.
"""

from pathlib import Path

import pytest

from idle_engine.auth import AuthSessionBroker
from idle_engine.providers import MockProvider

SAMPLE_DIR = Path(__file__).resolve().parent.parent / "sample_workflows"


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end tests across components")


@pytest.fixture
def mock_provider():
    """In-memory identity provider."""
    return MockProvider()


@pytest.fixture
def providers(mock_provider):
    """Provider registry with a single mock identity provider."""
    return {"identity": mock_provider}


@pytest.fixture
def session_broker():
    """Broker with a default session and two named routes."""
    return AuthSessionBroker(
        [
            ({"auth_session_name": "directory", "role": "admin"},
             {"session_kind": "Credential", "session": "directory-admin"}),
            ({"auth_session_name": "directory"},
             {"session_kind": "Credential", "session": "directory-reader"}),
        ],
        default_session={"session_kind": "Credential", "session": "default-account"},
    )


@pytest.fixture
def joiner_workflow():
    """Joiner workflow document without auth sessions."""
    return {
        "name": "Joiner - Test",
        "lifecycle_event": "Joiner",
        "steps": [
            {
                "name": "CreateAccount",
                "type": "CreateIdentity",
                "requires_capabilities": ["Identity.Create"],
                "with": {
                    "identity_key": "{{request.identity_keys.employee_id}}",
                    "attributes": {"department": "{{request.desired_state.department}}"},
                },
            },
            {
                "name": "GrantEngineering",
                "type": "EnsureEntitlement",
                "requires_capabilities": ["Identity.Entitlement.Grant"],
                "condition": {"equals": {"path": "request.desired_state.department", "value": "Engineering"}},
                "with": {
                    "identity_key": "{{request.identity_keys.employee_id}}",
                    "entitlement": {"id": "grp-engineering", "kind": "Group"},
                },
            },
            {
                "name": "Announce",
                "type": "EmitEvent",
                "with": {"message": "Joiner {{request.identity_keys.employee_id}} done"},
            },
        ],
        "on_failure_steps": [
            {"name": "ReportFailure", "type": "EmitEvent", "with": {"message": "Joiner failed"}},
        ],
    }


@pytest.fixture
def joiner_request():
    """Lifecycle request matching ``joiner_workflow``."""
    return {
        "lifecycle_event": "Joiner",
        "correlation_id": "corr-0001",
        "actor": "hr-system",
        "identity_keys": {"employee_id": "EMP001"},
        "desired_state": {"department": "Engineering", "display_name": "Jane Doe"},
    }


@pytest.fixture
def sleeps():
    """Records sleep calls instead of sleeping."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def sample_dir():
    return SAMPLE_DIR
