"""
Integration tests for the IdLE Engine.

Runs the shipped sample workflows through a complete joiner, mover and
leaver lifecycle against one shared provider registry.
"""

import json

import pytest

from idle_engine.audit import AuditLogger
from idle_engine.config import load_settings
from idle_engine.engine.executor import PlanExecutor
from idle_engine.engine.plan_builder import PlanBuilder
from idle_engine.engine.plan_export import export_plan
from idle_engine.models import RunStatus, StepStatus
from idle_engine.providers.factory import build_provider_registry


@pytest.mark.integration
class TestIdentityLifecycle:
    """Joiner, mover and leaver for the same employee."""

    @pytest.fixture
    def providers(self, sample_dir):
        return build_provider_registry(load_settings(sample_dir / "settings.yaml"))

    @pytest.fixture
    def executor(self, sample_dir):
        return PlanExecutor(retry_policy=load_settings(sample_dir / "settings.yaml").retry,
                            sleep=lambda seconds: None)

    @pytest.fixture
    def audit_logger(self, tmp_path):
        return AuditLogger(tmp_path / "audit")

    def _request(self, lifecycle_event, **extra):
        request = {
            "lifecycle_event": lifecycle_event,
            "correlation_id": f"int-{lifecycle_event.lower()}",
            "actor": "integration-test",
            "identity_keys": {"employee_id": "INT001"},
        }
        request.update(extra)
        return request

    def test_full_lifecycle(self, sample_dir, providers, executor, audit_logger):
        builder = PlanBuilder()
        identity = providers["identity"]

        joiner = builder.build(sample_dir / "joiner.yaml", self._request("Joiner", desired_state={
            "display_name": "Alice Johnson",
            "email": "alice@example.com",
            "department": "Engineering",
            "title": "Engineer",
        }), providers)
        result = executor.execute(joiner, providers, event_sink=audit_logger)

        assert result.status == RunStatus.COMPLETED
        assert identity.identities["INT001"]["attributes"]["title"] == "Engineer"
        assert identity.sessions_seen == ["directory-admin"]

        mover = builder.build(sample_dir / "mover.yaml", self._request(
            "Mover",
            desired_state={"previous_department": "Engineering"},
            changes={"department": "Finance"},
        ), providers)
        result = executor.execute(mover, providers, event_sink=audit_logger)

        assert result.status == RunStatus.COMPLETED
        assert identity.identities["INT001"]["container"] == "OU=Finance,DC=example,DC=com"
        assert identity.identities["INT001"]["entitlements"] == []

        leaver = builder.build(sample_dir / "leaver.yaml", self._request(
            "Leaver", desired_state={"delete_account": True}), providers)
        result = executor.execute(leaver, providers, event_sink=audit_logger)

        assert result.status == RunStatus.COMPLETED
        assert [s.status for s in result.steps] == [StepStatus.COMPLETED] * 3
        assert [s.changed for s in result.steps] == [True, False, True]
        assert "INT001" not in identity.identities

        for correlation_id in ("int-joiner", "int-mover", "int-leaver"):
            events = audit_logger.get_events(correlation_id=correlation_id)
            assert events[0].name == "RunStarted"
            assert events[-1].name == "RunCompleted"

    def test_leaver_for_unknown_identity_runs_cleanup(self, sample_dir, providers, executor):
        plan = PlanBuilder().build(sample_dir / "leaver.yaml", self._request("Leaver"), providers)

        result = executor.execute(plan, providers)

        assert result.status == RunStatus.FAILED
        assert [s.name for s in result.steps] == ["DisableAccount"]
        assert result.on_failure.steps[0].name == "ReportFailure"
        custom = [e for e in result.events if e.name == "Custom"]
        assert custom[0].data == {"actor": "integration-test"}

    def test_exported_plan_hides_session_handles(self, sample_dir, providers):
        plan = PlanBuilder().build(sample_dir / "joiner.yaml", self._request("Joiner", desired_state={
            "display_name": "Alice Johnson",
            "email": "alice@example.com",
            "department": "Sales",
        }), providers)

        document = json.loads(export_plan(plan))

        create = document["plan"]["steps"][0]
        assert create["with"]["auth_session_name"] == "directory"
        assert create["with"]["auth_session_options"] == {"role": "admin"}
        assert "directory-admin" not in export_plan(plan)
