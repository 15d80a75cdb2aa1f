"""
Unit tests for the error taxonomy and typed events
"""

from research_orchestrator.core.events import (
    EventType,
    OrchestratorEvent,
    event_artifact,
    event_session_status_updated,
)
from research_orchestrator.core.exceptions import (
    ContractViolationError,
    DependencyTimeoutError,
    NotFoundError,
    NotRunningError,
    OrchestratorError,
)


class TestExceptions:

    def test_all_errors_share_base(self):
        for error in (
            ContractViolationError("echo", ["pause"]),
            DependencyTimeoutError("w1", ["a"], 300),
            NotFoundError("Session", "s1"),
            NotRunningError("w1", "completed"),
        ):
            assert isinstance(error, OrchestratorError)
            assert error.to_dict()["error"] == type(error).__name__

    def test_dependency_timeout_message(self):
        error = DependencyTimeoutError("w1", ["sources", "analysis"], 300)

        assert error.message == "Dependency timeout after 300s for worker w1; missing: sources, analysis"
        assert error.details["missing_keys"] == ["sources", "analysis"]

    def test_not_running_message(self):
        assert NotRunningError("w1").message == "Worker w1 is not running"
        assert NotRunningError("w1", "registered").message == "Worker w1 is not running (status: registered)"


class TestEvents:

    def test_event_types_are_strings(self):
        assert EventType.SESSION_STATUS_UPDATED == "session_status_updated"
        assert EventType("worker_error") is EventType.WORKER_ERROR

    def test_session_status_payload(self):
        event = event_session_status_updated("s1", "completed", 2, 3, failed_workers=1)

        assert isinstance(event, OrchestratorEvent)
        assert event.session_id == "s1"
        assert event.data == {
            "session_id": "s1",
            "status": "completed",
            "completed_workers": 2,
            "failed_workers": 1,
            "total_workers": 3,
        }

    def test_artifact_payload(self):
        artifact = {
            "id": "a1",
            "session_id": "s1",
            "agent_id": "w1",
            "artifact_type": "report",
            "status": "final",
            "version": 3,
        }

        event = event_artifact(EventType.ARTIFACT_UPDATED, artifact)

        assert event.event == EventType.ARTIFACT_UPDATED
        assert event.data["worker_id"] == "w1"
        assert event.data["version"] == 3
