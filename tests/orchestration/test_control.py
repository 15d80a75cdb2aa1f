"""
Unit tests for SessionControl

Every operation returns a ControlResult; errors map onto 404 / 400 / 500.
"""

from unittest.mock import AsyncMock

import pytest

from research_orchestrator.core.exceptions import InvalidStateError, NotFoundError
from research_orchestrator.orchestration import ControlResult, SessionControl
from research_orchestrator.orchestration.control import error_result


@pytest.fixture
def control(orchestrator):
    return SessionControl(orchestrator)


# ============================================================================
# ERROR MAPPING
# ============================================================================

class TestErrorMapping:

    def test_not_found_is_404(self):
        result = error_result(NotFoundError("Session", "s1"))

        assert result.success is False
        assert result.status_code == 404
        assert result.error.code == "NOT_FOUND"
        assert "s1" in result.error.message

    def test_invalid_state_is_400(self):
        result = error_result(InvalidStateError("Session", "s1", "running", "restart"))

        assert (result.status_code, result.error.code) == (400, "INVALID_STATE")

    def test_unexpected_is_500(self):
        result = error_result(RuntimeError("kaboom"))

        assert (result.status_code, result.error.code) == (500, "INTERNAL_ERROR")
        assert result.error.message == "kaboom"


# ============================================================================
# OPERATIONS
# ============================================================================

class TestSessionControl:

    @pytest.mark.asyncio
    async def test_create_session(self, control):
        result = await control.create_session("user-1", "  Quantum sensing  ", {"depth": "deep"})

        assert isinstance(result, ControlResult)
        assert result.success and result.status_code == 201
        assert result.data["research_topic"] == "Quantum sensing"

    @pytest.mark.asyncio
    async def test_create_session_requires_topic(self, control):
        result = await control.create_session("user-1", "   ")

        assert (result.status_code, result.error.code) == (400, "BAD_REQUEST")

    @pytest.mark.asyncio
    async def test_create_session_from_template(self, control):
        result = await control.create_session("user-1", "EV market", {"max_sources": 5}, template_id="market_research")

        preferences = result.data["preferences"]
        assert preferences["template_id"] == "market_research"
        assert preferences["max_sources"] == 5
        assert preferences["output_format"] == "business_report"

    @pytest.mark.asyncio
    async def test_template_session_starts_with_template_types(self, control, orchestrator):
        created = await control.create_session("user-1", "Fusion startups", template_id="quick_overview")
        session_id = created.data["id"]

        started = await control.start_session(session_id, "user-1")

        assert started.success, started.error
        assert [w["worker_type"] for w in started.data["workers"]] == ["echo"]
        final = await orchestrator.wait_for_session(session_id, timeout=5)
        assert final["status"] == "completed"

    @pytest.mark.asyncio
    async def test_unknown_template(self, control):
        result = await control.create_session("user-1", "Topic", template_id="nope")

        assert result.status_code == 404

    @pytest.mark.asyncio
    async def test_other_users_session_is_404(self, control, session):
        result = await control.get_session(session["id"], "user-2")

        assert result.status_code == 404
        assert result.error.message.endswith("not found or access denied")

    @pytest.mark.asyncio
    async def test_start_and_stats(self, control, orchestrator, session):
        started = await control.start_session(session["id"], "user-1")
        assert started.success
        assert [w["worker_type"] for w in started.data["workers"]] == ["echo"]

        await orchestrator.wait_for_session(session["id"], timeout=5)

        stats = await control.get_stats(session["id"], "user-1")
        assert stats.data["session"]["status"] == "completed"

        progress = await control.get_progress(session["id"], "user-1")
        assert progress.data["overall_progress"] == 100

        artifacts = await control.list_artifacts(session["id"], "user-1", status="final")
        assert len(artifacts.data) == 1

        artifact = await control.get_artifact(session["id"], artifacts.data[0]["id"], "user-1")
        assert artifact.success

        logs = await control.list_logs(session["id"], "user-1", level="info")
        assert logs.success and logs.data

    @pytest.mark.asyncio
    async def test_restart_while_created_is_400(self, control, session):
        result = await control.restart_session(session["id"], "user-1", {"clear_memory": True})

        assert (result.status_code, result.error.code) == (400, "INVALID_STATE")

    @pytest.mark.asyncio
    async def test_resume_when_not_paused_is_400(self, control, session):
        result = await control.resume_session(session["id"], "user-1")

        assert result.status_code == 400

    @pytest.mark.asyncio
    async def test_empty_feedback_is_400(self, control, session):
        result = await control.provide_feedback(session["id"], "user-1", "")

        assert (result.status_code, result.error.code) == (400, "BAD_REQUEST")

    @pytest.mark.asyncio
    async def test_feedback_created(self, control, session):
        result = await control.provide_feedback(session["id"], "user-1", "Looks good", priority="low")

        assert result.status_code == 201
        assert result.data["priority"] == "low"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self, control, orchestrator):
        orchestrator.get_session = AsyncMock(side_effect=RuntimeError("db down"))

        result = await control.get_session("s1", "user-1")

        assert (result.status_code, result.error.code) == (500, "INTERNAL_ERROR")

    @pytest.mark.asyncio
    async def test_update_and_delete(self, control, session):
        updated = await control.update_session(session["id"], "user-1", {"research_topic": "New topic"})
        assert updated.data["research_topic"] == "New topic"

        deleted = await control.delete_session(session["id"], "user-1")
        assert deleted.success

        listed = await control.list_sessions("user-1")
        assert listed.data == []


class TestCatalog:

    @pytest.mark.asyncio
    async def test_agent_types(self, control):
        result = await control.list_agent_types()

        assert "echo" in result.data["agent_types"]

    @pytest.mark.asyncio
    async def test_research_templates(self, control):
        result = await control.list_research_templates()

        ids = [t["id"] for t in result.data["templates"]]
        assert ids == ["academic_research", "market_research", "technical_analysis", "quick_overview"]
