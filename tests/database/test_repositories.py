"""
Unit tests for the SQLAlchemy repositories against in-memory SQLite
"""

from datetime import datetime

import pytest

from research_orchestrator.database.repository import shared_owner_id


@pytest.fixture
def repos(repositories):
    return repositories


@pytest.fixture
def make_session(repos):
    async def _make(user_id="user-1", topic="Topic"):
        return await repos["sessions"].create(user_id, topic, {"depth": "quick"})

    return _make


# ============================================================================
# SESSIONS
# ============================================================================

class TestSessionRepository:

    @pytest.mark.asyncio
    async def test_create_and_get(self, repos, make_session):
        session = await make_session()

        fetched = await repos["sessions"].get(session["id"])

        assert fetched["status"] == "created"
        assert fetched["preferences"] == {"depth": "quick"}
        assert fetched["completed_at"] is None

    @pytest.mark.asyncio
    async def test_update_ignores_unknown_fields(self, repos, make_session):
        session = await make_session()

        updated = await repos["sessions"].update(
            session["id"],
            {"status": "completed", "completed_at": datetime(2024, 1, 1), "user_id": "hijack"},
        )

        assert updated["status"] == "completed"
        assert updated["completed_at"].startswith("2024-01-01")
        assert updated["user_id"] == "user-1"

    @pytest.mark.asyncio
    async def test_update_missing_session(self, repos):
        assert await repos["sessions"].update("missing", {"status": "running"}) is None

    @pytest.mark.asyncio
    async def test_list_for_user(self, repos, make_session):
        await make_session("user-1", "A")
        await make_session("user-1", "B")
        await make_session("user-2", "C")

        sessions = await repos["sessions"].list_for_user("user-1")

        assert sorted(s["research_topic"] for s in sessions) == ["A", "B"]
        assert len(await repos["sessions"].list_for_user("user-1", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_delete_cascades(self, repos, make_session):
        session = await make_session()
        sid = session["id"]
        await repos["artifacts"].create(sid, "w1", "report", {"x": 1})
        await repos["memory"].upsert("w1", sid, "k", 1)
        await repos["messages"].create(sid, "w1", None, "note", {})
        await repos["logs"].create(sid, "w1", "info", "hello")
        await repos["workers"].upsert("w1", sid, "echo", "running")
        await repos["feedback"].create(sid, "user-1", "nice")

        assert await repos["sessions"].delete(sid) is True

        assert await repos["sessions"].get(sid) is None
        assert await repos["artifacts"].list(sid) == []
        assert await repos["memory"].list_for_owner("w1") == []
        assert await repos["messages"].list_for_session(sid) == []
        assert await repos["logs"].list(sid) == []
        assert await repos["workers"].list_for_session(sid) == []
        assert await repos["feedback"].list_for_session(sid) == []
        assert await repos["sessions"].delete(sid) is False


# ============================================================================
# ARTIFACTS
# ============================================================================

class TestArtifactRepository:

    @pytest.mark.asyncio
    async def test_update_bumps_version_and_merges_metadata(self, repos, make_session):
        session = await make_session()
        artifact = await repos["artifacts"].create(session["id"], "w1", "report", {"v": 1}, metadata={"a": 1})

        updated = await repos["artifacts"].update(artifact["id"], content={"v": 2}, metadata={"b": 2}, status="final")

        assert updated["version"] == 2
        assert updated["content"] == {"v": 2}
        assert updated["metadata"] == {"a": 1, "b": 2}
        assert updated["status"] == "final"
        assert artifact["artifact_name"].startswith("report_")

    @pytest.mark.asyncio
    async def test_get_respects_session(self, repos, make_session):
        session = await make_session()
        artifact = await repos["artifacts"].create(session["id"], "w1", "report", {})

        assert await repos["artifacts"].get(artifact["id"], session_id="other") is None
        assert (await repos["artifacts"].get(artifact["id"]))["id"] == artifact["id"]

    @pytest.mark.asyncio
    async def test_list_filters(self, repos, make_session):
        sid = (await make_session())["id"]
        await repos["artifacts"].create(sid, "w1", "report", {}, status="final")
        await repos["artifacts"].create(sid, "w1", "outline", {})
        await repos["artifacts"].create(sid, "w2", "report", {})

        assert len(await repos["artifacts"].list(sid)) == 3
        assert len(await repos["artifacts"].list(sid, artifact_type="report")) == 2
        assert len(await repos["artifacts"].list(sid, status="final")) == 1
        assert len(await repos["artifacts"].list(sid, agent_id="w2")) == 1
        assert len(await repos["artifacts"].list(sid, limit=2)) == 2

    @pytest.mark.asyncio
    async def test_delete_for_session_with_exclusions(self, repos, make_session):
        sid = (await make_session())["id"]
        keep = await repos["artifacts"].create(sid, "w1", "report", {})
        await repos["artifacts"].create(sid, "w2", "report", {})

        deleted = await repos["artifacts"].delete_for_session(sid, exclude_ids=[keep["id"]])

        assert deleted == 1
        assert [a["id"] for a in await repos["artifacts"].list(sid)] == [keep["id"]]


# ============================================================================
# MEMORY / MESSAGES / LOGS / WORKERS
# ============================================================================

class TestMemoryRepository:

    @pytest.mark.asyncio
    async def test_upsert_overwrites(self, repos, make_session):
        sid = (await make_session())["id"]

        await repos["memory"].upsert("w1", sid, "k", 1)
        await repos["memory"].upsert("w1", sid, "k", 2, metadata={"src": "x"})

        row = await repos["memory"].get("w1", "k")
        assert row["value"] == 2
        assert row["metadata"] == {"src": "x"}
        assert len(await repos["memory"].list_for_owner("w1")) == 1

    @pytest.mark.asyncio
    async def test_search(self, repos, make_session):
        sid = (await make_session())["id"]
        await repos["memory"].upsert("w1", sid, "battery_notes", "lithium")
        await repos["memory"].upsert("w1", sid, "other", "solar")

        results = await repos["memory"].search("w1", "LITHIUM")

        assert [r["key"] for r in results] == ["battery_notes"]

    @pytest.mark.asyncio
    async def test_delete_for_session_by_type(self, repos, make_session):
        sid = (await make_session())["id"]
        await repos["memory"].upsert("w1", sid, "private_key", 1)
        await repos["memory"].upsert(shared_owner_id(sid), sid, "a", 1, memory_type="shared")
        await repos["memory"].upsert(shared_owner_id(sid), sid, "b", 2, memory_type="shared")

        deleted = await repos["memory"].delete_for_session(sid, memory_type="shared", exclude_keys=["b"])

        assert deleted == 1
        assert [r["key"] for r in await repos["memory"].list_for_owner(shared_owner_id(sid))] == ["b"]
        assert await repos["memory"].get("w1", "private_key") is not None


class TestMessageAndLogRepositories:

    @pytest.mark.asyncio
    async def test_mark_delivered(self, repos, make_session):
        sid = (await make_session())["id"]
        message = await repos["messages"].create(sid, "w1", "w2", "task", {"n": 1})

        assert message["status"] == "sent"
        assert await repos["messages"].mark_delivered(message["id"]) is True
        assert await repos["messages"].mark_delivered("missing") is False

        delivered = await repos["messages"].list_for_session(sid, status="delivered")
        assert delivered[0]["processed_at"] is not None

    @pytest.mark.asyncio
    async def test_log_filters(self, repos, make_session):
        sid = (await make_session())["id"]
        await repos["logs"].create(sid, "w1", "info", "one")
        await repos["logs"].create(sid, "w1", "error", "two", {"code": 1})
        await repos["logs"].create(sid, "w2", "info", "three")

        assert [log["message"] for log in await repos["logs"].list(sid)] == ["three", "two", "one"]
        assert [log["message"] for log in await repos["logs"].list(sid, log_level="error")] == ["two"]
        assert [log["message"] for log in await repos["logs"].list(sid, agent_id="w2")] == ["three"]
        assert len(await repos["logs"].list(sid, limit=1, offset=1)) == 1

    @pytest.mark.asyncio
    async def test_worker_upsert(self, repos, make_session):
        sid = (await make_session())["id"]

        await repos["workers"].upsert("w1", sid, "echo", "starting", {"q": 1})
        await repos["workers"].upsert("w1", sid, "echo", "completed", {"q": 1}, progress=100)

        worker = await repos["workers"].get("w1")
        assert (worker["status"], worker["progress"]) == ("completed", 100)
        assert len(await repos["workers"].list_for_session(sid)) == 1


# ============================================================================
# SESSION MANAGER
# ============================================================================

class TestSessionManager:

    def test_connection(self, session_manager):
        assert session_manager.test_connection() is True

    def test_mask_db_url(self, session_manager):
        masked = session_manager._mask_db_url("postgresql://admin:secret@db:5432/research")

        assert masked == "postgresql://***:***@db:5432/research"
        assert "secret" not in masked

    def test_failed_transaction_rolls_back(self, session_manager, repos):
        from research_orchestrator.database.models import AgentSessions

        with pytest.raises(RuntimeError):
            with session_manager.create_session() as db:
                db.add(AgentSessions(user_id="user-1", research_topic="Rolled back", preferences={}, status="created"))
                db.flush()
                raise RuntimeError("abort")

        with session_manager.create_session() as db:
            assert db.query(AgentSessions).count() == 0
