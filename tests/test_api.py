"""
Tests for the HTTP surface: health, read-only sessions API, cron triggers.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio

from deliberation.core.dependencies import get_db
from deliberation.core.flags import get_flags
from deliberation.factory import create_app
from deliberation.models import SessionStatus, TurnStatus
from deliberation.scheduler.turn_scheduler import advance_turns
from tests.helpers import NOW, add_agent, add_topic, start_session

SECRET = {"X-Cron-Secret": "test-secret"}


@pytest_asyncio.fixture
async def api(session_factory):
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


async def _played_session(factory, client, max_turns=1):
    topic = await add_topic(factory)
    agents = [await add_agent(factory, "Alice"), await add_agent(factory, "Bob")]
    session = await start_session(factory, topic, agents, max_turns=max_turns)
    await advance_turns(NOW, factory, client)
    return session, agents


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, api):
        resp = await api.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestSessionsApi:
    """Test the read-only session endpoints."""

    @pytest.mark.asyncio
    async def test_list_and_filter(self, api, session_factory, client):
        finished, _ = await _played_session(session_factory, client)
        topic = await add_topic(session_factory, "Another topic")
        pending = await start_session(session_factory, topic, [], status=SessionStatus.PENDING.value,
                                      first_turn=False)

        resp = await api.get("/v1/sessions")
        assert resp.status_code == 200
        assert {s["id"] for s in resp.json()} == {finished.id, pending.id}

        resp = await api.get("/v1/sessions", params={"status": "completed"})
        [only] = resp.json()
        assert only["id"] == finished.id
        assert only["topic_title"] == "Should cities ban cars?"
        assert only["current_turn"] == 1
        assert only["mode"] == "double_diamond"

    @pytest.mark.asyncio
    async def test_pagination(self, api, session_factory):
        topic = await add_topic(session_factory)
        for _ in range(3):
            await start_session(session_factory, topic, [], first_turn=False)

        resp = await api.get("/v1/sessions", params={"limit": 2})
        assert len(resp.json()) == 2
        resp = await api.get("/v1/sessions", params={"limit": 2, "offset": 2})
        assert len(resp.json()) == 1

    @pytest.mark.asyncio
    async def test_invalid_status_filter(self, api):
        resp = await api.get("/v1/sessions", params={"status": "sleeping"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_detail_has_verdict_and_participants(self, api, session_factory, client):
        session, agents = await _played_session(session_factory, client)

        resp = await api.get(f"/v1/sessions/{session.id}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == SessionStatus.COMPLETED.value
        assert body["judge_verdict"]["quality_score"] == 6
        assert body["summary"]
        assert sorted(p["name"] for p in body["participants"]) == ["Alice", "Bob"]

    @pytest.mark.asyncio
    async def test_turns_with_statements(self, api, session_factory, client):
        session, _ = await _played_session(session_factory, client, max_turns=2)

        resp = await api.get(f"/v1/sessions/{session.id}/turns")
        assert resp.status_code == 200
        turns = resp.json()
        assert [(t["turn_number"], t["status"]) for t in turns] == [
            (1, TurnStatus.COMPLETED.value),
            (2, TurnStatus.PENDING.value),
        ]
        statements = turns[0]["statements"]
        assert sorted(s["agent_name"] for s in statements) == ["Alice", "Bob"]
        assert all(s["thinking_process"] for s in statements)
        assert turns[1]["statements"] == []

    @pytest.mark.asyncio
    async def test_unknown_session(self, api):
        assert (await api.get("/v1/sessions/nope")).status_code == 404
        assert (await api.get("/v1/sessions/nope/turns")).status_code == 404


class TestModesApi:
    @pytest.mark.asyncio
    async def test_lists_modes(self, api):
        resp = await api.get("/v1/modes")
        assert resp.status_code == 200
        modes = {m["name"]: m["default_max_turns"] for m in resp.json()}
        assert modes == {"double_diamond": 10, "free_discussion": 6, "tutorial": 3}


class TestCronApi:
    """Test the scheduler triggers."""

    @pytest.mark.asyncio
    async def test_requires_secret(self, api):
        with patch("deliberation.api.cron.run_turn_scheduler", new=AsyncMock()) as run:
            resp = await api.post("/internal/cron/turns")
            assert resp.status_code == 401
            resp = await api.post("/internal/cron/turns", headers={"X-Cron-Secret": "wrong"})
            assert resp.status_code == 401
            run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_runs_turn_pass(self, api):
        with patch("deliberation.api.cron.run_turn_scheduler", new=AsyncMock()) as run:
            resp = await api.post("/internal/cron/turns", headers=SECRET)
        assert resp.status_code == 200
        assert resp.json()["scheduler"] == "turns"
        run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_runs_session_pass(self, api):
        with patch("deliberation.api.cron.run_session_scheduler", new=AsyncMock()) as run:
            resp = await api.post("/internal/cron/sessions", headers=SECRET)
        assert resp.status_code == 200
        run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disabled_by_flag(self, api, monkeypatch):
        monkeypatch.setattr(get_flags(), "enable_cron_endpoints", False)
        with patch("deliberation.api.cron.run_turn_scheduler", new=AsyncMock()) as run:
            resp = await api.post("/internal/cron/turns", headers=SECRET)
        assert resp.status_code == 404
        run.assert_not_awaited()
