"""
Tests for the HTTP API.
"""
import asyncio
import json

import pytest
from httpx import AsyncClient

from app.api.v1 import pumpkins as pumpkin_routes
from app.core.config import settings
from app.models.pumpkin import PumpkinStatus
from app.services import voting
from app.services.live import get_feed


async def register_and_login(client: AsyncClient, email: str, name: str) -> dict:
    response = await client.post("/api/v1/auth/register", json={
        "email": email,
        "password": "TestPass123",
        "passwordConfirm": "TestPass123",
        "display_name": name,
    })
    assert response.status_code == 201
    response = await client.post("/api/v1/auth/login", json={
        "email": email,
        "password": "TestPass123",
    })
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


class TestAuth:

    @pytest.mark.asyncio
    async def test_register_admin_email(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_EMAILS", ["Boss@Example.com"])

        response = await client.post("/api/v1/auth/register", json={
            "email": "boss@example.com",
            "password": "TestPass123",
            "passwordConfirm": "TestPass123",
            "display_name": "Boss",
        })

        assert response.status_code == 201
        assert response.json()["is_admin"] is True

    @pytest.mark.asyncio
    async def test_register_password_mismatch(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/register", json={
            "email": "someone@example.com",
            "password": "TestPass123",
            "passwordConfirm": "Different123",
            "display_name": "Someone",
        })
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client: AsyncClient, test_user):
        response = await client.post("/api/v1/auth/login", json={
            "email": "testuser@example.com",
            "password": "wrong-password",
        })
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_me_requires_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_refresh(self, client: AsyncClient, auth_headers: dict, test_user):
        response = await client.post("/api/v1/auth/refresh", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["record"]["id"] == test_user.id


class TestContestFlow:
    """Submit, moderate, vote, move the vote, read the leaderboard."""

    @pytest.mark.asyncio
    async def test_full_contest(self, client: AsyncClient, monkeypatch, pumpkin_payload: dict):
        monkeypatch.setattr(settings, "ADMIN_EMAILS", ["judge@example.com"])
        admin = await register_and_login(client, "judge@example.com", "Judge")
        alice = await register_and_login(client, "alice@example.com", "Alice")
        bob = await register_and_login(client, "bob@example.com", "Bob")

        response = await client.post("/api/v1/pumpkins", json=pumpkin_payload, headers=alice)
        assert response.status_code == 201
        spooky = response.json()
        assert spooky["status"] == "pending"

        pumpkin_payload["title"] = "Grinning"
        response = await client.post("/api/v1/pumpkins", json=pumpkin_payload, headers=bob)
        grinning = response.json()

        # Pending pumpkins are not in the public gallery
        response = await client.get("/api/v1/pumpkins")
        assert response.json()["total"] == 0

        response = await client.get("/api/v1/pumpkins", params={"status": "pending"}, headers=admin)
        assert response.json()["total"] == 2

        for pumpkin in (spooky, grinning):
            response = await client.post(f"/api/v1/admin/pumpkins/{pumpkin['id']}/approve", headers=admin)
            assert response.status_code == 200
            assert response.json()["status"] == "approved"

        response = await client.get("/api/v1/pumpkins")
        assert response.json()["total"] == 2

        response = await client.post("/api/v1/votes", json={"pumpkin_id": spooky["id"]}, headers=bob)
        assert response.status_code == 200
        assert response.json()["message"] == "Vote recorded"

        response = await client.post("/api/v1/votes", json={"pumpkin_id": spooky["id"]}, headers=alice)
        assert response.json()["changed"] is True

        response = await client.post("/api/v1/votes", json={"pumpkin_id": spooky["id"]}, headers=alice)
        assert response.json()["changed"] is False
        assert response.json()["message"] == "You already voted for this pumpkin"

        response = await client.get("/api/v1/leaderboard")
        board = response.json()
        assert board["winner_id"] == spooky["id"]
        assert board["total_votes"] == 2
        assert board["rankings"][0]["pumpkin"]["vote_count"] == 2

        response = await client.post("/api/v1/votes", json={"pumpkin_id": grinning["id"]}, headers=bob)
        data = response.json()
        assert data["message"] == "Vote changed"
        assert data["previous_pumpkin_id"] == spooky["id"]

        response = await client.get("/api/v1/votes/me", headers=bob)
        assert response.json()["voted_for"] == grinning["id"]

        response = await client.get("/api/v1/auth/me", headers=bob)
        assert response.json()["voted_for"] == grinning["id"]

        response = await client.get("/api/v1/votes/counts")
        assert response.json()["counts"] == {spooky["id"]: 1, grinning["id"]: 1}

        response = await client.get(f"/api/v1/pumpkins/{spooky['id']}")
        assert response.json()["vote_count"] == 1


class TestPumpkinEndpoints:

    @pytest.mark.asyncio
    async def test_submit_requires_login(self, client: AsyncClient, pumpkin_payload: dict):
        response = await client.post("/api/v1/pumpkins", json=pumpkin_payload)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_submit_rejects_bad_image(self, client: AsyncClient, auth_headers: dict, pumpkin_payload: dict):
        pumpkin_payload["image"] = "not-an-image"
        response = await client.post("/api/v1/pumpkins", json=pumpkin_payload, headers=auth_headers)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_submit_rejects_oversized_image(
        self, client: AsyncClient, auth_headers: dict, pumpkin_payload: dict, monkeypatch
    ):
        monkeypatch.setattr(settings, "MAX_IMAGE_BYTES", 10)
        response = await client.post("/api/v1/pumpkins", json=pumpkin_payload, headers=auth_headers)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_pending_pumpkin_hidden(self, client: AsyncClient, test_user, make_pumpkin):
        pumpkin = await make_pumpkin(test_user, status=PumpkinStatus.PENDING)
        response = await client.get(f"/api/v1/pumpkins/{pumpkin.id}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_pending_pumpkin_visible_to_owner(
        self, client: AsyncClient, auth_headers: dict, test_user, make_pumpkin
    ):
        pumpkin = await make_pumpkin(test_user, status=PumpkinStatus.PENDING)
        response = await client.get(f"/api/v1/pumpkins/{pumpkin.id}", headers=auth_headers)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_list_unknown_status(self, client: AsyncClient):
        response = await client.get("/api/v1/pumpkins", params={"status": "carved"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_list_all_requires_admin(self, client: AsyncClient, auth_headers: dict):
        response = await client.get("/api/v1/pumpkins", params={"status": "all"}, headers=auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_empty_leaderboard(self, client: AsyncClient):
        response = await client.get("/api/v1/leaderboard")
        assert response.status_code == 200
        assert response.json() == {"rankings": [], "winner_id": None, "total_votes": 0}


class FakeRequest:
    """Stands in for the Starlette request the stream polls for disconnects."""

    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


async def next_frame(body) -> str:
    return await asyncio.wait_for(body.__anext__(), timeout=3)


def parse_event(frame: str) -> dict:
    event, data = frame.strip().split("\n")
    assert event == "event: pumpkins"
    assert data.startswith("data: ")
    return json.loads(data[len("data: "):])


class TestLiveStream:
    """The SSE generator behind GET /api/v1/pumpkins/live."""

    @pytest.mark.asyncio
    async def test_stream_carries_gallery_and_leaderboard(
        self, session_maker, principal, test_user, make_pumpkin
    ):
        pumpkin = await make_pumpkin(test_user)
        await make_pumpkin(test_user, status=PumpkinStatus.PENDING, title="Hidden")
        response = await pumpkin_routes.live_pumpkins(FakeRequest(), session_maker)
        body = response.body_iterator
        assert response.media_type == "text/event-stream"

        try:
            first = parse_event(await next_frame(body))
            assert [item["id"] for item in first["items"]] == [pumpkin.id]
            assert first["leaderboard"]["winner_id"] is None
            assert first["leaderboard"]["total_votes"] == 0

            await voting.cast_vote(session_maker, principal, pumpkin.id)

            second = parse_event(await next_frame(body))
            assert second["items"][0]["vote_count"] == 1
            assert second["leaderboard"]["winner_id"] == pumpkin.id
            assert second["leaderboard"]["rankings"][0]["rank"] == 1
        finally:
            await body.aclose()

        assert not get_feed(session_maker).active

    @pytest.mark.asyncio
    async def test_keep_alive_then_disconnect(self, session_maker, monkeypatch):
        monkeypatch.setattr(settings, "LIVE_FEED_KEEPALIVE_SECONDS", 0.05)
        request = FakeRequest()
        response = await pumpkin_routes.live_pumpkins(request, session_maker)
        body = response.body_iterator

        assert parse_event(await next_frame(body))["items"] == []
        assert await next_frame(body) == ": keep-alive\n\n"
        assert get_feed(session_maker).active

        request.disconnected = True
        with pytest.raises(StopAsyncIteration):
            await body.__anext__()

        assert not get_feed(session_maker).active


class TestVoteEndpoints:

    @pytest.mark.asyncio
    async def test_vote_requires_login(self, client: AsyncClient, test_user, make_pumpkin):
        pumpkin = await make_pumpkin(test_user)
        response = await client.post("/api/v1/votes", json={"pumpkin_id": pumpkin.id})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_vote_for_pending_pumpkin(self, client: AsyncClient, auth_headers: dict, test_user, make_pumpkin):
        pumpkin = await make_pumpkin(test_user, status=PumpkinStatus.PENDING)
        response = await client.post("/api/v1/votes", json={"pumpkin_id": pumpkin.id}, headers=auth_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_my_vote_anonymous(self, client: AsyncClient):
        response = await client.get("/api/v1/votes/me")
        assert response.status_code == 200
        assert response.json() == {"voted_for": None}


class TestAdminEndpoints:

    @pytest.mark.asyncio
    async def test_moderation_requires_admin(self, client: AsyncClient, auth_headers: dict, test_user, make_pumpkin):
        pumpkin = await make_pumpkin(test_user, status=PumpkinStatus.PENDING)
        response = await client.post(f"/api/v1/admin/pumpkins/{pumpkin.id}/approve", headers=auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_transition(self, client: AsyncClient, admin_headers: dict, test_user, make_pumpkin):
        pumpkin = await make_pumpkin(test_user, status=PumpkinStatus.REJECTED)
        response = await client.post(f"/api/v1/admin/pumpkins/{pumpkin.id}/approve", headers=admin_headers)
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_patch_status(self, client: AsyncClient, admin_headers: dict, test_user, make_pumpkin):
        pumpkin = await make_pumpkin(test_user, status=PumpkinStatus.PENDING)
        response = await client.patch(
            f"/api/v1/admin/pumpkins/{pumpkin.id}",
            json={"status": "rejected"},
            headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"

    @pytest.mark.asyncio
    async def test_delete_pumpkin(
        self, client: AsyncClient, admin_headers: dict, auth_headers: dict, test_user, make_pumpkin
    ):
        pumpkin = await make_pumpkin(test_user)
        await client.post("/api/v1/votes", json={"pumpkin_id": pumpkin.id}, headers=auth_headers)

        response = await client.delete(f"/api/v1/admin/pumpkins/{pumpkin.id}", headers=admin_headers)
        assert response.status_code == 204

        response = await client.get(f"/api/v1/pumpkins/{pumpkin.id}")
        assert response.status_code == 404
        response = await client.get("/api/v1/votes/me", headers=auth_headers)
        assert response.json()["voted_for"] is None

    @pytest.mark.asyncio
    async def test_reset_and_recount(
        self, client: AsyncClient, admin_headers: dict, auth_headers: dict, test_user, make_pumpkin
    ):
        pumpkin = await make_pumpkin(test_user)
        await client.post("/api/v1/votes", json={"pumpkin_id": pumpkin.id}, headers=auth_headers)

        response = await client.post("/api/v1/admin/votes/reset", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["votes_deleted"] == 1

        response = await client.post("/api/v1/admin/votes/recount", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["pumpkins_corrected"] == 0

        response = await client.get("/api/v1/votes/counts")
        assert response.json()["counts"] == {pumpkin.id: 0}

    @pytest.mark.asyncio
    async def test_reset_requires_admin(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/v1/admin/votes/reset", headers=auth_headers)
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"code": 200, "message": "API is healthy."}
