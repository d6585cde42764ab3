"""HTTP API tests against the in-memory ledger."""

import json
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from factories import WEBHOOK_SECRET, ScriptedReasoning
from prophet.agents.arbitrator.models import ReasoningTurn, ToolCall
from prophet.api.server import create_app
from prophet.errors import UserNotFoundError
from prophet.services.search import SearchHit

CREATOR = {"X-User-Id": "creator", "X-User-Email": "creator@example.com"}
ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
ADMIN = {"X-User-Id": "admin", "X-User-Role": "admin"}
DEADLINE = "2026-03-08T12:00:00Z"
GATEWAY = {"X-Webhook-Secret": WEBHOOK_SECRET}


async def _create_market(client, **body) -> dict:
    payload = {"title": "Will it snow in Paris on March 5?", "deadline": DEADLINE, **body}
    response = await client.post("/api/markets", json=payload, headers=CREATOR)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def _buy(client, user_id: str, credits: int = 100) -> None:
    response = await client.post(
        "/api/payments/completed",
        json={
            "checkout_session_id": f"cs_{user_id}",
            "user_id": user_id,
            "package_id": f"credits_{credits}",
            "credits": credits,
            "amount_paid": str(credits // 10),
        },
        headers=GATEWAY,
    )
    assert response.status_code == 200, response.text


class TestEnvelope:
    async def test_health(self, client) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_missing_identity(self, client) -> None:
        response = await client.get("/api/users/me/balance")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "UNAUTHENTICATED"

    async def test_request_validation(self, client) -> None:
        response = await client.post("/api/markets", json={"deadline": DEADLINE}, headers=CREATOR)
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "title" in error["fields"]

    async def test_domain_validation(self, client) -> None:
        response = await client.post(
            "/api/markets",
            json={"title": "Past market", "deadline": "2025-01-01T00:00:00Z"},
            headers=CREATOR,
        )
        assert response.status_code == 400
        assert "deadline" in response.json()["error"]["fields"]

    async def test_not_found(self, client) -> None:
        response = await client.get("/api/markets/missing")
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "not_found"


class TestMarketFlow:
    async def test_create_stake_resolve(self, client, clock) -> None:
        market = await _create_market(client)
        assert market["state"] == "active"
        await _buy(client, "alice")
        await _buy(client, "bob")

        response = await client.post(
            f"/api/markets/{market['id']}/stakes",
            json={"side": "yes", "amount": "40"},
            headers=ALICE,
        )
        assert response.status_code == 201
        assert response.json()["data"]["new_balance"] == "60.00"

        await client.post(
            f"/api/markets/{market['id']}/stakes", json={"side": "no", "amount": "10"}, headers=BOB
        )

        clock.advance(days=8)
        response = await client.post(
            f"/api/markets/{market['id']}/resolve",
            json={"outcome": "yes", "reasoning": "It snowed."},
            headers=CREATOR,
        )
        assert response.status_code == 200, response.text
        assert response.json()["data"]["total_payout"] == "50.00"

        balance = await client.get("/api/users/me/balance", headers=ALICE)
        assert balance.json()["data"]["balance"] == "110.00"

        audit = await client.get("/api/users/me/audit", headers=ALICE)
        assert audit.json()["data"]["consistent"] is True

        again = await client.post(
            f"/api/markets/{market['id']}/resolve", json={"outcome": "no"}, headers=CREATOR
        )
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "ALREADY_RESOLVED"

    async def test_insufficient_balance(self, client) -> None:
        market = await _create_market(client)
        response = await client.post(
            f"/api/markets/{market['id']}/stakes",
            json={"side": "yes", "amount": "5"},
            headers=ALICE,
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INSUFFICIENT_BALANCE"

    async def test_ai_market_rejects_manual_resolution(self, client, clock) -> None:
        market = await _create_market(client, arbitrator_type="ai")
        clock.advance(days=8)
        response = await client.post(
            f"/api/markets/{market['id']}/resolve", json={"outcome": "yes"}, headers=CREATOR
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AI_BET_MANUAL_RESOLVE"

    async def test_cancel_refunds(self, client) -> None:
        market = await _create_market(client)
        await _buy(client, "alice")
        await client.post(
            f"/api/markets/{market['id']}/stakes", json={"side": "no", "amount": "25"}, headers=ALICE
        )

        forbidden = await client.post(f"/api/markets/{market['id']}/cancel", headers=ALICE)
        assert forbidden.status_code == 403

        response = await client.post(f"/api/markets/{market['id']}/cancel", headers=CREATOR)
        assert response.status_code == 200
        assert response.json()["data"]["refunded_count"] == 1
        balance = await client.get("/api/users/me/balance", headers=ALICE)
        assert balance.json()["data"]["balance"] == "100.00"


class TestCredits:
    async def test_payment_replay_credits_once(self, client) -> None:
        await _buy(client, "alice")
        await _buy(client, "alice")
        balance = await client.get("/api/users/me/balance", headers=ALICE)
        assert balance.json()["data"]["balance"] == "100.00"

    async def test_admin_credit(self, client) -> None:
        await client.get("/api/users/me/balance", headers=ALICE)
        denied = await client.post(
            "/api/admin/credits", json={"user_id": "alice", "amount": "50"}, headers=BOB
        )
        assert denied.status_code == 403

        response = await client.post(
            "/api/admin/credits",
            json={"user_id": "alice", "amount": "50", "reason": "Welcome bonus"},
            headers=ADMIN,
        )
        assert response.status_code == 200
        assert response.json()["data"]["new_balance"] == "50.00"


class TestPaymentWebhook:
    FORGED = {
        "checkout_session_id": "cs_forged",
        "user_id": "mallory",
        "credits": 1000000,
        "amount_paid": "0",
        "package_id": "nope",
    }

    @pytest.mark.parametrize("headers", [{}, {"X-Webhook-Secret": "guess"}])
    async def test_rejects_unknown_caller(self, client, engine, headers) -> None:
        response = await client.post("/api/payments/completed", json=self.FORGED, headers=headers)
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHENTICATED"
        with pytest.raises(UserNotFoundError):
            await engine.get_balance("mallory")

    async def test_rejects_event_off_the_catalogue(self, client, engine) -> None:
        response = await client.post("/api/payments/completed", json=self.FORGED, headers=GATEWAY)
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "package_id" in error["fields"]
        with pytest.raises(UserNotFoundError):
            await engine.get_balance("mallory")

    async def test_rejects_underpaid_package(self, client, engine) -> None:
        body = {**self.FORGED, "package_id": "credits_1000", "credits": 1000}
        response = await client.post("/api/payments/completed", json=body, headers=GATEWAY)
        assert response.status_code == 400
        assert set(response.json()["error"]["fields"]) == {"amount_paid"}

    async def test_unconfigured_secret_refuses_everyone(self, settings, engine, appeals) -> None:
        app = create_app(
            settings=settings.model_copy(update={"payments_webhook_secret": ""}),
            engine=engine,
            appeals=appeals,
        )
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.post(
                "/api/payments/completed", json=self.FORGED, headers={"X-Webhook-Secret": ""}
            )
        assert response.status_code == 401


class TestAppeals:
    async def test_file_and_review(self, client, clock) -> None:
        market = await _create_market(client)
        await _buy(client, "alice")
        await client.post(
            f"/api/markets/{market['id']}/stakes", json={"side": "no", "amount": "10"}, headers=ALICE
        )
        clock.advance(days=8)
        await client.post(
            f"/api/markets/{market['id']}/resolve", json={"outcome": "yes"}, headers=CREATOR
        )

        filed = await client.post(
            "/api/appeals",
            json={"market_id": market["id"], "reason": "There was no snow in central Paris."},
            headers=ALICE,
        )
        assert filed.status_code == 201
        appeal_id = filed.json()["data"]["id"]

        listed = await client.get("/api/appeals", headers=ALICE)
        assert [a["id"] for a in listed.json()["data"]] == [appeal_id]

        hidden = await client.get(f"/api/appeals/{appeal_id}", headers=BOB)
        assert hidden.status_code == 403

        reviewed = await client.post(
            f"/api/appeals/{appeal_id}/resolve",
            json={"status": "rejected", "admin_notes": "Weather service reports snow."},
            headers=ADMIN,
        )
        assert reviewed.status_code == 200
        assert reviewed.json()["data"]["status"] == "rejected"


class TestArbitrateEndpoint:
    @pytest.fixture
    async def ai_client(self, settings, engine, appeals):
        verdict = {
            "resolution_status": "RESOLVED_FALSE",
            "reasoning": {"analysis": "a", "evidence": "e", "conclusion": "No snow fell."},
        }
        reasoning = ScriptedReasoning(
            [
                ReasoningTurn(
                    tool_calls=[
                        ToolCall(id="t1", name="search_web", arguments={"query": "Paris snow March 5"})
                    ]
                ),
                ReasoningTurn(content=json.dumps(verdict)),
            ]
        )
        search = AsyncMock()
        search.search.return_value = [
            SearchHit.from_url("https://meteofrance.com/report", "Meteo report", "Dry day.")
        ]
        app = create_app(
            settings=settings,
            engine=engine,
            appeals=appeals,
            reasoning_service=reasoning,
            search_service=search,
        )
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac

    async def test_arbitrates_and_settles(self, ai_client, clock) -> None:
        market = await _create_market(ai_client, arbitrator_type="ai")
        await _buy(ai_client, "alice")
        await _buy(ai_client, "bob")
        await ai_client.post(
            f"/api/markets/{market['id']}/stakes", json={"side": "yes", "amount": "30"}, headers=ALICE
        )
        await ai_client.post(
            f"/api/markets/{market['id']}/stakes", json={"side": "no", "amount": "10"}, headers=BOB
        )

        early = await ai_client.post(f"/api/markets/{market['id']}/arbitrate", headers=ALICE)
        assert early.status_code == 400
        assert early.json()["error"]["code"] == "DEADLINE_NOT_PASSED"

        clock.advance(days=8)
        response = await ai_client.post(f"/api/markets/{market['id']}/arbitrate", headers=ALICE)

        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["ai_decision"] == "no"
        assert data["searches_performed"] == 1
        assert data["sources_consulted"][0]["url"] == "https://meteofrance.com/report"
        assert data["winners_count"] == 1

        bob = await ai_client.get("/api/users/me/balance", headers=BOB)
        assert bob.json()["data"]["balance"] == "130.00"
