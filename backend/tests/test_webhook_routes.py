"""
PURPOSE: Route tests for the webhook, broker, Telegram and system endpoints.

The app is driven in-process through httpx.ASGITransport with the database,
processor, broker client and fan-out dependencies overridden.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from tradehook.api.routes_broker import get_broker_client, get_notification_fanout
from tradehook.api.routes_telegram import get_update_handler
from tradehook.config.settings import settings
from tradehook.core.rate_limit import limiter
from tradehook.db.engine import get_db
from tradehook.main import app
from tradehook.models import WebhookEvent
from tradehook.models.telegram import TelegramToken
from tradehook.notifications.telegram_updates import TelegramUpdateHandler
from tradehook.webhook.processor import get_webhook_processor


API_HEADERS = {"X-API-Key": "test-api-key"}


@pytest.fixture
def processor():
    mock = MagicMock()
    mock.schedule = MagicMock()
    mock.get_status = MagicMock(return_value={"total_received": 0, "total_processed": 0, "in_flight": 0})
    return mock


@pytest.fixture
def broker_client():
    mock = MagicMock()
    mock.custom_trade = AsyncMock(return_value={"ok": True, "dryRun": True, "url": "https://x", "params": {}})
    return mock


@pytest_asyncio.fixture
async def client(session_factory, processor, broker_client):
    """In-process client with overridden dependencies and rate limiting off."""

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_webhook_processor] = lambda: processor
    app.dependency_overrides[get_broker_client] = lambda: broker_client
    app.dependency_overrides[get_notification_fanout] = lambda: MagicMock(notify_user=AsyncMock())
    was_enabled = limiter.enabled
    limiter.enabled = False

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http

    limiter.enabled = was_enabled
    app.dependency_overrides.clear()


class TestChartinkWebhook:
    """Test POST /api/webhook/chartink."""

    @pytest.mark.asyncio
    async def test_missing_key(self, client):
        response = await client.post("/api/webhook/chartink", json={"stocks": "SBIN"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Strategy key is required"

    @pytest.mark.asyncio
    async def test_unknown_key(self, client):
        response = await client.post("/api/webhook/chartink?key=nope", json={"stocks": "SBIN"})
        assert response.status_code == 404
        assert response.json()["detail"] == "Strategy not found"

    @pytest.mark.asyncio
    async def test_global_token_enforced(self, client, monkeypatch, make_user, make_strategy):
        monkeypatch.setattr(settings, "CHARTINK_WEBHOOK_TOKEN", "s3cret")
        strategy = await make_strategy(await make_user())
        url = f"/api/webhook/chartink?key={strategy.webhook_key}"

        assert (await client.post(url, json={})).status_code == 401
        assert (await client.post(url, json={}, headers={"X-Webhook-Token": "s3cret"})).status_code == 200
        assert (await client.post(f"{url}&token=s3cret", json={})).status_code == 200

    @pytest.mark.asyncio
    async def test_ack_persists_and_schedules(self, client, processor, session_factory, make_user, make_strategy):
        strategy = await make_strategy(await make_user())

        response = await client.post(
            "/api/webhook/chartink",
            json={"payload": {"stocks": "SBIN,TCS", "alert_name": "Breakout"}},
            headers={"X-Strategy-Key": strategy.webhook_key, "Authorization": "Bearer secret"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["receivedAt"].endswith("Z")

        async with session_factory() as session:
            event = (await session.execute(select(WebhookEvent))).scalar_one()
        assert str(event.id) == body["id"]
        assert event.payload == {"stocks": "SBIN,TCS", "alert_name": "Breakout"}
        assert "authorization" not in {k.lower() for k in event.headers}
        processor.schedule.assert_called_once()
        assert processor.schedule.call_args.args[0] == event.id

    @pytest.mark.asyncio
    async def test_invalid_json(self, client, make_user, make_strategy):
        strategy = await make_strategy(await make_user())
        response = await client.post(
            f"/api/webhook/chartink?key={strategy.webhook_key}",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid JSON body"

    @pytest.mark.asyncio
    async def test_form_body(self, client, session_factory, make_user, make_strategy):
        strategy = await make_strategy(await make_user())
        response = await client.post(
            f"/api/webhook/chartink?key={strategy.webhook_key}",
            content=b"stocks=SBIN&scan_name=Vol",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        assert response.status_code == 200
        async with session_factory() as session:
            event = (await session.execute(select(WebhookEvent))).scalar_one()
        assert event.payload == {"stocks": "SBIN", "scan_name": "Vol"}

    @pytest.mark.asyncio
    async def test_raw_text_body(self, client, session_factory, make_user, make_strategy):
        strategy = await make_strategy(await make_user())
        response = await client.post(
            f"/api/webhook/chartink?key={strategy.webhook_key}",
            content=b"hello",
            headers={"Content-Type": "text/plain"},
        )
        assert response.status_code == 200
        async with session_factory() as session:
            event = (await session.execute(select(WebhookEvent))).scalar_one()
        assert event.payload == {"raw": "hello"}


class TestEventEndpoints:
    """Test the API-key protected event endpoints."""

    @pytest.mark.asyncio
    async def test_requires_api_key(self, client):
        assert (await client.get("/api/webhook/events")).status_code == 401
        assert (await client.get("/api/webhook/events", headers={"X-API-Key": "wrong"})).status_code == 403

    @pytest.mark.asyncio
    async def test_list_and_get(self, client, make_user, make_strategy):
        strategy = await make_strategy(await make_user())
        ack = (await client.post(f"/api/webhook/chartink?key={strategy.webhook_key}", json={"stocks": "SBIN"})).json()

        listed = await client.get("/api/webhook/events", headers=API_HEADERS)
        assert listed.status_code == 200
        assert [e["id"] for e in listed.json()] == [ack["id"]]

        one = await client.get(f"/api/webhook/events/{ack['id']}", headers=API_HEADERS)
        assert one.status_code == 200
        missing = await client.get(f"/api/webhook/events/{uuid4()}", headers=API_HEADERS)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_status(self, client):
        response = await client.get("/api/webhook/status", headers=API_HEADERS)
        assert response.status_code == 200
        assert response.json()["webhook_url_hint"].startswith("/api/webhook/chartink")


class TestBrokerEndpoints:
    """Test POST /api/broker/trade."""

    @pytest.mark.asyncio
    async def test_invalid_params_rejected(self, client, broker_client):
        response = await client.post("/api/broker/trade", json={"exchange": "NSE"}, headers=API_HEADERS)
        assert response.status_code == 400
        assert response.json()["detail"] == "call_type is required"
        broker_client.custom_trade.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_preview(self, client, broker_client):
        response = await client.post(
            "/api/broker/trade",
            json={"exchange": "nse", "segment": "eq", "symbol": "SBIN", "callType": "buy"},
            headers=API_HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["dryRun"] is True
        broker_client.custom_trade.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_preview_is_client_error(self, client, broker_client):
        broker_client.custom_trade = AsyncMock(return_value={"ok": False, "dryRun": True, "error": "Missing token"})
        response = await client.post(
            "/api/broker/trade",
            json={"exchange": "NSE", "symbol_code": "12345", "call_type": "BUY"},
            headers=API_HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing token"


class TestTelegramAndSystem:
    """Test the Telegram webhook and system endpoints."""

    @pytest.mark.asyncio
    async def test_telegram_webhook_always_acks(self, client):
        handler = MagicMock()
        handler.process_update = AsyncMock(side_effect=RuntimeError("boom"))
        app.dependency_overrides[get_update_handler] = lambda: handler

        response = await client.post("/api/telegram/webhook", json={"update_id": 1})

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        handler.process_update.assert_awaited_once_with({"update_id": 1})

    @pytest.mark.asyncio
    async def test_health_ok(self, client):
        response = await client.get("/api/system/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["services"]["database"]["status"] == "connected"

    @pytest.mark.asyncio
    async def test_health_degraded(self, client):
        async def _broken_db():
            session = MagicMock()
            session.execute = AsyncMock(side_effect=RuntimeError("connection refused"))
            yield session

        app.dependency_overrides[get_db] = _broken_db

        response = await client.get("/api/system/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_version(self, client):
        response = await client.get("/api/system/version")
        assert response.status_code == 200
        assert response.json()["codename"] == "Relay"


class TestTelegramTokens:
    """Test POST and GET /api/telegram/token."""

    @pytest.mark.asyncio
    async def test_requires_api_key(self, client):
        assert (await client.post("/api/telegram/token", json={"userId": str(uuid4())})).status_code == 401
        assert (await client.get(f"/api/telegram/token?userId={uuid4()}")).status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user_is_refused(self, client):
        response = await client.post("/api/telegram/token", json={"userId": str(uuid4())}, headers=API_HEADERS)
        assert response.status_code == 403
        assert response.json()["detail"] == "Plan expired"

    @pytest.mark.asyncio
    async def test_expired_plan_is_refused(self, client, make_user):
        user = await make_user(plan_days=-1)
        response = await client.post("/api/telegram/token", json={"userId": str(user.id)}, headers=API_HEADERS)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_issue_token_expires_with_plan(self, client, make_user, session_factory):
        user = await make_user()

        response = await client.post("/api/telegram/token", json={"userId": str(user.id)}, headers=API_HEADERS)

        assert response.status_code == 201
        body = response.json()
        assert body["ok"] is True
        assert len(body["token"]) == 32
        assert body["expiresAt"].endswith("Z")
        async with session_factory() as session:
            record = (await session.execute(select(TelegramToken))).scalar_one()
        assert record.token == body["token"]
        assert record.user_id == user.id
        assert record.expires_at == user.plan_expires_at

    @pytest.mark.asyncio
    async def test_admin_without_plan_gets_token(self, client, make_user):
        admin = await make_user(role="admin", plan_days=None)
        response = await client.post("/api/telegram/token", json={"userId": str(admin.id)}, headers=API_HEADERS)
        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_issued_token_links_chat(self, client, make_user, session_factory):
        user = await make_user()
        response = await client.post("/api/telegram/token", json={"userId": str(user.id)}, headers=API_HEADERS)
        token = response.json()["token"]

        handler = TelegramUpdateHandler(session_factory, telegram=AsyncMock())
        result = await handler.process_update(
            {"update_id": 1, "message": {"text": f"/startAlert {token}", "chat": {"id": 42}}}
        )

        assert result["action"] == "subscribed"

    @pytest.mark.asyncio
    async def test_list_tokens(self, client, make_user):
        user = await make_user()
        other = await make_user()
        issued = (await client.post("/api/telegram/token", json={"userId": str(user.id)}, headers=API_HEADERS)).json()
        await client.post("/api/telegram/token", json={"userId": str(other.id)}, headers=API_HEADERS)

        response = await client.get(f"/api/telegram/token?userId={user.id}", headers=API_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert [entry["token"] for entry in body["tokens"]] == [issued["token"]]
        assert body["tokens"][0]["used_at"] is None
