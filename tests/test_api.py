"""
Tests for the HTTP surface: health check, payment webhook and admin routes.

The app is driven through httpx's ASGI transport, so the lifespan (and
with it the real Telegram/TON wiring) never runs; tests put their own
services on app.state.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from lessonbot.api.main import create_app
from lessonbot.config import config
from lessonbot.jobs.daily_scheduler import DailyLessonScheduler
from lessonbot.payments.verifier import ActivationError
from lessonbot.utils.dedup import RecentEventFilter

from conftest import FakeMonotonic


@pytest.fixture
def services(subscriptions, cache, queue, pending, verifier):
    return SimpleNamespace(
        subscriptions=subscriptions,
        cache=cache,
        queue=queue,
        pending=pending,
        verifier=verifier,
        scheduler=DailyLessonScheduler(subscriptions=subscriptions, cache=cache, queue=queue),
        webhook_filter=RecentEventFilter(ttl_seconds=600, capacity=100, clock=FakeMonotonic()),
    )


@pytest.fixture
def app(services, monkeypatch):
    monkeypatch.setattr(config, "PAYMENT_WEBHOOK_SECRET", None)
    monkeypatch.setattr(config, "ADMIN_API_KEY", None)
    application = create_app()
    application.state.services = services
    return application


@pytest_asyncio.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http:
        yield http


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy_with_services(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["queue"]["pending"] == 0
        assert body["pending_payments"] == 0

    @pytest.mark.asyncio
    async def test_degraded_without_services(self, app, client):
        app.state.services = None

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.json()["message"] == "Thai Learning Bot API"


class TestPaymentWebhook:

    @pytest.mark.asyncio
    async def test_confirmed_payment_activates_subscription(self, client, queue, subscriptions):
        response = await client.post("/api/webhooks/payment", json={"userId": 42, "paymentReference": "ref-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["reference"] == "ref-1"
        assert "expires_at" in body
        assert len(queue) == 1
        assert await subscriptions.count_for_reference("ref-1") == 1

    @pytest.mark.asyncio
    async def test_redelivery_is_acknowledged_as_duplicate(self, client, queue):
        payload = {"recipient_id": "42", "payment_reference": "ref-1"}
        await client.post("/api/webhooks/payment", json=payload)

        response = await client.post("/api/webhooks/payment", json=payload)

        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"
        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_reference_already_activated_by_ledger(self, client, verifier, queue):
        await verifier.activate("42", "ref-1", source="ledger")

        response = await client.post("/api/webhooks/payment", json={"userId": "42", "paymentReference": "ref-1"})

        assert response.json()["status"] == "already_resolved"
        assert len(queue) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [
        '{"userId": "42"}',
        '{"paymentReference": "ref-1"}',
        "not json",
        "[1, 2, 3]",
    ])
    async def test_bad_payloads_rejected(self, client, content):
        response = await client.post(
            "/api/webhooks/payment",
            content=content,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_secret_enforced_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(config, "PAYMENT_WEBHOOK_SECRET", "s3cret")
        payload = {"userId": "42", "paymentReference": "ref-1"}

        denied = await client.post("/api/webhooks/payment", json=payload, headers={"X-Webhook-Secret": "wrong"})
        allowed = await client.post("/api/webhooks/payment", json=payload, headers={"X-Webhook-Secret": "s3cret"})

        assert denied.status_code == 401
        assert allowed.status_code == 200

    @pytest.mark.asyncio
    async def test_activation_failure_returns_500_and_allows_retry(self, client, services):
        services.verifier = MagicMock()
        services.verifier.activate = AsyncMock(side_effect=ActivationError("42", "ref-1", "disk I/O error"))

        response = await client.post("/api/webhooks/payment", json={"userId": "42", "paymentReference": "ref-1"})

        assert response.status_code == 500
        assert "ref-1" not in services.webhook_filter

    @pytest.mark.asyncio
    async def test_unavailable_while_starting(self, app, client):
        app.state.services = None

        response = await client.post("/api/webhooks/payment", json={"userId": "42", "paymentReference": "ref-1"})

        assert response.status_code == 503


class TestAdminRoutes:

    @pytest.mark.asyncio
    async def test_status(self, client):
        response = await client.get("/api/admin/status")

        assert response.status_code == 200
        body = response.json()
        assert body["queue"]["pending"] == 0
        assert body["scheduler"]["last_report"] is None

    @pytest.mark.asyncio
    async def test_api_key_enforced_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_API_KEY", "admin-key")

        missing = await client.get("/api/admin/status")
        wrong = await client.get("/api/admin/status", headers={"X-API-Key": "nope"})
        bearer = await client.get("/api/admin/status", headers={"Authorization": "Bearer admin-key"})

        assert missing.status_code == 401
        assert wrong.status_code == 403
        assert bearer.status_code == 200

    @pytest.mark.asyncio
    async def test_manual_batch_run(self, client, users, subscriptions, queue):
        await users.create_user("42")
        await subscriptions.create_entitlement("42", "ref-1", 30)

        response = await client.post("/api/admin/batch/run")

        assert response.status_code == 200
        assert response.json()["enqueued"] == 1
        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_logs_reject_unknown_level(self, client):
        response = await client.get("/api/admin/logs", params={"level": "verbose"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_logs_and_clear(self, client):
        await client.post("/api/admin/logs/clear")

        response = await client.get("/api/admin/logs", params={"level": "info"})

        assert response.status_code == 200
        assert [entry["message"] for entry in response.json()["logs"]] == ["Log buffer cleared by admin"]
