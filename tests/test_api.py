"""HTTP surface: subscribe, confirm, health and the newsletter trigger."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import FakeCurator, FakeDiscoverer, FakeResponse, FakeSession, curated_items, discovered_items

from ai_newsletter.api.app import create_app, get_pipeline_factory, get_subscriptions
from ai_newsletter.services.delivery import DeliveryGateway
from ai_newsletter.services.plunk_client import PlunkClient
from ai_newsletter.services.subscriptions import SubscriptionService
from ai_newsletter.tools.lock import RunLock
from ai_newsletter.workflows.run_newsletter import NewsletterPipeline


def _client(settings, session: FakeSession, curation=None) -> TestClient:
    app = create_app(settings)
    plunk = PlunkClient(settings, session=session)

    def pipeline_factory():
        return lambda: NewsletterPipeline(
            settings,
            discoverer=FakeDiscoverer({"articles": discovered_items(17)}),
            curator=FakeCurator(curation or {"curatedArticles": curated_items(10)}),
            gateway=DeliveryGateway(plunk, settings),
        )

    app.dependency_overrides[get_pipeline_factory] = pipeline_factory
    app.dependency_overrides[get_subscriptions] = lambda: SubscriptionService(plunk, settings)
    return TestClient(app)


@pytest.fixture
def client(settings, session) -> TestClient:
    return _client(settings, session)


def test_health_reports_presence_not_values(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["hasOpenAIKey"] is True
    assert body["hasPlunkKey"] is True
    assert body["broadcastMode"] is False
    assert "sk-test" not in response.text
    assert "pk-test" not in response.text


def test_newsletter_requires_bearer_secret(client, session) -> None:
    assert client.post("/newsletter").status_code == 401
    assert client.post("/newsletter", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.post("/newsletter", headers={"Authorization": "Basic cron-secret"}).status_code == 401
    assert session.calls == []


def test_empty_secrets_never_authorize(settings, session) -> None:
    settings = settings.model_copy(update={"cron_secret": "", "trigger_secret": ""})
    client = _client(settings, session)
    assert client.post("/newsletter", headers={"Authorization": "Bearer anything"}).status_code == 401


@pytest.mark.parametrize("secret", ["cron-secret", "trigger-secret"])
def test_cron_get_runs_pipeline(client, settings, session, secret) -> None:
    session.add("POST", "/send", FakeResponse(200, {"id": "msg-1"}))

    response = client.get("/newsletter", headers={"Authorization": f"Bearer {secret}"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["output"]["recipient"] == "default@example.com"
    assert body["output"]["itemCount"] == 10
    assert "timestamp" in body
    assert not Path(settings.lock_path).exists()


def test_manual_post_accepts_overrides(client, session) -> None:
    session.add("POST", "/campaigns", FakeResponse(200, {"id": "camp-1"}))
    session.add("POST", "/campaigns/send", FakeResponse(200, {}))

    response = client.post(
        "/newsletter",
        json={"broadcast": True},
        headers={"Authorization": "Bearer trigger-secret"},
    )

    assert response.status_code == 200
    assert response.json()["output"]["broadcast"] is True
    assert response.json()["output"]["recipient"] == "all contacts (broadcast)"


def test_trigger_refused_while_a_run_holds_the_lock(client, settings, session) -> None:
    with RunLock(settings.lock_path, settings.lock_timeout_seconds):
        response = client.post(
            "/newsletter",
            json={"broadcast": True},
            headers={"Authorization": "Bearer cron-secret"},
        )

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert "already in progress" in body["error"]
    assert session.calls == []


def test_pipeline_failure_returns_500(settings, session) -> None:
    client = _client(settings, session, curation={"curatedArticles": curated_items(8)})

    response = client.post("/newsletter", headers={"Authorization": "Bearer cron-secret"})

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert "curation" in body["error"]
    assert body["stage"] == "curation"


def test_missing_keys_reported_before_run(settings, session) -> None:
    settings = settings.model_copy(update={"plunk_api_key": ""})
    client = _client(settings, session)

    response = client.post("/newsletter", headers={"Authorization": "Bearer cron-secret"})

    assert response.status_code == 500
    assert "plunk_api_key" in response.json()["error"]


def test_subscribe_ok(client, session) -> None:
    session.add("POST", "/contacts", FakeResponse(200, {"id": "c-1"}))
    session.add("POST", "/send", FakeResponse(200, {}))

    response = client.post("/subscribe", json={"email": "new@x.com"})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["contact"]["id"] == "c-1"


@pytest.mark.parametrize("payload", [{}, {"email": "bad"}])
def test_subscribe_bad_email_is_400(client, payload) -> None:
    response = client.post("/subscribe", json=payload)
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_subscribe_provider_failure(client, session) -> None:
    session.add("POST", "/contacts", FakeResponse(500, {"error": "db down"}))

    response = client.post("/subscribe", json={"email": "new@x.com"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to subscribe. Please try again."}


def test_subscribe_wrong_method(client) -> None:
    response = client.get("/subscribe")
    assert response.status_code == 405
    assert response.json()["success"] is False


def test_confirm_redirects_with_error_for_unknown_contact(client, session) -> None:
    session.add("GET", "/contacts/ghost", FakeResponse(404, {"error": "Not found"}))

    response = client.get("/confirm", params={"confirm": "ghost"}, follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "/?error=contact_not_found"


def test_confirm_already_subscribed(client, session) -> None:
    session.add("GET", "/contacts/c-1", FakeResponse(200, {"email": "a@b.com", "subscribed": True}))

    response = client.get("/confirm", params={"confirm": "c-1"}, follow_redirects=False)

    assert response.status_code == 302
    assert "already=true" in response.headers["location"]
    assert session.paths() == ["GET /contacts/c-1"]
