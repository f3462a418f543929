from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, List, Optional

import pytest

from ai_newsletter.config.settings import Settings
from ai_newsletter.services.delivery import DeliveryGateway
from ai_newsletter.services.plunk_client import PlunkClient


def discovered_items(n: int) -> List[dict]:
    return [
        {
            "title": f"Story {i}",
            "url": f"https://news.example.com/story-{i}",
            "source": "Example News",
            "snippet": f"Snippet for story {i}.",
        }
        for i in range(1, n + 1)
    ]


def curated_items(n: int) -> List[dict]:
    return [
        {
            "headline": f"Headline {i}",
            "summary": f"Summary {i}. It matters because reasons.",
            "url": f"https://news.example.com/story-{i}",
        }
        for i in range(1, n + 1)
    ]


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.content = text.encode("utf-8")
        self.reason = "OK" if self.ok else "Error"

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


class FakeSession:
    """Stands in for requests.Session; routes (method, path) to queued responses."""

    def __init__(self) -> None:
        self.calls: List[dict] = []
        self.routes: dict[tuple[str, str], list] = {}

    def add(self, method: str, path: str, response: Any) -> None:
        self.routes.setdefault((method.upper(), path), []).append(response)

    def request(self, method, url, json=None, headers=None, timeout=None):
        path = url.split("/v1", 1)[-1]
        self.calls.append({"method": method, "path": path, "json": json, "headers": headers})
        queue = self.routes.get((method.upper(), path))
        if not queue:
            raise AssertionError(f"unexpected request {method} {path}")
        resp = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(resp, Exception):
            raise resp
        return resp

    def paths(self) -> List[str]:
        return [f"{c['method']} {c['path']}" for c in self.calls]


class FakeDiscoverer:
    def __init__(self, payload: Any) -> None:
        self.payload = payload
        self.calls = 0

    def discover(self, today=None):
        self.calls += 1
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeCurator:
    def __init__(self, payload: Any) -> None:
        self.payload = payload
        self.received = None

    def curate(self, batch):
        self.received = batch
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        openai_api_key="sk-test",
        plunk_api_key="pk-test",
        plunk_base_url="https://api.useplunk.com/v1",
        recipient_email="default@example.com",
        broadcast_mode=False,
        cron_secret="cron-secret",
        trigger_secret="trigger-secret",
        site_url="/",
        api_base_url="https://newsletter.example.com/api",
        log_file=str(tmp_path / "logs" / "run.log"),
        database_url=f"sqlite:///{tmp_path / 'newsletter.db'}",
        lock_path=str(tmp_path / "run.lock"),
    )


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def plunk(settings: Settings, session: FakeSession) -> PlunkClient:
    return PlunkClient(settings, session=session)


@pytest.fixture
def gateway(plunk: PlunkClient, settings: Settings) -> DeliveryGateway:
    return DeliveryGateway(plunk, settings)


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: datetime(2026, 10, 19, 8, 0, 0)
