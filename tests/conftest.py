"""Shared test fixtures.

Provides:
- ``FakeTransport`` — records sends, optionally fails
- ``make_settings`` — Settings with test defaults, overridable per test
- ``auth_header`` — Authorization header for the default test token
- ``client_factory`` — TestClient against a fresh app
"""

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.services.mailer import DeliveryReceipt

TEST_TOKEN = "abc123"


class FakeTransport:
    kind = "fake"

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str, str]] = []
        self.closed = False

    async def send_notification(self, recipient: str, subject: str, body: str) -> DeliveryReceipt:
        self.calls.append((recipient, subject, body))
        if self.error is not None:
            raise self.error
        return DeliveryReceipt(transport=self.kind, message_id=f"msg-{len(self.calls)}")

    async def aclose(self) -> None:
        self.closed = True


def make_settings(**overrides) -> Settings:
    values = {"allowed_tokens": TEST_TOKEN, "resend_api_key": "", "smtp_host": ""}
    values.update(overrides)
    return Settings(**values)


def auth_header(token: str = TEST_TOKEN) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def location_body(**overrides) -> dict:
    body = {"to": "a@b.com", "deviceId": "device-0001", "lat": 10.5, "lon": -20.25}
    body.update(overrides)
    return body


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client_factory():
    def _make(transport=None, **overrides) -> TestClient:
        return TestClient(create_app(make_settings(**overrides), transport=transport))

    return _make


@pytest.fixture
def client(client_factory, transport):
    return client_factory(transport=transport)
