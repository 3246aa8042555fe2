"""Shared fixtures: in-memory store, fake Paypack API, recording notifier."""

import json
import time

import httpx
import pytest

from pushpay.app import build_payment_service
from pushpay.common.config import CommonSettings, load_credentials
from pushpay.common.db import Base, make_engine, make_session_factory
from pushpay.services.paypack.signature import compute_signature
from pushpay.services.payments.repository import PaymentStore


WEBHOOK_SECRET = "whsec-test-secret"


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return compute_signature(secret, body).decode("ascii")


def webhook_body(ref: str, status: str) -> bytes:
    return json.dumps(
        {"event_id": "evt-1", "kind": "transaction:processed", "data": {"ref": ref, "status": status}}
    ).encode("utf-8")


class FakePaypack:
    """Stand-in for the Paypack API, served through `httpx.MockTransport`.

    Set `auth_override` / `cashin_override` to a `request -> Response` callable
    (or one that raises) to script failures.
    """

    def __init__(self) -> None:
        self.auth_calls = 0
        self.cashin_requests: list[httpx.Request] = []
        self.access = "token-1"
        self.expires_in = 3600
        self.next_ref = "abc123"
        self.auth_override = None
        self.cashin_override = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/auth/agents/authorize"):
            self.auth_calls += 1
            if self.auth_override is not None:
                return self.auth_override(request)
            return httpx.Response(
                200,
                json={"access": self.access, "refresh": "refresh-1", "expires": time.time() + self.expires_in},
            )
        if request.url.path.endswith("/transactions/cashin"):
            self.cashin_requests.append(request)
            if self.cashin_override is not None:
                return self.cashin_override(request)
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "ref": self.next_ref,
                    "status": "pending",
                    "amount": body["amount"],
                    "provider": "mtn",
                    "kind": "CASHIN",
                    "created_at": "2025-10-13T09:48:50Z",
                },
            )
        return httpx.Response(404, json={"message": "no such route"})

    @property
    def network_calls(self) -> int:
        return self.auth_calls + len(self.cashin_requests)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    async def notify(self, channel_id: str, event: dict) -> None:
        self.events.append((channel_id, event))


@pytest.fixture
def config() -> CommonSettings:
    return CommonSettings(paypack_base_url="https://paypack.test/api", database_dsn="sqlite://")


@pytest.fixture
def credentials():
    return load_credentials(client_id="client-test", client_secret="client-secret", webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> PaymentStore:
    return PaymentStore(session_factory)


@pytest.fixture
def fake_paypack() -> FakePaypack:
    return FakePaypack()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def payment_service(session_factory, credentials, config, notifier, fake_paypack):
    return build_payment_service(
        session_factory,
        credentials,
        config,
        notifier,
        transport=fake_paypack.transport(),
    )
