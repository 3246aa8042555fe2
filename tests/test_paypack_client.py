"""Paypack client: input guards, request shape and error translation."""

import json

import httpx
import pytest

from pushpay.common.errors import AuthError, InternalError, ProviderError, ValidationError
from pushpay.services.paypack.client import PaypackClient


@pytest.fixture
def client(credentials, config, fake_paypack):
    return PaypackClient(credentials, config, transport=fake_paypack.transport())


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, 1, 99, 99.99, float("nan"), float("inf"), float("-inf")])
async def test_amount_below_minimum_is_rejected_without_network(client, fake_paypack, amount):
    """Amounts under the minimum, or not finite, fail before any request."""

    with pytest.raises(ValidationError) as excinfo:
        await client.cashin("0781234567", amount)
    assert excinfo.value.code == "INVALID_AMOUNT"
    assert "amount too small" in excinfo.value.message
    assert fake_paypack.network_calls == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "phone_number",
    ["0881234567", "078123456", "07812345678", "+250781234567", "07812a4567", " 0781234567", "", "07" + "\u0661" * 8],
)
async def test_bad_phone_format_is_rejected_without_network(client, fake_paypack, phone_number):
    """Only ASCII 07XXXXXXXX numbers are sent to Paypack."""

    with pytest.raises(ValidationError) as excinfo:
        await client.cashin(phone_number, 500)
    assert excinfo.value.code == "INVALID_PHONE"
    assert "bad phone format" in excinfo.value.message
    assert fake_paypack.network_calls == 0


@pytest.mark.asyncio
async def test_cashin_sends_bearer_token_and_production_mode(client, fake_paypack):
    """Cash-in carries the bearer token, webhook mode and `{amount, number}`."""

    result = await client.cashin("0781234567", 500)

    assert result.external_ref == "abc123"
    assert result.status == "pending"
    assert result.provider == "mtn"
    request = fake_paypack.cashin_requests[0]
    assert request.headers["Authorization"] == "Bearer token-1"
    assert request.headers["X-Webhook-Mode"] == "production"
    assert json.loads(request.content) == {"amount": 500, "number": "0781234567"}


@pytest.mark.asyncio
async def test_token_is_reused_across_cashins(client, fake_paypack):
    """Back-to-back cash-ins authenticate once."""

    await client.cashin("0781234567", 500)
    await client.cashin("0721234567", 1000)

    assert fake_paypack.auth_calls == 1
    assert len(fake_paypack.cashin_requests) == 2


@pytest.mark.asyncio
async def test_authenticate_posts_client_credentials(client, fake_paypack):
    """Authorize sends the configured client id and secret."""

    seen = {}

    def capture(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"access": "tok", "refresh": "r", "expires": 4_102_444_800})

    fake_paypack.auth_override = capture
    auth = await client.authenticate()

    assert auth.access == "tok"
    assert seen == {"client_id": "client-test", "client_secret": "client-secret"}


@pytest.mark.asyncio
async def test_non_2xx_cashin_becomes_provider_error(client, fake_paypack):
    """Upstream rejection keeps status, message and raw body."""

    fake_paypack.cashin_override = lambda request: httpx.Response(400, json={"message": "insufficient balance"})

    with pytest.raises(ProviderError) as excinfo:
        await client.cashin("0781234567", 500)

    assert excinfo.value.upstream_status == 400
    assert "insufficient balance" in excinfo.value.message
    assert excinfo.value.body == {"message": "insufficient balance"}
    assert excinfo.value.status_code == 502


@pytest.mark.asyncio
async def test_error_field_is_used_when_message_is_absent(client, fake_paypack):
    """`error` is the fallback message field."""

    fake_paypack.cashin_override = lambda request: httpx.Response(422, json={"error": "number not registered"})

    with pytest.raises(ProviderError, match="number not registered"):
        await client.cashin("0781234567", 500)


@pytest.mark.asyncio
async def test_non_json_error_body_is_kept_raw(client, fake_paypack):
    """A plain-text error body is preserved and the reason phrase used."""

    fake_paypack.cashin_override = lambda request: httpx.Response(503, text="upstream down")

    with pytest.raises(ProviderError) as excinfo:
        await client.cashin("0781234567", 500)

    assert excinfo.value.upstream_status == 503
    assert excinfo.value.body == "upstream down"
    assert "Service Unavailable" in excinfo.value.message


@pytest.mark.asyncio
async def test_transport_failure_becomes_provider_error(client, fake_paypack):
    """Connection errors are translated, not leaked as httpx exceptions."""

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    fake_paypack.cashin_override = refuse

    with pytest.raises(ProviderError) as excinfo:
        await client.cashin("0781234567", 500)
    assert excinfo.value.upstream_status is None
    assert not isinstance(excinfo.value, httpx.HTTPError)


@pytest.mark.asyncio
async def test_rejected_credentials_raise_auth_error_and_skip_cashin(client, fake_paypack):
    """Credential rejection stops before the cash-in call."""

    fake_paypack.auth_override = lambda request: httpx.Response(401, json={"message": "invalid credentials"})

    with pytest.raises(AuthError) as excinfo:
        await client.cashin("0781234567", 500)

    assert excinfo.value.upstream_status == 401
    assert fake_paypack.cashin_requests == []
    assert client.tokens.cached is None


@pytest.mark.asyncio
async def test_missing_access_token_raises_auth_error(client, fake_paypack):
    """No access token in a 200 response means no cash-in call."""

    fake_paypack.auth_override = lambda request: httpx.Response(200, json={"refresh": "r", "expires": 4_102_444_800})

    with pytest.raises(AuthError):
        await client.cashin("0781234567", 500)
    assert fake_paypack.cashin_requests == []


@pytest.mark.asyncio
async def test_upstream_401_on_cashin_forces_reauthentication(client, fake_paypack):
    """A revoked token is dropped so the next call authenticates again."""

    fake_paypack.cashin_override = lambda request: httpx.Response(401, json={"message": "token revoked"})
    with pytest.raises(ProviderError):
        await client.cashin("0781234567", 500)

    fake_paypack.cashin_override = None
    await client.cashin("0781234567", 500)

    assert fake_paypack.auth_calls == 2


@pytest.mark.asyncio
async def test_malformed_success_body_is_wrapped_as_internal_error(client, fake_paypack):
    """An unparseable success body becomes an internal error."""

    fake_paypack.cashin_override = lambda request: httpx.Response(200, json={"unexpected": True})

    with pytest.raises(InternalError):
        await client.cashin("0781234567", 500)
