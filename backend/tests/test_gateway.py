"""Tests for the APNs gateway client."""
import asyncio
import json
import logging
import time

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

import outreach.main  # noqa: F401  service logging setup
from outreach.exceptions import GatewayConfigError
from outreach.services.gateway import (
    APNS_SANDBOX_HOST,
    TOKEN_REFRESH_SECONDS,
    GatewayClient,
    GatewayConfig,
)
from outreach.services.messages import OutboundMessage, Urgency


class FakeClock:
    def __init__(self):
        # Well in the past so advanced times never produce a future iat
        self.now = time.time() - 10 * TOKEN_REFRESH_SECONDS

    def __call__(self):
        return self.now


def make_config(key_path, **overrides):
    values = dict(
        key_path=str(key_path),
        key_id="KEY1234567",
        team_id="TEAM123456",
        bundle_id="com.example.outreach",
        use_sandbox=True,
        timeout_seconds=2.0,
        max_concurrent_sends=10,
    )
    values.update(overrides)
    return GatewayConfig(**values)


def make_client(key_path, handler, clock=None, **overrides):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs = {"clock": clock} if clock else {}
    return GatewayClient(make_config(key_path, **overrides), http_client=http_client, **kwargs)


def ok_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, headers={"apns-id": "A1B2C3"})
    return handler


def test_missing_key_file_is_fatal(tmp_path):
    with pytest.raises(GatewayConfigError):
        GatewayClient(make_config(tmp_path / "missing.p8"))


def test_unset_key_path_is_fatal():
    with pytest.raises(GatewayConfigError):
        GatewayClient(make_config(""))


def test_garbage_key_file_is_fatal(tmp_path):
    path = tmp_path / "bad.p8"
    path.write_text("not a key")
    with pytest.raises(GatewayConfigError):
        GatewayClient(make_config(path))


def test_non_ec_key_is_fatal(tmp_path):
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    path = tmp_path / "rsa.pem"
    path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    with pytest.raises(GatewayConfigError):
        GatewayClient(make_config(path))


def test_missing_team_id_is_fatal(ec_key_path):
    with pytest.raises(GatewayConfigError):
        GatewayClient(make_config(ec_key_path, team_id=""))


def test_credential_is_reused_within_refresh_window(ec_key_path):
    requests = []
    clock = FakeClock()

    async def run_test():
        client = make_client(ec_key_path, ok_handler(requests), clock=clock)
        message = OutboundMessage(title="Hi", body="There")
        await client.send("tok-1", message)
        clock.now += TOKEN_REFRESH_SECONDS - 60
        await client.send("tok-2", message)
        await client.aclose()

    asyncio.run(run_test())

    first, second = (r.headers["authorization"] for r in requests)
    assert first == second
    assert first.startswith("bearer ")


def test_credential_is_regenerated_after_refresh_window(ec_key_path):
    requests = []
    clock = FakeClock()

    async def run_test():
        client = make_client(ec_key_path, ok_handler(requests), clock=clock)
        message = OutboundMessage(title="Hi", body="There")
        await client.send("tok-1", message)
        clock.now += TOKEN_REFRESH_SECONDS + 1
        await client.send("tok-1", message)
        await client.aclose()

    asyncio.run(run_test())

    first, second = (r.headers["authorization"].split(" ", 1)[1] for r in requests)
    assert first != second

    public_pem = serialization.load_pem_private_key(
        ec_key_path.read_bytes(), password=None
    ).public_key()
    first_claims = jwt.decode(first, public_pem, algorithms=["ES256"])
    second_claims = jwt.decode(second, public_pem, algorithms=["ES256"])
    assert first_claims["iss"] == "TEAM123456"
    assert second_claims["iat"] > first_claims["iat"]
    assert jwt.get_unverified_header(second)["kid"] == "KEY1234567"


def test_concurrent_callers_share_one_credential(ec_key_path):
    async def run_test():
        client = make_client(ec_key_path, ok_handler([]))
        credentials = await asyncio.gather(*[client.current_credential() for _ in range(20)])
        await client.aclose()
        return credentials

    credentials = asyncio.run(run_test())
    assert len({c.token for c in credentials}) == 1


def test_request_shape(ec_key_path):
    requests = []

    async def run_test():
        client = make_client(ec_key_path, ok_handler(requests))
        message = OutboundMessage(
            title="Test",
            body="Hello",
            subtitle="Sub",
            category="OUTREACH_ALERT",
            badge=3,
            data={"context_type": "manual", "count": 2},
            urgency=Urgency.HIGH,
        )
        outcome = await client.send("abcdef0123456789", message)
        await client.aclose()
        return outcome

    outcome = asyncio.run(run_test())

    request = requests[0]
    assert str(request.url) == f"{APNS_SANDBOX_HOST}/3/device/abcdef0123456789"
    assert request.headers["apns-topic"] == "com.example.outreach"
    assert request.headers["apns-push-type"] == "alert"
    assert request.headers["apns-priority"] == "10"

    body = json.loads(request.content)
    assert body["aps"]["alert"] == {"title": "Test", "body": "Hello", "subtitle": "Sub"}
    assert body["aps"]["category"] == "OUTREACH_ALERT"
    assert body["aps"]["thread-id"] == "OUTREACH_ALERT"
    assert body["aps"]["badge"] == 3
    assert body["aps"]["sound"] == "default"
    assert body["data"] == {"context_type": "manual", "count": 2}

    assert outcome.success
    assert outcome.status_code == 200
    assert outcome.gateway_id == "A1B2C3"


def test_low_urgency_uses_low_priority(ec_key_path):
    requests = []

    async def run_test():
        client = make_client(ec_key_path, ok_handler(requests))
        await client.send("tok", OutboundMessage(title="a", body="b", urgency=Urgency.LOW))
        await client.aclose()

    asyncio.run(run_test())
    assert requests[0].headers["apns-priority"] == "1"


def test_production_host(ec_key_path):
    requests = []

    async def run_test():
        client = make_client(ec_key_path, ok_handler(requests), use_sandbox=False)
        await client.send("tok", OutboundMessage(title="a", body="b"))
        await client.aclose()

    asyncio.run(run_test())
    assert requests[0].url.host == "api.push.apple.com"


def test_rejection_carries_gateway_reason(ec_key_path):
    def handler(request):
        return httpx.Response(400, json={"reason": "BadDeviceToken"}, headers={"apns-id": "X"})

    async def run_test():
        client = make_client(ec_key_path, handler)
        outcome = await client.send("tok", OutboundMessage(title="a", body="b"))
        await client.aclose()
        return outcome

    outcome = asyncio.run(run_test())
    assert not outcome.success
    assert outcome.status_code == 400
    assert outcome.reason == "BadDeviceToken"
    assert outcome.is_permanent_failure


def test_unregistered_410_is_permanent(ec_key_path):
    def handler(request):
        return httpx.Response(410, json={"reason": "Unregistered", "timestamp": 1700000000000})

    async def run_test():
        client = make_client(ec_key_path, handler)
        outcome = await client.send("tok", OutboundMessage(title="a", body="b"))
        await client.aclose()
        return outcome

    outcome = asyncio.run(run_test())
    assert outcome.is_permanent_failure


def test_rate_limit_is_not_permanent(ec_key_path):
    def handler(request):
        return httpx.Response(429, json={"reason": "TooManyProviderTokenUpdates"})

    async def run_test():
        client = make_client(ec_key_path, handler)
        outcome = await client.send("tok", OutboundMessage(title="a", body="b"))
        await client.aclose()
        return outcome

    outcome = asyncio.run(run_test())
    assert not outcome.success
    assert not outcome.is_permanent_failure


def test_non_json_error_body(ec_key_path):
    def handler(request):
        return httpx.Response(500, text="oops")

    async def run_test():
        client = make_client(ec_key_path, handler)
        outcome = await client.send("tok", OutboundMessage(title="a", body="b"))
        await client.aclose()
        return outcome

    outcome = asyncio.run(run_test())
    assert outcome.reason == "http_500"


def test_timeout_has_no_status_code(ec_key_path):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    async def run_test():
        client = make_client(ec_key_path, handler)
        outcome = await client.send("tok", OutboundMessage(title="a", body="b"))
        await client.aclose()
        return outcome

    outcome = asyncio.run(run_test())
    assert not outcome.success
    assert outcome.status_code is None
    assert outcome.reason == "timeout"


def test_connection_error_has_no_status_code(ec_key_path):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async def run_test():
        client = make_client(ec_key_path, handler)
        outcome = await client.send("tok", OutboundMessage(title="a", body="b"))
        await client.aclose()
        return outcome

    outcome = asyncio.run(run_test())
    assert outcome.status_code is None
    assert outcome.reason == "connection_error"


def test_expired_provider_token_forces_new_credential(ec_key_path):
    responses = [
        httpx.Response(403, json={"reason": "ExpiredProviderToken"}),
        httpx.Response(200),
    ]

    def handler(request):
        return responses.pop(0)

    async def run_test():
        client = make_client(ec_key_path, handler)
        first = await client.current_credential()
        await client.send("tok", OutboundMessage(title="a", body="b"))
        second = await client.current_credential()
        await client.aclose()
        return first, second

    first, second = asyncio.run(run_test())
    assert first is not second


def test_send_many_preserves_order_and_isolates_failures(ec_key_path):
    delays = {"A": 0.05, "B": 0.0, "C": 0.02}

    async def handler(request):
        token = request.url.path.rsplit("/", 1)[1]
        await asyncio.sleep(delays[token])
        if token == "B":
            raise httpx.ConnectError("boom", request=request)
        return httpx.Response(200, headers={"apns-id": f"id-{token}"})

    async def run_test():
        client = make_client(ec_key_path, handler)
        outcomes = await client.send_many(["A", "B", "C"], OutboundMessage(title="a", body="b"))
        await client.aclose()
        return outcomes

    outcomes = asyncio.run(run_test())
    assert [o.token for o in outcomes] == ["A", "B", "C"]
    assert [o.success for o in outcomes] == [True, False, True]
    assert outcomes[0].gateway_id == "id-A"


def test_send_many_respects_concurrency_limit(ec_key_path):
    in_flight = 0
    peak = 0

    async def handler(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return httpx.Response(200)

    async def run_test():
        client = make_client(ec_key_path, handler, max_concurrent_sends=2)
        outcomes = await client.send_many(
            [f"tok-{i}" for i in range(8)], OutboundMessage(title="a", body="b")
        )
        await client.aclose()
        return outcomes

    outcomes = asyncio.run(run_test())
    assert len(outcomes) == 8
    assert peak <= 2


def test_send_many_empty(ec_key_path):
    async def run_test():
        client = make_client(ec_key_path, ok_handler([]))
        outcomes = await client.send_many([], OutboundMessage(title="a", body="b"))
        await client.aclose()
        return outcomes

    assert asyncio.run(run_test()) == []


def test_full_token_never_logged(ec_key_path, caplog):
    token = "a" * 64
    rejected = "b" * 64

    def handler(request):
        if request.url.path.endswith(rejected):
            return httpx.Response(400, json={"reason": "BadDeviceToken"})
        return httpx.Response(200, headers={"apns-id": "A1B2C3"})

    async def run_test():
        client = make_client(ec_key_path, handler)
        await client.send(token, OutboundMessage(title="Test", body="Hello"))
        await client.send(rejected, OutboundMessage(title="Test", body="Hello"))
        await client.aclose()

    caplog.set_level(logging.DEBUG)
    asyncio.run(run_test())
    for record in caplog.records:
        assert token not in record.getMessage()
        assert rejected not in record.getMessage()
