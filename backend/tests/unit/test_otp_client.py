import json
from datetime import datetime, timezone

import httpx
import pytest

from smsotp.domain.otp import policy
from smsotp.domain.otp.client import DeliveryClient, ProviderError
from smsotp.domain.otp.models import SendChallengeRequest

PRODUCT_TOKEN = "3f2504e0-4f89-11d3-9a0c-0305e82c3301"
REFERENCE = "7d444840-9dc0-11d1-b245-5ffdce74fad2"
EPOCH = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _request(**overrides) -> SendChallengeRequest:
    fields = {
        "recipient": "0031612345678",
        "originator": "EXAMPLE",
        "code_length": 6,
        "valid_for_seconds": 600,
        "message_template": "{code} is your code",
    }
    fields.update(overrides)
    return SendChallengeRequest(**fields)


@pytest.mark.asyncio
async def test_send_challenge_posts_wire_format(delivery_client, provider):
    receipt = await delivery_client.send_challenge(_request())

    request = provider.requests[-1]
    assert request.method == "POST"
    assert str(request.url) == "https://api.cm.test/v1.0/otp/generate"
    assert request.headers["X-CM-ProductToken"] == PRODUCT_TOKEN
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {
        "recipient": "0031612345678",
        "sender": "EXAMPLE",
        "length": 6,
        "expiry": 600,
        "message": "{code} is your code",
    }
    assert receipt.reference == REFERENCE
    assert receipt.not_before == EPOCH
    assert (receipt.not_after - receipt.not_before).total_seconds() == 600


@pytest.mark.asyncio
async def test_send_challenge_includes_push_fields(delivery_client, provider):
    app_key = "0b6a8a3c-2b1f-4e3b-8c0d-7f1e2d3c4b5a"
    await delivery_client.send_challenge(_request(allow_push=True, app_key=app_key))
    body = provider.bodies("/v1.0/otp/generate")[-1]
    assert body["allowPush"] is True
    assert body["appKey"] == app_key


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "error"),
    [
        ({"recipient": "+31612345678"}, policy.ChallengePolicyError),
        ({"originator": "12345678901234567"}, policy.SenderIdTooLong),
        ({"originator": "AB"}, policy.SenderIdInvalidLength),
        ({"code_length": 11}, policy.ChallengePolicyError),
        ({"valid_for_seconds": 0}, policy.ChallengePolicyError),
        ({"message_template": "no placeholder"}, policy.ChallengePolicyError),
        ({"allow_push": True, "app_key": "not-a-uuid"}, policy.ChallengePolicyError),
    ],
)
async def test_send_challenge_guards_before_network(delivery_client, provider, overrides, error):
    with pytest.raises(error):
        await delivery_client.send_challenge(_request(**overrides))
    assert provider.requests == []


@pytest.mark.asyncio
async def test_send_challenge_trims_seven_digit_fractions():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": REFERENCE,
                "createdAt": "2024-05-01T12:00:00.1234567+00:00",
                "expireAt": "2024-05-01T12:10:00.1234567+00:00",
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = DeliveryClient(http=http, product_token=PRODUCT_TOKEN)
        receipt = await client.send_challenge(_request())
    assert receipt.not_before.microsecond == 123456


@pytest.mark.asyncio
async def test_non_2xx_is_provider_rejection(delivery_client, provider):
    provider.generate_status = 400
    with pytest.raises(ProviderError) as excinfo:
        await delivery_client.send_challenge(_request())
    assert excinfo.value.reason == "provider_rejected"
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "Recipient rejected"
    assert "Recipient rejected" not in excinfo.value.message


@pytest.mark.asyncio
async def test_verify_rejection_says_code_could_not_be_checked(delivery_client, provider):
    provider.verify_status = 503
    with pytest.raises(ProviderError) as excinfo:
        await delivery_client.verify_challenge(REFERENCE, "123456")
    assert excinfo.value.reason == "provider_rejected"
    assert excinfo.value.message == "The verification code could not be checked (status 503)."


@pytest.mark.asyncio
async def test_send_challenge_rejects_non_identifier_reference(delivery_client, provider):
    provider.reference = "12345"
    with pytest.raises(ProviderError) as excinfo:
        await delivery_client.send_challenge(_request())
    assert excinfo.value.reason == "provider_malformed"


@pytest.mark.asyncio
async def test_timeout_is_surfaced_without_retry(delivery_client, provider):
    provider.raise_timeout = True
    with pytest.raises(ProviderError) as excinfo:
        await delivery_client.send_challenge(_request())
    assert excinfo.value.reason == "provider_timeout"
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_malformed_response_is_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = DeliveryClient(http=http, product_token=PRODUCT_TOKEN)
        with pytest.raises(ProviderError) as excinfo:
            await client.verify_challenge(REFERENCE, "123456")
    assert excinfo.value.reason == "provider_malformed"


@pytest.mark.asyncio
async def test_verify_challenge_reports_validity(delivery_client, provider):
    assert await delivery_client.verify_challenge(REFERENCE, "123456") is True
    assert await delivery_client.verify_challenge(REFERENCE, "000000") is False
    assert provider.bodies("/v1.0/otp/verify")[0] == {"id": REFERENCE, "code": "123456"}


@pytest.mark.asyncio
async def test_verify_challenge_requires_identifier(delivery_client, provider):
    with pytest.raises(policy.ChallengePolicyError) as excinfo:
        await delivery_client.verify_challenge("bogus", "123456")
    assert excinfo.value.reason == "reference_invalid"
    assert provider.requests == []


@pytest.mark.asyncio
async def test_send_text_uses_gateway_envelope(delivery_client, provider):
    reference = await delivery_client.send_text("0031612345678", "EXAMPLE", "004321 is your code")

    request = provider.requests[-1]
    assert str(request.url) == "https://gw.cm.test/v1.0/message"
    body = json.loads(request.content)
    assert body["messages"]["authentication"] == {"producttoken": PRODUCT_TOKEN}
    message = body["messages"]["msg"][0]
    assert message["from"] == "EXAMPLE"
    assert message["to"] == [{"number": "0031612345678"}]
    assert message["body"] == {"type": "auto", "content": "004321 is your code"}
    assert reference == message["reference"]


@pytest.mark.asyncio
async def test_send_text_rejected_message(delivery_client, provider):
    provider.message_error_code = 5
    with pytest.raises(ProviderError) as excinfo:
        await delivery_client.send_text("0031612345678", "EXAMPLE", "004321")
    assert excinfo.value.reason == "provider_rejected"
