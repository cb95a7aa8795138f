import httpx
import pytest

from smsotp.main import app
from smsotp.obs import metrics


def _auth_state(response: httpx.Response) -> str:
	return httpx.URL(response.headers["location"]).params["AuthState"]


async def _begin(api_client, mobile="+31612345678") -> str:
	response = await api_client.post(
		"/otp/begin",
		json={"resumeId": "resume-7", "attributes": {"mobile": mobile}, "isPassive": False},
	)
	assert response.status_code == 303
	assert httpx.URL(response.headers["location"]).path == "/otp/send-code"
	return _auth_state(response)


async def _send(api_client, pending_id: str) -> httpx.Response:
	return await api_client.get("/otp/send-code", params={"AuthState": pending_id})


@pytest.mark.asyncio
async def test_full_flow_resumes_pipeline(api_client):
	pending_id = await _begin(api_client)

	sent = await _send(api_client, pending_id)
	assert sent.status_code == 303
	assert httpx.URL(sent.headers["location"]).path == "/otp/enter-code"
	assert _auth_state(sent) == pending_id

	page = await api_client.get("/otp/enter-code", params={"AuthState": pending_id})
	assert page.status_code == 200
	assert page.json()["view"] == "enter_code"
	assert page.json()["data"]["invalid"] is False

	done = await api_client.post(
		"/otp/validate-code",
		params={"AuthState": pending_id},
		data={"otp": "123456"},
	)
	assert done.status_code == 303
	assert done.headers["location"] == "https://idp.example/module/resume?AuthState=resume-7"


@pytest.mark.asyncio
async def test_wrong_code_returns_to_entry(api_client):
	pending_id = await _begin(api_client)
	await _send(api_client, pending_id)

	response = await api_client.post(
		"/otp/validate-code",
		json={"AuthState": pending_id, "otp": "999999"},
	)
	assert response.status_code == 303
	assert httpx.URL(response.headers["location"]).path == "/otp/enter-code"

	page = await api_client.get("/otp/enter-code", params={"AuthState": pending_id})
	assert page.json()["data"]["invalid"] is True


@pytest.mark.asyncio
async def test_send_failure_prompts_resend(api_client, provider):
	provider.generate_status = 500
	pending_id = await _begin(api_client)

	sent = await api_client.post("/otp/send-code", params={"AuthState": pending_id})
	assert httpx.URL(sent.headers["location"]).path == "/otp/prompt-resend"

	prompt = await api_client.get("/otp/prompt-resend", params={"AuthState": pending_id})
	assert prompt.status_code == 200
	body = prompt.json()
	assert body["view"] == "prompt_resend"
	assert body["AuthState"] == pending_id
	assert body["data"]["message"] == "The verification code could not be sent (status 500)."


@pytest.mark.asyncio
async def test_resend_request(api_client):
	pending_id = await _begin(api_client)
	await _send(api_client, pending_id)

	response = await api_client.post("/otp/resend", params={"AuthState": pending_id})
	assert response.status_code == 303
	prompt = await api_client.get("/otp/prompt-resend", params={"AuthState": pending_id})
	assert prompt.json()["data"]["message"] == ""


@pytest.mark.asyncio
async def test_passive_begin_is_forbidden(api_client, fake_redis):
	response = await api_client.post(
		"/otp/begin",
		json={"resumeId": "resume-7", "attributes": {"mobile": ["0612345678"]}, "isPassive": True},
	)
	assert response.status_code == 403
	assert response.json()["detail"] == "interaction_required"
	assert "request_id" in response.json()
	assert await fake_redis.keys("otp:stepup:*") == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
	("attributes", "detail"),
	[
		({}, "attribute_missing"),
		({"mobile": ["1234"]}, "phone_invalid"),
		({"mobile": ["+4930123456111111"]}, "phone_invalid"),
	],
)
async def test_unusable_phone_attribute(api_client, attributes, detail):
	response = await api_client.post("/otp/begin", json={"resumeId": "resume-7", "attributes": attributes})
	assert response.status_code == 422
	assert response.json()["detail"] == detail


@pytest.mark.asyncio
async def test_missing_and_unknown_auth_state(api_client):
	missing = await api_client.get("/otp/enter-code")
	assert missing.status_code == 400
	assert missing.json()["detail"] == "state_missing"

	unknown = await api_client.get("/otp/prompt-resend", params={"AuthState": "_nope"})
	assert unknown.status_code == 400
	assert unknown.json()["detail"] == "state_unknown"


@pytest.mark.asyncio
async def test_prompt_without_reason_is_server_error(api_client):
	pending_id = await _begin(api_client)
	await _send(api_client, pending_id)
	response = await api_client.get("/otp/prompt-resend", params={"AuthState": pending_id})
	assert response.status_code == 500
	assert response.json()["detail"] == "reason_missing"


@pytest.mark.asyncio
async def test_unconfigured_service_is_unavailable(api_client):
	app.state.challenge_service = None
	response = await api_client.get("/otp/enter-code", params={"AuthState": "_x"})
	assert response.status_code == 503
	assert response.json()["detail"] == "service_unavailable"


@pytest.mark.asyncio
async def test_challenge_metrics_are_counted(api_client):
	before = metrics.CHALLENGES.labels(action="begin", result="ok")._value.get()
	await _begin(api_client)
	after = metrics.CHALLENGES.labels(action="begin", result="ok")._value.get()
	assert after == before + 1


@pytest.mark.asyncio
async def test_request_id_header_is_echoed(api_client):
	response = await api_client.get("/health/live", headers={"X-Request-Id": "rid-123"})
	assert response.status_code == 200
	assert response.headers["X-Request-Id"] == "rid-123"
