import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from smsotp.domain.otp.client import DeliveryClient
from smsotp.domain.otp.service import ChallengeService
from smsotp.domain.otp.store import ChallengeStore
from smsotp.domain.otp.strategies import build_strategy
from smsotp.infra.clock import FrozenClock
from smsotp.main import app
from smsotp.settings import settings

PRODUCT_TOKEN = "3f2504e0-4f89-11d3-9a0c-0305e82c3301"
REFERENCE = "7d444840-9dc0-11d1-b245-5ffdce74fad2"
API_BASE = "https://api.cm.test"
GATEWAY_BASE = "https://gw.cm.test"
EPOCH = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class ProviderStub:
	"""In-memory stand-in for the cm.com endpoints, driven through httpx.MockTransport."""

	def __init__(self, clock: FrozenClock) -> None:
		self.clock = clock
		self.requests: list[httpx.Request] = []
		self.code = "123456"
		self.reference = REFERENCE
		self.generate_status = 200
		self.verify_status = 200
		self.message_status = 200
		self.message_error_code = 0
		self.raise_timeout = False

	def paths(self) -> list[str]:
		return [request.url.path for request in self.requests]

	def bodies(self, path: str) -> list[dict]:
		return [json.loads(request.content) for request in self.requests if request.url.path == path]

	def sent_texts(self) -> list[str]:
		return [body["messages"]["msg"][0]["body"]["content"] for body in self.bodies("/v1.0/message")]

	def __call__(self, request: httpx.Request) -> httpx.Response:
		self.requests.append(request)
		if self.raise_timeout:
			raise httpx.ReadTimeout("timed out", request=request)
		body = json.loads(request.content) if request.content else {}
		path = request.url.path
		if path == "/v1.0/otp/generate":
			if self.generate_status != 200:
				return httpx.Response(self.generate_status, json={"message": "Recipient rejected", "status": self.generate_status})
			now = self.clock.now()
			return httpx.Response(
				200,
				json={
					"id": self.reference,
					"createdAt": now.isoformat(),
					"expireAt": (now + timedelta(seconds=body["expiry"])).isoformat(),
				},
			)
		if path == "/v1.0/otp/verify":
			if self.verify_status != 200:
				return httpx.Response(self.verify_status, json={"message": "Service unavailable", "status": self.verify_status})
			return httpx.Response(200, json={"valid": body["id"] == self.reference and body["code"] == self.code})
		if path == "/v1.0/message":
			if self.message_status != 200:
				return httpx.Response(self.message_status, json={"details": "No account found", "errorCode": 999})
			msg = body["messages"]["msg"][0]
			return httpx.Response(
				200,
				json={
					"details": "Created 1 message(s)",
					"errorCode": 0,
					"messages": [
						{
							"to": msg["to"][0]["number"],
							"status": "Accepted" if self.message_error_code == 0 else "Rejected",
							"reference": msg.get("reference"),
							"messageErrorCode": self.message_error_code,
						}
					],
				},
			)
		return httpx.Response(404, json={"message": "Not found"})


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from smsotp.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Pin the settings the routes read so tests do not depend on the host environment."""
	original_env = settings.environment
	original_token = settings.cm_product_token
	original_resume = settings.pipeline_resume_url
	original_public = settings.obs_metrics_public
	settings.environment = "dev"
	settings.cm_product_token = PRODUCT_TOKEN
	settings.pipeline_resume_url = "https://idp.example/module/resume"
	settings.obs_metrics_public = True
	try:
		yield
	finally:
		settings.environment = original_env
		settings.cm_product_token = original_token
		settings.pipeline_resume_url = original_resume
		settings.obs_metrics_public = original_public


@pytest.fixture
def clock():
	return FrozenClock(EPOCH)


@pytest.fixture
def provider(clock):
	return ProviderStub(clock)


@pytest_asyncio.fixture
async def http_client(provider):
	async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as client:
		yield client


@pytest.fixture
def delivery_client(http_client):
	return DeliveryClient(http=http_client, product_token=PRODUCT_TOKEN, api_base=API_BASE, gateway_base=GATEWAY_BASE)


@pytest.fixture
def make_service(fake_redis, delivery_client, clock):
	def _make(strategy: str = "delegated", **overrides) -> ChallengeService:
		options = {"originator": "EXAMPLE", "mobile_attribute": "mobile"}
		options.update(overrides)
		return ChallengeService(
			ChallengeStore(fake_redis),
			build_strategy(strategy, delivery_client, clock),
			clock,
			**options,
		)

	return _make


@pytest_asyncio.fixture
async def api_client(make_service):
	app.state.challenge_service = make_service()
	transport = ASGITransport(app=app)
	try:
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
	finally:
		app.state.challenge_service = None
