from __future__ import annotations

from typing import Any

import httpx
import pytest

from portal.config import Settings
from portal.database import build_engine, build_sessionmaker
from portal.main import create_app
from portal.models import Base
from portal.services.swiftpay import SwiftPayClient
from tests._client import get_async_client


class FakeApi:
    """Scripted upstream API served through ``httpx.MockTransport``.

    Responses are queued per path suffix as ``(status, body)`` tuples or
    exceptions. The last entry repeats once the queue is drained. A ``str``
    body is sent verbatim, anything else as JSON.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[str, list[Any]] = {}

    def set(self, path_suffix: str, *responses: Any) -> None:
        self._routes[path_suffix] = list(responses)

    def calls(self, path_suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(path_suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, queue in self._routes.items():
            if request.url.path.endswith(suffix):
                item = queue.pop(0) if len(queue) > 1 else queue[0]
                if isinstance(item, Exception):
                    raise item
                status, body = item
                if isinstance(body, str):
                    return httpx.Response(status, text=body)
                return httpx.Response(status, json=body)
        return httpx.Response(404, json={"message": "no route"})


STK_PATH = "/api/mpesa/stk-push-api"
VERIFY_PATH = "/api/mpesa-verification-proxy"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        environment="test",
        project_name="portal",
        swiftpay_api_key="test-api-key",
        swiftpay_till_id="TILL-001",
        swiftpay_backend_url="https://swiftpay.test",
        mpesa_proxy_url="https://swiftpay.test/api/mpesa-verification-proxy",
        mpesa_proxy_api_key="proxy-key",
        transactions_admin_token="",
        celery_enabled=False,
    )


@pytest.fixture
def swiftpay_api() -> FakeApi:
    api = FakeApi()
    api.set(STK_PATH, (200, {"success": True, "data": {"checkout_id": "ws_CO_0001"}}))
    api.set(VERIFY_PATH, (200, {"success": True, "payment": {"status": "pending"}}))
    return api


@pytest.fixture
async def engine(settings: Settings):
    engine = build_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def swiftpay_client(settings: Settings, swiftpay_api: FakeApi) -> SwiftPayClient:
    return SwiftPayClient.from_settings(settings, transport=httpx.MockTransport(swiftpay_api.handler))


@pytest.fixture
def app(settings, engine, swiftpay_client):
    return create_app(settings, engine=engine, swiftpay=swiftpay_client)


@pytest.fixture
async def client(app):
    async with get_async_client(app) as c:
        yield c
