from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from runtask.config import RunTaskConfig
from runtask.main import create_app
from runtask.signature import SIGNATURE_HEADER, compute_signature

HMAC_KEY = "abc123"


class PlatformStub:
    """Test double for the platform API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}

    def route(
        self,
        method: str,
        url: str,
        status_code: int = 200,
        *,
        error: Exception | None = None,
        **response_kwargs: Any,
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if error is not None:
                raise error
            return httpx.Response(status_code, **response_kwargs)

        self._routes[(method, url)] = respond

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        respond = self._routes.get((request.method, str(request.url)))
        if respond is None:
            return httpx.Response(404, text="no route")
        return respond(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, url: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and (url is None or str(r.url) == url)
        ]


@pytest.fixture
def platform() -> PlatformStub:
    return PlatformStub()


@pytest.fixture
def config(tmp_path) -> RunTaskConfig:
    return RunTaskConfig(hmac_key=HMAC_KEY, archive_dir=tmp_path)


@pytest.fixture
def client(config: RunTaskConfig, platform: PlatformStub) -> TestClient:
    app = create_app(config, transport=platform.transport)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def post_signed(client: TestClient) -> Callable[..., httpx.Response]:
    """POST a body to / with a signature computed over its exact bytes."""

    def _post(body: bytes | dict, *, key: str = HMAC_KEY, signature: str | None = None):
        raw = body if isinstance(body, bytes) else json.dumps(body).encode()
        sig = signature if signature is not None else compute_signature(raw, key)
        return client.post(
            "/",
            content=raw,
            headers={"Content-Type": "application/json", SIGNATURE_HEADER: sig},
        )

    return _post
