# tests/conftest.py
from __future__ import annotations

import json
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest
from pydantic import SecretStr

from celine.access.api.manifest.cache import ManifestCache
from celine.access.api.manifest.client import ManifestClient
from celine.access.api.manifest.gateway import ManifestGateway
from celine.access.api.rewrite.engine import PolicyRewriteEngine
from celine.access.security.models import AuthorizationContext

ENDPOINT = "https://access.example.org"
T0 = datetime(2030, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def manifest_payload(
    table: str = "customers",
    schema: str = "main",
    *,
    files: list[Any] | None = None,
    row_filters: list[Any] | None = None,
    column_masks: dict[str, Any] | None = None,
    columns: list[Any] | None = None,
    expires_at: Any = "2030-01-01T13:00:00Z",
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "table": table,
        "schema": schema,
        "columns": columns
        if columns is not None
        else [
            {"name": "id", "type": "INTEGER"},
            {"name": "name", "type": "VARCHAR"},
            {"name": "ssn", "type": "VARCHAR"},
            {"name": "region", "type": "VARCHAR"},
        ],
        "files": files
        if files is not None
        else ["https://bucket.example.org/customers/part-0.parquet"],
        "row_filters": row_filters if row_filters is not None else [],
        "column_masks": column_masks if column_masks is not None else {},
    }
    if expires_at is not None:
        payload["expires_at"] = expires_at
    return payload


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeManifestApi:
    """Stand-in for the manifest API behind an httpx.MockTransport.

    Responses are keyed by (schema, table); unknown tables get a 404.
    """

    def __init__(self) -> None:
        self.responses: dict[tuple[str, str], tuple[int, Any]] = {}
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def serve(self, payload: dict[str, Any], status: int = 200) -> None:
        key = (payload.get("schema", "main"), payload.get("table", ""))
        self.responses[key] = (status, payload)

    def respond(self, schema: str, table: str, status: int, body: Any) -> None:
        self.responses[(schema, table)] = (status, body)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        body = json.loads(request.content)
        status, payload = self.responses.get(
            (body["schema"], body["table"]), (404, {"message": "no such table"})
        )
        if isinstance(payload, (bytes, str)):
            return httpx.Response(status, content=payload)
        return httpx.Response(status, json=payload)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def api() -> FakeManifestApi:
    return FakeManifestApi()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway(api: FakeManifestApi):
    gw = ManifestGateway(timeout=5, transport=api.transport())
    yield gw
    gw.close()


@pytest.fixture
def client(gateway: ManifestGateway) -> ManifestClient:
    return ManifestClient(gateway)


@pytest.fixture
def cache(client: ManifestClient, clock: FakeClock) -> ManifestCache:
    return ManifestCache(client, safety_margin=timedelta(seconds=60), clock=clock)


@pytest.fixture
def make_engine(cache: ManifestCache) -> Callable[..., PolicyRewriteEngine]:
    def _make(**kwargs: Any) -> PolicyRewriteEngine:
        kwargs.setdefault("dialect", "duckdb")
        kwargs.setdefault("scan_function", "read_parquet")
        kwargs.setdefault("fail_mode", "open")
        return PolicyRewriteEngine(cache, **kwargs)

    return _make


@pytest.fixture
def engine(make_engine) -> PolicyRewriteEngine:
    return make_engine()


@pytest.fixture
def context() -> AuthorizationContext:
    return AuthorizationContext(endpoint=ENDPOINT, api_key=SecretStr("key-tenant-a"))


@pytest.fixture
def other_context() -> AuthorizationContext:
    return AuthorizationContext(endpoint=ENDPOINT, api_key=SecretStr("key-tenant-b"))


@pytest.fixture
def payload() -> Callable[..., dict[str, Any]]:
    return manifest_payload
