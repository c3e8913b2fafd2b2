"""Tests configurations and fixtures."""

from json import loads
from typing import TYPE_CHECKING

import httpx
import pytest

from testkit.core.executor import RequestExecutor
from testkit.settings import RunnerSettings

if TYPE_CHECKING:
    from collections.abc import Callable

TODOS = [
    {'id': 1, 'title': 'Buy milk', 'done': False, 'tags': ['shopping']},
    {'id': 2, 'title': 'Write tests', 'done': True, 'tags': []},
]


class FakeService:
    """Deterministic HTTP service behind `httpx.MockTransport`.

    Every received request is recorded in `requests`. Endpoints:

    - `GET /health` returns `{"status": "ok"}`;
    - `POST /login` returns a token and an `X-Request-Id` header;
    - `GET /me` requires `Authorization: Bearer abc123`;
    - `GET /todos` returns a list of todos;
    - `POST /todos` echoes the JSON body with `id: 3` and status 201;
    - `GET /text` returns a plain text body;
    - `GET /flaky` fails with 503 until the third call;
    - `GET /down` fails with a connection error;
    - `GET /slow` fails with a read timeout.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.flaky_calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:  # noqa: PLR0911
        self.requests.append(request)

        match request.method, request.url.path:
            case 'GET', '/health':
                return httpx.Response(200, json={'status': 'ok'})
            case 'POST', '/login':
                return httpx.Response(
                    200,
                    json={'token': 'abc123', 'expires': 3600},
                    headers={'X-Request-Id': 'req-1'},
                )
            case 'GET', '/me':
                if request.headers.get('Authorization') != 'Bearer abc123':
                    return httpx.Response(401, json={'error': 'unauthorized'})
                return httpx.Response(200, json={
                    'user': {'name': 'alice', 'roles': ['admin', 'dev']},
                })
            case 'GET', '/todos':
                return httpx.Response(200, json=TODOS)
            case 'POST', '/todos':
                return httpx.Response(201, json={'id': 3, **loads(request.content)})
            case 'GET', '/text':
                return httpx.Response(200, text='hello world')
            case 'GET', '/flaky':
                self.flaky_calls += 1
                if self.flaky_calls < 3:
                    return httpx.Response(503)
                return httpx.Response(200, json={'ok': True})
            case 'GET', '/down':
                raise httpx.ConnectError('Connection refused', request=request)
            case 'GET', '/slow':
                raise httpx.ReadTimeout('Read timed out', request=request)

        return httpx.Response(404, json={'error': 'not found'})


@pytest.fixture
def service() -> FakeService:
    """Provide a fresh fake HTTP service."""
    return FakeService()


@pytest.fixture
def settings() -> RunnerSettings:
    """Provide default runner settings independent of the environment."""
    return RunnerSettings(timeout=5, concurrency=1, fail_fast=False)


@pytest.fixture
def make_executor(settings: RunnerSettings) -> 'Callable[..., RequestExecutor]':
    """Provide a factory of executors bound to a mock transport.

    Returns a callable that accepts a request handler and returns a
    `RequestExecutor` whose client sends every request to it.
    """
    def make(handler: 'Callable[[httpx.Request], httpx.Response]') -> RequestExecutor:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return RequestExecutor(client, settings=settings)

    return make


@pytest.fixture
def executor(service: FakeService,
             make_executor: 'Callable[..., RequestExecutor]') -> RequestExecutor:
    """Provide an executor bound to the fake service."""
    return make_executor(service)
