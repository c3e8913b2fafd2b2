"""Tests for request dispatch."""

from asyncio import run
from datetime import date, datetime, timedelta
from json import loads
from typing import TYPE_CHECKING

import httpx
import pytest
from pydantic import SecretStr

from testkit.core.executor import RequestExecutor
from testkit.core.verdicts import RequestSnapshot
from testkit.errors import RequestError, TransportError

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from .conftest import FakeService


@pytest.mark.parametrize('values, expected', (
    pytest.param(
        {'json_body': {'a': 1}},
        {'json': {'a': 1}},
        id='json body',
    ),
    pytest.param(
        {'body': [1, 2]},
        {'json': [1, 2]},
        id='structured body as json',
    ),
    pytest.param(
        {'json_body': {'due': date(2024, 1, 1), 'at': datetime(2024, 1, 1, 9, 30),
                       'every': timedelta(minutes=1), 'token': SecretStr('abc')}},
        {'json': {'due': '2024-01-01', 'at': '2024-01-01T09:30:00',
                  'every': 60.0, 'token': 'abc'}},
        id='json body with dates',
    ),
    pytest.param(
        {'body': [date(2024, 1, 1), b'raw']},
        {'json': ['2024-01-01', 'raw']},
        id='structured body with dates',
    ),
    pytest.param(
        {'body': 'raw text'},
        {'content': 'raw text'},
        id='text body',
    ),
    pytest.param(
        {'body': 42},
        {'content': '42'},
        id='scalar body',
    ),
    pytest.param(
        {'body': b'\x00\x01'},
        {'content': b'\x00\x01'},
        id='binary body',
    ),
    pytest.param(
        {'form': {'user': 'alice', 'age': 30}},
        {'data': {'user': 'alice', 'age': '30'}},
        id='form body',
    ),
    pytest.param(
        {'params': {'page': 2, 'tags': ['a', 'b']}},
        {'params': {'page': '2', 'tags': ['a', 'b']}},
        id='query parameters',
    ),
))
def test_build_arguments(values: dict[str, 'Any'], expected: dict[str, 'Any']) -> None:
    """Translate resolved requests into client arguments."""
    request = RequestSnapshot(method='POST', url='http://api.test/x', **values)

    assert RequestExecutor.build_arguments(request) == {'headers': {}, **expected}


def test_send_json(executor: RequestExecutor, service: 'FakeService') -> None:
    """Dispatch a request and capture a JSON response."""
    request = RequestSnapshot(
        method='POST',
        url='http://api.test/todos',
        headers={'X-Trace': 't-1'},
        json_body={'title': 'Buy milk'},
    )

    response = run(executor.send(request))

    assert response.status == 201
    assert response.is_json is True
    assert response.json_body == {'id': 3, 'title': 'Buy milk'}
    assert response.header('Content-Type') == 'application/json'
    assert response.elapsed_ms >= 0

    sent, = service.requests

    assert sent.headers['X-Trace'] == 't-1'
    assert loads(sent.content) == {'title': 'Buy milk'}


def test_send_text(executor: RequestExecutor) -> None:
    """Capture a non-JSON response body as text."""
    response = run(executor.send(RequestSnapshot(method='GET', url='http://api.test/text')))

    assert response.status == 200
    assert response.is_json is False
    assert response.json_body is None
    assert response.text == 'hello world'


def test_send_lowercases_headers(make_executor: 'Callable[..., RequestExecutor]') -> None:
    """Response header names are stored lower-cased."""
    executor = make_executor(lambda request: httpx.Response(  # noqa: ARG005
        204, headers={'X-Request-ID': 'abc'},
    ))

    response = run(executor.send(RequestSnapshot(method='DELETE', url='http://api.test/x')))

    assert response.headers['x-request-id'] == 'abc'
    assert response.header('X-REQUEST-ID') == 'abc'
    assert response.text == ''


def test_send_timeout_forwarded(make_executor: 'Callable[..., RequestExecutor]') -> None:
    """The step timeout bounds the request."""
    timeouts = []

    def handler(request: httpx.Request) -> httpx.Response:
        timeouts.append(request.extensions['timeout'])
        return httpx.Response(200)

    executor = make_executor(handler)
    run(executor.send(RequestSnapshot(method='GET', url='http://api.test/x'), timeout=1.5))
    run(executor.send(RequestSnapshot(method='GET', url='http://api.test/x')))

    assert timeouts[0]['read'] == 1.5
    assert timeouts[1]['read'] == 5


@pytest.mark.parametrize('path, except_message', (
    pytest.param('/down', r'^ConnectError: Connection refused', id='connection refused'),
    pytest.param('/slow', r'^Request timed out after 5s', id='timeout'),
))
def test_transport_errors(executor: RequestExecutor, path: str, except_message: str) -> None:
    """Transport failures become transport errors."""
    request = RequestSnapshot(method='GET', url=f'http://api.test{path}')

    with pytest.raises(TransportError, match=except_message) as error:
        run(executor.send(request))

    assert error.value.method == 'GET'
    assert error.value.url == f'http://api.test{path}'
    assert error.value.kind == 'transport'


def test_request_errors(executor: RequestExecutor, service: 'FakeService') -> None:
    """Requests the client refuses to build become request errors."""
    request = RequestSnapshot(
        method='GET',
        url='http://api.test/me',
        headers={'X-User': 'Zoë'},
    )

    with pytest.raises(RequestError, match=r'^Can not build request GET http://api.test/me') as error:
        run(executor.send(request))

    assert not isinstance(error.value, TransportError)
    assert error.value.kind == 'request'
    assert isinstance(error.value.__cause__, UnicodeEncodeError)
    assert service.requests == []


def test_executor_owns_client() -> None:
    """An executor closes only the client it created."""
    async def scenario() -> tuple[bool, bool]:
        external = httpx.AsyncClient(transport=httpx.MockTransport(lambda _: httpx.Response(200)))
        async with RequestExecutor(external):
            pass
        async with RequestExecutor() as owned:
            client = owned.client
        return external.is_closed, client.is_closed

    external_closed, owned_closed = run(scenario())

    assert external_closed is False
    assert owned_closed is True
