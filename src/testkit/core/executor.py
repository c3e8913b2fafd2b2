"""Request dispatch over HTTP.

The executor performs exactly one outbound request per call and never
retries on its own: retries are a step-level directive handled by the
orchestrator, so a flaky endpoint is never silently reported as passing.
"""

from datetime import date, timedelta
from json import JSONDecodeError
from logging import getLogger
from time import perf_counter
from typing import TYPE_CHECKING, Any, Self

import httpx
from pydantic import SecretStr

from testkit.errors import RequestError, TransportError
from testkit.settings import RunnerSettings
from testkit.values import MAPPINGS, SEQUENCES

from .resolver import stringify
from .verdicts import RequestSnapshot, ResponseSnapshot

if TYPE_CHECKING:
    from types import TracebackType

    from testkit.values import Value

logger = getLogger(__name__)


def to_json(value: 'Value') -> Any:  # noqa: ANN401
    """Convert a resolved value into JSON-serializable data.

    Dates and datetimes become ISO 8601 strings, durations become
    seconds, secrets are unwrapped, bytes are decoded as UTF-8 and
    sets become lists.
    """
    if isinstance(value, SecretStr):
        return value.get_secret_value()

    if isinstance(value, date):
        return value.isoformat()

    if isinstance(value, timedelta):
        return value.total_seconds()

    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')

    if isinstance(value, MAPPINGS):
        return {str(key): to_json(item) for key, item in value.items()}

    if isinstance(value, SEQUENCES):
        return [to_json(item) for item in value]

    return value


class RequestExecutor:
    """Dispatcher of resolved requests.

    The executor owns an `httpx.AsyncClient` unless one is supplied,
    in which case the caller remains responsible for closing it.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, *,
                 settings: RunnerSettings | None = None) -> None:
        """Initialize the executor.

        Args:
            client: Optional preconfigured asynchronous HTTP client.
            settings: Runner settings providing the default timeout,
                TLS verification and redirect policy.
        """
        self.settings = settings or RunnerSettings()

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=self.settings.timeout,
            verify=self.settings.verify_tls,
            follow_redirects=self.settings.follow_redirects,
        )

    async def __aenter__(self) -> Self:
        """Enter the async context."""
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None,
                        exc_value: BaseException | None,
                        traceback: 'TracebackType | None') -> None:
        """Close the owned client on exit."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if the executor created it."""
        if self._owns_client:
            await self.client.aclose()

    @staticmethod
    def build_arguments(request: RequestSnapshot) -> dict[str, Any]:
        """Translate a resolved request into `httpx` keyword arguments.

        Args:
            request: Resolved request.

        Returns:
            Keyword arguments for `httpx.AsyncClient.request`.
        """
        arguments: dict[str, Any] = {
            'headers': request.headers,
        }

        if request.params:
            arguments['params'] = {
                name: value if isinstance(value, SEQUENCES) else stringify(value)
                for name, value in request.params.items()
            }

        if request.json_body is not None:
            arguments['json'] = to_json(request.json_body)
        elif request.form is not None:
            arguments['data'] = {
                name: stringify(value)
                for name, value in request.form.items()
            }
        elif isinstance(request.body, (*MAPPINGS, *SEQUENCES)):
            arguments['json'] = to_json(request.body)
        elif isinstance(request.body, bytes):
            arguments['content'] = request.body
        elif request.body is not None:
            arguments['content'] = stringify(request.body)

        return arguments

    @staticmethod
    def capture(response: httpx.Response, elapsed_ms: float) -> ResponseSnapshot:
        """Build a response snapshot from an `httpx` response.

        Args:
            response: Received response.
            elapsed_ms: Time from dispatch to the fully read body.

        Returns:
            Immutable response snapshot.
        """
        json_body, is_json = None, False
        if response.content:
            try:
                json_body, is_json = response.json(), True
            except (JSONDecodeError, UnicodeDecodeError):
                pass

        return ResponseSnapshot(
            status=response.status_code,
            headers={
                name.lower(): value
                for name, value in response.headers.items()
            },
            text=response.text,
            json_body=json_body,
            is_json=is_json,
            elapsed_ms=elapsed_ms,
        )

    async def send(self, request: RequestSnapshot, *,
                   timeout: float | None = None) -> ResponseSnapshot:
        """Dispatch one request and capture its response.

        Args:
            request: Fully resolved request.
            timeout: Timeout in seconds; the settings default if omitted.

        Returns:
            Captured response.

        Raises:
            RequestError: If the client can not build the request, for
                example from a malformed URL or a non-ASCII header value.
            TransportError: On connection, DNS, TLS, protocol failures
                and timeouts.
        """
        if timeout is None:
            timeout = self.settings.timeout

        logger.debug('%s %s', request.method, request.url)

        try:
            prepared = self.client.build_request(
                request.method,
                request.url,
                timeout=timeout,
                **self.build_arguments(request),
            )

        except (httpx.InvalidURL, TypeError, ValueError) as base:
            raise RequestError(
                f'Can not build request {request.method} {request.url}: {base}',
                method=request.method,
                url=request.url,
            ) from base

        started = perf_counter()
        try:
            response = await self.client.send(prepared)

        except httpx.TimeoutException as base:
            raise TransportError(
                f'Request timed out after {timeout:g}s: {request.method} {request.url}',
                method=request.method,
                url=request.url,
            ) from base

        except httpx.TransportError as base:
            raise TransportError(
                f'{type(base).__name__}: {base or 'request failed'} ({request.method} {request.url})',
                method=request.method,
                url=request.url,
            ) from base

        elapsed_ms = (perf_counter() - started) * 1000
        logger.debug('%s %s -> %d in %.1f ms', request.method, request.url,
                     response.status_code, elapsed_ms)

        return self.capture(response, elapsed_ms)
