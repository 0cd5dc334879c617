"""Rate-limited async HTTP client with transient-error retries.

Every request made through a :class:`RateLimitedHttpClient` first takes a
slot from the client's semaphore, so no more than
``max_parallel_connections`` requests are on the wire at once however many
coroutines are waiting. The slot is held for a single attempt only: it is
released when the response arrives or the attempt fails, and backoff sleeps
happen without a slot.
"""

import asyncio
from collections.abc import Mapping
from typing import Any, Final, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from property_search.logging import get_logger
from property_search.utils.retry import RetryPolicy

logger = get_logger(__name__)

T = TypeVar("T")

USER_AGENT: Final = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# 5xx are always transient; these client errors are too.
RETRYABLE_STATUS_CODES: Final = frozenset({408, 429})

_TRANSIENT_EXCEPTIONS: Final = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)

# Keep exception messages readable; the full body stays on the exception.
_MAX_BODY_IN_MESSAGE: Final = 2000


class FetchError(Exception):
    """Base class for failures of an outbound request."""

    def __init__(self, message: str, *, url: str) -> None:
        super().__init__(message)
        self.url = url


class TransientFetchError(FetchError):
    """Network error or retryable status; retried by the client."""

    def __init__(self, message: str, *, url: str, status_code: int | None = None) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code


class FetchExhaustedError(FetchError):
    """A transient failure persisted through every retry."""

    def __init__(self, message: str, *, url: str, attempts: int) -> None:
        super().__init__(message, url=url)
        self.attempts = attempts


class UnexpectedStatusError(FetchError):
    """The server answered with a non-2xx status where a body was expected."""

    def __init__(self, message: str, *, url: str, status_code: int, body: str) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code
        self.body = body


class DecodeError(FetchError):
    """A successful response whose body did not have the expected shape."""

    def __init__(
        self, message: str, *, url: str, status_code: int, body: str, context: str = ""
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code
        self.body = body
        self.context = context


def is_transient_status(status_code: int) -> bool:
    """Whether an HTTP status is worth retrying."""
    return status_code >= 500 or status_code in RETRYABLE_STATUS_CODES


def decode_json(response: httpx.Response, adapter: TypeAdapter[T], *, context: str = "") -> T:
    """Validate a JSON response body against ``adapter``.

    Raises:
        UnexpectedStatusError: The response status is not 2xx.
        DecodeError: The body is not JSON or does not match the expected shape.
            The error carries URL, status code and raw body for diagnosis.
    """
    url = str(response.request.url)
    body = response.text
    if not response.is_success:
        raise UnexpectedStatusError(
            f"Unexpected status {response.status_code} from {url}\n"
            f"Response body:\n{body[:_MAX_BODY_IN_MESSAGE]}",
            url=url,
            status_code=response.status_code,
            body=body,
        )
    try:
        return adapter.validate_json(response.content)
    except ValidationError as e:
        raise DecodeError(
            f"{e}\nURL: {url}\nStatus code: {response.status_code}\n"
            f"Response body:\n{body[:_MAX_BODY_IN_MESSAGE]}\nContext: {context}",
            url=url,
            status_code=response.status_code,
            body=body,
            context=context,
        ) from e


class RateLimitedHttpClient:
    """Async HTTP client bounded by a counting semaphore."""

    def __init__(
        self,
        *,
        max_parallel_connections: int = 16,
        max_retry_count: int = 3,
        retry_backoff_seconds: float = 0.5,
        referer: str | None = None,
        user_agent: str = USER_AGENT,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            max_parallel_connections: Maximum number of requests in flight at once.
            max_retry_count: Retries for transient failures before giving up.
            retry_backoff_seconds: Base of the exponential backoff between retries.
            referer: Optional Referer header sent with every request.
            user_agent: User-Agent header sent with every request.
            timeout: Per-request timeout in seconds.
            transport: Custom httpx transport (used by tests).
        """
        if max_parallel_connections < 1:
            raise ValueError("max_parallel_connections must be >= 1")
        headers = {"User-Agent": user_agent}
        if referer:
            headers["Referer"] = referer
        self._client = httpx.AsyncClient(headers=headers, timeout=timeout, transport=transport)
        self._semaphore = asyncio.Semaphore(max_parallel_connections)
        self._retry_policy = RetryPolicy(
            max_retries=max_retry_count,
            delay=retry_backoff_seconds,
            exponential=True,
        )
        self.max_parallel_connections = max_parallel_connections

    async def __aenter__(self) -> "RateLimitedHttpClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    async def get(self, url: str) -> httpx.Response:
        """GET ``url``, following redirects."""
        return await self._request("GET", url)

    async def get_with_options(
        self,
        url: str,
        params: Mapping[str, str] | None = None,
        *,
        follow_redirects: bool = True,
    ) -> httpx.Response:
        """GET ``url`` with query parameters.

        With ``follow_redirects=False`` a 3xx response is returned as-is.
        """
        return await self._request("GET", url, params=params, follow_redirects=follow_redirects)

    async def post_with_form(self, url: str, form: Mapping[str, str]) -> httpx.Response:
        """POST ``form`` as application/x-www-form-urlencoded."""
        return await self._request("POST", url, data=form)

    async def post_with_json(self, url: str, json: Any) -> httpx.Response:
        """POST ``json`` as an application/json body."""
        return await self._request("POST", url, json=json)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        json: Any = None,
        follow_redirects: bool = True,
    ) -> httpx.Response:
        """Send one request, retrying transient failures.

        Returns any non-transient response, including 3xx and 4xx.

        Raises:
            FetchExhaustedError: Transient failures outlasted the retry budget.
            httpx.HTTPError: A non-transient transport error (e.g. invalid URL).
        """

        async def attempt() -> httpx.Response:
            async with self._semaphore:
                try:
                    response = await self._client.request(
                        method,
                        url,
                        params=params,
                        data=data,
                        json=json,
                        follow_redirects=follow_redirects,
                    )
                except _TRANSIENT_EXCEPTIONS as e:
                    raise TransientFetchError(
                        f"{method} {url} failed: {e!r}", url=url
                    ) from e

            logger.debug(
                "http_request",
                method=method,
                url=str(response.request.url),
                follow_redirects=follow_redirects,
                status=response.status_code,
            )
            if is_transient_status(response.status_code):
                raise TransientFetchError(
                    f"{method} {url} returned status {response.status_code}",
                    url=url,
                    status_code=response.status_code,
                )
            return response

        try:
            return await self._retry_policy.run(
                attempt,
                retry_on=(TransientFetchError,),
                event="http_transient_error_retrying",
                method=method,
                url=url,
            )
        except TransientFetchError as e:
            raise FetchExhaustedError(
                f"{method} {url} failed after {self._retry_policy.max_attempts} attempts: {e}",
                url=url,
                attempts=self._retry_policy.max_attempts,
            ) from e
