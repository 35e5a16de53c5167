"""HTTP client for backend communication."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from functools import lru_cache
from types import TracebackType
from typing import Any, TypeVar, overload

import httpx
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from subspace.errors import ConfigurationError
from subspace.network.credentials import CredentialStore
from subspace.network.errors import ErrorKind, NetworkError
from subspace.network.retry import RetryPolicy, Sleep

DEFAULT_BASE_URL = "http://localhost:8080/api/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0
JSON_CONTENT_TYPE = "application/json"

T = TypeVar("T")


class HTTPMethod(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass(frozen=True)
class RequestDescriptor:
    """One request as described by the caller."""

    path: str
    method: HTTPMethod = HTTPMethod.GET
    body: bytes | None = field(default=None, repr=False)
    include_auth: bool = True


def _method(method: HTTPMethod | str) -> HTTPMethod:
    try:
        return HTTPMethod(method.upper())
    except ValueError:
        raise ValueError(f"unsupported HTTP method: {method!r}") from None


@lru_cache(maxsize=128)
def _adapter_for(model: Any) -> TypeAdapter[Any]:
    return TypeAdapter(model)


def classify_transport_error(exc: BaseException) -> NetworkError:
    """Map an exception raised before a response was obtained to a `NetworkError`."""
    if isinstance(exc, NetworkError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError(ErrorKind.TIMEOUT)
    if isinstance(exc, (httpx.NetworkError, httpx.ProxyError)):
        return NetworkError(ErrorKind.NO_CONNECTION)
    if isinstance(exc, httpx.ProtocolError):
        return NetworkError(ErrorKind.INVALID_RESPONSE)
    return NetworkError(ErrorKind.UNKNOWN)


def _parse_base_url(base_url: str) -> httpx.URL:
    try:
        url = httpx.URL(base_url)
    except (httpx.InvalidURL, TypeError) as exc:
        raise ConfigurationError(f"Invalid API base URL: {base_url!r}") from exc
    if url.scheme not in {"http", "https"} or not url.host:
        raise ConfigurationError(f"Invalid API base URL: {base_url!r}")
    return url


class APIClient:
    """Issues JSON requests against one base URL and classifies every failure.

    Callers receive either the decoded body or a `NetworkError`; raw httpx and
    pydantic exceptions never escape. Retries happen only through
    `request_with_retry`.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        credentials: CredentialStore | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.base_url = _parse_base_url(base_url)
        self.timeout = timeout
        self._credentials = credentials
        self._sleep = sleep
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        logger.debug("api.client.init base_url={}", self.base_url)

    async def __aenter__(self) -> APIClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    def url_for(self, path: str) -> httpx.URL:
        base = str(self.base_url).rstrip("/")
        return httpx.URL(f"{base}/{path.lstrip('/')}")

    @overload
    async def request(
        self,
        path: str,
        method: HTTPMethod | str = ...,
        body: bytes | None = ...,
        *,
        response_model: type[T],
        include_auth: bool = ...,
    ) -> T: ...

    @overload
    async def request(
        self,
        path: str,
        method: HTTPMethod | str = ...,
        body: bytes | None = ...,
        *,
        response_model: None = ...,
        include_auth: bool = ...,
    ) -> None: ...

    async def request(
        self,
        path: str,
        method: HTTPMethod | str = HTTPMethod.GET,
        body: bytes | None = None,
        *,
        response_model: Any = None,
        include_auth: bool = True,
    ) -> Any:
        """Perform one request and decode the response.

        Args:
            path: Endpoint path appended to the base URL
            method: HTTP method
            body: Optional JSON request body
            response_model: Shape to decode a 2xx body into; None skips decoding
            include_auth: Attach the bearer token when a valid one is available

        Returns:
            The decoded body, or None when `response_model` is None

        Raises:
            NetworkError: On any failure, classified into one `ErrorKind`
            ValueError: If `method` is not a supported HTTP method
        """
        descriptor = RequestDescriptor(path=path, method=_method(method), body=body, include_auth=include_auth)
        return await self.send(descriptor, response_model)

    async def request_with_retry(
        self,
        path: str,
        method: HTTPMethod | str = HTTPMethod.GET,
        body: bytes | None = None,
        *,
        response_model: Any = None,
        policy: RetryPolicy = RetryPolicy.STANDARD,
        include_auth: bool = True,
    ) -> Any:
        """Like `request`, retried according to `policy`.

        Only the last error is raised once the policy gives up.
        """
        descriptor = RequestDescriptor(path=path, method=_method(method), body=body, include_auth=include_auth)
        return await policy.execute(lambda: self.send(descriptor, response_model), sleep=self._sleep)

    async def send(self, descriptor: RequestDescriptor, response_model: Any = None) -> Any:
        url = self.url_for(descriptor.path)
        logger.debug("api.request method={} url={}", descriptor.method, url)
        try:
            request = self._http.build_request(
                descriptor.method.value,
                url,
                content=descriptor.body,
                headers=self._headers(descriptor.include_auth),
                timeout=self.timeout,
            )
            response = await self._http.send(request)
        except Exception as exc:
            error = classify_transport_error(exc)
            logger.error(
                "api.request.failed method={} url={} kind={} error={!r}", descriptor.method, url, error.kind, exc
            )
            raise error from exc

        logger.debug("api.response method={} url={} status={}", descriptor.method, url, response.status_code)
        if not response.is_success:
            logger.error("api.response.server_error url={} status={}", url, response.status_code)
            raise NetworkError.server_error(response.status_code)

        if response_model is None:
            return None
        try:
            return _adapter_for(response_model).validate_json(response.content)
        except ValidationError as exc:
            logger.error("api.response.decoding_failed url={} error={}", url, exc)
            raise NetworkError(ErrorKind.DECODING_FAILED) from exc

    def _headers(self, include_auth: bool) -> dict[str, str]:
        headers = {"Content-Type": JSON_CONTENT_TYPE, "Accept": JSON_CONTENT_TYPE}
        if include_auth and (token := self._access_token()):
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _access_token(self) -> str | None:
        if self._credentials is None:
            return None
        tokens = self._credentials.get_tokens()
        if tokens is None:
            return None
        if tokens.is_expired():
            logger.debug("api.credentials.expired expires_at={}", tokens.expires_at)
            return None
        return tokens.access_token
