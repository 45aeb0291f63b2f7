import logging
from typing import Dict, Mapping, Optional

import httpx
from pydantic import BaseModel, Field

from .breaker import CircuitBreaker, CircuitBreakerStrategy
from .retry import RetryableStatus, RetryStrategy, is_retryable_exception

logger = logging.getLogger(__name__)


class HTTPClientConfiguration(BaseModel):
    timeout: float = 30.0
    retry: RetryStrategy = Field(default_factory=RetryStrategy)
    circuit_breaker: CircuitBreakerStrategy = Field(default_factory=CircuitBreakerStrategy)
    user_agent: str = "pkgregistry"


class HTTPClient:
    """
    sends single requests through an httpx client with retry and
    per-host circuit breaking layered underneath.

    responses are always fully read, whatever their status. only transport
    failures and an open breaker surface as exceptions; callers decide what
    a given status means.
    """

    def __init__(
        self,
        configuration: Optional[HTTPClientConfiguration] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.configuration = configuration or HTTPClientConfiguration()
        self._transport = transport
        self._client = client
        self._breakers: Dict[str, CircuitBreaker] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=httpx.Timeout(self.configuration.timeout),
                headers={"User-Agent": self.configuration.user_agent},
                follow_redirects=True,
            )
        return self._client

    def breaker_for(self, host: str) -> CircuitBreaker:
        breaker = self._breakers.get(host)
        if breaker is None:
            breaker = CircuitBreaker(
                host,
                self.configuration.circuit_breaker,
                is_failure=is_retryable_exception,
            )
            self._breakers[host] = breaker
        return breaker

    async def get(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        return await self.send("GET", url, headers=headers, params=params)

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        client = self._get_client()
        request = client.build_request(method, url, headers=headers, params=params)
        breaker = self.breaker_for(request.url.host)
        retry = self.configuration.retry

        async def attempt_once() -> httpx.Response:
            logger.debug(f"{request.method} {request.url}")
            response = await client.send(request)
            logger.debug(f"{response.status_code} {request.url} ({len(response.content)} bytes)")
            if retry.is_retryable_status(response.status_code):
                raise RetryableStatus(response)
            return response

        try:
            async for attempt in retry.build():
                with attempt:
                    response = await breaker.call(attempt_once)
        except RetryableStatus as e:
            # attempts exhausted, let the caller see the last response
            return e.response
        return response

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HTTPClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
