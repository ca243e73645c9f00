"""Transports used to reach the platform's CRUD microservices."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any, Protocol

import httpx

from ai_engine.config import ServiceConfig
from ai_engine.errors import NotFoundError, ServiceRequestError, UpstreamUnavailable
from ai_engine.obs.logging import get_logger

logger = get_logger("ai_engine.transport")


class ServiceTransport(Protocol):
    """Request/response channel to one downstream service."""

    service_name: str

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send one request and return the decoded response body."""

    async def aclose(self) -> None:
        """Release connections."""


class HttpServiceTransport:
    """JSON-over-HTTP transport backed by `httpx.AsyncClient`.

    Failure mapping:
    - connection errors, timeouts and 5xx responses -> `UpstreamUnavailable`
    - 404 -> `NotFoundError`
    - any other 4xx -> `ServiceRequestError`
    - a 2xx body that is not JSON -> `UpstreamUnavailable`

    GET requests are retried up to `read_retries` times on
    `UpstreamUnavailable`; writes are never retried here.
    """

    def __init__(
        self,
        service_name: str,
        config: ServiceConfig,
        *,
        client: httpx.AsyncClient | None = None,
        retry_backoff_seconds: float = 0.2,
    ) -> None:
        self.service_name = service_name
        self._read_retries = config.read_retries
        self._backoff = retry_backoff_seconds
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.timeout_seconds),
            headers={"Content-Type": "application/json"},
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        method = method.upper()
        attempts = 1 + (self._read_retries if method == "GET" else 0)
        for attempt in range(1, attempts + 1):
            try:
                return await self._send(method, path, params=params, json=json)
            except UpstreamUnavailable:
                if attempt == attempts:
                    raise
                logger.info(
                    "transport.retry",
                    service=self.service_name,
                    path=path,
                    attempt=attempt,
                )
                await asyncio.sleep(self._backoff * attempt)
        raise AssertionError("unreachable")

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None,
        json: Any,
    ) -> Any:
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            response = await self._client.request(method, path, params=clean_params, json=json)
        except httpx.RequestError as exc:
            raise UpstreamUnavailable(
                f"{self.service_name} is not available: {exc.__class__.__name__}"
            ) from exc

        if response.status_code >= 500:
            raise UpstreamUnavailable(
                f"{self.service_name} {method} {path} failed with {response.status_code}"
            )
        if response.status_code == 404:
            raise NotFoundError(f"{self.service_name}: resource not found at {path}")
        if response.status_code >= 400:
            raise ServiceRequestError(
                f"{self.service_name} {method} failed: {_error_detail(response)}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamUnavailable(
                f"{self.service_name} {method} {path} returned a non-JSON body"
            ) from exc

    async def aclose(self) -> None:
        await self._client.aclose()


TransportFactory = Callable[[str, ServiceConfig], ServiceTransport]

TRANSPORTS: dict[str, TransportFactory] = {
    "http": lambda name, config: HttpServiceTransport(name, config),
}


def resolve_transports(
    services: Mapping[str, ServiceConfig],
    factories: Mapping[str, TransportFactory] | None = None,
) -> dict[str, ServiceTransport]:
    """Pick one transport per service, once, from its configured strategy."""

    available = dict(factories or TRANSPORTS)
    resolved: dict[str, ServiceTransport] = {}
    for name, config in services.items():
        factory = available.get(config.transport)
        if factory is None:
            raise ValueError(f"Unknown transport {config.transport!r} for service {name}")
        resolved[name] = factory(name, config)
        logger.info("transport.resolved", service=name, transport=config.transport)
    return resolved


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)[:200]
