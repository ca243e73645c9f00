import httpx
import pytest

from ai_engine.config import ServiceConfig
from ai_engine.errors import NotFoundError, ServiceRequestError, UpstreamUnavailable
from ai_engine.services.clients import ProjectServiceClient
from ai_engine.services.transport import HttpServiceTransport, resolve_transports


def _transport(handler, *, read_retries: int = 2) -> HttpServiceTransport:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://projects.test"
    )
    return HttpServiceTransport(
        "projects",
        ServiceConfig(base_url="http://projects.test", read_retries=read_retries),
        client=client,
        retry_backoff_seconds=0.0,
    )


@pytest.mark.asyncio
async def test_get_drops_empty_params_and_decodes_json() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": [{"id": "p-1"}]})

    client = ProjectServiceClient(_transport(handler))
    projects = await client.list_projects("org-1", status=None, search="web")

    assert projects == [{"id": "p-1"}]
    assert seen[0].url.path == "/projects"
    assert dict(seen[0].url.params) == {"organizationId": "org-1", "search": "web"}


@pytest.mark.asyncio
async def test_reads_are_retried_on_server_errors() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(503, json={"error": "busy"})
        return httpx.Response(200, json={"id": "p-1"})

    body = await _transport(handler).request("GET", "/projects/p-1")

    assert body == {"id": "p-1"}
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_reads_give_up_after_configured_retries() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamUnavailable) as excinfo:
        await _transport(handler, read_retries=1).request("GET", "/projects")

    assert len(attempts) == 2
    assert "ConnectError" in excinfo.value.message


@pytest.mark.asyncio
async def test_writes_are_not_retried() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(500)

    with pytest.raises(UpstreamUnavailable):
        await _transport(handler).request("POST", "/projects", json={"name": "x"})

    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_client_errors_are_mapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/projects/missing":
            return httpx.Response(404)
        return httpx.Response(422, json={"error": "name is required"})

    transport = _transport(handler)

    with pytest.raises(NotFoundError):
        await transport.request("GET", "/projects/missing")
    with pytest.raises(ServiceRequestError) as excinfo:
        await transport.request("POST", "/projects", json={})

    assert excinfo.value.status_code == 422
    assert "name is required" in excinfo.value.message
    assert not excinfo.value.retryable


@pytest.mark.asyncio
async def test_empty_body_decodes_to_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    assert await _transport(handler).request("PATCH", "/notifications/n-1/read") is None


@pytest.mark.asyncio
async def test_non_json_body_is_an_upstream_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(UpstreamUnavailable) as excinfo:
        await _transport(handler, read_retries=0).request("GET", "/projects")

    assert "non-JSON" in excinfo.value.message

def test_unknown_transport_strategy_rejected() -> None:
    services = {"projects": ServiceConfig(base_url="http://projects.test")}

    resolved = resolve_transports(services, {"http": lambda name, config: name})

    assert resolved == {"projects": "projects"}
    with pytest.raises(ValueError):
        resolve_transports(services, {"grpc": lambda name, config: name})
