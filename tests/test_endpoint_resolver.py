import asyncio

import httpx
import pytest

from conftest import LOCAL_URL, REMOTE_URL
from core.errors import NetworkError
from core.services.endpoint_resolver import EndpointResolver


def _resolver(handler):
    transport = httpx.MockTransport(handler)
    return EndpointResolver([LOCAL_URL, REMOTE_URL], client_factory=lambda: httpx.AsyncClient(transport=transport))


def test_prefers_local_candidate():
    seen = []

    def handler(request):
        seen.append(str(request.url).rstrip("/"))
        return httpx.Response(200)

    resolver = _resolver(handler)

    assert asyncio.run(resolver.resolve()) == LOCAL_URL
    assert seen == [LOCAL_URL]


def test_falls_back_to_remote_when_local_is_down():
    def handler(request):
        if request.url.host == "control.local":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200)

    resolver = _resolver(handler)

    assert asyncio.run(resolver.resolve()) == REMOTE_URL


def test_non_success_status_is_not_available():
    def handler(request):
        return httpx.Response(503 if request.url.host == "control.local" else 200)

    assert asyncio.run(_resolver(handler).resolve()) == REMOTE_URL


def test_concurrent_callers_share_one_probe_round():
    probes = []

    async def handler(request):
        probes.append(request.url.host)
        await asyncio.sleep(0.01)
        return httpx.Response(200)

    resolver = _resolver(handler)

    async def scenario():
        return await asyncio.gather(*(resolver.resolve() for _ in range(10)))

    urls = asyncio.run(scenario())

    assert set(urls) == {LOCAL_URL}
    assert resolver.probe_rounds == 1
    assert probes == ["control.local"]


def test_failure_is_memoized():
    probes = []

    def handler(request):
        probes.append(request.url.host)
        raise httpx.ConnectError("refused", request=request)

    resolver = _resolver(handler)

    async def scenario():
        for _ in range(3):
            with pytest.raises(NetworkError):
                await resolver.resolve()

    asyncio.run(scenario())

    assert resolver.probe_rounds == 1
    assert probes == ["control.local", "control.remote"]


def test_reset_forgets_the_endpoint():
    resolver = _resolver(lambda request: httpx.Response(200))

    asyncio.run(resolver.resolve())
    resolver.reset()

    assert resolver.resolved is None
    assert resolver.probe_rounds == 0
