import importlib
import asyncio
import pytest


pytestmark = pytest.mark.asyncio


async def test_request_manager_respects_max_concurrent(monkeypatch):
    svc = importlib.import_module('integrations.services')
    mgr = svc.RequestManager()

    inflight = 0
    max_inflight = 0

    async def fake_make(session, url, api_key, **kw):
        nonlocal inflight, max_inflight
        inflight += 1
        max_inflight = max(max_inflight, inflight)
        await asyncio.sleep(0)  # yield
        inflight -= 1
        return {'status': 204}

    # monkeypatch module-level make_api_request used by RequestManager
    monkeypatch.setattr(svc, 'make_api_request', fake_make)

    async def call_one():
        await mgr.throttled_request(object(), 'Sonarr', 'http://x', 'k', max_concurrent=1)

    await asyncio.gather(call_one(), call_one(), call_one())
    assert max_inflight == 1


async def test_request_manager_passes_auth_header_and_retry_settings(monkeypatch):
    svc = importlib.import_module('integrations.services')
    mgr = svc.RequestManager()
    seen = {}

    async def fake_make(session, url, api_key, **kw):
        seen.update(kw)
        return {}

    monkeypatch.setattr(svc, 'make_api_request', fake_make)
    await mgr.throttled_request(
        object(), 'Jellyfin', 'http://jf/Items', 'k',
        auth_header='X-Emby-Token', retry_attempts=2, request_timeout=15,
    )
    assert seen['auth_header'] == 'X-Emby-Token'
    assert seen['retry_attempts'] == 2
    assert seen['request_timeout'] == 15


async def test_request_manager_spaces_calls_per_service(monkeypatch):
    svc = importlib.import_module('integrations.services')
    mgr = svc.RequestManager()
    sleeps = []

    async def fake_make(session, url, api_key, **kw):
        return {}

    real_sleep = asyncio.sleep

    async def fake_sleep(delay):
        sleeps.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(svc, 'make_api_request', fake_make)
    monkeypatch.setattr(svc.asyncio, 'sleep', fake_sleep)
    await mgr.throttled_request(object(), 'Radarr', 'http://x', 'k', min_interval_ms=10_000)
    await mgr.throttled_request(object(), 'Radarr', 'http://x', 'k', min_interval_ms=10_000)
    # A different service has its own clock
    await mgr.throttled_request(object(), 'Sonarr', 'http://x', 'k', min_interval_ms=10_000)
    assert len(sleeps) == 1
    assert 0 < sleeps[0] <= 10


async def test_bind_request_uses_service_throttle_and_general_settings(monkeypatch):
    clients = importlib.import_module('integrations.clients')
    cfgmod = importlib.import_module('core.config')
    models = importlib.import_module('core.models')

    calls = []

    class FakeManager:
        async def throttled_request(self, session, service_name, url, api_key, **kw):
            calls.append((service_name, url, kw))
            return {'ok': True}

    settings = cfgmod.AutomationSettings(
        rules=models.RetentionRules(),
        endpoints={},
        throttles={'Radarr': (250.0, 2)},
        retry_attempts=3,
    )
    req = clients.bind_request(FakeManager(), settings, 'Radarr')
    out = await req(object(), 'http://radarr/api/v3/movie', 'k', method='get')
    assert out == {'ok': True}
    name, url, kw = calls[0]
    assert name == 'Radarr'
    assert kw['min_interval_ms'] == 250.0
    assert kw['max_concurrent'] == 2
    assert kw['retry_attempts'] == 3
    assert kw['method'] == 'get'


async def test_request_manager_spaces_concurrent_callers(monkeypatch):
    svc = importlib.import_module('integrations.services')
    mgr = svc.RequestManager()
    sleeps = []

    async def fake_make(session, url, api_key, **kw):
        return {}

    real_sleep = asyncio.sleep

    async def fake_sleep(delay):
        sleeps.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(svc, 'make_api_request', fake_make)
    monkeypatch.setattr(svc.asyncio, 'sleep', fake_sleep)

    async def call_one():
        await mgr.throttled_request(object(), 'Jellyfin', 'http://x', 'k', min_interval_ms=1000)

    await asyncio.gather(call_one(), call_one(), call_one())
    # First caller goes at once, the others wait one and two intervals
    assert len(sleeps) == 2
    first, second = sorted(sleeps)
    assert 0.5 < first <= 1.0
    assert 1.5 < second <= 2.0
