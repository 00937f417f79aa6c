from __future__ import annotations

import asyncio
import random
from typing import Any, Dict, Optional

import aiohttp


class ApiRequestError(Exception):
    def __init__(self, method: str, url: str, status: Optional[int] = None, message: str = '') -> None:
        self.method = method.upper()
        self.url = url
        self.status = status
        self.message = message
        if status is not None:
            text = f'{self.method} {url} -> HTTP {status}'
        else:
            text = f'{self.method} {url} failed'
        if message:
            text = f'{text}: {message}'
        super().__init__(text)


class RequestManager:
    """Per-service throttling on top of make_api_request.

    Each service gets its own minimum spacing between calls and its own
    concurrency cap; both are disabled when zero.
    """

    def __init__(self) -> None:
        self._service_last_request_at: Dict[str, float] = {}
        self._service_semaphore: Dict[str, asyncio.Semaphore] = {}

    async def throttled_request(
        self,
        session: aiohttp.ClientSession,
        service_name: str,
        url: str,
        api_key: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        method: str = 'get',
        auth_header: str = 'X-Api-Key',
        min_interval_ms: float = 0.0,
        max_concurrent: int = 0,
        request_timeout: float = 0,
        retry_attempts: int = 0,
        retry_backoff: float = 1.0,
        debug_logging: bool = False,
    ):
        # Rate limit by elapsed time between calls; the slot is claimed
        # before sleeping so concurrent callers line up one interval apart
        if min_interval_ms and min_interval_ms > 0:
            now = asyncio.get_event_loop().time()
            last = self._service_last_request_at.get(service_name)
            slot = now if last is None else max(last + (min_interval_ms / 1000.0), now)
            self._service_last_request_at[service_name] = slot
            wait = slot - now
            if wait > 0:
                await asyncio.sleep(wait)

        kwargs = dict(
            params=params,
            json_data=json_data,
            method=method,
            auth_header=auth_header,
            request_timeout=request_timeout,
            retry_attempts=retry_attempts,
            retry_backoff=retry_backoff,
            debug_logging=debug_logging,
        )
        # Limit concurrency per service
        if max_concurrent and max_concurrent > 0:
            sem = self._service_semaphore.get(service_name)
            if sem is None:
                sem = asyncio.Semaphore(max_concurrent)
                self._service_semaphore[service_name] = sem
            async with sem:
                return await make_api_request(session, url, api_key, **kwargs)
        return await make_api_request(session, url, api_key, **kwargs)


def is_service_configured(service_config: Dict[str, Any]) -> bool:
    return bool(service_config.get('api_url')) and bool(service_config.get('api_key'))


def join_url(base: str, endpoint: str) -> str:
    base = (base or '').rstrip('/')
    if not endpoint.startswith('/'):
        endpoint = f'/{endpoint}'
    return f'{base}{endpoint}'


def _backoff(retry_backoff: float, attempts: int) -> float:
    return retry_backoff * (2 ** (attempts - 1)) * (1 + random.uniform(0, 0.25))


async def make_api_request(
    session: aiohttp.ClientSession,
    url: str,
    api_key: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json_data: Optional[Dict[str, Any]] = None,
    method: str = 'get',
    auth_header: str = 'X-Api-Key',
    request_timeout: float = 0,
    retry_attempts: int = 0,
    retry_backoff: float = 1.0,
    debug_logging: bool = False,
):
    """Issue one authenticated request and return the decoded body.

    JSON bodies are returned as parsed; empty or non-JSON success responses
    come back as ``{'status': <code>}``. Non-2xx responses and transport
    errors raise ApiRequestError once ``retry_attempts`` are used up. No
    timeout is applied unless ``request_timeout`` is positive.
    """
    import logging

    if not url or not api_key:
        raise ApiRequestError(method, url or '<unset>', message='service URL or API key is not configured')

    headers = {'Accept': 'application/json', auth_header: api_key}
    extra: Dict[str, Any] = {}
    if request_timeout and request_timeout > 0:
        extra['timeout'] = aiohttp.ClientTimeout(total=request_timeout)
    if params:
        # aiohttp only accepts str/int/float query values
        params = {k: ('true' if v is True else 'false' if v is False else v) for k, v in params.items()}
    attempts = 0
    while True:
        try:
            async with session.request(method, url, headers=headers, params=params, json=json_data, **extra) as response:
                content_type = response.headers.get('Content-Type', '')
                if response.status >= 400:
                    try:
                        body = (await response.text())[:300]
                    except Exception:
                        body = ''
                    raise ApiRequestError(method, url, response.status, body.strip() or (response.reason or ''))
                if response.status != 204 and 'application/json' in content_type:
                    try:
                        return await response.json()
                    except Exception:
                        # Fall back to status on empty/malformed body
                        pass
                if debug_logging:
                    logging.info(f'HTTP {method.upper()} {url} -> {response.status} (no content)')
                return {'status': response.status}
        except ApiRequestError as e:
            if e.status and (500 <= e.status < 600 or e.status == 429) and attempts < retry_attempts:
                attempts += 1
                sleep_for = _backoff(retry_backoff, attempts)
                if debug_logging:
                    logging.warning(f'HTTP {method.upper()} {url} {e.status}; retrying in {sleep_for:.2f}s (attempt {attempts}/{retry_attempts})')
                await asyncio.sleep(sleep_for)
                continue
            if debug_logging:
                logging.error(f'HTTP {method.upper()} {url} error {e.status}: {e.message}')
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            if attempts < retry_attempts:
                attempts += 1
                sleep_for = _backoff(retry_backoff, attempts)
                if debug_logging:
                    logging.warning(f'HTTP {method.upper()} {url} network/timeout; retrying in {sleep_for:.2f}s (attempt {attempts}/{retry_attempts})')
                await asyncio.sleep(sleep_for)
                continue
            if debug_logging:
                logging.error(f'HTTP {method.upper()} {url} network/timeout: {e!r}')
            raise ApiRequestError(method, url, message=str(e) or e.__class__.__name__) from e
