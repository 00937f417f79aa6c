from __future__ import annotations

from typing import Any, Dict, List

import aiohttp

from integrations.services import join_url, make_api_request


def _as_list(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return [d for d in data if isinstance(d, dict)]
    if isinstance(data, dict) and isinstance(data.get('records'), list):
        return [d for d in data['records'] if isinstance(d, dict)]
    return []


async def radarr_get_movies(session: aiohttp.ClientSession, url: str, api_key: str, request=make_api_request) -> List[Dict[str, Any]]:
    return _as_list(await request(session, join_url(url, '/api/v3/movie'), api_key))


async def radarr_delete_movie(session: aiohttp.ClientSession, url: str, api_key: str, movie_id: int, request=make_api_request) -> None:
    params = {'deleteFiles': 'true', 'addImportExclusion': 'false'}
    await request(session, join_url(url, f'/api/v3/movie/{movie_id}'), api_key, params=params, method='delete')


async def radarr_get_queue(session: aiohttp.ClientSession, url: str, api_key: str, request=make_api_request) -> List[Dict[str, Any]]:
    params = {'page': 1, 'pageSize': 1000}
    return _as_list(await request(session, join_url(url, '/api/v3/queue'), api_key, params=params))


async def radarr_get_system_status(session: aiohttp.ClientSession, url: str, api_key: str, request=make_api_request) -> Dict[str, Any]:
    data = await request(session, join_url(url, '/api/v3/system/status'), api_key)
    return data if isinstance(data, dict) else {}
