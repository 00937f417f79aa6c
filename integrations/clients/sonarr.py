from __future__ import annotations

from typing import Any, Dict, List

import aiohttp

from integrations.clients.radarr import _as_list
from integrations.services import join_url, make_api_request


async def sonarr_get_series(session: aiohttp.ClientSession, url: str, api_key: str, request=make_api_request) -> List[Dict[str, Any]]:
    return _as_list(await request(session, join_url(url, '/api/v3/series'), api_key))


async def sonarr_get_episodes(session: aiohttp.ClientSession, url: str, api_key: str, series_id: int, request=make_api_request) -> List[Dict[str, Any]]:
    return _as_list(await request(session, join_url(url, '/api/v3/episode'), api_key, params={'seriesId': series_id}))


async def sonarr_delete_episode_file(session: aiohttp.ClientSession, url: str, api_key: str, episode_file_id: int, request=make_api_request) -> None:
    await request(session, join_url(url, f'/api/v3/episodefile/{episode_file_id}'), api_key, method='delete')


async def sonarr_get_queue(session: aiohttp.ClientSession, url: str, api_key: str, request=make_api_request) -> List[Dict[str, Any]]:
    params = {'page': 1, 'pageSize': 1000}
    return _as_list(await request(session, join_url(url, '/api/v3/queue'), api_key, params=params))


async def sonarr_get_system_status(session: aiohttp.ClientSession, url: str, api_key: str, request=make_api_request) -> Dict[str, Any]:
    data = await request(session, join_url(url, '/api/v3/system/status'), api_key)
    return data if isinstance(data, dict) else {}
