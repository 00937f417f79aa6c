from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from core.utils import chunked
from integrations.services import join_url, make_api_request

AUTH_HEADER = 'X-Emby-Token'
ITEM_FIELDS = 'DateCreated,SeriesInfo,ParentId,ProductionYear,ProviderIds,SeriesId,Genres,MediaSources'
DEFAULT_PAGE_SIZE = 500
DEFAULT_BATCH_SIZE = 50


def _items_path(user_id: Optional[str]) -> str:
    return f'/Users/{user_id}/Items' if user_id else '/Items'


def _records(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, dict) and isinstance(data.get('Items'), list):
        return data['Items']
    return []


async def jellyfin_get_items_page(
    session: aiohttp.ClientSession,
    url: str,
    api_key: str,
    user_id: str,
    item_types: Sequence[str],
    start_index: int,
    limit: int,
    request=make_api_request,
) -> Dict[str, Any]:
    params = {
        'Recursive': 'true',
        'IncludeItemTypes': ','.join(item_types),
        'Fields': ITEM_FIELDS,
        'SortBy': 'DateCreated',
        'SortOrder': 'Descending',
        'StartIndex': start_index,
        'Limit': limit,
    }
    data = await request(session, join_url(url, _items_path(user_id)), api_key, params=params, auth_header=AUTH_HEADER)
    return data if isinstance(data, dict) else {}


async def jellyfin_get_items(
    session: aiohttp.ClientSession,
    url: str,
    api_key: str,
    user_id: str,
    item_types: Sequence[str],
    limit: Optional[int] = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    request=make_api_request,
) -> List[Dict[str, Any]]:
    """List items newest-first, paging until the server runs out or ``limit`` is hit."""
    page_size = max(1, int(page_size or DEFAULT_PAGE_SIZE))
    if limit:
        page_size = min(page_size, int(limit))
    out: List[Dict[str, Any]] = []
    start = 0
    while True:
        data = await jellyfin_get_items_page(session, url, api_key, user_id, item_types, start, page_size, request=request)
        records = _records(data)
        out.extend(records)
        start += len(records)
        if limit and len(out) >= limit:
            return out[:limit]
        total = data.get('TotalRecordCount')
        if not records:
            return out
        # Limit may be capped server-side; TotalRecordCount decides when paging ends
        if isinstance(total, int):
            if start >= total:
                return out
        elif len(records) < page_size:
            return out


async def jellyfin_get_items_by_ids(
    session: aiohttp.ClientSession,
    url: str,
    api_key: str,
    user_id: str,
    ids: Sequence[str],
    batch_size: int = DEFAULT_BATCH_SIZE,
    request=make_api_request,
) -> List[Dict[str, Any]]:
    if not ids:
        return []

    async def _batch(batch: List[str]) -> List[Dict[str, Any]]:
        params = {'Recursive': 'true', 'Ids': ','.join(batch), 'Fields': ITEM_FIELDS}
        data = await request(session, join_url(url, _items_path(user_id)), api_key, params=params, auth_header=AUTH_HEADER)
        return _records(data)

    # Chunks keep the query string under URL length limits
    results = await asyncio.gather(*(_batch(b) for b in chunked(ids, batch_size)))
    return [rec for batch in results for rec in batch]


async def jellyfin_get_system_info(
    session: aiohttp.ClientSession, url: str, api_key: str, request=make_api_request
) -> Dict[str, Any]:
    data = await request(session, join_url(url, '/System/Info'), api_key, auth_header=AUTH_HEADER)
    return data if isinstance(data, dict) else {}
