from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from core.config import AutomationSettings, ServiceEndpoint
from core.models import AcquisitionEntity, EpisodeRecord, MediaItem, parse_media_item
from integrations.services import RequestManager

from . import jellyfin as jf_mod
from . import radarr as rd_mod
from . import sonarr as sn_mod


def bind_request(manager: RequestManager, settings: AutomationSettings, service_name: str):
    """Return a make_api_request-compatible callable throttled for one service."""
    min_interval_ms, max_concurrent = settings.throttles.get(service_name, (0.0, 0))

    async def _request(session, url, api_key, **kw):
        return await manager.throttled_request(
            session,
            service_name,
            url,
            api_key,
            min_interval_ms=min_interval_ms,
            max_concurrent=max_concurrent,
            request_timeout=settings.request_timeout,
            retry_attempts=settings.retry_attempts,
            retry_backoff=settings.retry_backoff,
            debug_logging=settings.debug_logging,
            **kw,
        )

    return _request


class _ServiceApi:
    def __init__(self, session: aiohttp.ClientSession, endpoint: ServiceEndpoint, request) -> None:
        self.session = session
        self.endpoint = endpoint
        self.request = request

    @property
    def configured(self) -> bool:
        return self.endpoint.configured

    @property
    def name(self) -> str:
        return self.endpoint.name


class JellyfinApi(_ServiceApi):
    def __init__(self, session, endpoint, request, *, batch_size: int = jf_mod.DEFAULT_BATCH_SIZE,
                 page_size: int = jf_mod.DEFAULT_PAGE_SIZE) -> None:
        super().__init__(session, endpoint, request)
        self.batch_size = batch_size
        self.page_size = page_size

    async def list_items(self, kinds: Sequence[str], limit: Optional[int] = None) -> List[MediaItem]:
        ep = self.endpoint
        raw = await jf_mod.jellyfin_get_items(
            self.session, ep.api_url, ep.api_key, ep.user_id, kinds, limit=limit,
            page_size=self.page_size, request=self.request,
        )
        return [it for it in (parse_media_item(r) for r in raw) if it is not None]

    async def get_items_by_ids(self, ids: Sequence[str]) -> List[MediaItem]:
        ep = self.endpoint
        raw = await jf_mod.jellyfin_get_items_by_ids(
            self.session, ep.api_url, ep.api_key, ep.user_id, list(ids),
            batch_size=self.batch_size, request=self.request,
        )
        return [it for it in (parse_media_item(r) for r in raw) if it is not None]

    async def system_info(self) -> Dict[str, Any]:
        return await jf_mod.jellyfin_get_system_info(self.session, self.endpoint.api_url, self.endpoint.api_key, request=self.request)


class RadarrApi(_ServiceApi):
    async def list_movies(self) -> List[AcquisitionEntity]:
        raw = await rd_mod.radarr_get_movies(self.session, self.endpoint.api_url, self.endpoint.api_key, request=self.request)
        return [AcquisitionEntity.from_radarr(r) for r in raw if r.get('id') is not None]

    async def delete_movie(self, movie_id: int) -> None:
        await rd_mod.radarr_delete_movie(self.session, self.endpoint.api_url, self.endpoint.api_key, movie_id, request=self.request)

    async def list_queue(self) -> List[Dict[str, Any]]:
        return await rd_mod.radarr_get_queue(self.session, self.endpoint.api_url, self.endpoint.api_key, request=self.request)

    async def system_status(self) -> Dict[str, Any]:
        return await rd_mod.radarr_get_system_status(self.session, self.endpoint.api_url, self.endpoint.api_key, request=self.request)


class SonarrApi(_ServiceApi):
    async def list_series(self) -> List[AcquisitionEntity]:
        raw = await sn_mod.sonarr_get_series(self.session, self.endpoint.api_url, self.endpoint.api_key, request=self.request)
        return [AcquisitionEntity.from_sonarr(r) for r in raw if r.get('id') is not None]

    async def list_episodes(self, series_id: int) -> List[EpisodeRecord]:
        raw = await sn_mod.sonarr_get_episodes(self.session, self.endpoint.api_url, self.endpoint.api_key, series_id, request=self.request)
        return [EpisodeRecord.from_sonarr(r) for r in raw if r.get('id') is not None]

    async def delete_episode_file(self, episode_file_id: int) -> None:
        await sn_mod.sonarr_delete_episode_file(self.session, self.endpoint.api_url, self.endpoint.api_key, episode_file_id, request=self.request)

    async def list_queue(self) -> List[Dict[str, Any]]:
        return await sn_mod.sonarr_get_queue(self.session, self.endpoint.api_url, self.endpoint.api_key, request=self.request)

    async def system_status(self) -> Dict[str, Any]:
        return await sn_mod.sonarr_get_system_status(self.session, self.endpoint.api_url, self.endpoint.api_key, request=self.request)


@dataclass
class ServiceClients:
    jellyfin: JellyfinApi
    radarr: RadarrApi
    sonarr: SonarrApi


def build_clients(session: aiohttp.ClientSession, settings: AutomationSettings,
                  manager: Optional[RequestManager] = None) -> ServiceClients:
    manager = manager or RequestManager()
    return ServiceClients(
        jellyfin=JellyfinApi(
            session, settings.endpoint('Jellyfin'), bind_request(manager, settings, 'Jellyfin'),
            batch_size=settings.batch_size, page_size=settings.page_size,
        ),
        radarr=RadarrApi(session, settings.endpoint('Radarr'), bind_request(manager, settings, 'Radarr')),
        sonarr=SonarrApi(session, settings.endpoint('Sonarr'), bind_request(manager, settings, 'Sonarr')),
    )
