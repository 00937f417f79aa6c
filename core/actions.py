from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from core.events import RunLog
from core.models import (
    AcquisitionEntity,
    Candidate,
    DeletionOutcome,
    DeletionReport,
    EpisodeRecord,
    Movie,
    OutcomeStatus,
    Season,
)
from core.resolver import resolve_series_provider_ids
from core.utils import parse_int, parse_season_number

MOVIE_PROVIDER = 'tmdb'


@dataclass
class ActionsDeps:
    jellyfin: Any  # expects async .get_items_by_ids(ids)
    radarr: Any  # expects .configured, async .list_movies(), .delete_movie(id)
    sonarr: Any  # expects .configured, async .list_series(), .list_episodes(id), .delete_episode_file(id)
    run_log: RunLog
    dry_run: bool = False
    debug_logging: bool = False


@dataclass
class DownstreamSnapshot:
    """Listings fetched once per run and shared by every candidate."""

    movies_by_tmdb: Dict[int, AcquisitionEntity] = field(default_factory=dict)
    series_by_tvdb: Dict[int, AcquisitionEntity] = field(default_factory=dict)
    series_provider_ids: Dict[str, Optional[str]] = field(default_factory=dict)
    episodes: Dict[int, Union[List[EpisodeRecord], BaseException]] = field(default_factory=dict)


def _configured(client: Any) -> bool:
    return client is not None and bool(getattr(client, 'configured', False))


def _index_by_provider(entities: Sequence[AcquisitionEntity]) -> Dict[int, AcquisitionEntity]:
    out: Dict[int, AcquisitionEntity] = {}
    for ent in entities:
        if ent.provider_id is not None and ent.provider_id not in out:
            out[ent.provider_id] = ent
    return out


async def _empty_list():
    return []


async def _empty_map():
    return {}


def _matched_series(seasons: Sequence[Season], snapshot: DownstreamSnapshot) -> List[int]:
    ids: List[int] = []
    for season in seasons:
        tvdb = parse_int(snapshot.series_provider_ids.get(season.series_id or ''))
        series = snapshot.series_by_tvdb.get(tvdb) if tvdb is not None else None
        if series is not None and series.id not in ids:
            ids.append(series.id)
    return ids


async def prepare_snapshot(candidates: Sequence[Candidate], deps: ActionsDeps) -> DownstreamSnapshot:
    """Fetch the downstream listings a batch needs, concurrently.

    Any failure here propagates; the caller aborts the whole run because no
    candidate can be matched without these listings.
    """
    movies = [c.item for c in candidates if isinstance(c.item, Movie)]
    seasons = [c.item for c in candidates if isinstance(c.item, Season)]
    want_movies = bool(movies) and _configured(deps.radarr)
    want_series = bool(seasons) and _configured(deps.sonarr)

    movie_list, series_list, provider_ids = await asyncio.gather(
        deps.radarr.list_movies() if want_movies else _empty_list(),
        deps.sonarr.list_series() if want_series else _empty_list(),
        resolve_series_provider_ids(deps.jellyfin, [c for c in candidates if isinstance(c.item, Season)])
        if want_series else _empty_map(),
    )
    snapshot = DownstreamSnapshot(
        movies_by_tmdb=_index_by_provider(movie_list),
        series_by_tvdb=_index_by_provider(series_list),
        series_provider_ids=provider_ids,
    )

    series_ids = _matched_series(seasons, snapshot) if want_series else []
    if series_ids:
        results = await asyncio.gather(
            *(deps.sonarr.list_episodes(sid) for sid in series_ids),
            return_exceptions=True,
        )
        snapshot.episodes = dict(zip(series_ids, results))
    if deps.debug_logging:
        logging.info(
            f'Deletion setup: movies={len(snapshot.movies_by_tmdb)} series={len(snapshot.series_by_tvdb)} '
            f'parent_series={len(snapshot.series_provider_ids)} episode_listings={len(snapshot.episodes)}'
        )
    return snapshot


def _outcome(cand: Candidate, status: OutcomeStatus, message: str, **kw) -> DeletionOutcome:
    return DeletionOutcome(candidate_id=cand.id, title=cand.item.display_name, status=status, message=message, **kw)


async def delete_movie_candidate(cand: Candidate, snapshot: DownstreamSnapshot, deps: ActionsDeps) -> DeletionOutcome:
    title = cand.item.display_name
    if not _configured(deps.radarr):
        return _outcome(cand, OutcomeStatus.SKIPPED_NOT_CONFIGURED, f'"{title}": Radarr is not configured.')
    tmdb = parse_int(cand.item.provider_id(MOVIE_PROVIDER))
    if tmdb is None:
        return _outcome(cand, OutcomeStatus.SKIPPED_NO_PROVIDER_ID, f'"{title}": TMDB id missing in Jellyfin.')
    movie = snapshot.movies_by_tmdb.get(tmdb)
    if movie is None:
        return _outcome(cand, OutcomeStatus.SKIPPED_NOT_FOUND_DOWNSTREAM, f'"{title}" not found in Radarr.')
    if deps.dry_run:
        return _outcome(
            cand, OutcomeStatus.SUCCESS, f'[DRY RUN] "{title}" would be deleted from Radarr.',
            bytes_freed=movie.size_on_disk, dry_run=True,
        )
    try:
        await deps.radarr.delete_movie(movie.id)
    except Exception as e:
        return _outcome(cand, OutcomeStatus.FAILED, f'"{title}": Radarr delete failed: {e}', error_detail=str(e))
    return _outcome(
        cand, OutcomeStatus.SUCCESS, f'"{title}" deleted from Radarr.', bytes_freed=movie.size_on_disk,
    )


async def delete_season_candidate(cand: Candidate, snapshot: DownstreamSnapshot, deps: ActionsDeps) -> DeletionOutcome:
    season = cand.item
    title = season.display_name
    if not _configured(deps.sonarr):
        return _outcome(cand, OutcomeStatus.SKIPPED_NOT_CONFIGURED, f'"{title}": Sonarr is not configured.')
    tvdb = parse_int(snapshot.series_provider_ids.get(season.series_id or ''))
    if tvdb is None:
        return _outcome(cand, OutcomeStatus.SKIPPED_NO_PROVIDER_ID, f'"{title}": TVDB id missing for the parent series.')
    series = snapshot.series_by_tvdb.get(tvdb)
    if series is None:
        name = season.series_name or season.series_id
        return _outcome(cand, OutcomeStatus.SKIPPED_NOT_FOUND_DOWNSTREAM, f'Series "{name}" not found in Sonarr.')
    season_number = parse_season_number(season.name)
    if season_number is None:
        return _outcome(
            cand, OutcomeStatus.SKIPPED_NO_PROVIDER_ID,
            f'"{title}": cannot determine season number.', error_detail='cannot determine season number',
        )
    episodes = snapshot.episodes.get(series.id)
    if isinstance(episodes, BaseException):
        return _outcome(
            cand, OutcomeStatus.FAILED, f'"{title}": could not list Sonarr episodes: {episodes}',
            error_detail=str(episodes),
        )

    file_ids: List[int] = []
    for ep in episodes or []:
        if ep.season_number == season_number and ep.has_file and ep.episode_file_id:
            # Multi-episode files share one file id
            if ep.episode_file_id not in file_ids:
                file_ids.append(ep.episode_file_id)
    if not file_ids:
        return _outcome(cand, OutcomeStatus.SUCCESS, f'No files left to delete for "{title}" in Sonarr.')

    size = season.size_bytes or 0
    if deps.dry_run:
        return _outcome(
            cand, OutcomeStatus.SUCCESS,
            f'[DRY RUN] {len(file_ids)} episode file(s) of "{title}" would be deleted from Sonarr.',
            bytes_freed=size, dry_run=True,
        )
    errors: List[str] = []
    for file_id in file_ids:
        try:
            await deps.sonarr.delete_episode_file(file_id)
        except Exception as e:
            if deps.debug_logging:
                logging.warning(f'Sonarr: episode file {file_id} of "{title}" not deleted: {e}')
            errors.append(str(e))
    if errors:
        detail = f'{len(errors)} of {len(file_ids)} episode file deletions failed: {errors[0]}'
        return _outcome(cand, OutcomeStatus.FAILED, f'"{title}": {detail}', error_detail=detail)
    return _outcome(
        cand, OutcomeStatus.SUCCESS, f'{len(file_ids)} episode file(s) of "{title}" deleted from Sonarr.',
        bytes_freed=size,
    )


async def process_candidate(cand: Candidate, snapshot: DownstreamSnapshot, deps: ActionsDeps) -> DeletionOutcome:
    item = cand.item
    if isinstance(item, Movie):
        return await delete_movie_candidate(cand, snapshot, deps)
    if isinstance(item, Season):
        return await delete_season_candidate(cand, snapshot, deps)
    kind = item.kind.value if item.kind else type(item).__name__
    return _outcome(
        cand, OutcomeStatus.FAILED, f'"{item.display_name}": {kind} items cannot be deleted.',
        error_detail=f'unsupported media kind {kind}',
    )


async def execute_deletions(candidates: Sequence[Candidate], deps: ActionsDeps) -> DeletionReport:
    """Delete the given candidates downstream and report one outcome each.

    Candidates are handled one after another in input order; a failure on
    one never stops the others.
    """
    log = deps.run_log
    report = DeletionReport(attempted=len(candidates))
    prefix = '[DRY RUN] ' if deps.dry_run else ''
    log.info(f'{prefix}Deleting {len(candidates)} item(s)...', attempted=len(candidates))
    try:
        snapshot = await prepare_snapshot(candidates, deps)
    except Exception as e:
        report.critical_error = str(e)
        log.error(f'Critical error during deletion: {e}')
        log.summarize(report)
        return report

    for cand in candidates:
        try:
            outcome = await process_candidate(cand, snapshot, deps)
        except Exception as e:
            logging.error(f'Unexpected error deleting {cand.id}: {e}')
            outcome = _outcome(cand, OutcomeStatus.FAILED, f'"{cand.item.display_name}": {e}', error_detail=str(e))
        report.outcomes.append(outcome)
        log.record(outcome)
    log.summarize(report)
    return report
