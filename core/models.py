from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from core.utils import (
    get_genres,
    get_media_size,
    get_provider_ids,
    parse_int,
    parse_server_datetime,
)


class MediaKind(str, Enum):
    MOVIE = 'Movie'
    SERIES = 'Series'
    SEASON = 'Season'
    EPISODE = 'Episode'


@dataclass(frozen=True)
class MediaItem:
    id: str
    name: str
    created: Optional[datetime]
    provider_ids: Dict[str, str] = field(default_factory=dict)
    size_bytes: Optional[int] = None
    genres: FrozenSet[str] = frozenset()

    kind = None  # type: Optional[MediaKind]

    def provider_id(self, namespace: str) -> Optional[str]:
        return self.provider_ids.get(namespace.lower()) or None

    @property
    def display_name(self) -> str:
        return self.name


@dataclass(frozen=True)
class Movie(MediaItem):
    kind = MediaKind.MOVIE


@dataclass(frozen=True)
class Series(MediaItem):
    kind = MediaKind.SERIES


@dataclass(frozen=True)
class Season(MediaItem):
    kind = MediaKind.SEASON

    # Back-reference used only to resolve the parent's provider ids
    series_id: Optional[str] = None
    series_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.series_name:
            return f'{self.series_name} - {self.name}'
        return self.name


@dataclass(frozen=True)
class Episode(MediaItem):
    kind = MediaKind.EPISODE

    series_id: Optional[str] = None
    series_name: Optional[str] = None
    season_id: Optional[str] = None


_KIND_CLASSES = {
    MediaKind.MOVIE.value: Movie,
    MediaKind.SERIES.value: Series,
    MediaKind.SEASON.value: Season,
    MediaKind.EPISODE.value: Episode,
}


def parse_media_item(data: Dict[str, Any]) -> Optional[MediaItem]:
    """Build a typed item from a media-server JSON record.

    Records with an unknown ``Type`` or without an ``Id`` yield None.
    """
    if not isinstance(data, dict):
        return None
    cls = _KIND_CLASSES.get(str(data.get('Type') or ''))
    item_id = data.get('Id')
    if cls is None or not item_id:
        return None
    base = dict(
        id=str(item_id),
        name=str(data.get('Name') or ''),
        created=parse_server_datetime(data.get('DateCreated')),
        provider_ids=get_provider_ids(data),
        size_bytes=get_media_size(data),
        genres=get_genres(data),
    )
    if cls is Season:
        return Season(
            **base,
            series_id=data.get('SeriesId') or data.get('ParentId') or None,
            series_name=data.get('SeriesName') or None,
        )
    if cls is Episode:
        return Episode(
            **base,
            series_id=data.get('SeriesId') or None,
            series_name=data.get('SeriesName') or None,
            season_id=data.get('SeasonId') or data.get('ParentId') or None,
        )
    return cls(**base)


@dataclass(frozen=True)
class RetentionRules:
    movie_days: float = 7
    season_days: float = 28
    protected_genres: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class Candidate:
    item: MediaItem
    age_days: float
    reason: str

    @property
    def id(self) -> str:
        return self.item.id


@dataclass
class ScanCounters:
    scanned: int = 0
    eligible: int = 0
    skipped_recent: int = 0
    skipped_excluded: int = 0
    skipped_genre: int = 0
    skipped_undated: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            'scanned': self.scanned,
            'eligible': self.eligible,
            'skipped_recent': self.skipped_recent,
            'skipped_excluded': self.skipped_excluded,
            'skipped_genre': self.skipped_genre,
            'skipped_undated': self.skipped_undated,
        }


@dataclass
class ScanResult:
    candidates: List[Candidate]
    counters: ScanCounters


@dataclass(frozen=True)
class AcquisitionEntity:
    """A Radarr movie or Sonarr series."""

    id: int
    title: str
    provider_id: Optional[int]
    size_on_disk: int = 0

    @classmethod
    def from_radarr(cls, data: Dict[str, Any]) -> 'AcquisitionEntity':
        return cls(
            id=int(data.get('id')),
            title=str(data.get('title') or ''),
            provider_id=parse_int(data.get('tmdbId')),
            size_on_disk=parse_int(data.get('sizeOnDisk')) or 0,
        )

    @classmethod
    def from_sonarr(cls, data: Dict[str, Any]) -> 'AcquisitionEntity':
        stats = data.get('statistics') if isinstance(data.get('statistics'), dict) else {}
        return cls(
            id=int(data.get('id')),
            title=str(data.get('title') or ''),
            provider_id=parse_int(data.get('tvdbId')),
            size_on_disk=parse_int(stats.get('sizeOnDisk')) or 0,
        )


@dataclass(frozen=True)
class EpisodeRecord:
    id: int
    series_id: int
    season_number: Optional[int]
    episode_number: Optional[int]
    has_file: bool
    episode_file_id: Optional[int]

    @classmethod
    def from_sonarr(cls, data: Dict[str, Any]) -> 'EpisodeRecord':
        return cls(
            id=int(data.get('id')),
            series_id=parse_int(data.get('seriesId')) or 0,
            season_number=parse_int(data.get('seasonNumber')),
            episode_number=parse_int(data.get('episodeNumber')),
            has_file=bool(data.get('hasFile')),
            episode_file_id=parse_int(data.get('episodeFileId')) or None,
        )


class OutcomeStatus(str, Enum):
    SUCCESS = 'success'
    SKIPPED_NOT_CONFIGURED = 'skipped_not_configured'
    SKIPPED_NO_PROVIDER_ID = 'skipped_no_provider_id'
    SKIPPED_NOT_FOUND_DOWNSTREAM = 'skipped_not_found_downstream'
    FAILED = 'failed'


_STATUS_SEVERITY = {
    OutcomeStatus.SUCCESS: 'success',
    OutcomeStatus.SKIPPED_NOT_FOUND_DOWNSTREAM: 'info',
    OutcomeStatus.SKIPPED_NOT_CONFIGURED: 'failure',
    OutcomeStatus.SKIPPED_NO_PROVIDER_ID: 'failure',
    OutcomeStatus.FAILED: 'failure',
}


@dataclass(frozen=True)
class DeletionOutcome:
    candidate_id: str
    title: str
    status: OutcomeStatus
    message: str
    error_detail: Optional[str] = None
    bytes_freed: int = 0
    dry_run: bool = False

    @property
    def severity(self) -> str:
        return _STATUS_SEVERITY[self.status]

    def as_dict(self) -> Dict[str, Any]:
        return {
            'candidate_id': self.candidate_id,
            'title': self.title,
            'status': self.status.value,
            'message': self.message,
            'error_detail': self.error_detail,
            'bytes_freed': self.bytes_freed,
            'dry_run': self.dry_run,
        }


@dataclass
class DeletionReport:
    outcomes: List[DeletionOutcome] = field(default_factory=list)
    attempted: int = 0
    critical_error: Optional[str] = None

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is OutcomeStatus.SUCCESS)

    @property
    def bytes_freed(self) -> int:
        return sum(o.bytes_freed for o in self.outcomes if o.status is OutcomeStatus.SUCCESS)

    def counts(self) -> Dict[str, int]:
        out = {s.value: 0 for s in OutcomeStatus}
        for o in self.outcomes:
            out[o.status.value] += 1
        return out
