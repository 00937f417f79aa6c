from __future__ import annotations

from datetime import datetime
from typing import AbstractSet, Dict, Optional, Tuple

from core.models import Candidate, MediaItem, Movie, RetentionRules, Season
from core.utils import age_in_days, has_protected_genre

MOVIE_RETENTION = 'movie_retention'
SEASON_RETENTION = 'season_retention'

# Skip reasons, each maps onto a ScanCounters field
SKIP_EXCLUDED = 'skipped_excluded'
SKIP_GENRE = 'skipped_genre'
SKIP_UNDATED = 'skipped_undated'
SKIP_RECENT = 'skipped_recent'


def retention_for(item: MediaItem, rules: RetentionRules) -> Optional[Tuple[float, str]]:
    if isinstance(item, Movie):
        return rules.movie_days, MOVIE_RETENTION
    if isinstance(item, Season):
        return rules.season_days, SEASON_RETENTION
    # Series and Episode have no retention rule of their own
    return None


def evaluate_item(
    item: MediaItem,
    rules: RetentionRules,
    exclusions: AbstractSet[str],
    now: datetime,
) -> Tuple[Optional[Candidate], Optional[str]]:
    """Return (candidate, None) for an eligible item or (None, skip_reason).

    Exclusion wins over every other check; eligibility is strictly older
    than the kind's retention threshold.
    """
    if item.id in exclusions:
        return None, SKIP_EXCLUDED
    rule = retention_for(item, rules)
    if rule is None:
        return None, SKIP_RECENT
    if has_protected_genre(item.genres, rules.protected_genres):
        return None, SKIP_GENRE
    if item.created is None:
        return None, SKIP_UNDATED
    threshold, reason = rule
    age = age_in_days(item.created, now)
    if age > threshold:
        return Candidate(item=item, age_days=age, reason=reason), None
    return None, SKIP_RECENT


def describe_rules(rules: RetentionRules) -> Dict[str, object]:
    return {
        'movie_retention_days': rules.movie_days,
        'season_retention_days': rules.season_days,
        'protected_genres': sorted(rules.protected_genres),
    }
