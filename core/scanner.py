from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import AbstractSet, Iterable, List, Optional

from core.events import RunLog
from core.models import MediaItem, MediaKind, RetentionRules, ScanCounters, ScanResult
from core.rules import evaluate_item

SCAN_KINDS = (MediaKind.MOVIE, MediaKind.SEASON)


def dedupe_items(items: Iterable[MediaItem]) -> List[MediaItem]:
    seen = set()
    out: List[MediaItem] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out


def filter_candidates(
    items: Iterable[MediaItem],
    rules: RetentionRules,
    exclusions: AbstractSet[str],
    now: datetime,
) -> ScanResult:
    counters = ScanCounters()
    candidates = []
    for item in dedupe_items(items):
        counters.scanned += 1
        candidate, skip = evaluate_item(item, rules, exclusions, now)
        if candidate is not None:
            candidates.append(candidate)
            continue
        setattr(counters, skip, getattr(counters, skip) + 1)
    counters.eligible = len(candidates)
    return ScanResult(candidates=candidates, counters=counters)


async def scan_library(
    jellyfin,
    rules: RetentionRules,
    exclusions: AbstractSet[str],
    *,
    now: Optional[datetime] = None,
    run_log: Optional[RunLog] = None,
    debug_logging: bool = False,
) -> ScanResult:
    """Fetch movies and seasons and keep those past their retention window.

    ``exclusions`` is copied before the listing is requested, so edits made
    while the request is in flight do not leak into this scan.
    """
    excluded = frozenset(exclusions)
    if run_log is not None:
        run_log.info('Starting media library scan.')
    items = await jellyfin.list_items([k.value for k in SCAN_KINDS])
    if run_log is not None:
        run_log.info(f'Found {len(items)} movies and seasons in total.', scanned=len(items))
    result = filter_candidates(items, rules, excluded, now or datetime.now(timezone.utc))
    if debug_logging:
        logging.info(f'Scan counters: {result.counters.as_dict()}')
    if run_log is not None:
        run_log.info(
            f'Scan finished. {result.counters.eligible} items eligible for deletion.',
            **result.counters.as_dict(),
        )
    return result
