from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from core.models import Candidate, Season

TV_PROVIDER = 'tvdb'


def distinct_series_ids(candidates: Iterable[Candidate]) -> List[str]:
    seen = set()
    out: List[str] = []
    for cand in candidates:
        item = cand.item
        if not isinstance(item, Season) or not item.series_id:
            continue
        if item.series_id in seen:
            continue
        seen.add(item.series_id)
        out.append(item.series_id)
    return out


async def resolve_series_provider_ids(jellyfin, season_candidates: Iterable[Candidate]) -> Dict[str, Optional[str]]:
    """Map each distinct parent series id to its TVDB id.

    One batched lookup covers every season in the batch; a series the
    server does not return, or one without a TVDB id, maps to None.
    """
    series_ids = distinct_series_ids(season_candidates)
    if not series_ids:
        return {}
    resolved: Dict[str, Optional[str]] = {sid: None for sid in series_ids}
    for series in await jellyfin.get_items_by_ids(series_ids):
        if series.id in resolved:
            resolved[series.id] = series.provider_id(TV_PROVIDER)
    return resolved
