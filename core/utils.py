from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, Optional

GIB = 1024 ** 3

_FRACTION_RE = re.compile(r'\.(\d+)')
_SEASON_NUMBER_RE = re.compile(r'\d+')


def parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_server_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as sent by the media server.

    The server emits seven fractional digits and a ``Z`` suffix, neither of
    which ``fromisoformat`` accepts on every supported interpreter. Naive
    values are taken as UTC.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    text = _FRACTION_RE.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def age_in_days(created: datetime, now: datetime) -> float:
    return (now - created).total_seconds() / 86400.0


def parse_season_number(name: Any) -> Optional[int]:
    # First integer substring: "Season 3" -> 3, "Specials" -> None
    match = _SEASON_NUMBER_RE.search(str(name or ''))
    if not match:
        return None
    return int(match.group(0))


def get_provider_ids(item: Dict[str, Any]) -> Dict[str, str]:
    raw = item.get('ProviderIds') if isinstance(item.get('ProviderIds'), dict) else {}
    out: Dict[str, str] = {}
    for key, val in raw.items():
        if val is None or str(val).strip() == '':
            continue
        out[str(key).lower()] = str(val).strip()
    return out


def get_media_size(item: Dict[str, Any]) -> Optional[int]:
    sources = item.get('MediaSources') if isinstance(item.get('MediaSources'), list) else []
    total = 0
    seen = False
    for src in sources:
        if not isinstance(src, dict):
            continue
        size = parse_int(src.get('Size'))
        if size is not None:
            total += size
            seen = True
    return total if seen else None


def get_genres(item: Dict[str, Any]) -> FrozenSet[str]:
    genres = item.get('Genres') if isinstance(item.get('Genres'), list) else []
    return frozenset(str(g) for g in genres if g)


def has_protected_genre(genres: Iterable[str], protected: Iterable[str]) -> bool:
    wanted = {str(g).strip().lower() for g in protected if str(g).strip()}
    if not wanted:
        return False
    return any(str(g).strip().lower() in wanted for g in genres)


def bytes_to_gib(size: Optional[int]) -> float:
    try:
        return round(int(size or 0) / GIB, 2)
    except (TypeError, ValueError):
        return 0.0


def chunked(values, size: int):
    size = max(1, int(size or 1))
    values = list(values)
    for i in range(0, len(values), size):
        yield values[i:i + size]
