from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import aiohttp

from core.utils import bytes_to_gib

TITLE = 'Media retention cleanup'
DISCORD_COLOR = 0x00A4DC


def build_summary(success_count: int, attempted: int, bytes_freed: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        'title': TITLE,
        'deleted': int(success_count),
        'attempted': int(attempted),
        'reclaimed_gib': bytes_to_gib(bytes_freed),
        'timestamp': (now or datetime.now(timezone.utc)).isoformat(),
    }


def _summary_line(summary: Dict[str, Any], dry_run: bool) -> str:
    line = (
        f"{summary['deleted']} of {summary['attempted']} item(s) deleted, "
        f"about {summary['reclaimed_gib']:.2f} GiB reclaimed."
    )
    return f'[DRY RUN] {line}' if dry_run else line


def format_payload(dest: Dict[str, Any], summary: Dict[str, Any], dry_run: bool) -> Dict[str, Any]:
    typ = str(dest.get('type') or 'generic').lower()
    line = _summary_line(summary, dry_run)
    if typ == 'discord':
        payload: Dict[str, Any] = {
            'embeds': [{
                'title': summary['title'],
                'description': line,
                'color': DISCORD_COLOR,
                'fields': [
                    {'name': 'Deleted', 'value': str(summary['deleted']), 'inline': True},
                    {'name': 'Attempted', 'value': str(summary['attempted']), 'inline': True},
                    {'name': 'Reclaimed', 'value': f"{summary['reclaimed_gib']:.2f} GiB", 'inline': True},
                ],
                'timestamp': summary['timestamp'],
            }],
        }
        if dest.get('username'):
            payload['username'] = dest['username']
        if dest.get('avatar_url'):
            payload['avatar_url'] = dest['avatar_url']
        return payload
    if typ == 'slack':
        return {'text': f"*{summary['title']}*\n{line}"}
    doc = dict(summary)
    if dry_run:
        doc['dryRun'] = True
    return doc


async def send_summary(
    session: aiohttp.ClientSession,
    dest: Dict[str, Any],
    summary: Dict[str, Any],
    dry_run: bool,
    debug_logging: bool,
) -> None:
    url = dest.get('url')
    typ = str(dest.get('type') or 'generic').lower()
    timeout = aiohttp.ClientTimeout(total=5)
    headers = dest.get('headers') if isinstance(dest.get('headers'), dict) else None
    try:
        payload = format_payload(dest, summary, dry_run)
        resp = await session.post(url, json=payload, headers=headers, timeout=timeout)
        status = getattr(resp, 'status', None)
        if isinstance(status, int) and status >= 400:
            import logging
            logging.warning(f"Notify({typ}): webhook answered HTTP {status}")
    except Exception as e:
        import logging
        logging.warning(f"Notify({typ}): send failed: {e}")


async def notify_run_summary(
    session: aiohttp.ClientSession,
    destinations: Iterable[Dict[str, Any]],
    success_count: int,
    attempted: int,
    bytes_freed: int,
    *,
    enabled: bool = True,
    dry_run: bool = False,
    debug_logging: bool = False,
) -> int:
    """Post the run summary to every destination; returns how many were tried.

    Nothing is sent for a disabled sink or a run without successful
    deletions. Send failures are logged and never raised.
    """
    dests = [d for d in (destinations or []) if isinstance(d, dict) and d.get('url')]
    if not enabled or not dests or success_count <= 0:
        if debug_logging:
            import logging
            logging.info('Notify: nothing to send')
        return 0
    summary = build_summary(success_count, attempted, bytes_freed)
    for d in dests:
        await send_summary(session, d, summary, dry_run, debug_logging)
    return len(dests)
