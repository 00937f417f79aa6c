import argparse
import asyncio
import json
import sys
from typing import Any, Dict

from storage.exclusions import ExclusionStore


def _open_exclusions() -> ExclusionStore:
    # Same file the scanner reads: env first, then YAML general.exclusions_file_path
    import retention

    return retention.open_exclusions()


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_exclusions_list(args):
    store = _open_exclusions()
    if not getattr(args, 'resolve', False):
        _print(store.ids())
        return
    items = asyncio.run(_resolve_exclusions(store))
    _print([{'id': it.id, 'name': it.display_name, 'kind': it.kind.value} for it in items])


async def _resolve_exclusions(store: ExclusionStore):
    import aiohttp
    import retention

    async with aiohttp.ClientSession() as session:
        runner = retention.build_runner(session, exclusions=store)
        return await runner.excluded_items()


def cmd_exclusions_add(args):
    store = _open_exclusions()
    added = store.add_many(args.ids)
    print(f"Added {added} id(s)")


def cmd_exclusions_remove(args):
    store = _open_exclusions()
    if store.remove(args.id):
        print(f"Removed {args.id}")
    else:
        print("Id not found")


def cmd_exclusions_clear(args):
    store = _open_exclusions()
    count = store.clear()
    print(f"Cleared {count} exclusion(s)")


async def _scan() -> Dict[str, Any]:
    import aiohttp
    import retention
    from core.runner import summarize

    async with aiohttp.ClientSession() as session:
        runner = retention.build_runner(session)
        await runner.scan()
        return summarize(runner)


def cmd_scan(args):
    _print(asyncio.run(_scan()))


async def _delete(ids) -> Dict[str, Any]:
    import aiohttp
    import retention
    from core.runner import summarize

    async with aiohttp.ClientSession() as session:
        runner = retention.build_runner(session)
        await runner.scan()
        if ids:
            runner.select_only(ids)
        if not runner.selected:
            out = summarize(runner)
            out['message'] = 'Nothing selected for deletion'
            return out
        await runner.delete_selected()
        return summarize(runner)


def cmd_delete(args):
    if not args.yes:
        print("Refusing to delete without --yes (files are removed from disk)")
        sys.exit(2)
    _print(asyncio.run(_delete(args.id or [])))


async def _status() -> Dict[str, Any]:
    import aiohttp
    import retention
    from integrations.clients import build_clients

    settings = retention.current_settings()
    out: Dict[str, Any] = {}
    async with aiohttp.ClientSession() as session:
        clients = build_clients(session, settings)
        for name, client, check in (
            ('Jellyfin', clients.jellyfin, 'system_info'),
            ('Radarr', clients.radarr, 'system_status'),
            ('Sonarr', clients.sonarr, 'system_status'),
        ):
            if not client.configured:
                out[name] = {'configured': False}
                continue
            entry: Dict[str, Any] = {'configured': True}
            try:
                info = await getattr(client, check)()
                entry['ok'] = True
                entry['version'] = info.get('version') or info.get('Version')
                if hasattr(client, 'list_queue'):
                    entry['queue'] = len(await client.list_queue())
            except Exception as e:
                entry['ok'] = False
                entry['error'] = str(e)
            out[name] = entry
    out['exclusions'] = len(retention.open_exclusions())
    out['rules'] = {
        'movie_retention_days': settings.rules.movie_days,
        'season_retention_days': settings.rules.season_days,
    }
    return out


def cmd_status(args):
    _print(asyncio.run(_status()))


def main():
    ap = argparse.ArgumentParser(description="Media Retention CLI")
    sub = ap.add_subparsers(dest='cmd')

    p_exc = sub.add_parser('exclusions', help='Manage the exclusion list')
    exc_sub = p_exc.add_subparsers(dest='exc_cmd')
    p_list = exc_sub.add_parser('list', help='List excluded ids')
    p_list.add_argument('--resolve', action='store_true', help='Look the ids up in Jellyfin')
    p_list.set_defaults(func=cmd_exclusions_list)
    p_add = exc_sub.add_parser('add', help='Exclude one or more item ids')
    p_add.add_argument('ids', nargs='+')
    p_add.set_defaults(func=cmd_exclusions_add)
    p_rm = exc_sub.add_parser('remove', help='Remove one id from the list')
    p_rm.add_argument('id')
    p_rm.set_defaults(func=cmd_exclusions_remove)
    p_clear = exc_sub.add_parser('clear', help='Remove every exclusion')
    p_clear.set_defaults(func=cmd_exclusions_clear)

    p_scan = sub.add_parser('scan', help='List items past their retention window')
    p_scan.set_defaults(func=cmd_scan)

    p_del = sub.add_parser('delete', help='Scan, then delete candidates from Radarr/Sonarr')
    p_del.add_argument('--id', action='append', help='Only delete this candidate id (repeatable)')
    p_del.add_argument('--yes', action='store_true', help='Confirm deletion of files on disk')
    p_del.set_defaults(func=cmd_delete)

    p_status = sub.add_parser('status', help='Check connections to the configured services')
    p_status.set_defaults(func=cmd_status)

    args = ap.parse_args()
    if not hasattr(args, 'func'):
        ap.print_help()
        sys.exit(1)
    args.func(args)


if __name__ == '__main__':
    main()
