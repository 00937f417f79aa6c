import importlib
from datetime import datetime, timedelta, timezone

import pytest


pytestmark = pytest.mark.asyncio

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class FakeJellyfin:
    def __init__(self, items):
        self.items = items
        self.list_calls = 0
        self.fail = None

    async def list_items(self, kinds):
        self.list_calls += 1
        if self.fail:
            raise self.fail
        return list(self.items)

    async def get_items_by_ids(self, ids):
        return [i for i in self.items if i.id in ids]


class FakeRadarr:
    configured = True

    def __init__(self, movies, on_delete):
        self.movies = movies
        self.on_delete = on_delete

    async def list_movies(self):
        return self.movies

    async def delete_movie(self, movie_id):
        self.on_delete(movie_id)


class FakeSonarr:
    configured = False


class MemoryExclusions:
    def __init__(self):
        self._ids = {}

    def reload(self):
        pass

    def members(self):
        return frozenset(self._ids)

    def ids(self):
        return list(self._ids)

    def add(self, item_id):
        self._ids[item_id] = None
        return True

    def add_many(self, ids):
        for i in ids:
            self._ids[i] = None
        return len(ids)


def _movie(item_id, tmdb, days):
    models = importlib.import_module('core.models')
    return models.Movie(id=item_id, name=f'Movie {item_id}', created=NOW - timedelta(days=days),
                        provider_ids={'tmdb': tmdb})


def _make_runner(items, jellyfin_configured=True, exclusions=None):
    runner_mod = importlib.import_module('core.runner')
    cfgmod = importlib.import_module('core.config')
    models = importlib.import_module('core.models')

    jf = FakeJellyfin(items)
    entities = [
        models.AcquisitionEntity(id=100 + n, title=i.name, provider_id=int(i.provider_ids['tmdb']), size_on_disk=1024 ** 3)
        for n, i in enumerate(items)
    ]

    def on_delete(movie_id):
        # Deleted movies disappear from the library
        gone = {i.id for i, e in zip(items, entities) if e.id == movie_id}
        jf.items = [i for i in jf.items if i.id not in gone]

    radarr = FakeRadarr(entities, on_delete)
    endpoints = {'Jellyfin': cfgmod.ServiceEndpoint('Jellyfin', 'http://jf', 'k', 'u')} if jellyfin_configured else {}
    settings = cfgmod.AutomationSettings(rules=models.RetentionRules(), endpoints=endpoints)
    clients = type('Clients', (), {'jellyfin': jf, 'radarr': radarr, 'sonarr': FakeSonarr()})()
    notified = []

    async def notify(s, report):
        notified.append(report)

    exclusions = exclusions if exclusions is not None else MemoryExclusions()
    runner = runner_mod.AutomationRunner(runner_mod.RunnerDeps(
        settings_provider=lambda: settings,
        clients_factory=lambda s: clients,
        exclusions=exclusions,
        notify=notify,
        clock=lambda: NOW,
    ))
    return runner, jf, exclusions, notified


async def test_scan_moves_to_reviewing_with_everything_selected():
    runner_mod = importlib.import_module('core.runner')
    runner, jf, _, _ = _make_runner([_movie('a', '1', 30), _movie('b', '2', 2)])
    assert runner.phase is runner_mod.RunPhase.IDLE
    result = await runner.scan()
    assert runner.phase is runner_mod.RunPhase.REVIEWING
    assert [c.id for c in result.candidates] == ['a']
    assert list(runner.selected) == ['a']
    assert runner.counters.skipped_recent == 1


async def test_scan_without_jellyfin_raises_before_any_log_line():
    runner_mod = importlib.import_module('core.runner')
    runner, jf, _, _ = _make_runner([_movie('a', '1', 30)], jellyfin_configured=False)
    with pytest.raises(runner_mod.ConfigurationError):
        await runner.scan()
    assert runner.run_log.entries == []
    assert jf.list_calls == 0
    assert runner.phase is runner_mod.RunPhase.IDLE


async def test_scan_failure_logs_error_and_returns_to_idle():
    runner_mod = importlib.import_module('core.runner')
    runner, jf, _, _ = _make_runner([_movie('a', '1', 30)])
    jf.fail = RuntimeError('jellyfin down')
    with pytest.raises(RuntimeError):
        await runner.scan()
    assert runner.phase is runner_mod.RunPhase.IDLE
    assert runner.run_log.entries[-1].severity == 'error'
    assert 'jellyfin down' in runner.run_log.entries[-1].message


async def test_selection_and_exclusion_only_while_reviewing():
    runner_mod = importlib.import_module('core.runner')
    runner, _, exclusions, _ = _make_runner([_movie('a', '1', 30), _movie('b', '2', 30), _movie('c', '3', 30)])
    with pytest.raises(runner_mod.InvalidTransition):
        runner.toggle('a')
    await runner.scan()
    assert runner.toggle('a') is False
    assert runner.toggle('a') is True
    with pytest.raises(KeyError):
        runner.toggle('zzz')

    assert runner.exclude('b') is True
    assert 'b' in exclusions.members()
    assert [c.id for c in runner.candidates] == ['a', 'c']
    assert 'b' not in runner.selected
    assert runner.run_log.entries[-1].message == '"Movie b" added to the exclusion list.'

    assert runner.exclude_all() == 2
    assert exclusions.members() == frozenset({'a', 'b', 'c'})
    assert runner.candidates == []
    assert runner.run_log.entries[-1].message == '2 item(s) added to the exclusion list.'

    # Excluded items stay out of the next scan
    await runner.scan()
    assert runner.candidates == []
    assert runner.counters.skipped_excluded == 3


async def test_delete_selected_notifies_and_rescans():
    runner_mod = importlib.import_module('core.runner')
    runner, jf, _, notified = _make_runner([_movie('a', '1', 30), _movie('b', '2', 30)])
    await runner.scan()
    runner.select_only(['b'])
    report = await runner.delete_selected()
    assert report.success_count == 1
    assert report.bytes_freed == 1024 ** 3
    assert notified == [report]
    assert jf.list_calls == 2
    assert runner.phase is runner_mod.RunPhase.REVIEWING
    assert [c.id for c in runner.candidates] == ['a']
    summary = runner_mod.summarize(runner)
    assert summary['deletion']['completed'] == 1
    assert summary['deletion']['by_status']['success'] == 1
    assert any('1 of 1 tasks completed' in ln for ln in summary['log'])


async def test_delete_requires_a_selection():
    runner_mod = importlib.import_module('core.runner')
    runner, _, _, _ = _make_runner([_movie('a', '1', 30)])
    with pytest.raises(runner_mod.InvalidTransition):
        await runner.delete_selected()
    await runner.scan()
    runner.select_only([])
    with pytest.raises(runner_mod.InvalidTransition):
        await runner.delete_selected()


async def test_excluded_items_resolves_names():
    runner, _, exclusions, _ = _make_runner([_movie('a', '1', 30), _movie('b', '2', 30)])
    assert await runner.excluded_items() == []
    exclusions.add('b')
    (item,) = await runner.excluded_items()
    assert item.name == 'Movie b'


async def test_scan_rereads_exclusions_edited_elsewhere(tmp_path):
    storage = importlib.import_module('storage.exclusions')
    path = str(tmp_path / 'exclusions.json')
    store = storage.ExclusionStore(path)
    runner, _, _, _ = _make_runner([_movie('a', '1', 30), _movie('b', '2', 30)], exclusions=store)
    await runner.scan()
    assert [c.id for c in runner.candidates] == ['a', 'b']

    # Another process (the exclusions CLI) writes to the same file
    storage.ExclusionStore(path).add('a')
    await runner.scan()
    assert [c.id for c in runner.candidates] == ['b']
    assert runner.counters.skipped_excluded == 1
    assert [i.id for i in await runner.excluded_items()] == ['a']
