from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from core.actions import ActionsDeps, execute_deletions
from core.config import AutomationSettings
from core.events import EventBus, RunLog
from core.models import Candidate, DeletionReport, MediaItem, ScanCounters, ScanResult
from core.rules import describe_rules
from core.scanner import scan_library


class ConfigurationError(Exception):
    pass


class InvalidTransition(Exception):
    pass


class RunPhase(str, Enum):
    IDLE = 'idle'
    SCANNING = 'scanning'
    REVIEWING = 'reviewing'
    DELETING = 'deleting'


@dataclass
class RunnerDeps:
    # fresh settings snapshot per scan / deletion run
    settings_provider: Callable[[], AutomationSettings]
    # settings -> object exposing .jellyfin, .radarr, .sonarr
    clients_factory: Callable[[AutomationSettings], Any]
    exclusions: Any  # expects .reload(), .members(), .add(), .add_many(), .ids()
    notify: Callable[[AutomationSettings, DeletionReport], Awaitable[Any]]
    event_bus: Optional[EventBus] = None
    clock: Optional[Callable[[], datetime]] = None


class AutomationRunner:
    """Drives one scan → review → delete → re-scan cycle.

    Phases move idle → scanning → reviewing → deleting → scanning →
    reviewing. Selection and exclusion edits are only accepted while
    reviewing; anything else raises InvalidTransition.
    """

    def __init__(self, deps: RunnerDeps) -> None:
        self.deps = deps
        self.phase = RunPhase.IDLE
        self.candidates: List[Candidate] = []
        self.selected: Dict[str, None] = {}
        self.counters = ScanCounters()
        self.run_log = RunLog(deps.event_bus, clock=deps.clock)
        self.last_report: Optional[DeletionReport] = None
        self.last_settings: Optional[AutomationSettings] = None

    def _now(self) -> datetime:
        return self.deps.clock() if self.deps.clock else datetime.now(timezone.utc)

    def _require(self, *phases: RunPhase) -> None:
        if self.phase not in phases:
            allowed = ', '.join(p.value for p in phases)
            raise InvalidTransition(f'not allowed while {self.phase.value} (allowed: {allowed})')

    async def scan(self) -> ScanResult:
        self._require(RunPhase.IDLE, RunPhase.REVIEWING)
        settings = self.deps.settings_provider()
        if not settings.endpoint('Jellyfin').configured:
            raise ConfigurationError('Jellyfin settings are not configured.')
        self.last_settings = settings
        self.phase = RunPhase.SCANNING
        self.candidates = []
        self.selected = {}
        clients = self.deps.clients_factory(settings)
        # Pick up edits made by other processes, e.g. the exclusions CLI
        self.deps.exclusions.reload()
        try:
            result = await scan_library(
                clients.jellyfin,
                settings.rules,
                self.deps.exclusions.members(),
                now=self._now(),
                run_log=self.run_log,
                debug_logging=settings.debug_logging,
            )
        except Exception as e:
            self.run_log.error(f'Scan failed: {e}')
            self.phase = RunPhase.IDLE
            raise
        self.candidates = list(result.candidates)
        self.counters = result.counters
        # Pre-selected as a convenience; deletion only acts on the selection
        self.selected = dict.fromkeys(c.id for c in self.candidates)
        self.phase = RunPhase.REVIEWING
        return result

    def toggle(self, item_id: str) -> bool:
        self._require(RunPhase.REVIEWING)
        if item_id in self.selected:
            del self.selected[item_id]
            return False
        if any(c.id == item_id for c in self.candidates):
            self.selected[item_id] = None
            return True
        raise KeyError(item_id)

    def select_only(self, item_ids: Iterable[str]) -> int:
        self._require(RunPhase.REVIEWING)
        wanted = set(str(i) for i in item_ids)
        self.selected = dict.fromkeys(c.id for c in self.candidates if c.id in wanted)
        return len(self.selected)

    def exclude(self, item_id: str) -> bool:
        self._require(RunPhase.REVIEWING)
        match = next((c for c in self.candidates if c.id == item_id), None)
        if match is None:
            raise KeyError(item_id)
        self.deps.exclusions.add(item_id)
        self.candidates = [c for c in self.candidates if c.id != item_id]
        self.selected.pop(item_id, None)
        self.run_log.info(f'"{match.item.display_name}" added to the exclusion list.', id=item_id)
        return True

    def exclude_all(self) -> int:
        self._require(RunPhase.REVIEWING)
        if not self.candidates:
            return 0
        ids = [c.id for c in self.candidates]
        self.deps.exclusions.add_many(ids)
        self.candidates = []
        self.selected = {}
        self.run_log.info(f'{len(ids)} item(s) added to the exclusion list.', count=len(ids))
        return len(ids)

    def selected_candidates(self) -> List[Candidate]:
        return [c for c in self.candidates if c.id in self.selected]

    async def delete_selected(self) -> DeletionReport:
        self._require(RunPhase.REVIEWING)
        targets = self.selected_candidates()
        if not targets:
            raise InvalidTransition('nothing selected for deletion')
        self.phase = RunPhase.DELETING
        settings = self.deps.settings_provider()
        self.last_settings = settings
        clients = self.deps.clients_factory(settings)
        try:
            report = await execute_deletions(
                targets,
                ActionsDeps(
                    jellyfin=clients.jellyfin,
                    radarr=clients.radarr,
                    sonarr=clients.sonarr,
                    run_log=self.run_log,
                    dry_run=settings.dry_run,
                    debug_logging=settings.debug_logging,
                ),
            )
            self.last_report = report
            try:
                await self.deps.notify(settings, report)
            except Exception as e:
                logging.warning(f'Notify: summary not sent: {e}')
        finally:
            self.phase = RunPhase.IDLE

        # Refresh from downstream state rather than patching the candidate list
        try:
            await self.scan()
        except Exception as e:
            logging.error(f'Re-scan after deletion failed: {e}')
        return report

    async def excluded_items(self) -> List[MediaItem]:
        settings = self.deps.settings_provider()
        if not settings.endpoint('Jellyfin').configured:
            raise ConfigurationError('Jellyfin settings are not configured.')
        self.deps.exclusions.reload()
        ids = self.deps.exclusions.ids()
        if not ids:
            return []
        clients = self.deps.clients_factory(settings)
        return await clients.jellyfin.get_items_by_ids(ids)


def summarize(runner: AutomationRunner) -> Dict[str, Any]:
    report = runner.last_report
    out: Dict[str, Any] = {
        'phase': runner.phase.value,
        'counters': runner.counters.as_dict(),
        'candidates': [
            {
                'id': c.id,
                'name': c.item.display_name,
                'kind': c.item.kind.value if c.item.kind else None,
                'age_days': round(c.age_days, 1),
                'reason': c.reason,
                'selected': c.id in runner.selected,
            }
            for c in runner.candidates
        ],
        'selected': len(runner.selected),
        'log': runner.run_log.lines(),
    }
    if runner.last_settings is not None:
        out['rules'] = describe_rules(runner.last_settings.rules)
    if report is not None:
        out['deletion'] = {
            'attempted': report.attempted,
            'completed': report.success_count,
            'bytes_freed': report.bytes_freed,
            'by_status': report.counts(),
            'critical_error': report.critical_error,
            'outcomes': [o.as_dict() for o in report.outcomes],
        }
    return out
