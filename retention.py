import os
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from core.config import load_yaml as _load_yaml
from core.config import sanitize_config as _sanitize_config
from core.config import validate_config as _validate_config
from core.config import ConfigAccessor as _ConfigAccessor
from core.config import AutomationSettings, build_settings as _build_settings
from core.events import EventBus
from core.models import DeletionReport
from core.runner import AutomationRunner, RunnerDeps, summarize
from integrations.clients import build_clients
from integrations.notifications import notify_run_summary
from integrations.services import RequestManager
from storage.exclusions import ExclusionStore


# Helper function to get environment variables with type casting
def get_env_var(key, default=None, cast_to=str):
    value = os.environ.get(key, default)
    if value is not None:
        return cast_to(value)
    return default


def _as_bool(x) -> bool:
    return str(x).lower() in ['true', '1', 'yes']


# Fetch debug flag from environment and set logging level
DEBUG_LOGGING = get_env_var('DEBUG_LOGGING', default='false', cast_to=_as_bool)
logging_level = logging.DEBUG if DEBUG_LOGGING else logging.INFO

logging.basicConfig(
    format='%(asctime)s [%(levelname)s]: %(message)s',
    level=logging_level,
    handlers=[logging.StreamHandler()],
    force=True,
)

# Dedicated non-propagating logger for structured event logs to avoid duplicates
EVENT_LOG = logging.getLogger('media_retention.events')
EVENT_LOG.setLevel(logging_level)
EVENT_LOG.propagate = False
# Exactly one handler, even if the module is re-imported
for _h in list(EVENT_LOG.handlers):
    EVENT_LOG.removeHandler(_h)
_h = logging.StreamHandler()
_h.setFormatter(logging.Formatter('%(asctime)s [%(levelname)s]: %(message)s'))
EVENT_LOG.addHandler(_h)

CONFIG_PATH = get_env_var('CONFIG_PATH', '/app/config.yaml')
DEFAULT_EXCLUSIONS_FILE_PATH = '/app/data/exclusions.json'

# Logging and run controls
STRUCTURED_LOGS = get_env_var('STRUCTURED_LOGS', default='true', cast_to=_as_bool)
DRY_RUN = get_env_var('DRY_RUN', default='false', cast_to=_as_bool)


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    cfg = _sanitize_config(_load_yaml(path or get_env_var('CONFIG_PATH', CONFIG_PATH)), DEBUG_LOGGING)
    _validate_config(cfg, DEBUG_LOGGING)
    return cfg


# YAML config loading
CONFIG: Dict[str, Any] = load_config()
_AC = _ConfigAccessor(CONFIG)


# Prefer YAML general for app-level settings; fallback to env-loaded defaults
def _get_general(key: str, default: Any) -> Any:
    val = _AC.general(key, None)
    return default if val is None else val


DEBUG_LOGGING = bool(_get_general('debug_logging', DEBUG_LOGGING))
STRUCTURED_LOGS = bool(_get_general('structured_logs', STRUCTURED_LOGS))
DRY_RUN = bool(_get_general('dry_run', DRY_RUN))


def exclusions_file_path(cfg: Optional[Dict[str, Any]] = None) -> str:
    # Env wins, then YAML general.exclusions_file_path, read fresh on every call
    env_path = os.environ.get('EXCLUSIONS_FILE_PATH')
    if env_path:
        return env_path
    accessor = _ConfigAccessor(cfg if cfg is not None else load_config())
    return str(accessor.general('exclusions_file_path', None) or DEFAULT_EXCLUSIONS_FILE_PATH)

EVENT_BUS = EventBus(
    structured_logs=STRUCTURED_LOGS,
    dry_run=DRY_RUN,
    debug_logging=DEBUG_LOGGING,
    logger=EVENT_LOG,
)


def current_settings() -> AutomationSettings:
    # Re-read file and environment so each run sees the latest settings
    return _build_settings(load_config(), dry_run=DRY_RUN, debug_logging=DEBUG_LOGGING)


def open_exclusions(path: Optional[str] = None) -> ExclusionStore:
    return ExclusionStore(path or exclusions_file_path(), DEBUG_LOGGING)


def build_runner(session: aiohttp.ClientSession, exclusions: Optional[ExclusionStore] = None,
                 settings_provider=None) -> AutomationRunner:
    manager = RequestManager()

    async def _notify(settings: AutomationSettings, report: DeletionReport):
        return await notify_run_summary(
            session,
            settings.destinations,
            report.success_count,
            report.attempted,
            report.bytes_freed,
            enabled=settings.notifications_enabled,
            dry_run=settings.dry_run,
            debug_logging=settings.debug_logging,
        )

    return AutomationRunner(
        RunnerDeps(
            settings_provider=settings_provider or current_settings,
            clients_factory=lambda settings: build_clients(session, settings, manager),
            exclusions=exclusions if exclusions is not None else open_exclusions(),
            notify=_notify,
            event_bus=EVENT_BUS,
        )
    )


async def main():
    async with aiohttp.ClientSession() as session:
        if DEBUG_LOGGING:
            logging.info('Running media-retention scan')
        runner = build_runner(session)
        await runner.scan()
        summary = summarize(runner)
        logging.info(f"Scan summary: {summary['counters']}")
        for cand in summary['candidates']:
            logging.info(f"  candidate {cand['id']} {cand['kind']} age={cand['age_days']}d {cand['name']}")


if __name__ == '__main__':
    asyncio.run(main())
