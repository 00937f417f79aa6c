from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import yaml

from core.models import RetentionRules

DEFAULT_MOVIE_RETENTION_DAYS = 7
DEFAULT_SEASON_RETENTION_DAYS = 28
DEFAULT_BATCH_SIZE = 50
DEFAULT_PAGE_SIZE = 500
SERVICES = ('Jellyfin', 'Radarr', 'Sonarr')
NOTIFICATION_TYPES = {'discord', 'slack', 'generic'}


def load_yaml(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
            return data if isinstance(data, dict) else {}
    except Exception:
        return {}


def _get_env(key: str, default: Any = None) -> Any:
    return os.environ.get(key, default)


def _section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = cfg.get(name)
    return sec if isinstance(sec, dict) else {}


def _positive(value: Any, default: float) -> float:
    # Zero, negative and unparseable values fall back to the default
    try:
        num = float(value)
    except (TypeError, ValueError):
        return default
    return num if num > 0 else default


@dataclass(frozen=True)
class ServiceEndpoint:
    name: str
    api_url: str = ''
    api_key: str = ''
    user_id: str = ''

    @property
    def configured(self) -> bool:
        return bool(self.api_url) and bool(self.api_key)


@dataclass(frozen=True)
class AutomationSettings:
    """Snapshot of everything one scan or deletion run reads from config."""

    rules: RetentionRules
    endpoints: Dict[str, ServiceEndpoint]
    throttles: Dict[str, Tuple[float, int]] = field(default_factory=dict)
    notifications_enabled: bool = False
    destinations: Tuple[Dict[str, Any], ...] = ()
    dry_run: bool = False
    debug_logging: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    page_size: int = DEFAULT_PAGE_SIZE
    request_timeout: float = 0
    retry_attempts: int = 0
    retry_backoff: float = 1.0

    def endpoint(self, name: str) -> ServiceEndpoint:
        return self.endpoints.get(name) or ServiceEndpoint(name=name)


class ConfigAccessor:
    def __init__(self, cfg: Dict[str, Any]) -> None:
        self.cfg = cfg if isinstance(cfg, dict) else {}

    def get_service_setting(self, service_name: str, key: str, default: Any = None) -> Any:
        services_cfg = _section(self.cfg, 'services')
        service_cfg = services_cfg.get(service_name, {})
        if isinstance(service_cfg, dict) and key in service_cfg:
            return service_cfg[key]
        return default

    # Endpoints: env first, YAML services.<Name> as fallback
    def service_endpoint(self, service_name: str) -> ServiceEndpoint:
        upper = service_name.upper()
        return ServiceEndpoint(
            name=service_name,
            api_url=_get_env(f'{upper}_URL') or str(self.get_service_setting(service_name, 'api_url', '') or ''),
            api_key=_get_env(f'{upper}_API_KEY') or str(self.get_service_setting(service_name, 'api_key', '') or ''),
            user_id=_get_env(f'{upper}_USER_ID') or str(self.get_service_setting(service_name, 'user_id', '') or ''),
        )

    def automation(self, key: str, default: Any = None) -> Any:
        return _section(self.cfg, 'automation').get(key, default)

    def retention_rules(self) -> RetentionRules:
        movie = _get_env('MOVIE_RETENTION_DAYS') or self.automation('movie_retention_days')
        season = _get_env('SEASON_RETENTION_DAYS') or self.automation('season_retention_days')
        genres = self.automation('protected_genres') or []
        if isinstance(genres, str):
            genres = [g for g in genres.split(',')]
        return RetentionRules(
            movie_days=_positive(movie, DEFAULT_MOVIE_RETENTION_DAYS),
            season_days=_positive(season, DEFAULT_SEASON_RETENTION_DAYS),
            protected_genres=frozenset(str(g).strip() for g in genres if str(g).strip()),
        )

    # Notifications accessors
    def notifications_enabled(self) -> bool:
        notif = _section(self.cfg, 'notifications')
        return bool(notif.get('enabled', True)) and bool(self.notification_destinations())

    def notification_destinations(self) -> List[Dict[str, Any]]:
        notif = _section(self.cfg, 'notifications')
        dests = notif.get('destinations') if isinstance(notif.get('destinations'), list) else []
        out: List[Dict[str, Any]] = []
        for d in dests:
            if not isinstance(d, dict):
                continue
            url = d.get('url')
            typ = str(d.get('type') or 'generic').lower()
            if not url or typ not in NOTIFICATION_TYPES:
                continue
            out.append(d)
        discord_url = _get_env('DISCORD_WEBHOOK_URL')
        if discord_url and not any(d.get('url') == discord_url for d in out):
            out.append({'name': 'discord-env', 'type': 'discord', 'url': discord_url})
        return out

    def throttle(self, service_name: str) -> Tuple[float, int]:
        try:
            min_interval = float(self.get_service_setting(service_name, 'min_request_interval_ms', 0) or 0)
        except (TypeError, ValueError):
            min_interval = 0.0
        try:
            max_conc = int(self.get_service_setting(service_name, 'max_concurrent_requests', 0) or 0)
        except (TypeError, ValueError):
            max_conc = 0
        return max(0.0, min_interval), max(0, max_conc)

    # General settings accessor
    def general(self, key: str, default: Any = None) -> Any:
        return _section(self.cfg, 'general').get(key, default)


def sanitize_config(cfg: Dict[str, Any], debug_logging: bool = False) -> Dict[str, Any]:
    if not isinstance(cfg, dict):
        return {}
    out = dict(cfg)

    def _nz(v, cast, default):
        try:
            return cast(v)
        except Exception:
            return default

    # Automation numeric coercions
    auto = _section(out, 'automation')
    if auto:
        auto['movie_retention_days'] = _positive(auto.get('movie_retention_days'), DEFAULT_MOVIE_RETENTION_DAYS)
        auto['season_retention_days'] = _positive(auto.get('season_retention_days'), DEFAULT_SEASON_RETENTION_DAYS)
        auto['batch_size'] = max(1, _nz(auto.get('batch_size', DEFAULT_BATCH_SIZE), int, DEFAULT_BATCH_SIZE))
        auto['page_size'] = max(1, _nz(auto.get('page_size', DEFAULT_PAGE_SIZE), int, DEFAULT_PAGE_SIZE))
        pg = auto.get('protected_genres')
        if pg is not None and not isinstance(pg, list):
            auto['protected_genres'] = [s.strip() for s in str(pg).split(',') if s.strip()]
        out['automation'] = auto

    gen = _section(out, 'general')
    if gen:
        gen['request_timeout'] = max(0, _nz(gen.get('request_timeout', 0), float, 0))
        gen['retry_attempts'] = max(0, _nz(gen.get('retry_attempts', 0), int, 0))
        gen['retry_backoff'] = max(0, _nz(gen.get('retry_backoff', 1.0), float, 1.0))
        out['general'] = gen

    # Notifications destinations validation/cleanup
    notif = _section(out, 'notifications')
    dests = notif.get('destinations') if isinstance(notif.get('destinations'), list) else []
    cleaned = []
    for d in dests:
        if not isinstance(d, dict):
            continue
        url = d.get('url')
        typ = str(d.get('type') or 'generic').lower()
        if not url or typ not in NOTIFICATION_TYPES:
            if debug_logging:
                import logging
                logging.warning(f'Ignoring invalid notification destination: {d}')
            continue
        cleaned.append(d)
    if notif:
        notif['destinations'] = cleaned
        out['notifications'] = notif

    # Per-service throttle sanitization
    sv = _section(out, 'services')
    for sname, scfg in list(sv.items()):
        if isinstance(scfg, dict):
            if 'min_request_interval_ms' in scfg:
                scfg['min_request_interval_ms'] = max(0, _nz(scfg.get('min_request_interval_ms'), float, 0))
            if 'max_concurrent_requests' in scfg:
                scfg['max_concurrent_requests'] = max(0, _nz(scfg.get('max_concurrent_requests'), int, 0))
    return out


def validate_config(cfg: Dict[str, Any], debug_logging: bool = False) -> List[str]:
    import logging as _lg

    problems: List[str] = []
    try:
        accessor = ConfigAccessor(cfg)
        for s in SERVICES:
            ep = accessor.service_endpoint(s)
            if bool(ep.api_url) != bool(ep.api_key):
                problems.append(f"Service {s} has partial config (URL/API_KEY); it will be treated as not configured.")
        jf = accessor.service_endpoint('Jellyfin')
        if jf.configured and not jf.user_id:
            problems.append('Jellyfin user id not set; library listing falls back to /Items.')
        notif = _section(cfg, 'notifications')
        dests = notif.get('destinations') if isinstance(notif.get('destinations'), list) else []
        for d in dests:
            if isinstance(d, dict) and not d.get('url'):
                problems.append(f"Notification destination '{d.get('name') or d.get('type')}' missing url; it will be ignored.")
        for p in problems:
            _lg.warning(p)
    except Exception as e:
        # Never raise due to validation
        if debug_logging:
            _lg.warning(f'Config validation skipped: {e}')
    return problems


def build_settings(cfg: Dict[str, Any], *, dry_run: bool = False, debug_logging: bool = False) -> AutomationSettings:
    accessor = ConfigAccessor(cfg)
    general = _section(cfg, 'general')
    try:
        batch_size = max(1, int(accessor.automation('batch_size', DEFAULT_BATCH_SIZE)))
    except (TypeError, ValueError):
        batch_size = DEFAULT_BATCH_SIZE
    try:
        page_size = max(1, int(accessor.automation('page_size', DEFAULT_PAGE_SIZE)))
    except (TypeError, ValueError):
        page_size = DEFAULT_PAGE_SIZE
    return AutomationSettings(
        rules=accessor.retention_rules(),
        endpoints={s: accessor.service_endpoint(s) for s in SERVICES},
        throttles={s: accessor.throttle(s) for s in SERVICES},
        notifications_enabled=accessor.notifications_enabled(),
        destinations=tuple(accessor.notification_destinations()),
        dry_run=bool(general.get('dry_run', dry_run)),
        debug_logging=bool(general.get('debug_logging', debug_logging)),
        batch_size=batch_size,
        page_size=page_size,
        request_timeout=float(general.get('request_timeout', 0) or 0),
        retry_attempts=int(general.get('retry_attempts', 0) or 0),
        retry_backoff=float(general.get('retry_backoff', 1.0) or 1.0),
    )
