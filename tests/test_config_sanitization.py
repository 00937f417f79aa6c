import importlib


def test_sanitize_config_coerces_numbers_and_filters_destinations():
    cfgmod = importlib.import_module('core.config')
    raw = {
        'automation': {
            'movie_retention_days': '14',
            'season_retention_days': 0,
            'batch_size': '25',
            'protected_genres': 'Kids, Documentary',
        },
        'general': {'retry_attempts': '2', 'request_timeout': '-5'},
        'notifications': {
            'destinations': [
                {'type': 'discord', 'url': 'http://x'},
                {'type': 'invalid', 'url': ''},
            ]
        },
        'services': {'Sonarr': {'max_concurrent_requests': '4', 'min_request_interval_ms': 'junk'}},
    }
    out = cfgmod.sanitize_config(raw, debug_logging=False)
    assert out['automation']['movie_retention_days'] == 14.0
    assert out['automation']['season_retention_days'] == cfgmod.DEFAULT_SEASON_RETENTION_DAYS
    assert out['automation']['batch_size'] == 25
    assert out['automation']['protected_genres'] == ['Kids', 'Documentary']
    assert out['general']['retry_attempts'] == 2
    assert out['general']['request_timeout'] == 0
    assert len(out['notifications']['destinations']) == 1
    assert out['services']['Sonarr']['max_concurrent_requests'] == 4
    assert out['services']['Sonarr']['min_request_interval_ms'] == 0


def test_retention_defaults_apply_for_missing_or_zero_values(monkeypatch):
    cfgmod = importlib.import_module('core.config')
    monkeypatch.delenv('MOVIE_RETENTION_DAYS', raising=False)
    monkeypatch.setenv('SEASON_RETENTION_DAYS', '0')
    rules = cfgmod.ConfigAccessor({}).retention_rules()
    assert rules.movie_days == 7
    assert rules.season_days == 28


def test_retention_env_overrides_yaml(monkeypatch):
    cfgmod = importlib.import_module('core.config')
    monkeypatch.setenv('MOVIE_RETENTION_DAYS', '3')
    monkeypatch.delenv('SEASON_RETENTION_DAYS', raising=False)
    acc = cfgmod.ConfigAccessor({'automation': {'movie_retention_days': 30, 'season_retention_days': 60}})
    rules = acc.retention_rules()
    assert rules.movie_days == 3.0
    assert rules.season_days == 60.0


def test_service_endpoint_env_first_then_yaml(monkeypatch):
    cfgmod = importlib.import_module('core.config')
    monkeypatch.setenv('RADARR_URL', 'http://radarr-env:7878')
    monkeypatch.delenv('RADARR_API_KEY', raising=False)
    monkeypatch.delenv('SONARR_URL', raising=False)
    monkeypatch.delenv('SONARR_API_KEY', raising=False)
    acc = cfgmod.ConfigAccessor({'services': {
        'Radarr': {'api_url': 'http://radarr-yaml', 'api_key': 'yaml-key'},
        'Sonarr': {'api_url': 'http://sonarr'},
    }})
    radarr = acc.service_endpoint('Radarr')
    assert radarr.api_url == 'http://radarr-env:7878'
    assert radarr.api_key == 'yaml-key'
    assert radarr.configured
    # URL without key is not configured
    assert not acc.service_endpoint('Sonarr').configured


def test_validate_config_warns_but_never_raises(monkeypatch):
    cfgmod = importlib.import_module('core.config')
    for var in ('JELLYFIN_URL', 'JELLYFIN_API_KEY', 'JELLYFIN_USER_ID', 'SONARR_URL', 'SONARR_API_KEY'):
        monkeypatch.delenv(var, raising=False)
    problems = cfgmod.validate_config({
        'services': {
            'Sonarr': {'api_url': 'http://sonarr'},
            'Jellyfin': {'api_url': 'http://jf', 'api_key': 'k'},
        },
        'notifications': {'destinations': [{'name': 'hook', 'type': 'discord'}]},
    })
    assert any('Sonarr' in p for p in problems)
    assert any('user id' in p for p in problems)
    assert any("'hook'" in p for p in problems)
    assert cfgmod.validate_config('not a dict') == []


def test_build_settings_collects_endpoints_and_notifications(monkeypatch):
    cfgmod = importlib.import_module('core.config')
    for svc in ('JELLYFIN', 'RADARR', 'SONARR'):
        for suffix in ('URL', 'API_KEY', 'USER_ID'):
            monkeypatch.delenv(f'{svc}_{suffix}', raising=False)
    monkeypatch.delenv('MOVIE_RETENTION_DAYS', raising=False)
    monkeypatch.delenv('SEASON_RETENTION_DAYS', raising=False)
    monkeypatch.setenv('DISCORD_WEBHOOK_URL', 'http://discord/hook')
    cfg = cfgmod.sanitize_config({
        'general': {'dry_run': True},
        'automation': {'protected_genres': ['Kids']},
        'services': {'Jellyfin': {'api_url': 'http://jf', 'api_key': 'k', 'user_id': 'u1'}},
    })
    settings = cfgmod.build_settings(cfg)
    assert settings.endpoint('Jellyfin').configured
    assert settings.endpoint('Jellyfin').user_id == 'u1'
    assert not settings.endpoint('Radarr').configured
    assert settings.rules.protected_genres == frozenset({'Kids'})
    assert settings.dry_run is True
    assert settings.notifications_enabled is True
    assert settings.destinations[0]['type'] == 'discord'
    assert settings.retry_attempts == 0
    assert settings.request_timeout == 0


def test_notifications_disabled_flag(monkeypatch):
    cfgmod = importlib.import_module('core.config')
    monkeypatch.delenv('DISCORD_WEBHOOK_URL', raising=False)
    acc = cfgmod.ConfigAccessor({'notifications': {
        'enabled': False,
        'destinations': [{'type': 'slack', 'url': 'http://slack'}],
    }})
    assert acc.notifications_enabled() is False
    assert cfgmod.ConfigAccessor({}).notifications_enabled() is False


def test_load_yaml_missing_invalid_and_valid(tmp_path):
    cfgmod = importlib.import_module('core.config')
    assert cfgmod.load_yaml(str(tmp_path / 'none.yaml')) == {}
    bad = tmp_path / 'bad.yaml'
    bad.write_text('- just\n- a list\n')
    assert cfgmod.load_yaml(str(bad)) == {}
    good = tmp_path / 'config.yaml'
    good.write_text('automation:\n  movie_retention_days: 10\nservices:\n  Radarr:\n    api_url: http://radarr\n')
    cfg = cfgmod.load_yaml(str(good))
    assert cfg['automation']['movie_retention_days'] == 10
    assert cfg['services']['Radarr']['api_url'] == 'http://radarr'
