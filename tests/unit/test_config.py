"""Unit tests for configuration loading and typed settings."""

import pytest

from techsync.config.config_loader import ENV_OVERRIDES, load_config
from techsync.config.settings import SyncSettings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    for name in list(ENV_OVERRIDES) + ['TECHSYNC_CONFIG']:
        monkeypatch.delenv(name, raising=False)
    # keep load_dotenv away from any developer .env file
    monkeypatch.chdir(tmp_path)


def _write(tmp_path, text):
    path = tmp_path / 'techsync.yaml'
    path.write_text(text, encoding='utf-8')
    return path


class TestLoadConfig:
    def test_defaults_without_file(self):
        config = load_config()

        assert config['queue']['max_attempts'] == 5
        assert config['queue']['retry_delays'] == [60, 300, 900, 3600, 14400]
        assert config['gateway']['queue_mode'] == 'on_failure'
        assert config['reconciler']['tables'][0] == 'taxonomy_tipos'

    def test_yaml_values_merge_over_defaults(self, tmp_path):
        path = _write(tmp_path, """
worker:
  batch_size: 25
target:
  url: https://target.example.com
""")

        config = load_config(path)

        assert config['worker']['batch_size'] == 25
        assert config['worker']['dead_letter_client_errors'] is True
        assert config['target']['url'] == 'https://target.example.com'
        assert config['target']['page_size'] == 1000

    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "gateway:\n  queue_mode: never\n")
        monkeypatch.setenv('TECHSYNC_CONFIG', str(path))

        assert load_config()['gateway']['queue_mode'] == 'never'

    def test_environment_overrides_yaml(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "database:\n  url: sqlite+aiosqlite:///./from-yaml.db\n")
        monkeypatch.setenv('DATABASE_URL', 'sqlite+aiosqlite:///./from-env.db')
        monkeypatch.setenv('TARGET_SYNC_SECRET', 's3cret')

        config = load_config(path)

        assert config['database']['url'] == 'sqlite+aiosqlite:///./from-env.db'
        assert config['target']['sync_secret'] == 's3cret'

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv('LOG_LEVEL', 'DEBUG')

        config = load_config(overrides={'logging': {'level': 'WARNING'}})

        assert config['logging']['level'] == 'WARNING'

    def test_broken_yaml_falls_back_to_defaults(self, tmp_path):
        path = _write(tmp_path, "worker: [unclosed\n")

        config = load_config(path)

        assert config['worker']['batch_size'] == 10

    def test_missing_explicit_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / 'nope.yaml')

        assert config['api']['port'] == 8080


class TestSyncSettings:
    def test_from_defaults(self):
        settings = SyncSettings.from_config(load_config())

        assert settings.queue.max_attempts == 5
        assert settings.queue.stale_timeout_seconds == 600
        assert settings.worker.batch_size == 10
        assert settings.reconciler.fetch_chunk_size == 200
        assert settings.target.url == ''

    def test_partial_config_is_completed_from_defaults(self):
        settings = SyncSettings.from_config({
            'target': {'url': 'https://target.example.com/', 'page_size': '500'},
            'tables': {'projects': {'required_fields': ['name']}}
        })

        assert settings.target.url == 'https://target.example.com'
        assert settings.target.page_size == 500
        assert settings.tables == {'projects': {'required_fields': ['name']}}
        assert settings.gateway.queue_mode == 'on_failure'

    def test_invalid_queue_mode_is_rejected(self):
        with pytest.raises(ValueError, match='queue_mode'):
            SyncSettings.from_config({'gateway': {'queue_mode': 'sometimes'}})

    def test_empty_retry_schedule_is_rejected(self):
        with pytest.raises(ValueError, match='retry_delays'):
            SyncSettings.from_config({'queue': {'retry_delays': []}})

    def test_string_booleans_are_parsed(self):
        settings = SyncSettings.from_config({
            'worker': {'dead_letter_client_errors': 'false'},
            'target': {'verify_ssl': 'False'},
            'database': {'echo': 'yes'}
        })

        assert settings.worker.dead_letter_client_errors is False
        assert settings.target.verify_ssl is False
        assert settings.database_echo is True

    def test_invalid_boolean_is_rejected(self):
        with pytest.raises(ValueError, match='verify_ssl'):
            SyncSettings.from_config({'target': {'verify_ssl': 'maybe'}})
