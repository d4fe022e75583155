"""Unit tests for the command line interface."""

import logging

import pytest
from click.testing import CliRunner

from techsync.cli import cli
from techsync.config.config_loader import ENV_OVERRIDES


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for name in list(ENV_OVERRIDES) + ['TECHSYNC_CONFIG']:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    database = tmp_path / 'data' / 'queue.db'
    path = tmp_path / 'techsync.yaml'
    path.write_text(
        "database:\n"
        f"  url: sqlite+aiosqlite:///{database}\n"
        "logging:\n"
        "  level: WARNING\n",
        encoding='utf-8'
    )
    yield str(path)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, '_techsync', False):
            root.removeHandler(handler)
            handler.close()


def test_init_db_creates_queue_database(config_file, tmp_path):
    result = CliRunner().invoke(cli, ['--config', config_file, 'init-db'])

    assert result.exit_code == 0, result.output
    assert "Queue database ready" in result.output
    assert (tmp_path / 'data' / 'queue.db').exists()


def test_stats_on_empty_queue(config_file):
    result = CliRunner().invoke(cli, ['--config', config_file, 'stats'])

    assert result.exit_code == 0, result.output
    assert "pending" in result.output
    assert "total" in result.output


def test_reclaim_reports_count(config_file):
    result = CliRunner().invoke(cli, ['--config', config_file, 'reclaim', '--timeout', '0'])

    assert result.exit_code == 0, result.output
    assert "Reclaimed 0 stale item(s)" in result.output


def test_process_queue_without_target_fails(config_file):
    result = CliRunner().invoke(cli, ['--config', config_file, 'process-queue'])

    assert result.exit_code == 1
    assert "Target is not configured" in result.output


def test_reconcile_without_source_fails(config_file):
    result = CliRunner().invoke(cli, ['--config', config_file, 'reconcile', '--table', 'projects'])

    assert result.exit_code == 1
