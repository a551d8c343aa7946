from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from failover_probe import main as cli
from failover_probe.config import get_settings
from failover_probe.errors import LocalLogError, RemoteStoreError
from failover_probe.generator import LoopSummary
from failover_probe.reconciler import ReconcileResult

runner = CliRunner()


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("PROBE_STORE", str(tmp_path / "cli.data"))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_load_rejects_non_positive_size(monkeypatch) -> None:
    called = []
    monkeypatch.setattr(cli, "run_load", lambda config: called.append(config))

    result = runner.invoke(cli.app, ["load", "--size", "0"])

    assert result.exit_code == 2
    assert called == []


def test_load_rejects_unparseable_duration(monkeypatch) -> None:
    monkeypatch.setattr(cli, "run_load", lambda config: pytest.fail("loop must not start"))

    result = runner.invoke(cli.app, ["load", "--pause", "a while"])

    assert result.exit_code == 2


def test_load_passes_options_to_the_loop(monkeypatch, tmp_path) -> None:
    seen = []

    async def fake_run_load(config):
        seen.append(config)
        return LoopSummary(generated=3, inserted=2, failed=1, last_id=3)

    monkeypatch.setattr(cli, "run_load", fake_run_load)

    result = runner.invoke(
        cli.app,
        ["-d", "postgresql://probe@db/probe", "load", "-t", "2s", "-p", "100ms", "-T", "-S", "32"],
    )

    assert result.exit_code == 0, result.output
    assert "generated=3 inserted=2 failed=1 last_id=3" in result.output
    config = seen[0]
    assert config.dsn == "postgresql://probe@db/probe"
    assert config.store_path == tmp_path / "cli.data"
    assert config.timeout == 2.0
    assert config.pause == pytest.approx(0.1)
    assert config.truncate is True
    assert config.payload_size == 32


def test_load_exits_non_zero_on_local_log_failure(monkeypatch) -> None:
    async def fake_run_load(config):
        raise LocalLogError("could not store id 7: No space left on device")

    monkeypatch.setattr(cli, "run_load", fake_run_load)

    result = runner.invoke(cli.app, ["load"])

    assert result.exit_code == 1


def test_compare_prints_missing_stamps_as_json(monkeypatch, stamp_factory) -> None:
    seen = []

    async def fake_run_compare(config):
        seen.append(config)
        return ReconcileResult(missing=[stamp_factory(5), stamp_factory(3)], loaded=5)

    monkeypatch.setattr(cli, "run_compare", fake_run_compare)

    result = runner.invoke(cli.app, ["compare", "--no-load", "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["missing_count"] == 2
    assert [entry["id"] for entry in payload["missing"]] == [5, 3]
    assert seen[0].no_load is True


def test_compare_exits_non_zero_on_remote_failure(monkeypatch) -> None:
    async def fake_run_compare(config):
        raise RemoteStoreError("could not connect: connection refused")

    monkeypatch.setattr(cli, "run_compare", fake_run_compare)

    result = runner.invoke(cli.app, ["compare"])

    assert result.exit_code == 1


def test_init_exits_non_zero_when_database_is_unreachable(monkeypatch) -> None:
    async def fake_init_schema(config):
        raise RemoteStoreError("could not connect: connection refused")

    monkeypatch.setattr(cli, "init_schema", fake_init_schema)

    result = runner.invoke(cli.app, ["init", "--timeout", "1s"])

    assert result.exit_code == 1


def test_info_shows_store_path(tmp_path) -> None:
    result = runner.invoke(cli.app, ["--store", str(tmp_path / "other.data"), "info"])

    assert result.exit_code == 0
    assert "other.data" in result.output


def test_invalid_environment_setting_exits_with_usage_error(monkeypatch) -> None:
    monkeypatch.setenv("DB_PORT", "abc")
    called = []
    monkeypatch.setattr(cli, "run_load", lambda config: called.append(config))

    result = runner.invoke(cli.app, ["load"])

    assert result.exit_code == 2
    assert called == []
