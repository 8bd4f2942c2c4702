import asyncio

import discord
import pytest

from tickers import app
from tickers.config import MIN_UPDATE_INTERVAL, ConfigError, Settings
from tickers.config import load_settings as real_load_settings
from tickers.readiness import ReadinessGate
from tickers.scheduler import UpdateScheduler

from conftest import FakeFeed, make_registry, make_snapshot


def _quiet(monkeypatch):
    monkeypatch.setattr(app, "setup_logging", lambda *a, **k: None)
    monkeypatch.setattr(app.signal, "signal", lambda *a, **k: None)


def test_parse_args():
    args = app.parse_args(["--env-file", "prod.env", "--log-level", "debug", "--interval", "60"])
    assert args.env_file == "prod.env"
    assert args.log_level == "DEBUG"
    assert args.interval == 60.0


def test_main_exits_on_config_error(monkeypatch):
    _quiet(monkeypatch)

    def broken(env_file=None):
        raise ConfigError("Missing bot token(s): ETH_CLIENT")

    monkeypatch.setattr(app, "load_settings", broken)
    assert app.main([]) == 1


def test_main_applies_cli_overrides(monkeypatch):
    _quiet(monkeypatch)
    seen = {}
    monkeypatch.setattr(
        app, "load_settings", lambda env_file=None: Settings(tokens={"atom": "a", "btc": "b", "eth": "e"})
    )

    async def fake_run(settings):
        seen["settings"] = settings
        return 0

    monkeypatch.setattr(app, "run", fake_run)
    assert app.main(["--interval", "45", "--log-level", "warning"]) == 0
    assert seen["settings"].update_interval == 45.0
    assert seen["settings"].log_level == "WARNING"


def _fake_scheduler(registry):
    gate = ReadinessGate(registry)
    gate.attach_all()
    return UpdateScheduler(registry, gate, FakeFeed([make_snapshot()]), ready_poll_interval=0.005)


def test_run_returns_1_on_login_failure(monkeypatch):
    _quiet(monkeypatch)
    registry = make_registry(ready=False)
    registry.entries[0].handle.client.login_error = discord.LoginFailure("bad token")
    monkeypatch.setattr(app, "build_scheduler", lambda settings: _fake_scheduler(registry))

    assert asyncio.run(app.run(Settings(tokens={}))) == 1
    assert all(entry.handle.client.closed for entry in registry)


def test_run_returns_0_after_stop(monkeypatch):
    _quiet(monkeypatch)
    registry = make_registry(ready=False)
    holder = {}

    def build(settings):
        holder["scheduler"] = _fake_scheduler(registry)
        return holder["scheduler"]

    monkeypatch.setattr(app, "build_scheduler", build)

    async def scenario():
        task = asyncio.create_task(app.run(Settings(tokens={})))
        for _ in range(200):
            scheduler = holder.get("scheduler")
            if scheduler is not None and scheduler.cycles_run >= 1:
                break
            await asyncio.sleep(0.01)
        holder["scheduler"].stop()
        return await task

    assert asyncio.run(scenario()) == 0
    assert registry.entries[2].handle.client.member.nick == "Ethereum $3.20k"


def _capture_settings(monkeypatch, env=None):
    seen = {}
    tokens = {"ATOM_CLIENT": "a", "BITCOIN_CLIENT": "b", "ETH_CLIENT": "e"}
    monkeypatch.setattr(
        app, "load_settings", lambda env_file=None: real_load_settings(env=dict(tokens, **(env or {})))
    )

    async def fake_run(settings):
        seen["settings"] = settings
        return 0

    monkeypatch.setattr(app, "run", fake_run)
    return seen


@pytest.mark.parametrize("interval", ["0", "-5", "2.5"])
def test_cli_interval_respects_floor(monkeypatch, interval):
    _quiet(monkeypatch)
    seen = _capture_settings(monkeypatch)
    assert app.main(["--interval", interval]) == 0
    assert seen["settings"].update_interval == MIN_UPDATE_INTERVAL


def test_cli_rejects_unknown_log_level():
    with pytest.raises(SystemExit) as exc:
        app.parse_args(["--log-level", "verbose"])
    assert exc.value.code == 2
    assert app.parse_args(["--log-level", "debug"]).log_level == "DEBUG"


def test_unknown_log_level_in_env_exits_1(monkeypatch):
    _quiet(monkeypatch)
    seen = _capture_settings(monkeypatch, env={"TICKER_LOG_LEVEL": "verbose"})
    assert app.main([]) == 1
    assert "settings" not in seen
