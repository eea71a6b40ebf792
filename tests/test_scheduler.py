from __future__ import annotations

import pytest
from playwright.sync_api import Error as PlaywrightError
from sqlalchemy.exc import OperationalError

from lifeguardbridge.core import scheduler as scheduler_module
from lifeguardbridge.core.launcher import LaunchResult
from lifeguardbridge.core.relay import HandoffRelay, MemoryKeyValueStore, RelayRecord
from lifeguardbridge.core.scheduler import BridgeRunner, RunnerConfig
from lifeguardbridge.core.target_filler import FillOutcome

JIRA_TICKET = "https://silkroadtech.atlassian.net/browse/OPS-42"
LIFEGUARD = "https://lifeguard.silkroad.com/"


class _FakePage:
    def __init__(self, url: str):
        self.url = url
        self.waits: list[int] = []

    def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)


def _runner(logs: list | None = None) -> BridgeRunner:
    sink = logs if logs is not None else []
    return BridgeRunner(
        config=RunnerConfig(),
        log_fn=lambda msg, level="info": sink.append((msg, level)),
    )


def _memory_relay_factory(page, config=None, log_fn=None) -> HandoffRelay:
    return HandoffRelay(MemoryKeyValueStore(), clock=lambda: 1)


def test_request_handoff_queues_and_rejects_unknown_action():
    runner = _runner()
    runner.request_handoff("prod")
    assert runner.status()["pending_commands"] == 1
    assert runner.status()["running"] is False

    with pytest.raises(ValueError):
        runner.request_handoff("qa")


def test_handoff_command_runs_launcher_and_records_history(monkeypatch):
    calls: list[tuple] = []

    def _fake_open(page, action, relay, *, open_destination, extractor_config, log_fn):
        calls.append((page, action))
        return LaunchResult(
            success=True,
            action=action,
            ticket_id="OPS-42",
            target_url="https://acme.example.com/",
            hostname="acme.example.com",
        )

    monkeypatch.setattr(scheduler_module, "create_relay", _memory_relay_factory)
    monkeypatch.setattr(scheduler_module, "open_lifeguard_for_tier", _fake_open)

    runner = _runner()
    page = _FakePage(JIRA_TICKET)
    runner._process_command("handoff", "prod", page)

    assert calls == [(page, "prod")]
    entry = runner.history[-1]
    assert entry["kind"] == "handoff"
    assert entry["success"] is True
    assert entry["hostname"] == "acme.example.com"


def test_handoff_from_binding_with_unknown_action_is_ignored(monkeypatch):
    monkeypatch.setattr(
        scheduler_module,
        "open_lifeguard_for_tier",
        lambda *a, **k: pytest.fail("launcher should not run"),
    )
    logs: list = []
    runner = _runner(logs)
    runner._process_command("handoff", "qa", _FakePage(JIRA_TICKET))

    assert list(runner.history) == []
    assert logs[-1][1] == "warn"


def test_handoff_without_ticket_page_records_error():
    runner = _runner()
    runner._process_command("handoff", "staging", None)

    assert runner.history[-1] == {
        "kind": "handoff",
        "action": "staging",
        "success": False,
        "error": "no_ticket_page",
    }


def test_page_loaded_on_lifeguard_runs_filler(monkeypatch):
    filled: list[object] = []

    def _fake_filler(page, relay, config, log_fn):
        filled.append(page)
        return FillOutcome(
            state="done",
            reason="filled",
            record=RelayRecord("acme.example.com", "OPS-42", 1),
        )

    monkeypatch.setattr(scheduler_module, "create_relay", _memory_relay_factory)
    monkeypatch.setattr(scheduler_module, "run_target_filler", _fake_filler)

    runner = _runner()
    lifeguard_page = _FakePage(LIFEGUARD + "Home")
    runner._process_command("page_loaded", None, lifeguard_page)
    runner._process_command("page_loaded", None, _FakePage(JIRA_TICKET))

    assert filled == [lifeguard_page]
    assert runner.history[-1]["kind"] == "fill"
    assert runner.history[-1]["state"] == "done"
    assert runner.history[-1]["record"]["ticket_id"] == "OPS-42"


def _patch_panel(monkeypatch) -> tuple[list[str], dict]:
    """入口安装状态跟随当前文档：install 置 True，remove 置 False，刷新时由测试置 False。"""
    events: list[str] = []
    document = {"panel": False}

    def _install(page):
        events.append("install")
        document["panel"] = True
        return True

    def _remove(page):
        events.append("remove")
        document["panel"] = False
        return True

    monkeypatch.setattr(scheduler_module, "install_trigger_panel", _install)
    monkeypatch.setattr(scheduler_module, "remove_trigger_panel", _remove)
    monkeypatch.setattr(
        scheduler_module, "is_trigger_panel_installed", lambda page: document["panel"]
    )
    monkeypatch.setattr(
        scheduler_module,
        "force_load_lazy_content",
        lambda page, config, log_fn: events.append("force_load") or "details",
    )
    return events, document


def test_navigation_installs_panel_on_ticket_pages(monkeypatch):
    events, _document = _patch_panel(monkeypatch)

    runner = _runner()
    page = _FakePage(JIRA_TICKET)
    runner._process_command("navigated", None, page)
    assert events == ["remove", "force_load", "install"]
    assert page.waits == [2000]

    # 同一文档内的同地址导航：入口还在，不做任何事
    runner._process_command("navigated", None, page)
    assert events == ["remove", "force_load", "install"]

    # 路由切换到非工单页：移除入口但不重新安装
    page.url = "https://silkroadtech.atlassian.net/jira/your-work"
    runner._process_command("navigated", None, page)
    assert events[-1] == "remove"
    assert events.count("install") == 1

    page.url = "https://silkroadtech.atlassian.net/browse/OPS-43"
    runner._process_command("navigated", None, page)
    assert events[-1] == "install"
    assert page.waits == [2000, 1000]


def test_reload_of_same_ticket_reinstalls_panel(monkeypatch):
    events, document = _patch_panel(monkeypatch)
    runner = _runner()
    page = _FakePage(JIRA_TICKET)

    runner._process_command("navigated", None, page)
    # 刷新：地址不变，但新文档里没有入口
    document["panel"] = False
    runner._process_command("navigated", None, page)

    assert events == ["remove", "force_load", "install"] * 2
    assert page.waits == [2000, 2000]
    assert document["panel"] is True


def test_reload_of_non_ticket_page_installs_nothing(monkeypatch):
    events, _document = _patch_panel(monkeypatch)
    runner = _runner()
    page = _FakePage("https://silkroadtech.atlassian.net/jira/your-work")

    runner._process_command("navigated", None, page)
    runner._process_command("navigated", None, page)

    assert events == ["remove"]
    assert page.waits == []


def test_navigation_on_other_hosts_is_ignored(monkeypatch):
    monkeypatch.setattr(
        scheduler_module,
        "remove_trigger_panel",
        lambda page: pytest.fail("panel should not be touched"),
    )
    runner = _runner()
    page = _FakePage(LIFEGUARD)
    runner._process_command("navigated", None, page)
    assert page.waits == []


def test_page_error_in_command_is_logged_not_raised(monkeypatch):
    def _crash(*_args, **_kwargs):
        raise PlaywrightError("Target page, context or browser has been closed")

    monkeypatch.setattr(scheduler_module, "create_relay", _memory_relay_factory)
    monkeypatch.setattr(scheduler_module, "open_lifeguard_for_tier", _crash)
    logs: list = []
    runner = _runner(logs)

    runner._process_command("handoff", "prod", _FakePage(JIRA_TICKET))

    assert logs[-1][1] == "warn"
    assert list(runner.history) == []


def test_relay_store_error_in_command_is_logged_not_raised(monkeypatch):
    def _locked(*_args, **_kwargs):
        raise OperationalError("UPDATE relay_values", {}, Exception("database is locked"))

    monkeypatch.setattr(scheduler_module, "create_relay", _locked)
    logs: list = []
    runner = _runner(logs)

    runner._process_command("handoff", "prod", _FakePage(JIRA_TICKET))
    runner._process_command("page_loaded", None, _FakePage(LIFEGUARD))

    assert [level for _msg, level in logs] == ["warn", "warn"]
    assert [entry["error"] for entry in runner.history] == [
        "relay_store_error",
        "relay_store_error",
    ]
    assert runner.history[0]["kind"] == "handoff"
    assert runner.history[0]["success"] is False


def test_runner_config_from_settings(monkeypatch):
    sections = {
        "source": {"host": "jira.example.com", "start_url": "https://jira.example.com/"},
        "destination": {"host": "lg.example.com"},
        "runner": {"poll_interval_ms": "50"},
    }
    monkeypatch.setattr(scheduler_module, "get_section", lambda name: sections.get(name, {}))

    cfg = RunnerConfig.from_settings()
    assert cfg.source_host == "jira.example.com"
    assert cfg.start_url == "https://jira.example.com/"
    assert cfg.destination_host == "lg.example.com"
    assert cfg.poll_interval_ms == 50
    assert cfg.first_panel_delay_ms == 2000
