from __future__ import annotations

import json

from lifeguardbridge import config
from lifeguardbridge.core import debug_probe


def test_load_settings_reads_override_path_and_caches(monkeypatch, tmp_path):
    settings_file = tmp_path / "bridge.yaml"
    settings_file.write_text(
        "relay:\n  validity_ms: 1000\nsource:\n  host: jira.example.com\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("LIFEGUARD_BRIDGE_CONFIG", str(settings_file))
    monkeypatch.setattr(config, "_settings_cache", None)

    settings = config.load_settings()
    assert settings["relay"]["validity_ms"] == 1000
    assert config.get_section("source") == {"host": "jira.example.com"}

    settings_file.write_text("relay:\n  validity_ms: 2000\n", encoding="utf-8")
    assert config.load_settings()["relay"]["validity_ms"] == 1000
    assert config.load_settings(force_reload=True)["relay"]["validity_ms"] == 2000


def test_missing_or_malformed_settings_yield_empty_dict(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "_settings_cache", None)
    monkeypatch.setenv("LIFEGUARD_BRIDGE_CONFIG", str(tmp_path / "absent.yaml"))
    assert config.load_settings(force_reload=True) == {}

    broken = tmp_path / "broken.yaml"
    broken.write_text("relay: [unclosed\n", encoding="utf-8")
    monkeypatch.setenv("LIFEGUARD_BRIDGE_CONFIG", str(broken))
    assert config.load_settings(force_reload=True) == {}

    scalar = tmp_path / "scalar.yaml"
    scalar.write_text("just a string\n", encoding="utf-8")
    monkeypatch.setenv("LIFEGUARD_BRIDGE_CONFIG", str(scalar))
    assert config.load_settings(force_reload=True) == {}
    assert config.get_section("relay") == {}


def test_get_section_ignores_non_mapping_sections(monkeypatch):
    monkeypatch.setattr(config, "_settings_cache", {"relay": ["not", "a", "dict"]})
    assert config.get_section("relay") == {}
    assert config.get_section("missing") == {}


def test_relay_database_url_precedence(monkeypatch):
    monkeypatch.setattr(
        config, "_settings_cache", {"relay": {"database_url": "sqlite:///./from-yaml.db"}}
    )
    monkeypatch.delenv("LIFEGUARD_RELAY_DB_URL", raising=False)
    assert config.get_relay_database_url() == "sqlite:///./from-yaml.db"

    monkeypatch.setenv("LIFEGUARD_RELAY_DB_URL", "postgresql://relay@db/relay")
    assert config.get_relay_database_url() == "postgresql://relay@db/relay"

    monkeypatch.delenv("LIFEGUARD_RELAY_DB_URL")
    monkeypatch.setattr(config, "_settings_cache", {})
    assert config.get_relay_database_url() == config.DEFAULT_RELAY_DATABASE_URL


def test_bundled_settings_file_has_expected_sections(monkeypatch):
    monkeypatch.delenv("LIFEGUARD_BRIDGE_CONFIG", raising=False)
    monkeypatch.setattr(config, "_settings_cache", None)
    settings = config.load_settings()
    for name in ("source", "destination", "relay", "browser", "runner", "debug"):
        assert isinstance(settings.get(name), dict), name
    assert settings["relay"]["validity_ms"] == 300000
    assert settings["source"]["max_attempts"] == 3


def test_debug_trace_disabled_writes_nothing(monkeypatch, tmp_path):
    trace = tmp_path / "trace.ndjson"
    monkeypatch.setattr(
        debug_probe,
        "get_section",
        lambda name: {"trace_enabled": False, "trace_path": str(trace)},
    )
    debug_probe.append_debug_log(location="x", message="m", data={})
    assert not trace.exists()


def test_debug_trace_appends_ndjson(monkeypatch, tmp_path):
    trace = tmp_path / "logs" / "trace.ndjson"
    monkeypatch.setattr(
        debug_probe,
        "get_section",
        lambda name: {"trace_enabled": True, "trace_path": str(trace)},
    )
    debug_probe.append_debug_log(
        location="launcher.py:classified", message="tier urls resolved", data={"a": 1}
    )
    debug_probe.append_debug_log(location="b", message="m2", data={}, run_id="fill")

    lines = trace.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["location"] == "launcher.py:classified"
    assert first["data"] == {"a": 1}
    assert first["runId"] == "bridge"
    assert json.loads(lines[1])["runId"] == "fill"


def test_console_log_format(capsys):
    debug_probe.console_log("hello", "warn")
    assert capsys.readouterr().out.strip() == "[Lifeguard] [WARN] hello"
