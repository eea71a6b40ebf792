"""
Configuration module for loading bridge settings.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml


# 默认配置文件位于包根目录（lifeguardbridge/config.yaml）
CONFIG_DIR = Path(__file__).parent
SETTINGS_PATH = CONFIG_DIR.parent / "config.yaml"
DEFAULT_RELAY_DATABASE_URL = "sqlite:///./lifeguardbridge/relay.db"


_settings_cache: Optional[dict] = None


def get_settings_path() -> Path:
    """
    返回当前生效的配置文件路径。

    LIFEGUARD_BRIDGE_CONFIG 环境变量优先，便于本地切换到测试环境。
    """
    override = (os.getenv("LIFEGUARD_BRIDGE_CONFIG") or "").strip()
    if override:
        return Path(override).expanduser()
    return SETTINGS_PATH


def load_settings(force_reload: bool = False) -> dict:
    """
    Load bridge settings from YAML file.
    Caches the result for performance.

    Returns:
        dict: Settings data (empty dict when missing or malformed)
    """
    global _settings_cache

    if _settings_cache is not None and not force_reload:
        return _settings_cache

    path = get_settings_path()
    if not path.exists():
        print(f"⚠️ Settings not found: {path}")
        _settings_cache = {}
        return _settings_cache

    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        print(f"❌ Failed to load settings: {e}")
        loaded = {}
    _settings_cache = loaded if isinstance(loaded, dict) else {}
    return _settings_cache


def get_section(name: str) -> dict[str, Any]:
    """读取某个配置段；缺失或类型不对时返回空 dict。"""
    section = load_settings().get(name)
    return section if isinstance(section, dict) else {}


def get_relay_database_url() -> str:
    """
    Relay 共享存储的数据库地址。

    Returns:
        str: LIFEGUARD_RELAY_DB_URL > relay.database_url > 默认 sqlite 文件
    """
    env_url = (os.getenv("LIFEGUARD_RELAY_DB_URL") or "").strip()
    if env_url:
        return env_url
    return str(get_section("relay").get("database_url") or DEFAULT_RELAY_DATABASE_URL)
