"""factorio.com 凭据加载

优先级（高到低）:
  1. 命令行显式传入
  2. server-settings.json 的 username / token
  3. player-data.json 的 service-username / service-token

未指定配置文件路径时，在 mods 目录的上级目录中自动查找。
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from modsync.core.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class Credentials:
    username: str
    token: str


def discover_paths(mods_dir: str | Path) -> tuple[str, str]:
    """在 mods 目录的上级目录中查找 (server-settings.json, player-data.json)"""
    base = Path(mods_dir).resolve().parent
    settings = ""
    for candidate in (base / "data" / "server-settings.json", base / "server-settings.json"):
        if candidate.is_file():
            settings = str(candidate)
            break
    data = base / "player-data.json"
    return settings, str(data) if data.is_file() else ""


def _load_json(path: str) -> dict[str, Any] | None:
    """读取配置文件；不可读或不是 JSON 对象时记警告并返回 None"""
    if not path:
        return None
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("解析 %s 失败: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("%s 内容不是 JSON 对象", path)
        return None
    return data


def load_credentials(
    username: str = "",
    token: str = "",
    settings_path: str = "",
    data_path: str = "",
    mods_dir: str | Path = "",
) -> Credentials:
    """按优先级合并凭据

    Raises:
        ConfigError: 所有来源都没有提供完整的用户名和 token
    """
    if username and token:
        return Credentials(username, token)

    if mods_dir and not (settings_path and data_path):
        found_settings, found_data = discover_paths(mods_dir)
        settings_path = settings_path or found_settings
        data_path = data_path or found_data

    settings = _load_json(settings_path) or {}
    player = _load_json(data_path) or {}

    username = username or settings.get("username") or player.get("service-username") or ""
    token = token or settings.get("token") or player.get("service-token") or ""

    if not username or not token:
        sources = " 和 ".join(p for p in (settings_path, data_path) if p) or "未找到默认配置文件"
        raise ConfigError(f"命令行参数和配置文件中都没有用户名或 token ({sources})")
    return Credentials(username, token)
