"""本地 mod 清单扫描

职责:
- 读取 mod-list.json，得到被跟踪 mod 及其启用状态
- 扫描 mods 目录中的 <name>_<x.y.z>.<ext> 文件，标记已安装版本
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from modsync.core.exceptions import ConfigError
from modsync.core.mods.models import MOD_LIST_FILE, TrackedMod, is_builtin_mod
from modsync.core.mods.version import parse_version

logger = logging.getLogger(__name__)

ARTIFACT_RE = re.compile(r"^(?P<name>.+)_(?P<version>\d+\.\d+\.\d+)\.(?P<ext>[A-Za-z0-9]+)$")


def parse_artifact_name(file_name: str) -> tuple[str, str] | None:
    """把 "helmod_2.2.12.zip" 解析为 ("helmod", "2.2.12")，不匹配返回 None"""
    m = ARTIFACT_RE.match(file_name)
    if m is None:
        return None
    return m.group("name"), m.group("version")


def read_mod_list(mods_dir: Path) -> list[tuple[str, bool]]:
    """读取 mod-list.json，返回 [(name, enabled), ...]

    Raises:
        ConfigError: 文件不可读、不是 JSON 或结构不对
    """
    path = mods_dir / MOD_LIST_FILE
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"读取 {path} 失败: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"解析 {path} 失败: {e}") from e

    entries = data.get("mods") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ConfigError(f"{path} 缺少 'mods' 列表")

    result: list[tuple[str, bool]] = []
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            raise ConfigError(f"{path} 中存在无效条目: {entry!r}")
        enabled = entry.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigError(f"{path} 中 {entry['name']} 的 enabled 必须是 true/false: {enabled!r}")
        result.append((entry["name"], enabled))
    return result


def scan(mods_dir: str | Path) -> dict[str, TrackedMod]:
    """构建初始工作集

    内置 mod 直接丢弃；目录中不匹配命名规则的文件被忽略。
    同一 mod 有多个版本文件时记录最高版本。

    参数:
        mods_dir: mods 目录，其中必须有 mod-list.json

    返回:
        dict[str, TrackedMod]: 以 mod 名为键的工作集，已标记 installed / version

    异常:
        ConfigError: mod-list.json 不可读、不是 JSON 或结构无效

    示例:
        >>> mods = scan("/srv/factorio/mods")
        >>> mods["helmod"].version
        '2.2.12'
    """
    mods_dir = Path(mods_dir)
    mods: dict[str, TrackedMod] = {}
    for name, enabled in read_mod_list(mods_dir):
        if is_builtin_mod(name):
            continue
        mods[name] = TrackedMod(name=name, enabled=enabled)

    try:
        files = sorted(mods_dir.iterdir())
    except OSError as e:
        logger.warning("无法列出 mods 目录 %s: %s", mods_dir, e)
        files = []

    for f in files:
        if not f.is_file():
            continue
        parsed = parse_artifact_name(f.name)
        if parsed is None:
            continue
        name, version = parsed
        mod = mods.get(name)
        if mod is None:
            continue
        # 同一 mod 存在多个版本文件时记录最高版本
        if mod.installed and parse_version(mod.version) >= parse_version(version):
            continue
        mod.installed = True
        mod.version = version

    logger.info(
        "已加载 %d 个 mod（已安装 %d 个）",
        len(mods), sum(1 for m in mods.values() if m.installed),
    )
    return mods
