"""mod-list.json 持久化"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path

from modsync.core.exceptions import PersistenceError
from modsync.core.mods.models import MOD_LIST_FILE, TrackedMod
from modsync.utils.fileio import atomic_write

logger = logging.getLogger(__name__)

BACKUP_TIME_FORMAT = "%Y-%m-%d_%H%M.%S"


def render_mod_list(mods: dict[str, TrackedMod]) -> str:
    """序列化为 {"mods": [{name, enabled}]}，按名字排序"""
    entries = [
        {"name": name, "enabled": mods[name].enabled}
        for name in sorted(mods)
    ]
    return json.dumps({"mods": entries}, indent=2, ensure_ascii=False) + "\n"


def backup_mod_list(mods_dir: Path, now: datetime | None = None) -> Path | None:
    """把现有 mod-list.json 重命名为带时间戳的备份，失败只记警告"""
    path = mods_dir / MOD_LIST_FILE
    stamp = (now or datetime.now()).strftime(BACKUP_TIME_FORMAT)
    backup = mods_dir / f"mod-list.{stamp}.json"
    try:
        os.rename(path, backup)
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("备份 %s 失败: %s", path, e)
        return None
    logger.info("已备份: %s -> %s", path.name, backup.name)
    return backup


def persist(mods: dict[str, TrackedMod], mods_dir: str | Path) -> Path:
    """原子写入 mod-list.json，返回写入路径

    已有的 mod-list.json 先重命名为带时间戳的备份（失败只记警告），
    新内容写入同目录临时文件后再替换，读者不会看到写了一半的文件。

    参数:
        mods: 工作集，包括本次发现的传递依赖
        mods_dir: mods 目录

    返回:
        Path: mod-list.json 的路径

    异常:
        PersistenceError: 写入失败（已完成的下载不回滚）

    示例:
        >>> persist({"helmod": TrackedMod(name="helmod")}, "/srv/factorio/mods")
        PosixPath('/srv/factorio/mods/mod-list.json')
    """
    mods_dir = Path(mods_dir)
    path = mods_dir / MOD_LIST_FILE
    content = render_mod_list(mods)
    backup_mod_list(mods_dir)
    try:
        atomic_write(path, content)
    except OSError as e:
        raise PersistenceError(f"写入 {path} 失败: {e}") from e
    logger.info("已保存 %s (%d 个 mod)", path, len(mods))
    return path
