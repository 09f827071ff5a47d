"""文件读写工具

- atomic_write: mod-list.json 等文件的原子替换
- load_yaml: 读取 modsync.yml 配置
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Any

import yaml

from modsync.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

# 配置文件上限 1MB
MAX_CONFIG_SIZE = 1024 * 1024

# 新建文件的默认权限；mkstemp 默认 0600，服务器进程可能以其他用户读取
DEFAULT_FILE_MODE = 0o644


def _target_mode(path: Path) -> int:
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return DEFAULT_FILE_MODE


def atomic_write(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """写同目录临时文件后 os.replace 到 path

    读者只会看到旧内容或完整的新内容。已有文件的权限位会被保留。

    Raises:
        OSError: 写入、chmod 或替换失败（临时文件已删除）
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = _target_mode(path)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取 YAML 映射；文件不存在或为空时返回 {}

    Raises:
        ConfigError: 文件过大、不可读、语法错误或顶层不是映射
    """
    p = Path(path)
    try:
        size = p.stat().st_size
    except FileNotFoundError:
        logger.debug("配置文件不存在，使用默认值: %s", p)
        return {}
    if size > MAX_CONFIG_SIZE:
        raise ConfigError(f"配置文件过大: {p} ({size} 字节)")

    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"读取 {p} 失败: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"解析 {p} 失败: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{p} 顶层必须是映射，实际为 {type(data).__name__}")
    return data
