"""Mod 数据模型

数据类:
- ModRelease: Mod Portal 返回的单个发布版本
- TrackedMod: 一次会话中被跟踪的 mod 状态
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from modsync.core.exceptions import ValidationError

MOD_LIST_FILE = "mod-list.json"

# 游戏本体自带的 mod，不在 Mod Portal 上查询，也不跟踪（区分大小写）
BUILTIN_MODS = frozenset(("base", "core", "space-age", "quality", "elevated-rails"))


def is_builtin_mod(name: str) -> bool:
    return name in BUILTIN_MODS


@dataclass
class ModRelease:
    """单个发布版本"""

    download_url: str
    file_name: str
    version: str
    factorio_version: str = ""   # 要求的游戏版本，如 "2.0"
    dependencies: list[str] = field(default_factory=list)
    sha1: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModRelease:
        """从 /api/mods/{name}/full 的 releases 条目构造

        参数:
            data: releases 中的一个条目，依赖和游戏版本位于 info_json 下

        返回:
            ModRelease: 字段均为字符串的发布版本

        异常:
            ValidationError: 条目或 info_json 不是对象，字段类型不是字符串，
                或 dependencies 不是字符串列表
        """
        if not isinstance(data, dict):
            raise ValidationError(f"发布条目不是对象: {data!r}")
        info = data.get("info_json") or {}
        if not isinstance(info, dict):
            raise ValidationError(f"info_json 不是对象: {info!r}")
        deps = info.get("dependencies") or []
        if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
            raise ValidationError(f"dependencies 必须是字符串列表: {deps!r}")
        return cls(
            download_url=_str_field(data, "download_url"),
            file_name=_str_field(data, "file_name"),
            version=_str_field(data, "version"),
            factorio_version=_str_field(info, "factorio_version"),
            dependencies=list(deps),
            sha1=_str_field(data, "sha1"),
        )


def _str_field(data: dict[str, Any], key: str) -> str:
    """取字符串字段，缺失为 ""，其他类型报错"""
    value = data.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} 必须是字符串，实际为 {type(value).__name__}: {value!r}")
    return value


@dataclass
class TrackedMod:
    """被跟踪的 mod

    同一时刻只由处理它的那一个 worker 修改，无需加锁。
    """

    name: str
    enabled: bool = True
    title: str = ""
    installed: bool = False
    version: str = ""            # 本地已安装版本
    latest: ModRelease | None = None
    deprecated: bool = False

    def __post_init__(self) -> None:
        # 元数据返回前先用名字占位
        if not self.title:
            self.title = self.name

    @property
    def is_current(self) -> bool:
        """已安装版本与最新兼容版本一致"""
        return (
            self.installed
            and self.latest is not None
            and self.version == self.latest.version
        )
