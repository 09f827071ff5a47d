"""Mod 管理器

把一次会话串起来:

  凭据 → 游戏版本探测 → 本地清单扫描        （任一失败即抛出，终止启动）
  → 元数据解析（补全传递依赖）
  → 下载 + 校验 → 清理旧版本 → 写回 mod-list.json

单个 mod 的失败不会中断流程，而是累积在返回的错误列表里，
由 CLI 决定如何展示。

用法:
    from modsync.core.mod_manager import ModManager

    mm = ModManager(mods_dir="/srv/factorio/mods", bin_path="/srv/factorio/bin/x64/factorio")
    mm.resolve()
    updated, errors = mm.update()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from modsync.core.exceptions import ModSyncError, PersistenceError
from modsync.core.mods import inventory, manifest
from modsync.core.mods.credentials import load_credentials
from modsync.core.mods.fetcher import DownloadPipeline
from modsync.core.mods.models import TrackedMod
from modsync.core.mods.portal import PortalClient
from modsync.core.mods.probe import probe_factorio_version
from modsync.core.mods.resolver import MetadataResolver

logger = logging.getLogger(__name__)


@dataclass
class ModSummary:
    up_to_date: int = 0
    outdated: int = 0
    missing: int = 0
    disabled: int = 0

    @property
    def total(self) -> int:
        return self.up_to_date + self.outdated + self.missing + self.disabled

    def __str__(self) -> str:
        return (
            f"汇总: {self.up_to_date} 个最新, {self.outdated} 个过期, "
            f"{self.missing} 个缺失, {self.disabled} 个禁用 (共 {self.total} 个)"
        )


class ModManager:
    """一次解析/下载会话"""

    def __init__(
        self,
        mods_dir: str,
        bin_path: str = "",
        *,
        username: str = "",
        token: str = "",
        settings_path: str = "",
        data_path: str = "",
        factorio_version: str = "",
        portal_url: str = "",
    ) -> None:
        self.mods_dir = Path(mods_dir)
        creds = load_credentials(
            username=username, token=token,
            settings_path=settings_path, data_path=data_path,
            mods_dir=self.mods_dir,
        )
        self.username = creds.username
        self.token = creds.token
        self.factorio_version = factorio_version or probe_factorio_version(bin_path)
        self.mods: dict[str, TrackedMod] = inventory.scan(self.mods_dir)
        self.client = PortalClient(portal_url=portal_url)

    def resolve(self) -> list[ModSyncError]:
        """拉取元数据并补全传递依赖，返回单个 mod 的错误"""
        resolver = MetadataResolver(self.client, self.factorio_version)
        _, errors = resolver.resolve_all(self.mods)
        return list(errors)

    def update(self) -> tuple[int, list[ModSyncError]]:
        """下载、清理旧版本并写回 mod-list.json

        返回 (更新数量, 累积错误)；写回失败计入错误，不回滚下载。
        """
        pipeline = DownloadPipeline(
            self.mods_dir, self.username, self.token,
            portal_url=self.client.portal_url,
        )
        updated, errors = pipeline.update_all(self.mods)
        try:
            manifest.persist(self.mods, self.mods_dir)
        except PersistenceError as e:
            logger.error("%s", e)
            errors.append(e)
        return updated, errors

    def get_mods(self) -> list[TrackedMod]:
        """按标题排序的 mod 列表，供展示使用"""
        return sorted(self.mods.values(), key=lambda m: m.title)

    def updates_available(self) -> bool:
        return any(
            m.latest is not None and not m.is_current
            for m in self.mods.values()
        )

    def summarize(self) -> ModSummary:
        summary = ModSummary()
        for mod in self.mods.values():
            if not mod.enabled:
                summary.disabled += 1
            elif not mod.installed:
                summary.missing += 1
            elif not mod.is_current:
                summary.outdated += 1
            else:
                summary.up_to_date += 1
        return summary
