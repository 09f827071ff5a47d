"""Mod 解析与下载引擎

模块划分:
- models.py: 数据模型
- version.py: 游戏版本兼容判断
- depspec.py: 依赖声明解析
- inventory.py: 本地清单扫描
- portal.py: Mod Portal 元数据客户端
- resolver.py: 依赖闭包解析
- fetcher.py: 下载、校验与旧版本清理
- manifest.py: mod-list.json 持久化
- credentials.py / probe.py: 凭据与游戏版本
"""

from modsync.core.mods.fetcher import DownloadPipeline, prune_old, verify_sha1
from modsync.core.mods.inventory import scan
from modsync.core.mods.manifest import persist
from modsync.core.mods.models import ModRelease, TrackedMod
from modsync.core.mods.portal import PortalClient
from modsync.core.mods.resolver import MetadataResolver
from modsync.core.mods.version import is_compatible

__all__ = [
    "DownloadPipeline",
    "MetadataResolver",
    "ModRelease",
    "PortalClient",
    "TrackedMod",
    "is_compatible",
    "persist",
    "prune_old",
    "scan",
    "verify_sha1",
]
