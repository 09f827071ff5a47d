"""Mod Portal 元数据客户端

职责:
- 查询 /api/mods/{name}/full
- 在兼容当前游戏版本的发布中选出版本号最高的一个
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any
from urllib.parse import quote

from modsync.core.exceptions import MetadataError, ValidationError
from modsync.core.mods.models import ModRelease, TrackedMod
from modsync.core.mods.version import is_compatible, parse_version
from modsync.utils.net import read_capped, validate_url_scheme

logger = logging.getLogger(__name__)


def select_latest(releases: list[ModRelease], platform_version: str) -> ModRelease | None:
    """按解析后的版本号选出最高的兼容发布，不依赖接口返回顺序"""
    best: ModRelease | None = None
    best_key: tuple[int, ...] | None = None
    for rel in releases:
        if not is_compatible(platform_version, rel.factorio_version):
            continue
        key = parse_version(rel.version)
        if key is None:
            logger.debug("忽略无法解析的版本号: %s", rel.version)
            continue
        if best_key is None or key > best_key:
            best, best_key = rel, key
    return best


class PortalClient:
    """Mod Portal 只读客户端"""

    def __init__(
        self,
        portal_url: str = "",
        timeout: float | None = None,
        max_response_bytes: int | None = None,
    ) -> None:
        if not portal_url or timeout is None or max_response_bytes is None:
            from modsync.core.config import get_config
            cfg = get_config()
            portal_url = portal_url or cfg.portal_url
            timeout = cfg.metadata_timeout if timeout is None else timeout
            if max_response_bytes is None:
                max_response_bytes = cfg.max_response_bytes
        validate_url_scheme(portal_url, context="portal_url")
        self.portal_url = portal_url.rstrip("/")
        self.timeout = timeout
        self.max_response_bytes = max_response_bytes

    def metadata_url(self, name: str) -> str:
        return f"{self.portal_url}/api/mods/{quote(name, safe='')}/full"

    def get_metadata(self, name: str) -> dict[str, Any]:
        """拉取原始元数据

        Raises:
            MetadataError: 网络错误、非 200、响应过大或 JSON 无效
        """
        url = self.metadata_url(name)
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:  # nosec B310
                if resp.status != 200:
                    raise MetadataError(
                        f"Mod Portal 返回状态码 {resp.status}: {name}", mod=name,
                    )
                body = read_capped(resp, self.max_response_bytes)
        except urllib.error.HTTPError as e:
            raise MetadataError(f"Mod Portal 返回状态码 {e.code}: {name}", mod=name) from e
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            raise MetadataError(f"拉取元数据失败: {name} - {e}", mod=name) from e
        except ValueError as e:
            raise MetadataError(f"元数据过大: {name} - {e}", mod=name) from e

        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MetadataError(f"解码元数据失败: {name} - {e}", mod=name) from e
        if not isinstance(data, dict):
            raise MetadataError(f"元数据格式无效: {name}", mod=name)
        return data

    def fetch_one(self, mod: TrackedMod, platform_version: str) -> None:
        """拉取并回填单个 mod 的标题、弃用标记和最新兼容发布"""
        data = self.get_metadata(mod.name)
        raw_releases = data.get("releases") or []
        title = data.get("title") or mod.name
        try:
            if not isinstance(raw_releases, list):
                raise ValidationError(f"releases 不是列表: {type(raw_releases).__name__}")
            if not isinstance(title, str):
                raise ValidationError(f"title 必须是字符串: {title!r}")
            releases = [ModRelease.from_dict(r) for r in raw_releases]
        except ValidationError as e:
            raise MetadataError(f"元数据格式无效: {mod.name} - {e}", mod=mod.name) from e

        # 校验全部通过后才回填，失败时 mod 保持原状
        mod.title = title
        mod.deprecated = data.get("deprecated") is True
        mod.latest = select_latest(releases, platform_version)

        if mod.latest is None:
            logger.warning("%s 没有兼容游戏版本 %s 的发布", mod.name, platform_version)
        else:
            logger.debug("%s 最新兼容版本: %s", mod.name, mod.latest.version)
