"""依赖闭包解析

按"波次"迭代求不动点:
  1. 并发拉取当前工作集中所有 mod 的元数据
  2. 从已解析的发布中找出工作集里还没有的必需依赖
  3. 没有缺失 → 稳定，结束
  4. 否则把缺失的 mod 加入工作集，只拉取这些新 mod，回到第 2 步

每一波的拉取全部结束后才计算下一波（波次屏障）。
工作集是有限的，每一波要么新增名字要么结束，所以即使依赖成环也会终止。
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from modsync.core.exceptions import MetadataError, ValidationError
from modsync.core.mods.depspec import parse_dependency
from modsync.core.mods.models import TrackedMod, is_builtin_mod
from modsync.core.mods.portal import PortalClient

logger = logging.getLogger(__name__)


def find_missing(mods: dict[str, TrackedMod]) -> list[str]:
    """找出被依赖但不在工作集中的 mod 名（已排序）"""
    missing: set[str] = set()
    for mod in list(mods.values()):
        if mod.latest is None:
            continue
        for dep_str in mod.latest.dependencies:
            try:
                dep = parse_dependency(dep_str)
            except ValidationError as e:
                logger.warning("%s: %s", mod.name, e)
                continue
            if not dep.is_required or is_builtin_mod(dep.name):
                continue
            if dep.name not in mods:
                missing.add(dep.name)
    return sorted(missing)


class MetadataResolver:
    """元数据解析器 - 拉取元数据并补全传递依赖"""

    def __init__(
        self,
        client: PortalClient,
        platform_version: str,
        max_workers: int | None = None,
    ) -> None:
        if max_workers is None:
            from modsync.core.config import get_config
            max_workers = get_config().metadata_workers
        self.client = client
        self.platform_version = platform_version
        self.max_workers = max(1, max_workers)
        self._lock = threading.Lock()
        self._errors: list[MetadataError] = []

    def _fetch(self, mod: TrackedMod) -> None:
        try:
            self.client.fetch_one(mod, self.platform_version)
        except MetadataError as e:
            logger.warning("元数据拉取失败: %s", e, extra={"mod": mod.name})
            self._record(e)
        except Exception as e:
            logger.exception("拉取 %s 元数据时出现未预期的错误", mod.name, extra={"mod": mod.name})
            self._record(MetadataError(f"拉取元数据失败: {mod.name} - {e!r}", mod=mod.name))

    def _record(self, err: MetadataError) -> None:
        with self._lock:
            self._errors.append(err)

    def fetch_wave(self, mods: list[TrackedMod]) -> None:
        """并发拉取一批 mod，全部结束后才返回"""
        if not mods:
            return
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._fetch, m) for m in mods]
            for future in futures:
                future.result()

    def resolve_all(
        self, mods: dict[str, TrackedMod],
    ) -> tuple[dict[str, TrackedMod], list[MetadataError]]:
        """解析工作集直到不再出现新的依赖

        每一波最多 max_workers 个并发请求，上一波全部结束后才计算缺失依赖。
        单个 mod 拉取失败只记入错误列表，该 mod 的 latest 保持为 None。

        参数:
            mods: 初始工作集（LocalInventory.scan 的结果），原地补充新依赖

        返回:
            tuple[dict[str, TrackedMod], list[MetadataError]]:
                (工作集, 累积的单个 mod 错误)；是否致命由调用方判断

        示例:
            >>> resolver = MetadataResolver(PortalClient(), "2.0")
            >>> mods, errors = resolver.resolve_all(inventory.scan(mods_dir))
        """
        self._errors = []
        wave = [mods[name] for name in sorted(mods)]
        wave_no = 0
        while wave:
            wave_no += 1
            logger.info("第 %d 波: 拉取 %d 个 mod 的元数据", wave_no, len(wave))
            self.fetch_wave(wave)

            missing = find_missing(mods)
            if not missing:
                break
            logger.info("发现 %d 个缺失依赖: %s", len(missing), ", ".join(missing))
            wave = []
            for name in missing:
                mods[name] = TrackedMod(name=name, enabled=True)
                wave.append(mods[name])

        with self._lock:
            errors = list(self._errors)
        logger.info("元数据解析完成: %d 个 mod, %d 个错误", len(mods), len(errors))
        return mods, errors
