"""Mod 下载流水线

职责:
- 判断每个 mod 是否需要下载（未安装 / 版本不同 / SHA-1 不符）
- 有界并发下载，边下载边计算 SHA-1，校验通过后原子替换
- 全部下载结束后顺序清理旧版本文件
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import os
import re
import tempfile
import threading
import time
import urllib.error
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import IO, Any

from modsync.core.exceptions import DownloadError, ModSyncError, PruneError
from modsync.core.mods.models import ModRelease, TrackedMod
from modsync.utils.net import build_download_url, validate_url_scheme

logger = logging.getLogger(__name__)


def _sha1() -> Any:
    # Mod Portal 只提供 SHA-1
    return hashlib.sha1()  # nosec B324


def file_sha1(path: Path, chunk_size: int = 64 * 1024) -> str:
    h = _sha1()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_sha1(path: Path, expected: str) -> bool:
    """文件存在且 SHA-1 与 expected 一致"""
    try:
        actual = file_sha1(path)
    except OSError:
        return False
    return actual == expected.lower()


def artifact_path(mods_dir: Path, release: ModRelease) -> Path:
    """发布文件在 mods 目录中的路径，只取文件名部分以防路径穿越"""
    safe_name = os.path.basename(os.path.normpath(release.file_name))
    if not safe_name or safe_name in (".", ".."):
        raise DownloadError(f"无效的文件名: {release.file_name!r}")
    return mods_dir / safe_name


def prune_old(mods_dir: Path, mod: TrackedMod) -> list[str]:
    """删除该 mod 除最新版本以外的所有版本文件，返回被删除的文件名

    最新版本文件不存在时什么都不做。
    """
    if mod.latest is None:
        return []
    latest_path = artifact_path(mods_dir, mod.latest)
    if not latest_path.is_file():
        logger.debug("最新版本文件不存在，跳过清理: %s", latest_path.name)
        return []

    pattern = re.compile(rf"^{re.escape(mod.name)}_(\d+\.\d+\.\d+)\.[A-Za-z0-9]+$")
    removed: list[str] = []
    for f in sorted(mods_dir.iterdir()):
        if not f.is_file() or f == latest_path:
            continue
        m = pattern.match(f.name)
        if m is None or m.group(1) == mod.latest.version:
            continue
        try:
            f.unlink()
        except OSError as e:
            raise PruneError(f"删除 {f.name} 失败: {e}") from e
        logger.info("已删除旧版本: %s", f.name)
        removed.append(f.name)
    return removed


class DownloadPipeline:
    """有界并发下载器"""

    def __init__(
        self,
        mods_dir: str | Path,
        username: str,
        token: str,
        portal_url: str = "",
        max_workers: int | None = None,
        timeout: float | None = None,
        chunk_size: int | None = None,
    ) -> None:
        from modsync.core.config import get_config
        cfg = get_config()
        self.mods_dir = Path(mods_dir)
        self.username = username
        self.token = token
        self.portal_url = (portal_url or cfg.portal_url).rstrip("/")
        self.max_workers = max(1, cfg.download_workers if max_workers is None else max_workers)
        self.timeout = cfg.download_timeout if timeout is None else timeout
        self.chunk_size = chunk_size or cfg.chunk_size
        validate_url_scheme(self.portal_url, context="portal_url")

        self._lock = threading.Lock()
        self._errors: list[ModSyncError] = []
        self._updated = 0

    # ------------------------------------------------------------------
    # 单个 mod
    # ------------------------------------------------------------------

    def needs_download(self, mod: TrackedMod) -> bool:
        latest = mod.latest
        if latest is None:
            return False
        if not mod.installed or mod.version != latest.version:
            return True
        target = artifact_path(self.mods_dir, latest)
        if verify_sha1(target, latest.sha1):
            logger.info("校验通过: %s (%s)", mod.title, mod.version)
            return False
        logger.warning("校验和不符，重新下载: %s (%s)", mod.title, mod.version)
        return True

    def download(self, mod: TrackedMod) -> None:
        """下载 mod 的最新发布到 mods 目录

        先写同目录临时文件，SHA-1 校验通过后才替换目标文件；
        任何失败都会删除临时文件，旧版本文件保持不动。

        Raises:
            DownloadError: 网络、写入或校验失败
        """
        latest = mod.latest
        if latest is None:
            raise DownloadError(f"{mod.name} 没有可下载的发布", mod=mod.name)
        target = artifact_path(self.mods_dir, latest)
        url = build_download_url(self.portal_url, latest.download_url, self.username, self.token)

        logger.info("下载: %s (%s)", mod.title, latest.version)
        try:
            fd, tmp = tempfile.mkstemp(dir=str(self.mods_dir), suffix=".tmp")
        except OSError as e:
            raise DownloadError(f"创建临时文件失败: {e}", mod=mod.name) from e
        try:
            with os.fdopen(fd, "wb") as out:
                digest = self._stream(url, out, mod.name)
            if digest != latest.sha1.lower():
                raise DownloadError(
                    f"SHA-1 校验失败 {target.name}: 期望 {latest.sha1}, 实际 {digest}",
                    mod=mod.name,
                )
            os.replace(tmp, str(target))
        except OSError as e:
            _remove_quietly(tmp)
            raise DownloadError(f"写入 {target.name} 失败: {e}", mod=mod.name) from e
        except Exception:
            _remove_quietly(tmp)
            raise

        mod.installed = True
        mod.version = latest.version
        logger.info("已下载: %s -> %s", mod.title, target.name)

    def _stream(self, url: str, out: IO[bytes], name: str) -> str:
        """把响应体写入 out，同时计算 SHA-1，超过总时限则失败"""
        deadline = time.monotonic() + self.timeout
        h = _sha1()
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:  # nosec B310
                if resp.status != 200:
                    raise DownloadError(f"下载返回状态码 {resp.status}", mod=name)
                for chunk in iter(lambda: resp.read(self.chunk_size), b""):
                    if time.monotonic() > deadline:
                        raise DownloadError(f"下载超时（{self.timeout}秒）", mod=name)
                    out.write(chunk)
                    h.update(chunk)
        except urllib.error.HTTPError as e:
            raise DownloadError(f"下载返回状态码 {e.code}", mod=name) from e
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            raise DownloadError(f"下载失败: {e}", mod=name) from e
        return h.hexdigest()

    def _process(self, mod: TrackedMod) -> None:
        """worker 入口：只修改自己负责的这一个 mod"""
        if mod.latest is None:
            if mod.enabled:
                self._record(DownloadError(f"{mod.name} 缺少元数据或兼容的发布", mod=mod.name))
            return
        try:
            if not self.needs_download(mod):
                return
            self.download(mod)
        except DownloadError as e:
            logger.error("下载失败: %s - %s", mod.name, e, extra={"mod": mod.name})
            self._record(e)
            return
        except Exception as e:
            # 未预料的异常也只算这一个 mod 失败，不能中断整批
            logger.exception("下载 %s 时出现未预期的错误", mod.name, extra={"mod": mod.name})
            self._record(DownloadError(f"下载 {mod.name} 失败: {e!r}", mod=mod.name))
            return
        with self._lock:
            self._updated += 1

    def _record(self, err: ModSyncError) -> None:
        with self._lock:
            self._errors.append(err)

    # ------------------------------------------------------------------
    # 批量
    # ------------------------------------------------------------------

    def update_all(self, mods: dict[str, TrackedMod]) -> tuple[int, list[ModSyncError]]:
        """下载所有需要更新的 mod，然后清理旧版本

        最多 max_workers 个下载同时进行；单个 mod 失败只记入错误列表，
        不影响其他 mod。所有下载结束后才顺序清理旧版本并返回。

        参数:
            mods: 工作集，下载成功的 mod 会被更新 installed / version

        返回:
            tuple[int, list[ModSyncError]]: (更新数量, 累积的 DownloadError / PruneError)

        示例:
            >>> pipeline = DownloadPipeline("/srv/factorio/mods", "user", "token")
            >>> updated, errors = pipeline.update_all(mods)
        """
        self._errors = []
        self._updated = 0
        self.mods_dir.mkdir(parents=True, exist_ok=True)

        ordered = sorted(mods.values(), key=lambda m: m.title)
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._process, m) for m in ordered]
            for future in futures:
                future.result()

        for mod in ordered:
            try:
                prune_old(self.mods_dir, mod)
            except ModSyncError as e:
                logger.error("清理旧版本失败: %s - %s", mod.name, e)
                self._errors.append(PruneError(f"清理 {mod.name} 旧版本失败: {e}"))
            except OSError as e:
                logger.error("清理旧版本失败: %s - %s", mod.name, e)
                self._errors.append(PruneError(f"读取 mods 目录失败: {e}"))

        logger.info("下载汇总: %d 个已更新, %d 个错误", self._updated, len(self._errors))
        return self._updated, list(self._errors)


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("删除临时文件失败: %s - %s", path, e)
