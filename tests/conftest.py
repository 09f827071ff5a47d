"""公共 fixture：伪造的 Mod Portal（patch urllib.request.urlopen）"""

from __future__ import annotations

import hashlib
import io
import json
import threading
import urllib.error
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pytest

from modsync.core.config import reset_config


class FakeResponse(io.BytesIO):
    """最小化的 HTTP 响应：支持 with / read / status"""

    def __init__(self, body: bytes, status: int = 200) -> None:
        super().__init__(body)
        self.status = status


class FakePortal:
    """按 URL path 路由的内存 Mod Portal"""

    def __init__(self) -> None:
        self.routes: dict[str, Any] = {}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    @staticmethod
    def release(
        name: str,
        version: str,
        factorio_version: str = "2.0",
        dependencies: list[str] | None = None,
        data: bytes | None = None,
        sha1: str | None = None,
    ) -> dict[str, Any]:
        body = data if data is not None else f"{name}-{version}".encode()
        return {
            "download_url": f"/download/{name}/{version}",
            "file_name": f"{name}_{version}.zip",
            "version": version,
            "sha1": sha1 or hashlib.sha1(body).hexdigest(),
            "info_json": {
                "factorio_version": factorio_version,
                "dependencies": dependencies or [],
            },
            "_body": body,
        }

    def add_mod(self, name: str, releases: list[dict[str, Any]], title: str = "",
                deprecated: bool = False) -> None:
        self.routes[f"/api/mods/{name}/full"] = {
            "title": title or name.title(),
            "deprecated": deprecated,
            "releases": [{k: v for k, v in r.items() if k != "_body"} for r in releases],
        }
        for r in releases:
            self.routes.setdefault(r["download_url"], r["_body"])

    def metadata_calls(self) -> list[str]:
        return [urlparse(u).path for u in self.calls if "/api/mods/" in u]

    def download_calls(self) -> list[str]:
        return [u for u in self.calls if "/download/" in u]

    def urlopen(self, url: str, timeout: float | None = None) -> FakeResponse:
        with self._lock:
            self.calls.append(url)
        route = self.routes.get(urlparse(url).path)
        if route is None:
            raise urllib.error.HTTPError(url, 404, "Not Found", None, None)  # type: ignore[arg-type]
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(url)
        if isinstance(route, (dict, list)):
            return FakeResponse(json.dumps(route).encode())
        return FakeResponse(route)

    @staticmethod
    def query(url: str) -> dict[str, list[str]]:
        return parse_qs(urlparse(url).query)


@pytest.fixture
def portal() -> Iterator[FakePortal]:
    fake = FakePortal()
    with patch("urllib.request.urlopen", side_effect=fake.urlopen):
        yield fake


@pytest.fixture(autouse=True)
def _default_config() -> Iterator[None]:
    """每个测试都从默认配置开始"""
    reset_config()
    yield
    reset_config()


def write_mod_list(mods_dir: Path, entries: list[tuple[str, bool]]) -> Path:
    mods_dir.mkdir(parents=True, exist_ok=True)
    path = mods_dir / "mod-list.json"
    path.write_text(json.dumps({
        "mods": [{"name": n, "enabled": e} for n, e in entries],
    }))
    return path


@pytest.fixture
def make_mods_dir(tmp_path: Path):
    """生成带 mod-list.json 的 mods 目录"""

    def _make(entries: list[tuple[str, bool]], files: dict[str, bytes] | None = None) -> Path:
        mods_dir = tmp_path / "mods"
        write_mod_list(mods_dir, entries)
        for name, data in (files or {}).items():
            (mods_dir / name).write_bytes(data)
        return mods_dir

    return _make
