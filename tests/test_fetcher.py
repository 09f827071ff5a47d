"""下载流水线测试 - 校验、原子替换、旧版本清理、并发上限"""

from __future__ import annotations

import hashlib
import http.client
import io
import threading
import time
import urllib.error
from pathlib import Path

import pytest

from modsync.core.exceptions import DownloadError, PruneError
from modsync.core.mods.fetcher import DownloadPipeline, artifact_path, prune_old, verify_sha1
from modsync.core.mods.models import ModRelease, TrackedMod


def _release(name: str, version: str, data: bytes) -> ModRelease:
    return ModRelease(
        download_url=f"/download/{name}/{version}",
        file_name=f"{name}_{version}.zip",
        version=version,
        factorio_version="2.0",
        sha1=hashlib.sha1(data).hexdigest(),
    )


def _pipeline(mods_dir: Path, **kwargs) -> DownloadPipeline:
    return DownloadPipeline(mods_dir, "user", "secret", **kwargs)


def _serve(portal, release: ModRelease, data: bytes) -> None:
    portal.routes[release.download_url] = data


class _TruncatedResponse(io.BytesIO):
    """读出部分数据后连接断开"""

    status = 200

    def read(self, size: int = -1) -> bytes:
        chunk = super().read(size)
        if chunk:
            return chunk
        raise http.client.IncompleteRead(b"", 10)


class TestVerifySha1:
    def test_identical_content_matches(self, tmp_path: Path) -> None:
        data = b"hello world"
        f = tmp_path / "test.zip"
        f.write_bytes(data)
        assert verify_sha1(f, hashlib.sha1(data).hexdigest()) is True

    def test_single_byte_mutation_fails(self, tmp_path: Path) -> None:
        data = b"hello world"
        f = tmp_path / "test.zip"
        f.write_bytes(b"hello worle")
        assert verify_sha1(f, hashlib.sha1(data).hexdigest()) is False

    def test_missing_file(self, tmp_path: Path) -> None:
        assert verify_sha1(tmp_path / "none.zip", "deadbeef") is False


class TestArtifactPath:
    def test_traversal_stripped(self, tmp_path: Path) -> None:
        rel = ModRelease(download_url="", file_name="../../etc/x_1.0.0.zip", version="1.0.0")
        assert artifact_path(tmp_path, rel) == tmp_path / "x_1.0.0.zip"

    def test_empty_rejected(self, tmp_path: Path) -> None:
        rel = ModRelease(download_url="", file_name="", version="1.0.0")
        with pytest.raises(DownloadError):
            artifact_path(tmp_path, rel)


class TestDownload:
    def test_new_install(self, tmp_path: Path, portal) -> None:
        data = b"x" * 200_000
        rel = _release("helmod", "2.2.12", data)
        _serve(portal, rel, data)
        mod = TrackedMod(name="helmod", latest=rel)

        updated, errors = _pipeline(tmp_path).update_all({"helmod": mod})
        assert (updated, errors) == (1, [])
        assert (tmp_path / "helmod_2.2.12.zip").read_bytes() == data
        assert mod.installed is True
        assert mod.version == "2.2.12"
        assert not list(tmp_path.glob("*.tmp"))

    def test_credentials_in_url(self, tmp_path: Path, portal) -> None:
        data = b"abc"
        rel = _release("a", "1.0.0", data)
        _serve(portal, rel, data)
        _pipeline(tmp_path).update_all({"a": TrackedMod(name="a", latest=rel)})

        url = portal.download_calls()[0]
        assert url.startswith("https://mods.factorio.com/download/a/1.0.0?")
        assert portal.query(url) == {"username": ["user"], "token": ["secret"]}

    def test_digest_mismatch_keeps_old_artifact(self, tmp_path: Path, portal) -> None:
        (tmp_path / "a_1.0.0.zip").write_bytes(b"old")
        rel = _release("a", "1.1.0", b"expected")
        _serve(portal, rel, b"tampered")
        mod = TrackedMod(name="a", installed=True, version="1.0.0", latest=rel)

        updated, errors = _pipeline(tmp_path).update_all({"a": mod})
        assert updated == 0
        assert len(errors) == 1
        assert isinstance(errors[0], DownloadError)
        assert "SHA-1" in str(errors[0])
        assert (tmp_path / "a_1.0.0.zip").read_bytes() == b"old"
        assert not (tmp_path / "a_1.1.0.zip").exists()
        assert not list(tmp_path.glob("*.tmp"))
        assert mod.version == "1.0.0"

    def test_http_error(self, tmp_path: Path, portal) -> None:
        rel = _release("a", "1.0.0", b"x")
        updated, errors = _pipeline(tmp_path).update_all({"a": TrackedMod(name="a", latest=rel)})
        assert updated == 0
        assert "404" in str(errors[0])
        assert errors[0].mod == "a"

    def test_network_error_cleans_temp(self, tmp_path: Path, portal) -> None:
        rel = _release("a", "1.0.0", b"x")
        portal.routes[rel.download_url] = urllib.error.URLError("reset by peer")
        _, errors = _pipeline(tmp_path).update_all({"a": TrackedMod(name="a", latest=rel)})
        assert "reset by peer" in str(errors[0])
        assert list(tmp_path.iterdir()) == []

    def test_current_and_valid_is_noop(self, tmp_path: Path, portal) -> None:
        data = b"same"
        (tmp_path / "a_1.0.0.zip").write_bytes(data)
        rel = _release("a", "1.0.0", data)
        mod = TrackedMod(name="a", installed=True, version="1.0.0", latest=rel)

        updated, errors = _pipeline(tmp_path).update_all({"a": mod})
        assert (updated, errors) == (0, [])
        assert portal.download_calls() == []

    def test_current_but_corrupt_redownloads(self, tmp_path: Path, portal) -> None:
        data = b"good"
        (tmp_path / "a_1.0.0.zip").write_bytes(b"corrupt")
        rel = _release("a", "1.0.0", data)
        _serve(portal, rel, data)
        mod = TrackedMod(name="a", installed=True, version="1.0.0", latest=rel)

        updated, errors = _pipeline(tmp_path).update_all({"a": mod})
        assert (updated, errors) == (1, [])
        assert (tmp_path / "a_1.0.0.zip").read_bytes() == data

    def test_version_differs_downloads_and_prunes(self, tmp_path: Path, portal) -> None:
        (tmp_path / "a_1.0.0.zip").write_bytes(b"old")
        data = b"new"
        rel = _release("a", "1.1.0", data)
        _serve(portal, rel, data)
        mod = TrackedMod(name="a", installed=True, version="1.0.0", latest=rel)

        updated, errors = _pipeline(tmp_path).update_all({"a": mod})
        assert (updated, errors) == (1, [])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a_1.1.0.zip"]

    def test_enabled_without_release_is_error(self, tmp_path: Path, portal) -> None:
        data = b"ok"
        rel = _release("good", "1.0.0", data)
        _serve(portal, rel, data)
        mods = {
            "broken": TrackedMod(name="broken", enabled=True),
            "off": TrackedMod(name="off", enabled=False),
            "good": TrackedMod(name="good", latest=rel),
        }
        updated, errors = _pipeline(tmp_path).update_all(mods)
        assert updated == 1
        assert [e.mod for e in errors] == ["broken"]

    def test_download_timeout(self, tmp_path: Path, portal) -> None:
        data = b"x" * 10
        rel = _release("a", "1.0.0", data)
        _serve(portal, rel, data)
        pipeline = _pipeline(tmp_path, timeout=-1)
        _, errors = pipeline.update_all({"a": TrackedMod(name="a", latest=rel)})
        assert "超时" in str(errors[0])
        assert list(tmp_path.iterdir()) == []

    def test_one_failure_does_not_cancel_siblings(self, tmp_path: Path, portal) -> None:
        mods = {}
        for i in range(6):
            name = f"m{i}"
            data = name.encode()
            rel = _release(name, "1.0.0", data)
            if i != 3:
                _serve(portal, rel, data)
            mods[name] = TrackedMod(name=name, latest=rel)

        updated, errors = _pipeline(tmp_path, max_workers=2).update_all(mods)
        assert updated == 5
        assert [e.mod for e in errors] == ["m3"]


    def test_truncated_stream_is_per_mod_error(self, tmp_path: Path, portal) -> None:
        (tmp_path / "bad_0.9.0.zip").write_bytes(b"old")
        bad = _release("bad", "1.0.0", b"x" * 11)
        portal.routes[bad.download_url] = lambda url: _TruncatedResponse(b"x")
        good_data = b"good"
        good = _release("good", "1.0.0", good_data)
        _serve(portal, good, good_data)
        mods = {
            "bad": TrackedMod(name="bad", installed=True, version="0.9.0", latest=bad),
            "good": TrackedMod(name="good", latest=good),
        }

        updated, errors = _pipeline(tmp_path).update_all(mods)
        assert updated == 1
        assert [e.mod for e in errors] == ["bad"]
        assert isinstance(errors[0], DownloadError)
        assert "IncompleteRead" in str(errors[0])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["bad_0.9.0.zip", "good_1.0.0.zip"]
        assert mods["bad"].version == "0.9.0"

    def test_unexpected_exception_is_per_mod_error(self, tmp_path: Path, portal) -> None:
        boom = _release("boom", "1.0.0", b"x")
        portal.routes[boom.download_url] = RuntimeError("unexpected")
        good_data = b"good"
        good = _release("good", "1.0.0", good_data)
        _serve(portal, good, good_data)

        updated, errors = _pipeline(tmp_path).update_all({
            "boom": TrackedMod(name="boom", latest=boom),
            "good": TrackedMod(name="good", latest=good),
        })
        assert updated == 1
        assert [e.mod for e in errors] == ["boom"]
        assert isinstance(errors[0], DownloadError)
        assert "unexpected" in str(errors[0])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["good_1.0.0.zip"]


class TestConcurrencyBound:
    def test_never_more_than_bound(self, tmp_path: Path, portal) -> None:
        bound, total = 2, 7
        active = 0
        peak = 0
        lock = threading.Lock()

        def _slow(data: bytes):
            def _respond(url: str):
                nonlocal active, peak
                with lock:
                    active += 1
                    peak = max(peak, active)
                time.sleep(0.03)
                with lock:
                    active -= 1
                resp = io.BytesIO(data)
                resp.status = 200  # type: ignore[attr-defined]
                return resp
            return _respond

        mods = {}
        for i in range(total):
            name = f"m{i}"
            data = name.encode() * 10
            rel = _release(name, "1.0.0", data)
            portal.routes[rel.download_url] = _slow(data)
            mods[name] = TrackedMod(name=name, latest=rel)

        updated, errors = _pipeline(tmp_path, max_workers=bound).update_all(mods)
        assert errors == []
        assert updated == total
        assert peak <= bound
        assert active == 0
        assert len(list(tmp_path.glob("m*_1.0.0.zip"))) == total


class TestPrune:
    def _mod(self, version: str = "2.2.12") -> TrackedMod:
        return TrackedMod(name="x", latest=_release("x", version, b""))

    def test_removes_only_other_versions(self, tmp_path: Path) -> None:
        for name in ("x_2.1.0.zip", "x_2.1.5.zip", "x_2.2.12.zip", "y_0.4.15.zip", "x_y_1.0.0.zip"):
            (tmp_path / name).write_bytes(b"")
        removed = prune_old(tmp_path, self._mod())
        assert removed == ["x_2.1.0.zip", "x_2.1.5.zip"]
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "x_2.2.12.zip", "x_y_1.0.0.zip", "y_0.4.15.zip",
        ]

    def test_noop_when_latest_absent(self, tmp_path: Path) -> None:
        for name in ("x_2.1.0.zip", "x_2.1.5.zip"):
            (tmp_path / name).write_bytes(b"")
        assert prune_old(tmp_path, self._mod()) == []
        assert sorted(p.name for p in tmp_path.iterdir()) == ["x_2.1.0.zip", "x_2.1.5.zip"]

    def test_noop_without_release(self, tmp_path: Path) -> None:
        (tmp_path / "x_2.1.0.zip").write_bytes(b"")
        assert prune_old(tmp_path, TrackedMod(name="x")) == []

    def test_name_with_regex_chars(self, tmp_path: Path) -> None:
        mod = TrackedMod(name="a.b", latest=_release("a.b", "1.0.0", b""))
        for name in ("a.b_1.0.0.zip", "a.b_0.9.0.zip", "aXb_0.9.0.zip"):
            (tmp_path / name).write_bytes(b"")
        assert prune_old(tmp_path, mod) == ["a.b_0.9.0.zip"]

    def test_unlink_failure_raises(self, tmp_path: Path, monkeypatch) -> None:
        for name in ("x_2.1.0.zip", "x_2.2.12.zip"):
            (tmp_path / name).write_bytes(b"")

        def _deny(self, missing_ok=False):
            raise PermissionError("denied")

        monkeypatch.setattr(Path, "unlink", _deny)
        with pytest.raises(PruneError, match="denied"):
            prune_old(tmp_path, self._mod())
