"""探测已安装的 Factorio 版本"""

from __future__ import annotations

import logging
import re
import subprocess

from modsync.core.exceptions import VersionProbeError
from modsync.utils.shell import CommandExecutor, get_executor

logger = logging.getLogger(__name__)

_FACTORIO_VERSION_RE = re.compile(r"Version: (\d+)\.(\d+)\.\d+")


def parse_version_output(output: str) -> str:
    """从 `factorio --version` 输出中取出 "major.minor"

    Raises:
        VersionProbeError: 输出中没有版本号
    """
    m = _FACTORIO_VERSION_RE.search(output)
    if m is None:
        raise VersionProbeError(f"无法从 Factorio 输出中解析版本: {output[:200]!r}")
    return f"{m.group(1)}.{m.group(2)}"


def probe_factorio_version(
    bin_path: str,
    timeout: float | None = None,
    executor: CommandExecutor | None = None,
) -> str:
    """运行 `<bin_path> --version` 并返回 "major.minor"

    Raises:
        VersionProbeError: 可执行文件不可用、超时、退出码非 0 或输出无法解析
    """
    if timeout is None:
        from modsync.core.config import get_config
        timeout = get_config().probe_timeout
    executor = executor or get_executor()

    try:
        result = executor.execute([bin_path, "--version"], timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise VersionProbeError(f"运行 {bin_path} 超时（{timeout}秒）") from e
    except OSError as e:
        raise VersionProbeError(f"运行 Factorio 可执行文件 {bin_path!r} 失败: {e}") from e

    if not result.success:
        raise VersionProbeError(
            f"Factorio 可执行文件 {bin_path!r} 退出码 {result.returncode}: {result.output[:200]}"
        )

    version = parse_version_output(result.output)
    logger.info("检测到 Factorio 版本: %s", version)
    return version
