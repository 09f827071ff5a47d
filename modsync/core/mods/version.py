"""游戏版本兼容判断

纯函数，无副作用。
"""

from __future__ import annotations

import re

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


def is_compatible(platform_version: str, release_version: str) -> bool:
    """判断发布版本要求的游戏版本是否被已安装的游戏版本满足

    规则:
      - 任一方无法解析为 major.minor[.patch] → 不兼容
      - 游戏 1.x 兼容要求 0.18 的发布（历史上二者等价）
      - 发布版本带 patch 时要求与游戏版本字符串完全相等
      - 否则比较 major 和 minor
    """
    release = _VERSION_RE.search(release_version)
    platform = _VERSION_RE.search(platform_version)
    if release is None or platform is None:
        return False

    if platform_version.startswith("1.") and release_version.startswith("0.18"):
        return True

    # 游戏版本通常只有 major.minor，所以带 patch 的要求很少命中
    if release.group(3) is not None:
        return release_version == platform_version

    return release.group(1, 2) == platform.group(1, 2)


def parse_version(text: str) -> tuple[int, ...] | None:
    """把 "1.2.3" 解析为 (1, 2, 3)，用于版本大小比较；无法解析返回 None"""
    parts = text.strip().split(".")
    if not parts or not all(p.isdigit() for p in parts):
        return None
    return tuple(int(p) for p in parts)
