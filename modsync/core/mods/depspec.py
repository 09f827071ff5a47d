"""依赖声明解析

info.json 中的依赖是字符串，例如:
    "base >= 2.0"          必需
    "? bobplates"          可选
    "(?) informatron"      隐藏可选
    "! angelsrefining"     不兼容
    "~ flib >= 0.12.0"     必需，但不影响加载顺序
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from modsync.core.exceptions import ValidationError

_DEP_RE = re.compile(
    r"^\s*(?P<prefix>\(\?\)|[!?~])?\s*"
    r"(?P<name>[^\s<>=!?~()][^<>=]*?)\s*"
    r"(?:(?P<op><=|>=|<|>|=)\s*(?P<ver>\d+\.\d+(?:\.\d+)?))?\s*$"
)


class DependencyKind(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    HIDDEN_OPTIONAL = "hidden_optional"
    INCOMPATIBLE = "incompatible"
    NO_LOAD_ORDER = "no_load_order"


_PREFIX_KINDS = {
    None: DependencyKind.REQUIRED,
    "?": DependencyKind.OPTIONAL,
    "(?)": DependencyKind.HIDDEN_OPTIONAL,
    "!": DependencyKind.INCOMPATIBLE,
    "~": DependencyKind.NO_LOAD_ORDER,
}


@dataclass(frozen=True)
class DependencySpec:
    """单条依赖声明"""

    kind: DependencyKind
    name: str
    operator: str = ""
    version: str = ""

    @property
    def is_required(self) -> bool:
        """是否需要一并安装"""
        return self.kind in (DependencyKind.REQUIRED, DependencyKind.NO_LOAD_ORDER)


def parse_dependency(text: str) -> DependencySpec:
    """解析单条依赖声明

    Raises:
        ValidationError: 无法识别的格式
    """
    if not isinstance(text, str):
        raise ValidationError(f"依赖声明必须是字符串: {text!r}")
    m = _DEP_RE.match(text)
    if m is None:
        raise ValidationError(f"无法解析依赖声明: {text!r}")
    return DependencySpec(
        kind=_PREFIX_KINDS[m.group("prefix")],
        name=m.group("name"),
        operator=m.group("op") or "",
        version=m.group("ver") or "",
    )
