"""运行参数配置

默认值对应 Mod Portal 的实际限制；可用 YAML 文件（--config）覆盖。
各组件的显式参数优先于这里的值。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields

from modsync.core.exceptions import ConfigError
from modsync.utils.fileio import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_PORTAL_URL = "https://mods.factorio.com"


@dataclass
class Config:
    """modsync 运行参数"""

    portal_url: str = DEFAULT_PORTAL_URL
    # 单个元数据响应体上限
    max_response_bytes: int = 10 * 1024 * 1024

    metadata_workers: int = 10
    download_workers: int = 5

    # 秒；download_timeout 是整个文件的总时限
    metadata_timeout: float = 15
    download_timeout: float = 300
    probe_timeout: float = 5

    chunk_size: int = 64 * 1024

    # 未识别的键原样保留
    extra: dict = field(default_factory=dict)

    def validate(self) -> None:
        """检查数值参数为正数

        Raises:
            ConfigError: 参数类型错误或不是正数
        """
        for name in ("max_response_bytes", "metadata_workers", "download_workers", "chunk_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(f"{name} 必须是正整数: {value!r}")
        for name in ("metadata_timeout", "download_timeout", "probe_timeout"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"{name} 必须是正数: {value!r}")

    @classmethod
    def from_file(cls, path: str = "modsync.yml") -> Config:
        """从 YAML 文件加载，文件不存在时返回默认值"""
        data = load_yaml(path)
        known = {f.name for f in fields(cls)} - {"extra"}
        cfg = cls(**{k: v for k, v in data.items() if k in known})
        cfg.extra = {k: v for k, v in data.items() if k not in known}
        if cfg.extra:
            logger.debug("未识别的配置项: %s", ", ".join(sorted(cfg.extra)))
        cfg.validate()
        return cfg


_current: Config | None = None


def get_config() -> Config:
    """当前配置；未调用 init_config 时为默认值"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "modsync.yml") -> Config:
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current


def reset_config() -> None:
    global _current  # noqa: PLW0603
    _current = None
