"""统一异常体系

所有业务异常继承 ModSyncError。
致命错误（配置、版本探测）直接抛出；单个 mod 的错误被收集后与
部分成功的结果一起返回，由调用方决定是否致命。
"""

from __future__ import annotations


class ModSyncError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(ModSyncError):
    """mod-list.json 或凭据文件缺失、不可读或内容无效"""

    code = "CONFIG_ERROR"


class VersionProbeError(ModSyncError):
    """Factorio 可执行文件不可用或版本输出无法解析"""

    code = "VERSION_PROBE_ERROR"


class MetadataError(ModSyncError):
    """单个 mod 的元数据拉取或解码失败（非致命）"""

    code = "METADATA_ERROR"

    def __init__(self, message: str, mod: str = "") -> None:
        super().__init__(message)
        self.mod = mod


class DownloadError(ModSyncError):
    """单个 mod 的下载、写入或校验失败（非致命）"""

    code = "DOWNLOAD_ERROR"

    def __init__(self, message: str, mod: str = "") -> None:
        super().__init__(message)
        self.mod = mod


class PruneError(ModSyncError):
    """旧版本文件删除失败"""

    code = "PRUNE_ERROR"


class PersistenceError(ModSyncError):
    """mod-list.json 写入失败，不回滚已完成的下载"""

    code = "PERSISTENCE_ERROR"


class ValidationError(ModSyncError, ValueError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []
