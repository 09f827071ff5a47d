"""modsync - Factorio mod 依赖解析与更新工具"""

__version__ = "0.1.0"
