"""modsync 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os

import click

from modsync import __version__
from modsync.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="YAML 配置文件路径")
def main(config_path: str | None) -> None:
    """modsync - 更新 Factorio 服务器上的 mod 及其依赖"""
    setup_logging(
        level=os.getenv("MODSYNC_LOG_LEVEL", "INFO"),
        json_output=os.getenv("MODSYNC_LOG_JSON", "") == "1",
    )
    if config_path:
        from modsync.core.config import init_config
        from modsync.core.exceptions import ConfigError
        try:
            init_config(config_path)
        except ConfigError as e:
            raise click.ClickException(str(e)) from e


from modsync.cli.cmd_mods import register as _reg_mods  # noqa: E402

_reg_mods(main)
