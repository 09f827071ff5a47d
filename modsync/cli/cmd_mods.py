"""mod 列表与更新命令"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import click

from modsync.core.exceptions import ModSyncError
from modsync.core.mod_manager import ModManager


def register(group: click.Group) -> None:
    group.add_command(list_mods)
    group.add_command(update)


def _session_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """list / update 共用的参数"""
    options = [
        click.argument("root_dir", required=False, default=None),
        click.option("--username", "-u", default="", help="factorio.com 用户名（覆盖配置文件）"),
        click.option("--token", "-t", default="", help="factorio.com API token（覆盖配置文件）"),
        click.option("--server-settings", "-s", "settings_path", default="",
                     help="server-settings.json 路径"),
        click.option("--player-data", "-d", "data_path", default="", help="player-data.json 路径"),
        click.option("--mod-path", "-m", default="", help="mods 目录"),
        click.option("--bin-path", "-b", default="", help="Factorio 可执行文件路径"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def resolve_paths(root_dir: str | None, bin_path: str, mod_path: str) -> tuple[str, str]:
    """由 ROOT_DIR 推断 (可执行文件路径, mods 目录)，显式参数优先"""
    if root_dir:
        if not bin_path:
            exe = "factorio.exe" if os.name == "nt" else "factorio"
            bin_path = os.path.join(root_dir, "bin", "x64", exe)
        if not mod_path:
            mod_path = os.path.join(root_dir, "mods")
    if not bin_path or not mod_path:
        raise click.UsageError("请指定 ROOT_DIR，或同时指定 --bin-path 和 --mod-path")
    return bin_path, mod_path


def _build_manager(root_dir: str | None, **kwargs: str) -> ModManager:
    bin_path, mod_path = resolve_paths(root_dir, kwargs.pop("bin_path"), kwargs.pop("mod_path"))
    try:
        return ModManager(mod_path, bin_path, **kwargs)
    except ModSyncError as e:
        raise click.ClickException(str(e)) from e


def _resolve(mm: ModManager) -> None:
    click.echo("正在拉取元数据并解析依赖...")
    errors = mm.resolve()
    if errors:
        click.echo(f"有 {len(errors)} 个 mod 的元数据无法解析:", err=True)
        for e in errors:
            click.echo(f"  {e}", err=True)
    else:
        click.echo("元数据解析完成")


def _print_mods(mm: ModManager) -> None:
    click.echo()
    click.echo(f"  {'Mod':32s} {'启用':6s} {'已安装':6s} {'当前版本':12s} {'最新版本':12s}")
    for mod in mm.get_mods():
        current = mod.version if mod.installed else "N/A"
        latest = mod.latest.version if mod.latest else "N/A"
        flag = "" if mod.is_current else " *"
        click.echo(
            f"  {mod.title[:32]:32s} {str(mod.enabled):6s} {str(mod.installed):6s} "
            f"{current:12s} {latest:12s}{flag}"
        )
    click.echo()
    click.echo(str(mm.summarize()))


@click.command(name="list")
@_session_options
def list_mods(root_dir: str | None, **kwargs: str) -> None:
    """列出已跟踪的 mod 及其版本"""
    mm = _build_manager(root_dir, **kwargs)
    _resolve(mm)
    _print_mods(mm)


@click.command()
@_session_options
def update(root_dir: str | None, **kwargs: str) -> None:
    """把所有 mod 更新到最新的兼容版本"""
    mm = _build_manager(root_dir, **kwargs)
    _resolve(mm)
    _print_mods(mm)

    if not mm.updates_available():
        click.echo("所有 mod 都是最新的。")
        return

    click.echo("游戏自带的 mod（base、core、space-age、quality、elevated-rails）不参与更新。")
    updated, errors = mm.update()
    if errors:
        for e in errors:
            click.echo(f"  {e}", err=True)
        raise click.ClickException(f"更新未全部完成: {updated} 个已更新, {len(errors)} 个错误")
    if updated == 0:
        click.echo("没有需要更新的 mod。")
    else:
        click.echo(f"更新完成！已更新 {updated} 个 mod。")
