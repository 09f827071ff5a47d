"""外部命令执行

目前只有游戏版本探测会启动子进程。执行器可替换，测试中不必真的启动 Factorio。
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Protocol


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout + self.stderr


class CommandExecutor(Protocol):
    """执行一条命令并返回结果

    超时抛 subprocess.TimeoutExpired，无法启动抛 OSError。
    """

    def execute(self, cmd: list[str], *, timeout: float | None = None) -> CommandResult:
        ...


class LocalExecutor:
    """在本机启动子进程"""

    def execute(self, cmd: list[str], *, timeout: float | None = None) -> CommandResult:
        # stdin 关闭，避免 headless 服务端等待输入
        proc = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            errors="replace",
            check=False,
            timeout=timeout,
        )
        return CommandResult(proc.returncode, proc.stdout, proc.stderr)


_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    return _executor


def set_executor(executor: CommandExecutor) -> None:
    global _executor  # noqa: PLW0603
    _executor = executor
