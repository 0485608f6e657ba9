"""子进程执行工具

通过 CommandExecutor 协议抽象子进程执行，远程网关和测试均可替换实现。
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandExecutor(Protocol):
    """命令执行器协议

    超时抛 subprocess.TimeoutExpired，可执行文件不存在抛 OSError。
    """

    def execute(
        self,
        args: list[str],
        *,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        ...


class LocalExecutor:
    """本地子进程执行器（默认实现）

    env 中的变量叠加在当前进程环境之上。
    """

    def execute(
        self,
        args: list[str],
        *,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        logger.debug("执行: %s", args[0] if args else "")
        r = subprocess.run(
            args, capture_output=True, text=True,
            env={**os.environ, **env} if env else None,
            check=False, timeout=timeout,
        )
        return CommandResult(
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )
