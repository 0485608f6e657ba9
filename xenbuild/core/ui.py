"""构建输出通道

步骤不直接 print，也不依赖全局 UI，而是通过注入的 Ui 对象报告进度。
  - LogUi: 输出到 logging（默认，适用于 CI / 库调用）
  - ClickUi: 输出到终端（CLI 使用）
"""

from __future__ import annotations

import logging
from typing import Protocol

import click


class Ui(Protocol):
    """构建输出协议"""

    def say(self, message: str) -> None:
        """步骤级进度信息"""
        ...

    def message(self, message: str) -> None:
        """次要信息"""
        ...

    def error(self, message: str) -> None:
        """错误信息"""
        ...


class LogUi:
    """把构建输出转发到 logger"""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("xenbuild.ui")

    def say(self, message: str) -> None:
        self._logger.info("==> %s", message)

    def message(self, message: str) -> None:
        self._logger.info("    %s", message)

    def error(self, message: str) -> None:
        self._logger.error("%s", message)


class ClickUi:
    """终端输出，错误写到 stderr 并标红"""

    def __init__(self, prefix: str = "xenbuild") -> None:
        self.prefix = prefix

    def say(self, message: str) -> None:
        click.secho(f"==> {self.prefix}: {message}", bold=True)

    def message(self, message: str) -> None:
        click.echo(f"    {self.prefix}: {message}")

    def error(self, message: str) -> None:
        click.secho(f"==> {self.prefix}: {message}", fg="red", err=True)
