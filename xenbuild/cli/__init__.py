"""xenbuild 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os

import click

from xenbuild import __version__
from xenbuild.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """xenbuild - XenServer 虚拟机构建编排"""
    setup_logging(
        level=os.getenv("XENBUILD_LOG_LEVEL", "INFO"),
        json_output=os.getenv("XENBUILD_LOG_JSON", "") == "1",
    )


from xenbuild.cli.cmd_config import register as _reg_config  # noqa: E402

_reg_config(main)
