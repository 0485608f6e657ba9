"""配置检查命令"""

import sys

import click

from xenbuild.core.config import BuildConfig
from xenbuild.core.exceptions import ConfigError


def register(main: click.Group) -> None:
    main.add_command(config_group)


@click.group(name="config")
def config_group() -> None:
    """构建配置管理"""


@config_group.command(name="check")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def check(path: str) -> None:
    """加载并校验构建配置文件"""
    try:
        cfg = BuildConfig.from_file(path)
        warnings = cfg.validate()
    except ConfigError as e:
        click.secho(f"配置无效: {e}", fg="red", err=True)
        for detail in e.details:
            click.echo(f"  - {detail}", err=True)
        sys.exit(1)

    for w in warnings:
        click.secho(f"警告: {w}", fg="yellow")
    click.echo(
        f"配置有效: vm_name={cfg.vm_name} format={cfg.format} keep_vm={cfg.keep_vm}"
    )
