"""存储仓库 (SR) 解析

名称到 SR 的映射必须唯一：0 个或多个匹配都是配置错误，绝不随意挑选。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from xenbuild.core.exceptions import ConfigError, ResourceLookupError

if TYPE_CHECKING:
    from xenbuild.core.config import BuildConfig
    from xenbuild.core.protocols import HypervisorClient

logger = logging.getLogger(__name__)


def find_sr_by_label(client: HypervisorClient, label: str) -> str:
    """按名称查找唯一的 SR"""
    srs = client.get_srs_by_name_label(label)
    if not srs:
        raise ResourceLookupError(
            f"找不到名称为 '{label}' 的 SR", name=label,
        )
    if len(srs) > 1:
        raise ResourceLookupError(
            f"名称为 '{label}' 的 SR 有 {len(srs)} 个，名称必须唯一", name=label,
        )
    logger.info("SR '%s' -> %s", label, srs[0])
    return srs[0]


def resolve_sr(client: HypervisorClient, name: str = "") -> str:
    """解析目标 SR；未指定名称时使用当前主机所在资源池的默认 SR"""
    if name:
        return find_sr_by_label(client, name)

    host_ref = client.get_this_host()
    for pool in client.get_pools():
        if pool.master == host_ref:
            if not pool.default_sr:
                break
            return pool.default_sr
    raise ResourceLookupError(f"主机 '{host_ref}' 没有可用的默认 SR")


def resolve_iso_sr(client: HypervisorClient, config: BuildConfig) -> str:
    """解析存放 ISO / 上传镜像的 SR（必须显式配置 sr_iso_name）"""
    if not config.sr_iso_name:
        raise ConfigError("sr_iso_name 必须在构建配置中指定")
    return find_sr_by_label(client, config.sr_iso_name)
