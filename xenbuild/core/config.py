"""构建配置

从 YAML 文件加载 + 编程式覆盖，集中填充默认值和校验。
未知字段保留在 extra 中，交给外部步骤自行解释。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from xenbuild.core.exceptions import ConfigError
from xenbuild.utils.yaml_io import load_yaml

if TYPE_CHECKING:
    from xenbuild.core.state import StateBag

logger = logging.getLogger(__name__)

FORMATS = ("xva", "xva_compressed", "vdi_raw", "vdi_vhd", "none")
IP_GETTERS = ("auto", "tools", "http")
PORT_FIELDS = ("remote_port", "remote_ssh_port", "http_port_min", "http_port_max")

DEFAULT_PLATFORM_ARGS = {
    "viridian": "false",
    "nx": "true",
    "pae": "true",
    "apic": "true",
    "timeoffset": "0",
    "acpi": "1",
}


class RetentionPolicy(str, Enum):
    """构建结束后是否保留已创建的资源"""

    ALWAYS = "always"
    NEVER = "never"
    ON_SUCCESS = "on_success"

    def should_keep(self, state: StateBag) -> bool:
        """清理前调用：返回 True 时步骤应跳过销毁"""
        from xenbuild.core.state import STATE_CANCELLED, STATE_HALTED

        if self is RetentionPolicy.ALWAYS:
            return True
        if self is RetentionPolicy.NEVER:
            return False
        # 仅在构建成功时保留
        _, cancelled = state.get_ok(STATE_CANCELLED)
        _, halted = state.get_ok(STATE_HALTED)
        return not (cancelled or halted)


@dataclass
class BuildConfig:
    """单次构建的配置"""

    # 连接
    remote_host: str = ""
    remote_port: int = 443
    remote_username: str = ""
    remote_password: str = ""
    remote_ssh_port: int = 22
    ssh_key_file: str = ""

    # 虚拟机
    build_name: str = "xenserver"
    vm_name: str = ""
    vm_description: str = ""
    firmware: str = "bios"
    platform_args: dict[str, str] = field(default_factory=dict)
    tools_iso_name: str = "xs-tools.iso"

    # 存储
    sr_name: str = ""
    sr_iso_name: str = ""

    # HTTP 服务端口范围
    http_port_min: int = 8000
    http_port_max: int = 9000

    # 输出
    output_directory: str = ""
    format: str = "xva"
    keep_vm: str = "never"
    ip_getter: str = "auto"

    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.vm_name:
            self.vm_name = f"packer-{self.build_name}"
        if not self.output_directory:
            self.output_directory = f"output-{self.build_name}"
        if not self.platform_args:
            self.platform_args = dict(DEFAULT_PLATFORM_ARGS)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildConfig:
        known = {f.name for f in cls.__dataclass_fields__.values()} - {"extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    @classmethod
    def from_file(cls, path: str) -> BuildConfig:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        cfg = cls.from_dict(data) if data else cls()
        logger.info("配置已加载: %s", path)
        return cfg

    def validate(self) -> list[str]:
        """校验全部字段，收集所有问题后一次性抛出 ConfigError

        返回警告列表（不阻断构建的问题）。
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not self.remote_host:
            errors.append("remote_host 必须指定")
        if not self.remote_username:
            errors.append("remote_username 必须指定")
        if not self.remote_password and not self.ssh_key_file:
            warnings.append("未设置 remote_password 或 ssh_key_file，远程命令可能无法认证")

        bad_ports = [
            name for name in PORT_FIELDS if not _is_port(getattr(self, name))
        ]
        for name in bad_ports:
            errors.append(f"{name} 必须是 1-65535 之间的整数，当前为 {getattr(self, name)!r}")
        if (
            "http_port_min" not in bad_ports
            and "http_port_max" not in bad_ports
            and self.http_port_min > self.http_port_max
        ):
            errors.append("http_port_min 不能大于 http_port_max")
        if not isinstance(self.platform_args, dict):
            errors.append("platform_args 必须是键值映射")
        if self.format not in FORMATS:
            errors.append(f"format 必须是 {', '.join(FORMATS)} 之一")
        if self.keep_vm not in [p.value for p in RetentionPolicy]:
            errors.append("keep_vm 必须是 always, never, on_success 之一")
        if self.ip_getter not in IP_GETTERS:
            errors.append(f"ip_getter 必须是 {', '.join(IP_GETTERS)} 之一")

        if errors:
            raise ConfigError(f"配置无效 ({len(errors)} 项)", details=errors)
        return warnings

    @property
    def retention(self) -> RetentionPolicy:
        try:
            return RetentionPolicy(self.keep_vm)
        except ValueError as e:
            raise ConfigError(f"未知的 keep_vm 取值: '{self.keep_vm}'") from e

    def should_keep_vm(self, state: StateBag) -> bool:
        """步骤清理 VM 相关资源前应先调用"""
        return self.retention.should_keep(state)


def _is_port(value: Any) -> bool:
    # bool 是 int 的子类，YAML 中的 yes/no 不算端口
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= 0xFFFF
