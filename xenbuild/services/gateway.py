"""远程命令网关 - 在 XenServer 控制域 (dom0) 上执行命令

通过系统 ssh 客户端执行，网关只负责传输和错误分类，不解析命令输出:
  - ssh 退出码 255 / 无法启动 ssh / 超时  -> TransportError（可重试类）
  - 密码认证时 sshpass 自身的退出码 2-6   -> TransportError
  - 其他非零退出码                      -> RemoteCommandError
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from xenbuild.core.exceptions import RemoteCommandError, TransportError
from xenbuild.utils.shell import CommandExecutor, LocalExecutor

if TYPE_CHECKING:
    from xenbuild.core.config import BuildConfig

logger = logging.getLogger(__name__)

# ssh 自身出错（连接、认证、协议）时的退出码
SSH_TRANSPORT_EXIT = 255

# sshpass 自身的退出码: 2 参数冲突, 3 运行时错误, 4 无法识别 ssh 输出,
# 5 密码错误, 6 主机公钥未知。1（参数无效）与远程命令常见的退出码 1
# 无法区分，且固定参数不会触发，按远程命令失败处理
SSHPASS_TRANSPORT_EXITS = {
    2: "sshpass 参数冲突",
    3: "sshpass 运行时错误",
    4: "无法识别 ssh 的输出",
    5: "密码错误",
    6: "主机公钥未知",
}


@dataclass
class SSHTarget:
    """控制域 SSH 连接参数"""

    host: str
    username: str = "root"
    port: int = 22
    key_file: str = ""
    password: str = ""
    connect_timeout: int = 10
    options: list[str] = field(default_factory=list)

    @property
    def uses_sshpass(self) -> bool:
        """只配置了密码时经 sshpass 认证；有密钥则优先使用密钥"""
        return bool(self.password) and not self.key_file

    def build_args(self, command: str) -> list[str]:
        """构造 ssh 命令行；仅有密码时通过 sshpass 从环境变量读取"""
        args: list[str] = []
        if self.uses_sshpass:
            args += ["sshpass", "-e"]
        args += [
            "ssh", "-p", str(self.port),
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", f"ConnectTimeout={self.connect_timeout}",
        ]
        if self.key_file:
            args += ["-o", "BatchMode=yes", "-i", self.key_file]
        for opt in self.options:
            args += ["-o", opt]
        args += [f"{self.username}@{self.host}", command]
        return args

    def env(self) -> dict[str, str] | None:
        if self.uses_sshpass:
            return {"SSHPASS": self.password}
        return None


class RemoteCommandGateway:
    """控制域命令执行"""

    def __init__(
        self,
        target: SSHTarget,
        executor: CommandExecutor | None = None,
        *,
        timeout: float | None = 300,
    ) -> None:
        self.target = target
        self.executor = executor or LocalExecutor()
        self.timeout = timeout

    @classmethod
    def from_config(
        cls, config: BuildConfig, executor: CommandExecutor | None = None,
    ) -> RemoteCommandGateway:
        target = SSHTarget(
            host=config.remote_host,
            username=config.remote_username or "root",
            port=config.remote_ssh_port,
            key_file=config.ssh_key_file,
            password=config.remote_password,
        )
        return cls(target, executor)

    def execute(self, command: str) -> str:
        """执行命令，返回去除首尾空白的标准输出"""
        logger.info("dom0 执行: %s", command)
        try:
            r = self.executor.execute(
                self.target.build_args(command),
                env=self.target.env(),
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise TransportError(
                f"远程命令超时 ({self.timeout}s) @ {self.target.host}: {command}"
            ) from e
        except OSError as e:
            raise TransportError(f"无法启动 ssh 客户端: {e}") from e

        if r.returncode == SSH_TRANSPORT_EXIT:
            raise TransportError(
                f"SSH 连接 {self.target.host}:{self.target.port} 失败: "
                f"{r.stderr.strip()[:300]}"
            )
        if self.target.uses_sshpass and r.returncode in SSHPASS_TRANSPORT_EXITS:
            raise TransportError(
                f"SSH 认证 {self.target.host}:{self.target.port} 失败 "
                f"(sshpass rc={r.returncode}, {SSHPASS_TRANSPORT_EXITS[r.returncode]}): "
                f"{r.stderr.strip()[:300]}"
            )
        if not r.success:
            raise RemoteCommandError(
                f"远程命令失败 (rc={r.returncode}): {command}: {r.stderr.strip()[:300]}",
                command=command, returncode=r.returncode, stderr=r.stderr,
            )
        return r.stdout.strip()
