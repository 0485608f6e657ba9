"""统一异常体系

所有业务异常继承 XenBuildError。按照处理方式划分:
  - ConfigError / ResourceLookupError: 配置或名称解析错误，立即失败，不重试
  - TransportError / TransferError: 远程通道故障，终止当前步骤（可分类为可重试）
  - RemoteCommandError: 命令已执行但返回非零
"""

from __future__ import annotations


class XenBuildError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(XenBuildError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ResourceLookupError(ConfigError):
    """按名称查找资源时未命中或命中多个"""

    code = "RESOURCE_LOOKUP_ERROR"

    def __init__(self, message: str, name: str = "") -> None:
        super().__init__(message)
        self.name = name


class StateError(XenBuildError, KeyError):
    """状态包中缺少键或值类型不符（编程错误）"""

    code = "STATE_ERROR"

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class RemoteCommandError(XenBuildError):
    """远程命令已执行但退出码非零"""

    code = "REMOTE_COMMAND_ERROR"

    def __init__(
        self, message: str, *,
        command: str = "", returncode: int | None = None, stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class TransportError(XenBuildError):
    """连接或协议层故障（可重试类）"""

    code = "TRANSPORT_ERROR"
    retryable = True


class TransferError(TransportError):
    """数据流上传失败或被取消"""

    code = "TRANSFER_ERROR"
