"""外部协作者协议

编排核心只依赖这些接口，不关心 XenAPI 会话、认证和 HTTP 传输的实现。
使用 typing.Protocol 而非 ABC，现有客户端无需修改继承关系即可满足协议。
"""

from __future__ import annotations

from typing import BinaryIO, Callable, Protocol

from xenbuild.core.models import PoolRecord, VdiRecord


# =========================================================================
# 虚拟化控制面
# =========================================================================

class HypervisorClient(Protocol):
    """已认证的 XenAPI 会话

    所有调用隐含使用当前会话；引用（ref）为不透明字符串。
    """

    host: str
    port: int

    @property
    def session_id(self) -> str:
        """当前会话标识（用于拼接传输 URL）"""
        ...

    def get_hosts(self) -> list[str]:
        """资源池内所有主机"""
        ...

    def get_this_host(self) -> str:
        """当前会话所在主机"""
        ...

    def get_software_version(self, host_ref: str) -> dict[str, str]:
        """主机软件版本信息（含 product_version）"""
        ...

    def get_pools(self) -> list[PoolRecord]:
        ...

    def get_srs_by_name_label(self, label: str) -> list[str]:
        """按名称查找存储仓库，可能返回 0 个或多个"""
        ...

    def create_vdi(self, record: VdiRecord) -> str:
        ...

    def get_vdi_uuid(self, vdi_ref: str) -> str:
        ...

    def get_vdi_by_uuid(self, uuid: str) -> str:
        ...

    def destroy_vdi(self, vdi_ref: str) -> None:
        ...


# =========================================================================
# 数据传输通道
# =========================================================================

class TransferChannel(Protocol):
    """把本地字节流写入远程对象"""

    def upload(
        self,
        url: str,
        source: BinaryIO,
        size: int,
        *,
        cancelled: Callable[[], bool] | None = None,
    ) -> None:
        """上传 size 字节，失败抛 TransferError"""
        ...


# =========================================================================
# 远程命令
# =========================================================================

class RemoteCommandRunner(Protocol):
    """在控制域上执行命令并返回输出"""

    def execute(self, command: str) -> str:
        ...
