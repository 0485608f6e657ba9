"""获取实例 VNC 控制台端口

控制台端口位于 dom0 上，随后经已有的 SSH 隧道从本机回环地址访问。
不同 XenServer 版本暴露端口的方式不兼容，按顺序尝试:

  1. xenstore-read 读取 /local/domain/<domid>/console/vnc-port
     （7.5/7.6 起不再可用，见 XSO-906）
  2. 默认 5900；若主机 product_version 高于 7.6.0，控制台只以
     UNIX socket 形式存在，需要在 dom0 上启动 socat 转发到 5900+domid

清理阶段只在启动过 socat 时才尝试结束它。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from xenbuild.core.exceptions import RemoteCommandError, TransportError
from xenbuild.core.state import (
    CLIENT,
    DOMID,
    GATEWAY,
    INSTANCE_VNC_IP,
    INSTANCE_VNC_PORT,
)
from xenbuild.core.steps import BuildContext, Step, StepAction
from xenbuild.utils.version import version_gt

if TYPE_CHECKING:
    from xenbuild.core.protocols import HypervisorClient, RemoteCommandRunner
    from xenbuild.core.state import StateBag

logger = logging.getLogger(__name__)

DEFAULT_VNC_PORT = 5900
RELAY_VERSION_THRESHOLD = "7.6.0"
LOOPBACK = "127.0.0.1"


def xenstore_query(domid: str) -> str:
    return f"xenstore-read /local/domain/{domid}/console/vnc-port"


def vnc_socket(domid: str) -> str:
    return f"/var/run/xen/vnc-{domid}"


def relay_command(port: int, domid: str) -> str:
    """后台启动 socat，把 TCP 端口转发到实例的 VNC socket

    参数:
        port: dom0 上监听的端口，调用方按 5900 + domid 计算。
            与 "59" 拼接 domid 的旧写法只在两位数 domid 上一致，
            一位和三位数 domid 不会得到 597 / 59123 这类端口
        domid: 实例的域 ID
    """
    return (
        f"nohup socat -d -d -lf /tmp/socat-{port} "
        f"TCP4-LISTEN:{port},reuseaddr,fork,tcpwrap=socat,allow-table=all "
        f"UNIX-CONNECT:{vnc_socket(domid)} &>/dev/null &"
    )


def relay_kill_command(domid: str) -> str:
    return f"pkill -f 'socat.*{vnc_socket(domid)}$'"


class StepGetConsolePort(Step):
    """解析 VNC 转发端口，写入 instance_vnc_port / instance_vnc_ip"""

    def __init__(
        self,
        *,
        default_port: int = DEFAULT_VNC_PORT,
        version_threshold: str = RELAY_VERSION_THRESHOLD,
    ) -> None:
        self.default_port = default_port
        self.version_threshold = version_threshold
        self.relay_running = False

    def run(self, ctx: BuildContext, state: StateBag) -> StepAction:
        ui = ctx.ui
        ui.say("Step: 通过 SSH 转发实例的 VNC 端口")

        gateway: RemoteCommandRunner = state.get(GATEWAY)
        domid = state.get(DOMID, str)

        try:
            raw_port = gateway.execute(xenstore_query(domid))
        except (RemoteCommandError, TransportError) as e:
            ui.error(f"无法获取 VNC 端口（实例是否在运行？）: {e}")
            ui.error(
                f"XS7.5/7.6 起不再支持 xenstore-read，尝试使用 {self.default_port}。"
                " 参见 https://bugs.xenserver.org/browse/XSO-906"
            )
            raw_port = self._fallback(ctx, state, gateway, domid)
            if raw_port is None:
                return StepAction.HALT

        ui.say(f"远程 VNC 端口设置为 {raw_port}")
        port = _parse_port(raw_port)
        if port is None:
            ui.error(f"无法将 '{raw_port}' 解析为端口号")
            return StepAction.HALT

        state.put(INSTANCE_VNC_PORT, port)
        state.put(INSTANCE_VNC_IP, LOOPBACK)
        return StepAction.CONTINUE

    def _fallback(
        self,
        ctx: BuildContext,
        state: StateBag,
        gateway: RemoteCommandRunner,
        domid: str,
    ) -> str | None:
        """按主机版本决定是否需要 socat 转发，返回端口字符串；None 表示失败"""
        ui = ctx.ui
        client: HypervisorClient = state.get(CLIENT)

        try:
            hosts = client.get_hosts()
        except Exception as e:
            ui.error(f"无法获取资源池中的主机: {e}")
            return None
        if not hosts:
            ui.error("资源池中没有主机")
            return None

        try:
            versions = client.get_software_version(hosts[0])
        except Exception as e:
            ui.error(f"无法获取主机 {hosts[0]} 的软件版本: {e}")
            return None
        xs_version = versions.get("product_version", "")
        if not xs_version:
            ui.error(f"主机 {hosts[0]} 未报告 product_version")
            return None

        if not version_gt(xs_version, self.version_threshold):
            logger.info(
                "XenServer %s <= %s，使用默认端口 %d",
                xs_version, self.version_threshold, self.default_port,
            )
            return str(self.default_port)

        try:
            port = self.default_port + int(domid)
        except ValueError:
            ui.error(f"domid '{domid}' 不是整数，无法计算转发端口")
            return None

        ui.say(f"XenServer {xs_version} 不支持 xenstore-read，尝试用 socat 转发 VNC")
        cmd = relay_command(port, domid)
        try:
            gateway.execute(cmd)
        except (RemoteCommandError, TransportError) as e:
            ui.error(f"XenServer 上无法启动 socat，构建中止: {e}")
            return None
        self.relay_running = True
        ui.message(cmd)
        return str(port)

    def cleanup(self, state: StateBag) -> None:
        if not self.relay_running:
            return

        domid, ok = state.get_ok(DOMID)
        if not ok or not domid:
            logger.warning("状态中缺少 domid，无法定位要结束的 socat")
            return
        gateway, ok = state.get_ok(GATEWAY)
        if not ok:
            logger.warning("状态中缺少 gateway，无法结束 socat (%s)", vnc_socket(domid))
            return
        try:
            gateway.execute(relay_kill_command(domid))
        except (RemoteCommandError, TransportError) as e:
            logger.warning("结束 socat 失败 (%s): %s", vnc_socket(domid), e)
            return
        self.relay_running = False
        logger.info("已结束 socat (%s)", vnc_socket(domid))


def _parse_port(raw: str) -> int | None:
    try:
        port = int(raw.strip())
    except ValueError:
        return None
    if not 0 <= port <= 0xFFFF:
        return None
    return port
