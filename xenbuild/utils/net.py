"""网络工具 - URL 校验与拼接"""

from __future__ import annotations

from urllib.parse import urlencode, urlparse

from xenbuild.core.exceptions import TransferError

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https

    Raises:
        TransferError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise TransferError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，仅支持 http/https"
        )


def join_host_port(host: str, port: int) -> str:
    """IPv6 地址加方括号"""
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def import_raw_vdi_url(host: str, port: int, vdi_ref: str, session_id: str) -> str:
    """XenAPI 原始 VDI 导入地址

    参数:
        host: 资源池主机地址，IPv6 自动加方括号
        port: XenAPI HTTPS 端口
        vdi_ref: 目标 VDI 的 OpaqueRef
        session_id: 已登录会话的 ID

    返回:
        str: 可直接 PUT 的 import_raw_vdi URL

    示例:
        >>> import_raw_vdi_url("xs01", 443, "OpaqueRef:1", "s")
        'https://xs01:443/import_raw_vdi?vdi=OpaqueRef%3A1&session_id=s'
    """
    query = urlencode({"vdi": vdi_ref, "session_id": session_id})
    return f"https://{join_host_port(host, port)}/import_raw_vdi?{query}"
