"""HTTP 传输通道 - 把本地文件以 PUT 流式写入远程对象

只负责一次性的流式上传；URL（含会话凭据）由调用方拼好。
上传过程中轮询取消回调，取消即中断读取并以 TransferError 失败。
"""

from __future__ import annotations

import logging
import ssl
import urllib.error
import urllib.request
from typing import BinaryIO, Callable

from xenbuild.core.exceptions import TransferError
from xenbuild.utils.net import validate_url_scheme

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class TransferCancelled(TransferError):
    """上传被构建取消信号中断"""

    code = "TRANSFER_CANCELLED"


class _CancellableReader:
    """按块读取源文件，每次读取前检查取消信号并记录进度"""

    def __init__(
        self,
        source: BinaryIO,
        size: int,
        cancelled: Callable[[], bool] | None,
    ) -> None:
        self._source = source
        self._size = size
        self._cancelled = cancelled
        self.sent = 0
        self._last_pct = -1

    def read(self, amt: int = CHUNK_SIZE) -> bytes:
        if self._cancelled is not None and self._cancelled():
            raise TransferCancelled(f"上传已取消 ({self.sent}/{self._size} 字节)")
        chunk = self._source.read(min(amt, CHUNK_SIZE))
        self.sent += len(chunk)
        if self._size:
            pct = self.sent * 100 // self._size
            if pct // 10 != self._last_pct // 10:
                logger.info("上传进度: %d%% (%d/%d)", pct, self.sent, self._size)
            self._last_pct = pct
        return chunk

    def __iter__(self):
        while True:
            chunk = self.read(CHUNK_SIZE)
            if not chunk:
                return
            yield chunk


class HTTPTransfer:
    """基于 urllib 的 PUT 上传"""

    def __init__(self, *, verify_tls: bool = False, timeout: float = 60) -> None:
        # XenServer 默认使用自签名证书
        self.verify_tls = verify_tls
        self.timeout = timeout

    def _ssl_context(self) -> ssl.SSLContext:
        ctx = ssl.create_default_context()
        if not self.verify_tls:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        return ctx

    def upload(
        self,
        url: str,
        source: BinaryIO,
        size: int,
        *,
        cancelled: Callable[[], bool] | None = None,
    ) -> None:
        validate_url_scheme(url, context="VDI upload")
        reader = _CancellableReader(source, size, cancelled)
        req = urllib.request.Request(
            url, data=reader, method="PUT",
            headers={
                "Content-Length": str(size),
                "Content-Type": "application/octet-stream",
            },
        )
        try:
            with urllib.request.urlopen(  # nosec B310
                req, timeout=self.timeout, context=self._ssl_context(),
            ) as resp:
                resp.read()
        except TransferError:
            raise
        except urllib.error.HTTPError as e:
            raise TransferError(f"上传失败: HTTP {e.code} {e.reason}") from e
        except urllib.error.URLError as e:
            if isinstance(e.reason, TransferError):
                raise e.reason from e
            raise TransferError(f"上传网络错误: {e.reason}") from e
        except OSError as e:
            raise TransferError(f"上传失败: {e}") from e

        if reader.sent != size:
            raise TransferError(f"上传不完整: 已发送 {reader.sent}/{size} 字节")
        logger.info("上传完成: %d 字节", size)
