"""有限次重试组合子

任何步骤都可用 retry_call 包装一个可能暂时失败的操作，
例如销毁一个仍被未完成传输占用的 VDI。

用法:
    policy = RetryPolicy(attempts=3, delay=1.0)
    retry_call(lambda: client.destroy_vdi(ref), policy, label="destroy VDI")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """重试策略"""

    attempts: int = 3
    delay: float = 1.0              # 首次重试前等待（秒）
    backoff: float = 1.0            # 每次重试后延迟倍数，1.0 即固定间隔
    max_delay: float | None = None  # 延迟上限
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def delay_for(self, attempt: int) -> float:
        """第 attempt 次失败后的等待时间

        参数:
            attempt: 已失败的次数，从 1 开始

        返回:
            float: 秒数，受 max_delay 限制且不小于 0
        """
        value = self.delay * (self.backoff ** (attempt - 1))
        if self.max_delay is not None:
            value = min(value, self.max_delay)
        return max(0.0, value)


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "",
) -> T:
    """按策略调用 fn，成功返回其结果，耗尽次数后重新抛出最后一次异常

    参数:
        fn: 无参可调用对象
        policy: 重试策略，缺省为 RetryPolicy()（3 次，间隔 1 秒）
        sleep: 等待函数，测试中可替换为记录调用的假实现
        label: 日志中的操作名称，缺省取 fn.__name__

    返回:
        fn 首次成功时的返回值

    异常:
        不在 retry_on 中的异常立即向上抛出；
        耗尽次数后抛出最后一次的异常，最后一次失败后不再等待

    示例:
        >>> retry_call(lambda: client.destroy_vdi(ref), RetryPolicy(attempts=3, delay=1.0))
    """
    policy = policy or RetryPolicy()
    attempts = max(1, policy.attempts)
    name = label or getattr(fn, "__name__", "call")
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except policy.retry_on as exc:
            if attempt >= attempts:
                logger.warning("%s 失败，已重试 %d 次: %s", name, attempts, exc)
                raise
            wait = policy.delay_for(attempt)
            logger.info(
                "%s 失败 (第 %d/%d 次): %s，%.1fs 后重试",
                name, attempt, attempts, exc, wait,
            )
            sleep(wait)
