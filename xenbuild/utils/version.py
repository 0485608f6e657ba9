"""软件版本解析与比较

按数字分段比较，避免字符串比较把 "7.10.0" 排在 "7.6.0" 之前。
"""

from __future__ import annotations

import re

_LEADING_DIGITS = re.compile(r"\d+")


def parse_version(value: str) -> tuple[int, ...]:
    """解析版本号: "8.2.1" -> (8, 2, 1)

    每段取开头的数字，非数字段记为 0，末尾的 0 段去掉，
    因此 "7.6" 与 "7.6.0" 相等。
    """
    parts: list[int] = []
    for segment in value.strip().split("."):
        m = _LEADING_DIGITS.match(segment)
        parts.append(int(m.group()) if m else 0)
    while len(parts) > 1 and parts[-1] == 0:
        parts.pop()
    return tuple(parts)


def version_gt(left: str, right: str) -> bool:
    """left 是否严格高于 right

    参数:
        left: 待判断的版本，通常是主机上报的 product_version
        right: 比较基准

    返回:
        bool: 按数字分段比较 left > right

    示例:
        >>> version_gt("7.10.0", "7.6.0")
        True
        >>> version_gt("7.6", "7.6.0")
        False
    """
    return parse_version(left) > parse_version(right)
