"""构建状态包

单次构建内共享的键值存储，在步骤之间传递环境对象（客户端、UI）
以及构建过程中发现的标识（domid、VDI UUID、控制台端口 ...）。

两种访问方式:
  - 字符串键: bag.put("domid", "7") / bag.get("domid")
  - 类型化键: StateKey 携带值类型，读取时校验，类型不符即 StateError

用法:
    VNC_PORT = StateKey("instance_vnc_port", int)
    bag = StateBag()
    bag.put(VNC_PORT, 5901)
    port = bag.get(VNC_PORT)       # -> int
    value, ok = bag.get_ok("missing")
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, overload

from xenbuild.core.exceptions import StateError

T = TypeVar("T")


@dataclass(frozen=True)
class StateKey(Generic[T]):
    """类型化状态键"""

    name: str
    type: type[T]

    def __str__(self) -> str:
        return self.name


def _key_name(key: str | StateKey[Any]) -> str:
    return key.name if isinstance(key, StateKey) else key


class StateBag:
    """构建级共享状态

    所有读写在同一把锁下完成；编排器本身串行执行步骤，
    锁只保证把状态包交给并发代码时仍然一致。
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._lock = threading.RLock()
        self._data: dict[str, Any] = dict(initial or {})

    def put(self, key: str | StateKey[Any], value: Any) -> None:
        """写入（覆盖）一个键"""
        if isinstance(key, StateKey) and not isinstance(value, key.type):
            raise StateError(
                f"状态键 '{key.name}' 需要 {key.type.__name__}，"
                f"实际写入 {type(value).__name__}"
            )
        with self._lock:
            self._data[_key_name(key)] = value

    @overload
    def get(self, key: StateKey[T]) -> T: ...

    @overload
    def get(self, key: str, expected: type[T]) -> T: ...

    @overload
    def get(self, key: str) -> Any: ...

    def get(self, key: str | StateKey[Any], expected: type | None = None) -> Any:
        """读取一个键

        参数:
            key: 字符串键或 StateKey；StateKey 自带期望类型
            expected: 字符串键时可选的期望类型

        返回:
            键对应的值

        异常:
            StateError: 键缺失或值类型不符（同时是 KeyError 子类）

        示例:
            >>> state.get(CONFIG, BuildConfig)
            >>> state.get(INSTANCE_VNC_PORT)
        """
        name = _key_name(key)
        if isinstance(key, StateKey):
            expected = key.type
        with self._lock:
            if name not in self._data:
                raise StateError(f"状态键不存在: {name}")
            value = self._data[name]
        if expected is not None and not isinstance(value, expected):
            raise StateError(
                f"状态键 '{name}' 类型不符: 需要 {expected.__name__}，"
                f"实际为 {type(value).__name__}"
            )
        return value

    def get_ok(self, key: str | StateKey[Any]) -> tuple[Any, bool]:
        """读取一个键，返回 (值, 是否存在)，从不抛异常"""
        with self._lock:
            name = _key_name(key)
            if name in self._data:
                return self._data[name], True
            return None, False

    def delete(self, key: str | StateKey[Any]) -> None:
        with self._lock:
            self._data.pop(_key_name(key), None)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, StateKey)):
            return False
        with self._lock:
            return _key_name(key) in self._data

    def snapshot(self) -> dict[str, Any]:
        """返回当前内容的浅拷贝（用于调试/报告）"""
        with self._lock:
            return dict(self._data)


# =========================================================================
# 约定的状态键
# =========================================================================

UI = "ui"
CLIENT = "client"
CONFIG = "config"
GATEWAY = "gateway"
DOMID = "domid"
ERROR = "error"

# 构建信号: 存在即表示已发生
STATE_CANCELLED = "cancelled"
STATE_HALTED = "halted"

INSTANCE_VNC_PORT: StateKey[int] = StateKey("instance_vnc_port", int)
INSTANCE_VNC_IP: StateKey[str] = StateKey("instance_vnc_ip", str)


def instance_vnc_port(state: StateBag) -> int:
    """已解析的控制台转发端口"""
    return state.get(INSTANCE_VNC_PORT)


def instance_vnc_ip(state: StateBag) -> str:
    """控制台端口位于控制域，经已有 SSH 隧道从本机回环地址访问"""
    value, ok = state.get_ok(INSTANCE_VNC_IP)
    return value if ok else "127.0.0.1"
