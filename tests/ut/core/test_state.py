"""StateBag 单元测试"""

from __future__ import annotations

import pytest

from xenbuild.core.exceptions import StateError
from xenbuild.core.state import (
    INSTANCE_VNC_IP,
    INSTANCE_VNC_PORT,
    StateBag,
    StateKey,
    instance_vnc_ip,
    instance_vnc_port,
)


class TestStringKeys:
    def test_put_and_get(self):
        bag = StateBag()
        bag.put("domid", "3")
        assert bag.get("domid") == "3"

    def test_overwrite(self):
        bag = StateBag({"domid": "3"})
        bag.put("domid", "4")
        assert bag.get("domid") == "4"

    def test_missing_key_raises(self):
        with pytest.raises(StateError, match="domid"):
            StateBag().get("domid")

    def test_state_error_is_key_error(self):
        with pytest.raises(KeyError):
            StateBag().get("nothing")

    def test_expected_type_mismatch(self):
        bag = StateBag({"domid": 3})
        with pytest.raises(StateError, match="str"):
            bag.get("domid", str)

    def test_get_ok_never_raises(self):
        bag = StateBag({"a": 1})
        assert bag.get_ok("a") == (1, True)
        assert bag.get_ok("b") == (None, False)

    def test_delete_and_contains(self):
        bag = StateBag({"a": 1})
        assert "a" in bag
        bag.delete("a")
        assert "a" not in bag
        bag.delete("a")  # 重复删除无影响

    def test_snapshot_is_copy(self):
        bag = StateBag({"a": 1})
        snap = bag.snapshot()
        snap["a"] = 2
        assert bag.get("a") == 1


class TestTypedKeys:
    def test_typed_roundtrip(self):
        key = StateKey("count", int)
        bag = StateBag()
        bag.put(key, 5)
        assert bag.get(key) == 5
        # 与同名字符串键共享存储
        assert bag.get("count") == 5

    def test_put_wrong_type_rejected(self):
        key = StateKey("count", int)
        with pytest.raises(StateError):
            StateBag().put(key, "5")

    def test_get_wrong_type_rejected(self):
        bag = StateBag({"count": "5"})
        with pytest.raises(StateError):
            bag.get(StateKey("count", int))

    def test_vnc_accessors(self):
        bag = StateBag()
        bag.put(INSTANCE_VNC_PORT, 5907)
        assert instance_vnc_port(bag) == 5907
        assert instance_vnc_ip(bag) == "127.0.0.1"
        bag.put(INSTANCE_VNC_IP, "10.0.0.1")
        assert instance_vnc_ip(bag) == "10.0.0.1"
