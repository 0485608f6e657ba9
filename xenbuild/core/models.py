"""XenAPI 领域数据模型"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class VdiRecord:
    """创建 VDI 时提交的记录"""

    name_label: str
    virtual_size: int
    sr: str
    type: str = "user"
    sharable: bool = False
    read_only: bool = False
    other_config: dict[str, str] = field(default_factory=dict)

    def to_xenapi(self) -> dict[str, object]:
        """转换为 XenAPI VDI.create 使用的字段名"""
        return {
            "name_label": self.name_label,
            "name_description": "",
            "SR": self.sr,
            "virtual_size": str(self.virtual_size),
            "type": self.type,
            "sharable": self.sharable,
            "read_only": self.read_only,
            "other_config": dict(self.other_config),
        }


@dataclass
class PoolRecord:
    """资源池记录中用到的字段"""

    ref: str
    master: str
    default_sr: str = ""
