"""共享 fixture - 记录型 Ui、内存版 XenAPI 客户端、可编排的远程命令网关"""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from xenbuild.core.config import BuildConfig
from xenbuild.core.models import PoolRecord, VdiRecord
from xenbuild.core.state import CLIENT, CONFIG, GATEWAY, UI, StateBag
from xenbuild.core.steps import BuildContext


class RecordingUi:
    """记录所有输出，便于断言"""

    def __init__(self) -> None:
        self.said: list[str] = []
        self.messages: list[str] = []
        self.errors: list[str] = []

    def say(self, message: str) -> None:
        self.said.append(message)

    def message(self, message: str) -> None:
        self.messages.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


@dataclass
class FakeXenClient:
    """内存中的 XenAPI 会话"""

    host: str = "xs01.example.com"
    port: int = 443
    srs: dict[str, list[str]] = field(default_factory=dict)
    hosts: list[str] = field(default_factory=lambda: ["OpaqueRef:host1"])
    product_version: str = "7.6.0"
    this_host: str = "OpaqueRef:host1"
    pools: list[PoolRecord] = field(default_factory=list)
    destroy_failures: int = 0
    created: list[VdiRecord] = field(default_factory=list)
    destroyed: list[str] = field(default_factory=list)
    destroy_attempts: int = 0

    @property
    def session_id(self) -> str:
        return "OpaqueRef:session"

    def get_hosts(self) -> list[str]:
        return list(self.hosts)

    def get_this_host(self) -> str:
        return self.this_host

    def get_software_version(self, host_ref: str) -> dict[str, str]:
        return {"product_version": self.product_version}

    def get_pools(self) -> list[PoolRecord]:
        return list(self.pools)

    def get_srs_by_name_label(self, label: str) -> list[str]:
        return list(self.srs.get(label, []))

    def create_vdi(self, record: VdiRecord) -> str:
        self.created.append(record)
        return f"OpaqueRef:vdi{len(self.created)}"

    def get_vdi_uuid(self, vdi_ref: str) -> str:
        return f"uuid-{vdi_ref.rsplit(':', 1)[-1]}"

    def get_vdi_by_uuid(self, uuid: str) -> str:
        return f"OpaqueRef:{uuid.removeprefix('uuid-')}"

    def destroy_vdi(self, vdi_ref: str) -> None:
        self.destroy_attempts += 1
        if self.destroy_attempts <= self.destroy_failures:
            raise RuntimeError("VDI_IN_USE")
        self.destroyed.append(vdi_ref)


class FakeGateway:
    """按命令前缀返回预设输出或抛出预设异常"""

    def __init__(self, responses: dict[str, object] | None = None) -> None:
        self.responses = responses or {}
        self.commands: list[str] = []

    def execute(self, command: str) -> str:
        self.commands.append(command)
        for prefix, result in self.responses.items():
            if command.startswith(prefix):
                if isinstance(result, BaseException):
                    raise result
                return str(result)
        return ""


@pytest.fixture
def ui() -> RecordingUi:
    return RecordingUi()


@pytest.fixture
def ctx(ui: RecordingUi) -> BuildContext:
    return BuildContext(ui=ui)


@pytest.fixture
def client() -> FakeXenClient:
    return FakeXenClient(srs={"iso-store": ["OpaqueRef:sr-iso"]})


@pytest.fixture
def config() -> BuildConfig:
    return BuildConfig(
        remote_host="xs01.example.com",
        remote_username="root",
        remote_password="secret",
        sr_iso_name="iso-store",
        keep_vm="never",
    )


@pytest.fixture
def state(ui: RecordingUi, client: FakeXenClient, config: BuildConfig) -> StateBag:
    bag = StateBag()
    bag.put(UI, ui)
    bag.put(CLIENT, client)
    bag.put(CONFIG, config)
    bag.put(GATEWAY, FakeGateway())
    return bag
