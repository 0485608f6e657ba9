"""上传磁盘镜像为 VDI

流程: 解析 ISO SR -> 读取文件大小 -> 按该大小创建 VDI -> 记录 UUID -> 流式上传。
UUID 在上传开始前写入状态包，上传失败或被中断时清理阶段仍能找到并销毁它。

被中断的 import_raw_vdi 需要一段时间才会释放 VDI，
因此销毁按 RetryPolicy 重试（默认 3 次，间隔 1 秒）。
"""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING, Callable

from xenbuild.core.config import BuildConfig
from xenbuild.core.exceptions import ConfigError, TransferError
from xenbuild.core.models import VdiRecord
from xenbuild.core.retry import RetryPolicy, retry_call
from xenbuild.core.state import CLIENT, CONFIG, UI
from xenbuild.core.steps import BuildContext, Step, StepAction
from xenbuild.services.storage import resolve_iso_sr
from xenbuild.services.transfer import HTTPTransfer
from xenbuild.utils.net import import_raw_vdi_url

if TYPE_CHECKING:
    from xenbuild.core.protocols import HypervisorClient, TransferChannel
    from xenbuild.core.state import StateBag
    from xenbuild.core.ui import Ui

logger = logging.getLogger(__name__)

DESTROY_RETRY = RetryPolicy(attempts=3, delay=1.0)


class StepUploadVdi(Step):
    """创建 VDI 并把本地镜像写入其中

    参数:
        vdi_name_func: 运行时求值的 VDI 名称
        image_path_func: 运行时求值的镜像路径（前序步骤可能才确定），为空则跳过
        vdi_uuid_key: 记录 VDI UUID 的状态键
    """

    def __init__(
        self,
        vdi_name_func: Callable[[], str],
        image_path_func: Callable[[], str],
        vdi_uuid_key: str,
        *,
        transfer: TransferChannel | None = None,
        destroy_retry: RetryPolicy = DESTROY_RETRY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.vdi_name_func = vdi_name_func
        self.image_path_func = image_path_func
        self.vdi_uuid_key = vdi_uuid_key
        self.transfer = transfer or HTTPTransfer()
        self.destroy_retry = destroy_retry
        self.sleep = sleep

    @property
    def name(self) -> str:
        return f"StepUploadVdi[{self.vdi_uuid_key}]"

    def run(self, ctx: BuildContext, state: StateBag) -> StepAction:
        ui = ctx.ui
        config = state.get(CONFIG, BuildConfig)
        client: HypervisorClient = state.get(CLIENT)

        image_path = self.image_path_func()
        vdi_name = self.vdi_name_func()
        if not image_path:
            # 没有需要挂载的磁盘镜像
            return StepAction.CONTINUE

        ui.say(f"Step: 上传 VDI '{vdi_name}'")

        try:
            sr = resolve_iso_sr(client, config)
        except ConfigError as e:
            ui.error(f"无法获取 SR: {e}")
            return StepAction.HALT

        try:
            fh = open(image_path, "rb")
        except OSError as e:
            ui.error(f"无法打开磁盘镜像 '{image_path}': {e}")
            return StepAction.HALT

        with fh:
            try:
                file_length = os.fstat(fh.fileno()).st_size
            except OSError as e:
                ui.error(f"无法获取磁盘镜像 '{image_path}' 的大小: {e}")
                return StepAction.HALT

            record = VdiRecord(
                name_label=vdi_name,
                virtual_size=file_length,
                sr=sr,
                other_config={"temp": "temp"},
            )
            try:
                vdi_ref = client.create_vdi(record)
            except Exception as e:
                ui.error(f"无法创建 VDI '{vdi_name}': {e}")
                return StepAction.HALT

            try:
                vdi_uuid = client.get_vdi_uuid(vdi_ref)
            except Exception as e:
                ui.error(f"无法获取 VDI '{vdi_name}' 的 UUID: {e}")
                return StepAction.HALT
            state.put(self.vdi_uuid_key, vdi_uuid)
            logger.info("VDI '%s' 已创建: uuid=%s size=%d", vdi_name, vdi_uuid, file_length)

            url = import_raw_vdi_url(client.host, client.port, vdi_ref, client.session_id)
            try:
                self.transfer.upload(
                    url, fh, file_length, cancelled=lambda: ctx.cancelled,
                )
            except TransferError as e:
                ui.error(f"上传 VDI '{vdi_name}' ({vdi_uuid}) 失败: {e}")
                return StepAction.HALT

        return StepAction.CONTINUE

    def cleanup(self, state: StateBag) -> None:
        config = state.get(CONFIG, BuildConfig)
        ui: Ui = state.get(UI)

        if config.should_keep_vm(state):
            return

        vdi_uuid, ok = state.get_ok(self.vdi_uuid_key)
        if not ok or not vdi_uuid:
            # 未创建或已清理
            return

        client: HypervisorClient = state.get(CLIENT)
        try:
            vdi_ref = client.get_vdi_by_uuid(vdi_uuid)
        except Exception as e:
            ui.error(f"找不到 VDI '{vdi_uuid}': {e}")
            return

        try:
            retry_call(
                lambda: client.destroy_vdi(vdi_ref),
                self.destroy_retry,
                sleep=self.sleep,
                label=f"销毁 VDI {vdi_uuid}",
            )
        except Exception as e:
            ui.error(f"无法销毁 VDI '{vdi_uuid}': {e}")
            return

        ui.say(f"已销毁 VDI '{self.vdi_name_func()}'")
        state.put(self.vdi_uuid_key, "")
