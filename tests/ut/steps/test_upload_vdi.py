"""StepUploadVdi 单元测试"""

from __future__ import annotations

import pytest

from xenbuild.core.exceptions import TransferError
from xenbuild.core.runner import StepRunner
from xenbuild.core.state import CONFIG, STATE_CANCELLED, STATE_HALTED
from xenbuild.core.steps import StepAction
from xenbuild.steps.upload_vdi import StepUploadVdi

UUID_KEY = "iso_vdi_uuid"


class FakeTransfer:
    """消费全部字节；可配置为失败"""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def upload(self, url, source, size, *, cancelled=None):
        received = 0
        while True:
            chunk = source.read(1024 * 1024)
            if not chunk:
                break
            received += len(chunk)
        self.calls.append({"url": url, "size": size, "received": received})
        if self.error:
            raise self.error


@pytest.fixture
def image(tmp_path):
    p = tmp_path / "disk.iso"
    with open(p, "wb") as f:
        f.truncate(104857600)
    return str(p)


def _step(image_path, transfer=None, sleeps=None):
    return StepUploadVdi(
        vdi_name_func=lambda: "packer-centos.iso",
        image_path_func=lambda: image_path,
        vdi_uuid_key=UUID_KEY,
        transfer=transfer or FakeTransfer(),
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
    )


class TestRun:
    def test_uploads_whole_file(self, ctx, state, client, image):
        transfer = FakeTransfer()
        step = _step(image, transfer)

        assert step.run(ctx, state) is StepAction.CONTINUE

        assert len(client.created) == 1
        record = client.created[0]
        assert record.virtual_size == 104857600
        assert record.sr == "OpaqueRef:sr-iso"
        assert record.name_label == "packer-centos.iso"
        assert record.other_config == {"temp": "temp"}
        assert record.to_xenapi()["virtual_size"] == "104857600"
        assert record.to_xenapi()["SR"] == "OpaqueRef:sr-iso"
        assert state.get(UUID_KEY) == "uuid-vdi1"

        call = transfer.calls[0]
        assert call["size"] == call["received"] == 104857600
        assert call["url"].startswith("https://xs01.example.com:443/import_raw_vdi?")
        assert "vdi=OpaqueRef%3Avdi1" in call["url"]

    def test_empty_path_is_noop(self, ctx, state, client):
        step = _step("")
        assert step.run(ctx, state) is StepAction.CONTINUE
        assert client.created == []
        assert UUID_KEY not in state

    @pytest.mark.parametrize("matches", [[], ["OpaqueRef:a", "OpaqueRef:b"]])
    def test_ambiguous_sr_halts_without_creating(self, ctx, state, client, ui, image, matches):
        client.srs["iso-store"] = matches
        assert _step(image).run(ctx, state) is StepAction.HALT
        assert client.created == []
        assert any("iso-store" in e for e in ui.errors)

    def test_missing_file_halts(self, ctx, state, client, tmp_path):
        step = _step(str(tmp_path / "nope.iso"))
        assert step.run(ctx, state) is StepAction.HALT
        assert client.created == []

    def test_transfer_failure_keeps_uuid_for_cleanup(self, ctx, state, client, image):
        step = _step(image, FakeTransfer(error=TransferError("reset by peer")))
        assert step.run(ctx, state) is StepAction.HALT
        assert state.get(UUID_KEY) == "uuid-vdi1"

        state.put(STATE_HALTED, True)
        step.cleanup(state)
        assert client.destroyed == ["OpaqueRef:vdi1"]
        assert state.get(UUID_KEY) == ""


class TestCleanup:
    def _uploaded(self, ctx, state, image, sleeps=None):
        step = _step(image, sleeps=sleeps)
        step.run(ctx, state)
        return step

    def test_destroys_on_first_attempt(self, ctx, state, client, image):
        sleeps = []
        step = self._uploaded(ctx, state, image, sleeps)
        step.cleanup(state)

        assert client.destroy_attempts == 1
        assert client.destroyed == ["OpaqueRef:vdi1"]
        assert sleeps == []
        assert state.get(UUID_KEY) == ""

    def test_retries_while_vdi_locked(self, ctx, state, client, image, ui):
        sleeps = []
        client.destroy_failures = 2
        step = self._uploaded(ctx, state, image, sleeps)
        step.cleanup(state)

        assert client.destroy_attempts == 3
        assert sum(sleeps) == pytest.approx(2.0)
        assert state.get(UUID_KEY) == ""
        assert any("packer-centos.iso" in s for s in ui.said)

    def test_gives_up_after_three_attempts(self, ctx, state, client, image, ui):
        client.destroy_failures = 10
        step = self._uploaded(ctx, state, image)
        step.cleanup(state)

        assert client.destroy_attempts == 3
        assert state.get(UUID_KEY) == "uuid-vdi1"
        assert any("uuid-vdi1" in e for e in ui.errors)

    def test_idempotent(self, ctx, state, client, image):
        step = self._uploaded(ctx, state, image)
        step.cleanup(state)
        step.cleanup(state)
        step.cleanup(state)
        assert client.destroy_attempts == 1

    def test_nothing_recorded(self, state, client):
        _step("").cleanup(state)
        assert client.destroy_attempts == 0

    def test_on_success_destroys_when_cancelled(self, ctx, state, client, image):
        """on_success + 已取消：不保留，执行销毁"""
        state.get(CONFIG).keep_vm = "on_success"
        step = self._uploaded(ctx, state, image)
        state.put(STATE_CANCELLED, True)
        step.cleanup(state)
        assert client.destroyed == ["OpaqueRef:vdi1"]

    def test_on_success_keeps_successful_build(self, ctx, state, client, image):
        state.get(CONFIG).keep_vm = "on_success"
        step = self._uploaded(ctx, state, image)
        step.cleanup(state)
        assert client.destroy_attempts == 0
        assert state.get(UUID_KEY) == "uuid-vdi1"

    def test_always_keeps(self, ctx, state, client, image):
        state.get(CONFIG).keep_vm = "always"
        step = self._uploaded(ctx, state, image)
        state.put(STATE_HALTED, True)
        step.cleanup(state)
        assert client.destroy_attempts == 0

    def test_never_destroys_even_when_cancelled(self, ctx, state, client, image):
        step = self._uploaded(ctx, state, image)
        state.put(STATE_CANCELLED, True)
        step.cleanup(state)
        assert client.destroyed == ["OpaqueRef:vdi1"]


class TestWithRunner:
    def test_halt_after_upload_destroys_vdi(self, ctx, state, client, image):
        from xenbuild.core.steps import Step

        class Failing(Step):
            def run(self, ctx, state):
                return StepAction.HALT

        upload = _step(image)
        report = StepRunner([upload, Failing()], ctx).run(state)

        assert report.success is False
        assert report.cleaned == ["Failing", upload.name]
        assert client.destroyed == ["OpaqueRef:vdi1"]
