"""构建步骤抽象

每个步骤有两个阶段:
  - run(ctx, state) -> StepAction: 执行副作用，读写状态包，返回继续或中止
  - cleanup(state): 回收本步骤可能创建的资源；自行记录失败，不向外抛异常

BuildContext 携带取消信号和注入的 Ui，长时间阻塞的步骤可轮询 ctx.cancelled。
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from xenbuild.core.ui import LogUi

if TYPE_CHECKING:
    from xenbuild.core.state import StateBag
    from xenbuild.core.ui import Ui


class StepAction(str, Enum):
    """步骤执行结果"""

    CONTINUE = "continue"
    HALT = "halt"


@dataclass
class BuildContext:
    """单次构建的执行上下文"""

    ui: Ui = field(default_factory=LogUi)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()


class Step(ABC):
    """构建步骤基类"""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def run(self, ctx: BuildContext, state: StateBag) -> StepAction:
        """执行步骤"""

    def cleanup(self, state: StateBag) -> None:
        """回收资源（默认无操作）"""
        return None
