"""内置构建步骤"""

from xenbuild.steps.console_port import StepGetConsolePort
from xenbuild.steps.upload_vdi import StepUploadVdi

__all__ = [
    "StepGetConsolePort",
    "StepUploadVdi",
]
