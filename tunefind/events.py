from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from .stats_store import ScanStats


class PipelineState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    RECOGNIZING = "recognizing"
    RESOLVING = "resolving"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PipelineState.SUCCEEDED, PipelineState.FAILED)


@dataclass(frozen=True)
class StateChanged:
    previous: PipelineState
    current: PipelineState


@dataclass(frozen=True)
class ProgressUpdated:
    percent: int
    label: str


@dataclass(frozen=True)
class Notification:
    level: str  # "success" | "error"
    message: str
    code: Optional[str] = None


@dataclass(frozen=True)
class RunCompleted:
    success: bool
    stats: ScanStats


PipelineEvent = Union[StateChanged, ProgressUpdated, Notification, RunCompleted]
Listener = Callable[[PipelineEvent], None]
