from __future__ import annotations

import time
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(str, Enum):
    INFO = "info"
    ACTION = "action"
    WARNING = "warning"
    ERROR = "error"


LOG_PREFIX = {
    LogLevel.INFO: "[INFO]",
    LogLevel.ACTION: "[ACTION]",
    LogLevel.WARNING: "[WARN]",
    LogLevel.ERROR: "[ERROR]",
}


class LogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(default_factory=time.time)
    level: LogLevel = LogLevel.INFO
    message: str = ""

    def format_line(self) -> str:
        clock = time.strftime("%H:%M:%S", time.localtime(self.timestamp))
        millis = int((self.timestamp % 1) * 1000)
        return f"{clock}.{millis:03d} {LOG_PREFIX[self.level]} {self.message}"


class StatusUpdate(BaseModel):
    """Coarse status plus the action-in-progress text for live progress displays."""

    model_config = ConfigDict(frozen=True)

    status: str
    detail: str = ""
    paused: bool = False
    timestamp: float = Field(default_factory=time.time)


class ExecutionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


class ExecutionStatus(BaseModel):
    """Run status; pause is tracked separately on the executor, not as a state."""

    model_config = ConfigDict(frozen=True)

    state: ExecutionState = ExecutionState.IDLE
    message: Optional[str] = None

    @classmethod
    def idle(cls) -> "ExecutionStatus":
        return cls(state=ExecutionState.IDLE)

    @classmethod
    def running(cls) -> "ExecutionStatus":
        return cls(state=ExecutionState.RUNNING)

    @classmethod
    def completed(cls) -> "ExecutionStatus":
        return cls(state=ExecutionState.COMPLETED)

    @classmethod
    def cancelled(cls) -> "ExecutionStatus":
        return cls(state=ExecutionState.CANCELLED)

    @classmethod
    def error(cls, message: str) -> "ExecutionStatus":
        return cls(state=ExecutionState.ERROR, message=message)

    @property
    def is_running(self) -> bool:
        return self.state == ExecutionState.RUNNING


class TaskSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    message: str


class TaskFailed(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["failed"] = "failed"
    error: str


class TaskCancelled(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["cancelled"] = "cancelled"


TaskResult = Union[TaskSuccess, TaskFailed, TaskCancelled]


__all__ = [
    "ExecutionState",
    "ExecutionStatus",
    "LogEntry",
    "LogLevel",
    "StatusUpdate",
    "TaskCancelled",
    "TaskFailed",
    "TaskResult",
    "TaskSuccess",
]
