"""运行事件模型定义。

Runner 在一次运行中发出四类事件，按发出顺序排列：

- run_started: 运行开始（总是第一个）
- cmd_started: 某条命令启动
- cmd_finished: 某条命令结束（正常退出、启动失败或被终止）
- run_finished: 运行结束（总是最后一个）

事件是一个封闭的标签联合类型（按 kind 区分），序列化格式为一行 JSON：
{"kind": ..., "time": ..., "fields": {...}, "error": ...}
fields 中的键（cmd / duration / err）是监控方依赖的契约，不可随意更改。
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

__all__ = [
    "EventKind",
    "EventBase",
    "RunStartedEvent",
    "CommandStartedEvent",
    "CommandFinishedEvent",
    "RunFinishedEvent",
    "Event",
    "EventHandler",
    "Clock",
    "utc_now",
    "format_duration",
    "run_started",
    "command_started",
    "command_finished",
    "run_finished",
    "parse_event",
    "log_event",
    "install_event_handler",
    "EVENT_HANDLER_NAME",
]

# 默认事件处理器使用的 logger
event_logger = logging.getLogger("parallel_exec.events")

EVENT_HANDLER_NAME = "parallel-exec-events"


class EventKind(str, Enum):
    """事件类型。"""

    RUN_STARTED = "run_started"
    CMD_STARTED = "cmd_started"
    CMD_FINISHED = "cmd_finished"
    RUN_FINISHED = "run_finished"


class EventBase(BaseModel):
    """所有事件的基类。

    Attributes:
        kind: 事件类型
        time: 事件发生时间（由 Runner 的 clock 提供）
        fields: 附加字段（cmd / duration / err）
        error: 错误文本（没有错误时为 None）
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    kind: str
    time: datetime
    fields: dict[str, str] = Field(default_factory=dict)
    error: str | None = None

    def to_log_line(self) -> str:
        """序列化为一行 JSON。"""
        return self.model_dump_json(exclude_none=True)


class RunStartedEvent(EventBase):
    """运行开始。"""

    kind: Literal["run_started"] = EventKind.RUN_STARTED.value


class CommandStartedEvent(EventBase):
    """命令启动。fields 包含 cmd。"""

    kind: Literal["cmd_started"] = EventKind.CMD_STARTED.value


class CommandFinishedEvent(EventBase):
    """命令结束。fields 包含 cmd、duration，失败时包含 err。"""

    kind: Literal["cmd_finished"] = EventKind.CMD_FINISHED.value


class RunFinishedEvent(EventBase):
    """运行结束。fields 包含 duration，失败时包含 err。"""

    kind: Literal["run_finished"] = EventKind.RUN_FINISHED.value


Event = Annotated[
    Union[RunStartedEvent, CommandStartedEvent, CommandFinishedEvent, RunFinishedEvent],
    Field(discriminator="kind"),
]

EventHandler = Callable[[EventBase], None]
Clock = Callable[[], datetime]

_event_adapter: TypeAdapter[Event] = TypeAdapter(Event)


def utc_now() -> datetime:
    """默认时钟。"""
    return datetime.now(timezone.utc)


def format_duration(delta: timedelta) -> str:
    """格式化耗时，如 1.503s / 12.4ms / 850µs。"""
    seconds = delta.total_seconds()
    if seconds >= 1 or seconds <= -1:
        return f"{seconds:.3f}s"
    if abs(seconds) >= 1e-3:
        return f"{seconds * 1e3:.1f}ms"
    return f"{seconds * 1e6:.0f}µs"


def _with_error(fields: dict[str, str], error: BaseException | None) -> str | None:
    if error is None:
        return None
    fields["err"] = str(error)
    return fields["err"]


def run_started(t: datetime) -> RunStartedEvent:
    return RunStartedEvent(time=t)


def command_started(t: datetime, cmd: str) -> CommandStartedEvent:
    return CommandStartedEvent(time=t, fields={"cmd": cmd})


def command_finished(
    t: datetime,
    cmd: str,
    start_time: datetime,
    error: BaseException | None = None,
) -> CommandFinishedEvent:
    fields = {"cmd": cmd, "duration": format_duration(t - start_time)}
    err = _with_error(fields, error)
    return CommandFinishedEvent(time=t, fields=fields, error=err)


def run_finished(
    t: datetime,
    start_time: datetime,
    error: BaseException | None = None,
) -> RunFinishedEvent:
    fields = {"duration": format_duration(t - start_time)}
    err = _with_error(fields, error)
    return RunFinishedEvent(time=t, fields=fields, error=err)


def parse_event(data: str | bytes) -> EventBase:
    """从 JSON 行解析事件。

    Raises:
        pydantic.ValidationError: 未知的 kind 或字段不合法
    """
    return _event_adapter.validate_json(data)


def install_event_handler() -> None:
    """为事件 logger 安装 stderr handler，只输出消息本身（一行 JSON）。

    重复调用只安装一次。
    """
    if any(h.get_name() == EVENT_HANDLER_NAME for h in event_logger.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(EVENT_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(message)s"))
    event_logger.addHandler(handler)
    event_logger.setLevel(logging.INFO)


def log_event(event: EventBase) -> None:
    """默认事件处理器：序列化为 JSON 并写入日志。

    调用方没有配置任何日志 handler 时，事件直接写到 stderr，
    而不是被默认的 WARNING 阈值丢弃。
    """
    if not event_logger.hasHandlers():
        install_event_handler()
    event_logger.info(event.to_log_line())
