"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from parallel_exec.events import EventBase, EventKind  # noqa: E402
from parallel_exec.runtime.command import Command  # noqa: E402

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_CMD_PATH = FIXTURES_DIR / "fake_cmd.py"


class EventRecorder:
    """线程安全的事件收集器，可直接作为 event_handler 使用。"""

    def __init__(self) -> None:
        self.events: list[EventBase] = []
        self._lock = threading.Lock()

    def __call__(self, event: EventBase) -> None:
        with self._lock:
            self.events.append(event)

    def kinds(self) -> list[str]:
        return [e.kind for e in self.events]

    def of_kind(self, kind: EventKind) -> list[EventBase]:
        return [e for e in self.events if e.kind == kind]

    def for_command(self, command: Command) -> list[EventBase]:
        cmd = command.describe()
        return [e for e in self.events if e.fields.get("cmd") == cmd]


class StepClock:
    """确定性时钟：每次调用前进固定步长。"""

    def __init__(self, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.step = step
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            current = self.now
            self.now += self.step
            return current


@pytest.fixture
def recorder() -> EventRecorder:
    """事件收集器。"""
    return EventRecorder()


@pytest.fixture
def step_clock() -> StepClock:
    """确定性时钟。"""
    return StepClock()


@pytest.fixture
def fake_cmd() -> Callable[..., Command]:
    """构造调用 fake_cmd.py 的命令。

    Example:
        fake_cmd(duration=0.5, exit_code=1, marker=tmp_path / "m")
    """

    def make(duration: float = 0.0, exit_code: int = 0, marker: Path | None = None) -> Command:
        argv = [sys.executable, str(FAKE_CMD_PATH), "--duration", str(duration), "--exit-code", str(exit_code)]
        if marker is not None:
            argv += ["--marker", str(marker)]
        return Command(argv=tuple(argv))

    return make
