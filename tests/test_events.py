"""事件模型测试。

测试：
- 事件工厂函数生成的字段
- JSON 序列化契约（kind / time / fields / error）
- 解析回类型化事件，拒绝未知类型
- 默认日志处理器
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from parallel_exec.errors import ExecutionFailure
from parallel_exec.events import (
    CommandFinishedEvent,
    CommandStartedEvent,
    EventKind,
    RunFinishedEvent,
    RunStartedEvent,
    command_finished,
    command_started,
    format_duration,
    log_event,
    parse_event,
    run_finished,
    run_started,
)

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestFactories:
    """事件工厂函数测试。"""

    def test_run_started(self):
        event = run_started(T0)
        assert isinstance(event, RunStartedEvent)
        assert event.kind == EventKind.RUN_STARTED
        assert event.fields == {}
        assert event.error is None

    def test_command_started(self):
        event = command_started(T0, "echo hi")
        assert isinstance(event, CommandStartedEvent)
        assert event.fields == {"cmd": "echo hi"}

    def test_command_finished_success(self):
        event = command_finished(T0 + timedelta(seconds=2), "echo hi", T0)
        assert isinstance(event, CommandFinishedEvent)
        assert event.fields == {"cmd": "echo hi", "duration": "2.000s"}
        assert event.error is None

    def test_command_finished_with_error(self):
        error = ExecutionFailure("false", 1)
        event = command_finished(T0 + timedelta(milliseconds=5), "false", T0, error)
        assert event.fields["err"] == "command had error: false: exit status 1"
        assert event.error == event.fields["err"]
        assert event.fields["duration"] == "5.0ms"

    def test_run_finished(self):
        event = run_finished(T0 + timedelta(seconds=1), T0, RuntimeError("interrupted"))
        assert isinstance(event, RunFinishedEvent)
        assert event.fields == {"duration": "1.000s", "err": "interrupted"}

    def test_events_are_immutable(self):
        event = run_started(T0)
        with pytest.raises(ValidationError):
            event.error = "x"  # type: ignore[misc]


class TestFormatDuration:
    """耗时格式化测试。"""

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(seconds=3, milliseconds=250), "3.250s"),
            (timedelta(milliseconds=12, microseconds=400), "12.4ms"),
            (timedelta(microseconds=850), "850µs"),
            (timedelta(0), "0µs"),
        ],
    )
    def test_format(self, delta, expected):
        assert format_duration(delta) == expected


class TestSerialization:
    """JSON 序列化契约测试。"""

    def test_log_line_shape(self):
        event = command_finished(T0 + timedelta(seconds=1), "false", T0, ExecutionFailure("false", 1))
        data = json.loads(event.to_log_line())

        assert set(data) == {"kind", "time", "fields", "error"}
        assert data["kind"] == "cmd_finished"
        assert set(data["fields"]) == {"cmd", "duration", "err"}

    def test_error_omitted_when_none(self):
        data = json.loads(run_started(T0).to_log_line())
        assert "error" not in data
        assert data["kind"] == "run_started"

    @pytest.mark.parametrize(
        "event",
        [
            run_started(T0),
            command_started(T0, "sleep 5"),
            command_finished(T0, "sleep 5", T0, RuntimeError("signal: SIGKILL")),
            run_finished(T0, T0),
        ],
    )
    def test_parse_restores_type(self, event):
        parsed = parse_event(event.to_log_line())
        assert type(parsed) is type(event)
        assert parsed == event

    def test_parse_rejects_unknown_kind(self):
        line = json.dumps({"kind": "cmd_paused", "time": T0.isoformat(), "fields": {}})
        with pytest.raises(ValidationError):
            parse_event(line)

    def test_parse_rejects_extra_keys(self):
        line = json.dumps({"kind": "run_started", "time": T0.isoformat(), "seq": 1})
        with pytest.raises(ValidationError):
            parse_event(line)


class TestLogEvent:
    """默认事件处理器测试。"""

    def test_logs_one_json_line(self, caplog):
        event = command_started(T0, "echo hi")

        with caplog.at_level(logging.INFO, logger="parallel_exec.events"):
            log_event(event)

        records = [r for r in caplog.records if r.name == "parallel_exec.events"]
        assert len(records) == 1
        assert json.loads(records[0].getMessage())["fields"] == {"cmd": "echo hi"}

    @pytest.fixture
    def bare_events_logger(self):
        """调用方未配置日志：事件 logger 链路上没有任何 handler。"""
        logger = logging.getLogger("parallel_exec.events")
        saved = (list(logger.handlers), logger.level, logger.propagate)
        logger.handlers[:] = []
        logger.setLevel(logging.NOTSET)
        logger.propagate = False
        yield logger
        logger.handlers[:] = saved[0]
        logger.setLevel(saved[1])
        logger.propagate = saved[2]

    def test_unconfigured_logging_writes_to_stderr(self, bare_events_logger, capsys):
        """未配置日志时事件不会被 WARNING 阈值丢弃。"""
        log_event(command_started(T0, "echo hi"))
        log_event(run_finished(T0, T0))

        lines = capsys.readouterr().err.splitlines()
        assert [json.loads(line)["kind"] for line in lines] == ["cmd_started", "run_finished"]
        assert len(bare_events_logger.handlers) == 1
