"""parallel-exec 环境变量配置管理。

环境变量:
    PEX_MAX_CONCURRENT: 最大并发命令数
        - 默认为 CPU 核数
        - 0 = 不限制
        - 负数或无效值使用默认值

    PEX_FAST_FAIL: 首个命令失败时立即结束运行
        - true/1/yes/on = 开启
        - 其他 = 关闭 (默认)

    PEX_KILL_SIGNAL: 终止命令时发送的信号
        - kill = SIGKILL (默认)
        - term = SIGTERM
        - int = SIGINT

    PEX_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

配置在每次调用时构造，不存在进程级的可变默认值。
"""

from __future__ import annotations

import os
import signal
import sys
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .runtime.process_controller import DEFAULT_KILL_SIGNAL
from .runtime.runner import RunnerOptions, default_max_concurrent

__all__ = ["Config", "load_config"]

# PEX_KILL_SIGNAL 可选值
KILL_SIGNALS: dict[str, int] = {"term": signal.SIGTERM, "int": signal.SIGINT}
if sys.platform != "win32":
    KILL_SIGNALS["kill"] = signal.SIGKILL


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


def _parse_max_concurrent(value: str | None) -> int:
    """解析最大并发数。0 表示不限制。"""
    if not value or not value.strip():
        return default_max_concurrent()
    try:
        n = int(value)
    except ValueError:
        return default_max_concurrent()
    return n if n >= 0 else default_max_concurrent()


def _parse_kill_signal(value: str | None) -> int:
    """解析终止信号，无效值使用默认值。"""
    if not value:
        return DEFAULT_KILL_SIGNAL
    return KILL_SIGNALS.get(value.strip().lower(), DEFAULT_KILL_SIGNAL)


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "parallel-exec"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"pex_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """parallel-exec 配置。

    Attributes:
        max_concurrent: 最大并发命令数，0 表示不限制
        fast_fail: 首个失败时结束运行
        kill_signal: 终止命令时发送的信号
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    max_concurrent: int = field(default_factory=default_max_concurrent)
    fast_fail: bool = False
    kill_signal: int = DEFAULT_KILL_SIGNAL
    log_debug: bool = False
    log_file: str | None = None

    def runner_options(self, **overrides: Any) -> RunnerOptions:
        """构造本次运行的 RunnerOptions。

        Args:
            overrides: 覆盖配置的字段（如 event_handler、clock）
        """
        options = RunnerOptions(
            fast_fail=self.fast_fail,
            max_concurrent=self.max_concurrent,
            kill_signal=self.kill_signal,
        )
        return options.with_changes(**overrides) if overrides else options

    def __repr__(self) -> str:
        max_str = str(self.max_concurrent) if self.max_concurrent > 0 else "unlimited"
        return (
            f"Config(max_concurrent={max_str}, "
            f"fast_fail={self.fast_fail}, "
            f"kill_signal={signal.Signals(self.kill_signal).name}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config(environ: Mapping[str, str] | None = None) -> Config:
    """从环境变量加载配置。

    Args:
        environ: 环境变量映射（默认 os.environ）
    """
    env = os.environ if environ is None else environ
    log_debug = _parse_bool(env.get("PEX_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        max_concurrent=_parse_max_concurrent(env.get("PEX_MAX_CONCURRENT")),
        fast_fail=_parse_bool(env.get("PEX_FAST_FAIL"), default=False),
        kill_signal=_parse_kill_signal(env.get("PEX_KILL_SIGNAL")),
        log_debug=log_debug,
        log_file=log_file,
    )
