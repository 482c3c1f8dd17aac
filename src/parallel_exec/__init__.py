"""parallel-exec - 有界并发的外部命令执行器。

环境变量:
    PEX_MAX_CONCURRENT: 最大并发命令数（0=不限制，默认 CPU 核数）
    PEX_FAST_FAIL: 首个失败时结束运行 (默认 false)
    PEX_KILL_SIGNAL: 终止信号 kill/term/int (默认 kill)
    PEX_LOG_DEBUG: 日志输出到临时文件 (默认 false)

用法:
    parallel-exec --fast-fail commands.txt
"""

__version__ = "0.1.0"

from .errors import CommandFailedError, ParallelExecError, RunInterruptedError
from .events import Event, EventKind, log_event, parse_event
from .runtime import Command, Runner, RunnerOptions, RunOutcome, run_commands

__all__ = [
    "__version__",
    "Command",
    "Runner",
    "RunnerOptions",
    "RunOutcome",
    "run_commands",
    "Event",
    "EventKind",
    "log_event",
    "parse_event",
    "ParallelExecError",
    "CommandFailedError",
    "RunInterruptedError",
]
