"""parallel-exec 异常类。

命令级错误（StartFailure / ExecutionFailure / TerminationFailure）只用于生成
事件中的错误文本，不会从 Runner.run 抛出；运行级结果由 CommandFailedError
和 RunInterruptedError 表示。
"""

from __future__ import annotations

import signal

__all__ = [
    "ParallelExecError",
    "ConfigError",
    "CommandError",
    "StartFailure",
    "ExecutionFailure",
    "TerminationFailure",
    "CommandFailedError",
    "RunInterruptedError",
    "describe_returncode",
]


class ParallelExecError(Exception):
    """parallel-exec 基础异常。"""
    pass


class ConfigError(ParallelExecError):
    """配置或命令输入错误。"""
    pass


class CommandError(ParallelExecError):
    """单条命令的错误。

    Attributes:
        command: 命令描述（shell 风格字符串）
    """

    prefix = "command had error"

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"{self.prefix}: {command}: {reason}")


class StartFailure(CommandError):
    """进程无法启动（如可执行文件不存在）。"""

    prefix = "command could not start"


class ExecutionFailure(CommandError):
    """进程已启动，但以非零状态退出或被信号终止。

    Attributes:
        returncode: 进程返回码（负数表示被信号终止）
    """

    def __init__(self, command: str, returncode: int) -> None:
        self.returncode = returncode
        super().__init__(command, describe_returncode(returncode))


class TerminationFailure(CommandError):
    """终止请求本身失败。"""

    prefix = "command had error on kill"


class CommandFailedError(ParallelExecError):
    """至少一条命令失败，且中断没有抢先完成。"""

    def __init__(self) -> None:
        super().__init__("command failed")


class RunInterruptedError(ParallelExecError):
    """运行被外部中断。"""

    def __init__(self) -> None:
        super().__init__("interrupted")


def describe_returncode(returncode: int) -> str:
    """把返回码转换为可读文本。"""
    if returncode >= 0:
        return f"exit status {returncode}"
    try:
        return f"signal: {signal.Signals(-returncode).name}"
    except ValueError:
        return f"signal: {-returncode}"
