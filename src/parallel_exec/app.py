"""parallel-exec 命令行入口。

每行一条命令，从文件或 stdin 读取，按 shell 规则分词后并发执行：

    printf 'make lint\\nmake test\\n' | parallel-exec --fast-fail

退出码:
    0: 全部成功
    1: 有命令失败，或输入无效
    130: 被中断 (128 + SIGINT)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import shlex
import sys
from collections.abc import Iterable, Sequence

from . import __version__
from .config import Config, load_config
from .errors import ConfigError
from .events import install_event_handler
from .runtime.command import Command
from .runtime.runner import Runner, RunOutcome

__all__ = ["parse_command_lines", "build_parser", "configure_logging", "main"]

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def parse_command_lines(lines: Iterable[str], source: str = "<stdin>") -> list[Command]:
    """把文本行解析为命令列表。

    空行、注释行以及分词后为空的行会被跳过。

    Raises:
        ConfigError: 某行无法分词（如引号不匹配）
    """
    commands: list[Command] = []
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            argv = shlex.split(line, comments=True)
        except ValueError as e:
            raise ConfigError(f"{source}:{lineno}: cannot parse command: {e}") from e
        if not argv:
            continue
        commands.append(Command(argv=tuple(argv)))
    return commands


def build_parser(config: Config) -> argparse.ArgumentParser:
    """构建参数解析器，默认值来自环境变量配置。"""
    parser = argparse.ArgumentParser(
        prog="parallel-exec",
        description="Run commands in parallel, one command per input line.",
    )
    parser.add_argument(
        "files",
        nargs="*",
        metavar="FILE",
        help="files with one command per line (default: stdin)",
    )
    parser.add_argument(
        "--fast-fail",
        action="store_true",
        default=config.fast_fail,
        help="stop all commands on the first command failure",
    )
    parser.add_argument(
        "--max-concurrent-cmds",
        type=int,
        default=config.max_concurrent,
        metavar="N",
        help="maximum number of processes to run concurrently, or unlimited if 0 "
        "(default: %(default)s)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(config: Config) -> None:
    """配置日志输出。

    事件行使用单独的 handler，只输出消息本身（一行 JSON）。
    """
    log_handlers: list[logging.Handler] = []
    log_format = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(log_format)
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(log_format)
        log_handlers.append(stderr_handler)
        log_level = logging.WARNING

    # root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers)
    logging.getLogger("parallel_exec").setLevel(log_level)

    install_event_handler()
    logging.getLogger("parallel_exec.events").propagate = config.log_debug


def _read_commands(files: Sequence[str]) -> list[Command]:
    if not files:
        return parse_command_lines(sys.stdin)
    commands: list[Command] = []
    for path in files:
        try:
            with open(path, encoding="utf-8") as f:
                commands.extend(parse_command_lines(f, source=path))
        except OSError as e:
            raise ConfigError(f"cannot read {path}: {e}") from e
    return commands


def main(argv: Sequence[str] | None = None) -> int:
    """主入口点。

    Returns:
        进程退出码
    """
    config = load_config()
    args = build_parser(config).parse_args(argv)
    configure_logging(config)
    logger.debug(f"Starting parallel-exec: {config}")

    try:
        commands = _read_commands(args.files)
    except ConfigError as e:
        print(f"parallel-exec: {e}", file=sys.stderr)
        return EXIT_FAILURE

    options = config.runner_options(
        fast_fail=args.fast_fail,
        max_concurrent=args.max_concurrent_cmds,
    )
    outcome = asyncio.run(Runner(options).run(commands))
    if outcome is RunOutcome.SUCCESS:
        return 0

    print(f"parallel-exec: {outcome.error}", file=sys.stderr)
    return EXIT_INTERRUPTED if outcome is RunOutcome.INTERRUPTED else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
