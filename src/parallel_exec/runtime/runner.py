"""Bounded-concurrency runner for a batch of external commands.

The runner builds one ProcessController per command and starts one task per
controller, gated by a ConcurrencyGate. Three causes can complete a run:

- every command task has finished ("all done")
- a command failed while fast-fail is enabled
- an interruption arrived (SIGINT/SIGTERM or Runner.interrupt())

The first cause to resolve the completion future wins and fixes the outcome.
Fast-fail and interruption race without a priority between them. Whatever the
cause, every controller is killed before run() returns, so no process
outlives the call and run_finished is always the last event.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ..errors import CommandFailedError, ParallelExecError, RunInterruptedError
from ..events import Clock, EventHandler, log_event, run_finished, run_started, utc_now
from ..signal_manager import DEFAULT_INTERRUPT_SIGNALS, SignalManager
from .command import Command
from .gate import ConcurrencyGate
from .process_controller import DEFAULT_KILL_SIGNAL, ProcessController

__all__ = [
    "RunOutcome",
    "RunnerOptions",
    "Runner",
    "run_commands",
    "default_max_concurrent",
]

logger = logging.getLogger(__name__)


def default_max_concurrent() -> int:
    """Host parallelism hint."""
    return os.cpu_count() or 1


class RunOutcome(str, Enum):
    """Terminal result of a run."""

    SUCCESS = "success"
    COMMAND_FAILED = "command_failed"
    INTERRUPTED = "interrupted"

    @property
    def ok(self) -> bool:
        return self is RunOutcome.SUCCESS

    @property
    def error(self) -> ParallelExecError | None:
        """Exception describing the outcome, or None on success."""
        if self is RunOutcome.COMMAND_FAILED:
            return CommandFailedError()
        if self is RunOutcome.INTERRUPTED:
            return RunInterruptedError()
        return None

    def raise_for_outcome(self) -> None:
        """Raise the outcome's exception unless the run succeeded."""
        error = self.error
        if error is not None:
            raise error


@dataclass(frozen=True)
class RunnerOptions:
    """Configuration for one Runner.

    Attributes:
        fast_fail: Complete the run as soon as one command fails
        max_concurrent: Maximum simultaneously running commands, 0 = unlimited
        event_handler: Called synchronously with every lifecycle event
        clock: Time source for event timestamps and durations
        kill_signal: Signal sent to the process group on kill
        interrupt_signals: OS signals that interrupt the run
    """

    fast_fail: bool = False
    max_concurrent: int = field(default_factory=default_max_concurrent)
    event_handler: EventHandler = log_event
    clock: Clock = utc_now
    kill_signal: int = DEFAULT_KILL_SIGNAL
    interrupt_signals: tuple[int, ...] = DEFAULT_INTERRUPT_SIGNALS

    def with_changes(self, **changes: Any) -> "RunnerOptions":
        return replace(self, **changes)


class _Cause(str, Enum):
    ALL_DONE = "all_done"
    FAST_FAIL = "fast_fail"
    INTERRUPT = "interrupt"


class Runner:
    """Runs commands with bounded concurrency.

    Example:
        runner = Runner(RunnerOptions(fast_fail=True, max_concurrent=4))
        outcome = await runner.run([
            Command(argv=("make", "lint")),
            Command(argv=("make", "test")),
        ])
        outcome.raise_for_outcome()
    """

    def __init__(self, options: RunnerOptions | None = None) -> None:
        self.options = options if options is not None else RunnerOptions()
        self._signal_manager: SignalManager | None = None

    def interrupt(self) -> None:
        """Interrupt the active run. Safe to call from any thread."""
        manager = self._signal_manager
        if manager is None:
            logger.debug("interrupt() called with no active run")
            return
        manager.request_interrupt()

    async def run(self, commands: Iterable[Command]) -> RunOutcome:
        """Run all commands and return the single terminal outcome.

        Individual command errors are only reported through events.

        Raises:
            Exception: Whatever the event handler raised, after all
                processes have been killed
        """
        options = self.options
        emit = options.event_handler
        controllers = [
            ProcessController(cmd, emit, options.clock, kill_signal=options.kill_signal)
            for cmd in commands
        ]
        gate = ConcurrencyGate(options.max_concurrent)
        loop = asyncio.get_running_loop()
        completion: asyncio.Future[_Cause] = loop.create_future()
        failed = False

        def complete(cause: _Cause) -> None:
            if not completion.done():
                logger.debug(f"Run completing: cause={cause.value}")
                completion.set_result(cause)

        async def run_one(controller: ProcessController) -> None:
            nonlocal failed
            async with gate.slot():
                # checked after taking the permit, so queued commands never start late
                if completion.done():
                    return
                if not await controller.run():
                    failed = True
                    if options.fast_fail:
                        complete(_Cause.FAST_FAIL)

        async def wait_all(tasks: list[asyncio.Task[None]]) -> None:
            try:
                await asyncio.gather(*tasks)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not completion.done():
                    completion.set_exception(e)
                return
            complete(_Cause.ALL_DONE)

        async def watch_interrupt(manager: SignalManager) -> None:
            await manager.wait_for_interrupt()
            complete(_Cause.INTERRUPT)

        signal_manager = SignalManager(options.interrupt_signals)
        self._signal_manager = signal_manager
        workers: list[asyncio.Task[None]] = []
        helpers: list[asyncio.Task[None]] = []
        # stays "interrupted" if run() itself is cancelled
        run_error: BaseException | None = RunInterruptedError()
        propagating = True

        start_time = options.clock()
        emit(run_started(start_time))
        try:
            await signal_manager.start()
            workers = [
                asyncio.create_task(run_one(c), name=f"cmd-{i}")
                for i, c in enumerate(controllers)
            ]
            helpers = [
                asyncio.create_task(wait_all(workers), name="all-done"),
                asyncio.create_task(watch_interrupt(signal_manager), name="interrupt-watcher"),
            ]

            cause = await completion
            if cause is _Cause.INTERRUPT:
                outcome = RunOutcome.INTERRUPTED
            elif failed:
                outcome = RunOutcome.COMMAND_FAILED
            else:
                outcome = RunOutcome.SUCCESS
            run_error = outcome.error
            propagating = False
        except Exception as e:
            run_error = e
            raise
        finally:
            sweep_error = await self._shutdown(controllers, workers + helpers, signal_manager)
            self._signal_manager = None
            if sweep_error is not None and propagating:
                logger.debug(f"Event handler failed during kill sweep: {sweep_error}")
                sweep_error = None
            if sweep_error is not None:
                run_error = sweep_error
            emit(run_finished(options.clock(), start_time, run_error))
            if sweep_error is not None:
                raise sweep_error

        return outcome

    async def _shutdown(
        self,
        controllers: list[ProcessController],
        tasks: list[asyncio.Task[None]],
        signal_manager: SignalManager,
    ) -> Exception | None:
        """Kill every controller, then reap helper tasks and restore signals.

        Returns:
            The first exception raised by the event handler during the kill
            sweep. Every controller is killed regardless.
        """
        first_error: Exception | None = None
        try:
            for controller in controllers:
                try:
                    await controller.kill()
                except Exception as e:
                    # the process was signalled before the handler ran
                    if first_error is None:
                        first_error = e
                    logger.warning(f"Event handler error while killing {controller.command}: {e}")
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError):
                    try:
                        await task
                    except Exception as e:
                        # surfaced through the completion future already
                        logger.debug(f"Task {task.get_name()} ended with {type(e).__name__}: {e}")

            await signal_manager.stop()

        return first_error


def run_commands(
    commands: Iterable[Command],
    options: RunnerOptions | None = None,
) -> RunOutcome:
    """Synchronous wrapper around Runner.run()."""
    return asyncio.run(Runner(options).run(commands))
