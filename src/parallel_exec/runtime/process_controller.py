"""Per-command lifecycle owner with race-safe start and kill.

parallel-exec runtime module

This module provides:
- A three-state lifecycle (IDLE -> RUNNING -> FINISHED, or IDLE -> FINISHED)
- Process isolation in a new session/process group
- Idempotent run() and kill() that may be called concurrently
- Exactly one cmd_finished event for every cmd_started event

Key design points:
- The controller lock is never held while awaiting process exit, so kill()
  can always get in while a command is running
- A command killed before it started can never be started afterwards
- A command killed mid-flight reports only the kill outcome; its natural
  exit status is dropped
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from datetime import datetime
from enum import Enum
from typing import Any

from ..errors import ExecutionFailure, StartFailure, TerminationFailure
from ..events import Clock, EventHandler, command_finished, command_started
from .command import Command

__all__ = [
    "CommandState",
    "ProcessController",
    "DEFAULT_KILL_SIGNAL",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

DEFAULT_KILL_SIGNAL = signal.SIGTERM if IS_WINDOWS else signal.SIGKILL


class CommandState(str, Enum):
    """Lifecycle state of a controller. Transitions only move forward."""

    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"


class ProcessController:
    """Owns one command from launch to exit or forced termination.

    Example:
        controller = ProcessController(command, event_handler=log_event, clock=utc_now)
        ok = await controller.run()      # in one task
        await controller.kill()          # from anywhere, any number of times
    """

    def __init__(
        self,
        command: Command,
        event_handler: EventHandler,
        clock: Clock,
        kill_signal: int = DEFAULT_KILL_SIGNAL,
    ) -> None:
        self.command = command
        self.kill_signal = kill_signal
        self._emit = event_handler
        self._clock = clock
        self._state = CommandState.IDLE
        self._start_time: datetime | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CommandState:
        return self._state

    @property
    def start_time(self) -> datetime | None:
        return self._start_time

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    async def run(self) -> bool:
        """Launch the command and wait for it.

        Returns:
            False only for a failure that this call observed and reported
            (start failure or unsuccessful exit). Re-entry, or a race lost to
            kill(), returns True.
        """
        cmd = self.command.describe()
        async with self._lock:
            if self._state is not CommandState.IDLE:
                return True
            self._state = CommandState.RUNNING
            self._start_time = self._clock()
            self._emit(command_started(self._start_time, cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *self.command.argv,
                stdin=self.command.stdin,
                stdout=self.command.stdout,
                stderr=self.command.stderr,
                cwd=self.command.cwd,
                **self._build_subprocess_kwargs(),
            )
        except (OSError, ValueError) as e:
            error = StartFailure(cmd, str(e))
            async with self._lock:
                if self._state is CommandState.FINISHED:
                    return True
                self._state = CommandState.FINISHED
                self._emit(command_finished(self._clock(), cmd, self._start_time, error))
            logger.debug(f"Command failed to start: {error}")
            return False

        async with self._lock:
            # kill() won the race while the process was being launched
            killed_during_launch = self._state is CommandState.FINISHED
            if killed_during_launch:
                logger.debug(f"Command killed during launch pid={process.pid}")
                try:
                    self._send_kill(process)
                except OSError as e:
                    logger.warning(f"Error terminating subprocess pid={process.pid}: {e}")
            else:
                self._process = process

        if killed_during_launch:
            # reap the child so its transport is closed
            await process.wait()
            return True

        logger.debug(f"Started subprocess pid={process.pid} argv={self.command.executable}")

        returncode = await process.wait()
        finish_time = self._clock()
        logger.debug(f"Subprocess completed pid={process.pid} returncode={returncode}")

        error = ExecutionFailure(cmd, returncode) if returncode != 0 else None
        async with self._lock:
            if self._state is CommandState.FINISHED:
                return True
            self._state = CommandState.FINISHED
            self._emit(command_finished(finish_time, cmd, self._start_time, error))
        return error is None

    async def kill(self) -> None:
        """Move the controller to FINISHED, terminating the process if it runs.

        A controller that never started is finished silently and will refuse
        any later run(). Calling kill() again has no effect.
        """
        async with self._lock:
            if self._state is CommandState.IDLE:
                self._state = CommandState.FINISHED
                return
            if self._state is CommandState.FINISHED:
                return
            self._state = CommandState.FINISHED

            cmd = self.command.describe()
            error: TerminationFailure | None = None
            process = self._process
            if process is not None and process.returncode is None:
                try:
                    self._send_kill(process)
                except OSError as e:
                    error = TerminationFailure(cmd, str(e))
                    logger.warning(f"Error terminating subprocess pid={process.pid}: {e}")
            self._emit(command_finished(self._clock(), cmd, self._start_time, error))

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs."""
        kwargs: dict[str, Any] = {}

        if self.command.env is not None:
            kwargs["env"] = dict(self.command.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # own session, so a terminal Ctrl+C reaches the runner and not the children
            kwargs["start_new_session"] = True

        return kwargs

    def _send_kill(self, process: asyncio.subprocess.Process) -> None:
        """Signal the process group, falling back to the process itself.

        A process that has already vanished is not an error.

        Raises:
            OSError: If the signal could not be delivered
        """
        if IS_WINDOWS:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            return

        try:
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, self.kill_signal)
            logger.debug(f"Sent signal {self.kill_signal} to process group pgid={pgid}")
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={process.pid}")
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            try:
                process.send_signal(self.kill_signal)
            except ProcessLookupError:
                pass

    def __repr__(self) -> str:
        return f"ProcessController(cmd={self.command.describe()!r}, state={self._state.value})"
