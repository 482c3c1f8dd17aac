"""Runtime module for bounded-concurrency command execution.

This module provides the admission gate, the per-command process controller
and the runner that orchestrates them, with reliable termination of every
process before a run returns.
"""

from __future__ import annotations

from .command import Command
from .gate import ConcurrencyGate
from .process_controller import CommandState, ProcessController
from .runner import Runner, RunnerOptions, RunOutcome, run_commands

__all__ = [
    "Command",
    "CommandState",
    "ConcurrencyGate",
    "ProcessController",
    "Runner",
    "RunnerOptions",
    "RunOutcome",
    "run_commands",
]
