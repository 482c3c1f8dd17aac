"""Immutable description of one external command."""

from __future__ import annotations

import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Union

__all__ = ["Command", "StreamBinding"]

# None = inherit from the parent, an int such as subprocess.DEVNULL, or an open file
StreamBinding = Union[None, int, IO[Any]]


@dataclass(frozen=True)
class Command:
    """A fully resolved external command.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory (None = inherit)
        env: Environment variables (None = inherit parent)
        stdin: Input binding, defaults to the null device
        stdout: Output binding (None = inherit)
        stderr: Error output binding (None = inherit)
    """

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    stdin: StreamBinding = subprocess.DEVNULL
    stdout: StreamBinding = None
    stderr: StreamBinding = None

    def __post_init__(self) -> None:
        if isinstance(self.argv, str) or not isinstance(self.argv, Sequence):
            raise TypeError("argv must be a sequence of strings")
        if not self.argv:
            raise ValueError("argv must not be empty")
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "argv", tuple(str(arg) for arg in self.argv))
        if isinstance(self.cwd, str):
            object.__setattr__(self, "cwd", Path(self.cwd))
        for name in ("stdin", "stdout", "stderr"):
            # nobody drains a pipe, so the child would block on a full buffer
            if getattr(self, name) == subprocess.PIPE:
                raise ValueError(f"{name}=PIPE is not supported")

    @classmethod
    def from_args(cls, executable: str, *args: str, **kwargs: Any) -> "Command":
        """Build a command from an executable and its arguments."""
        return cls(argv=(executable, *args), **kwargs)

    @property
    def executable(self) -> str:
        return self.argv[0]

    def describe(self) -> str:
        """Shell-quoted command line, as reported in events."""
        return shlex.join(self.argv)

    def __str__(self) -> str:
        return self.describe()
