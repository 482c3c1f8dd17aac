"""Command validation tests."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from parallel_exec.runtime.command import Command


class TestCommand:

    def test_normalizes_argv_and_cwd(self):
        command = Command(argv=["echo", 1], cwd="/tmp")  # type: ignore[arg-type]

        assert command.argv == ("echo", "1")
        assert command.cwd == Path("/tmp")
        assert command.stdin == subprocess.DEVNULL
        assert command.stdout is None

    def test_from_args(self):
        command = Command.from_args("ls", "-l", "my dir")

        assert command.executable == "ls"
        assert command.describe() == "ls -l 'my dir'"
        assert str(command) == command.describe()

    def test_empty_argv(self):
        with pytest.raises(ValueError):
            Command(argv=())

    def test_string_argv(self):
        with pytest.raises(TypeError):
            Command(argv="echo hi")  # type: ignore[arg-type]

    @pytest.mark.parametrize("stream", ["stdin", "stdout", "stderr"])
    def test_pipe_rejected(self, stream):
        with pytest.raises(ValueError, match="PIPE"):
            Command(argv=("cat",), **{stream: subprocess.PIPE})

    def test_hashable_and_equal(self):
        assert Command(argv=("true",)) == Command(argv=["true"])  # type: ignore[arg-type]
        assert len({Command(argv=("true",)), Command(argv=("true",))}) == 1
