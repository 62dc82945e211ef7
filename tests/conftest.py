"""
Shared fixtures.

FakeTransport stands in for a host: commands are answered from a list
of scripted (regex, output, exit code) handlers and files live in a dict.
Whatever a command gets on stdin is kept in `inputs`, next to `commands`.
"""

import re
import shlex
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest

from lempkit.core.executor import Executor, reset_executor, use_executor
from lempkit.core.resource import Platform
from lempkit.transport.base import Transport

Response = Union[Tuple[str, int], Callable[[str], Tuple[str, int]]]


class FakeTransport(Transport):
    """Scripted transport. Unmatched commands succeed with no output."""

    def __init__(self, files: Dict[str, bytes] = None):
        self.files: Dict[str, bytes] = dict(files or {})
        self.commands: List[str] = []
        self.inputs: List[Optional[str]] = []
        self._handlers: List[Tuple[re.Pattern, Response]] = []

    def on(self, pattern: str, output: Union[str, Callable] = "", code: int = 0) -> "FakeTransport":
        """Answer commands matching `pattern`; later registrations win."""
        response = output if callable(output) else (output, code)
        self._handlers.insert(0, (re.compile(pattern), response))
        return self

    def run_shell(self, command: str, input: Optional[str] = None) -> Tuple[str, int]:
        self.commands.append(command)
        self.inputs.append(input)
        # Handlers see what was piped in too, e.g. the SQL of a mysql script
        text = command if input is None else f"{command}\n{input}"
        for regex, response in self._handlers:
            if regex.search(text):
                return response(text) if callable(response) else response
        return "", 0

    def run_command(self, args: list) -> Tuple[str, int]:
        return self.run_shell(" ".join(shlex.quote(str(arg)) for arg in args))

    def write_file(self, path: str, content: bytes) -> None:
        self.files[path] = content

    def read_file(self, path: str) -> bytes:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def file_exists(self, path: str) -> bool:
        return path in self.files

    def close(self) -> None:
        pass

    def ran(self, pattern: str) -> bool:
        """True if any command so far matched `pattern`."""
        return any(re.search(pattern, command) for command in self.commands)


UBUNTU = Platform(system="Linux", distro="ubuntu", version="22.04", arch="x86_64")


@pytest.fixture
def platform():
    return UBUNTU


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def executor(transport, platform):
    """Global executor on the fake transport; resources auto-register with it."""
    executor = use_executor(Executor(platform=platform, transport=transport))
    yield executor
    reset_executor()


@pytest.fixture
def local_executor(platform):
    """Global executor on the local machine, for File tests in tmp_path."""
    executor = use_executor(Executor(platform=Platform.detect()))
    yield executor
    reset_executor()
