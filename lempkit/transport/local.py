"""
Local transport - run commands on local machine.
"""

import os
import subprocess
from pathlib import Path
from typing import Optional, Tuple

from lempkit.transport.base import Transport


class LocalTransport(Transport):
    """
    Local transport for running commands on the local machine.

    Uses subprocess for command execution. A missing executable is
    reported as exit code 127, the way a shell would.
    """

    def run_shell(self, command: str, input: Optional[str] = None) -> Tuple[str, int]:
        result = subprocess.run(
            command,
            shell=True,
            input=input,
            capture_output=True,
            text=True,
        )
        return result.stdout + result.stderr, result.returncode

    def run_command(self, args: list) -> Tuple[str, int]:
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            return f"{args[0]}: command not found", 127
        return result.stdout + result.stderr, result.returncode

    def write_file(self, path: str, content: bytes) -> None:
        Path(path).write_bytes(content)

    def read_file(self, path: str) -> bytes:
        return Path(path).read_bytes()

    def file_exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def close(self) -> None:
        """No-op for local transport."""
        pass
