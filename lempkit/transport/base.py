"""
How resources reach the host they provision.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple


class Transport(ABC):
    """Runs commands and moves file content on one host."""

    @abstractmethod
    def run_shell(self, command: str, input: Optional[str] = None) -> Tuple[str, int]:
        """
        Run `command` through sh; returns combined output and exit code.

        `input` is fed to the command's stdin. Anything secret goes
        there, never into `command`, which is visible in the process list.
        """

    @abstractmethod
    def run_command(self, args: list) -> Tuple[str, int]:
        """Run an argument list without shell interpretation."""

    @abstractmethod
    def write_file(self, path: str, content: bytes) -> None:
        pass

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """Raises FileNotFoundError for a missing file."""

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """True if the path exists (symlinks count, even dangling ones)."""

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class NullTransport(Transport):
    """Stand-in for resources that were never added to an executor."""

    def _unbound(self, method_name: str) -> None:
        raise RuntimeError(
            f"Cannot call {method_name}: the resource is not bound to a host. "
            f"Declare it while an executor is active (see use_executor())."
        )

    def run_shell(self, command: str, input: Optional[str] = None) -> Tuple[str, int]:
        self._unbound("run_shell()")

    def run_command(self, args: list) -> Tuple[str, int]:
        self._unbound("run_command()")

    def write_file(self, path: str, content: bytes) -> None:
        self._unbound("write_file()")

    def read_file(self, path: str) -> bytes:
        self._unbound("read_file()")

    def file_exists(self, path: str) -> bool:
        self._unbound("file_exists()")

    def close(self) -> None:
        pass
