"""
Errors raised while provisioning.

Every failure is a ProvisionError: a step failed. Subclasses only say
which kind of step, so callers can print something useful.
"""

from typing import Optional


class ProvisionError(RuntimeError):
    """A provisioning step failed."""
    pass


class ConfigError(ProvisionError):
    """Host configuration is invalid."""
    pass


class CommandFailed(ProvisionError):
    """A command on the target host exited non-zero."""

    def __init__(self, command: str, exit_code: int, output: str = "", what: Optional[str] = None):
        self.command = command
        self.exit_code = exit_code
        self.output = output
        self.what = what

        msg = f"{what or 'Command'} failed with exit code {exit_code}\nCommand: {command}"
        if output.strip():
            msg += f"\nOutput: {output.strip()}"
        super().__init__(msg)


class ChecksumMismatch(ProvisionError):
    """Downloaded payload does not match its published digest."""

    def __init__(self, url: str, expected: str, actual: str):
        self.url = url
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Installer hash does not match for {url}\n"
            f"  expected: {expected}\n"
            f"  actual:   {actual}"
        )


class VersionParseError(ProvisionError):
    """Version output could not be parsed."""

    def __init__(self, command: str, output: str):
        self.command = command
        self.output = output
        super().__init__(f"Could not parse version from '{command}' output: {output.strip()[:200]!r}")


class KnownAfterApply(Exception):
    """
    A value depends on a resource that has not been applied yet.

    Raised from check()/desired_state() while planning; the executor
    plans the resource as a change and resolves the value at apply time.
    """
    pass
