"""
Exec resource - run shell commands.

Commands go through the shell to allow pipes and `&&`; only declare
them from trusted values.
"""

import hashlib
import shlex
from typing import Any, Dict, Optional

from lempkit.core.errors import CommandFailed
from lempkit.core.executor import get_executor
from lempkit.core import Plan, Platform, Resource


class Exec(Resource):
    """
    Exec resource for running commands.

    Idempotency guards:
    - creates: Run only if file/dir doesn't exist
    - unless: Run only if command returns non-zero
    - only_if: Run only if command returns zero

    Examples:
        Exec("system-upgrade",
             command="apt-get upgrade -y",
             only_if="apt-get -s upgrade | grep -q '^Inst '")

        Exec("laravel-migrate",
             command="php artisan migrate --force",
             cwd="/var/www/backend",
             creates="/var/www/backend/storage/migrated")
    """

    def __init__(
        self,
        name: str,
        command: str,
        creates: Optional[str] = None,
        unless: Optional[str] = None,
        only_if: Optional[str] = None,
        cwd: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
        **options,
    ):
        super().__init__(name, **options)

        self.command = command
        self.creates = creates
        self.unless = unless
        self.only_if = only_if
        self.cwd = cwd
        self.environment = environment or {}

        # Auto-register
        get_executor().add(self)

    def resource_type(self) -> str:
        return "exec"

    def check(self, platform: Platform) -> Dict[str, Any]:
        """Evaluate the guards; should_run=True means the command is due."""
        should_run = True

        if self.creates and self._transport.file_exists(self.creates):
            should_run = False

        if should_run and self.unless:
            _, code = self._transport.run_shell(self.unless)
            if code == 0:
                should_run = False

        if should_run and self.only_if:
            _, code = self._transport.run_shell(self.only_if)
            if code != 0:
                should_run = False

        return {
            "exists": True,
            "should_run": should_run,
            "command_hash": self._hash_command(),
        }

    def desired_state(self) -> Dict[str, Any]:
        """Desired is "nothing left to run", so a due command shows up as a change."""
        return {
            "exists": True,
            "should_run": False,
            "command_hash": self._hash_command(),
        }

    def apply(self, plan: Plan, platform: Platform) -> None:
        """Execute command."""
        if not self._actual_state.get("should_run", True):
            return

        final_cmd = self._build_command()
        output, code = self._transport.run_shell(final_cmd)

        if code != 0:
            raise CommandFailed(final_cmd, code, output, what=f"Command '{self.name}'")

    def _build_command(self) -> str:
        """Build final command with environment and cwd."""
        cmd = self.command

        if self.environment:
            env_str = " ".join(f"{key}={shlex.quote(value)}" for key, value in self.environment.items())
            # export, so every command of a compound line sees it
            cmd = f"export {env_str} && {cmd}"

        if self.cwd:
            cmd = f"cd {shlex.quote(self.cwd)} && {cmd}"

        return cmd

    def _hash_command(self) -> str:
        """Hash of everything that affects execution."""
        hash_input = f"{self.command}:{self.cwd}:{sorted(self.environment.items())}"
        return hashlib.sha256(hash_input.encode()).hexdigest()[:8]

    def preview(self) -> str:
        """The command that would be executed."""
        return self._build_command()
