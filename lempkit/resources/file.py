"""
File resource - manage files, directories and symlinks.

Handles:
- File content (inline string or a callable rendered at plan time)
- File permissions (mode, owner, group), optionally recursive
- Directories (ensure="directory")
- Symbolic links (ensure="link")
- Absence (ensure="absent")
"""

import shlex
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, List, Optional, Union

from lempkit.core.errors import CommandFailed
from lempkit.core.executor import get_executor
from lempkit.core.resource import Resource, Plan, Action, Platform

Content = Union[str, Callable[[], str], None]

ENSURE_VALUES = ("file", "directory", "link", "absent")


class File(Resource):
    """
    File resource for managing files and directories.

    Examples:
        # File with content
        File("/etc/nginx/sites-available/example.com", content=site_conf, mode=0o644)

        # Content that can only be rendered once PHP is installed
        File("/etc/nginx/sites-available/example.com",
             content=lambda: render_site(config, php.require_version()))

        # Web root, owned by the web server user all the way down
        File("/var/www/html", ensure="directory",
             owner="www-data", group="www-data", mode=0o755, recurse=True)

        # Enabled-site symlink
        File("/etc/nginx/sites-enabled/example.com", ensure="link",
             target="/etc/nginx/sites-available/example.com")

        # Disabled default site
        File("/etc/nginx/sites-enabled/default", ensure="absent")
    """

    def __init__(
        self,
        path: str,
        content: Content = None,
        ensure: str = "file",
        target: Optional[str] = None,
        mode: Optional[int] = None,
        owner: Optional[str] = None,
        group: Optional[str] = None,
        recurse: bool = False,
        **options
    ):
        """
        Initialize file resource.

        Args:
            path: File path
            content: Inline content, or a callable returning it
            ensure: "file", "directory", "link", or "absent"
            target: Link target (ensure="link")
            mode: File mode (e.g., 0o644)
            owner: Owner username
            group: Group name
            recurse: Apply owner/group/mode to everything below a directory
            **options: Additional options
        """
        if ensure not in ENSURE_VALUES:
            raise ValueError(f"ensure must be one of {ENSURE_VALUES}, got {ensure!r}")
        if ensure == "link" and not target:
            raise ValueError(f"File {path}: ensure='link' requires a target")

        super().__init__(path, **options)

        self.path = path
        self.content = content
        self.ensure = ensure
        self.target = target
        self.mode = mode
        self.owner = owner
        self.group = group
        self.recurse = recurse and ensure == "directory"

        # Auto-register with global executor
        get_executor().add(self)

    def resource_type(self) -> str:
        return "file"

    def check(self, platform: Platform) -> Dict[str, Any]:
        """Check current file state."""
        state = {
            "exists": False,
            "type": None,
            "content": None,
            "target": None,
            "mode": None,
            "owner": None,
            "group": None,
        }

        if not self._transport.file_exists(self.path):
            return state

        state["exists"] = True

        quoted = shlex.quote(self.path)
        output, code = self._transport.run_shell(
            f"stat -c '%F|%a|%U|%G' {quoted} 2>/dev/null || stat -f '%HT|%Lp|%Su|%Sg' {quoted}"
        )

        if code == 0:
            parts = output.strip().split("|")
            if len(parts) >= 4:
                file_type, mode_octal, owner, group = parts[:4]
                file_type = file_type.lower()

                if "symbolic link" in file_type:
                    state["type"] = "link"
                elif "directory" in file_type:
                    state["type"] = "directory"
                elif "regular" in file_type:
                    state["type"] = "file"

                try:
                    state["mode"] = int(mode_octal, 8)
                except ValueError:
                    pass

                state["owner"] = owner
                state["group"] = group

        if state["type"] == "file":
            try:
                state["content"] = self._transport.read_file(self.path).decode("utf-8")
            except UnicodeDecodeError:
                state["content"] = None
        elif state["type"] == "link":
            output, code = self._transport.run_command(["readlink", self.path])
            state["target"] = output.strip() if code == 0 else None
            # Link permissions are meaningless
            state["mode"] = None
        elif state["type"] == "directory" and self.recurse:
            state["tree_converged"] = self._tree_converged()

        return state

    def desired_state(self) -> Dict[str, Any]:
        """Return desired file state."""
        if self.ensure == "absent":
            return {"exists": False}

        state = {"exists": True, "type": self.ensure}

        if self.ensure == "link":
            state["target"] = self.target
            return state

        if self.ensure == "file":
            state["content"] = self.content() if callable(self.content) else self.content

        state["mode"] = self.mode
        state["owner"] = self.owner
        state["group"] = self.group

        if self.recurse and self._has_metadata():
            state["tree_converged"] = True

        return state

    def apply(self, plan: Plan, platform: Platform) -> None:
        """Apply file changes."""
        if plan.action == Action.DELETE:
            self._delete()
        elif plan.action == Action.CREATE:
            self._create()
        elif plan.action == Action.UPDATE:
            self._update(plan)

    def _run(self, args: List[str]) -> str:
        output, code = self._transport.run_command(args)
        if code != 0:
            raise CommandFailed(" ".join(args), code, output)
        return output

    def _create(self) -> None:
        """Create file, directory or link."""
        if self.ensure == "directory":
            self._run(["mkdir", "-p", self.path])
        elif self.ensure == "link":
            self._run(["mkdir", "-p", str(PurePosixPath(self.path).parent)])
            self._run(["ln", "-sfn", self.target, self.path])
            return
        else:
            self._run(["mkdir", "-p", str(PurePosixPath(self.path).parent)])
            content = self._desired_state.get("content")
            if content is not None:
                self._transport.write_file(self.path, content.encode("utf-8"))
            else:
                self._run(["touch", self.path])

        self._set_metadata()

    def _update(self, plan: Plan) -> None:
        """Update existing file."""
        fields = {change.field for change in plan.changes}

        if "type" in fields:
            # Wrong kind of thing at this path: replace it
            self._delete()
            self._create()
            return

        if self.ensure == "link":
            self._run(["ln", "-sfn", self.target, self.path])
            return

        if "content" in fields:
            self._transport.write_file(self.path, self._desired_state["content"].encode("utf-8"))

        if fields & {"mode", "owner", "group", "tree_converged"}:
            self._set_metadata()

    def _delete(self) -> None:
        """Delete file, link or directory."""
        self._run(["rm", "-rf", self.path])

    def _has_metadata(self) -> bool:
        return any(value is not None for value in (self.owner, self.group, self.mode))

    def _set_metadata(self) -> None:
        """Set file owner, group, and mode."""
        recursive = ["-R"] if self.recurse else []

        if self.owner is not None and self.group is not None:
            self._run(["chown", *recursive, f"{self.owner}:{self.group}", self.path])
        elif self.owner is not None:
            self._run(["chown", *recursive, self.owner, self.path])
        elif self.group is not None:
            self._run(["chgrp", *recursive, self.group, self.path])

        if self.mode is not None:
            self._run(["chmod", *recursive, format(self.mode, "o"), self.path])

    def _tree_converged(self) -> bool:
        """True when no entry under the directory has the wrong owner, group or mode."""
        conditions = []
        if self.owner is not None:
            conditions.append(f"! -user {shlex.quote(self.owner)}")
        if self.group is not None:
            conditions.append(f"! -group {shlex.quote(self.group)}")
        if self.mode is not None:
            # Symlinks always read 777 and chmod never changes them
            conditions.append(f"\\( ! -type l ! -perm {format(self.mode, 'o')} \\)")

        if not conditions:
            return True

        drift_check = f"find {shlex.quote(self.path)} \\( {' -o '.join(conditions)} \\) -print -quit"
        output, code = self._transport.run_shell(drift_check)
        return code == 0 and not output.strip()
