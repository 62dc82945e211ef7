"""
Resources, plans and the target platform.

A resource describes one piece of the host (a package, a unit, a file,
the MySQL root account) as a desired state. Planning compares that with
what check() finds on the host; applying closes the gap.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, List, TYPE_CHECKING
import platform as platform_module

import distro

from lempkit.core.errors import KnownAfterApply
from lempkit.transport.base import NullTransport

if TYPE_CHECKING:
    from lempkit.transport import Transport


KNOWN_AFTER_APPLY = "(known after apply)"


class Action(Enum):
    """What applying a plan does to a resource."""
    NONE = "none"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class Change:
    """One field moving from its current to its desired value."""
    field: str
    from_value: Any
    to_value: Any

    def __str__(self):
        return f"{self.field}: {self.from_value} → {self.to_value}"


@dataclass
class Plan:
    """
    What has to happen to one resource.

    A deferred plan could not be computed yet because it depends on
    something an earlier resource installs (the PHP version, a running
    MySQL server). It always counts as a change.
    """
    action: Action
    changes: List[Change] = field(default_factory=list)
    reason: str = ""
    deferred: bool = False

    def has_changes(self) -> bool:
        return self.action != Action.NONE and bool(self.changes)

    def __str__(self):
        if not self.has_changes():
            return "No changes"
        lines = [f"{self.action.value}: {self.reason}" if self.reason else self.action.value]
        lines.extend(f"  {change}" for change in self.changes)
        return "\n".join(lines)


def _parse_os_release(content: str) -> Dict[str, str]:
    values = {}
    for line in content.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            values[key.strip()] = value.strip().strip('"')
    return values


@dataclass
class Platform:
    """Operating system of the target host."""
    system: str  # Linux, Darwin
    distro: str  # ubuntu, debian, fedora, ...
    version: str
    arch: str

    @classmethod
    def detect(cls, transport: Optional["Transport"] = None) -> "Platform":
        """
        Detect the platform.

        Without a transport this inspects the local machine with the
        distro library; with one it asks the remote host via uname and
        /etc/os-release.
        """
        if transport is None:
            system = platform_module.system()
            if system == "Linux":
                distro_id, version = distro.id() or "unknown", distro.version()
            elif system == "Darwin":
                distro_id, version = "macos", platform_module.mac_ver()[0]
            else:
                distro_id, version = "unknown", ""
            return cls(system=system, distro=distro_id, version=version, arch=platform_module.machine())

        system = transport.run_shell("uname -s")[0].strip()
        arch = transport.run_shell("uname -m")[0].strip()
        distro_id, version = "unknown", ""

        if system == "Linux" and transport.file_exists("/etc/os-release"):
            release = _parse_os_release(transport.read_file("/etc/os-release").decode())
            distro_id = release.get("ID", distro_id)
            version = release.get("VERSION_ID", version)
        elif system == "Darwin":
            distro_id = "macos"
            version = transport.run_shell("sw_vers -productVersion")[0].strip()

        return cls(system=system, distro=distro_id, version=version, arch=arch)


class Resource(ABC):
    """
    Base class for everything the stack declares.

    Subclasses implement check() (state found on the host),
    desired_state() (state wanted) and apply(). Both states are flat
    dicts; the "exists" key decides between create, delete and update,
    and a desired value of None leaves that field unmanaged.
    """

    def __init__(self, name: str, **options):
        self.name = name
        self.options = options
        self._desired_state: Dict[str, Any] = {}
        self._actual_state: Dict[str, Any] = {}
        # Replaced by the executor the resource is added to
        self._transport: "Transport" = NullTransport()

    @property
    def id(self) -> str:
        """Unique key, e.g. pkg:nginx or file:/etc/nginx/sites-enabled/default."""
        return f"{self.resource_type()}:{self.name}"

    @abstractmethod
    def resource_type(self) -> str:
        """Prefix of the id (file, pkg, svc, exec, mysql, installer)."""

    @abstractmethod
    def check(self, platform: Platform) -> Dict[str, Any]:
        """Current state on the host, e.g. {"exists": True, "mode": 0o644}."""

    @abstractmethod
    def desired_state(self) -> Dict[str, Any]:
        """
        Wanted state, in the same shape as check().

        Raises KnownAfterApply when a value depends on a resource that
        has not been applied yet.
        """

    @abstractmethod
    def apply(self, plan: Plan, platform: Platform) -> None:
        """Carry out `plan`. Raises ProvisionError on failure."""

    def plan(self, platform: Platform) -> Plan:
        """Compare check() with desired_state()."""
        try:
            self._actual_state = self.check(platform)
            self._desired_state = self.desired_state()
        except KnownAfterApply as e:
            return Plan(
                action=Action.UPDATE,
                changes=[Change("state", None, KNOWN_AFTER_APPLY)],
                reason=str(e) or "Depends on resources not yet applied",
                deferred=True,
            )

        actual, desired = self._actual_state, self._desired_state
        exists = actual.get("exists", False)
        wanted = desired.get("exists", True)

        if wanted and not exists:
            changes = [Change(key, None, value) for key, value in desired.items() if key != "exists"]
            return Plan(Action.CREATE, changes, "Resource does not exist")

        if exists and not wanted:
            changes = [Change(key, value, None) for key, value in actual.items() if key != "exists"]
            return Plan(Action.DELETE, changes, "Resource should not exist")

        if not exists:
            return Plan(Action.NONE, reason="Resource correctly absent")

        changes = self._detect_changes()
        if changes:
            return Plan(Action.UPDATE, changes, "Properties differ from desired state")
        return Plan(Action.NONE, reason="No changes needed")

    def _detect_changes(self) -> List[Change]:
        """Managed fields whose current value differs from the wanted one."""
        return [
            Change(key, self._actual_state.get(key), wanted)
            for key, wanted in self._desired_state.items()
            if key != "exists" and wanted is not None and self._actual_state.get(key) != wanted
        ]

    def __repr__(self):
        return f"{self.__class__.__name__}(name={self.name!r})"

    def __str__(self):
        return self.id
