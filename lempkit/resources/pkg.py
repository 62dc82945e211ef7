"""
Package resource - manage system packages.

Supports:
- apt (Debian/Ubuntu)
- dnf (Fedora/RHEL)
- pacman (Arch)
- brew (macOS)
"""

from typing import Dict, Any, Optional, List, Union

from lempkit.core.errors import CommandFailed
from lempkit.core.executor import get_executor
from lempkit.core.resource import Resource, Plan, Action, Platform
from lempkit.logging import get_lemp_logger

logger = get_lemp_logger(__name__)

APT_ENV = "DEBIAN_FRONTEND=noninteractive"


class Package(Resource):
    """
    Package resource for installing system packages.

    Missing packages are installed after refreshing the package index;
    any package manager failure aborts the run.

    Examples:
        Package("nginx")

        # Several packages as one resource
        Package(["mysql-server", "mysql-client"])

        # Named group
        Package("php", packages=["php-fpm", "php-cli", "php-mysql"])

        Package("apache2", ensure="absent")
    """

    def __init__(
        self,
        name: Union[str, List[str]],
        ensure: str = "present",  # "present", "absent"
        packages: Optional[List[str]] = None,
        refresh: bool = True,
        **options
    ):
        """
        Initialize package resource.

        Args:
            name: Package name (str) OR list of package names
            ensure: "present" or "absent"
            packages: List of package names (if managing a named group)
            refresh: Refresh the package index before installing
            **options: Additional options
        """
        if isinstance(name, list):
            packages = name
            resource_name = packages[0] if packages else "empty"
        else:
            resource_name = name

        super().__init__(resource_name, **options)

        self.packages = packages or [name]
        self.ensure = ensure
        self.refresh = refresh

        # Auto-register
        get_executor().add(self)

    def resource_type(self) -> str:
        return "pkg"

    def check(self, platform: Platform) -> Dict[str, Any]:
        """Check which packages are installed."""
        pm = self._get_package_manager(platform)

        installed = {}
        for pkg in self.packages:
            installed[pkg] = self._check_package(pkg, pm)

        missing = sorted(pkg for pkg, version in installed.items() if version is None)
        present = sorted(pkg for pkg, version in installed.items() if version is not None)

        if self.ensure == "absent":
            return {"exists": bool(present), "installed": present}

        return {
            "exists": not missing,
            "missing": missing,
            "versions": {pkg: v for pkg, v in installed.items() if v is not None},
        }

    def desired_state(self) -> Dict[str, Any]:
        """Return desired package state."""
        if self.ensure == "absent":
            return {"exists": False}
        return {"exists": True, "missing": []}

    def plan(self, platform: Platform) -> Plan:
        plan = super().plan(platform)
        if plan.action == Action.CREATE:
            # Only what actually needs installing
            plan.changes = [c for c in plan.changes if c.field == "missing"]
            for change in plan.changes:
                change.from_value = self._actual_state.get("missing")
        return plan

    def apply(self, plan: Plan, platform: Platform) -> None:
        """Apply package changes."""
        pm = self._get_package_manager(platform)

        if plan.action in (Action.CREATE, Action.UPDATE):
            missing = self._actual_state.get("missing") or self.packages
            self._install(pm, missing)
        elif plan.action == Action.DELETE:
            self._remove(pm, self._actual_state.get("installed") or self.packages)

    def _get_package_manager(self, platform: Platform) -> str:
        """Detect package manager."""
        if platform.distro in ["ubuntu", "debian"]:
            return "apt"
        elif platform.distro in ["fedora", "rhel", "centos"]:
            return "dnf"
        elif platform.distro == "arch":
            return "pacman"
        elif platform.system == "Darwin":
            return "brew"
        else:
            raise ValueError(f"Unsupported platform: {platform.distro}")

    def _check_package(self, pkg: str, pm: str) -> Optional[str]:
        """Return the installed version of a package, or None."""
        if pm == "apt":
            output, code = self._transport.run_command(
                ["dpkg-query", "-W", "-f=${Status}|${Version}", pkg]
            )
            if code != 0:
                return None
            status, _, version = output.strip().partition("|")
            # Removed-but-not-purged packages are still listed
            return version if status.endswith("installed") and " not-installed" not in status else None

        elif pm == "dnf":
            output, code = self._transport.run_command(
                ["rpm", "-q", "--queryformat", "%{VERSION}", pkg]
            )
            return output.strip() if code == 0 else None

        elif pm == "pacman":
            output, code = self._transport.run_command(["pacman", "-Q", pkg])
            if code == 0:
                parts = output.strip().split()
                return parts[1] if len(parts) > 1 else ""
            return None

        elif pm == "brew":
            output, code = self._transport.run_command(["brew", "list", "--versions", pkg])
            if code == 0 and output.strip():
                parts = output.strip().split()
                return parts[1] if len(parts) > 1 else ""
            return None

        return None

    def _run(self, command: str, what: str) -> None:
        output, code = self._transport.run_shell(command)
        if code != 0:
            raise CommandFailed(command, code, output, what=what)

    def _install(self, pm: str, packages: List[str]) -> None:
        """Install packages."""
        names = " ".join(packages)
        logger.info(f"Installing package(s): {names}")

        if pm == "apt":
            if self.refresh:
                self._run(f"{APT_ENV} apt-get update", "Package index refresh")
            self._run(f"{APT_ENV} apt-get install -y {names}", "Package installation")
        elif pm == "dnf":
            self._run(f"dnf install -y {names}", "Package installation")
        elif pm == "pacman":
            sync = "-Sy" if self.refresh else "-S"
            self._run(f"pacman {sync} --noconfirm {names}", "Package installation")
        elif pm == "brew":
            if self.refresh:
                self._run("brew update", "Package index refresh")
            self._run(f"brew install {names}", "Package installation")

    def _remove(self, pm: str, packages: List[str]) -> None:
        """Remove packages."""
        names = " ".join(packages)
        logger.info(f"Removing package(s): {names}")

        if pm == "apt":
            self._run(f"{APT_ENV} apt-get remove -y {names}", "Package removal")
        elif pm == "dnf":
            self._run(f"dnf remove -y {names}", "Package removal")
        elif pm == "pacman":
            self._run(f"pacman -R --noconfirm {names}", "Package removal")
        elif pm == "brew":
            self._run(f"brew uninstall {names}", "Package removal")
