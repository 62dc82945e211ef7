"""
Service resource - manage system services.

Supports:
- systemd (Linux)
- launchctl (macOS)
"""

from typing import Any, Dict, List, Optional

from lempkit.core.errors import CommandFailed
from lempkit.core.executor import get_executor
from lempkit.core import Plan, Platform, Resource


class Service(Resource):
    """
    Service resource for managing system services.

    Examples:
        # Running and enabled at boot
        Service("mysql", running=True, enabled=True)

        # Reload when the site file changes, after `nginx -t` passes
        site = File("/etc/nginx/sites-available/example.com", ...)
        Service("nginx",
                running=True,
                enabled=True,
                reload_on=[site],
                validate=["nginx", "-t"])
    """

    def __init__(
        self,
        name: str,
        running: Optional[bool] = None,
        enabled: Optional[bool] = None,
        reload_on: Optional[List] = None,
        restart_on: Optional[List] = None,
        validate: Optional[List[str]] = None,
        **options,
    ):
        """
        Initialize service resource.

        Args:
            name: Service (unit) name
            running: Whether service should be running
            enabled: Whether service should be enabled at boot
            reload_on: Resources that trigger a reload when changed
            restart_on: Resources that trigger a restart when changed
            validate: Command that must succeed before reload/restart
            **options: Additional options
        """
        super().__init__(name, **options)

        self.running = running
        self.enabled = enabled
        self.reload_on = self._extract_resource_ids(reload_on or [])
        self.restart_on = self._extract_resource_ids(restart_on or [])
        self.validate = validate

        # Auto-register
        get_executor().add(self)

    @property
    def unit(self) -> str:
        """Name of the service unit to act on."""
        return self.name

    def _extract_resource_ids(self, resources: List) -> List[str]:
        """Extract resource IDs from resource objects or strings."""
        ids = []
        for r in resources:
            if isinstance(r, str):
                ids.append(r)
            elif hasattr(r, "id"):
                ids.append(r.id)
        return ids

    def resource_type(self) -> str:
        return "svc"

    def check(self, platform: Platform) -> Dict[str, Any]:
        """Check service state."""
        unit = self.unit
        return {
            "exists": True,
            "unit": unit,
            "running": self._is_running(platform, unit),
            "enabled": self._is_enabled(platform, unit),
        }

    def desired_state(self) -> Dict[str, Any]:
        """Return desired service state."""
        state = {"exists": True}

        if self.running is not None:
            state["running"] = self.running
        if self.enabled is not None:
            state["enabled"] = self.enabled

        return state

    def apply(self, plan: Plan, platform: Platform) -> None:
        """Apply service changes."""
        for change in plan.changes:
            if change.field == "running":
                self._systemctl(platform, "start" if change.to_value else "stop")
            elif change.field == "enabled":
                self._systemctl(platform, "enable" if change.to_value else "disable")

    def _is_running(self, platform: Platform, unit: str) -> bool:
        """Check if service is running."""
        if platform.system == "Linux":
            _, code = self._transport.run_command(["systemctl", "is-active", "--quiet", unit])
            return code == 0
        elif platform.system == "Darwin":
            _, code = self._transport.run_command(["launchctl", "list", unit])
            return code == 0
        return False

    def _is_enabled(self, platform: Platform, unit: str) -> bool:
        """Check if service is enabled at boot."""
        if platform.system == "Linux":
            _, code = self._transport.run_command(["systemctl", "is-enabled", "--quiet", unit])
            return code == 0
        elif platform.system == "Darwin":
            # launchd has no separate enabled state
            return True
        return False

    def _systemctl(self, platform: Platform, verb: str) -> None:
        """Run a service manager verb (start, stop, enable, disable, reload, restart)."""
        unit = self.unit

        if platform.system == "Linux":
            args = ["systemctl", verb, unit]
        elif platform.system == "Darwin":
            if verb in ("enable", "disable"):
                return
            if verb in ("reload", "restart"):
                self._transport.run_command(["launchctl", "stop", unit])
                verb = "start"
            args = ["launchctl", verb, unit]
        else:
            raise ValueError(f"Unsupported platform for services: {platform.system}")

        output, code = self._transport.run_command(args)
        if code != 0:
            raise CommandFailed(" ".join(args), code, output, what=f"Service {verb} of {unit}")

    def check_config(self) -> None:
        """Run the validation command; raise if it fails."""
        if not self.validate:
            return
        output, code = self._transport.run_command(self.validate)
        if code != 0:
            raise CommandFailed(" ".join(self.validate), code, output, what=f"Configuration check for {self.unit}")

    def reload(self, platform: Platform) -> None:
        """Validate, then reload service configuration."""
        self.check_config()
        self._systemctl(platform, "reload")

    def restart(self, platform: Platform) -> None:
        """Validate, then restart service."""
        self.check_config()
        self._systemctl(platform, "restart")

    def should_reload(self, changed_resource_ids: List[str]) -> bool:
        """Check if service should reload based on changed resources."""
        return any(rid in changed_resource_ids for rid in self.reload_on)

    def should_restart(self, changed_resource_ids: List[str]) -> bool:
        """Check if service should restart based on changed resources."""
        return any(rid in changed_resource_ids for rid in self.restart_on)
