"""
Executor - plans and applies the declared resources.

Resources are applied strictly in the order they were declared. Each
one is planned again right before it is applied, so it sees what the
resources before it did. The first failure stops the run, and services
are only reloaded after a run that went through cleanly.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional
import time

from lempkit.core.errors import ProvisionError
from lempkit.core.resource import Resource, Plan, Platform
from lempkit.logging import get_lemp_logger
from lempkit.transport import Transport, LocalTransport

logger = get_lemp_logger(__name__)


@dataclass
class PlanResult:
    """Plans by resource id, plus resources that could not be planned."""
    plans: Dict[str, Plan] = field(default_factory=dict)
    errors: List[Exception] = field(default_factory=list)

    @property
    def change_count(self) -> int:
        return sum(1 for plan in self.plans.values() if plan.has_changes())

    @property
    def has_changes(self) -> bool:
        return self.change_count > 0

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


@dataclass
class ApplyResult:
    """What an apply run changed, and where it stopped if it failed."""
    changed_resources: List[str] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)
    failed_resource: Optional[str] = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return not self.errors


class Executor:
    """
    Ordered set of resources bound to one host.

    Example:
        executor = use_executor(Executor(transport=SSHTransport("web1", user="ubuntu", sudo=True)))
        declare_stack(config, PhpRuntime(executor.transport))

        plan_result = executor.plan()
        apply_result = executor.apply(plan_result)
    """

    def __init__(
        self,
        platform: Optional[Platform] = None,
        transport: Optional[Transport] = None,
        fail_fast: bool = True,
    ):
        """
        Args:
            platform: Target platform (detected on first use if None)
            transport: How to reach the host (default: LocalTransport)
            fail_fast: Stop applying at the first failing resource
        """
        self.transport = transport or LocalTransport()
        self._platform = platform
        self.fail_fast = fail_fast
        self.resources: List[Resource] = []
        self._by_id: Dict[str, Resource] = {}

    @property
    def platform(self) -> Platform:
        if self._platform is None:
            remote = None if isinstance(self.transport, LocalTransport) else self.transport
            self._platform = Platform.detect(remote)
        return self._platform

    def add(self, resource: Resource) -> Resource:
        """
        Bind a resource to this executor's host.

        Declaring an id twice replaces the first declaration in place,
        keeping its position in the apply order.
        """
        resource._transport = self.transport

        previous = self._by_id.get(resource.id)
        if previous is None:
            self.resources.append(resource)
        else:
            self.resources[self.resources.index(previous)] = resource

        self._by_id[resource.id] = resource
        return resource

    def get(self, resource_id: str) -> Optional[Resource]:
        return self._by_id.get(resource_id)

    def plan(self) -> PlanResult:
        """Plan every resource; planning errors are collected, not raised."""
        result = PlanResult()

        for resource in self.resources:
            try:
                result.plans[resource.id] = resource.plan(self.platform)
            except Exception as e:
                logger.debug(f"Planning {resource.id} failed: {e}")
                result.errors.append(e)

        return result

    def apply(self, plan_result: PlanResult) -> ApplyResult:
        """
        Apply the resources in order.

        `plan_result` is what the user was shown; the decision to act
        is taken on a fresh plan, so a resource that had nothing to do
        at plan time (the default site nginx has not created yet) can
        still change here, and a deferred one gets resolved.
        """
        result = ApplyResult()
        started = time.time()

        for resource in self.resources:
            try:
                plan = resource.plan(self.platform)
                if not plan.has_changes():
                    continue

                shown = plan_result.plans.get(resource.id)
                if shown is None or not shown.has_changes():
                    logger.debug(f"{resource.id} changed since planning")
                if plan.deferred:
                    raise ProvisionError(f"{resource.id} still cannot be resolved: {plan.reason}")

                logger.debug(f"Applying {plan.action.value}: {resource.id}")
                resource.apply(plan, self.platform)
                logger.action(plan.action.value, resource.id, details=plan.reason)
                result.changed_resources.append(resource.id)
            except Exception as e:
                result.errors.append(e)
                result.failed_resource = resource.id
                logger.error(f"{resource.id}: {e}")
                if self.fail_fast:
                    break

        result.duration = time.time() - started

        if result.success and result.changed_resources:
            try:
                self._notify_services(result.changed_resources)
            except Exception as e:
                result.errors.append(e)
                logger.error(str(e))

        return result

    def _notify_services(self, changed: List[str]) -> None:
        """Restart or reload services whose triggers changed."""
        # Service imports the executor module
        from lempkit.resources.service import Service

        for resource in self.resources:
            if not isinstance(resource, Service):
                continue
            if resource.should_restart(changed):
                logger.info(f"↻ restarting {resource.unit}")
                resource.restart(self.platform)
            elif resource.should_reload(changed):
                logger.info(f"⟳ reloading {resource.unit}")
                resource.reload(self.platform)

    def clear(self) -> None:
        self.resources.clear()
        self._by_id.clear()


# Resources register with this executor when constructed, so a stack
# declaration is just a sequence of constructor calls.
_current: Optional[Executor] = None


def get_executor() -> Executor:
    """The executor new resources register with."""
    global _current
    if _current is None:
        _current = Executor()
    return _current


def reset_executor() -> None:
    """Forget the current executor (tests start from a clean one)."""
    global _current
    _current = None


def use_executor(executor: Executor) -> Executor:
    """Make `executor` the one new resources register with."""
    global _current
    _current = executor
    return executor
