__version__ = "0.1.0"

from lempkit.core import Resource, Plan, Action
from lempkit.resources import (
    File,
    Package,
    Service,
    Exec,
    PhpFpmService,
    MysqlRootPassword,
    MysqlHardening,
    VerifiedInstaller,
)
from lempkit.config import HostConfig
from lempkit.logging import get_logger, get_lemp_logger, setup_logging

"""
Foundations of lempkit:
    Resource is a unit of configuration that represents a desired state of the host.
    Plan is what has to change to reach that state.
    Action is a unit of work that can be performed on a resource.
    HostConfig holds the values that vary between provisioned hosts.
    The stack (lempkit.stack) declares nginx, PHP-FPM, MySQL, the site and
    Composer as resources; the executor plans and applies them in order.
"""

__all__ = [
    "Resource",
    "Plan",
    "Action",
    "File",
    "Package",
    "Service",
    "Exec",
    "PhpFpmService",
    "MysqlRootPassword",
    "MysqlHardening",
    "VerifiedInstaller",
    "HostConfig",
    "get_logger",
    "get_lemp_logger",
    "setup_logging",
]
