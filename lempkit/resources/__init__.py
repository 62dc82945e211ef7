"""
Resources: the units a host's desired state is declared in.
"""

from lempkit.resources.file import File
from lempkit.resources.pkg import Package
from lempkit.resources.service import Service
from lempkit.resources.exec import Exec
from lempkit.resources.php import PhpFpmService
from lempkit.resources.mysql import MysqlRootPassword, MysqlHardening
from lempkit.resources.installer import VerifiedInstaller

__all__ = [
    "File",
    "Package",
    "Service",
    "Exec",
    "PhpFpmService",
    "MysqlRootPassword",
    "MysqlHardening",
    "VerifiedInstaller",
]
