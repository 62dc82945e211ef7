"""
Host configuration.

The defaults below are what a bare `lempkit apply` provisions. Change
them here, or override any field from the command line or a
LEMPKIT_* environment variable.
"""

import re
from dataclasses import dataclass, field, replace
from pathlib import PurePosixPath
from typing import List, Optional

from lempkit.core.errors import ConfigError
from lempkit.resources.installer import COMPOSER_INSTALLER_URL, COMPOSER_SIGNATURE_URL

DOMAIN = "your_domain.com"  # CHANGE THIS TO YOUR ACTUAL DOMAIN NAME
FRONTEND_ROOT = "/var/www/html"
BACKEND_ROOT = "/var/www/backend"
MYSQL_ROOT_PASSWORD = "MyNewRootPassword123!"

NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"

# json ships inside php-common since PHP 8, so there is no php-json to install
PHP_PACKAGES = [
    "php-fpm",
    "php-cli",
    "php-mysql",
    "php-gd",
    "php-curl",
    "php-mbstring",
    "php-xml",
    "php-zip",
]

# Characters that would end a directive or block in the server block
_UNSAFE = re.compile(r"[\s;{}'\"]")
_DOMAIN = re.compile(r"^(\*\.)?[A-Za-z0-9_]([A-Za-z0-9_.-]*[A-Za-z0-9_])?$")


@dataclass
class HostConfig:
    """Everything that varies between provisioned hosts."""
    domain: str = DOMAIN
    frontend_root: str = FRONTEND_ROOT
    backend_root: str = BACKEND_ROOT
    php_version: Optional[str] = None  # None = detect from `php -v`
    php_packages: List[str] = field(default_factory=lambda: list(PHP_PACKAGES))
    mysql_root_password: str = MYSQL_ROOT_PASSWORD
    mysql_auth_plugin: str = "mysql_native_password"
    web_user: str = "www-data"
    web_group: str = "www-data"
    web_root_mode: int = 0o755
    composer_install_dir: str = "/usr/local/bin"
    composer_filename: str = "composer"
    composer_installer_url: str = COMPOSER_INSTALLER_URL
    composer_signature_url: str = COMPOSER_SIGNATURE_URL
    upgrade_system: bool = True
    # An index refreshed less than this long ago is trusted as-is
    apt_index_max_age_minutes: int = 60

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError for values that would break the generated files."""
        if not self.domain or not _DOMAIN.match(self.domain):
            raise ConfigError(f"Invalid domain name: {self.domain!r}")
        if self.domain == "default":
            raise ConfigError("Domain 'default' collides with the nginx default site")

        for label, path in (("frontend_root", self.frontend_root),
                            ("backend_root", self.backend_root),
                            ("composer_install_dir", self.composer_install_dir)):
            if not path.startswith("/"):
                raise ConfigError(f"{label} must be an absolute path, got {path!r}")
            if _UNSAFE.search(path) or ".." in PurePosixPath(path).parts:
                raise ConfigError(f"{label} contains characters not allowed in a path: {path!r}")

        if self.frontend_root.rstrip("/") == self.backend_root.rstrip("/"):
            raise ConfigError("frontend_root and backend_root must differ")

        if not self.mysql_root_password:
            raise ConfigError("mysql_root_password must not be empty")

        if not re.fullmatch(r"[a-z_][a-z0-9_]*", self.mysql_auth_plugin):
            raise ConfigError(f"Invalid MySQL auth plugin: {self.mysql_auth_plugin!r}")

        if not 0 <= self.web_root_mode <= 0o7777:
            raise ConfigError(f"Invalid web root mode: {oct(self.web_root_mode)}")

        if self.apt_index_max_age_minutes < 1:
            raise ConfigError("apt_index_max_age_minutes must be at least 1")

        if self.php_version is not None and not re.fullmatch(r"\d+\.\d+(\.\d+)?", self.php_version):
            raise ConfigError(f"php_version must look like 8.1 or 8.1.2, got {self.php_version!r}")

    @property
    def site_available(self) -> str:
        return f"{NGINX_SITES_AVAILABLE}/{self.domain}"

    @property
    def site_enabled(self) -> str:
        return f"{NGINX_SITES_ENABLED}/{self.domain}"

    @property
    def default_site_enabled(self) -> str:
        return f"{NGINX_SITES_ENABLED}/default"

    @property
    def composer_path(self) -> str:
        return f"{self.composer_install_dir.rstrip('/')}/{self.composer_filename}"

    def with_overrides(self, **overrides) -> "HostConfig":
        """Copy with the given non-None fields replaced (and validated)."""
        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values)
