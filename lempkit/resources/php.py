"""
PHP-FPM service resource.

A Service whose unit name comes from the detected PHP version.
"""

from typing import Optional, List

from lempkit.resources.service import Service
from lempkit.php import PhpRuntime


class PhpFpmService(Service):
    """
    The version-specific PHP-FPM unit, e.g. php8.1-fpm.

    Example:
        php = PhpRuntime(executor.transport)
        PhpFpmService(php, running=True, enabled=True)
    """

    def __init__(
        self,
        php: PhpRuntime,
        running: Optional[bool] = True,
        enabled: Optional[bool] = True,
        restart_on: Optional[List] = None,
        **options,
    ):
        self.php = php
        super().__init__(
            "php-fpm",
            running=running,
            enabled=enabled,
            restart_on=restart_on,
            validate=None,
            **options,
        )

    @property
    def unit(self) -> str:
        # No fallback: an unusable version fails here, not later
        return self.php.require_version().fpm_service
