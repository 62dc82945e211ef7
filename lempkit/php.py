"""
PHP runtime facts.

The FPM unit and socket are named after the installed PHP series
(php8.1-fpm, /run/php/php8.1-fpm.sock), which is only known once the
php packages are in place. PhpRuntime detects it from `php -v` and
caches the answer for the rest of the run.
"""

import re
from dataclasses import dataclass
from typing import Optional

from lempkit.core.errors import KnownAfterApply, VersionParseError
from lempkit.logging import get_lemp_logger
from lempkit.transport import Transport

logger = get_lemp_logger(__name__)

PHP_VERSION_COMMAND = "php -v"

_VERSION_RE = re.compile(r"^PHP (\d+)\.(\d+)\.(\d+)", re.MULTILINE)
_PINNED_RE = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?$")


@dataclass(frozen=True)
class PhpVersion:
    """An installed PHP version."""
    major: int
    minor: int
    patch: int = 0

    @property
    def series(self) -> str:
        """major.minor, the part Debian packaging names things after."""
        return f"{self.major}.{self.minor}"

    @property
    def fpm_service(self) -> str:
        return f"php{self.series}-fpm"

    @property
    def fpm_socket(self) -> str:
        return f"/run/php/php{self.series}-fpm.sock"

    def __str__(self):
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_php_version(output: str) -> PhpVersion:
    """
    Parse `php -v` output.

    The first line looks like
    "PHP 8.1.2-1ubuntu2.14 (cli) (built: Aug 18 2023 11:41:11) (NTS)".
    Anything else raises VersionParseError; there is no fallback.
    """
    match = _VERSION_RE.search(output)
    if not match:
        raise VersionParseError(PHP_VERSION_COMMAND, output)
    major, minor, patch = (int(part) for part in match.groups())
    return PhpVersion(major, minor, patch)


def parse_pinned_version(value: str) -> PhpVersion:
    """Parse a configured version such as "8.1" or "8.3.6"."""
    match = _PINNED_RE.match(value.strip())
    if not match:
        raise VersionParseError("configured php_version", value)
    major, minor, patch = match.groups()
    return PhpVersion(int(major), int(minor), int(patch or 0))


class PhpRuntime:
    """
    Lazily detected PHP version on the target host.

    Example:
        php = PhpRuntime(executor.transport)
        File(site_path, content=lambda: render_site(config, php.require_version()))
    """

    def __init__(self, transport: Transport, pinned: Optional[str] = None):
        self.transport = transport
        self._version: Optional[PhpVersion] = parse_pinned_version(pinned) if pinned else None
        self.pinned = self._version is not None

    def detect(self) -> Optional[PhpVersion]:
        """Return the installed PHP version, or None if php is not installed."""
        if self._version is not None:
            return self._version

        output, code = self.transport.run_shell(PHP_VERSION_COMMAND)
        if code == 127 or (code != 0 and "not found" in output):
            return None
        if code != 0:
            raise VersionParseError(PHP_VERSION_COMMAND, output)

        self._version = parse_php_version(output)
        logger.info(f"Detected PHP {self._version} (FPM unit {self._version.fpm_service})")
        return self._version

    def require_version(self) -> PhpVersion:
        """Installed PHP version; KnownAfterApply while php is not installed yet."""
        version = self.detect()
        if version is None:
            raise KnownAfterApply("PHP version is detected after the php packages are installed")
        return version
