"""
VerifiedInstaller resource - download, verify and run an installer.

The payload is hashed on this side and compared with the digest the
publisher serves next to it. Nothing is executed on a mismatch, and the
downloaded payload is removed whatever happens.
"""

import hashlib
import re
import shlex
from typing import Any, Dict

from lempkit.core.errors import ChecksumMismatch, CommandFailed, ProvisionError
from lempkit.core.executor import get_executor
from lempkit.core import Plan, Platform, Resource
from lempkit.logging import get_lemp_logger

logger = get_lemp_logger(__name__)

COMPOSER_INSTALLER_URL = "https://getcomposer.org/installer"
COMPOSER_SIGNATURE_URL = "https://composer.github.io/installer.sig"


class VerifiedInstaller(Resource):
    """
    Installer whose payload is checked against a published digest.

    Satisfied once `creates` exists on the host.

    Example:
        VerifiedInstaller(
            "composer",
            url="https://getcomposer.org/installer",
            checksum_url="https://composer.github.io/installer.sig",
            command="php {installer} --install-dir=/usr/local/bin --filename=composer",
            creates="/usr/local/bin/composer",
        )
    """

    def __init__(
        self,
        name: str,
        url: str,
        checksum_url: str,
        command: str,
        creates: str,
        algorithm: str = "sha384",
        **options,
    ):
        """
        Args:
            name: Resource name
            url: Installer payload URL
            checksum_url: URL serving the hex digest of the payload
            command: Install command; "{installer}" is replaced by the payload path
            creates: Path that exists once installed
            algorithm: hashlib algorithm name of the published digest
        """
        super().__init__(name, **options)

        if algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unknown hash algorithm: {algorithm}")

        self.url = url
        self.checksum_url = checksum_url
        self.command = command
        self.creates = creates
        self.algorithm = algorithm

        # Auto-register
        get_executor().add(self)

    def resource_type(self) -> str:
        return "installer"

    def check(self, platform: Platform) -> Dict[str, Any]:
        installed = self._transport.file_exists(self.creates)
        return {"exists": installed, "path": self.creates if installed else None}

    def desired_state(self) -> Dict[str, Any]:
        return {"exists": True, "path": self.creates}

    def apply(self, plan: Plan, platform: Platform) -> None:
        expected = self.fetch_expected_digest()

        output, code = self._transport.run_command(["mktemp", "/tmp/lempkit-installer.XXXXXX"])
        if code != 0:
            raise CommandFailed("mktemp", code, output, what="Creating installer download path")
        installer = output.strip()

        try:
            self._download(installer)
            self.verify(installer, expected)
            self._install(installer)
        finally:
            self._transport.run_command(["rm", "-f", installer])

    def fetch_expected_digest(self) -> str:
        """Fetch and sanity-check the published digest."""
        output, code = self._transport.run_command(["curl", "-fsSL", self.checksum_url])
        if code != 0:
            raise CommandFailed(f"curl -fsSL {self.checksum_url}", code, output,
                                what="Fetching installer signature")

        digest = output.strip().split()[0].lower() if output.strip() else ""
        size = hashlib.new(self.algorithm).digest_size * 2
        if not re.fullmatch(rf"[0-9a-f]{{{size}}}", digest):
            raise ProvisionError(
                f"Unexpected {self.algorithm} digest from {self.checksum_url}: {output.strip()[:100]!r}"
            )
        return digest

    def _download(self, installer: str) -> None:
        args = ["curl", "-fsSL", "-o", installer, self.url]
        output, code = self._transport.run_command(args)
        if code != 0:
            raise CommandFailed(" ".join(args), code, output, what="Downloading installer")

    def verify(self, installer: str, expected: str) -> None:
        """Raise ChecksumMismatch unless the payload hashes to `expected`."""
        payload = self._transport.read_file(installer)
        actual = hashlib.new(self.algorithm, payload).hexdigest()
        if actual != expected:
            raise ChecksumMismatch(self.url, expected, actual)
        logger.success(f"Installer hash matches ({self.algorithm})")

    def _install(self, installer: str) -> None:
        command = self.command.format(installer=shlex.quote(installer))
        output, code = self._transport.run_shell(command)
        if code != 0:
            raise CommandFailed(command, code, output, what=f"Running {self.name} installer")
