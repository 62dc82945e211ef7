"""
Transport layer for local and remote execution.

Provides abstraction for:
- Local command execution
- SSH remote execution
"""

from lempkit.transport.base import Transport, NullTransport
from lempkit.transport.local import LocalTransport
from lempkit.transport.ssh import SSHTransport

__all__ = ["Transport", "NullTransport", "LocalTransport", "SSHTransport"]
