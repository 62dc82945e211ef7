"""
SSH transport - provision a remote host over SSH.
"""

import os
import shlex
import uuid
from pathlib import Path
from typing import Tuple, Optional

import paramiko

from lempkit.transport.base import Transport


class SSHTransport(Transport):
    """
    SSH transport for running commands on remote hosts.

    Uses Paramiko for SSH connectivity. With sudo=True every command
    runs through `sudo -n sh -c`, so the remote user needs passwordless
    sudo.

    Example:
        with SSHTransport(host="web1.example.com", user="ubuntu", sudo=True) as transport:
            output, code = transport.run_command(["nginx", "-t"])
    """

    def __init__(
        self,
        host: str,
        port: int = 22,
        user: Optional[str] = None,
        password: Optional[str] = None,
        key_file: Optional[str] = None,
        timeout: int = 30,
        sudo: bool = False,
    ):
        self.host = host
        self.port = port
        self.user = user or os.getenv("USER")
        self.password = password
        self.key_file = key_file
        self.timeout = timeout
        self.sudo = sudo
        self.client: Optional[paramiko.SSHClient] = None

        self._connect()

    def _connect(self) -> None:
        """Establish SSH connection."""
        self.client = paramiko.SSHClient()
        self.client.load_system_host_keys()
        self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs = {
            "hostname": self.host,
            "port": self.port,
            "username": self.user,
            "timeout": self.timeout,
        }

        if self.password:
            connect_kwargs["password"] = self.password

        if self.key_file:
            connect_kwargs["key_filename"] = str(Path(self.key_file).expanduser())

        self.client.connect(**connect_kwargs)

    def _wrap(self, command: str) -> str:
        if self.sudo:
            return f"sudo -n sh -c {shlex.quote(command)}"
        return command

    def _exec(self, command: str, input: Optional[str] = None) -> Tuple[bytes, bytes, int]:
        stdin, stdout, stderr = self.client.exec_command(self._wrap(command))
        if input is not None:
            stdin.write(input)
        stdin.channel.shutdown_write()
        out = stdout.read()
        err = stderr.read()
        exit_code = stdout.channel.recv_exit_status()
        return out, err, exit_code

    def run_shell(self, command: str, input: Optional[str] = None) -> Tuple[str, int]:
        out, err, exit_code = self._exec(command, input)
        return out.decode(errors="replace") + err.decode(errors="replace"), exit_code

    def run_command(self, args: list) -> Tuple[str, int]:
        return self.run_shell(" ".join(shlex.quote(str(arg)) for arg in args))

    def write_file(self, path: str, content: bytes) -> None:
        """
        Write content to file on remote host.

        With sudo, the content goes to a temp file over SFTP and is then
        moved into place as root.
        """
        if not self.sudo:
            sftp = self.client.open_sftp()
            try:
                with sftp.open(path, "wb") as f:
                    f.write(content)
            finally:
                sftp.close()
            return

        temp_path = f"/tmp/lempkit-{uuid.uuid4().hex[:12]}.tmp"

        sftp = self.client.open_sftp()
        try:
            with sftp.open(temp_path, "wb") as f:
                f.write(content)
        finally:
            sftp.close()

        output, code = self.run_command(["mv", temp_path, path])
        if code != 0:
            raise IOError(f"Failed to write {path}: {output}")

    def read_file(self, path: str) -> bytes:
        """Read file content from remote host."""
        if self.sudo:
            out, err, code = self._exec(f"cat {shlex.quote(path)}")
            if code != 0:
                raise FileNotFoundError(f"{path}: {err.decode(errors='replace').strip()}")
            return out

        sftp = self.client.open_sftp()
        try:
            with sftp.open(path, "rb") as f:
                return f.read()
        except IOError as e:
            raise FileNotFoundError(f"{path}: {e}") from e
        finally:
            sftp.close()

    def file_exists(self, path: str) -> bool:
        quoted = shlex.quote(path)
        _, code = self.run_shell(f"test -e {quoted} || test -L {quoted}")
        return code == 0

    def close(self) -> None:
        """Close SSH connection."""
        if self.client:
            self.client.close()
            self.client = None
