"""
A simulated Ubuntu host for end-to-end runs of the stack.

SimulatedHost understands the commands the resources issue (dpkg-query,
apt-get, systemctl, stat, find, mysql, curl, php, ...) and keeps just
enough state to answer them: installed packages, systemd units, a
filesystem and the MySQL accounts.
"""

import hashlib
import re
import shlex
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

import pytest

from lempkit.core.executor import Executor, reset_executor, use_executor
from lempkit.transport.base import Transport

from tests.conftest import UBUNTU

PHP_BANNER = (
    "PHP 8.1.2-1ubuntu2.14 (cli) (built: Aug 18 2023 11:41:11) (NTS)\n"
    "Copyright (c) The PHP Group\n"
    "Zend Engine v4.1.2, Copyright (c) Zend Technologies\n"
)
INSTALLER = b"<?php\n// composer installer\n"
OS_RELEASE = b'NAME="Ubuntu"\nID=ubuntu\nVERSION_ID="22.04"\nVERSION_CODENAME=jammy\n'


@dataclass
class Node:
    type: str  # file, directory, link
    content: bytes = b""
    target: Optional[str] = None
    mode: int = 0o644
    owner: str = "root"
    group: str = "root"


@dataclass
class MysqlState:
    plugin: str = "auth_socket"
    password: Optional[str] = None
    anonymous: int = 1
    remote_root: int = 0
    test_db: bool = True


class SimulatedHost(Transport):

    def __init__(self, php_banner: str = PHP_BANNER, installer: bytes = INSTALLER):
        self.php_banner = php_banner
        self.installer = installer
        self.published_digest = hashlib.sha384(INSTALLER).hexdigest()
        self.nginx_config_ok = True
        self.apt_index_fresh = False
        self.upgradable: Set[str] = set()

        self.fs: Dict[str, Node] = {
            "/": Node("directory", mode=0o755),
            "/etc": Node("directory", mode=0o755),
            "/etc/os-release": Node("file", OS_RELEASE),
            "/tmp": Node("directory", mode=0o1777),
            "/usr/local/bin": Node("directory", mode=0o755),
        }
        self.packages: Set[str] = set()
        self.units: Dict[str, Dict[str, bool]] = {}
        self.mysql = MysqlState()
        self.commands: List[str] = []
        self.scripts: List[str] = []
        self.service_actions: List[Tuple[str, str]] = []
        self._tmp_counter = 0

    # Transport

    def run_command(self, args: list) -> Tuple[str, int]:
        return self.run_shell(" ".join(shlex.quote(str(arg)) for arg in args))

    def run_shell(self, command: str, input: Optional[str] = None) -> Tuple[str, int]:
        self.commands.append(command)
        if input is not None:
            self.scripts.append(input)

        if command == "sh -s":
            return self._run_script(input or "")

        # Pipelines the stack uses as guards
        if "apt-get -s upgrade" in command:
            if self.apt_index_fresh and self.upgradable:
                return "".join(f"Inst {package}\n" for package in sorted(self.upgradable)), 0
            return "", 1
        if command.startswith("find ") and "-mmin" in command:
            stamp = shlex.split(command)[1]
            return (stamp + "\n", 0) if stamp in self.fs else ("", 1)

        output, code = "", 0
        for part in command.split(" && "):
            output, code = self._dispatch(shlex.split(part))
            if code != 0:
                break
        return output, code

    def _dispatch(self, tokens: List[str], stdin: Optional[str] = None) -> Tuple[str, int]:
        env = {}
        while tokens and re.match(r"^[A-Z_]+=", tokens[0]):
            key, _, value = tokens.pop(0).partition("=")
            env[key] = value

        if tokens[0] == "mysql":
            return self._mysql(tokens[1:], env, stdin)
        handler = getattr(self, "_" + tokens[0].replace("-", "_"), None)
        if handler is None:
            return f"sh: 1: {tokens[0]}: not found", 127
        return handler(tokens[1:], env)

    def _run_script(self, script: str) -> Tuple[str, int]:
        """Run the `export` lines and here-document commands of a piped-in script."""
        env = {}
        lines = iter(script.splitlines())
        output, code = "", 0
        for line in lines:
            if line.startswith("export "):
                key, _, value = line[len("export "):].partition("=")
                env[key] = shlex.split(value)[0]
                continue
            head, _, delimiter = line.partition("<<")
            delimiter = delimiter.strip().strip("'")
            body = []
            for body_line in lines:
                if body_line == delimiter:
                    break
                body.append(body_line)
            tokens = [f"{key}={value}" for key, value in env.items()] + shlex.split(head)
            output, code = self._dispatch(tokens, "\n".join(body))
        return output, code

    def write_file(self, path: str, content: bytes) -> None:
        node = self.fs.get(path)
        if node is not None and node.type == "file":
            node.content = content
        else:
            self.fs[path] = Node("file", content)

    def read_file(self, path: str) -> bytes:
        node = self._resolve(path)
        if node is None or node.type != "file":
            raise FileNotFoundError(path)
        return node.content

    def file_exists(self, path: str) -> bool:
        return path in self.fs

    def close(self) -> None:
        pass

    # Helpers

    def ran(self, pattern: str) -> bool:
        return any(re.search(pattern, command) for command in self.commands)

    def index_of(self, pattern: str) -> int:
        for index, command in enumerate(self.commands):
            if re.search(pattern, command):
                return index
        raise AssertionError(f"no command matched {pattern!r}")

    def _resolve(self, path: str) -> Optional[Node]:
        node = self.fs.get(path)
        if node is not None and node.type == "link":
            return self.fs.get(node.target)
        return node

    def _below(self, path: str) -> List[str]:
        prefix = path.rstrip("/") + "/"
        return [p for p in self.fs if p == path or p.startswith(prefix)]

    def _mkdirs(self, path: str) -> None:
        parts = [p for p in path.split("/") if p]
        for depth in range(1, len(parts) + 1):
            current = "/" + "/".join(parts[:depth])
            self.fs.setdefault(current, Node("directory", mode=0o755))

    def _install(self, package: str) -> None:
        self.packages.add(package)

        if package == "nginx":
            self.units["nginx"] = {"active": False, "enabled": False}
            self._mkdirs("/etc/nginx/sites-available")
            self._mkdirs("/etc/nginx/sites-enabled")
            self.fs["/etc/nginx/sites-available/default"] = Node("file", b"server { listen 80 default_server; }\n")
            self.fs["/etc/nginx/sites-enabled/default"] = Node(
                "link", target="/etc/nginx/sites-available/default", mode=0o777
            )
            self._mkdirs("/var/www/html")
            self.fs["/var/www/html/index.nginx-debian.html"] = Node("file", b"<h1>Welcome to nginx!</h1>\n")
        elif package == "php-fpm":
            self.units["php8.1-fpm"] = {"active": False, "enabled": False}
            self._mkdirs("/run/php")
        elif package == "mysql-server":
            self.units["mysql"] = {"active": False, "enabled": False}

    # Commands

    def _uname(self, args, env):
        return ("Linux" if args == ["-s"] else "x86_64"), 0

    def _dpkg_query(self, args, env):
        package = args[-1]
        if package in self.packages:
            return "install ok installed|1.0", 0
        return f"dpkg-query: no packages found matching {package}", 1

    def _apt_get(self, args, env):
        if args[0] == "update":
            self.apt_index_fresh = True
        elif args[0] == "upgrade" and self.apt_index_fresh:
            self.upgradable.clear()
        elif args[0] == "install":
            for package in args[1:]:
                if not package.startswith("-"):
                    self._install(package)
        return "", 0

    def _export(self, args, env):
        return "", 0

    def _systemctl(self, args, env):
        verb, unit = args[0], args[-1]
        state = self.units.get(unit)

        if verb == "is-active":
            return "", 0 if state and state["active"] else 3
        if verb == "is-enabled":
            return "", 0 if state and state["enabled"] else 1

        if state is None:
            return f"Failed to {verb} {unit}.service: Unit {unit}.service not found.", 5

        if verb in ("start", "restart", "reload"):
            state["active"] = True
        elif verb == "stop":
            state["active"] = False
        elif verb == "enable":
            state["enabled"] = True
        elif verb == "disable":
            state["enabled"] = False
        self.service_actions.append((verb, unit))
        return "", 0

    def _nginx(self, args, env):
        enabled = [p for p in self._below("/etc/nginx/sites-enabled") if p != "/etc/nginx/sites-enabled"]
        dangling = [p for p in enabled if self._resolve(p) is None]
        if self.nginx_config_ok and not dangling:
            return "nginx: configuration file /etc/nginx/nginx.conf test is successful", 0
        return "nginx: [emerg] open() failed", 1

    def _php(self, args, env):
        if "php-cli" not in self.packages:
            return "sh: 1: php: not found", 127
        if args == ["-v"]:
            return self.php_banner, 0

        installer, *options = args
        if installer not in self.fs:
            return f"Could not open input file: {installer}", 1
        settings = dict(option[2:].split("=", 1) for option in options)
        self.fs[f"{settings['install-dir']}/{settings['filename']}"] = Node("file", b"#!/usr/bin/env php\n", mode=0o755)
        return "Composer (version 2.7.1) successfully installed", 0

    def _mysql(self, args, env, stdin=None):
        if "mysql-client" not in self.packages:
            return "sh: 1: mysql: not found", 127
        if not self.units.get("mysql", {}).get("active"):
            return "ERROR 2002 (HY000): Can't connect to local MySQL server through socket", 1
        if self.mysql.plugin != "auth_socket" and env.get("MYSQL_PWD") != self.mysql.password:
            return "ERROR 1045 (28000): Access denied for user 'root'@'localhost'", 1

        sql = (stdin or "").strip()
        if sql.startswith("SELECT plugin"):
            return self.mysql.plugin + "\n", 0
        if sql.startswith("SELECT (SELECT COUNT"):
            state = self.mysql
            return f"{state.anonymous}\t{state.remote_root}\t{int(state.test_db)}\n", 0
        if sql.startswith("ALTER USER"):
            self.mysql.plugin = re.search(r"IDENTIFIED WITH (\w+)", sql).group(1)
            password = re.search(r"BY '((?:[^'\\]|\\.)*)'", sql).group(1)
            self.mysql.password = re.sub(r"\\(.)", r"\1", password)
            return "", 0
        if sql.startswith("DELETE FROM mysql.user"):
            self.mysql.anonymous = 0
            self.mysql.remote_root = 0
            self.mysql.test_db = False
            return "", 0
        return f"ERROR 1064 (42000): unexpected statement {sql[:40]}", 1

    def _stat(self, args, env):
        path = args[2]
        node = self.fs.get(path)
        if node is None:
            return f"stat: cannot statx '{path}': No such file or directory", 1
        label = {"file": "regular file", "directory": "directory", "link": "symbolic link"}[node.type]
        return f"{label}|{node.mode:o}|{node.owner}|{node.group}\n", 0

    def _readlink(self, args, env):
        node = self.fs.get(args[-1])
        if node is None or node.type != "link":
            return "", 1
        return node.target + "\n", 0

    def _mkdir(self, args, env):
        self._mkdirs(args[-1])
        return "", 0

    def _touch(self, args, env):
        self.fs.setdefault(args[-1], Node("file"))
        return "", 0

    def _ln(self, args, env):
        target, path = args[-2], args[-1]
        self.fs[path] = Node("link", target=target, mode=0o777)
        return "", 0

    def _rm(self, args, env):
        path = args[-1]
        node = self.fs.get(path)
        if node is None:
            return "", 0
        if node.type == "link" or "-rf" not in args:
            del self.fs[path]
        else:
            for below in self._below(path):
                del self.fs[below]
        return "", 0

    def _targets(self, args) -> Tuple[List[str], List[str]]:
        recursive = "-R" in args
        rest = [a for a in args if a != "-R"]
        value, path = rest[0], rest[1]
        paths = self._below(path) if recursive else [path]
        return [value], paths

    def _chown(self, args, env):
        (owner_group,), paths = self._targets(args)
        owner, _, group = owner_group.partition(":")
        for path in paths:
            self.fs[path].owner = owner
            if group:
                self.fs[path].group = group
        return "", 0

    def _chgrp(self, args, env):
        (group,), paths = self._targets(args)
        for path in paths:
            self.fs[path].group = group
        return "", 0

    def _chmod(self, args, env):
        (mode,), paths = self._targets(args)
        for path in paths:
            self.fs[path].mode = int(mode, 8)
        return "", 0

    def _find(self, args, env):
        root = args[0]
        wanted = {}
        for flag in ("-user", "-group", "-perm"):
            if flag in args:
                wanted[flag] = args[args.index(flag) + 1]
        skip_links = "-type" in args

        for path in self._below(root):
            node = self.fs[path]
            if ("-user" in wanted and node.owner != wanted["-user"]) or \
               ("-group" in wanted and node.group != wanted["-group"]) or \
               ("-perm" in wanted and not (skip_links and node.type == "link")
                    and node.mode != int(wanted["-perm"], 8)):
                return path + "\n", 0
        return "", 0

    def _mktemp(self, args, env):
        self._tmp_counter += 1
        path = args[-1].replace("XXXXXX", f"q{self._tmp_counter:05d}")
        self.fs[path] = Node("file", mode=0o600)
        return path + "\n", 0

    def _curl(self, args, env):
        url = args[-1]
        if "-o" in args:
            self.fs[args[args.index("-o") + 1]] = Node("file", self.installer)
            return "", 0
        if url.endswith("installer.sig"):
            return self.published_digest, 0
        return f"curl: (22) The requested URL returned error: 404 for {url}", 22


@pytest.fixture
def host():
    return SimulatedHost()


@pytest.fixture
def host_executor(host):
    executor = use_executor(Executor(platform=UBUNTU, transport=host))
    yield executor
    reset_executor()
