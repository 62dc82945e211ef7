"""
MySQL resources - root password and secure installation.

Both talk to the server with the mysql client as root@localhost over
the unix socket. Password and SQL go to the host on stdin, never on a
command line.
"""

import shlex
from typing import Any, Dict, List, Optional, Tuple

from lempkit.core.errors import CommandFailed, KnownAfterApply
from lempkit.core.executor import get_executor
from lempkit.core import Plan, Platform, Resource

SOCKET_PLUGIN = "auth_socket"

# Client exit states that mean "the server is not there yet"
_NOT_INSTALLED = 127
_UNREACHABLE_MARKERS = ("Can't connect to local MySQL server", "ERROR 2002", "ERROR 2003")
SQL_DELIMITER = "LEMPKIT_SQL"


def sql_string(value: str) -> str:
    """Quote a value as a single-line MySQL string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return "'" + escaped.replace("\n", "\\n").replace("\r", "\\r") + "'"


def client_script(user: str, sql: str, password: Optional[str] = None) -> str:
    """
    A shell script that runs `sql` with the mysql client.

    The script is fed to `sh -s` on stdin: the password reaches the
    client through its environment and the SQL through a here-document,
    so neither shows up in any process's argv.
    """
    if "\n" in sql:
        raise ValueError("SQL must be a single line")

    lines = []
    if password is not None:
        lines.append(f"export MYSQL_PWD={shlex.quote(password)}")
    lines.append(f"mysql -u {shlex.quote(user)} -N -B <<'{SQL_DELIMITER}'")
    lines.append(sql)
    lines.append(SQL_DELIMITER)
    return "\n".join(lines) + "\n"


class _MysqlResource(Resource):
    """Shared client plumbing."""

    def __init__(self, name: str, password: str, user: str = "root", **options):
        super().__init__(name, **options)
        self.password = password
        self.user = user

        # Auto-register
        get_executor().add(self)

    def _query(self, sql: str, password: Optional[str] = None) -> Tuple[str, int]:
        """Run SQL, tab-separated output without column names."""
        return self._transport.run_shell("sh -s", input=client_script(self.user, sql, password))

    def _defer_if_unavailable(self, output: str, code: int) -> None:
        if code == _NOT_INSTALLED:
            raise KnownAfterApply("MySQL client is installed later in this run")
        if any(marker in output for marker in _UNREACHABLE_MARKERS):
            raise KnownAfterApply("MySQL server is started later in this run")

    def _execute(self, statements: List[str], password: Optional[str], what: str) -> None:
        sql = " ".join(statements)
        output, code = self._query(sql, password)
        if code != 0:
            # Never echo SQL that may carry the password
            raise CommandFailed(f"mysql -u {self.user} -e <{what}>", code, output, what=what)


class MysqlRootPassword(_MysqlResource):
    """
    Password login for root@localhost.

    Satisfied when root authenticates with a password plugin and the
    configured password works. Otherwise runs
    ALTER USER 'root'@'localhost' IDENTIFIED WITH <plugin> BY '<password>'.
    If root already has a different password the ALTER fails and the
    run stops; that has to be sorted out by hand.

    Example:
        MysqlRootPassword(password="MyNewRootPassword123!")
    """

    def __init__(self, password: str, plugin: str = "mysql_native_password", **options):
        super().__init__("root-password", password, **options)
        self.plugin = plugin

    def resource_type(self) -> str:
        return "mysql"

    def check(self, platform: Platform) -> Dict[str, Any]:
        sql = f"SELECT plugin FROM mysql.user WHERE user={sql_string(self.user)} AND host='localhost'"

        output, code = self._query(sql, self.password)
        self._defer_if_unavailable(output, code)

        if code == 0:
            plugin = output.strip() or None
            # A socket-authenticated login ignores the password
            return {"exists": True, "plugin": plugin, "password_ok": plugin not in (None, SOCKET_PLUGIN)}

        # Wrong or missing password; see whether plain socket auth gets in
        output, code = self._query(sql)
        self._defer_if_unavailable(output, code)
        plugin = None
        if code == 0:
            plugin = output.strip() or None
        return {"exists": True, "plugin": plugin, "password_ok": False}

    def desired_state(self) -> Dict[str, Any]:
        return {"exists": True, "plugin": self.plugin, "password_ok": True}

    def apply(self, plan: Plan, platform: Platform) -> None:
        statement = (
            f"ALTER USER {sql_string(self.user)}@'localhost' "
            f"IDENTIFIED WITH {self.plugin} BY {sql_string(self.password)};"
        )
        self._execute([statement, "FLUSH PRIVILEGES;"], self.password, "Setting MySQL root password")


class MysqlHardening(_MysqlResource):
    """
    Non-interactive equivalent of mysql_secure_installation.

    Removes anonymous users, root accounts reachable from other hosts
    and the test database, then reloads the privilege tables.
    """

    def __init__(self, password: str, **options):
        super().__init__("secure-installation", password, **options)

    def resource_type(self) -> str:
        return "mysql"

    def check(self, platform: Platform) -> Dict[str, Any]:
        sql = (
            "SELECT "
            "(SELECT COUNT(*) FROM mysql.user WHERE user=''), "
            "(SELECT COUNT(*) FROM mysql.user WHERE user='root' "
            "AND host NOT IN ('localhost', '127.0.0.1', '::1')), "
            "(SELECT COUNT(*) FROM information_schema.schemata WHERE schema_name='test')"
        )
        output, code = self._query(sql, self.password)
        self._defer_if_unavailable(output, code)
        if code != 0:
            raise CommandFailed("mysql -e <secure-installation check>", code, output,
                                what="Inspecting MySQL accounts")

        counts = output.strip().split()
        if len(counts) != 3 or not all(c.isdigit() for c in counts):
            raise CommandFailed("mysql -e <secure-installation check>", code, output,
                                what="Inspecting MySQL accounts (unexpected output)")

        anonymous, remote_root, test_db = (int(c) for c in counts)
        return {
            "exists": True,
            "anonymous_users": anonymous,
            "remote_root": remote_root,
            "test_database": test_db > 0,
        }

    def desired_state(self) -> Dict[str, Any]:
        return {
            "exists": True,
            "anonymous_users": 0,
            "remote_root": 0,
            "test_database": False,
        }

    def apply(self, plan: Plan, platform: Platform) -> None:
        self._execute(
            [
                "DELETE FROM mysql.user WHERE user='';",
                "DELETE FROM mysql.user WHERE user='root' "
                "AND host NOT IN ('localhost', '127.0.0.1', '::1');",
                "DROP DATABASE IF EXISTS test;",
                "DELETE FROM mysql.db WHERE db='test' OR db='test\\_%';",
                "FLUSH PRIVILEGES;",
            ],
            self.password,
            "Securing MySQL installation",
        )
