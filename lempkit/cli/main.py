"""
lempkit CLI - plan and apply the LEMP stack on a host.

Commands:
    lempkit plan           - Show what would change
    lempkit apply          - Provision the host
    lempkit render-site    - Print the nginx server block
    lempkit platform-info  - Show detected platform
    lempkit version        - Show version
"""

import os
import sys
from typing import Callable, Optional

import click

from lempkit.config import HostConfig
from lempkit.core.errors import ProvisionError
from lempkit.core.executor import Executor, PlanResult, use_executor
from lempkit.core.resource import Action, Platform
from lempkit.logging import get_lemp_logger, setup_logging
from lempkit.php import PhpRuntime
from lempkit.site import render_site
from lempkit.stack import declare_stack, next_steps
from lempkit.transport import LocalTransport, SSHTransport, Transport

logger = get_lemp_logger(__name__)


def _octal(ctx, param, value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value, 8)
    except ValueError:
        raise click.BadParameter(f"{value!r} is not an octal mode (e.g. 755)")


def host_options(func: Callable) -> Callable:
    """Options describing the host and how to reach it."""
    options = [
        click.option("--domain", envvar="LEMPKIT_DOMAIN", help="Server name for the nginx site"),
        click.option("--frontend-root", envvar="LEMPKIT_FRONTEND_ROOT", help="Document root of the built frontend"),
        click.option("--backend-root", envvar="LEMPKIT_BACKEND_ROOT", help="Laravel application root"),
        click.option("--php-version", envvar="LEMPKIT_PHP_VERSION", help="Skip detection and use this PHP version (e.g. 8.1)"),
        click.option("--mysql-root-password", envvar="LEMPKIT_MYSQL_ROOT_PASSWORD", help="Password to set for root@localhost"),
        click.option("--web-user", envvar="LEMPKIT_WEB_USER", help="Owner (and group) of the web roots"),
        click.option("--web-root-mode", envvar="LEMPKIT_WEB_ROOT_MODE", callback=_octal, help="Octal mode for the web roots"),
        click.option("--no-upgrade", is_flag=True, envvar="LEMPKIT_NO_UPGRADE", help="Skip the OS package upgrade"),
        click.option("--host", envvar="LEMPKIT_HOST", help="Remote host to provision over SSH"),
        click.option("--user", envvar="LEMPKIT_SSH_USER", help="SSH username"),
        click.option("--key", envvar="LEMPKIT_SSH_KEY", help="SSH private key file"),
        click.option("--port", default=22, envvar="LEMPKIT_SSH_PORT", help="SSH port (default: 22)"),
        click.option("--sudo", is_flag=True, envvar="LEMPKIT_SSH_SUDO", help="Use sudo for remote commands"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _host_config(domain, frontend_root, backend_root, php_version, mysql_root_password,
                 web_user, web_root_mode, no_upgrade) -> HostConfig:
    try:
        return HostConfig().with_overrides(
            domain=domain,
            frontend_root=frontend_root,
            backend_root=backend_root,
            php_version=php_version,
            mysql_root_password=mysql_root_password,
            web_user=web_user,
            web_group=web_user,
            web_root_mode=web_root_mode,
            upgrade_system=False if no_upgrade else None,
        )
    except ProvisionError as e:
        click.secho(f"Configuration error: {e}", fg="red")
        sys.exit(1)


def _open_transport(host: Optional[str], user: Optional[str], key: Optional[str],
                    port: int, sudo: bool) -> Transport:
    if not host:
        return LocalTransport()

    click.echo(f"Connecting to {user or 'current_user'}@{host}:{port}...")
    try:
        return SSHTransport(host=host, port=port, user=user, key_file=key, sudo=sudo)
    except Exception as e:
        click.secho(f"SSH connection failed: {e}", fg="red")
        sys.exit(1)


def _declare(config: HostConfig, transport: Transport) -> Executor:
    executor = use_executor(Executor(transport=transport))
    declare_stack(config, PhpRuntime(transport, pinned=config.php_version))
    return executor


@click.group(invoke_without_command=True)
@click.option("--log-level", default="INFO", envvar="LEMPKIT_LOG_LEVEL",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Log level (default: INFO)")
@click.pass_context
def cli(ctx, log_level: str):
    """lempkit - provision nginx, PHP-FPM, MySQL and Composer on Ubuntu."""
    setup_logging(level=log_level, force=True)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@host_options
def plan(host, user, key, port, sudo, **host_values):
    """
    Show what would change without applying.

    Example:
        sudo lempkit plan --domain example.com
        lempkit plan --domain example.com --host web1.example.com --user ubuntu --sudo
    """
    config = _host_config(**host_values)

    with _open_transport(host, user, key, port, sudo) as transport:
        executor = _declare(config, transport)
        click.echo(f"Planning {config.domain} on {host or 'localhost'}...\n")
        plan_result = executor.plan()
        _show_plan(plan_result)

        if plan_result.has_errors:
            sys.exit(1)
        if plan_result.has_changes:
            click.echo("\nRun 'lempkit apply' with the same options to apply these changes.")


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@host_options
def apply(yes, host, user, key, port, sudo, **host_values):
    """
    Provision the host.

    Example:
        sudo lempkit apply --domain example.com --yes
    """
    config = _host_config(**host_values)

    if not host and hasattr(os, "geteuid") and os.geteuid() != 0:
        click.secho("lempkit apply must run as root (try: sudo lempkit apply ...)", fg="red")
        sys.exit(1)

    with _open_transport(host, user, key, port, sudo) as transport:
        executor = _declare(config, transport)
        click.echo(f"Planning {config.domain} on {host or 'localhost'}...\n")
        plan_result = executor.plan()

        if plan_result.has_errors:
            _show_plan(plan_result)
            sys.exit(1)

        if not plan_result.has_changes:
            click.secho("No changes needed.", fg="green")
            return

        click.echo(f"Applying {plan_result.change_count} changes...\n")

        if not yes and not click.confirm("Proceed with apply?"):
            click.echo("Aborted.")
            return

        apply_result = executor.apply(plan_result)

        click.echo()
        for resource_id in apply_result.changed_resources:
            resource_plan = plan_result.plans.get(resource_id)
            symbol = _action_symbol(resource_plan.action if resource_plan else Action.UPDATE)
            click.echo(f"  {symbol} {resource_id} ... ", nl=False)
            click.secho("✓ Done", fg="green")

        if apply_result.errors:
            click.secho("\nErrors during apply:", fg="red")
            if apply_result.failed_resource:
                click.secho(f"  stopped at {apply_result.failed_resource}", fg="red")
            for error in apply_result.errors:
                click.secho(f"  ! {error}", fg="red")
            sys.exit(1)

        click.secho(f"\nApply complete! ({apply_result.duration:.2f}s)", fg="green")
        click.echo("\nNext steps:")
        for number, step in enumerate(next_steps(config), start=1):
            logger.hint(f"{number:>3}. {step}")


@cli.command("render-site")
@host_options
def render_site_command(host, user, key, port, sudo, **host_values):
    """
    Print the nginx server block that apply would write.

    Without --php-version the PHP version is detected on the host.
    """
    config = _host_config(**host_values)

    with _open_transport(host, user, key, port, sudo) as transport:
        php = PhpRuntime(transport, pinned=config.php_version)
        try:
            version = php.detect()
        except ProvisionError as e:
            click.secho(str(e), fg="red")
            sys.exit(1)

        if version is None:
            click.secho("PHP is not installed on the host; pass --php-version.", fg="red")
            sys.exit(1)

        click.echo(render_site(config, version), nl=False)


@cli.command()
def version():
    """Show lempkit version."""
    from lempkit import __version__
    click.echo(f"lempkit version {__version__}")


@cli.command()
def platform_info():
    """Show detected platform information."""
    plat = Platform.detect()
    click.echo("Platform Information:")
    click.echo(f"  System:  {plat.system}")
    click.echo(f"  Distro:  {plat.distro}")
    click.echo(f"  Version: {plat.version}")
    click.echo(f"  Arch:    {plat.arch}")


def _show_plan(plan_result: PlanResult) -> None:
    if plan_result.has_errors:
        click.secho("Errors during planning:", fg="red")
        for error in plan_result.errors:
            click.secho(f"  ! {error}", fg="red")
        click.echo()

    if not plan_result.has_changes:
        click.secho("No changes needed.", fg="green")
        return

    click.echo("lempkit will perform the following actions:\n")

    for resource_id, resource_plan in plan_result.plans.items():
        if resource_plan.has_changes():
            _display_plan(resource_id, resource_plan)

    click.echo(f"Plan: {plan_result.change_count} to change")


def _display_plan(resource_id: str, plan) -> None:
    """Display a single resource plan."""
    symbol = _action_symbol(plan.action)
    click.echo(f"  {symbol} {resource_id}")

    if plan.reason:
        click.echo(f"      reason: {plan.reason}")

    for change in plan.changes:
        from_value, to_value = change.from_value, change.to_value
        if change.field == "content":
            # Whole files are too long for a plan line
            from_value = _summarize(from_value)
            to_value = _summarize(to_value)
        click.echo(f"      {change.field}: {from_value} → {to_value}")

    click.echo()


def _summarize(value) -> str:
    if not isinstance(value, str):
        return str(value)
    return f"<{len(value.splitlines())} lines>"


def _action_symbol(action: Action) -> str:
    """Get symbol for action."""
    if action == Action.CREATE:
        return click.style("+", fg="green")
    elif action == Action.UPDATE:
        return click.style("~", fg="yellow")
    elif action == Action.DELETE:
        return click.style("-", fg="red")
    else:
        return " "


def main():
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
