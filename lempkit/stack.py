"""
The LEMP stack as a desired-state declaration.

declare_stack() registers, in apply order, every resource a host needs
to serve a static frontend from one web root and a Laravel API from
another: nginx, PHP-FPM, MySQL, the server block, web root ownership
and Composer.
"""

from typing import Dict, List

from lempkit.config import HostConfig
from lempkit.core.resource import Resource
from lempkit.php import PhpRuntime
from lempkit.resources import (
    Exec,
    File,
    MysqlHardening,
    MysqlRootPassword,
    Package,
    PhpFpmService,
    Service,
    VerifiedInstaller,
)
from lempkit.site import render_site

# apt touches this after a successful update where update-notifier is
# installed; the apt-update resource touches it everywhere else
APT_STAMP_DIR = "/var/lib/apt/periodic"
APT_UPDATE_STAMP = f"{APT_STAMP_DIR}/update-success-stamp"


def declare_stack(config: HostConfig, php: PhpRuntime) -> Dict[str, Resource]:
    """
    Register the stack's resources with the global executor.

    Returns the resources by role, for callers that want to inspect them.
    """
    declared: Dict[str, Resource] = {}

    # 1. System packages. Whether an upgrade is due is read from the local
    # package index, so the index is refreshed first.
    if config.upgrade_system:
        declared["apt_update"] = Exec(
            "apt-update",
            command=f"apt-get update && mkdir -p {APT_STAMP_DIR} && touch {APT_UPDATE_STAMP}",
            unless=(
                f"find {APT_UPDATE_STAMP} -mmin -{config.apt_index_max_age_minutes} 2>/dev/null "
                "| grep -q ."
            ),
        )
        declared["system_upgrade"] = Exec(
            "system-upgrade",
            command="apt-get upgrade -y",
            environment={"DEBIAN_FRONTEND": "noninteractive"},
            only_if="apt-get -s upgrade 2>/dev/null | grep -q '^Inst '",
        )

    # 2. Nginx
    site_ids = [
        f"file:{config.site_available}",
        f"file:{config.site_enabled}",
        f"file:{config.default_site_enabled}",
    ]
    declared["nginx_package"] = Package("nginx")
    declared["nginx"] = Service(
        "nginx",
        running=True,
        enabled=True,
        reload_on=site_ids,
        validate=["nginx", "-t"],
    )

    # 3. PHP and PHP-FPM
    declared["php_packages"] = Package("php", packages=list(config.php_packages))
    declared["php_fpm"] = PhpFpmService(php, running=True, enabled=True)

    # 4. MySQL
    declared["mysql_packages"] = Package(["mysql-server", "mysql-client"])
    declared["mysql"] = Service("mysql", running=True, enabled=True)
    declared["mysql_root_password"] = MysqlRootPassword(
        config.mysql_root_password,
        plugin=config.mysql_auth_plugin,
    )
    declared["mysql_hardening"] = MysqlHardening(config.mysql_root_password)

    # 5. Web roots, owned by the web server user all the way down
    for role, root in (("frontend_root", config.frontend_root), ("backend_root", config.backend_root)):
        declared[role] = File(
            root,
            ensure="directory",
            owner=config.web_user,
            group=config.web_group,
            mode=config.web_root_mode,
            recurse=True,
        )

    # 6. Server block
    declared["site"] = File(
        config.site_available,
        content=lambda: render_site(config, php.require_version()),
        mode=0o644,
    )
    declared["site_link"] = File(config.site_enabled, ensure="link", target=config.site_available)
    declared["default_site"] = File(config.default_site_enabled, ensure="absent")

    # 7. Composer
    declared["curl"] = Package("curl")
    declared["composer"] = VerifiedInstaller(
        "composer",
        url=config.composer_installer_url,
        checksum_url=config.composer_signature_url,
        command=(
            f"php {{installer}} --install-dir={config.composer_install_dir} "
            f"--filename={config.composer_filename}"
        ),
        creates=config.composer_path,
    )

    return declared


def next_steps(config: HostConfig) -> List[str]:
    """What is left to do by hand once the host is provisioned."""
    return [
        f"Place your React/Vite build output (npm run build / yarn build) in {config.frontend_root}",
        f"Place your PHP (Laravel) backend files in {config.backend_root}",
        "Make sure the Laravel storage/ and bootstrap/cache/ directories are writable by "
        f"{config.web_user}",
        "Update the Laravel .env file with the database credentials and application URL",
        f"Run migrations: cd {config.backend_root} && php artisan migrate",
        f"Set up API routes in {config.backend_root}/routes/api.php",
        f"Frontend: http://{config.domain}",
        f"Backend API: http://{config.domain}/api/",
        "Configure a firewall: ufw allow 'Nginx Full' && ufw allow OpenSSH && ufw enable",
        "Point your domain's DNS records at this server",
        f"Enable HTTPS: apt install -y certbot python3-certbot-nginx && certbot --nginx -d {config.domain}",
    ]
