"""
Nginx server block for the frontend + PHP API layout.
"""

from jinja2 import Environment, PackageLoader, StrictUndefined

from lempkit.config import HostConfig
from lempkit.php import PhpVersion

SITE_TEMPLATE = "site.conf.j2"

# Plain text config: no HTML escaping, fail on a missing variable
_env = Environment(
    loader=PackageLoader("lempkit", "templates"),
    autoescape=False,
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def render_site(config: HostConfig, php: PhpVersion) -> str:
    """Render the server block for `config` with PHP-FPM `php`."""
    template = _env.get_template(SITE_TEMPLATE)
    return template.render(
        domain=config.domain,
        frontend_root=config.frontend_root.rstrip("/"),
        backend_root=config.backend_root.rstrip("/"),
        fpm_socket=php.fpm_socket,
    )
