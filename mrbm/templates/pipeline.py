"""Remote archive pipeline template."""

import shlex

from jinja2 import Environment, StrictUndefined

# tar output followed by the SQL dump, concatenated on stdout
CAPTURE_SCRIPT_TEMPLATE = """set -euo pipefail
sudo tar -czf - {{ app_path | shquote }}
sudo docker exec -e MYSQL_PWD={{ db_password | shquote }} {{ db_container | shquote }} \
mysqldump -u root --all-databases --single-transaction
"""

_env = Environment(undefined=StrictUndefined, keep_trailing_newline=True)
_env.filters["shquote"] = shlex.quote


def get_capture_script(app_path: str, db_container: str, db_password: str) -> str:
    """Render the bash script that writes the combined archive to stdout."""
    template = _env.from_string(CAPTURE_SCRIPT_TEMPLATE)
    return template.render(app_path=app_path, db_container=db_container, db_password=db_password)


def render_capture_command(app_path: str, db_container: str, db_password: str) -> str:
    """Return the capture script wrapped for execution by the remote login shell."""
    script = get_capture_script(app_path, db_container, db_password)
    return f"bash -c {shlex.quote(script)}"
