"""Template loading and rendering utilities for giti.

Templates live in the giti.templates package, one directory per output
format (currently only text/).
"""

from typing import Any, Optional
from jinja2 import Environment, PackageLoader


def _create_jinja_env() -> Environment:
    env = Environment(
        loader=PackageLoader("giti", "templates"),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["state"] = lambda state: getattr(state, "value", state)
    return env


# Global Jinja2 environment (lazy initialization)
_jinja_env: Optional[Environment] = None


def get_jinja_env() -> Environment:
    global _jinja_env
    if _jinja_env is None:
        _jinja_env = _create_jinja_env()
    return _jinja_env


def render_template(format: str, name: str, **context: Any) -> str:
    """Render templates/<format>/<name>.jinja2 with the given context.

    Raises:
        TemplateNotFound: If the template file doesn't exist.
    """
    template = get_jinja_env().get_template(f"{format}/{name}.jinja2")
    return template.render(**context)
