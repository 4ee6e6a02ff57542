"""
Jinja2 environment for e-mail bodies (HTML, autoescaped) and assistant
prompts (plain text).
"""

from datetime import date, datetime
from pathlib import Path
from typing import Any

from jinja2 import ChainableUndefined, Environment, FileSystemLoader, select_autoescape

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


def fr_date(value: Any) -> str:
    """dd/mm/YYYY for dates, datetimes and ISO strings."""
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, (date, datetime)):
        return value.strftime("%d/%m/%Y")
    return str(value)


def yes_no(value: Any) -> str:
    return "Oui" if value else "Non"


env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    undefined=ChainableUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)
env.filters["fr_date"] = fr_date
env.filters["yes_no"] = yes_no


def render(template_name: str, **context: Any) -> str:
    return env.get_template(template_name).render(**context)
