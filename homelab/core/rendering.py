"""Shared rendering helpers for generated artifacts.

Generated files carry a fixed header and no timestamps, so rendering the same
configuration twice yields byte-identical output.
"""
from typing import Any, Dict

import yaml
from jinja2 import BaseLoader, Environment

GENERATED_NOTICE = "Generated by homelab from {source} - DO NOT EDIT"

_jinja_env = Environment(
    loader=BaseLoader(),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def generated_header(source: str, comment: str = "#") -> str:
    notice = GENERATED_NOTICE.format(source=source)
    if comment == "<!--":
        return f"<!-- {notice} -->\n"
    return f"{comment} {notice}\n"


def render_template(template: str, **context: Any) -> str:
    """Render a jinja2 template string."""
    return _jinja_env.from_string(template).render(**context)


def render_yaml(document: Dict[str, Any], source: str) -> str:
    """Dump a structured document as YAML below the generated header."""
    body = yaml.safe_dump(document, sort_keys=False, default_flow_style=False)
    return generated_header(source) + "\n" + body
