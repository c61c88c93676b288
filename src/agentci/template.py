from __future__ import annotations

import json
import re
from typing import Any

from jinja2 import Environment

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")
_SINGLE_PLACEHOLDER = re.compile(r"^\{\{\s*(\w+)\s*\}\}$")


def _finalize(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


_env = Environment(autoescape=False, finalize=_finalize)
_render_value = _env.from_string("{{ value }}").render


def get_by_path(obj: Any, path: str) -> Any:
    """Resolve a dot path such as ``data.reply.text``; ``None`` when any step is missing."""
    current = obj
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def render_request_template(template: Any, values: dict[str, Any]) -> Any:
    """Interpolate ``{{field}}`` placeholders in every string leaf of ``template``.

    A leaf that is exactly one placeholder is replaced by the typed value, so
    ``"{{temperature}}"`` stays a number and ``"{{tools}}"`` stays a list.
    """
    if isinstance(template, str):
        match = _SINGLE_PLACEHOLDER.match(template)
        if match:
            value = values.get(match.group(1))
            return "" if value is None else value
        return _PLACEHOLDER.sub(lambda m: _render_value(value=values.get(m.group(1))), template)
    if isinstance(template, list):
        return [render_request_template(item, values) for item in template]
    if isinstance(template, dict):
        return {key: render_request_template(item, values) for key, item in template.items()}
    return template
