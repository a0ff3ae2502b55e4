"""
``{{path.to.field}}`` substitution for webhook action callbacks.

Values are looked up in the original event context; a missing or null
value renders as an empty string.
"""

import re
from typing import Any

_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


def _lookup(context: Any, dotted_path: str) -> Any:
    value = context
    for part in dotted_path.strip().split("."):
        if isinstance(value, dict):
            value = value.get(part)
        elif isinstance(value, list) and part.isdigit():
            index = int(part)
            value = value[index] if index < len(value) else None
        else:
            return None
        if value is None:
            return None
    return value


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_template(text: Any, context: dict[str, Any]) -> Any:
    """Render placeholders inside one string; non-strings pass through."""
    if not isinstance(text, str):
        return text
    return _PLACEHOLDER.sub(lambda m: _stringify(_lookup(context, m.group(1))), text)


def render_deep(obj: Any, context: dict[str, Any]) -> Any:
    """Render every string found in nested dicts and lists."""
    if obj is None:
        return None
    if isinstance(obj, list):
        return [render_deep(item, context) for item in obj]
    if isinstance(obj, dict):
        return {key: render_deep(value, context) for key, value in obj.items()}
    return render_template(obj, context)
