"""Shared utility functions for the chat client and gateway.

This module contains reusable helper functions used across the codebase:
- Template rendering (_render_error_template)
- JSON helpers (_safe_json_loads)
- String normalization and truncation

These utilities have minimal dependencies and can be used by any module.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

_TEMPLATE_DIRECTIVE_RE = re.compile(r"^\s*\{\{\s*(?:#if\s+(\w+)|(/if))\s*\}\}\s*$")
_TEMPLATE_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")

# -----------------------------------------------------------------------------
# Template Rendering
# -----------------------------------------------------------------------------

def _render_error_template(template: str, values: dict[str, Any]) -> str:
    """Render an error template, honoring {{#if}} conditionals.

    ``{{#if name}}`` and ``{{/if}}`` must sit on their own lines. Lines whose
    placeholders resolve to empty values are dropped, so optional details never
    leave dangling labels behind. Unknown placeholders are left as written.
    """
    rendered_lines: list[str] = []
    condition_stack: list[bool] = []

    for raw_line in (template or "").splitlines():
        directive = _TEMPLATE_DIRECTIVE_RE.match(raw_line)
        if directive:
            name, closing = directive.groups()
            if not closing:
                condition_stack.append(_template_value_present(values.get(name)))
            elif condition_stack:
                condition_stack.pop()
            continue
        if not all(condition_stack):
            continue
        line = _fill_template_line(raw_line, values)
        if line is not None:
            rendered_lines.append(line)
    return "\n".join(rendered_lines).strip()


def _fill_template_line(line: str, values: dict[str, Any]) -> Optional[str]:
    """Substitute placeholders in one line, or return None if any is empty."""
    names = [name for name in _TEMPLATE_PLACEHOLDER_RE.findall(line) if name in values]
    if not all(_template_value_present(values[name]) for name in names):
        return None
    return _TEMPLATE_PLACEHOLDER_RE.sub(
        lambda match: str(values[match.group(1)]) if match.group(1) in values else match.group(0),
        line,
    )


def _template_value_present(value: Any) -> bool:
    """None and blank strings are absent; numbers, zero included, are present."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


# -----------------------------------------------------------------------------
# JSON Helpers
# -----------------------------------------------------------------------------

def _safe_json_loads(payload: Optional[str]) -> Any:
    """Return parsed JSON or None without raising."""
    if not payload:
        return None
    try:
        return json.loads(payload)
    except (TypeError, ValueError):
        return None


# -----------------------------------------------------------------------------
# String Normalization
# -----------------------------------------------------------------------------

def _normalize_optional_str(value: Any) -> Optional[str]:
    """Convert arbitrary input into a trimmed string or None."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def _truncate(text: str, max_chars: int) -> str:
    if max_chars <= 0:
        return ""
    return text if len(text) <= max_chars else text[:max_chars]
