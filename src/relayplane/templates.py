"""Template placeholders in prompts and tool params.

Placeholders use jinja2 syntax and see the run's template context:
``{{ input.file }}``, ``{{ steps.extract.vendor }}`` or the shorthand
``{{ extract.vendor }}``. References to anything not yet available fail
loudly instead of rendering as an empty string.
"""

import json
import re
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError, Undefined

from relayplane.exceptions import TemplateRenderError


def _finalize(value: Any) -> Any:
    # Structured values embedded in text render as JSON
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return value


_env = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
    finalize=_finalize,
)

# A string that is exactly one placeholder, e.g. "{{ steps.extract.vendor }}"
_SINGLE_EXPRESSION = re.compile(r"^\s*\{\{\s*(?P<expr>[^{}]+?)\s*\}\}\s*$")


def has_placeholders(text: str) -> bool:
    return "{{" in text or "{%" in text


def render_text(template: str, variables: dict[str, Any]) -> str:
    """Render a template string.

    Raises:
        TemplateRenderError: On syntax errors or undefined references
    """
    if not has_placeholders(template):
        return template
    try:
        return _env.from_string(template).render(**variables)
    except TemplateError as e:
        raise TemplateRenderError(template, str(e)) from e


def _evaluate(template: str, expression: str, variables: dict[str, Any]) -> Any:
    try:
        value = _env.compile_expression(expression, undefined_to_none=False)(**variables)
    except TemplateError as e:
        raise TemplateRenderError(template, str(e)) from e
    if isinstance(value, Undefined):
        raise TemplateRenderError(template, f"'{expression}' is undefined")
    return value


def render_value(value: Any, variables: dict[str, Any]) -> Any:
    """Render placeholders inside a params structure.

    Dicts and lists are rendered recursively. A string that consists of a
    single placeholder yields the referenced value itself (a dict stays a
    dict); any other string is rendered as text.
    """
    if isinstance(value, dict):
        return {key: render_value(item, variables) for key, item in value.items()}
    if isinstance(value, list):
        return [render_value(item, variables) for item in value]
    if isinstance(value, tuple):
        return tuple(render_value(item, variables) for item in value)
    if not isinstance(value, str) or not has_placeholders(value):
        return value

    match = _SINGLE_EXPRESSION.match(value)
    if match:
        return _evaluate(value, match.group("expr"), variables)
    return render_text(value, variables)


def build_prompt(system_prompt: str | None, user_prompt: str | None) -> str | None:
    """Join system and user prompts with a blank line."""
    parts = [part for part in (system_prompt, user_prompt) if part]
    return "\n\n".join(parts) if parts else None


def escape_placeholders(text: str) -> str:
    """Protect text so that rendering returns it unchanged."""
    if not has_placeholders(text):
        return text
    return "{% raw %}" + text + "{% endraw %}"
