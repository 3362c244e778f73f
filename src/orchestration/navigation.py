"""Navigation collaborator contract and parameter template resolution."""
from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Protocol

_PLACEHOLDER = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")


class Navigator(Protocol):
    """External navigation function.

    Called with the step's screen reference and resolved parameters. The
    engine neither waits for nor inspects the result.
    """

    def __call__(self, screen: str, params: Dict[str, Any]) -> Any: ...


def _resolve_string(template: str, data: Mapping[str, Any]) -> Any:
    whole = _PLACEHOLDER.fullmatch(template.strip())
    if whole and whole.group(1) in data:
        # A lone placeholder keeps the value's type.
        return data[whole.group(1)]

    def substitute(match: re.Match) -> str:
        key = match.group(1)
        if key not in data:
            return match.group(0)
        return str(data[key])

    return _PLACEHOLDER.sub(substitute, template)


def _resolve_value(value: Any, data: Mapping[str, Any]) -> Any:
    if isinstance(value, str):
        return _resolve_string(value, data)
    if isinstance(value, dict):
        return {key: _resolve_value(item, data) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_resolve_value(item, data) for item in value)
    return value


def resolve_params(template: Mapping[str, Any], data: Mapping[str, Any]) -> Dict[str, Any]:
    """Substitute ``{{key}}`` placeholders in a parameter template.

    Placeholders are looked up in ``data``; unresolved placeholders are left
    verbatim. Nested dicts and lists are resolved recursively.

    Args:
        template: Step parameter template
        data: Workflow data mapping

    Returns:
        New dictionary with placeholders resolved
    """
    return {key: _resolve_value(value, data) for key, value in template.items()}
