"""Template interpolation and required-variable validation."""
from __future__ import annotations

import math
import re
from typing import Any, Iterable, List, Mapping, NamedTuple

from ...errors import ErrorKind, GenerationError
from .types import VariableSpec

_TOKEN_RE = re.compile(r"\{\{([^{}]+)\}\}")


class VariableValidation(NamedTuple):
    valid: bool
    missing: List[str]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return str(value).strip() == ""


def interpolate(template: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{{name}}`` tokens whose key is present in ``variables``.

    Values are converted to strings and trimmed; ``None`` becomes an empty
    string. Tokens without a matching key are left untouched.
    """

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        value = variables[name]
        return "" if value is None else str(value).strip()

    return _TOKEN_RE.sub(_substitute, template or "")


def validate_variables(
    variables: Mapping[str, Any], schema: Iterable[VariableSpec]
) -> VariableValidation:
    """Return every required variable that is absent, ``None`` or whitespace."""

    missing = [
        entry.name
        for entry in schema
        if entry.required and _is_blank(variables.get(entry.name))
    ]
    return VariableValidation(valid=not missing, missing=missing)


def ensure_variables(variables: Mapping[str, Any], schema: Iterable[VariableSpec]) -> None:
    """Raise ``INVALID_VARIABLES`` naming every missing required variable."""

    result = validate_variables(variables, schema)
    if not result.valid:
        raise GenerationError(
            ErrorKind.INVALID_VARIABLES,
            f"Missing required variables: {', '.join(result.missing)}",
            details={"missing": result.missing},
        )


def estimate_tokens(text: str) -> int:
    """Rough token estimate used when a provider reports no usage."""

    return math.ceil(len(text or "") / 4)


__all__ = [
    "VariableValidation",
    "ensure_variables",
    "estimate_tokens",
    "interpolate",
    "validate_variables",
]
