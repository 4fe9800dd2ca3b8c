"""``${var}`` placeholder resolution for workflow step parameters.

A placeholder names a workflow variable or an earlier step id, optionally
followed by a dotted path: ``${objective}``, ``${step-2.data.0.id}``. Step
ids resolve to the step's ToolResult. A parameter that is exactly one
placeholder keeps the referenced value's type; placeholders embedded in
longer strings are interpolated as text.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping

from pydantic import BaseModel

from ..contracts import ToolResult
from ..errors import ValidationFailed

PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")

_MISSING = object()


def _step(value: Any, segment: str) -> Any:
    if isinstance(value, BaseModel):
        return getattr(value, segment, _MISSING)
    if isinstance(value, Mapping):
        return value.get(segment, _MISSING)
    if isinstance(value, (list, tuple)):
        try:
            return value[int(segment)]
        except (ValueError, IndexError):
            return _MISSING
    return _MISSING


def lookup(
    expression: str,
    variables: Mapping[str, Any],
    results: Mapping[str, ToolResult],
) -> Any:
    """Resolve one placeholder expression or raise :class:`ValidationFailed`."""
    root, *path = expression.strip().split(".")
    if root in variables:
        value = variables[root]
    elif root in results:
        value = results[root]
    else:
        raise ValidationFailed(
            f"Unresolved placeholder ${{{expression}}}",
            details={"placeholder": expression},
        )

    for segment in path:
        value = _step(value, segment)
        if value is _MISSING:
            raise ValidationFailed(
                f"Unresolved placeholder ${{{expression}}}: no '{segment}'",
                details={"placeholder": expression},
            )
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def resolve_value(
    value: Any,
    variables: Mapping[str, Any],
    results: Mapping[str, ToolResult],
) -> Any:
    if isinstance(value, str):
        whole = PLACEHOLDER.fullmatch(value)
        if whole:
            return lookup(whole.group(1), variables, results)
        return PLACEHOLDER.sub(
            lambda m: str(lookup(m.group(1), variables, results)), value
        )
    if isinstance(value, dict):
        return {k: resolve_value(v, variables, results) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_value(v, variables, results) for v in value]
    return value


def resolve_parameters(
    parameters: Dict[str, Any],
    variables: Mapping[str, Any],
    results: Mapping[str, ToolResult],
) -> Dict[str, Any]:
    """Return a copy of ``parameters`` with every placeholder substituted."""
    return resolve_value(parameters, variables, results)


def rename_roots(value: Any, renames: Mapping[str, str]) -> Any:
    """Rewrite placeholder roots, e.g. template step ids to planned step ids."""
    if isinstance(value, str):

        def _rename(match: "re.Match[str]") -> str:
            root, dot, rest = match.group(1).partition(".")
            return "${" + renames.get(root, root) + dot + rest + "}"

        return PLACEHOLDER.sub(_rename, value)
    if isinstance(value, dict):
        return {k: rename_roots(v, renames) for k, v in value.items()}
    if isinstance(value, list):
        return [rename_roots(v, renames) for v in value]
    return value
