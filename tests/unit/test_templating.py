"""Placeholder resolution tests."""

import pytest

from dealflow.contracts import ToolResult
from dealflow.errors import ValidationFailed
from dealflow.workflow.templating import lookup, rename_roots, resolve_parameters

RESULTS = {
    "step-2": ToolResult(success=True, data=[{"id": "org-1", "tags": ["a", "b"]}]),
    "step-3": ToolResult(success=True, data={"default_project_type_id": "pt-1"}),
}


def test_whole_placeholder_keeps_native_type():
    params = {
        "value": "${value}",
        "organization_id": "${step-2.data.0.id}",
        "tags": "${step-2.data.0.tags}",
    }

    resolved = resolve_parameters(params, {"value": 5000}, RESULTS)

    assert resolved == {"value": 5000, "organization_id": "org-1", "tags": ["a", "b"]}


def test_embedded_placeholders_are_interpolated():
    resolved = resolve_parameters(
        {"title": "Deal ${value} for ${step-2.data.0.id}", "nested": [{"x": "${value}"}]},
        {"value": 5},
        RESULTS,
    )

    assert resolved == {"title": "Deal 5 for org-1", "nested": [{"x": 5}]}


def test_variables_shadow_step_ids():
    assert lookup("step-3", {"step-3": "variable"}, RESULTS) == "variable"


def test_step_result_resolves_to_plain_data():
    assert lookup("step-3", {}, RESULTS)["data"] == {"default_project_type_id": "pt-1"}


@pytest.mark.parametrize(
    "expression",
    ["missing", "step-2.data.5.id", "step-2.data.0.name", "step-3.data.nope", "value.deeper"],
)
def test_unresolved_placeholders_raise(expression):
    with pytest.raises(ValidationFailed) as exc:
        resolve_parameters({"p": "${" + expression + "}"}, {"value": 1}, RESULTS)
    assert exc.value.details["placeholder"] == expression


def test_params_without_placeholders_are_untouched():
    params = {"query": "plain", "limit": 10, "flag": None}
    assert resolve_parameters(params, {}, {}) == params


def test_rename_roots():
    renamed = rename_roots(
        {"id": "${search.data.0.id}", "text": "${objective} via ${search}"},
        {"search": "step-3"},
    )
    assert renamed == {"id": "${step-3.data.0.id}", "text": "${objective} via ${step-3}"}
