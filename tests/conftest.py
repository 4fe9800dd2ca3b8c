"""Shared helpers: a scripted completion provider and fake CRM tools."""

import json
from typing import Any, Dict, List, Optional

import pytest

from dealflow.contracts import ToolExecutionContext, ToolResult
from dealflow.errors import ExecutionFailed, NotFound
from dealflow.providers import CompletionOptions
from dealflow.tools import FunctionTool


class ScriptedProvider:
    """Returns queued completions in order, repeating the last one."""

    def __init__(self, *responses: str) -> None:
        self.responses = list(responses) or ["{}"]
        self.prompts: List[str] = []
        self.options: List[CompletionOptions] = []

    async def complete(self, prompt: str, options: CompletionOptions) -> str:
        self.prompts.append(prompt)
        self.options.append(options)
        index = min(len(self.prompts) - 1, len(self.responses) - 1)
        return self.responses[index]


def decision_json(action: str = "execute_tool", **fields: Any) -> str:
    payload: Dict[str, Any] = {
        "action": action,
        "reasoning": fields.pop("reasoning", "Reasoning for the test"),
        "confidence": fields.pop("confidence", 0.9),
    }
    payload.update(fields)
    return f"```json\n{json.dumps(payload)}\n```"


ORGANIZATIONS = [
    {"id": "org-1", "name": "Acme GmbH"},
    {"id": "org-2", "name": "BMW AG"},
]


def make_crm_tools(created: Optional[List[Dict[str, Any]]] = None) -> List[FunctionTool]:
    """Fake CRM tools covering the default workflow templates."""
    created = created if created is not None else []

    async def get_dropdown_data(params, context):
        return ToolResult(
            success=True,
            data={"default_project_type_id": "pt-1", "currencies": ["EUR", "USD"]},
            message="Loaded dropdown data",
        )

    async def search_organizations(params, context):
        query = params["query"].lower()
        matches = [o for o in ORGANIZATIONS if query in o["name"].lower()]
        if not matches:
            raise NotFound(f"Organization {params['query']} not found")
        return ToolResult(success=True, data=matches, message=f"Found {len(matches)} organizations")

    async def create_deal(params, context):
        deal = {"id": f"deal-{len(created) + 1}", **params}
        created.append(deal)
        return ToolResult(success=True, data=deal, message=f"Created deal {params['name']}")

    async def search_deals(params, context):
        return ToolResult(
            success=True,
            data=[{"id": "deal-9", "name": "Big deal", "value": 75000}],
            message="Found 1 deal",
        )

    async def flaky(params, context):
        raise ExecutionFailed("Upstream service unavailable")

    return [
        FunctionTool(
            get_dropdown_data,
            name="get_dropdown_data",
            description="Load dropdown values for entity creation",
            category="system",
        ),
        FunctionTool(
            search_organizations,
            name="search_organizations",
            description="Search organizations by name",
            category="search",
            parameters={
                "type": "object",
                "properties": {"query": {"type": "string"}},
                "required": ["query"],
            },
            required_permissions=["organization:read"],
        ),
        FunctionTool(
            create_deal,
            name="create_deal",
            description="Create a deal",
            category="deal_management",
            parameters={
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "organization_id": {"type": "string"},
                    "value": {"type": "number"},
                    "currency": {"type": "string"},
                    "project_type_id": {"type": "string"},
                },
                "required": ["name", "organization_id"],
            },
            required_permissions=["deal:create"],
        ),
        FunctionTool(
            search_deals,
            name="search_deals",
            description="Search deals",
            category="search",
            parameters={
                "type": "object",
                "properties": {"query": {"type": "string"}},
            },
            required_permissions=["deal:read"],
        ),
        FunctionTool(flaky, name="flaky", description="Always fails", category="system"),
    ]


ALL_PERMISSIONS = ["deal:create", "deal:read", "organization:read"]


@pytest.fixture
def tool_context() -> ToolExecutionContext:
    return ToolExecutionContext(
        user_id="user-1",
        session_id="session-1",
        permissions=list(ALL_PERMISSIONS),
        auth_token="secret-token",
        request_id="req-1",
        tool_call_id="call-1",
    )
