"""dealflow usage examples with two in-memory CRM tools."""

import asyncio

from dealflow import (
    AgentOrchestrator,
    AgentRequest,
    FunctionTool,
    RuleStore,
    ToolDispatcher,
    ToolExecutionContext,
    ToolResult,
    WorkflowOrchestrator,
    load_config,
)
from dealflow.providers import StaticSnapshotProvider
from dealflow.workflow import build_steps

ORGANIZATIONS = [{"id": "org-1", "name": "BMW AG"}, {"id": "org-2", "name": "Acme GmbH"}]


async def search_organizations(params, context):
    matches = [o for o in ORGANIZATIONS if params["query"].lower() in o["name"].lower()]
    return ToolResult(success=True, data=matches, message=f"Found {len(matches)} organizations")


async def create_deal(params, context):
    return ToolResult(
        success=True,
        data={"id": "deal-1", **params},
        message=f"Created deal {params['name']}",
    )


def crm_tools():
    return [
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
            description="Create a deal for an organization",
            category="deal_management",
            parameters={
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "organization_id": {"type": "string"},
                    "value": {"type": "number"},
                },
                "required": ["name", "organization_id"],
            },
            required_permissions=["deal:create"],
        ),
    ]


async def explicit_workflow():
    """Run a two-step workflow where step 2 reads step 1's result."""
    print("🔄 Explicit workflow")

    dispatcher = ToolDispatcher(crm_tools())
    orchestrator = WorkflowOrchestrator(dispatcher, await RuleStore.with_defaults())
    context = ToolExecutionContext(
        user_id="demo",
        session_id="demo-session",
        permissions=["organization:read", "deal:create"],
    )
    steps = [
        {"id": "find", "tool": "search_organizations", "parameters": {"query": "${company}"}},
        {
            "id": "deal",
            "tool": "create_deal",
            "parameters": {"name": "${company} expansion", "organization_id": "${find.data.0.id}"},
            "depends_on": ["find"],
        },
    ]

    workflow = await orchestrator.execute_workflow(
        "Create a deal for BMW",
        context,
        steps=build_steps(steps),
        variables={"company": "BMW"},
    )
    print(f"✅ Workflow {workflow.id}: {workflow.status.value}")
    for step in workflow.steps:
        print(f"   {step.id} {step.tool_name}: {step.status.value}")


async def agent_request():
    """Send a message through the full agent pipeline with the test model."""
    print("\n🤖 Agent request")

    config = load_config()
    config.llm.model = "test"
    agent = await AgentOrchestrator.create(
        config=config, snapshot_provider=StaticSnapshotProvider(), tools=crm_tools()
    )
    response = await agent.process_request(
        AgentRequest(
            user_id="demo",
            session_id="demo-session",
            message="Create a deal for BMW worth 50,000 EUR",
            context={"permissions": ["organization:read", "deal:create"]},
        )
    )
    print(f"✅ success={response.success}: {response.message}")


async def main():
    """Run examples."""
    print("🚀 dealflow examples\n")
    await explicit_workflow()
    await agent_request()
    print("\n🎉 Complete! See tests/ for more examples.")


if __name__ == "__main__":
    asyncio.run(main())
