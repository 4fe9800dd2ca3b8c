"""Command line interface for the dealflow agent."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import List, Optional

import typer

from dealflow import AgentOrchestrator, AgentRequest, RuleStore, ToolDispatcher, load_config
from dealflow.providers import StaticSnapshotProvider
from dealflow.workflow import WorkflowPlanner

app = typer.Typer(help="CLI for the dealflow business agent")

# Command groups
rules_app = typer.Typer(help="Commands for inspecting business rules")
tools_app = typer.Typer(help="Commands for inspecting registered tools")
workflow_app = typer.Typer(help="Commands for planning workflows")

app.add_typer(rules_app, name="rules")
app.add_typer(tools_app, name="tools")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to the configured log_level)"
    ),
) -> None:
    """dealflow CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


@app.command("chat")
def chat(
    message: str,
    user_id: str = typer.Option("cli-user", help="User issuing the request"),
    session_id: Optional[str] = typer.Option(None, help="Session to continue"),
    permission: List[str] = typer.Option([], help="Permission granted to the user"),
    model: Optional[str] = typer.Option(None, help="Model name, e.g. anthropic:claude-sonnet-4-0"),
    as_json: bool = typer.Option(False, "--json", help="Print the full response as JSON"),
) -> None:
    """
    Send one message to the agent and print its reply.

    Example:
        dealflow chat "Create a deal for BMW worth 50,000 EUR" --permission deal:create
    """
    config = load_config()
    if model:
        config.llm.model = model

    async def _run():
        agent = await AgentOrchestrator.create(
            config=config, snapshot_provider=StaticSnapshotProvider()
        )
        request = AgentRequest(
            user_id=user_id,
            session_id=session_id or f"cli-{uuid.uuid4()}",
            message=message,
            context={"permissions": permission} if permission else {},
        )
        return await agent.process_request(request)

    response = asyncio.run(_run())
    if as_json:
        typer.echo(response.model_dump_json(indent=2))
        return
    typer.echo(response.message)
    for suggestion in response.suggestions:
        typer.echo(f"  - {suggestion.title}: {suggestion.description}")
    if not response.success:
        raise typer.Exit(code=1)


@rules_app.command("list")
def rules_list(
    category: Optional[str] = typer.Option(None, help="Only show this category"),
) -> None:
    """List business rules grouped by category."""

    async def _load():
        store = await RuleStore.with_defaults()
        names = [category] if category else await store.categories()
        return [(name, await store.get_rules(name)) for name in names]

    groups = asyncio.run(_load())
    if not any(rules for _, rules in groups):
        typer.echo("No rules found")
        return
    for name, rules in groups:
        if not rules:
            continue
        typer.echo(f"[{name}]")
        for rule in rules:
            typer.echo(f"{rule.id}\t{rule.priority.value}\t{rule.rule}")


@tools_app.command("list")
def tools_list(
    permission: List[str] = typer.Option(
        [], help="Only show tools available with these permissions"
    ),
) -> None:
    """List registered tools with their categories."""
    dispatcher = ToolDispatcher()
    tools = (
        dispatcher.get_available_tools(permission) if permission else dispatcher.get_all_tools()
    )
    if not tools:
        typer.echo("No tools available")
        return
    for tool in tools:
        typer.echo(f"{tool.name}\t{tool.category}\t{tool.description}")


@workflow_app.command("plan")
def workflow_plan(objective: str) -> None:
    """
    Show the steps a workflow would run for OBJECTIVE without executing them.

    Example:
        dealflow workflow plan "Create a deal for BMW"
        # Output: pattern: deal_creation
        #         step-1  think
        #         step-2  get_dropdown_data
    """

    async def _plan():
        store = await RuleStore.with_defaults()
        return await WorkflowPlanner(store).plan(objective)

    pattern, steps = asyncio.run(_plan())
    typer.echo(f"pattern: {pattern.name}")
    for step in steps:
        deps = f"\tafter {', '.join(step.dependencies)}" if step.dependencies else ""
        typer.echo(f"{step.id}\t{step.tool_name}{deps}")


if __name__ == "__main__":
    app()
