from typer.testing import CliRunner

from dealflow.cli import app


def test_rules_list_shows_default_rules():
    runner = CliRunner()
    result = runner.invoke(app, ["rules", "list"])
    assert (
        result.exit_code == 0
    ), f"Command failed with exit code {result.exit_code}. Output: {result.stdout}"
    output = result.stdout
    assert "[data_handling]" in output, f"Category missing from output: {output}"
    assert "search-before-create\tcritical" in output


def test_rules_list_filters_by_category():
    runner = CliRunner()
    result = runner.invoke(app, ["rules", "list", "--category", "security"])
    assert result.exit_code == 0
    assert "[security]" in result.stdout
    assert "[workflow]" not in result.stdout

    missing = runner.invoke(app, ["rules", "list", "--category", "nope"])
    assert missing.exit_code == 0
    assert "No rules found" in missing.stdout


def test_tools_list_shows_think_tool():
    runner = CliRunner()
    result = runner.invoke(app, ["tools", "list"])
    assert result.exit_code == 0
    assert any(line.startswith("think\treasoning") for line in result.stdout.splitlines())


def test_workflow_plan_for_search_objective():
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "plan", "find deals over 50000"])
    assert (
        result.exit_code == 0
    ), f"Command failed with exit code {result.exit_code}. Output: {result.stdout}"
    lines = result.stdout.splitlines()
    assert "pattern: entity_search" in lines
    assert lines.index("step-1\tthink") < lines.index("step-2\tsearch_deals\tafter step-1")


def test_chat_with_test_model_returns_reply(monkeypatch):
    monkeypatch.delenv("DEALFLOW_STORE", raising=False)
    runner = CliRunner()
    result = runner.invoke(app, ["chat", "hello there", "--model", "test", "--json"])
    assert (
        result.exit_code == 0
    ), f"Command failed with exit code {result.exit_code}. Output: {result.stdout}"
    assert '"success": true' in result.stdout
    assert '"agent_version": "2.0.0"' in result.stdout
