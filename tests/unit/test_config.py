"""Tests for configuration loading."""

from dealflow.config import load_config
from dealflow.stores import InMemoryStore, get_store
from dealflow.stores.redis import RedisStore
from dealflow.contracts import WorkflowExecution


def test_load_config_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("DEALFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("DEALFLOW_STORE", raising=False)
    monkeypatch.delenv("DEALFLOW_MODEL", raising=False)

    config = load_config()
    assert config.store.backend == "inmemory"
    assert config.llm.temperature == 0.1
    assert config.agent.snapshot_max_age_seconds == 300
    assert config.agent.history_limit == 20
    assert config.workflow.max_retries == 3
    assert config.workflow.step_timeout_seconds == 30.0
    assert config.workflow.backoff_base_ms == 1000
    assert config.rules.max_age_seconds == 3600


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
store:
  backend: redis
  redis:
    host: testhost
    port: 1234
llm:
  model: test
agent:
  history_limit: 10
workflow:
  max_retries: 1
"""
    )
    monkeypatch.setenv("DEALFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("DEALFLOW_STORE", raising=False)
    monkeypatch.delenv("DEALFLOW_MODEL", raising=False)

    config = load_config()
    assert config.store.backend == "redis"
    assert config.store.redis.host == "testhost"
    assert config.store.redis.port == 1234
    assert config.llm.model == "test"
    assert config.agent.history_limit == 10
    assert config.workflow.max_retries == 1


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("DEALFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("DEALFLOW_STORE", "REDIS")
    monkeypatch.setenv("DEALFLOW_MODEL", "openai:gpt-4o")
    monkeypatch.setenv("DEALFLOW_LOG_LEVEL", "debug")

    config = load_config()
    assert config.store.backend == "redis"
    assert config.llm.model == "openai:gpt-4o"
    assert config.log_level == "DEBUG"


def test_get_store_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
store:
  backend: redis
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("DEALFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("DEALFLOW_STORE", raising=False)

    store = get_store("workflows", WorkflowExecution)
    assert isinstance(store, RedisStore)
    assert store.host == "confighost"
    assert store.port == 6380
    assert store.hash_name == "dealflow:workflows"

    assert isinstance(get_store("workflows", WorkflowExecution, backend="inmemory"), InMemoryStore)
