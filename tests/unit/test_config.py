"""Tests for configuration loading and backend selection."""

import pytest
from pydantic import ValidationError as PydanticValidationError

import triggerflow.persistence as persistence
from triggerflow.config import load_config
from triggerflow.persistence import (
    InMemoryWorkflowRepository,
    PostgresWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
)
from triggerflow.transports import InMemoryTransport, get_transport
from triggerflow.transports.redis import RedisTransport


def test_load_config_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("TRIGGERFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("TRIGGERFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.database_url is None
    assert config.log_level == "INFO"
    assert config.engine.execution_timeout is None
    assert config.engine.default_page_size == 50
    assert config.transport.backend == "inmemory"
    assert config.transport.topic == "triggers"


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
database_url: sqlite:///tmp/triggerflow.db
log_level: DEBUG
engine:
  execution_timeout: 30
  default_page_size: 10
transport:
  backend: redis
  topic: crm-events
  redis:
    host: testhost
    port: 1234
"""
    )
    monkeypatch.setenv("TRIGGERFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("TRIGGERFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.database_url == "sqlite:///tmp/triggerflow.db"
    assert config.log_level == "DEBUG"
    assert config.engine.execution_timeout == 30
    assert config.engine.default_page_size == 10
    assert config.transport.backend == "redis"
    assert config.transport.topic == "crm-events"
    assert config.transport.redis.host == "testhost"
    assert config.transport.redis.port == 1234


def test_database_url_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite:///from-file.db\n")
    monkeypatch.setenv("TRIGGERFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("TRIGGERFLOW_DATABASE_URL", "sqlite:///from-env.db")

    assert load_config().database_url == "sqlite:///from-env.db"


def test_get_transport_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("TRIGGERFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("TRIGGERFLOW_TRANSPORT", raising=False)

    transport = get_transport()
    assert isinstance(transport, RedisTransport)
    assert transport.host == "confighost"
    assert transport.port == 6380


def test_transport_env_overrides_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("transport:\n  backend: redis\n")
    monkeypatch.setenv("TRIGGERFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("TRIGGERFLOW_TRANSPORT", "inmemory")

    assert isinstance(get_transport(), InMemoryTransport)


def test_log_level_is_validated(tmp_path, monkeypatch):
    monkeypatch.setenv("TRIGGERFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("TRIGGERFLOW_LOG_LEVEL", "debug")
    assert load_config().log_level == "DEBUG"

    monkeypatch.setenv("TRIGGERFLOW_LOG_LEVEL", "chatty")
    with pytest.raises(PydanticValidationError):
        load_config()


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.setenv("TRIGGERFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("TRIGGERFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)

    repo = get_repository()
    assert isinstance(repo, InMemoryWorkflowRepository)
    assert get_repository() is repo

    db_file = tmp_path / "triggerflow.db"
    sqlite_repo = get_repository(f"sqlite:///{db_file}")
    assert isinstance(sqlite_repo, SQLiteWorkflowRepository)
    assert sqlite_repo.db_path == str(db_file)

    assert isinstance(
        get_repository("postgresql://user:pw@localhost/db"), PostgresWorkflowRepository
    )
    with pytest.raises(ValueError, match="Unsupported database backend"):
        get_repository("mysql://localhost/db")


def test_inmemory_transport_is_shared(tmp_path, monkeypatch):
    monkeypatch.setenv("TRIGGERFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("TRIGGERFLOW_TRANSPORT", raising=False)

    assert get_transport() is get_transport("inmemory")
    with pytest.raises(ValueError, match="Unsupported transport backend"):
        get_transport("carrier-pigeon")
