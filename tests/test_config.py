"""Tests for configuration loading and wiring."""

from pathlib import Path

import pytest

from bureau.domain.context.memory.vector_memory_store import InMemoryVectorIndex
from bureau.domain.errors import ConfigurationError
from bureau.domain.models.task import Task, TaskStatus
from bureau.domain.notification.notifier import LogNotifier, WebhookNotifier
from bureau.infrastructure.config.factory import build_memory_manager, build_notifier, build_organization
from bureau.infrastructure.config.settings import (
    BureauConfig,
    LayerConfig,
    MemoryConfig,
    NotifierConfig,
    OrganizationConfig,
    SQLiteConfig,
    VectorConfig,
    load_config,
)

EXAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "config" / "bureau.yaml"

MINIMAL_YAML = """
organization:
  layers:
    - name: Director
    - name: Manager
      count: 2
agents:
  Manager:
    temperature: 0.4
"""


def test_load_example_config():
    config = load_config(str(EXAMPLE_CONFIG))

    assert [layer.name for layer in config.organization.layers] == [
        "President", "Secretary", "Director", "Manager", "Engineer",
    ]
    assert config.organization.layers[1].attach_to == ["President"]
    assert config.memory.enabled is True
    assert config.settings_for("Engineer").max_tokens == 4096


def test_load_minimal_config_uses_defaults(tmp_path):
    path = tmp_path / "bureau.yaml"
    path.write_text(MINIMAL_YAML)

    config = load_config(str(path))

    assert config.organization.layers[0].agent_count == 1
    assert config.memory.enabled is False
    assert config.memory.retention.task_days == 90
    assert config.settings_for("Manager").temperature == 0.4
    assert config.settings_for("Engineer").temperature == 0.7


def test_log_level_env_override(tmp_path, monkeypatch):
    path = tmp_path / "bureau.yaml"
    path.write_text(MINIMAL_YAML)
    monkeypatch.setenv("BUREAU_LOG_LEVEL", "DEBUG")

    assert load_config(str(path)).log_level == "DEBUG"


@pytest.mark.parametrize("content,message", [
    ("organization: [unclosed", "invalid YAML"),
    ("organization:\n  layers:\n    - name: Engineer\n      count: -1\n", "invalid configuration"),
])
def test_bad_config_files(tmp_path, content, message):
    path = tmp_path / "bureau.yaml"
    path.write_text(content)

    with pytest.raises(ConfigurationError, match=message):
        load_config(str(path))


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(str(tmp_path / "absent.yaml"))


def test_memory_disabled_builds_nothing():
    assert build_memory_manager(BureauConfig()) is None


@pytest.mark.asyncio
async def test_memory_manager_from_config():
    config = BureauConfig(memory=MemoryConfig(
        enabled=True,
        sqlite=SQLiteConfig(in_memory=True),
        vector=VectorConfig(enabled=True, dimension=32),
    ))

    manager = build_memory_manager(config)
    try:
        assert isinstance(manager.vector_index, InMemoryVectorIndex)
        assert manager.vector_index.dimension == 32
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_notifier_from_config():
    assert isinstance(build_notifier(BureauConfig()), LogNotifier)

    notifier = build_notifier(BureauConfig(notifier=NotifierConfig(webhook_url="http://hooks.local/bureau")))
    try:
        assert isinstance(notifier, WebhookNotifier)
        assert notifier.retry_count == 3
    finally:
        await notifier.close()


@pytest.mark.asyncio
async def test_build_organization_from_example_config():
    config = load_config(str(EXAMPLE_CONFIG))
    config.memory.sqlite.in_memory = True

    organization = build_organization(config)
    try:
        assert organization.root.agent_id == "president-1"
        assert len(organization.agents) == 11
        assert organization.memory_manager is not None
        assert organization.get_agent("secretary-1").memory.enabled
    finally:
        await organization.close()


@pytest.mark.asyncio
async def test_memory_without_sqlite_still_completes_tasks():
    config = BureauConfig(
        organization=OrganizationConfig(layers=[LayerConfig(name="Manager"), LayerConfig(name="Engineer")]),
        memory=MemoryConfig(enabled=True, sqlite=SQLiteConfig(enabled=False)),
    )

    organization = build_organization(config)
    try:
        assert organization.memory_manager.has_store is False

        response = await organization.submit_task(Task(title="Add caching"))

        assert response.status == TaskStatus.COMPLETED
        assert "Delegated to Engineer engineer-1" in response.result
    finally:
        await organization.close()
