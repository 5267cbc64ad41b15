import pytest

import maestro.persistence as persistence
from maestro.agents import AgentDirectory
from maestro.config import EngineConfig
from maestro.persistence import InMemoryWorkflowRepository
from maestro.service import WorkflowService


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    """Keep config files, database urls and the repository singleton out of tests."""
    monkeypatch.setenv("MAESTRO_CONFIG", str(tmp_path / "missing-config.yaml"))
    monkeypatch.delenv("MAESTRO_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def directory() -> AgentDirectory:
    return AgentDirectory()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def service(repository, directory, engine_config) -> WorkflowService:
    return WorkflowService(repository, directory, engine_config)
