"""Agents and the directory that dispatches commands to them."""

from __future__ import annotations

from .base import Agent, BaseAgent
from .directory import AgentDirectory
from .echo import EchoAgent
from .models import (
    AgentCapabilities,
    AgentCommand,
    AgentHealth,
    AgentInfo,
    AgentPriority,
    AgentResult,
    AgentStatus,
)


async def build_default_directory() -> AgentDirectory:
    """Directory pre-populated with the built-in agents."""
    directory = AgentDirectory()
    await directory.register(EchoAgent())
    return directory


__all__ = [
    "Agent",
    "AgentCapabilities",
    "AgentCommand",
    "AgentDirectory",
    "AgentHealth",
    "AgentInfo",
    "AgentPriority",
    "AgentResult",
    "AgentStatus",
    "BaseAgent",
    "EchoAgent",
    "build_default_directory",
]
