"""In-process directory of agents keyed by id."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError
from .base import Agent
from .models import AgentCommand, AgentHealth, AgentResult

logger = logging.getLogger(__name__)


class AgentDirectory:
    """Registry of pluggable executors.

    Lookups are synchronous so that validation can query the live directory
    without awaiting; execution and lifecycle calls are coroutines.
    """

    def __init__(self) -> None:
        self._agents: Dict[str, Agent] = {}
        self._last_health_check: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    async def register(self, agent: Agent) -> None:
        """Add or replace ``agent`` and start it."""
        with self._lock:
            if agent.id in self._agents:
                logger.warning(
                    f"Agent {agent.id} is already registered, updating registration"
                )
            self._agents[agent.id] = agent
            self._last_health_check[agent.id] = datetime.now(timezone.utc)
        await agent.start()
        logger.info(f"Agent {agent.id} ({agent.name}) registered successfully")

    async def unregister(self, agent_id: str) -> None:
        if not agent_id:
            raise ValueError("Agent ID cannot be empty")
        with self._lock:
            agent = self._agents.pop(agent_id, None)
            self._last_health_check.pop(agent_id, None)
        if agent is None:
            logger.warning(f"Attempted to unregister non-existent agent {agent_id}")
            return
        await agent.stop()
        logger.info(f"Agent {agent.id} ({agent.name}) unregistered successfully")

    def get(self, agent_id: str) -> Optional[Agent]:
        if not agent_id:
            return None
        with self._lock:
            return self._agents.get(agent_id)

    def list(self) -> List[Agent]:
        with self._lock:
            return list(self._agents.values())

    def find_by_capability(self, operation: str) -> List[Agent]:
        """Agents whose capabilities list ``operation``."""
        if not operation:
            return []
        return [
            agent
            for agent in self.list()
            if operation in agent.capabilities.supported_operations
        ]

    # ------------------------------------------------------------------
    async def execute(self, agent_id: str, command: AgentCommand) -> AgentResult:
        """Run ``command`` on ``agent_id``.

        Unknown agents and agent faults are reported as failed results so
        callers can treat them like any other unsuccessful step.
        """
        if not agent_id:
            logger.error(f"Command {command.id} has no agent ID")
            return AgentResult.failure(agent_id, command.id, "Agent ID cannot be empty")

        agent = self.get(agent_id)
        if agent is None:
            logger.error(f"Agent {agent_id} not found for command execution")
            return AgentResult.failure(
                agent_id, command.id, f"Agent {agent_id} not found"
            )

        try:
            logger.info(f"Executing command {command.id} on agent {agent_id}")
            result = await agent.execute(command)
        except Exception as e:
            logger.exception(
                f"Error executing command {command.id} on agent {agent_id}"
            )
            return AgentResult.failure(agent_id, command.id, str(e))

        with self._lock:
            self._last_health_check[agent_id] = datetime.now(timezone.utc)
        return result

    # ------------------------------------------------------------------
    async def get_health(self, agent_id: str) -> AgentHealth:
        agent = self.get(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found")
        return await self._check_health(agent)

    async def get_all_health(self) -> List[AgentHealth]:
        return list(
            await asyncio.gather(*(self._check_health(a) for a in self.list()))
        )

    async def _check_health(self, agent: Agent) -> AgentHealth:
        try:
            health = await agent.health()
        except Exception as e:
            logger.exception(f"Error getting health status for agent {agent.id}")
            return AgentHealth(agent_id=agent.id, status="Error", metrics={"error": str(e)})
        with self._lock:
            self._last_health_check[agent.id] = datetime.now(timezone.utc)
        return health

    async def start_all(self) -> None:
        agents = self.list()
        logger.info(f"Starting all {len(agents)} registered agents")
        await asyncio.gather(*(agent.start() for agent in agents))

    async def stop_all(self) -> None:
        agents = self.list()
        logger.info(f"Stopping all {len(agents)} registered agents")
        await asyncio.gather(*(agent.stop() for agent in agents))

    async def statistics(self) -> Dict[str, Any]:
        infos = await asyncio.gather(*(agent.info() for agent in self.list()))
        by_status: Dict[str, int] = {}
        for info in infos:
            by_status[info.status.value] = by_status.get(info.status.value, 0) + 1
        with self._lock:
            last_checks = {
                agent_id: ts.isoformat()
                for agent_id, ts in self._last_health_check.items()
            }
        return {
            "total_agents": len(infos),
            "agents_by_status": by_status,
            "last_health_check_times": last_checks,
        }
