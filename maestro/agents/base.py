"""Base class for agents executed by the workflow engine."""

from __future__ import annotations

import abc
import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol, runtime_checkable

from .models import (
    AgentCapabilities,
    AgentCommand,
    AgentHealth,
    AgentInfo,
    AgentResult,
    AgentStatus,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class Agent(Protocol):
    """Contract every executor registered in an ``AgentDirectory`` fulfils."""

    id: str
    name: str
    capabilities: AgentCapabilities

    async def execute(self, command: AgentCommand) -> AgentResult:
        """Run ``command`` and report the outcome."""

    async def health(self) -> AgentHealth:
        """Return a liveness snapshot."""

    async def info(self) -> AgentInfo:
        """Return descriptive metadata."""

    async def start(self) -> None:
        """Prepare the agent to accept commands."""

    async def stop(self) -> None:
        """Stop accepting commands and drain running ones."""


class BaseAgent(abc.ABC):
    """Common lifecycle and bookkeeping for agents.

    Subclasses implement :meth:`handle`. Concurrent calls to :meth:`execute`
    are limited to ``capabilities.max_concurrent_tasks``; exceptions raised by
    :meth:`handle` are converted into failed results.
    """

    def __init__(
        self,
        agent_id: str,
        name: str,
        capabilities: Optional[AgentCapabilities] = None,
        description: Optional[str] = None,
    ) -> None:
        if not agent_id:
            raise ValueError("agent_id must be a non-empty string")
        self.id = agent_id
        self.name = name
        self.description = description
        self.capabilities = capabilities or AgentCapabilities()
        self._semaphore = asyncio.Semaphore(self.capabilities.max_concurrent_tasks)
        self._running: Dict[str, asyncio.Task] = {}
        self._processed = 0
        self._status = AgentStatus.IDLE
        self._last_heartbeat = datetime.now(timezone.utc)
        logger.debug(f"Agent {self.id} ({self.name}) initialized")

    @property
    def status(self) -> AgentStatus:
        return self._status

    def _set_status(self, status: AgentStatus) -> None:
        self._status = status
        self._last_heartbeat = datetime.now(timezone.utc)

    @abc.abstractmethod
    async def handle(self, command: AgentCommand) -> AgentResult:
        """Perform the work described by ``command``."""
        raise NotImplementedError

    async def execute(self, command: AgentCommand) -> AgentResult:
        if self._status == AgentStatus.STOPPED:
            return AgentResult.failure(
                self.id, command.id, "Agent is stopped and cannot execute commands"
            )

        logger.info(
            f"Agent {self.id} executing command {command.id} of type {command.type}"
        )
        async with self._semaphore:
            self._set_status(AgentStatus.RUNNING)
            task = asyncio.ensure_future(self.handle(command))
            self._running[command.id] = task
            try:
                result = await task
            except Exception as e:
                logger.exception(
                    f"Agent {self.id} failed to execute command {command.id}"
                )
                return AgentResult.failure(self.id, command.id, str(e))
            finally:
                self._running.pop(command.id, None)
                self._processed += 1
                if self._status != AgentStatus.STOPPED:
                    self._set_status(
                        AgentStatus.RUNNING if self._running else AgentStatus.IDLE
                    )

        result.agent_id = self.id
        result.command_id = command.id
        result.end_time = datetime.now(timezone.utc)
        logger.info(
            f"Agent {self.id} completed command {command.id} with success: {result.success}"
        )
        return result

    async def health(self) -> AgentHealth:
        return AgentHealth(
            agent_id=self.id,
            status=self._status.value,
            active_tasks=len(self._running),
            total_processed_tasks=self._processed,
            metrics={
                "last_heartbeat": self._last_heartbeat.isoformat(),
                "max_concurrent_tasks": self.capabilities.max_concurrent_tasks,
                "supports_async_execution": self.capabilities.supports_async_execution,
            },
        )

    async def info(self) -> AgentInfo:
        return AgentInfo(
            id=self.id,
            name=self.name,
            description=self.description,
            capabilities=self.capabilities,
            status=self._status,
            last_heartbeat=self._last_heartbeat,
        )

    async def start(self) -> None:
        logger.info(f"Starting agent {self.id} ({self.name})")
        self._set_status(AgentStatus.IDLE)

    async def stop(self) -> None:
        logger.info(f"Stopping agent {self.id} ({self.name})")
        self._set_status(AgentStatus.STOPPED)
        running = list(self._running.values())
        if running:
            logger.info(f"Waiting for {len(running)} running tasks to complete")
            await asyncio.gather(*running, return_exceptions=True)

    async def pause(self) -> None:
        logger.info(f"Pausing agent {self.id} ({self.name})")
        self._set_status(AgentStatus.PAUSED)

    async def resume(self) -> None:
        logger.info(f"Resuming agent {self.id} ({self.name})")
        self._set_status(AgentStatus.IDLE)
