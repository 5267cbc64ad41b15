"""Built-in agent that reflects its parameters back as output."""

from __future__ import annotations

from .base import BaseAgent
from .models import AgentCapabilities, AgentCommand, AgentResult


class EchoAgent(BaseAgent):
    """Returns the command parameters as output data.

    Useful for wiring workflows together and for exercising input mappings
    without any external side effects.
    """

    def __init__(self, agent_id: str = "echo", name: str = "Echo Agent") -> None:
        super().__init__(
            agent_id,
            name,
            capabilities=AgentCapabilities(
                supported_operations=["execute", "echo"], max_concurrent_tasks=8
            ),
            description="Echoes command parameters into the workflow context",
        )

    async def handle(self, command: AgentCommand) -> AgentResult:
        output = {k: v for k, v in command.parameters.items() if k != "operation"}
        return AgentResult(
            success=True,
            output_data=output,
            logs=[f"Echoed {len(output)} parameter(s)"],
        )
