"""Agent type registry and lifecycle management."""

import logging
from typing import Callable, Optional

from agentrelay.agent.base import Agent
from agentrelay.agent.echo import EchoAgent
from agentrelay.agent.models import AgentConfig

logger = logging.getLogger(__name__)

AgentFactory = Callable[[AgentConfig], Agent]


class AgentNotFoundError(Exception):
    """Raised when spawning an agent of an unregistered type."""

    def __init__(self, agent_type: str):
        self.agent_type = agent_type
        super().__init__(f"Agent type '{agent_type}' is not registered")


class AgentManager:
    """Spawns agents by type name and keeps track of live instances.

    Agent types are registered as factories taking an ``AgentConfig``.
    The ``echo`` type is always available.
    """

    def __init__(self, max_run_time: float = 0) -> None:
        """Initialize the agent manager.

        Args:
            max_run_time: Default per-request run time limit in seconds (0 = unbounded)
        """
        self._factories: dict[str, AgentFactory] = {}
        self._agents: list[Agent] = []
        self._max_run_time = max_run_time

        self.register_agent_type("echo", EchoAgent)

    def register_agent_type(self, agent_type: str, factory: AgentFactory) -> None:
        """Register a factory for an agent type.

        Args:
            agent_type: Type name referenced by channel configuration
            factory: Callable building an agent from its config

        Raises:
            ValueError: If the type is already registered
        """
        if agent_type in self._factories:
            raise ValueError(f"Agent type '{agent_type}' already registered")

        self._factories[agent_type] = factory
        logger.debug(f"Registered agent type: {agent_type}")

    @property
    def agent_types(self) -> list[str]:
        """Registered agent type names."""
        return sorted(self._factories)

    @property
    def agents(self) -> list[Agent]:
        """Live agents."""
        return list(self._agents)

    async def spawn_agent(
        self,
        agent_type: str,
        max_run_time: Optional[float] = None,
        headless: bool = True,
    ) -> Agent:
        """Create an agent of the given type.

        Args:
            agent_type: Registered type name
            max_run_time: Per-request limit (None = manager default)
            headless: Whether the agent runs without an interactive UI

        Returns:
            The new agent

        Raises:
            AgentNotFoundError: If the type is not registered
        """
        factory = self._factories.get(agent_type)
        if factory is None:
            raise AgentNotFoundError(agent_type)

        config = AgentConfig(
            agent_type=agent_type,
            max_run_time=self._max_run_time if max_run_time is None else max_run_time,
            headless=headless,
        )
        agent = factory(config)
        self._agents.append(agent)
        logger.info(f"Spawned agent of type {agent_type}")
        return agent

    async def delete_agent(self, agent: Agent) -> None:
        """Shut an agent down and forget it."""
        if agent not in self._agents:
            return

        self._agents.remove(agent)
        await agent.shutdown()
        logger.info(f"Deleted agent of type {agent.config.agent_type}")

    async def delete_all(self) -> None:
        """Shut every live agent down."""
        for agent in list(self._agents):
            await self.delete_agent(agent)
