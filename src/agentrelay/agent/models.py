"""Data models for relay agents."""

from pydantic import BaseModel, Field


class AgentConfig(BaseModel):
    """Configuration for a spawned agent."""

    agent_type: str = Field(
        description="Registered agent type name",
    )

    max_run_time: float = Field(
        default=0,
        ge=0,
        description="Maximum seconds a single request may run (0 = unbounded)",
    )

    headless: bool = Field(
        default=True,
        description="Whether the agent runs without an interactive UI",
    )
