"""Built-in echo agent.

Streams the input back word by word. Useful for checking a bot's wiring
end to end before a real agent type is registered.
"""

import asyncio

from agentrelay.agent.base import Agent
from agentrelay.agent.models import AgentConfig


class EchoAgent(Agent):
    """Agent that echoes its input as a stream of chat fragments."""

    def __init__(self, config: AgentConfig, delay: float = 0.05) -> None:
        super().__init__(config)
        self._delay = delay

    async def handle_input(self, message: str) -> None:
        words = message.split()
        if not words:
            return

        self.emit_info(f"Echoing {len(words)} word(s)")
        for i, word in enumerate(words):
            self.emit_chat(word if i == 0 else f" {word}")
            if self._delay:
                await asyncio.sleep(self._delay)
