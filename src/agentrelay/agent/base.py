"""Base class for event-emitting agents."""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from agentrelay.agent.events import AgentEvent, EventLog, EventType
from agentrelay.agent.models import AgentConfig

logger = logging.getLogger(__name__)


class Agent(ABC):
    """An agent that handles one input at a time and reports through events.

    ``submit_input`` starts handling immediately and returns a request id.
    Everything the agent produces goes to ``events``; the request ends with
    an ``input.handled`` event carrying that id, after which the agent is
    idle again.

    Subclasses implement ``handle_input`` and use the ``emit_*`` helpers.
    """

    def __init__(self, config: AgentConfig) -> None:
        self.config = config
        self.events = EventLog()
        self._idle = asyncio.Event()
        self._idle.set()
        self._task: Optional[asyncio.Task] = None
        self._request_id: Optional[str] = None

    @property
    def is_idle(self) -> bool:
        """Whether the agent can accept new input."""
        return self._idle.is_set()

    @property
    def current_request_id(self) -> Optional[str]:
        """Id of the request being handled, if any."""
        return self._request_id

    async def wait_for_idle(self) -> None:
        """Suspend until the agent is idle.

        Several callers may wait at once; each re-checks after waking, so
        only the first one to submit input proceeds.
        """
        while not self._idle.is_set():
            await self._idle.wait()

    def submit_input(self, message: str) -> str:
        """Start handling ``message``.

        Args:
            message: User input

        Returns:
            Request id echoed by the matching ``input.handled`` event

        Raises:
            RuntimeError: If the agent is busy
        """
        if not self._idle.is_set():
            raise RuntimeError("Agent is busy; wait for idle before submitting input")

        request_id = uuid.uuid4().hex
        self._request_id = request_id
        self._idle.clear()
        self.events.append(
            AgentEvent(type=EventType.INPUT_RECEIVED, message=message, request_id=request_id)
        )
        self._task = asyncio.create_task(
            self._run(request_id, message), name=f"agent-{self.config.agent_type}-{request_id}"
        )
        return request_id

    async def _run(self, request_id: str, message: str) -> None:
        try:
            await self.handle_input(message)
        except asyncio.CancelledError:
            self.emit_warning("Request cancelled")
            raise
        except Exception as e:
            logger.error(f"Agent {self.config.agent_type} failed: {e}", exc_info=True)
            self.emit_error(str(e))
        finally:
            self.events.append(AgentEvent(type=EventType.INPUT_HANDLED, request_id=request_id))
            self._request_id = None
            self._task = None
            self._idle.set()

    @abstractmethod
    async def handle_input(self, message: str) -> None:
        """Handle one input, emitting output events along the way."""
        ...

    def emit_chat(self, content: str) -> None:
        """Emit a partial chat output fragment."""
        self.events.append(
            AgentEvent(type=EventType.OUTPUT_CHAT, message=content, request_id=self._request_id)
        )

    def emit_info(self, message: str) -> None:
        self.events.append(
            AgentEvent(type=EventType.OUTPUT_INFO, message=message, request_id=self._request_id)
        )

    def emit_warning(self, message: str) -> None:
        self.events.append(
            AgentEvent(type=EventType.OUTPUT_WARNING, message=message, request_id=self._request_id)
        )

    def emit_error(self, message: str) -> None:
        self.events.append(
            AgentEvent(type=EventType.OUTPUT_ERROR, message=message, request_id=self._request_id)
        )

    async def shutdown(self) -> None:
        """Cancel any in-flight request and wait for it to finish."""
        task = self._task
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
