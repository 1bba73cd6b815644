"""Drives one request/response cycle against an agent's event stream."""

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional

from agentrelay.agent import Agent, AgentEvent, CancellationToken, EventType
from agentrelay.relay.models import CorrelationResult
from agentrelay.relay.scheduler import FlushScheduler

logger = logging.getLogger(__name__)

NO_RESPONSE_NOTICE = "No response received from agent."

# (destination, text) -> None; posts a discrete message immediately
Notifier = Callable[[str, str], Awaitable[None]]


def format_system_output(event: AgentEvent) -> str:
    """Format an info/warning/error emission as a tagged message."""
    return f"[{event.type.level.upper()}]: {event.message}"


class AgentEventCorrelator:
    """Relays one agent request to a destination.

    The correlator:
    1. Waits for the agent to become idle
    2. Captures an event cursor and submits the input
    3. Forwards chat output to the flush scheduler
    4. Posts info/warning/error emissions immediately
    5. Stops on the matching ``input.handled`` event or on timeout
    """

    def __init__(self, scheduler: FlushScheduler, notify: Notifier) -> None:
        """Initialize the correlator.

        Args:
            scheduler: Scheduler that buffers chat output per destination
            notify: Coroutine posting an unbuffered message to a destination
        """
        self._scheduler = scheduler
        self._notify = notify

    async def run(
        self,
        agent: Agent,
        destination: str,
        text: str,
        token: Optional[CancellationToken] = None,
    ) -> CorrelationResult:
        """Submit ``text`` to ``agent`` and relay its response to ``destination``.

        Concurrent calls for the same agent are serialized by waiting for
        idle; nothing is queued here.

        Args:
            agent: Agent handling the request
            destination: Where output is sent
            text: User input
            token: Cancellation signal shared with the owner (e.g. shutdown)

        Returns:
            CorrelationResult describing how the cycle ended
        """
        token = token or CancellationToken()

        await agent.wait_for_idle()
        # No suspension between here and submit, so the cursor only sees this request
        cursor = agent.events.cursor()
        request_id = agent.submit_input(text)
        logger.debug(f"Submitted request {request_id} for {destination}")

        loop = asyncio.get_running_loop()
        max_run_time = agent.config.max_run_time
        timer: Optional[asyncio.TimerHandle] = None
        if max_run_time > 0:
            timer = loop.call_later(max_run_time, token.cancel, "timeout")

        output_seen = False
        completed = False
        try:
            async with contextlib.aclosing(agent.events.subscribe(cursor, token)) as events:
                async for event in events:
                    if event.type == EventType.OUTPUT_CHAT:
                        output_seen = True
                        self._scheduler.record_output(destination, event.message)
                    elif event.type.is_system_output:
                        await self._notify(destination, format_system_output(event))
                    elif event.type == EventType.INPUT_HANDLED and event.request_id == request_id:
                        completed = True
                        if not output_seen:
                            await self._notify(destination, NO_RESPONSE_NOTICE)
                        token.cancel("completed")
        except Exception as e:
            logger.error(f"Error processing agent events for {destination}: {e}", exc_info=True)
        finally:
            if timer is not None:
                timer.cancel()
            self._scheduler.release(destination)

        timed_out = not completed and token.reason == "timeout"
        if timed_out:
            logger.warning(f"Agent request {request_id} timed out after {max_run_time:g}s")
            try:
                await self._notify(
                    destination, f"Agent timed out after {max_run_time:g} seconds."
                )
            except Exception as e:
                logger.error(f"Failed to send timeout notice to {destination}: {e}")

        return CorrelationResult(
            request_id=request_id,
            output_seen=output_seen,
            completed=completed,
            timed_out=timed_out,
        )
