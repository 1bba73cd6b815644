"""Unit tests for the flush scheduler."""

import asyncio
import logging

import pytest

from agentrelay.relay.exceptions import TransportError
from agentrelay.relay.scheduler import FlushScheduler

INTERVAL = 0.05


@pytest.mark.asyncio
async def test_fragments_coalesce_into_one_post(transport):
    """Test fragments recorded before the first flush are posted together."""
    scheduler = FlushScheduler(transport, min_interval=INTERVAL)

    scheduler.record_output("C1", "Hello, ")
    scheduler.record_output("C1", "world!")
    await scheduler.wait_idle()

    assert transport.posts() == ["Hello, world!"]
    assert transport.updates() == []


@pytest.mark.asyncio
async def test_later_output_edits_message(transport):
    """Test output after the first flush edits the same message."""
    scheduler = FlushScheduler(transport, min_interval=INTERVAL)

    scheduler.record_output("C1", "Hello")
    await scheduler.wait_idle()
    scheduler.record_output("C1", ", world")
    await scheduler.wait_idle()

    assert transport.posts() == ["Hello"]
    assert transport.updates() == ["Hello, world"]
    post_id = transport.calls[0][2]
    assert transport.calls[1][2] == post_id


@pytest.mark.asyncio
async def test_overflow_splits_into_new_messages(transport):
    """Test a buffer over the limit is split and the first message sealed."""
    scheduler = FlushScheduler(transport, max_message_length=3900, min_interval=INTERVAL)

    scheduler.record_output("C1", "x" * 5000)
    await scheduler.wait_idle()

    assert transport.posts() == ["x" * 3900, "x" * 1100]
    assert transport.updates() == []


@pytest.mark.asyncio
async def test_overflow_fills_editable_message_first(transport):
    """Test an overflowing buffer tops up the current message before sealing it."""
    scheduler = FlushScheduler(transport, max_message_length=10, min_interval=INTERVAL)

    scheduler.record_output("C1", "abcdef")
    await scheduler.wait_idle()
    scheduler.record_output("C1", "ghijklmno")
    await scheduler.wait_idle()

    assert transport.posts() == ["abcdef", "klmno"]
    assert transport.updates() == ["abcdefghij"]

    # New output goes to the second message
    scheduler.record_output("C1", "p")
    await scheduler.wait_idle()
    assert transport.updates()[-1] == "klmnop"


@pytest.mark.asyncio
async def test_unchanged_buffer_is_not_retransmitted(transport):
    """Test a flush with nothing new makes no transport call."""
    scheduler = FlushScheduler(transport, min_interval=INTERVAL)

    scheduler.record_output("C1", "same")
    await scheduler.wait_idle()
    scheduler.mark_pending("C1")
    await scheduler.wait_idle()

    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_empty_fragment_is_ignored(transport):
    """Test recording an empty fragment creates nothing."""
    scheduler = FlushScheduler(transport, min_interval=INTERVAL)

    scheduler.record_output("C1", "")

    assert scheduler.get_buffer("C1") is None
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_cycles_respect_min_interval(transport):
    """Test consecutive flush cycles are spaced by the minimum interval."""
    scheduler = FlushScheduler(transport, min_interval=0.1)

    scheduler.record_output("C1", "a")
    await scheduler.wait_idle()
    scheduler.record_output("C1", "b")
    await scheduler.wait_idle()
    scheduler.record_output("C1", "c")
    await scheduler.wait_idle()

    times = [call[4] for call in transport.calls]
    assert len(times) == 3
    # Small tolerance for the event loop clock resolution
    assert times[1] - times[0] >= 0.09
    assert times[2] - times[1] >= 0.09


@pytest.mark.asyncio
async def test_only_one_cycle_runs_at_a_time(make_transport):
    """Test transport calls never overlap, even across destinations."""
    transport = make_transport()
    in_flight = 0
    max_in_flight = 0
    original_post = transport.post_message

    async def slow_post(destination, text):
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(0.02)
        try:
            return await original_post(destination, text)
        finally:
            in_flight -= 1

    transport.post_message = slow_post
    scheduler = FlushScheduler(transport, min_interval=0.0)

    for i in range(5):
        scheduler.record_output(f"C{i}", "x")
        await asyncio.sleep(0.005)
    await scheduler.wait_idle()

    assert max_in_flight == 1
    assert sorted(c[1] for c in transport.calls) == [f"C{i}" for i in range(5)]


@pytest.mark.asyncio
async def test_output_during_cycle_gets_follow_up(transport):
    """Test output recorded while a cycle runs is flushed by the next cycle."""
    scheduler = FlushScheduler(transport, min_interval=INTERVAL)
    original_post = transport.post_message

    async def post_and_record(destination, text):
        ts = await original_post(destination, text)
        scheduler.record_output(destination, " more")
        return ts

    transport.post_message = post_and_record

    scheduler.record_output("C1", "first")
    await scheduler.wait_idle()

    assert transport.posts() == ["first"]
    assert transport.updates() == ["first more"]


@pytest.mark.asyncio
async def test_missing_message_on_edit_is_swallowed(transport):
    """Test an edit to a deleted message is skipped without reposting."""
    scheduler = FlushScheduler(transport, min_interval=INTERVAL)

    scheduler.record_output("C1", "a")
    await scheduler.wait_idle()
    transport.messages.clear()

    scheduler.record_output("C1", "b")
    await scheduler.wait_idle()

    assert transport.posts() == ["a"]
    assert transport.updates() == []
    buffer = scheduler.get_buffer("C1")
    assert buffer.last_sent_text == "ab"
    assert not buffer.is_dirty


@pytest.mark.asyncio
async def test_missing_message_on_overflow_is_sealed(transport):
    """Test an overflow edit to a deleted message seals it and keeps flushing."""
    scheduler = FlushScheduler(transport, max_message_length=10, min_interval=INTERVAL)

    scheduler.record_output("C1", "hello")
    await scheduler.wait_idle()
    transport.messages.clear()

    scheduler.record_output("C1", " world, this overflows")
    await scheduler.wait_idle()

    # The first chunk belonged to the deleted message; the rest starts new ones
    assert transport.posts() == ["hello", "d, this ov", "erflows"]
    assert scheduler.pending == []

    scheduler.release("C1")
    await scheduler.wait_idle()
    scheduler.record_output("C1", "next")
    await scheduler.close()

    assert transport.posts()[-1] == "next"
    assert scheduler.get_buffer("C1") is None


@pytest.mark.asyncio
async def test_transport_error_is_logged_not_raised(transport, caplog):
    """Test a failing transport leaves the buffer for a later retry."""
    scheduler = FlushScheduler(transport, min_interval=INTERVAL)
    transport.fail_post = TransportError("boom", "C1")

    with caplog.at_level(logging.ERROR, logger="agentrelay.relay.scheduler"):
        scheduler.record_output("C1", "a")
        await scheduler.wait_idle()

    assert "Error flushing output for C1" in caplog.text
    assert scheduler.get_buffer("C1").text == "a"
    assert scheduler.pending == []

    transport.fail_post = None
    scheduler.record_output("C1", "b")
    await scheduler.wait_idle()

    assert transport.posts() == ["ab"]


@pytest.mark.asyncio
async def test_failure_in_one_destination_does_not_block_others(transport):
    """Test other destinations still flush when one fails."""
    scheduler = FlushScheduler(transport, min_interval=INTERVAL)
    original_post = transport.post_message

    async def failing_post(destination, text):
        if destination == "C1":
            raise TransportError("boom", destination)
        return await original_post(destination, text)

    transport.post_message = failing_post

    scheduler.record_output("C1", "a")
    scheduler.record_output("C2", "b")
    await scheduler.wait_idle()

    assert transport.posts() == ["b"]


@pytest.mark.asyncio
async def test_release_starts_new_message_for_next_output(transport):
    """Test a released destination posts a new message for later output."""
    scheduler = FlushScheduler(transport, min_interval=INTERVAL)

    scheduler.record_output("C1", "first")
    scheduler.release("C1")
    await scheduler.wait_idle()

    assert scheduler.get_buffer("C1") is None

    scheduler.record_output("C1", "second")
    await scheduler.wait_idle()

    assert transport.posts() == ["first", "second"]


@pytest.mark.asyncio
async def test_release_without_buffer_is_noop(transport):
    """Test releasing an unknown destination schedules nothing."""
    scheduler = FlushScheduler(transport, min_interval=INTERVAL)

    scheduler.release("C1")

    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_flush_all_ignores_interval(transport):
    """Test a forced flush transmits without waiting for the interval."""
    scheduler = FlushScheduler(transport, min_interval=10.0)

    scheduler.record_output("C1", "a")
    await scheduler.wait_idle()
    scheduler.record_output("C1", "b")

    await asyncio.wait_for(scheduler.flush_all(), timeout=1.0)

    assert transport.updates() == ["ab"]
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_flush_all_follows_overflow(transport):
    """Test a forced flush sends every overflow chunk."""
    scheduler = FlushScheduler(transport, max_message_length=4, min_interval=10.0)

    scheduler.record_output("C1", "abcdefghij")
    await asyncio.wait_for(scheduler.flush_all(), timeout=1.0)

    assert transport.posts() == ["abcd", "efgh", "ij"]


@pytest.mark.asyncio
async def test_close_flushes_and_drops_buffers(transport):
    """Test close performs a final flush and forgets every buffer."""
    scheduler = FlushScheduler(transport, min_interval=10.0)

    scheduler.record_output("C1", "a")
    await scheduler.wait_idle()
    scheduler.record_output("C1", "b")
    scheduler.record_output("C2", "c")

    await asyncio.wait_for(scheduler.close(), timeout=1.0)

    assert transport.updates("C1") == ["ab"]
    assert transport.posts("C2") == ["c"]
    assert scheduler.get_buffer("C1") is None
    assert scheduler.get_buffer("C2") is None


def test_invalid_max_message_length(transport):
    """Test a non-positive message length is rejected."""
    with pytest.raises(ValueError):
        FlushScheduler(transport, max_message_length=0)
