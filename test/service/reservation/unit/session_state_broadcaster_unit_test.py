"""
Unit tests for InMemorySessionStateBroadcasterImpl

Tests:
- Fan-out to every subscriber of a session
- Full buffers drop events instead of blocking
- Unsubscribe cleanup
"""

from anyio import WouldBlock
import pytest
import uuid_utils as uuid

from table_booking.service.reservation.driven_adapter.session_state_broadcaster_impl import (
    STREAM_BUFFER_SIZE,
    InMemorySessionStateBroadcasterImpl,
)


@pytest.mark.unit
class TestSessionStateBroadcaster:
    @pytest.mark.asyncio
    async def test_every_subscriber_receives_the_event(self) -> None:
        # Given
        broadcaster = InMemorySessionStateBroadcasterImpl()
        session_id = uuid.uuid7()
        first = await broadcaster.subscribe(session_id=session_id)
        second = await broadcaster.subscribe(session_id=session_id)

        # When
        await broadcaster.broadcast(session_id=session_id, event_data={'state': 'held'})

        # Then
        assert first.receive_nowait() == {'state': 'held'}
        assert second.receive_nowait() == {'state': 'held'}

    @pytest.mark.asyncio
    async def test_other_sessions_are_not_notified(self) -> None:
        broadcaster = InMemorySessionStateBroadcasterImpl()
        watched = await broadcaster.subscribe(session_id=uuid.uuid7())

        await broadcaster.broadcast(session_id=uuid.uuid7(), event_data={'state': 'held'})

        with pytest.raises(WouldBlock):
            watched.receive_nowait()

    @pytest.mark.asyncio
    async def test_full_stream_drops_events(self) -> None:
        broadcaster = InMemorySessionStateBroadcasterImpl()
        session_id = uuid.uuid7()
        stream = await broadcaster.subscribe(session_id=session_id)

        for index in range(STREAM_BUFFER_SIZE + 3):
            await broadcaster.broadcast(session_id=session_id, event_data={'index': index})

        received = [stream.receive_nowait()['index'] for _ in range(STREAM_BUFFER_SIZE)]
        assert received == list(range(STREAM_BUFFER_SIZE))
        with pytest.raises(WouldBlock):
            stream.receive_nowait()

    @pytest.mark.asyncio
    async def test_unsubscribe_removes_empty_sessions(self) -> None:
        broadcaster = InMemorySessionStateBroadcasterImpl()
        session_id = uuid.uuid7()
        stream = await broadcaster.subscribe(session_id=session_id)

        await broadcaster.unsubscribe(session_id=session_id, stream=stream)

        assert broadcaster.subscriber_count(session_id=session_id) == 0
        await broadcaster.broadcast(session_id=session_id, event_data={'state': 'held'})
