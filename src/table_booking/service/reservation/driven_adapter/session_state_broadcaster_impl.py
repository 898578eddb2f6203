"""
In-memory Session State Broadcaster

Fans booking session state changes out to UI subscribers (countdown panel,
payment form, confirmation view).
"""

from anyio import WouldBlock, create_memory_object_stream
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from uuid_utils import UUID

from table_booking.platform.logging.loguru_io import Logger
from table_booking.service.reservation.app.interface.i_session_state_broadcaster import (
    ISessionStateBroadcaster,
)


STREAM_BUFFER_SIZE = 10


class InMemorySessionStateBroadcasterImpl(ISessionStateBroadcaster):
    """
    - Each session_id has a list of subscriber stream pairs
    - Buffer per stream: 10 events; a full stream drops the event (send_nowait raises WouldBlock)
    - Empty subscriber lists are removed on unsubscribe
    """

    def __init__(self) -> None:
        self._subscribers: dict[
            UUID, list[tuple[MemoryObjectSendStream[dict], MemoryObjectReceiveStream[dict]]]
        ] = {}

    async def subscribe(self, *, session_id: UUID) -> MemoryObjectReceiveStream[dict]:
        send_stream, receive_stream = create_memory_object_stream[dict](
            max_buffer_size=STREAM_BUFFER_SIZE
        )
        self._subscribers.setdefault(session_id, []).append((send_stream, receive_stream))

        Logger.base.debug(
            f'📡 [BROADCASTER] Subscribed to session {session_id} '
            f'(total subscribers: {len(self._subscribers[session_id])})'
        )
        return receive_stream

    async def broadcast(self, *, session_id: UUID, event_data: dict) -> None:
        subscribers = self._subscribers.get(session_id)
        if not subscribers:
            Logger.base.debug(f'📡 [BROADCASTER] No subscribers for session {session_id}')
            return

        delivered = 0
        dropped = 0
        for send_stream, _ in subscribers:
            try:
                send_stream.send_nowait(event_data)
                delivered += 1
            except WouldBlock:
                dropped += 1
                Logger.base.warning(
                    f'⚠️ [BROADCASTER] Stream full for session {session_id}, '
                    f'dropping event (state={event_data.get("state")})'
                )

        Logger.base.debug(
            f'📡 [BROADCASTER] Broadcast to session {session_id}: '
            f'delivered={delivered}, dropped={dropped}'
        )

    async def unsubscribe(
        self, *, session_id: UUID, stream: MemoryObjectReceiveStream[dict]
    ) -> None:
        subscribers = self._subscribers.get(session_id)
        if subscribers is None:
            return

        for i, (send_stream, receive_stream) in enumerate(subscribers):
            if receive_stream is stream:
                await send_stream.aclose()
                await receive_stream.aclose()
                subscribers.pop(i)
                break

        if not subscribers:
            del self._subscribers[session_id]
            Logger.base.debug(f'📡 [BROADCASTER] Cleaned up empty list for {session_id}')

    def subscriber_count(self, *, session_id: UUID) -> int:
        return len(self._subscribers.get(session_id, ()))
