from abc import ABC, abstractmethod

from anyio.streams.memory import MemoryObjectReceiveStream
from uuid_utils import UUID


class ISessionStateBroadcaster(ABC):
    @abstractmethod
    async def subscribe(self, *, session_id: UUID) -> MemoryObjectReceiveStream[dict]:
        pass

    @abstractmethod
    async def broadcast(self, *, session_id: UUID, event_data: dict) -> None:
        pass

    @abstractmethod
    async def unsubscribe(
        self, *, session_id: UUID, stream: MemoryObjectReceiveStream[dict]
    ) -> None:
        pass
