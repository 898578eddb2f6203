from abc import ABC, abstractmethod
from datetime import date

from table_booking.service.shared_kernel.domain.entity.availability_entity import (
    DayAvailability,
    MonthAvailability,
)


class IAvailabilityGateway(ABC):
    @abstractmethod
    async def fetch_day_availability(self, *, est: str, covers: int, day: date) -> DayAvailability:
        pass

    @abstractmethod
    async def fetch_month_availability(
        self,
        *,
        est: str,
        year: int,
        month: int,
        covers: int,
        time: float | None = None,
        event: int | None = None,
    ) -> MonthAvailability:
        pass
