from abc import ABC, abstractmethod

from table_booking.service.shared_kernel.domain.entity.establishment_config import (
    EstablishmentConfig,
)


class IEstablishmentConfigLoader(ABC):
    @abstractmethod
    async def load(self, *, est: str) -> EstablishmentConfig:
        """
        Raises:
            ConfigurationError: unknown establishment or unusable configuration
        """
        pass
