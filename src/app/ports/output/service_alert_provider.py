from __future__ import annotations

from abc import ABC, abstractmethod

from src.domain.models import ServiceAlert


class IServiceAlertProvider(ABC):
    """Port for obtaining currently active official service alerts."""

    @abstractmethod
    async def list_alerts(self) -> tuple[ServiceAlert, ...]:
        raise NotImplementedError
