from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from src.domain.models import ArchivedDetour, Detour


class IDetourRepository(ABC):
    """Port for publishing detection output to downstream consumers."""

    @abstractmethod
    def publish_active(self, detours: Sequence[Detour]) -> None:
        """Make `detours` the full set of published active detours."""

    @abstractmethod
    def append_history(self, entries: Sequence[ArchivedDetour]) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, *, detour_id: str) -> Mapping[str, Any] | None:
        raise NotImplementedError
