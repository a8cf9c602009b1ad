from .detours import DetourError, DetourNotFound, InvalidDetourConfig

__all__ = [
    "DetourError",
    "DetourNotFound",
    "InvalidDetourConfig",
]
