class DetourError(Exception):
    """Base exception for detour detection failures."""


class DetourNotFound(DetourError):
    """Raised when a detour id is unknown or has been archived."""


class InvalidDetourConfig(DetourError, ValueError):
    """Raised when detour configuration values are out of range."""
