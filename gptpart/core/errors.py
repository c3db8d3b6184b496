"""Error taxonomy shared across gptpart modules."""


class GptPartError(Exception):
    """Base class for all gptpart errors."""
    pass


class PlacementInputError(GptPartError, ValueError):
    """Raised when placement options conflict (e.g. both end and size)."""
    pass


class DeviceIOError(GptPartError):
    """Raised when a device or file can't be opened, read or written."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class DeviceNotFoundError(DeviceIOError):
    """Raised when no device matches the requested path."""
    pass
