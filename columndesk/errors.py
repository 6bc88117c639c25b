from typing import Any, Optional


class DeskError(Exception):
    """Base class for every error raised by ColumnDesk."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DeskError):
    """Malformed input batch; nothing was sent to the CMS."""

    status_code = 400


class ConflictError(DeskError):
    """Incoming data collides with what the CMS already holds."""

    status_code = 409

    def __init__(self, message: str, count: int = 1):
        super().__init__(message)
        self.count = count


class NotFoundError(DeskError):
    status_code = 404

    def __init__(self, message: str, identifier: Any = None):
        super().__init__(message)
        self.identifier = identifier


class TransportError(DeskError):
    """Network failure or non-404 error status from the CMS."""

    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.status = status
        self.details = details
