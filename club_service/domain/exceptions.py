"""
Domain exceptions
"""


class ClubServiceError(Exception):
    """Base error carrying an HTTP status for the API layer"""

    status_code: int = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidArgumentError(ClubServiceError, ValueError):
    status_code = 400


class NotFoundError(ClubServiceError):
    status_code = 404


class GuardError(ClubServiceError):
    """Raised by the host/admin authorization guards"""
    status_code = 403


class ConflictError(ClubServiceError):
    """Raised when a client-chosen id is already taken"""
    status_code = 409
