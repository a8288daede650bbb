from .exceptions import ClubServiceError, ConflictError, GuardError, InvalidArgumentError, NotFoundError


__all__ = [
    # exceptions.py
    "ClubServiceError",
    "ConflictError",
    "GuardError",
    "InvalidArgumentError",
    "NotFoundError",
]
