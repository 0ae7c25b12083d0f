"""
Domain errors raised by the database service layer.
"""

from fastapi import status


class LibraryError(Exception):
    """Base class for errors the API maps to a client-facing status code."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LibraryError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(LibraryError):
    """The request clashes with the current state (duplicates, nothing to borrow)."""

    status_code = status.HTTP_409_CONFLICT
