"""
Domain errors raised by the repositories and services.

The HTTP layer maps them onto status codes in ``app.main``; nothing below
the routes raises ``HTTPException``.
"""


class ServiceError(Exception):
    """Base class for every error the service layer raises on purpose."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    """A flag, experiment or user could not be found."""


class ValidationError(ServiceError):
    """Input was rejected before anything was persisted."""


class DuplicateAssignment(ServiceError):
    """
    An assignment already exists for the (experiment, user) pair.

    Only used inside ``AssignmentRepository.get_or_create`` to trigger the
    re-read path; callers of the services never see it.
    """


class StorageError(ServiceError):
    """The database failed or timed out. Safe for the client to retry."""
