"""
Domain errors for the inventory store, plus their HTTP mapping.

Store operations raise SupplyError subclasses synchronously to the caller of
the mutation. Durable-storage trouble is never an exception: it is reported
as a PersistenceWarning after the in-memory change has been applied.

The API layer turns domain errors into HTTP errors through BusinessError,
which keeps 404 details generic and 400 details specific.
"""
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


class SupplyError(Exception):
    """Base class for inventory store errors."""


class ValidationError(SupplyError):
    """Bad input shape or range: negative quantity, empty name, etc."""


class NotFoundError(SupplyError):
    """The referenced supply id has no current record."""

    def __init__(self, record_id: int):
        super().__init__(f"Supply item {record_id} not found")
        self.record_id = record_id


class PersistenceWarning(RuntimeWarning):
    """The in-memory mutation succeeded but the durable write did not."""


class BusinessError:
    """HTTP exceptions with safe (non-leaky) messages."""

    @staticmethod
    def not_found(resource: str = "Resource", reason: str = "") -> HTTPException:
        """
        Generic 404 that doesn't echo the requested id back.

        Example:
            except NotFoundError as e:
                raise BusinessError.not_found("Supply item", str(e))
        """
        if reason:
            logger.info(f"Not found: {resource} - {reason}")

        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Resource not found",
        )

    @staticmethod
    def bad_request(detail: str) -> HTTPException:
        """
        400 for input validation errors.

        OK to include specific details here since the caller caused the issue.
        Examples: "name must not be empty", "quantity cannot be negative"
        """
        logger.info(f"Bad request: {detail}")
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )
