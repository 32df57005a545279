import functools
import logging

from django.db import DatabaseError

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """
    Base class for expected, caller-recoverable failures of the settlement core.

    Each subclass carries the HTTP status the API layer answers with, so views
    can map any of them with a single ``except MarketplaceError`` clause.
    """

    status_code = 400
    default_message = "Request could not be completed."

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)


class InvalidAmount(MarketplaceError):
    default_message = "Amount must be a positive value with at most two decimal places."


class InsufficientFunds(MarketplaceError):
    default_message = "Insufficient balance."


class NotFound(MarketplaceError):
    status_code = 404
    default_message = "Not found."


class Forbidden(MarketplaceError):
    status_code = 403
    default_message = "Not authorized."


class InvalidState(MarketplaceError):
    status_code = 409
    default_message = "Operation not allowed in the current state."


class AlreadyJoined(MarketplaceError):
    status_code = 409
    default_message = "Already joined."


class Full(MarketplaceError):
    status_code = 409
    default_message = "Match is full."


class StorageError(MarketplaceError):
    status_code = 503
    default_message = "Storage is temporarily unavailable."


class GatewayError(MarketplaceError):
    status_code = 502
    default_message = "Payment gateway request failed."


def translate_storage_errors(func):
    """
    Convert database failures escaping ``func`` into ``StorageError``.

    Apply it outside ``transaction.atomic`` so the rollback has already
    happened by the time the error is translated.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DatabaseError as exc:
            logger.exception("Storage failure in %s", func.__qualname__)
            raise StorageError() from exc

    return wrapper
