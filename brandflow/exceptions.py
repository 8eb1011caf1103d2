import secrets
import string
import time

from fastapi import status

_BASE36_ALPHABET = string.digits + string.ascii_lowercase


class BrandflowError(Exception):
    """Base class for errors that map onto a `{"error": message}` response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(BrandflowError):
    """Registry entry missing or inactive for a workflow kind."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class AuthenticationError(BrandflowError):
    status_code = status.HTTP_401_UNAUTHORIZED


class DeliveryError(BrandflowError):
    """The workflow engine could not be reached or rejected the call."""

    status_code = status.HTTP_502_BAD_GATEWAY


class PayloadValidationError(BrandflowError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BrandflowError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(BrandflowError):
    status_code = status.HTTP_409_CONFLICT


class PersistenceError(BrandflowError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_error_code() -> str:
    """
    Opaque code returned to clients for unexpected errors.

    The same code is logged together with the full exception so support can
    find the details, e.g. `ERR-MGX3Z1K2-4F7QH9`.
    """
    timestamp = _to_base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(6))
    return f"ERR-{timestamp}-{random_part}".upper()
