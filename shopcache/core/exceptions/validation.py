"""
Validation and Lookup Exceptions

Errors raised by the shop, login and admission services for bad input,
failed authentication and missing entities.
"""

from shopcache.core.exceptions.base import ShopCacheError


class ValidationError(ShopCacheError):
    """
    Raised when request validation fails.

    This is the base class for all validation-related errors.
    """
    pass


class InvalidInputError(ValidationError):
    """
    Raised when input validation fails.

    Common causes:
    - Malformed phone number
    - Shop update without an id
    """
    pass


class VerificationCodeError(ValidationError):
    """Raised when a login code is missing, expired or does not match."""
    pass


class AuthenticationRequiredError(ShopCacheError):
    """Raised when an operation needs a user and none is bound to the context."""
    pass


class NotFoundError(ShopCacheError):
    """Base exception for missing entities."""
    pass


class ShopNotFoundError(NotFoundError):
    """Raised by services that need an error (not None) for an unknown shop."""
    pass
