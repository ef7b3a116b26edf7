"""Custom exceptions for the storefront API."""

from typing import Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(StorefrontError):
    """Raised when required input is missing or malformed."""

    status_code = 400


class NotFoundError(StorefrontError):
    """Raised when a referenced document doesn't exist."""

    status_code = 404

    def __init__(self, entity: str, message: Optional[str] = None):
        self.entity = entity
        super().__init__(message or f"{entity} not found")


class AuthError(StorefrontError):
    """Raised when the bearer credential is missing, invalid or expired."""

    status_code = 401

    def __init__(self, message: str = "Please login to access this resource"):
        super().__init__(message)


class ForbiddenError(StorefrontError):
    """Raised when an authenticated caller may not touch the resource."""

    status_code = 403


class EmptyCartError(StorefrontError):
    """Raised when checking out (or exporting) a cart with no items."""

    status_code = 400

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InsufficientStockError(StorefrontError):
    """Raised when a single-item add asks for more than is in stock."""

    status_code = 400

    def __init__(self, available: int):
        self.available = available
        super().__init__(f"Insufficient stock. Available: {available}")


class UploadError(StorefrontError):
    """Raised when an uploaded file is too large or not an image."""

    status_code = 400


class InternalError(StorefrontError):
    """Raised for failures the caller can't fix."""

    status_code = 500
