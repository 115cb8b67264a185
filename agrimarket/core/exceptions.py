"""
Exception classes shared by the authentication and marketplace layers.

Every exception carries a machine readable ``error_code`` and the HTTP status
it maps to; ``agrimarket.main`` renders them as ``{"detail", "code"}``.
"""

from typing import Any, Dict, Optional


class MarketplaceException(Exception):
    """Base exception class for all marketplace errors."""

    status_code = 400

    def __init__(self, message: str, error_code: str = "ERROR", details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class NotFound(MarketplaceException):
    status_code = 404

    def __init__(self, message: str = "Not found", error_code: str = "NOT_FOUND", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class InvalidCredentialState(MarketplaceException):
    status_code = 401

    def __init__(self, message: str = "User password hash cannot be null or blank", error_code: str = "INVALID_CREDENTIAL_STATE", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class NoRoleAvailable(MarketplaceException):
    status_code = 401

    def __init__(self, message: str = "No valid role found for user", error_code: str = "NO_ROLE_AVAILABLE", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class RoleMismatch(MarketplaceException):
    status_code = 401

    def __init__(self, role: str, error_code: str = "ROLE_MISMATCH", details: Optional[Dict[str, Any]] = None):
        self.role = role
        super().__init__(f"User does not have role: {role}", error_code, details)


class ProfileNotFound(MarketplaceException):
    status_code = 401

    def __init__(self, role: str, error_code: str = "PROFILE_NOT_FOUND", details: Optional[Dict[str, Any]] = None):
        self.role = role
        super().__init__(f"{role.replace('_', ' ').title()} profile not found for user", error_code, details)


class TokenInvalid(MarketplaceException):
    status_code = 401

    def __init__(self, message: str = "Invalid token", error_code: str = "TOKEN_INVALID", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class InvalidTransition(MarketplaceException):
    status_code = 409

    def __init__(self, current: str, attempted: str, error_code: str = "INVALID_TRANSITION", details: Optional[Dict[str, Any]] = None):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} while status is {current}", error_code, details)


class ConcurrentUpdate(MarketplaceException):
    status_code = 409

    def __init__(self, message: str = "Resource was modified concurrently, retry the operation", error_code: str = "CONCURRENT_UPDATE", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class ValidationFailed(MarketplaceException):
    status_code = 422

    def __init__(self, message: str = "Validation failed", error_code: str = "VALIDATION_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class AlreadyRegistered(MarketplaceException):
    status_code = 400

    def __init__(self, message: str = "Already registered", error_code: str = "ALREADY_REGISTERED", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)
