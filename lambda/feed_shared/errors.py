"""
Domain error classes for the Feed Fan-out Service.

These error classes provide explicit, typed exceptions that callers can
classify without inspecting store internals. Invalid input fails fast with
ValidationError; store failures are split into transient (retryable) and
hard (propagated immediately) failures.
"""

from typing import Dict, Any


class DomainError(Exception):
    """
    Base class for all domain errors.
    
    Domain errors are explicit errors that should be mapped to appropriate
    responses by the handler layer.
    """
    
    def __init__(self, code: str, message: str, details: Dict[str, Any] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class ValidationError(DomainError):
    """
    Raised when input validation fails.
    
    Maps to HTTP 400 Bad Request. Always raised before any store call.
    Details should contain field-level validation errors.
    """
    
    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__('VALIDATION_ERROR', message, details or {})


class StoreError(DomainError):
    """Base class for failures reported by the storage adapter."""


class TransientStoreError(StoreError):
    """
    Raised for throttling and timeouts.
    
    The cleanup engine retries these inside its bounded backoff loop.
    """
    
    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__('STORE_THROTTLED', message, details or {})


class StoreUnavailableError(StoreError):
    """
    Raised for hard store failures (missing table, bad request, no endpoint).
    
    Never retried; propagated to the caller as-is.
    """
    
    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__('STORE_UNAVAILABLE', message, details or {})
