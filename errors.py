"""
Error types raised by the store services.

They are HTTPExceptions so FastAPI renders them as ``{"detail": ...}`` with
the matching status code, whether raised in a route or deep in a service.
"""
from fastapi import HTTPException


class StoreError(HTTPException):
    status_code = 500

    def __init__(self, detail: str, headers=None):
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)


class ValidationError(StoreError):
    status_code = 400


class NotFound(StoreError):
    status_code = 404


class InsufficientStock(StoreError):
    status_code = 400

    def __init__(self, product_name: str):
        super().__init__(f"{product_name} is out of stock or insufficient stock")
        self.product_name = product_name


class Unauthenticated(StoreError):
    status_code = 401

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class VerificationFailed(StoreError):
    status_code = 400

    def __init__(self, detail: str = "Payment verification failed"):
        super().__init__(detail)


class InvalidTransition(StoreError):
    status_code = 409


class Conflict(StoreError):
    status_code = 409


class UpstreamFailure(StoreError):
    status_code = 502
