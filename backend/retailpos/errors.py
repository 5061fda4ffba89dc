# Overview: Domain error taxonomy shared by models, services and routes.

"""
POS domain errors.

Every error carries a stable machine-readable `code` and the HTTP status the
API answers with, so routes can map them without inspecting messages:

- 400: input could not be interpreted (UNKNOWN_UNIT)
- 404: entity missing under the caller's tenant scope
- 409: business rule rejected the operation (stock, credit, state)
"""


class PosError(Exception):
    """Base class for POS business errors."""
    code = "POS_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class UnknownUnit(PosError):
    code = "UNKNOWN_UNIT"
    status_code = 400


class ProductNotFound(PosError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404


class CustomerNotFound(PosError):
    code = "CUSTOMER_NOT_FOUND"
    status_code = 404


class SaleNotFound(PosError):
    code = "SALE_NOT_FOUND"
    status_code = 404


class InsufficientStock(PosError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409


class CreditLimitExceeded(PosError):
    code = "CREDIT_LIMIT_EXCEEDED"
    status_code = 409


class CreditNotAllowed(PosError):
    code = "CREDIT_NOT_ALLOWED"
    status_code = 409


class InvalidSaleState(PosError):
    code = "INVALID_SALE_STATE"
    status_code = 409
