"""Domain errors shared by orders, payments and the JSON routes."""

import enum


class DomainError(Exception):
    """Base class for business-rule failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    def __init__(self, entity: str, identifier=None):
        if identifier is not None:
            message = f"{entity} não encontrado: {identifier}"
        else:
            message = f"{entity} não encontrado"
        super().__init__(message)
        self.entity = entity
        self.identifier = identifier


class ValidationError(DomainError):
    def __init__(self, message: str, field: str | None = None, value=None):
        super().__init__(message)
        self.field = field
        self.value = value


class PaymentErrorCode(str, enum.Enum):
    GATEWAY_UNAVAILABLE = "GATEWAY_UNAVAILABLE"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_CUSTOMER = "INVALID_CUSTOMER"
    PAYMENT_DECLINED = "PAYMENT_DECLINED"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    PAYMENT_ALREADY_PROCESSED = "PAYMENT_ALREADY_PROCESSED"
    WEBHOOK_INVALID = "WEBHOOK_INVALID"
    WEBHOOK_SIGNATURE_MISMATCH = "WEBHOOK_SIGNATURE_MISMATCH"
    REFUND_FAILED = "REFUND_FAILED"
    CANCEL_FAILED = "CANCEL_FAILED"


class PaymentError(DomainError):
    def __init__(self, message: str, code: PaymentErrorCode, details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "details": self.details,
        }


class PaymentGatewayError(Exception):
    """Infrastructure failure talking to a payment provider."""

    def __init__(self, message: str, gateway_name: str, status_code: int | None = None, raw_error=None):
        super().__init__(message)
        self.message = message
        self.gateway_name = gateway_name
        self.status_code = status_code
        self.raw_error = raw_error
