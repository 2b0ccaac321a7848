"""Gateway contract shared by every payment provider.

Amounts travel in cents (int) between the store and the gateways; webhook
payloads are converted back to reais (Decimal) once parsed.
"""

import abc
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from ..errors import PaymentError, PaymentErrorCode


class PaymentStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    EXPIRED = "expired"

    ALL = (PENDING, PROCESSING, PAID, FAILED, CANCELLED, REFUNDED, EXPIRED)


def map_status(raw) -> str:
    value = str(raw or "").strip().lower()
    return value if value in PaymentStatus.ALL else PaymentStatus.PENDING


@dataclass
class Customer:
    name: str
    document: str
    email: str = ""
    phone: str = ""


@dataclass
class LineItem:
    name: str
    unit_amount: int
    quantity: int


@dataclass
class CreatePaymentInput:
    amount: int
    description: str
    customer: Customer
    external_id: str
    callback_url: str = ""
    metadata: dict = field(default_factory=dict)
    items: list = field(default_factory=list)


@dataclass
class PixData:
    qr_code: str = ""
    qr_code_base64: str = ""
    pix_key: str = ""


@dataclass
class PaymentResult:
    transaction_id: str
    status: str
    amount_cents: int
    expires_at: datetime | None = None
    pix: PixData | None = None
    redirect_url: str = ""


@dataclass
class PaymentStatusResult:
    transaction_id: str
    status: str
    amount_cents: int = 0
    paid_at: datetime | None = None


@dataclass
class WebhookPayload:
    event: str
    transaction_id: str
    status: str
    amount: Decimal = Decimal("0.00")
    external_id: str = ""
    paid_at: datetime | None = None


@dataclass
class WebhookValidation:
    is_valid: bool
    payload: WebhookPayload | None = None
    error: str = ""


class PaymentGateway(abc.ABC):
    name = "base"

    @abc.abstractmethod
    def create_payment(self, data: CreatePaymentInput) -> PaymentResult:
        ...

    @abc.abstractmethod
    def get_payment_status(self, transaction_id: str) -> PaymentStatusResult:
        ...

    @abc.abstractmethod
    def validate_webhook(self, raw_body: bytes, signature: str) -> WebhookValidation:
        ...

    def supports_method(self, method: str) -> bool:
        return method == "pix"

    def cancel_payment(self, transaction_id: str):
        raise PaymentError(
            f"{self.name} não suporta cancelamento",
            PaymentErrorCode.CANCEL_FAILED,
            {"transaction_id": transaction_id},
        )

    def refund_payment(self, transaction_id: str, amount_cents: int | None = None):
        raise PaymentError(
            f"{self.name} não suporta reembolso",
            PaymentErrorCode.REFUND_FAILED,
            {"transaction_id": transaction_id, "amount": amount_cents},
        )
