"""Checkout payment and webhook reconciliation.

A PIX charge is created at the gateway first; the order is only recorded once a
transaction id exists.  Webhooks then move the in-memory status and the order
forward, and never fail because of a side effect (order row, notification).
"""

import logging
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..cart import CartLine, cart_key, cart_lines, cart_subtotal
from ..documents import clean_document, is_valid_document
from ..errors import DomainError, PaymentError, PaymentErrorCode, PaymentGatewayError
from ..helpers import from_cents, money, to_cents
from ..models import PAID_STATUSES, Order
from ..notifications import notify_order
from ..orders import NewOrder, NewOrderItem, create_order, get_order_by_transaction_id, update_order_status
from ..settings import get_setting
from .base import CreatePaymentInput, Customer, LineItem, PaymentGateway, PaymentResult, PaymentStatus
from .store import PaymentStatusStore

logger = logging.getLogger(__name__)

MAX_QTY = 99

GATEWAY_TO_STORE = {
    "pending": "pending",
    "processing": "pending",
    "paid": "paid",
    "failed": "failed",
    "cancelled": "failed",
    "expired": "expired",
}


@dataclass
class CheckoutCustomer:
    name: str
    document: str
    email: str = ""
    phone: str = ""
    cep: str = ""
    address: str = ""
    number: str = ""
    complement: str = ""
    neighborhood: str = ""
    city: str = ""
    state: str = ""
    notes: str = ""

    @classmethod
    def from_dict(cls, data: dict):
        data = data or {}
        return cls(**{k: str(data.get(k) or "").strip() for k in cls.__dataclass_fields__})


@dataclass
class CheckoutResult:
    order: Order | None
    payment: PaymentResult
    external_id: str
    subtotal: Decimal
    shipping_cost: Decimal
    total: Decimal


@dataclass
class WebhookOutcome:
    transaction_id: str
    external_id: str
    new_status: str
    is_paid: bool


def generate_external_id() -> str:
    return f"pix_{int(time.time() * 1000)}_{secrets.token_hex(4)}"

def lines_from_items(items) -> list[CartLine]:
    """Price client-sent items from the catalog; client prices are ignored."""
    if not isinstance(items, list) or not items:
        raise PaymentError("Carrinho vazio ou inválido", PaymentErrorCode.INVALID_AMOUNT)

    cart = {}
    for raw in items:
        if not isinstance(raw, dict):
            raise PaymentError("Carrinho vazio ou inválido", PaymentErrorCode.INVALID_AMOUNT)
        try:
            pid = int(raw.get("product_id") or raw.get("productId") or raw.get("id") or 0)
            vid = int(raw.get("variant_id") or raw.get("variantId") or 0)
            qty = int(raw.get("quantity") or raw.get("qty") or 1)
        except (TypeError, ValueError):
            raise PaymentError("Item do carrinho inválido", PaymentErrorCode.INVALID_AMOUNT, {"item": raw})
        if pid <= 0:
            raise PaymentError("Item do carrinho inválido", PaymentErrorCode.INVALID_AMOUNT, {"item": raw})
        key = cart_key(pid, vid)
        cart[key] = min(MAX_QTY, max(1, cart.get(key, 0) + qty))

    lines = cart_lines(cart)
    if len(lines) != len(cart):
        found = {line.key for line in lines}
        missing = [k for k in cart if k not in found]
        raise PaymentError("Produto indisponível no carrinho", PaymentErrorCode.INVALID_AMOUNT, {"items": missing})
    return lines

def validate_customer(customer: CheckoutCustomer):
    if not customer.name or not customer.document:
        raise PaymentError("Dados do cliente incompletos", PaymentErrorCode.INVALID_CUSTOMER)
    if not is_valid_document(customer.document):
        raise PaymentError("CPF/CNPJ inválido", PaymentErrorCode.INVALID_CUSTOMER, {"field": "document"})


# -------------------------
# Create payment
# -------------------------
def create_checkout_payment(
    lines: list[CartLine],
    customer: CheckoutCustomer,
    gateway: PaymentGateway,
    store: PaymentStatusStore,
    shipping_quote=None,
    utm: dict | None = None,
    user=None,
) -> CheckoutResult:
    if not lines:
        raise PaymentError("Carrinho vazio ou inválido", PaymentErrorCode.INVALID_AMOUNT)
    validate_customer(customer)

    subtotal = cart_subtotal(lines)
    shipping_cost = money(shipping_quote.shipping_cost) if shipping_quote else money(0)
    total = money(subtotal + shipping_cost)
    if total <= 0:
        raise PaymentError("Valor total inválido", PaymentErrorCode.INVALID_AMOUNT, {"total": str(total)})

    document = clean_document(customer.document)
    external_id = generate_external_id()
    site_url = current_app.config.get("SITE_URL", "").rstrip("/")
    n = len(lines)
    description = f"Pedido {get_setting('store_name')} - {n} {'item' if n == 1 else 'itens'}"

    line_items = [LineItem(name=line.name, unit_amount=to_cents(line.unit_price), quantity=line.qty) for line in lines]
    if shipping_cost > 0:
        line_items.append(LineItem(name="Frete", unit_amount=to_cents(shipping_cost), quantity=1))

    logger.info("Criando pagamento %s via %s: total %s, %d item(s)", external_id, gateway.name, total, n)
    payment = gateway.create_payment(CreatePaymentInput(
        amount=to_cents(total),
        description=description,
        customer=Customer(name=customer.name, document=document, email=customer.email, phone=customer.phone),
        external_id=external_id,
        callback_url=f"{site_url}/api/payments/webhook",
        metadata={"utm": utm} if utm else {},
        items=line_items,
    ))

    store.save(payment.transaction_id, PaymentStatus.PENDING, amount=total, external_id=external_id)

    order = None
    try:
        order = create_order(NewOrder(
            transaction_id=payment.transaction_id,
            external_id=external_id,
            payment_provider=gateway.name,
            user_id=getattr(user, "id", None),
            customer_name=customer.name,
            customer_document=document,
            customer_email=customer.email,
            customer_phone=customer.phone,
            customer_cep=customer.cep,
            customer_address=customer.address or (shipping_quote.delivery_address if shipping_quote else ""),
            customer_number=customer.number,
            customer_complement=customer.complement,
            customer_neighborhood=customer.neighborhood,
            customer_city=customer.city,
            customer_state=customer.state,
            shipping_distance_km=Decimal(str(shipping_quote.distance_km)) if shipping_quote else Decimal("0"),
            shipping_cost=shipping_cost,
            shipping_time_minutes=shipping_quote.estimated_time_minutes if shipping_quote else 0,
            delivery_notes=customer.notes,
            subtotal=subtotal,
            total=total,
            items=[
                NewOrderItem(
                    product_id=line.product.id,
                    variant_id=line.variant.id if line.variant else None,
                    product_name=line.product.name,
                    variant_name=line.variant.name if line.variant else "",
                    sku=line.variant.sku if line.variant else "",
                    unit_price=line.unit_price,
                    cost_price=money(line.variant.cost_price) if line.variant else money(0),
                    quantity=line.qty,
                    image_url=line.image_url,
                )
                for line in lines
            ],
        ))
    except (SQLAlchemyError, DomainError):
        # o pagamento já existe no gateway; não anula a cobrança
        logger.exception("Erro ao salvar pedido da transação %s", payment.transaction_id)

    return CheckoutResult(
        order=order,
        payment=payment,
        external_id=external_id,
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        total=total,
    )


# -------------------------
# Webhook
# -------------------------
def _set_order_status(transaction_id: str, status: str):
    try:
        return update_order_status(transaction_id, status, by_transaction=True)
    except (DomainError, SQLAlchemyError):
        logger.exception("Erro ao atualizar status do pedido %s -> %s", transaction_id, status)
        return None

def process_webhook(raw_body: bytes, signature: str, gateway: PaymentGateway, store: PaymentStatusStore) -> WebhookOutcome:
    validation = gateway.validate_webhook(raw_body, signature)
    if not validation.is_valid:
        raise PaymentError(
            validation.error or "Webhook inválido",
            PaymentErrorCode.WEBHOOK_INVALID,
            {"gateway": gateway.name},
        )

    data = validation.payload
    tx = data.transaction_id
    status = data.status
    logger.info("Webhook recebido: event=%s transaction=%s status=%s", data.event, tx, status)

    if not tx:
        raise PaymentError("Webhook sem transaction_id", PaymentErrorCode.WEBHOOK_INVALID)

    new_status = status
    if status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
        store.save(tx, "pending", amount=data.amount, external_id=data.external_id)
        new_status = "pending"

    elif status == PaymentStatus.PAID:
        store.save(tx, "paid", amount=data.amount, paid_at=data.paid_at, external_id=data.external_id)
        order = _set_order_status(tx, "paid")
        if order is not None:
            logger.info("Pedido marcado como pago: %s", tx)
            if order.customer_phone:
                notify_order("order.paid", order)

    elif status in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
        store.save(tx, "failed", amount=data.amount, external_id=data.external_id)
        _set_order_status(tx, "failed")
        new_status = "failed"

    elif status == PaymentStatus.EXPIRED:
        store.save(tx, "expired", amount=data.amount, external_id=data.external_id)

    elif status == PaymentStatus.REFUNDED:
        _set_order_status(tx, "refunded")

    else:
        logger.info("Status desconhecido no webhook: %s (%s)", status, tx)

    return WebhookOutcome(
        transaction_id=tx,
        external_id=data.external_id,
        new_status=new_status,
        is_paid=status == PaymentStatus.PAID,
    )


# -------------------------
# Status
# -------------------------
def _refresh_from_gateway(transaction_id: str, store: PaymentStatusStore, gateway: PaymentGateway):
    try:
        remote = gateway.get_payment_status(transaction_id)
    except (PaymentGatewayError, DomainError) as exc:
        logger.warning("Erro ao consultar status no gateway (%s): %s", transaction_id, exc)
        return

    status = GATEWAY_TO_STORE.get(remote.status)
    current = store.get(transaction_id)
    if not status or (current and current.status == status):
        return
    store.save(
        transaction_id,
        status,
        amount=from_cents(remote.amount_cents) if remote.amount_cents else (current.amount if current else 0),
        paid_at=remote.paid_at,
        external_id=current.external_id if current else "",
    )
    if status == "paid":
        _set_order_status(transaction_id, "paid")

def payment_status(transaction_id: str, store: PaymentStatusStore, gateway: PaymentGateway | None = None,
                   refresh: bool = False) -> dict:
    """Status for the polling endpoint: store record, then the order row, then pending."""
    if refresh and gateway is not None:
        _refresh_from_gateway(transaction_id, store, gateway)

    record = store.get(transaction_id)
    if record:
        status, amount, paid_at = record.status, float(record.amount), record.paid_at
    else:
        status, amount, paid_at = "pending", None, None
        order = get_order_by_transaction_id(transaction_id)
        if order:
            amount, paid_at = float(order.total or 0), order.paid_at
            if order.status in PAID_STATUSES:
                status = "paid"
            elif order.status in ("failed", "cancelled"):
                status = "failed"

    return {
        "transaction_id": transaction_id,
        "status": status,
        "amount": amount,
        "paid_at": paid_at.isoformat() if paid_at else None,
        "message": "Pagamento confirmado" if status == "paid" else "Aguardando pagamento",
    }
