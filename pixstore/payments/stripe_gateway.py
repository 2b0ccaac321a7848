import logging
from datetime import datetime, timezone

import stripe

from ..helpers import from_cents
from ..errors import PaymentGatewayError
from .base import (
    CreatePaymentInput,
    PaymentGateway,
    PaymentResult,
    PaymentStatusResult,
    WebhookPayload,
    WebhookValidation,
)

logger = logging.getLogger(__name__)

SESSION_STATUS = {
    "paid": "paid",
    "unpaid": "pending",
    "no_payment_required": "paid",
}

EVENT_STATUS = {
    "checkout.session.completed": "paid",
    "checkout.session.async_payment_succeeded": "paid",
    "checkout.session.async_payment_failed": "failed",
    "checkout.session.expired": "expired",
    "payment_intent.payment_failed": "failed",
}


class StripeGateway(PaymentGateway):
    """Stripe Checkout (card + pix) with a hosted payment page."""

    name = "stripe"

    def __init__(self, secret_key: str, webhook_secret: str = "", success_url: str = "", cancel_url: str = ""):
        if not secret_key:
            raise ValueError("Stripe: secret_key é obrigatório")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.success_url = success_url
        self.cancel_url = cancel_url

    @classmethod
    def from_config(cls, config):
        site = config.get("SITE_URL", "").rstrip("/")
        return cls(
            secret_key=config.get("STRIPE_SECRET_KEY", ""),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET", ""),
            success_url=f"{site}/pagamento/retorno?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{site}/carrinho",
        )

    def supports_method(self, method: str) -> bool:
        return method in ("pix", "credit_card")

    def create_payment(self, data: CreatePaymentInput) -> PaymentResult:
        line_items = [
            {
                "price_data": {
                    "currency": "brl",
                    "product_data": {"name": it.name},
                    "unit_amount": int(it.unit_amount),
                },
                "quantity": int(it.quantity),
            }
            for it in data.items
        ]
        if not line_items:
            line_items = [{
                "price_data": {
                    "currency": "brl",
                    "product_data": {"name": data.description},
                    "unit_amount": int(data.amount),
                },
                "quantity": 1,
            }]

        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                line_items=line_items,
                success_url=self.success_url,
                cancel_url=self.cancel_url,
                customer_email=data.customer.email or None,
                metadata={"external_id": data.external_id},
                client_reference_id=data.external_id,
            )
        except stripe.StripeError as exc:
            raise PaymentGatewayError(
                f"Erro ao criar sessão Stripe: {exc.user_message or exc}",
                self.name,
                status_code=getattr(exc, "http_status", None),
                raw_error=exc,
            ) from exc

        logger.info("Sessão Stripe criada: %s", session.id)
        expires_at = session.get("expires_at")
        return PaymentResult(
            transaction_id=session.id,
            status=SESSION_STATUS.get(session.get("payment_status"), "pending"),
            amount_cents=int(session.get("amount_total") or data.amount),
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc) if expires_at else None,
            redirect_url=session.url,
        )

    def get_payment_status(self, transaction_id: str) -> PaymentStatusResult:
        try:
            session = stripe.checkout.Session.retrieve(transaction_id, api_key=self.secret_key)
        except stripe.StripeError as exc:
            raise PaymentGatewayError(
                f"Erro ao consultar sessão Stripe: {exc}",
                self.name,
                status_code=getattr(exc, "http_status", None),
                raw_error=exc,
            ) from exc

        status = SESSION_STATUS.get(session.get("payment_status"), "pending")
        if session.get("status") == "expired" and status != "paid":
            status = "expired"
        return PaymentStatusResult(
            transaction_id=session.id,
            status=status,
            amount_cents=int(session.get("amount_total") or 0),
        )

    def validate_webhook(self, raw_body: bytes, signature: str) -> WebhookValidation:
        if not self.webhook_secret:
            return WebhookValidation(is_valid=False, error="STRIPE_WEBHOOK_SECRET não configurado")
        if not signature:
            return WebhookValidation(is_valid=False, error="Assinatura ausente")

        try:
            event = stripe.Webhook.construct_event(raw_body, signature, self.webhook_secret)
        except ValueError as exc:
            return WebhookValidation(is_valid=False, error=f"Payload inválido: {exc}")
        except stripe.SignatureVerificationError as exc:
            return WebhookValidation(is_valid=False, error=f"Assinatura inválida: {exc}")

        obj = event["data"]["object"]
        event_type = event["type"]
        metadata = obj.get("metadata") or {}
        status = EVENT_STATUS.get(event_type, event_type)

        paid_at = None
        if status == "paid":
            paid_at = datetime.fromtimestamp(int(event.get("created") or 0), tz=timezone.utc)

        return WebhookValidation(
            is_valid=True,
            payload=WebhookPayload(
                event=event_type,
                transaction_id=obj.get("id", ""),
                status=status,
                amount=from_cents(obj.get("amount_total") or obj.get("amount") or 0),
                external_id=metadata.get("external_id", ""),
                paid_at=paid_at,
            ),
        )
