import hashlib
import hmac
import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

import requests

from ..helpers import from_cents, money, now_utc
from ..errors import PaymentGatewayError
from .base import (
    CreatePaymentInput,
    PaymentGateway,
    PaymentResult,
    PaymentStatusResult,
    PixData,
    WebhookPayload,
    WebhookValidation,
    map_status,
)

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY = timedelta(minutes=30)


def parse_datetime(value):
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Data inválida recebida do GreenPag: %r", value)
        return None

def _pick(data: dict, *keys, default=None):
    for k in keys:
        v = data.get(k)
        if v not in (None, ""):
            return v
    return default

def parse_amount(value) -> Decimal:
    """Integer amounts are cents; a value with a decimal point is already in reais."""
    try:
        amount = Decimal(str(value if value not in (None, "") else 0).strip())
    except InvalidOperation:
        amount = None
    if amount is None or not amount.is_finite():
        logger.warning("Valor inválido recebido do GreenPag: %r", value)
        return money(0)
    if "." in str(value):
        return money(amount)
    return from_cents(int(amount))


class GreenPagGateway(PaymentGateway):
    """PIX through the GreenPag REST API."""

    name = "greenpag"

    def __init__(self, api_url: str, public_key: str, secret_key: str, timeout: int = 25):
        if not api_url:
            raise ValueError("GreenPag: api_url é obrigatório")
        if not public_key:
            raise ValueError("GreenPag: public_key é obrigatório")
        if not secret_key:
            raise ValueError("GreenPag: secret_key é obrigatório")
        self.api_url = api_url.rstrip("/")
        self.public_key = public_key
        self.secret_key = secret_key
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            api_url=config.get("GREENPAG_API_URL", ""),
            public_key=config.get("GREENPAG_PUBLIC_KEY", ""),
            secret_key=config.get("GREENPAG_SECRET_KEY", ""),
            timeout=int(config.get("PAYMENT_TIMEOUT", 25)),
        )

    def _headers(self):
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.secret_key}",
            "X-Public-Key": self.public_key,
        }

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.api_url}{path}"
        try:
            r = requests.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise PaymentGatewayError(f"Falha ao contatar o GreenPag: {exc}", self.name, raw_error=exc) from exc

        try:
            body = r.json()
        except ValueError:
            body = {}

        if r.status_code >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            raise PaymentGatewayError(
                message or f"GreenPag API error: {r.status_code}",
                self.name,
                status_code=r.status_code,
                raw_error=body,
            )
        if not isinstance(body, dict):
            raise PaymentGatewayError("Resposta inválida do GreenPag", self.name, r.status_code, body)
        if body.get("success") is False:
            raise PaymentGatewayError(body.get("message") or "GreenPag request failed", self.name, r.status_code, body)

        data = body.get("data")
        return data if isinstance(data, dict) else body

    # -------------------------
    # Payments
    # -------------------------
    def create_payment(self, data: CreatePaymentInput) -> PaymentResult:
        payload = {
            "amount": int(data.amount),
            "description": data.description,
            "customer": {
                "name": data.customer.name,
                "document": data.customer.document,
                "email": data.customer.email or None,
            },
            "external_id": data.external_id,
            "callback_url": data.callback_url,
            "utm": data.metadata.get("utm") or None,
        }
        result = self._request("POST", "/pix/create", json=payload)

        transaction_id = _pick(result, "transaction_id", "id")
        if not transaction_id:
            raise PaymentGatewayError("GreenPag não retornou transaction_id", self.name, raw_error=result)

        qr_code = _pick(result, "qr_code", "pix_code", default="")
        logger.info("PIX criado no GreenPag: %s (%s centavos)", transaction_id, data.amount)
        return PaymentResult(
            transaction_id=str(transaction_id),
            status=map_status(_pick(result, "status", default="pending")),
            amount_cents=int(data.amount),
            expires_at=parse_datetime(result.get("expires_at")) or now_utc() + DEFAULT_EXPIRY,
            pix=PixData(
                qr_code=qr_code,
                qr_code_base64=_pick(result, "qr_code_base64", "qr_code_image", default=""),
                pix_key=qr_code,
            ),
        )

    def get_payment_status(self, transaction_id: str) -> PaymentStatusResult:
        result = self._request("GET", f"/pix/{transaction_id}")
        return PaymentStatusResult(
            transaction_id=str(_pick(result, "transaction_id", "id", default=transaction_id)),
            status=map_status(result.get("status")),
            amount_cents=int(result.get("amount") or 0),
            paid_at=parse_datetime(result.get("paid_at")),
        )

    # -------------------------
    # Webhooks
    # -------------------------
    def sign(self, raw_body: bytes) -> str:
        return hmac.new(self.secret_key.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()

    def verify_signature(self, raw_body: bytes, signature: str) -> bool:
        if not signature:
            return False
        signature = signature.strip()
        if signature.startswith("sha256="):
            signature = signature[len("sha256="):]
        return hmac.compare_digest(self.sign(raw_body), signature.lower())

    def validate_webhook(self, raw_body: bytes, signature: str) -> WebhookValidation:
        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")
        if not self.verify_signature(raw_body, signature):
            return WebhookValidation(is_valid=False, error="Assinatura do webhook inválida")

        try:
            data = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            return WebhookValidation(is_valid=False, error=f"Payload inválido: {exc}")
        if not isinstance(data, dict):
            return WebhookValidation(is_valid=False, error="Payload inválido")

        return WebhookValidation(is_valid=True, payload=self.parse_webhook(data))

    @staticmethod
    def parse_webhook(data: dict) -> WebhookPayload:
        nested = data.get("data") if isinstance(data.get("data"), dict) else {}
        raw_status = _pick(data, "status") or _pick(nested, "status", default="unknown")
        return WebhookPayload(
            event=str(_pick(data, "event", "type", default="unknown")),
            transaction_id=str(_pick(data, "transaction_id", "id") or _pick(nested, "id", "transaction_id", default="")),
            # status desconhecido é mantido como veio, para ser ignorado pelo processamento
            status=str(raw_status).strip().lower(),
            amount=parse_amount(_pick(data, "amount") or _pick(nested, "amount", default=0)),
            external_id=str(_pick(data, "external_id") or _pick(nested, "external_id", default="")),
            paid_at=parse_datetime(_pick(data, "paid_at") or nested.get("paid_at")),
        )
