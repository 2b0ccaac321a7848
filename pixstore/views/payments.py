import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from ..cart import cart_subtotal
from ..errors import PaymentError, PaymentErrorCode, PaymentGatewayError
from ..payments import get_gateway, get_store
from ..payments.service import (
    CheckoutCustomer, create_checkout_payment, lines_from_items, payment_status, process_webhook,
)
from ..shipping import ShippingError, calculate_shipping, is_within_delivery_area

logger = logging.getLogger(__name__)

bp = Blueprint("payments", __name__, url_prefix="/api/payments")

SIGNATURE_HEADERS = ("X-Signature", "Stripe-Signature", "X-Webhook-Signature")


def _payment_json(result):
    payment = result.payment
    pix = payment.pix
    return {
        "transaction_id": payment.transaction_id,
        "qr_code": pix.qr_code if pix else "",
        "qr_code_base64": pix.qr_code_base64 if pix else "",
        "amount": float(result.total),
        "expires_at": payment.expires_at.isoformat() if payment.expires_at else None,
        "external_id": result.external_id,
        "redirect_url": payment.redirect_url,
    }

def quote_for(cep: str, subtotal):
    """Shipping quote for a CEP, or None when no CEP was given."""
    if not cep:
        return None
    quote = calculate_shipping(cep, subtotal)
    if not is_within_delivery_area(quote.distance_km):
        raise ShippingError("Endereço fora da área de entrega")
    return quote


@bp.post("/create")
def create():
    body = request.get_json(silent=True) or {}
    customer = CheckoutCustomer.from_dict(body.get("customer"))
    shipping = body.get("shipping") or {}

    gateway = get_gateway()
    if gateway is None:
        return jsonify({"error": "Nenhum gateway de pagamento configurado"}), 502

    try:
        lines = lines_from_items(body.get("items"))
        quote = quote_for(shipping.get("cep") or customer.cep, cart_subtotal(lines))
        result = create_checkout_payment(
            lines,
            customer,
            gateway=gateway,
            store=get_store(),
            shipping_quote=quote,
            utm=body.get("utm") or None,
            user=current_user if current_user.is_authenticated else None,
        )
    except PaymentError as exc:
        return jsonify({"error": exc.message, **exc.to_dict()}), 400
    except ShippingError as exc:
        return jsonify({"error": str(exc)}), 400
    except PaymentGatewayError as exc:
        logger.error("Falha no gateway %s: %s (HTTP %s)", exc.gateway_name, exc.message, exc.status_code)
        return jsonify({"error": "Erro ao criar pagamento", "details": exc.message}), 502
    except SQLAlchemyError as exc:
        logger.exception("Erro ao criar pagamento")
        return jsonify({"error": "Erro ao criar pagamento", "details": str(exc)}), 500

    return jsonify({
        "success": True,
        "payment": _payment_json(result),
        "order_id": result.order.id if result.order else None,
    })

@bp.post("/webhook")
def webhook():
    raw_body = request.get_data(cache=False)
    signature = ""
    for header in SIGNATURE_HEADERS:
        signature = request.headers.get(header, "")
        if signature:
            break

    gateway = get_gateway()
    if gateway is None:
        logger.warning("Webhook recebido mas nenhum gateway configurado")
        return jsonify({"success": True, "warning": "No gateway configured"}), 200

    try:
        outcome = process_webhook(raw_body, signature, gateway, get_store())
    except PaymentError as exc:
        if exc.code == PaymentErrorCode.WEBHOOK_INVALID:
            logger.warning("Webhook rejeitado: %s", exc.message)
            return jsonify({"error": exc.message}), 401
        logger.exception("Erro ao processar webhook")
        return jsonify({"error": "Erro ao processar webhook", "details": exc.message}), 500
    except (SQLAlchemyError, ValueError) as exc:
        logger.exception("Erro ao processar webhook")
        return jsonify({"error": "Erro ao processar webhook", "details": str(exc)}), 500

    return jsonify({"success": True, "status": outcome.new_status}), 200

@bp.get("/status/<transaction_id>")
def status(transaction_id):
    transaction_id = (transaction_id or "").strip()
    if not transaction_id:
        return jsonify({"error": "Transaction ID não fornecido"}), 400

    refresh = request.args.get("refresh") in ("1", "true")
    data = payment_status(transaction_id, get_store(), gateway=get_gateway() if refresh else None, refresh=refresh)
    return jsonify(data)
