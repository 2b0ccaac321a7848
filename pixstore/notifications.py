"""WhatsApp notifications through an n8n webhook.

n8n checks ``X-Webhook-Signature`` (HMAC-SHA256 of the raw JSON body) before
messaging the customer.  A failed notification never fails the caller.
"""

import hashlib
import hmac
import json
import logging

import requests
from flask import current_app

from .helpers import only_digits

logger = logging.getLogger(__name__)

EVENTS = ("order.created", "order.paid", "order.shipped", "order.delivered", "order.cancelled")

# status enviado no payload para cada evento; None = status atual do pedido
EVENT_STATUS = {
    "order.created": None,
    "order.paid": "paid",
    "order.shipped": "shipped",
    "order.delivered": "delivered",
    "order.cancelled": "cancelled",
}


def format_phone_for_whatsapp(phone) -> str:
    digits = only_digits(phone)
    if len(digits) == 11:
        return f"55{digits}"
    return digits

def is_valid_phone(phone) -> bool:
    return 10 <= len(only_digits(phone)) <= 13

def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

def build_notification(event: str, order) -> dict:
    if event not in EVENTS:
        raise ValueError(f"Evento de notificação desconhecido: {event}")

    data = {
        "event": event,
        "order_id": str(order.id),
        "transaction_id": order.transaction_id or "",
        "customer": {
            "name": order.customer_name or "",
            "phone": format_phone_for_whatsapp(order.customer_phone),
            "document": order.customer_document or "",
        },
        "order": {
            "total": float(order.total or 0),
            "items_count": len(order.items),
            "status": EVENT_STATUS[event] or order.status,
            "created_at": order.created_at.isoformat() if order.created_at else None,
        },
    }
    if order.customer_city:
        data["shipping"] = {
            "address": f"{order.customer_address}, {order.customer_number}",
            "city": order.customer_city,
            "state": order.customer_state,
            "estimated_time": int(order.shipping_time_minutes or 0),
        }
    return data

def send_notification(notification: dict) -> bool:
    url = current_app.config.get("N8N_WEBHOOK_URL", "")
    if not url:
        logger.warning("N8N_WEBHOOK_URL não configurado. Notificação não enviada.")
        return False

    body = json.dumps(notification, ensure_ascii=False).encode("utf-8")
    secret = current_app.config.get("N8N_WEBHOOK_SECRET", "")
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Signature": sign_payload(body, secret),
        "X-Event-Type": notification.get("event", ""),
    }

    try:
        r = requests.post(url, data=body, headers=headers, timeout=10)
    except requests.RequestException:
        logger.exception("Erro ao enviar notificação WhatsApp (%s)", notification.get("event"))
        return False
    if r.status_code >= 400:
        logger.error("n8n webhook falhou: %s - %s", r.status_code, r.text[:200])
        return False

    logger.info("Notificação %s enviada para o pedido %s", notification.get("event"), notification.get("order_id"))
    return True

def notify_order(event: str, order) -> bool:
    if not order or not order.customer_phone:
        return False
    return send_notification(build_notification(event, order))
