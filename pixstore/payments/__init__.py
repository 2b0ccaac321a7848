"""Payment gateway registry.

The active gateway is picked by ``DEFAULT_PAYMENT_GATEWAY`` and cached per app
in ``app.extensions["payment_gateway"]``.
"""

import logging

from flask import current_app

from .base import PaymentGateway, PaymentStatus, map_status
from .greenpag import GreenPagGateway
from .store import PaymentStatusStore, get_store, init_store
from .stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

_factories = {}
_UNSET = object()


def register_gateway(name: str, factory):
    """``factory(config) -> PaymentGateway``"""
    _factories[name] = factory

def available_gateways() -> list[str]:
    return sorted(_factories)

def create_gateway(name: str | None = None, config=None) -> PaymentGateway | None:
    config = config if config is not None else current_app.config
    name = (name or config.get("DEFAULT_PAYMENT_GATEWAY") or "").strip().lower()
    if not name:
        return None

    factory = _factories.get(name)
    if not factory:
        logger.error("Gateway de pagamento desconhecido: %s", name)
        return None
    try:
        return factory(config)
    except ValueError as exc:
        logger.error("Gateway %s não configurado: %s", name, exc)
        return None

def get_gateway() -> PaymentGateway | None:
    cached = current_app.extensions.get("payment_gateway", _UNSET)
    if cached is _UNSET:
        cached = create_gateway()
        current_app.extensions["payment_gateway"] = cached
    return cached

def set_gateway(app, gateway: PaymentGateway | None):
    app.extensions["payment_gateway"] = gateway

def reset_gateway(app):
    app.extensions.pop("payment_gateway", None)


register_gateway("greenpag", GreenPagGateway.from_config)
register_gateway("stripe", StripeGateway.from_config)

__all__ = [
    "PaymentGateway",
    "PaymentStatus",
    "PaymentStatusStore",
    "available_gateways",
    "create_gateway",
    "get_gateway",
    "get_store",
    "init_store",
    "map_status",
    "register_gateway",
    "reset_gateway",
    "set_gateway",
]
