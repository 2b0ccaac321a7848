import json
from datetime import timedelta
from decimal import Decimal

import pytest
from flask import g

from pixstore import create_app
from pixstore.auth import ADMIN_COOKIE, USER_COOKIE, issue_token
from pixstore.config import TestConfig
from pixstore.extensions import db
from pixstore.helpers import money, now_utc
from pixstore.models import Category, Product, ProductVariant, User
from pixstore.payments import set_gateway
from pixstore.payments.base import (
    PaymentGateway, PaymentResult, PaymentStatusResult, PixData, WebhookValidation,
)
from pixstore.payments.greenpag import GreenPagGateway

VALID_CPF = "52998224725"
VALID_CNPJ = "11222333000181"


# ---------------------------------------------------------------------------
# App / clients
# ---------------------------------------------------------------------------


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        UPLOAD_FOLDER = str(tmp_path / "uploads")

    app = create_app(_Config)

    @app.before_request
    def _forget_cached_user():
        # requests reuse the fixture's app context, so g outlives each one
        g.pop("_login_user", None)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def fresh(model, ident):
    """Reload a row after a request committed through its own session."""
    db.session.expire_all()
    return db.session.get(model, ident)


@pytest.fixture
def make_user(app):
    def _make(email="cliente@example.com", password="segredo123", is_admin=False, name="Cliente", whatsapp=""):
        u = User(email=email, name=name, is_admin=is_admin, whatsapp=whatsapp)
        u.set_password(password)
        db.session.add(u)
        db.session.commit()
        return u
    return _make


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", password="admin123", is_admin=True, name="Admin")


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def admin_client(app, admin):
    c = app.test_client()
    c.set_cookie(ADMIN_COOKIE, issue_token(admin))
    return c


@pytest.fixture
def user_client(app, customer):
    c = app.test_client()
    c.set_cookie(USER_COOKIE, issue_token(customer))
    return c


# ---------------------------------------------------------------------------
# Catalog factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_category(app):
    def _make(name="Camisetas", slug=None, is_active=True, position=0):
        c = Category(name=name, slug=slug or name.lower(), is_active=is_active, position=position)
        db.session.add(c)
        db.session.commit()
        return c
    return _make


@pytest.fixture
def make_product(app):
    def _make(name="Camiseta", price="50.00", stock=10, category=None, is_active=True, slug=None, variants=()):
        p = Product(
            name=name,
            slug=slug or name.lower().replace(" ", "-"),
            price=money(price),
            stock=stock,
            is_active=is_active,
            category_id=category.id if category else None,
        )
        db.session.add(p)
        db.session.flush()
        for i, v in enumerate(variants):
            db.session.add(ProductVariant(
                product_id=p.id,
                name=v["name"],
                price=money(v.get("price", price)),
                cost_price=money(v.get("cost_price", 0)),
                stock=v.get("stock", 10),
                sku=v.get("sku", ""),
                visible=v.get("visible", True),
                display_order=i,
            ))
        db.session.commit()
        return p
    return _make


@pytest.fixture
def product(make_product):
    return make_product()


# ---------------------------------------------------------------------------
# Payment gateway double
# ---------------------------------------------------------------------------


class FakeGateway(PaymentGateway):
    """In-process gateway: signature "valid" passes, payload parsed like GreenPag."""

    name = "fake"

    def __init__(self):
        self.created = []
        self.remote_status = "pending"
        self.fail_with = None
        self.redirect_url = ""
        self._n = 0

    def create_payment(self, data):
        if self.fail_with is not None:
            raise self.fail_with
        self._n += 1
        self.created.append(data)
        return PaymentResult(
            transaction_id=f"tx_{self._n}",
            status="pending",
            amount_cents=data.amount,
            expires_at=now_utc() + timedelta(minutes=30),
            pix=PixData(qr_code="000201PIXCODE", qr_code_base64="iVBORw0KGgo="),
            redirect_url=self.redirect_url,
        )

    def get_payment_status(self, transaction_id):
        return PaymentStatusResult(transaction_id=transaction_id, status=self.remote_status, amount_cents=0)

    def validate_webhook(self, raw_body, signature):
        if signature != "valid":
            return WebhookValidation(is_valid=False, error="Assinatura do webhook inválida")
        return WebhookValidation(is_valid=True, payload=GreenPagGateway.parse_webhook(json.loads(raw_body)))


@pytest.fixture
def gateway(app):
    gw = FakeGateway()
    set_gateway(app, gw)
    return gw


def webhook_body(transaction_id, status, amount=5000, external_id="", event="pix.updated"):
    return json.dumps({
        "event": event,
        "transaction_id": transaction_id,
        "status": status,
        "amount": amount,
        "external_id": external_id,
    }).encode("utf-8")


@pytest.fixture
def quote():
    from pixstore.shipping import ShippingQuote
    return ShippingQuote(
        distance_km=5.0,
        shipping_cost=10.0,
        estimated_time_minutes=15,
        free_shipping=False,
        free_shipping_remaining=250.0,
        delivery_address="Rua A, Centro, São Paulo - SP",
    )


CUSTOMER = {
    "name": "Maria Silva",
    "document": VALID_CPF,
    "email": "maria@example.com",
    "phone": "11999998888",
    "cep": "01001-000",
    "address": "Praça da Sé",
    "number": "100",
    "neighborhood": "Sé",
    "city": "São Paulo",
    "state": "SP",
}

ZERO = Decimal("0.00")
