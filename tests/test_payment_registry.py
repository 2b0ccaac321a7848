"""Tests for the gateway registry and the default gateway behaviour."""

import pytest

from pixstore import payments
from pixstore.errors import PaymentError, PaymentErrorCode
from pixstore.payments import (
    available_gateways, create_gateway, get_gateway, map_status, register_gateway, reset_gateway, set_gateway,
)
from pixstore.payments.greenpag import GreenPagGateway
from pixstore.payments.stripe_gateway import StripeGateway

from conftest import FakeGateway

GREENPAG_CONFIG = {
    "GREENPAG_API_URL": "https://api.greenpag.test/v1/",
    "GREENPAG_PUBLIC_KEY": "pk_test",
    "GREENPAG_SECRET_KEY": "sk_test",
}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_defaults(self):
        assert {"greenpag", "stripe"} <= set(available_gateways())

    def test_create_by_name(self):
        gw = create_gateway("GreenPag", config=GREENPAG_CONFIG)
        assert isinstance(gw, GreenPagGateway)
        assert gw.api_url == "https://api.greenpag.test/v1"

    def test_create_from_default(self):
        gw = create_gateway(config={"DEFAULT_PAYMENT_GATEWAY": "stripe", "STRIPE_SECRET_KEY": "sk_test",
                                    "SITE_URL": "https://loja.test/"})
        assert isinstance(gw, StripeGateway)
        assert gw.success_url.startswith("https://loja.test/pagamento/retorno?session_id=")

    def test_missing_config_gives_none(self):
        assert create_gateway("greenpag", config={}) is None
        assert create_gateway("stripe", config={}) is None

    def test_unknown_or_unset(self):
        assert create_gateway("paypal", config={}) is None
        assert create_gateway(config={"DEFAULT_PAYMENT_GATEWAY": ""}) is None

    def test_register_custom(self, monkeypatch):
        monkeypatch.setattr(payments, "_factories", dict(payments._factories))
        register_gateway("fake", lambda config: FakeGateway())
        assert isinstance(create_gateway("fake", config={}), FakeGateway)

    def test_cached_per_app(self, app):
        assert get_gateway() is None
        gw = FakeGateway()
        set_gateway(app, gw)
        assert get_gateway() is gw
        reset_gateway(app)
        assert get_gateway() is None


# ---------------------------------------------------------------------------
# Port defaults
# ---------------------------------------------------------------------------


class TestPortDefaults:
    def test_supports_pix_only(self):
        assert FakeGateway().supports_method("pix")
        assert not FakeGateway().supports_method("boleto")
        assert StripeGateway(secret_key="sk_test").supports_method("credit_card")

    def test_cancel_not_supported(self):
        with pytest.raises(PaymentError) as exc:
            FakeGateway().cancel_payment("tx_1")
        assert exc.value.code == PaymentErrorCode.CANCEL_FAILED

    def test_refund_not_supported(self):
        with pytest.raises(PaymentError) as exc:
            FakeGateway().refund_payment("tx_1", 500)
        assert exc.value.code == PaymentErrorCode.REFUND_FAILED
        assert exc.value.details == {"transaction_id": "tx_1", "amount": 500}

    @pytest.mark.parametrize("raw, expected", [
        ("PAID", "paid"), (" Expired ", "expired"), ("weird", "pending"), (None, "pending"),
    ])
    def test_map_status(self, raw, expected):
        assert map_status(raw) == expected
