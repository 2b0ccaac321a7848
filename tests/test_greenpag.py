"""Tests for the GreenPag gateway client (HTTP mocked)."""

import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from pixstore.errors import PaymentGatewayError
from pixstore.payments.base import CreatePaymentInput, Customer

from pixstore.payments.greenpag import GreenPagGateway, parse_amount, parse_datetime


def _gateway():
    return GreenPagGateway(api_url="https://api.greenpag.test/v1/", public_key="pk_test", secret_key="sk_test")


def _response(status=200, body=None):
    r = MagicMock()
    r.status_code = status
    r.json.return_value = body if body is not None else {}
    return r


def _input(amount=6000):
    return CreatePaymentInput(
        amount=amount,
        description="Pedido PixStore - 1 item",
        customer=Customer(name="Maria", document="52998224725", email="maria@example.com"),
        external_id="pix_1_abcd",
        callback_url="http://localhost/api/payments/webhook",
        metadata={"utm": {"utm_source": "ig"}},
    )


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    @pytest.mark.parametrize("kwargs", [
        {"api_url": "", "public_key": "pk", "secret_key": "sk"},
        {"api_url": "https://x", "public_key": "", "secret_key": "sk"},
        {"api_url": "https://x", "public_key": "pk", "secret_key": ""},
    ])
    def test_missing_config_raises(self, kwargs):
        with pytest.raises(ValueError):
            GreenPagGateway(**kwargs)

    def test_from_config(self):
        gw = GreenPagGateway.from_config({
            "GREENPAG_API_URL": "https://api.greenpag.test/v1",
            "GREENPAG_PUBLIC_KEY": "pk",
            "GREENPAG_SECRET_KEY": "sk",
            "PAYMENT_TIMEOUT": 5,
        })
        assert gw.timeout == 5
        assert gw.api_url == "https://api.greenpag.test/v1"


# ---------------------------------------------------------------------------
# Create / status
# ---------------------------------------------------------------------------


class TestCreatePayment:
    def test_posts_and_parses_data_envelope(self):
        body = {"success": True, "data": {
            "transaction_id": "gp_123",
            "status": "pending",
            "qr_code": "000201PIX",
            "qr_code_base64": "iVBOR",
            "expires_at": "2026-01-01T12:00:00Z",
        }}
        with patch("pixstore.payments.greenpag.requests.request", return_value=_response(200, body)) as req:
            result = _gateway().create_payment(_input())

        method, url = req.call_args.args
        assert method == "POST"
        assert url == "https://api.greenpag.test/v1/pix/create"
        headers = req.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer sk_test"
        assert headers["X-Public-Key"] == "pk_test"
        payload = req.call_args.kwargs["json"]
        assert payload["amount"] == 6000
        assert payload["external_id"] == "pix_1_abcd"
        assert payload["utm"] == {"utm_source": "ig"}

        assert result.transaction_id == "gp_123"
        assert result.status == "pending"
        assert result.amount_cents == 6000
        assert result.pix.qr_code == "000201PIX"
        assert result.pix.qr_code_base64 == "iVBOR"
        assert result.expires_at.year == 2026

    def test_alias_fields_and_default_expiry(self):
        body = {"id": "gp_9", "pix_code": "CODE", "qr_code_image": "IMG"}
        with patch("pixstore.payments.greenpag.requests.request", return_value=_response(201, body)):
            result = _gateway().create_payment(_input())
        assert result.transaction_id == "gp_9"
        assert result.pix.qr_code == "CODE"
        assert result.pix.qr_code_base64 == "IMG"
        assert result.expires_at is not None

    def test_http_error_raises_gateway_error(self):
        with patch("pixstore.payments.greenpag.requests.request",
                   return_value=_response(422, {"message": "Valor inválido"})):
            with pytest.raises(PaymentGatewayError) as exc:
                _gateway().create_payment(_input())
        assert exc.value.status_code == 422
        assert exc.value.message == "Valor inválido"
        assert exc.value.gateway_name == "greenpag"

    def test_success_false_raises(self):
        with patch("pixstore.payments.greenpag.requests.request",
                   return_value=_response(200, {"success": False, "message": "Recusado"})):
            with pytest.raises(PaymentGatewayError, match="Recusado"):
                _gateway().create_payment(_input())

    def test_network_error_raises(self):
        with patch("pixstore.payments.greenpag.requests.request", side_effect=requests.ConnectionError("down")):
            with pytest.raises(PaymentGatewayError):
                _gateway().create_payment(_input())

    def test_missing_transaction_id_raises(self):
        with patch("pixstore.payments.greenpag.requests.request", return_value=_response(200, {"data": {"qr_code": "x"}})):
            with pytest.raises(PaymentGatewayError):
                _gateway().create_payment(_input())


class TestPaymentStatus:
    def test_get_status(self):
        body = {"data": {"id": "gp_1", "status": "PAID", "amount": 6000, "paid_at": "2026-01-01T10:00:00+00:00"}}
        with patch("pixstore.payments.greenpag.requests.request", return_value=_response(200, body)) as req:
            result = _gateway().get_payment_status("gp_1")
        assert req.call_args.args == ("GET", "https://api.greenpag.test/v1/pix/gp_1")
        assert result.status == "paid"
        assert result.amount_cents == 6000
        assert result.paid_at is not None

    def test_unknown_status_maps_to_pending(self):
        with patch("pixstore.payments.greenpag.requests.request",
                   return_value=_response(200, {"id": "gp_1", "status": "weird"})):
            assert _gateway().get_payment_status("gp_1").status == "pending"


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class TestWebhook:
    def _sign(self, body: bytes) -> str:
        return hmac.new(b"sk_test", body, hashlib.sha256).hexdigest()

    def test_valid_signature(self):
        body = json.dumps({"event": "pix.paid", "transaction_id": "gp_1", "status": "paid",
                           "amount": 6000, "external_id": "pix_1"}).encode()
        v = _gateway().validate_webhook(body, self._sign(body))
        assert v.is_valid
        assert v.payload.transaction_id == "gp_1"
        assert v.payload.status == "paid"
        assert v.payload.amount == Decimal("60.00")
        assert v.payload.external_id == "pix_1"

    def test_sha256_prefix_accepted(self):
        body = b'{"transaction_id": "gp_1", "status": "paid"}'
        assert _gateway().validate_webhook(body, "sha256=" + self._sign(body)).is_valid

    def test_bad_signature_rejected(self):
        body = b'{"transaction_id": "gp_1", "status": "paid"}'
        v = _gateway().validate_webhook(body, "deadbeef")
        assert not v.is_valid
        assert v.payload is None
        assert not _gateway().validate_webhook(body, "").is_valid

    def test_tampered_body_rejected(self):
        body = b'{"transaction_id": "gp_1", "status": "pending"}'
        sig = self._sign(body)
        assert not _gateway().validate_webhook(body.replace(b"pending", b"paid"), sig).is_valid

    def test_invalid_json_rejected(self):
        body = b"not json"
        assert not _gateway().validate_webhook(body, self._sign(body)).is_valid

    def test_parse_nested_payload(self):
        payload = GreenPagGateway.parse_webhook({
            "type": "pix.expired",
            "data": {"id": "gp_2", "status": "EXPIRED", "amount": 150, "external_id": "pix_2"},
        })
        assert payload.event == "pix.expired"
        assert payload.transaction_id == "gp_2"
        assert payload.status == "expired"
        assert payload.amount == Decimal("1.50")

    def test_unknown_status_kept_raw(self):
        payload = GreenPagGateway.parse_webhook({"transaction_id": "gp_3", "status": "Chargeback"})
        assert payload.status == "chargeback"

    def test_decimal_amount_is_reais(self):
        body = json.dumps({"transaction_id": "gp_4", "status": "paid", "amount": "49.90"}).encode()
        v = _gateway().validate_webhook(body, self._sign(body))
        assert v.is_valid
        assert v.payload.amount == Decimal("49.90")


def test_parse_datetime():
    assert parse_datetime("2026-03-01T10:00:00Z").tzinfo is not None
    assert parse_datetime("garbage") is None
    assert parse_datetime(None) is None


@pytest.mark.parametrize("raw, expected", [
    (4990, "49.90"), ("4990", "49.90"), (49.9, "49.90"), ("49.90", "49.90"),
    (None, "0.00"), ("", "0.00"), ("R$ 10", "0.00"), ("NaN", "0.00"), ({"v": 1}, "0.00"),
])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == Decimal(expected)
