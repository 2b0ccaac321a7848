"""Tests for the n8n WhatsApp notifications."""

import hashlib
import hmac
import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from pixstore.notifications import (
    build_notification, format_phone_for_whatsapp, is_valid_phone, notify_order, send_notification,
)
from pixstore.orders import NewOrder, NewOrderItem, create_order

from conftest import VALID_CPF


@pytest.fixture
def order(app, product):
    with patch("pixstore.orders.notify_order"):
        return create_order(NewOrder(
            transaction_id="tx_n",
            customer_name="Maria",
            customer_document=VALID_CPF,
            customer_phone="(11) 99999-8888",
            customer_address="Rua A",
            customer_number="10",
            customer_city="São Paulo",
            customer_state="sp",
            shipping_time_minutes=25,
            items=[NewOrderItem(product_id=product.id, product_name=product.name, unit_price=product.price, quantity=2)],
        ))


@pytest.fixture
def n8n(app):
    app.config["N8N_WEBHOOK_URL"] = "https://n8n.example.com/webhook/pix"
    return app.config


# ---------------------------------------------------------------------------
# Phone helpers
# ---------------------------------------------------------------------------


class TestPhone:
    def test_adds_country_code_to_mobile(self):
        assert format_phone_for_whatsapp("(11) 99999-8888") == "5511999998888"

    def test_keeps_other_lengths(self):
        assert format_phone_for_whatsapp("5511999998888") == "5511999998888"
        assert format_phone_for_whatsapp(None) == ""

    def test_is_valid_phone(self):
        assert is_valid_phone("1133334444")
        assert not is_valid_phone("12345")


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


class TestBuildNotification:
    def test_payload(self, order):
        data = build_notification("order.paid", order)
        assert data["event"] == "order.paid"
        assert data["order_id"] == str(order.id)
        assert data["transaction_id"] == "tx_n"
        assert data["customer"]["phone"] == "5511999998888"
        assert data["order"]["total"] == 100.0
        assert data["order"]["items_count"] == 1
        assert data["order"]["status"] == "paid"
        assert data["shipping"] == {
            "address": "Rua A, 10",
            "city": "São Paulo",
            "state": "SP",
            "estimated_time": 25,
        }

    def test_created_uses_current_status(self, order):
        assert build_notification("order.created", order)["order"]["status"] == "pending"

    def test_unknown_event(self, order):
        with pytest.raises(ValueError):
            build_notification("order.lost", order)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class TestSendNotification:
    def test_without_url_is_skipped(self, app):
        with patch("pixstore.notifications.requests.post") as post:
            assert send_notification({"event": "order.paid"}) is False
        post.assert_not_called()

    def test_signed_post(self, n8n):
        with patch("pixstore.notifications.requests.post", return_value=MagicMock(status_code=200)) as post:
            assert send_notification({"event": "order.paid", "order_id": "1"}) is True

        kwargs = post.call_args.kwargs
        body = kwargs["data"]
        expected = hmac.new(b"n8n-test-secret", body, hashlib.sha256).hexdigest()
        assert post.call_args.args[0] == "https://n8n.example.com/webhook/pix"
        assert kwargs["headers"]["X-Webhook-Signature"] == expected
        assert kwargs["headers"]["X-Event-Type"] == "order.paid"
        assert json.loads(body)["order_id"] == "1"

    def test_http_error_returns_false(self, n8n):
        resp = MagicMock(status_code=500, text="erro")
        with patch("pixstore.notifications.requests.post", return_value=resp):
            assert send_notification({"event": "order.paid"}) is False

    def test_network_error_returns_false(self, n8n):
        with patch("pixstore.notifications.requests.post", side_effect=requests.ConnectionError("down")):
            assert send_notification({"event": "order.paid"}) is False

    def test_notify_order_requires_phone(self, n8n, order):
        order.customer_phone = ""
        with patch("pixstore.notifications.requests.post") as post:
            assert notify_order("order.paid", order) is False
        post.assert_not_called()

    def test_notify_order(self, n8n, order):
        with patch("pixstore.notifications.requests.post", return_value=MagicMock(status_code=202)) as post:
            assert notify_order("order.shipped", order) is True
        assert json.loads(post.call_args.kwargs["data"])["order"]["status"] == "shipped"
