"""Tests for the session cart drawer API."""

from decimal import Decimal

from pixstore.cart import cart_key, cart_lines, cart_split_key, cart_subtotal
from pixstore.extensions import db


def _add(client, product_id, qty=1, variant_id=None):
    return client.post("/api/cart/add", json={"product_id": product_id, "variant_id": variant_id, "qty": qty})


# ---------------------------------------------------------------------------
# Keys / lines
# ---------------------------------------------------------------------------


class TestCartLines:
    def test_keys(self):
        assert cart_key(3, None) == "3:0"
        assert cart_key("3", 7) == "3:7"
        assert cart_split_key("3:0") == (3, None)
        assert cart_split_key("3:7") == (3, 7)
        assert cart_split_key("3") == (3, None)

    def test_skips_inactive_and_bad_keys(self, make_product):
        live = make_product(name="Ativo", price="10.00")
        dead = make_product(name="Inativo", is_active=False)
        lines = cart_lines({cart_key(live.id, None): 2, cart_key(dead.id, None): 1, "abc": 1})
        assert [line.product.id for line in lines] == [live.id]
        assert cart_subtotal(lines) == Decimal("20.00")

    def test_variant_price_and_name(self, make_product):
        p = make_product(name="Lata", variants=[{"name": "Uva", "price": "7.50"}, {"name": "Oculto", "visible": False}])
        visible, hidden = p.variants
        lines = cart_lines({cart_key(p.id, visible.id): 2, cart_key(p.id, hidden.id): 1})
        assert len(lines) == 1
        assert lines[0].name == "Lata - Uva"
        assert lines[0].line_total == Decimal("15.00")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


class TestCartRoutes:
    def test_empty(self, client):
        data = client.get("/api/cart").get_json()
        assert data["count"] == 0
        assert data["items"] == []
        assert data["currency"] == "BRL"
        assert data["free_shipping_remaining_brl"] == "R$ 300,00"

    def test_add_caps_at_stock(self, client, make_product):
        p = make_product(stock=3)
        r = _add(client, p.id, qty=2)
        assert r.get_json()["ok"] is True
        data = _add(client, p.id, qty=5).get_json()["cart"]
        assert data["count"] == 3
        assert data["subtotal"] == 150.0
        assert data["subtotal_brl"] == "R$ 150,00"

    def test_add_unknown_product(self, client):
        assert _add(client, 999).status_code == 404

    def test_add_out_of_stock(self, client, make_product):
        p = make_product(stock=0)
        r = _add(client, p.id)
        assert r.status_code == 400
        assert r.get_json()["error"] == "Sem estoque."

    def test_variant_required(self, client, make_product):
        p = make_product(variants=[{"name": "P"}, {"name": "G"}])
        r = _add(client, p.id)
        assert r.status_code == 400
        data = r.get_json()
        assert data["need_variant"] is True
        assert [v["name"] for v in data["variants"]] == ["P", "G"]

    def test_variant_from_other_product(self, client, make_product):
        p = make_product(name="A", variants=[{"name": "P"}])
        other = make_product(name="B", variants=[{"name": "G"}])
        r = _add(client, p.id, variant_id=other.variants[0].id)
        assert r.status_code == 404

    def test_update_and_remove(self, client, product):
        _add(client, product.id, qty=2)
        key = cart_key(product.id, None)

        data = client.post("/api/cart/update", json={"key": key, "qty": 4}).get_json()
        assert data["cart"]["count"] == 4

        data = client.post("/api/cart/update", json={"key": key, "qty": 0}).get_json()
        assert data["cart"]["count"] == 0

        _add(client, product.id)
        data = client.post("/api/cart/remove", json={"key": key}).get_json()
        assert data["cart"]["items"] == []

    def test_update_missing_key(self, client):
        r = client.post("/api/cart/update", json={"key": "1:0", "qty": 1})
        assert r.status_code == 404

    def test_update_drops_deactivated_product(self, client, product):
        _add(client, product.id)
        product.is_active = False
        db.session.commit()
        data = client.post("/api/cart/update", json={"key": cart_key(product.id, None), "qty": 2}).get_json()
        assert data["ok"] is True
        assert data["cart"]["count"] == 0

    def test_clear(self, client, product):
        _add(client, product.id)
        assert client.post("/api/cart/clear").get_json()["cart"]["count"] == 0
