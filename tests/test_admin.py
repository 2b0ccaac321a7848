"""Tests for the HTML admin panel."""

import io
from unittest.mock import patch

import pytest

from pixstore.extensions import db
from pixstore.models import Banner, Category, Order, Product, ProductImage, ProductVariant, User
from pixstore.orders import NewOrder, NewOrderItem, create_order
from pixstore.settings import get_setting

from conftest import VALID_CPF, fresh


@pytest.fixture
def order(product):
    with patch("pixstore.orders.notify_order"):
        return create_order(NewOrder(
            transaction_id="tx_adm",
            customer_name="Maria",
            customer_document=VALID_CPF,
            customer_phone="11999998888",
            items=[NewOrderItem(product_id=product.id, product_name=product.name, unit_price=product.price, quantity=1)],
        ))


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


class TestAccess:
    def test_anonymous_redirects_to_login(self, client):
        r = client.get("/admin/produtos")
        assert r.status_code == 302
        assert "/admin/login?from=" in r.headers["Location"]

    def test_customer_is_refused(self, user_client):
        r = user_client.get("/admin")
        assert r.status_code == 302
        assert "/admin/login" in r.headers["Location"]

    def test_login_and_return(self, client, admin):
        r = client.post("/admin/login?from=/admin/pedidos", data={"email": admin.email, "password": "admin123"})
        assert r.headers["Location"].endswith("/admin/pedidos")
        assert client.get("/admin").status_code == 200

    def test_login_ignores_outside_target(self, client, admin):
        r = client.post("/admin/login?from=/conta", data={"email": admin.email, "password": "admin123"})
        assert r.headers["Location"].endswith("/admin")

    def test_customer_login_denied(self, client, customer):
        r = client.post("/admin/login", data={"email": customer.email, "password": "segredo123"})
        assert r.status_code == 302
        assert client.get("/admin").status_code == 302

    def test_dashboard(self, admin_client, order):
        html = admin_client.get("/admin").get_data(as_text=True)
        assert "Pedidos" in html


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_get(self, admin_client):
        assert admin_client.get("/admin/settings").status_code == 200

    def test_save(self, admin_client):
        r = admin_client.post("/admin/settings", data={
            "store_name": "Loja Nova",
            "hero_type": "none",
            "primary_color": "",
            "free_shipping_threshold": "250",
            "shipping_price_per_km": "2.1",
            "shipping_min_cost": "12",
            "shipping_max_distance_km": "40",
        })
        assert r.status_code == 302
        assert get_setting("store_name") == "Loja Nova"
        assert get_setting("free_shipping_threshold") == "250.00"
        assert get_setting("shipping_max_distance_km") == "40"
        assert get_setting("primary_color") == "#10b981"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class TestCategories:
    def test_create_edit_delete(self, admin_client, product):
        r = admin_client.post("/admin/categorias/nova", data={"name": "Moletons", "position": "2", "is_active": "y"})
        assert r.status_code == 302
        c = Category.query.filter_by(slug="moletons").one()

        admin_client.post(f"/admin/categorias/{c.id}/editar", data={"name": "Moletons Inverno", "position": "1"})
        c = fresh(Category, c.id)
        assert c.name == "Moletons Inverno"
        assert c.is_active is False

        product.category_id = c.id
        db.session.commit()
        admin_client.post(f"/admin/categorias/{c.id}/delete")
        assert fresh(Category, c.id) is None
        assert fresh(Product, product.id).category_id is None


class TestProducts:
    def test_create_with_image(self, admin_client, app):
        r = admin_client.post("/admin/produtos/novo", data={
            "name": "Camiseta Preta",
            "price": "79.90",
            "stock": "5",
            "sizes": "P,M",
            "category_id": "0",
            "is_active": "y",
            "image": (io.BytesIO(b"\x89PNG fake"), "foto.png"),
        }, content_type="multipart/form-data")
        assert r.status_code == 302
        p = Product.query.filter_by(slug="camiseta-preta").one()
        assert str(p.price) == "79.90"
        assert p.size_list == ["P", "M"]
        assert p.category_id is None
        assert p.images[0].image_url.startswith("/uploads/camiseta-preta")

    def test_invalid_image_is_rejected(self, admin_client):
        r = admin_client.post("/admin/produtos/novo", data={
            "name": "Camiseta", "price": "10", "category_id": "0",
            "image": (io.BytesIO(b"x"), "script.exe"),
        }, content_type="multipart/form-data")
        assert r.headers["Location"].endswith("/admin/produtos/novo")
        assert Product.query.count() == 0

    def test_edit(self, admin_client, product):
        r = admin_client.post(f"/admin/produtos/{product.id}/editar", data={
            "name": "Camiseta Nova", "price": "55.00", "stock": "7", "category_id": "0",
        })
        assert r.status_code == 302
        p = fresh(Product, product.id)
        assert p.name == "Camiseta Nova"
        assert p.is_active is False
        assert p.stock == 7

    def test_edit_page(self, admin_client, product):
        assert admin_client.get(f"/admin/produtos/{product.id}/editar").status_code == 200

    def test_delete(self, admin_client, product):
        admin_client.post(f"/admin/produtos/{product.id}/delete")
        assert fresh(Product, product.id) is None

    def test_delete_image(self, admin_client, product):
        img = ProductImage(product_id=product.id, image_url="/uploads/a.png")
        db.session.add(img)
        db.session.commit()
        admin_client.post(f"/admin/produtos/{product.id}/imagens/{img.id}/delete")
        assert fresh(ProductImage, img.id) is None

    def test_missing_product(self, admin_client):
        assert admin_client.get("/admin/produtos/999/editar").status_code == 404


class TestVariants:
    def test_create_edit_delete(self, admin_client, product):
        r = admin_client.post(f"/admin/produtos/{product.id}/variantes", data={
            "name": "Azul", "price": "60.00", "cost_price": "25", "stock": "3", "visible": "y",
        })
        assert r.headers["Location"].endswith(f"/admin/produtos/{product.id}/editar")
        v = ProductVariant.query.filter_by(product_id=product.id).one()
        assert v.visible is True

        assert admin_client.get(f"/admin/produtos/{product.id}/variantes/{v.id}/editar").status_code == 200
        admin_client.post(f"/admin/produtos/{product.id}/variantes/{v.id}/editar", data={
            "name": "Azul Marinho", "price": "65.00", "stock": "1",
        })
        v = fresh(ProductVariant, v.id)
        assert v.name == "Azul Marinho"
        assert v.visible is False

        admin_client.post(f"/admin/produtos/{product.id}/variantes/{v.id}/delete")
        assert fresh(ProductVariant, v.id) is None

    def test_invalid_variant(self, admin_client, product):
        admin_client.post(f"/admin/produtos/{product.id}/variantes", data={"name": ""})
        assert ProductVariant.query.count() == 0


class TestBanners:
    def test_create_edit_delete(self, admin_client):
        admin_client.post("/admin/banners/novo", data={"title": "Black Friday", "is_active": "y"})
        b = Banner.query.one()
        assert b.is_active

        admin_client.post(f"/admin/banners/{b.id}/editar", data={"title": "Natal"})
        assert fresh(Banner, b.id).title == "Natal"

        admin_client.post(f"/admin/banners/{b.id}/delete")
        assert Banner.query.count() == 0


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class TestOrders:
    def test_list_and_filter(self, admin_client, order):
        assert "Maria" in admin_client.get("/admin/pedidos").get_data(as_text=True)
        assert "Maria" not in admin_client.get("/admin/pedidos?status=paid").get_data(as_text=True)

    def test_detail(self, admin_client, order):
        assert admin_client.get(f"/admin/pedidos/{order.id}").status_code == 200

    def test_status_change_notifies(self, admin_client, order):
        with patch("pixstore.views.admin.notify_order") as notify:
            r = admin_client.post(f"/admin/pedidos/{order.id}", data={"status": "shipped"})
        assert r.status_code == 302
        o = fresh(Order, order.id)
        assert o.status == "shipped"
        assert o.shipped_at is not None
        notify.assert_called_once()
        assert notify.call_args.args[0] == "order.shipped"

    def test_paid_does_not_notify(self, admin_client, order):
        with patch("pixstore.views.admin.notify_order") as notify:
            admin_client.post(f"/admin/pedidos/{order.id}", data={"status": "paid"})
        notify.assert_not_called()

    def test_invalid_status(self, admin_client, order):
        admin_client.post(f"/admin/pedidos/{order.id}", data={"status": "lost"})
        assert fresh(Order, order.id).status == "pending"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestUsers:
    def test_list(self, admin_client, customer):
        assert customer.email in admin_client.get("/admin/usuarios").get_data(as_text=True)

    def test_toggle_admin(self, admin_client, customer):
        admin_client.post(f"/admin/usuarios/{customer.id}/admin")
        assert fresh(User, customer.id).is_admin is True
        admin_client.post(f"/admin/usuarios/{customer.id}/admin")
        assert fresh(User, customer.id).is_admin is False

    def test_cannot_demote_self(self, admin_client, admin):
        admin_client.post(f"/admin/usuarios/{admin.id}/admin")
        assert fresh(User, admin.id).is_admin is True

    def test_delete(self, admin_client, customer):
        admin_client.post(f"/admin/usuarios/{customer.id}/delete")
        assert fresh(User, customer.id) is None

    def test_cannot_delete_self(self, admin_client, admin):
        admin_client.post(f"/admin/usuarios/{admin.id}/delete")
        assert fresh(User, admin.id) is not None
