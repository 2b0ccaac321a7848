import logging
from dataclasses import dataclass
from decimal import Decimal

from flask import session, url_for

from .extensions import db
from .helpers import format_brl, money
from .models import Product, ProductVariant
from .settings import get_setting, get_setting_decimal

logger = logging.getLogger(__name__)


# -------------------------
# Cart (drawer)
# session["cart"] = {"<pid>:<variant_id or 0>": qty}
# -------------------------
@dataclass
class CartLine:
    key: str
    product: Product
    variant: ProductVariant | None
    qty: int

    @property
    def unit_price(self) -> Decimal:
        return money(self.variant.price if self.variant else self.product.price)

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.qty)

    @property
    def stock(self) -> int:
        return int(self.variant.stock if self.variant else self.product.stock)

    @property
    def name(self) -> str:
        if self.variant:
            return f"{self.product.name} - {self.variant.name}"
        return self.product.name

    @property
    def image_url(self) -> str:
        if self.product.images:
            return self.product.images[0].image_url
        if self.product.image_filename:
            return url_for("store.uploads", filename=self.product.image_filename)
        return ""


def cart_get() -> dict:
    return session.get("cart", {})

def cart_save(cart: dict):
    session["cart"] = cart
    session.modified = True

def cart_key(product_id: int, variant_id: int | None) -> str:
    return f"{int(product_id)}:{int(variant_id or 0)}"

def cart_split_key(key: str):
    if ":" not in key:
        return int(key), None
    pid, vid = key.split(":", 1)
    vid = int(vid or 0)
    return int(pid), (vid or None)

def cart_count(cart: dict) -> int:
    return sum(int(q) for q in cart.values())

def cart_lines(cart: dict) -> list[CartLine]:
    if not cart:
        return []

    parsed = []
    for k, qty in cart.items():
        try:
            pid, vid = cart_split_key(k)
        except ValueError:
            logger.warning("Chave de carrinho inválida: %r", k)
            continue
        parsed.append((k, pid, vid, int(qty)))

    pids = {pid for _, pid, _, _ in parsed}
    products = Product.query.filter(Product.id.in_(pids), Product.is_active.is_(True)).all()
    pmap = {p.id: p for p in products}

    lines = []
    for k, pid, vid, qty in parsed:
        p = pmap.get(pid)
        if not p or qty <= 0:
            continue
        variant = None
        if vid:
            variant = db.session.get(ProductVariant, vid)
            if not variant or variant.product_id != p.id or not variant.visible:
                continue
        lines.append(CartLine(key=k, product=p, variant=variant, qty=qty))
    return lines

def cart_subtotal(lines: list[CartLine]) -> Decimal:
    return money(sum((line.line_total for line in lines), Decimal("0.00")))

def cart_payload() -> dict:
    lines = cart_lines(cart_get())
    subtotal = cart_subtotal(lines)
    threshold = get_setting_decimal("free_shipping_threshold")
    remaining = max(money(0), threshold - subtotal)

    items = [
        {
            "key": line.key,
            "product_id": line.product.id,
            "variant_id": line.variant.id if line.variant else None,
            "name": line.product.name,
            "variant_name": line.variant.name if line.variant else "",
            "slug": line.product.slug,
            "qty": line.qty,
            "unit_price": float(line.unit_price),
            "unit_price_brl": format_brl(line.unit_price),
            "line_total_brl": format_brl(line.line_total),
            "image_url": line.image_url,
            "stock": line.stock,
        }
        for line in lines
    ]

    return {
        "count": sum(line.qty for line in lines),
        "items": items,
        "subtotal": float(subtotal),
        "subtotal_brl": format_brl(subtotal),
        "free_shipping_threshold_brl": format_brl(threshold),
        "free_shipping_remaining_brl": format_brl(remaining),
        "store_name": get_setting("store_name"),
        "currency": "BRL",
    }
