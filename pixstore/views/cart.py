from flask import Blueprint, jsonify, request

from ..cart import cart_get, cart_key, cart_payload, cart_save, cart_split_key
from ..extensions import db
from ..helpers import parse_int
from ..models import Product, ProductVariant

bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@bp.get("")
def api_cart():
    return jsonify(cart_payload())

@bp.post("/add")
def api_cart_add():
    data = request.get_json(silent=True) or {}
    product_id = parse_int(data.get("product_id"), 0)
    variant_id = parse_int(data.get("variant_id"), 0) or None
    qty = parse_int(data.get("qty", 1), 1, minimum=1, maximum=99)

    p = db.session.get(Product, product_id)
    if not p or not p.is_active:
        return jsonify({"ok": False, "error": "Produto não encontrado."}), 404

    variants = p.visible_variants
    variant = None
    if variants:
        if not variant_id:
            return jsonify({
                "ok": False,
                "need_variant": True,
                "variants": [v.to_dict() for v in variants],
            }), 400
        variant = db.session.get(ProductVariant, variant_id)
        if not variant or variant.product_id != p.id or not variant.visible:
            return jsonify({"ok": False, "error": "Variação não encontrada."}), 404

    stock = variant.stock if variant else p.stock
    if stock <= 0:
        return jsonify({"ok": False, "error": "Sem estoque."}), 400

    cart = cart_get()
    k = cart_key(p.id, variant.id if variant else None)
    current = int(cart.get(k, 0))
    cart[k] = min(stock, current + qty)
    cart_save(cart)

    return jsonify({"ok": True, "message": "Adicionado ao carrinho!", "cart": cart_payload()})

@bp.post("/update")
def api_cart_update():
    data = request.get_json(silent=True) or {}
    key = (data.get("key") or "").strip()
    qty = parse_int(data.get("qty", 1), 1, minimum=0, maximum=99)

    cart = cart_get()
    if key not in cart:
        return jsonify({"ok": False, "error": "Item não encontrado."}), 404

    pid, vid = cart_split_key(key)
    p = db.session.get(Product, pid)
    variant = db.session.get(ProductVariant, vid) if vid else None
    if not p or not p.is_active or (vid and (not variant or not variant.visible)):
        cart.pop(key, None)
        cart_save(cart)
        return jsonify({"ok": True, "cart": cart_payload()})

    if qty == 0:
        cart.pop(key, None)
    else:
        cart[key] = min(qty, variant.stock if variant else p.stock)

    cart_save(cart)
    return jsonify({"ok": True, "cart": cart_payload()})

@bp.post("/remove")
def api_cart_remove():
    data = request.get_json(silent=True) or {}
    key = (data.get("key") or "").strip()
    cart = cart_get()
    cart.pop(key, None)
    cart_save(cart)
    return jsonify({"ok": True, "cart": cart_payload()})

@bp.post("/clear")
def api_cart_clear():
    cart_save({})
    return jsonify({"ok": True, "cart": cart_payload()})
