import logging
from decimal import InvalidOperation

from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from ..auth import admin_required
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..helpers import money, parse_int, unique_slug
from ..models import Category, Order, Product, ProductImage, ProductVariant, User
from ..notifications import notify_order
from ..orders import dashboard_stats, get_order, list_orders, order_to_dict, update_order_status
from .admin import NOTIFY_ON, admin_count
from .api import json_error, register_json_errors

logger = logging.getLogger(__name__)

bp = Blueprint("admin_api", __name__, url_prefix="/api/admin")
register_json_errors(bp)

VARIANT_FIELDS = ("name", "sku", "color_hex", "flavor", "size")


def _money_or_none(value):
    if value is None or value == "":
        return None
    return money(value)

def _apply_variant(v: ProductVariant, data: dict):
    for f in VARIANT_FIELDS:
        if f in data:
            setattr(v, f, (data.get(f) or "").strip())
    if "price" in data:
        v.price = money(data["price"])
    if "original_price" in data:
        v.original_price = _money_or_none(data["original_price"])
    if "cost_price" in data:
        v.cost_price = money(data.get("cost_price") or 0)
    if "stock" in data:
        v.stock = max(0, parse_int(data["stock"], 0))
    if "weight_kg" in data:
        v.weight_kg = money(data.get("weight_kg") or 0)
    if "display_order" in data:
        v.display_order = parse_int(data["display_order"], 0)
    if "visible" in data:
        v.visible = bool(data["visible"])

def _apply_product(p: Product, data: dict):
    if "name" in data:
        p.name = (data.get("name") or "").strip()
    if "description" in data:
        p.description = data.get("description") or ""
    if "price" in data:
        p.price = money(data["price"])
    if "original_price" in data:
        p.original_price = _money_or_none(data["original_price"])
    if "stock" in data:
        p.stock = max(0, parse_int(data["stock"], 0))
    if "sizes" in data:
        p.sizes = (data.get("sizes") or "").strip()
    if "visible" in data:
        p.is_active = bool(data["visible"])
    if "category_id" in data:
        cid = parse_int(data.get("category_id"), 0)
        p.category_id = cid if cid and db.session.get(Category, cid) else None

def _get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if not p:
        raise NotFoundError("Produto", product_id)
    return p

@bp.errorhandler(NotFoundError)
def _not_found(exc):
    return json_error(404, exc.message)

@bp.errorhandler(ValidationError)
def _invalid(exc):
    return json_error(400, exc.message)

@bp.errorhandler(InvalidOperation)
def _bad_number(_exc):
    return json_error(400, "Valor numérico inválido")

@bp.errorhandler(SQLAlchemyError)
def _db_error(exc):
    db.session.rollback()
    logger.exception("Erro de banco na API admin")
    return jsonify({"success": False, "error": "Erro interno", "details": str(exc)}), 500


# ---------- sessão ----------
@bp.get("/auth/check")
@admin_required
def auth_check():
    return jsonify({"success": True, "user": current_user.to_dict()})


# ---------- métricas ----------
@bp.get("/stats")
@admin_required
def stats():
    return jsonify({
        "success": True,
        "stats": {
            "products": Product.query.count(),
            "categories": Category.query.count(),
            "orders": Order.query.count(),
            "pending_orders": Order.query.filter_by(status="pending").count(),
            "users": User.query.count(),
        },
    })

@bp.get("/dashboard")
@admin_required
def dashboard():
    return jsonify({"success": True, "data": dashboard_stats()})


# ---------- pedidos ----------
@bp.get("/orders")
@admin_required
def orders():
    page = parse_int(request.args.get("page"), 1, minimum=1)
    limit = parse_int(request.args.get("limit"), 20, minimum=1, maximum=100)
    items, total = list_orders(
        status=(request.args.get("status") or "").strip() or None,
        customer_document=(request.args.get("customer_document") or "").strip() or None,
        page=page,
        limit=limit,
    )
    return jsonify({
        "orders": [order_to_dict(o, items=False) for o in items],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    })

@bp.get("/orders/<ref>")
@admin_required
def order_detail(ref):
    order = get_order(ref)
    if not order:
        raise NotFoundError("Pedido", ref)
    return jsonify({"success": True, "order": order_to_dict(order)})

@bp.patch("/orders/<ref>")
@admin_required
def order_update(ref):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").strip()
    order = update_order_status(ref, status)
    if status in NOTIFY_ON:
        notify_order(NOTIFY_ON[status], order)
    return jsonify({"success": True, "order": order_to_dict(order)})


# ---------- categorias ----------
@bp.get("/categories")
@admin_required
def categories():
    cats = Category.query.order_by(Category.position.asc(), Category.name.asc()).all()
    return jsonify({"categories": [dict(c.to_dict(), is_active=bool(c.is_active)) for c in cats]})

@bp.post("/categories")
@admin_required
def category_create():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Nome é obrigatório", field="name")
    c = Category(
        name=name,
        slug=unique_slug(Category, name),
        icon=(data.get("icon") or "").strip(),
        position=parse_int(data.get("position"), 0),
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(c)
    db.session.commit()
    return jsonify({"success": True, "category": c.to_dict()}), 201


# ---------- produtos ----------
@bp.get("/products")
@admin_required
def products():
    items = Product.query.order_by(Product.created_at.desc()).all()
    return jsonify({"products": [p.to_dict() for p in items]})

@bp.post("/products")
@admin_required
def product_create():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Nome é obrigatório", field="name")
    if data.get("price") in (None, ""):
        raise ValidationError("Preço é obrigatório", field="price")

    p = Product(name=name, slug=unique_slug(Product, name), is_active=True)
    _apply_product(p, data)
    db.session.add(p)
    db.session.flush()

    for i, url in enumerate(data.get("images") or []):
        if isinstance(url, str) and url.strip():
            db.session.add(ProductImage(product_id=p.id, image_url=url.strip(), display_order=i))
    for i, vdata in enumerate(data.get("variants") or []):
        if not isinstance(vdata, dict) or not (vdata.get("name") or "").strip():
            continue
        v = ProductVariant(product_id=p.id, price=p.price, display_order=i)
        _apply_variant(v, vdata)
        db.session.add(v)

    db.session.commit()
    logger.info("Produto criado via API: %s", p.id)
    return jsonify({"success": True, "product": p.to_dict()}), 201

@bp.get("/products/<int:product_id>")
@admin_required
def product_detail(product_id):
    return jsonify({"success": True, "product": _get_product(product_id).to_dict()})

@bp.put("/products/<int:product_id>")
@admin_required
def product_update(product_id):
    p = _get_product(product_id)
    data = request.get_json(silent=True) or {}
    if "name" in data and not (data.get("name") or "").strip():
        raise ValidationError("Nome é obrigatório", field="name")
    _apply_product(p, data)
    db.session.commit()
    return jsonify({"success": True, "product": p.to_dict()})

@bp.delete("/products/<int:product_id>")
@admin_required
def product_delete(product_id):
    p = _get_product(product_id)
    db.session.delete(p)
    db.session.commit()
    logger.info("Produto removido via API: %s", product_id)
    return jsonify({"success": True})


# ---------- variações ----------
@bp.get("/products/<int:product_id>/variants")
@admin_required
def variants(product_id):
    p = _get_product(product_id)
    return jsonify({"variants": [v.to_dict() for v in p.variants]})

@bp.post("/products/<int:product_id>/variants")
@admin_required
def variant_create(product_id):
    p = _get_product(product_id)
    data = request.get_json(silent=True) or {}
    if not (data.get("name") or "").strip():
        raise ValidationError("Nome da variação é obrigatório", field="name")
    v = ProductVariant(product_id=p.id, price=p.price, display_order=len(p.variants))
    _apply_variant(v, data)
    db.session.add(v)
    db.session.commit()
    return jsonify({"success": True, "variant": v.to_dict()}), 201

def _get_variant(product_id: int, variant_id: int) -> ProductVariant:
    v = ProductVariant.query.filter_by(id=variant_id, product_id=product_id).first()
    if not v:
        raise NotFoundError("Variação", variant_id)
    return v

@bp.put("/products/<int:product_id>/variants/<int:variant_id>")
@admin_required
def variant_update(product_id, variant_id):
    v = _get_variant(product_id, variant_id)
    data = request.get_json(silent=True) or {}
    if "name" in data and not (data.get("name") or "").strip():
        raise ValidationError("Nome da variação é obrigatório", field="name")
    _apply_variant(v, data)
    db.session.commit()
    return jsonify({"success": True, "variant": v.to_dict()})

@bp.delete("/products/<int:product_id>/variants/<int:variant_id>")
@admin_required
def variant_delete(product_id, variant_id):
    v = _get_variant(product_id, variant_id)
    db.session.delete(v)
    db.session.commit()
    return jsonify({"success": True})


# ---------- usuários ----------
@bp.get("/users")
@admin_required
def users():
    items = User.query.order_by(User.created_at.desc()).all()
    return jsonify({"users": [u.to_dict() for u in items]})

@bp.delete("/users/<int:user_id>")
@admin_required
def user_delete(user_id):
    u = db.session.get(User, user_id)
    if not u:
        raise NotFoundError("Usuário", user_id)
    if u.id == current_user.id:
        return json_error(400, "Você não pode excluir a própria conta")
    if u.is_admin and admin_count() <= 1:
        return json_error(400, "Não é possível excluir o último administrador")
    db.session.delete(u)
    db.session.commit()
    return jsonify({"success": True})
