import logging
from decimal import InvalidOperation

from flask import Blueprint, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..helpers import money, now_utc, parse_int
from ..models import Category, Product
from ..settings import get_setting_decimal, public_settings
from ..shipping import ShippingError, calculate_shipping, is_within_delivery_area

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__, url_prefix="/api")


def json_error(status: int, message: str):
    return jsonify({"success": False, "error": message}), status

def register_json_errors(blueprint: Blueprint):
    @blueprint.errorhandler(401)
    def _unauthorized(_e):
        return json_error(401, "Autenticação necessária")

    @blueprint.errorhandler(403)
    def _forbidden(_e):
        return json_error(403, "Acesso negado")

    @blueprint.errorhandler(404)
    def _not_found(_e):
        return json_error(404, "Não encontrado")

register_json_errors(bp)


# ---------- catálogo ----------
@bp.get("/products")
def products():
    page = parse_int(request.args.get("page"), 1, minimum=1)
    limit = parse_int(request.args.get("limit"), 20, minimum=1, maximum=100)
    category = (request.args.get("category") or "").strip()
    q = (request.args.get("q") or "").strip()

    query = Product.query.filter_by(is_active=True)
    if category:
        c = Category.query.filter_by(slug=category).first()
        if not c and category.isdigit():
            c = db.session.get(Category, int(category))
        if not c:
            return jsonify({"products": [], "total": 0, "page": page, "limit": limit, "total_pages": 0})
        query = query.filter_by(category_id=c.id)
    if q:
        like = f"%{q}%"
        query = query.filter(db.or_(Product.name.ilike(like), Product.description.ilike(like)))

    total = query.count()
    items = query.order_by(Product.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify({
        "products": [p.to_dict() for p in items],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    })

@bp.get("/categories")
def categories():
    cats = Category.query.filter_by(is_active=True).order_by(Category.position.asc(), Category.name.asc()).all()
    data = []
    for c in cats:
        item = c.to_dict()
        item["products"] = [
            p.to_dict(with_variants=False)
            for p in Product.query.filter_by(category_id=c.id, is_active=True).order_by(Product.name.asc()).all()
        ]
        data.append(item)
    return jsonify({"categories": data})

@bp.get("/store-settings")
def store_settings():
    return jsonify({"success": True, "settings": public_settings()})

@bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check falhou: %s", exc)
        return jsonify({"status": "degraded", "database": "error", "timestamp": now_utc().isoformat()}), 503
    return jsonify({"status": "healthy", "database": "ok", "timestamp": now_utc().isoformat()})


# ---------- frete ----------
@bp.post("/shipping/calculate")
def shipping_calculate():
    data = request.get_json(silent=True) or {}
    cep = str(data.get("cep") or "").strip()
    if not cep:
        return json_error(400, "CEP é obrigatório")
    try:
        cart_total = money(data.get("cart_total", 0))
    except (InvalidOperation, ValueError, TypeError):
        return json_error(400, "Valor do carrinho inválido")
    if cart_total < 0:
        return json_error(400, "Valor do carrinho inválido")

    try:
        quote = calculate_shipping(cep, cart_total)
    except ShippingError as exc:
        return json_error(400, str(exc))
    except (SQLAlchemyError, ValueError, KeyError) as exc:
        logger.exception("Erro ao calcular frete")
        return jsonify({"success": False, "error": "Erro ao calcular frete", "details": str(exc)}), 500

    if not is_within_delivery_area(quote.distance_km):
        max_km = float(get_setting_decimal("shipping_max_distance_km"))
        return jsonify({
            "success": False,
            "error": f"Desculpe, não entregamos nesta região. Distância máxima: {max_km:g}km",
            "distance_km": quote.distance_km,
            "max_distance_km": max_km,
        }), 400

    return jsonify({"success": True, **quote.to_dict()})
