import logging
import re

from flask import Blueprint, abort, flash, jsonify, make_response, redirect, render_template, request, url_for
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError

from ..auth import clear_auth_cookies, set_auth_cookie
from ..extensions import db
from ..forms import LoginForm, RegisterForm
from ..helpers import format_cep, only_digits
from ..models import Address, Order, User
from ..orders import find_customer_orders, order_to_dict, user_orders, user_owns_order

logger = logging.getLogger(__name__)

bp = Blueprint("account", __name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ADDRESS_FIELDS = ("label", "street", "number", "complement", "neighborhood", "city", "state", "zip_code")


def _safe_next(target: str | None, fallback: str) -> str:
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return fallback

def register_user(name: str, email: str, password: str, whatsapp: str = "", address: dict | None = None) -> User:
    """Create a customer; raises ValueError with a user-facing message."""
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name or not email or not password:
        raise ValueError("Nome, email e senha são obrigatórios")
    if not EMAIL_RE.match(email):
        raise ValueError("Email inválido")
    if len(password) < 6:
        raise ValueError("Senha deve ter pelo menos 6 caracteres")

    u = User(name=name, email=email, whatsapp=(whatsapp or "").strip(), is_admin=False)
    u.set_password(password)
    db.session.add(u)
    db.session.flush()

    if address and address.get("street") and address.get("city"):
        db.session.add(_address_from(u.id, address, is_default=True))

    db.session.commit()
    logger.info("Novo cliente cadastrado: %s", u.id)
    return u

def _address_from(user_id: int, data: dict, is_default=False) -> Address:
    return Address(
        user_id=user_id,
        label=(data.get("label") or "Casa").strip(),
        street=(data.get("street") or "").strip(),
        number=(data.get("number") or "").strip(),
        complement=(data.get("complement") or "").strip(),
        neighborhood=(data.get("neighborhood") or "").strip(),
        city=(data.get("city") or "").strip(),
        state=(data.get("state") or "").strip().upper()[:2],
        zip_code=format_cep(data.get("zip_code") or ""),
        is_default=bool(is_default),
    )

def _unset_defaults(user_id: int, keep_id=None):
    q = Address.query.filter_by(user_id=user_id, is_default=True)
    if keep_id is not None:
        q = q.filter(Address.id != keep_id)
    for a in q.all():
        a.is_default = False


# ---------- HTML auth ----------
@bp.route("/login", methods=["GET", "POST"])
def login():
    form = LoginForm()
    if form.validate_on_submit():
        user = User.query.filter_by(email=form.email.data.strip().lower()).first()
        if not user or not user.check_password(form.password.data):
            flash("Email ou senha inválidos.", "danger")
            return redirect(url_for("account.login"))
        target = _safe_next(request.args.get("next"), url_for("account.conta"))
        return set_auth_cookie(redirect(target), user)
    return render_template("login.html", form=form, admin=False)

@bp.route("/register", methods=["GET", "POST"])
def register():
    form = RegisterForm()
    if form.validate_on_submit():
        if User.query.filter_by(email=form.email.data.strip().lower()).first():
            flash("Email já está em uso.", "danger")
            return render_template("register.html", form=form)
        address = {
            "street": form.street.data, "number": form.number.data, "complement": form.complement.data,
            "neighborhood": form.neighborhood.data, "city": form.city.data, "state": form.state.data,
            "zip_code": form.zip_code.data,
        }
        try:
            user = register_user(form.name.data, form.email.data, form.password.data, form.whatsapp.data, address)
        except ValueError as exc:
            flash(str(exc), "danger")
            return render_template("register.html", form=form)
        flash("Conta criada! Bem-vindo(a).", "success")
        return set_auth_cookie(redirect(url_for("account.conta")), user)
    return render_template("register.html", form=form)

@bp.route("/logout")
def logout():
    flash("Você saiu.", "info")
    return clear_auth_cookies(redirect(url_for("store.index")))


# ---------- JSON auth ----------
@bp.post("/api/auth/login")
def api_login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return jsonify({"success": False, "error": "Email e senha são obrigatórios"}), 400

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        return jsonify({"success": False, "error": "Credenciais inválidas"}), 401
    return set_auth_cookie(jsonify({"success": True, "user": user.to_dict()}), user)

@bp.post("/api/auth/register")
def api_register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    if email and User.query.filter_by(email=email).first():
        return jsonify({"success": False, "error": "Email já está em uso"}), 409

    addresses = data.get("addresses") or []
    try:
        user = register_user(
            data.get("name"), email, data.get("password") or "", data.get("whatsapp") or "",
            addresses[0] if addresses and isinstance(addresses[0], dict) else None,
        )
    except ValueError as exc:
        db.session.rollback()
        return jsonify({"success": False, "error": str(exc)}), 400
    except IntegrityError:
        db.session.rollback()
        return jsonify({"success": False, "error": "Email já está em uso"}), 409

    resp = make_response(jsonify({"success": True, "user": user.to_dict()}), 201)
    return set_auth_cookie(resp, user)

@bp.post("/api/auth/logout")
def api_logout():
    return clear_auth_cookies(jsonify({"success": True}))


# ---------- minha conta ----------
@bp.route("/conta")
@login_required
def conta():
    return render_template("conta.html", orders=user_orders(current_user), addresses=current_user.addresses)

@bp.route("/conta/pedidos/<int:order_id>")
@login_required
def conta_pedido(order_id):
    order = db.session.get(Order, order_id)
    if not order or not user_owns_order(current_user, order):
        abort(404)
    return render_template("pedido.html", order=order, public_view=False)

@bp.get("/api/user/profile")
@login_required
def api_profile():
    data = current_user.to_dict()
    data["addresses"] = [a.to_dict() for a in current_user.addresses]
    return jsonify({"success": True, "user": data})

@bp.put("/api/user/profile")
@login_required
def api_profile_update():
    data = request.get_json(silent=True) or {}
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            return jsonify({"success": False, "error": "Nome é obrigatório"}), 400
        current_user.name = name
    if "whatsapp" in data:
        current_user.whatsapp = (data.get("whatsapp") or "").strip()
    if data.get("new_password"):
        if not current_user.check_password(data.get("current_password") or ""):
            return jsonify({"success": False, "error": "Senha atual incorreta"}), 400
        if len(data["new_password"]) < 6:
            return jsonify({"success": False, "error": "Senha deve ter pelo menos 6 caracteres"}), 400
        current_user.set_password(data["new_password"])
    db.session.commit()
    return jsonify({"success": True, "user": current_user.to_dict()})


# ---------- endereços ----------
@bp.get("/api/user/addresses")
@login_required
def api_addresses():
    return jsonify({"addresses": [a.to_dict() for a in current_user.addresses]})

@bp.post("/api/user/addresses")
@login_required
def api_address_create():
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("street", "city", "state", "zip_code") if not (data.get(f) or "").strip()]
    if missing:
        return jsonify({"error": "Campos obrigatórios: " + ", ".join(missing)}), 400

    is_default = bool(data.get("is_default")) or not current_user.addresses
    if is_default:
        _unset_defaults(current_user.id)
    a = _address_from(current_user.id, data, is_default=is_default)
    db.session.add(a)
    db.session.commit()
    return jsonify({"address": a.to_dict()}), 201

@bp.put("/api/user/addresses")
@login_required
def api_address_update():
    data = request.get_json(silent=True) or {}
    a = Address.query.filter_by(id=data.get("id"), user_id=current_user.id).first()
    if not a:
        return jsonify({"error": "Endereço não encontrado"}), 404

    for f in ADDRESS_FIELDS:
        if f in data:
            value = (data.get(f) or "").strip()
            if f == "state":
                value = value.upper()[:2]
            elif f == "zip_code":
                value = format_cep(value)
            setattr(a, f, value)
    if data.get("is_default"):
        _unset_defaults(current_user.id, keep_id=a.id)
        a.is_default = True
    db.session.commit()
    return jsonify({"address": a.to_dict()})

@bp.delete("/api/user/addresses")
@login_required
def api_address_delete():
    address_id = request.args.get("id") or (request.get_json(silent=True) or {}).get("id")
    a = Address.query.filter_by(id=address_id, user_id=current_user.id).first()
    if not a:
        return jsonify({"error": "Endereço não encontrado"}), 404
    db.session.delete(a)
    db.session.commit()
    return jsonify({"success": True})


# ---------- pedidos ----------
@bp.post("/api/user/orders")
def api_user_orders():
    data = request.get_json(silent=True) or {}
    document = only_digits(data.get("document"))
    email = (data.get("email") or "").strip()
    if not document and not email:
        return jsonify({"error": "CPF/CNPJ ou email é obrigatório"}), 400
    orders = find_customer_orders(document=document, email=email)
    return jsonify({"success": True, "orders": [order_to_dict(o, items=False) for o in orders]})

@bp.get("/api/user/orders/<int:order_id>")
@login_required
def api_user_order(order_id):
    order = db.session.get(Order, order_id)
    if not order or not user_owns_order(current_user, order):
        return jsonify({"error": "Pedido não encontrado"}), 404
    return jsonify({"success": True, "order": order_to_dict(order)})
