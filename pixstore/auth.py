"""Cookie session tokens.

Administrators carry an ``admin_token`` cookie and customers a ``user_token``
cookie.  Both hold the same signed payload; the cookie name and max age are what
tell the two sessions apart.  Flask-Login resolves ``current_user`` from them
through ``request_loader``.
"""

import logging
from functools import wraps

from flask import current_app, jsonify, redirect, request, url_for
from flask_login import current_user
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .extensions import db, login_manager
from .models import User

logger = logging.getLogger(__name__)

ADMIN_COOKIE = "admin_token"
USER_COOKIE = "user_token"
TOKEN_SALT = "pixstore-auth"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)

def admin_max_age() -> int:
    return int(current_app.config.get("ADMIN_TOKEN_HOURS", 24)) * 60 * 60

def user_max_age() -> int:
    return int(current_app.config.get("USER_TOKEN_DAYS", 7)) * 24 * 60 * 60

def issue_token(user: User) -> str:
    payload = {
        "uid": user.id,
        "email": user.email,
        "name": user.name or "",
        "adm": bool(user.is_admin),
    }
    return _serializer().dumps(payload)

def read_token(token: str, max_age: int):
    """Return the token payload, or None when it is missing, forged or expired."""
    if not token:
        return None
    try:
        return _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        logger.info("Token de sessão expirado")
        return None
    except BadSignature:
        logger.warning("Token de sessão com assinatura inválida")
        return None

def set_auth_cookie(response, user: User):
    if user.is_admin:
        name, max_age = ADMIN_COOKIE, admin_max_age()
    else:
        name, max_age = USER_COOKIE, user_max_age()
    response.set_cookie(
        name,
        issue_token(user),
        max_age=max_age,
        httponly=True,
        secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")),
        samesite="Lax",
        path="/",
    )
    return response

def clear_auth_cookies(response):
    response.delete_cookie(ADMIN_COOKIE, path="/")
    response.delete_cookie(USER_COOKIE, path="/")
    return response


@login_manager.request_loader
def load_user_from_cookies(req):
    for cookie, max_age, must_be_admin in (
        (ADMIN_COOKIE, admin_max_age(), True),
        (USER_COOKIE, user_max_age(), False),
    ):
        payload = read_token(req.cookies.get(cookie), max_age)
        if not payload:
            continue
        user = db.session.get(User, int(payload.get("uid", 0)))
        if not user or user.email != payload.get("email"):
            continue
        if must_be_admin and not user.is_admin:
            continue
        return user
    return None


@login_manager.unauthorized_handler
def unauthorized():
    if request.path.startswith("/api/"):
        return jsonify({"success": False, "error": "Autenticação necessária"}), 401
    if request.path.startswith("/admin"):
        return redirect(url_for("admin.login", **{"from": request.path}))
    return redirect(url_for("account.login", next=request.path))


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        if not getattr(current_user, "is_admin", False):
            if request.path.startswith("/api/"):
                return jsonify({"success": False, "error": "Acesso restrito ao administrador"}), 403
            return redirect(url_for("admin.login", **{"from": request.path}))
        return view(*args, **kwargs)
    return wrapper
