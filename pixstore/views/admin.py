import logging
import os

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user

from ..auth import admin_required, clear_auth_cookies, set_auth_cookie
from ..errors import DomainError
from ..extensions import db
from ..forms import BannerForm, CategoryForm, LoginForm, ProductForm, SettingsForm, VariantForm
from ..helpers import allowed_file, money, parse_int, secure_upload_name, unique_slug
from ..models import (
    ORDER_STATUS_LABELS, ORDER_STATUSES, Banner, Category, Order, Product, ProductImage, ProductVariant, User,
)
from ..notifications import notify_order
from ..orders import dashboard_stats, list_orders, update_order_status
from ..settings import DEFAULT_SETTINGS, get_setting, save_settings

logger = logging.getLogger(__name__)

bp = Blueprint("admin", __name__, url_prefix="/admin")

NOTIFY_ON = {"shipped": "order.shipped", "delivered": "order.delivered", "cancelled": "order.cancelled"}
SETTINGS_DECIMALS = ("free_shipping_threshold", "shipping_price_per_km", "shipping_min_cost")


def _save_upload(file, prefix: str) -> str | None:
    """Store an uploaded image and return its filename; None when invalid."""
    if not allowed_file(file.filename):
        return None
    filename = secure_upload_name(prefix, file.filename)
    file.save(os.path.join(current_app.config["UPLOAD_FOLDER"], filename))
    return filename

def admin_count() -> int:
    return User.query.filter_by(is_admin=True).count()


# ---------- login ----------
@bp.route("/login", methods=["GET", "POST"])
def login():
    form = LoginForm()
    target = request.args.get("from") or ""
    if not target.startswith("/admin"):
        target = url_for("admin.dashboard")

    if form.validate_on_submit():
        user = User.query.filter_by(email=form.email.data.strip().lower()).first()
        if not user or not user.check_password(form.password.data):
            flash("Email ou senha inválidos.", "danger")
            return redirect(url_for("admin.login", **{"from": target}))
        if not user.is_admin:
            logger.warning("Login admin negado para usuário %s", user.id)
            flash("Acesso restrito ao administrador.", "danger")
            return redirect(url_for("admin.login"))
        return set_auth_cookie(redirect(target), user)
    return render_template("login.html", form=form, admin=True)

@bp.route("/logout")
def logout():
    flash("Você saiu.", "info")
    return clear_auth_cookies(redirect(url_for("admin.login")))


# ---------- dashboard ----------
@bp.route("")
@admin_required
def dashboard():
    stats = {
        "produtos": Product.query.count(),
        "categorias": Category.query.count(),
        "pedidos": Order.query.count(),
        "pendentes": Order.query.filter_by(status="pending").count(),
        "usuarios": User.query.count(),
    }
    return render_template("admin_dashboard.html", stats=stats, dash=dashboard_stats())


# ---- settings ----
@bp.route("/settings", methods=["GET", "POST"])
@admin_required
def settings():
    form = SettingsForm()

    if request.method == "GET":
        for name, field in form._fields.items():
            if name not in DEFAULT_SETTINGS:
                continue
            value = get_setting(name)
            if name in SETTINGS_DECIMALS:
                field.data = money(value)
            elif name == "shipping_max_distance_km":
                field.data = parse_int(value, 50)
            else:
                field.data = value

    if form.validate_on_submit():
        pairs = {}
        for name, field in form._fields.items():
            if name not in DEFAULT_SETTINGS:
                continue
            if name in SETTINGS_DECIMALS:
                pairs[name] = str(money(field.data))
            else:
                pairs[name] = str(field.data if field.data is not None else "").strip()
        pairs["primary_color"] = pairs.get("primary_color") or DEFAULT_SETTINGS["primary_color"]
        pairs["accent_color"] = pairs.get("accent_color") or DEFAULT_SETTINGS["accent_color"]
        save_settings(pairs)
        flash("Configurações salvas.", "success")
        return redirect(url_for("admin.settings"))

    return render_template("admin_settings.html", form=form)


# ---- categories ----
@bp.route("/categorias")
@admin_required
def categorias():
    categories = Category.query.order_by(Category.position.asc(), Category.name.asc()).all()
    return render_template("admin_categorias.html", categories=categories)

@bp.route("/categorias/nova", methods=["GET", "POST"])
@admin_required
def categoria_nova():
    form = CategoryForm()
    if request.method == "GET":
        form.is_active.data = True

    if form.validate_on_submit():
        name = form.name.data.strip()
        c = Category(
            name=name,
            slug=unique_slug(Category, name),
            icon=(form.icon.data or "").strip(),
            position=int(form.position.data or 0),
            is_active=bool(form.is_active.data),
        )
        db.session.add(c)
        db.session.commit()
        flash("Categoria criada.", "success")
        return redirect(url_for("admin.categorias"))

    return render_template("admin_categoria_form.html", form=form, mode="novo")

@bp.route("/categorias/<int:cat_id>/editar", methods=["GET", "POST"])
@admin_required
def categoria_editar(cat_id):
    c = db.session.get(Category, cat_id)
    if not c:
        abort(404)
    form = CategoryForm(obj=c)

    if form.validate_on_submit():
        c.name = form.name.data.strip()
        c.icon = (form.icon.data or "").strip()
        c.position = int(form.position.data or 0)
        c.is_active = bool(form.is_active.data)
        db.session.commit()
        flash("Categoria atualizada.", "success")
        return redirect(url_for("admin.categorias"))

    return render_template("admin_categoria_form.html", form=form, mode="editar", c=c)

@bp.post("/categorias/<int:cat_id>/delete")
@admin_required
def categoria_delete(cat_id):
    c = db.session.get(Category, cat_id)
    if not c:
        abort(404)
    Product.query.filter_by(category_id=c.id).update({"category_id": None})
    db.session.delete(c)
    db.session.commit()
    flash("Categoria removida.", "info")
    return redirect(url_for("admin.categorias"))


# ---- products ----
@bp.route("/produtos")
@admin_required
def produtos():
    products = Product.query.order_by(Product.created_at.desc()).all()
    return render_template("admin_produtos.html", products=products)

def _product_form_choices(form: ProductForm):
    cats = Category.query.filter_by(is_active=True).order_by(Category.name.asc()).all()
    form.category_id.choices = [(0, "Sem categoria")] + [(c.id, c.name) for c in cats]

def _attach_image(p: Product) -> bool:
    file = request.files.get("image")
    if not file or not file.filename:
        return True
    filename = _save_upload(file, p.slug)
    if not filename:
        return False
    p.image_filename = p.image_filename or filename
    db.session.add(ProductImage(
        product_id=p.id,
        image_url=url_for("store.uploads", filename=filename),
        display_order=len(p.images),
    ))
    return True

@bp.route("/produtos/novo", methods=["GET", "POST"])
@admin_required
def produto_novo():
    form = ProductForm()
    _product_form_choices(form)
    if request.method == "GET":
        form.is_active.data = True
        form.category_id.data = 0

    if form.validate_on_submit():
        name = form.name.data.strip()
        p = Product(
            category_id=int(form.category_id.data or 0) or None,
            name=name,
            slug=unique_slug(Product, name),
            description=form.description.data or "",
            price=money(form.price.data),
            original_price=money(form.original_price.data) if form.original_price.data is not None else None,
            stock=int(form.stock.data or 0),
            sizes=(form.sizes.data or "").strip(),
            is_active=bool(form.is_active.data),
        )
        db.session.add(p)
        db.session.flush()
        if not _attach_image(p):
            db.session.rollback()
            flash("Imagem inválida. Use png/jpg/webp.", "danger")
            return redirect(url_for("admin.produto_novo"))
        db.session.commit()
        flash("Produto criado.", "success")
        return redirect(url_for("admin.produto_editar", pid=p.id))

    return render_template("admin_produto_form.html", form=form, mode="novo")

@bp.route("/produtos/<int:pid>/editar", methods=["GET", "POST"])
@admin_required
def produto_editar(pid):
    p = db.session.get(Product, pid)
    if not p:
        abort(404)
    form = ProductForm(obj=p)
    _product_form_choices(form)
    if request.method == "GET":
        form.category_id.data = int(p.category_id or 0)

    if form.validate_on_submit():
        p.name = form.name.data.strip()
        p.description = form.description.data or ""
        p.price = money(form.price.data)
        p.original_price = money(form.original_price.data) if form.original_price.data is not None else None
        p.stock = int(form.stock.data or 0)
        p.sizes = (form.sizes.data or "").strip()
        p.is_active = bool(form.is_active.data)
        p.category_id = int(form.category_id.data or 0) or None

        if not _attach_image(p):
            flash("Imagem inválida. Use png/jpg/webp.", "danger")
            return redirect(url_for("admin.produto_editar", pid=pid))

        db.session.commit()
        flash("Produto atualizado.", "success")
        return redirect(url_for("admin.produtos"))

    return render_template("admin_produto_form.html", form=form, mode="editar", p=p, variant_form=VariantForm())

@bp.post("/produtos/<int:pid>/delete")
@admin_required
def produto_delete(pid):
    p = db.session.get(Product, pid)
    if not p:
        abort(404)
    db.session.delete(p)
    db.session.commit()
    flash("Produto removido.", "info")
    return redirect(url_for("admin.produtos"))

@bp.post("/produtos/<int:pid>/imagens/<int:image_id>/delete")
@admin_required
def produto_imagem_delete(pid, image_id):
    img = ProductImage.query.filter_by(id=image_id, product_id=pid).first()
    if not img:
        abort(404)
    db.session.delete(img)
    db.session.commit()
    flash("Imagem removida.", "info")
    return redirect(url_for("admin.produto_editar", pid=pid))


# ---- variants ----
@bp.post("/produtos/<int:pid>/variantes")
@admin_required
def variante_nova(pid):
    p = db.session.get(Product, pid)
    if not p:
        abort(404)
    form = VariantForm()
    if form.validate_on_submit():
        db.session.add(ProductVariant(
            product_id=p.id,
            name=form.name.data.strip(),
            sku=(form.sku.data or "").strip(),
            price=money(form.price.data),
            cost_price=money(form.cost_price.data),
            stock=int(form.stock.data or 0),
            flavor=(form.flavor.data or "").strip(),
            color_hex=(form.color_hex.data or "").strip(),
            visible=bool(form.visible.data),
            display_order=len(p.variants),
        ))
        db.session.commit()
        flash("Variação criada.", "success")
    else:
        flash("Dados da variação inválidos.", "danger")
    return redirect(url_for("admin.produto_editar", pid=pid))

@bp.route("/produtos/<int:pid>/variantes/<int:vid>/editar", methods=["GET", "POST"])
@admin_required
def variante_editar(pid, vid):
    v = ProductVariant.query.filter_by(id=vid, product_id=pid).first()
    if not v:
        abort(404)
    form = VariantForm(obj=v)
    if form.validate_on_submit():
        v.name = form.name.data.strip()
        v.sku = (form.sku.data or "").strip()
        v.price = money(form.price.data)
        v.cost_price = money(form.cost_price.data)
        v.stock = int(form.stock.data or 0)
        v.flavor = (form.flavor.data or "").strip()
        v.color_hex = (form.color_hex.data or "").strip()
        v.visible = bool(form.visible.data)
        db.session.commit()
        flash("Variação atualizada.", "success")
        return redirect(url_for("admin.produto_editar", pid=pid))
    return render_template("admin_variante_form.html", form=form, p=v.product, v=v)

@bp.post("/produtos/<int:pid>/variantes/<int:vid>/delete")
@admin_required
def variante_delete(pid, vid):
    v = ProductVariant.query.filter_by(id=vid, product_id=pid).first()
    if not v:
        abort(404)
    db.session.delete(v)
    db.session.commit()
    flash("Variação removida.", "info")
    return redirect(url_for("admin.produto_editar", pid=pid))


# ---- banners ----
@bp.route("/banners")
@admin_required
def banners():
    items = Banner.query.order_by(Banner.created_at.desc()).all()
    return render_template("admin_banners.html", banners=items)

@bp.route("/banners/novo", methods=["GET", "POST"])
@admin_required
def banner_novo():
    form = BannerForm()
    if request.method == "GET":
        form.is_active.data = True
        form.cta_text.data = "Comprar agora"
        form.cta_link.data = "/produtos"

    if form.validate_on_submit():
        image_filename = ""
        file = request.files.get("image")
        if file and file.filename:
            image_filename = _save_upload(file, "banner")
            if not image_filename:
                flash("Imagem inválida. Use png/jpg/webp.", "danger")
                return redirect(url_for("admin.banner_novo"))

        b = Banner(
            title=(form.title.data or "").strip(),
            subtitle=(form.subtitle.data or "").strip(),
            cta_text=(form.cta_text.data or "").strip() or "Comprar agora",
            cta_link=(form.cta_link.data or "").strip() or "/produtos",
            image_filename=image_filename,
            is_active=bool(form.is_active.data),
        )
        db.session.add(b)
        db.session.commit()
        flash("Banner criado.", "success")
        return redirect(url_for("admin.banners"))

    return render_template("admin_banner_form.html", form=form, mode="novo")

@bp.route("/banners/<int:bid>/editar", methods=["GET", "POST"])
@admin_required
def banner_editar(bid):
    b = db.session.get(Banner, bid)
    if not b:
        abort(404)
    form = BannerForm(obj=b)

    if form.validate_on_submit():
        b.title = (form.title.data or "").strip()
        b.subtitle = (form.subtitle.data or "").strip()
        b.cta_text = (form.cta_text.data or "").strip() or "Comprar agora"
        b.cta_link = (form.cta_link.data or "").strip() or "/produtos"
        b.is_active = bool(form.is_active.data)

        file = request.files.get("image")
        if file and file.filename:
            image_filename = _save_upload(file, "banner")
            if not image_filename:
                flash("Imagem inválida. Use png/jpg/webp.", "danger")
                return redirect(url_for("admin.banner_editar", bid=bid))
            b.image_filename = image_filename

        db.session.commit()
        flash("Banner atualizado.", "success")
        return redirect(url_for("admin.banners"))

    return render_template("admin_banner_form.html", form=form, mode="editar", b=b)

@bp.post("/banners/<int:bid>/delete")
@admin_required
def banner_delete(bid):
    b = db.session.get(Banner, bid)
    if not b:
        abort(404)
    db.session.delete(b)
    db.session.commit()
    flash("Banner removido.", "info")
    return redirect(url_for("admin.banners"))


# ---- orders ----
@bp.route("/pedidos")
@admin_required
def pedidos():
    status = (request.args.get("status") or "").strip()
    if status not in ORDER_STATUSES:
        status = ""
    page = parse_int(request.args.get("page"), 1, minimum=1)
    limit = 30
    orders, total = list_orders(status=status or None, page=page, limit=limit)
    pages = max(1, (total + limit - 1) // limit)
    return render_template("admin_pedidos.html", orders=orders, status=status, page=page, pages=pages,
                           total=total, statuses=ORDER_STATUS_LABELS)

@bp.route("/pedidos/<int:oid>", methods=["GET", "POST"])
@admin_required
def pedido(oid):
    order = db.session.get(Order, oid)
    if not order:
        abort(404)

    if request.method == "POST":
        new_status = (request.form.get("status") or "").strip()
        try:
            update_order_status(order.id, new_status)
        except DomainError as exc:
            flash(exc.message, "danger")
            return redirect(url_for("admin.pedido", oid=oid))
        if new_status in NOTIFY_ON:
            notify_order(NOTIFY_ON[new_status], order)
        flash("Status atualizado.", "success")
        return redirect(url_for("admin.pedido", oid=oid))

    return render_template("pedido.html", order=order, public_view=False, admin_view=True,
                           statuses=ORDER_STATUS_LABELS)


# ---- users ----
@bp.route("/usuarios")
@admin_required
def usuarios():
    users = User.query.order_by(User.created_at.desc()).all()
    return render_template("admin_usuarios.html", users=users)

@bp.post("/usuarios/<int:uid>/admin")
@admin_required
def usuario_toggle_admin(uid):
    u = db.session.get(User, uid)
    if not u:
        abort(404)
    if u.is_admin and (u.id == current_user.id or admin_count() <= 1):
        flash("Não é possível remover o acesso deste administrador.", "danger")
        return redirect(url_for("admin.usuarios"))
    u.is_admin = not u.is_admin
    db.session.commit()
    logger.info("Admin %s alterou is_admin do usuário %s para %s", current_user.id, u.id, u.is_admin)
    flash("Permissão atualizada.", "success")
    return redirect(url_for("admin.usuarios"))

@bp.post("/usuarios/<int:uid>/delete")
@admin_required
def usuario_delete(uid):
    u = db.session.get(User, uid)
    if not u:
        abort(404)
    if u.id == current_user.id:
        flash("Você não pode excluir a própria conta.", "danger")
        return redirect(url_for("admin.usuarios"))
    if u.is_admin and admin_count() <= 1:
        flash("Não é possível excluir o último administrador.", "danger")
        return redirect(url_for("admin.usuarios"))
    db.session.delete(u)
    db.session.commit()
    flash("Usuário removido.", "info")
    return redirect(url_for("admin.usuarios"))
