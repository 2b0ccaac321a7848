from flask import Blueprint, Response, current_app, render_template, request, send_from_directory, url_for

from ..extensions import db
from ..models import Banner, Category, Product
from ..settings import get_setting

bp = Blueprint("store", __name__)

SORTS = ("new", "price_asc", "price_desc", "name")


def _active_categories():
    return Category.query.filter_by(is_active=True).order_by(Category.position.asc(), Category.name.asc()).all()

def _product_query(cat: str = "", q: str = "", sort: str = "new"):
    query = Product.query.filter_by(is_active=True)

    if cat:
        c = Category.query.filter_by(slug=cat).first()
        if c:
            query = query.filter_by(category_id=c.id)

    if q:
        like = f"%{q}%"
        query = query.filter(db.or_(Product.name.ilike(like), Product.description.ilike(like)))

    if sort == "price_asc":
        query = query.order_by(Product.price.asc())
    elif sort == "price_desc":
        query = query.order_by(Product.price.desc())
    elif sort == "name":
        query = query.order_by(Product.name.asc())
    else:
        query = query.order_by(Product.created_at.desc())
    return query


# ---------- uploads ----------
@bp.route("/uploads/<path:filename>")
def uploads(filename):
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)


# ---------- public ----------
@bp.route("/")
def index():
    banner = None
    if get_setting("hero_type") == "none":
        banner = Banner.query.filter_by(is_active=True).order_by(Banner.created_at.desc()).first()
    categories = _active_categories()
    products = Product.query.filter_by(is_active=True).order_by(Product.created_at.desc()).limit(12).all()
    return render_template("index.html", banner=banner, categories=categories, products=products)

@bp.route("/produtos")
def produtos():
    cat = (request.args.get("cat") or "").strip()
    q = (request.args.get("q") or "").strip()
    sort = (request.args.get("sort") or "new").strip()
    if sort not in SORTS:
        sort = "new"

    products = _product_query(cat, q, sort).all()
    return render_template("produtos.html", products=products, categories=_active_categories(), cat=cat, q=q, sort=sort)

@bp.route("/busca")
def busca():
    q = (request.args.get("q") or "").strip()
    products = _product_query(q=q).all() if q else []
    return render_template("produtos.html", products=products, categories=_active_categories(), cat="", q=q,
                           sort="new", search=True)

@bp.route("/categoria/<slug>")
def categoria(slug):
    c = Category.query.filter_by(slug=slug, is_active=True).first_or_404()
    products = _product_query(cat=slug).all()
    return render_template("produtos.html", products=products, categories=_active_categories(), cat=slug, q="",
                           sort="new", category=c)

@bp.route("/p/<slug>")
def produto(slug):
    p = Product.query.filter_by(slug=slug, is_active=True).first_or_404()
    return render_template("produto.html", p=p, cat=p.category, variants=p.visible_variants)

@bp.route("/carrinho")
def carrinho():
    return render_template("carrinho.html")


# ---------- SEO ----------
@bp.route("/robots.txt")
def robots():
    site = current_app.config["SITE_URL"]
    body = "\n".join([
        "User-agent: *",
        "Allow: /",
        "Disallow: /admin",
        "Disallow: /api/",
        "Disallow: /conta",
        "Disallow: /checkout",
        f"Sitemap: {site}/sitemap.xml",
        "",
    ])
    return Response(body, mimetype="text/plain")

@bp.route("/sitemap.xml")
def sitemap():
    site = current_app.config["SITE_URL"]
    urls = [f"{site}/", f"{site}{url_for('store.produtos')}"]
    urls += [f"{site}{url_for('store.categoria', slug=c.slug)}" for c in _active_categories()]
    urls += [
        f"{site}{url_for('store.produto', slug=p.slug)}"
        for p in Product.query.filter_by(is_active=True).order_by(Product.id.asc()).all()
    ]
    xml = render_template("sitemap.xml", urls=urls)
    return Response(xml, mimetype="application/xml")
