import json
import logging

import click
from flask import current_app
from slugify import slugify

from .extensions import db
from .helpers import money, parse_int, unique_slug
from .models import Banner, Category, Product, ProductImage, ProductVariant, User
from .settings import ensure_settings

logger = logging.getLogger(__name__)


# -------------------------
# Seed / defaults
# -------------------------
DEMO_CATEGORIES = [
    ("Camisetas", "shirt"),
    ("Moletons", "hoodie"),
    ("Acessórios", "bag"),
    ("Bebidas", "cup"),
]

DEMO_PRODUCTS = [
    ("Camiseta Básica Algodão", "Algodão penteado, caimento leve para o dia a dia.", "59.90", 30, "P,M,G,GG", "camisetas"),
    ("Moletom Canguru", "Moletom flanelado com capuz e bolso frontal.", "189.90", 12, "M,G,GG", "moletons"),
    ("Boné Aba Curva", "Ajuste traseiro e bordado frontal.", "79.90", 20, "", "acessorios"),
]

def seed_if_needed(demo=True):
    """Create the first admin, default settings and, optionally, a demo catalog."""
    if User.query.count() == 0:
        u = User(name="Administrador", email="admin@local", is_admin=True)
        u.set_password("admin123")
        db.session.add(u)
        logger.warning("Admin padrão criado (admin@local). Troque a senha.")

    ensure_settings()

    if not demo:
        db.session.commit()
        return

    if Category.query.count() == 0:
        for i, (name, icon) in enumerate(DEMO_CATEGORIES):
            db.session.add(Category(name=name, slug=slugify(name), icon=icon, position=i, is_active=True))
        db.session.flush()

    if Product.query.count() == 0:
        for name, desc, price, stock, sizes, cat_slug in DEMO_PRODUCTS:
            c = Category.query.filter_by(slug=cat_slug).first()
            db.session.add(Product(
                category_id=c.id if c else None,
                name=name,
                slug=slugify(name),
                description=desc,
                price=money(price),
                stock=int(stock),
                sizes=sizes,
                is_active=True,
                image_filename="",
            ))
        db.session.flush()

        # uma bebida com variações de sabor
        c = Category.query.filter_by(slug="bebidas").first()
        p = Product(
            category_id=c.id if c else None,
            name="Energético Lata 473ml",
            slug=slugify("Energético Lata 473ml"),
            description="Escolha o sabor.",
            price=money("12.90"),
            stock=0,
            is_active=True,
        )
        db.session.add(p)
        db.session.flush()
        for i, (flavor, color) in enumerate((("Tradicional", "#1e3a8a"), ("Melancia", "#dc2626"), ("Tropical", "#f59e0b"))):
            db.session.add(ProductVariant(
                product_id=p.id, name=flavor, flavor=flavor, color_hex=color,
                sku=f"ENERG-{i + 1:02d}", price=money("12.90"), cost_price=money("6.50"),
                stock=40, display_order=i,
            ))

    if Banner.query.count() == 0:
        db.session.add(Banner(
            title="Pague com PIX",
            subtitle="Confirmação na hora e entrega rápida.",
            cta_text="Comprar agora",
            cta_link="/produtos",
            image_filename="",
            is_active=True,
        ))

    db.session.commit()


def import_products(items: list) -> int:
    """Bulk insert products from a list of dicts; returns how many were created."""
    created = 0
    for data in items:
        name = (data.get("name") or "").strip()
        if not name:
            logger.warning("Produto sem nome ignorado na importação")
            continue

        category_id = None
        cat_name = (data.get("category") or "").strip()
        if cat_name:
            c = Category.query.filter_by(slug=slugify(cat_name)).first()
            if not c:
                c = Category(name=cat_name, slug=unique_slug(Category, cat_name), is_active=True)
                db.session.add(c)
                db.session.flush()
            category_id = c.id

        p = Product(
            category_id=category_id,
            name=name,
            slug=unique_slug(Product, name),
            description=data.get("description") or "",
            price=money(data.get("price") or 0),
            original_price=money(data["original_price"]) if data.get("original_price") else None,
            stock=max(0, parse_int(data.get("stock"), 0)),
            sizes=(data.get("sizes") or "").strip(),
            is_active=bool(data.get("visible", True)),
        )
        db.session.add(p)
        db.session.flush()

        for i, url in enumerate(data.get("images") or []):
            db.session.add(ProductImage(product_id=p.id, image_url=url, display_order=i))

        for i, v in enumerate(data.get("variants") or []):
            db.session.add(ProductVariant(
                product_id=p.id,
                name=(v.get("name") or f"Opção {i + 1}").strip(),
                sku=(v.get("sku") or "").strip(),
                price=money(v.get("price") if v.get("price") is not None else p.price),
                cost_price=money(v.get("cost_price") or 0),
                stock=max(0, parse_int(v.get("stock"), 0)),
                flavor=(v.get("flavor") or "").strip(),
                color_hex=(v.get("color_hex") or "").strip(),
                size=(v.get("size") or "").strip(),
                display_order=i,
            ))
        created += 1

    db.session.commit()
    return created


# -------------------------
# Commands
# -------------------------
def register_cli(app):

    @app.cli.command("seed")
    @click.option("--no-demo", is_flag=True, help="Só admin e configurações, sem catálogo de exemplo.")
    def seed_command(no_demo):
        """Cria admin, configurações padrão e catálogo de exemplo."""
        seed_if_needed(demo=not no_demo)
        click.echo("Seed concluído.")

    @app.cli.command("set-admin")
    @click.argument("email")
    @click.option("--revoke", is_flag=True, help="Remove o acesso de administrador.")
    def set_admin_command(email, revoke):
        """Concede (ou revoga) acesso de administrador."""
        u = User.query.filter_by(email=email.strip().lower()).first()
        if not u:
            raise click.ClickException(f"Usuário não encontrado: {email}")
        u.is_admin = not revoke
        db.session.commit()
        click.echo(f"{u.email}: is_admin={u.is_admin}")

    @app.cli.command("import-products")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    def import_products_command(path):
        """Importa produtos de um arquivo JSON (lista de objetos)."""
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        if isinstance(data, dict):
            data = data.get("products", [])
        if not isinstance(data, list):
            raise click.ClickException("O arquivo deve conter uma lista de produtos.")
        created = import_products(data)
        click.echo(f"{created} produto(s) importado(s).")

    return app
