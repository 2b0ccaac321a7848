from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db
from .helpers import now_utc

ORDER_STATUSES = ("pending", "paid", "processing", "shipped", "delivered", "cancelled", "failed", "refunded")
PAID_STATUSES = ("paid", "processing", "shipped", "delivered")

ORDER_STATUS_LABELS = {
    "pending": "Aguardando pagamento",
    "paid": "Pago",
    "processing": "Separando",
    "shipped": "Enviado",
    "delivered": "Entregue",
    "cancelled": "Cancelado",
    "failed": "Pagamento recusado",
    "refunded": "Reembolsado",
}


# -------------------------
# Users
# -------------------------
class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(180), default="")
    email = db.Column(db.String(190), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    whatsapp = db.Column(db.String(40), default="")
    is_admin = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=now_utc)

    addresses = db.relationship(
        "Address", backref="user", lazy=True, cascade="all, delete-orphan",
        order_by=lambda: (Address.is_default.desc(), Address.created_at.asc()),
    )

    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "whatsapp": self.whatsapp,
            "is_admin": bool(self.is_admin),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

class Address(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    label = db.Column(db.String(60), default="Casa")
    street = db.Column(db.String(200), nullable=False)
    number = db.Column(db.String(20), default="")
    complement = db.Column(db.String(120), default="")
    neighborhood = db.Column(db.String(120), default="")
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(2), nullable=False)
    zip_code = db.Column(db.String(9), nullable=False)
    is_default = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=now_utc)
    updated_at = db.Column(db.DateTime, default=now_utc, onupdate=now_utc)

    def to_dict(self):
        return {
            "id": self.id,
            "label": self.label,
            "street": self.street,
            "number": self.number,
            "complement": self.complement,
            "neighborhood": self.neighborhood,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "is_default": bool(self.is_default),
        }


# -------------------------
# Store / catalog
# -------------------------
class Setting(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(80), unique=True, nullable=False, index=True)
    value = db.Column(db.Text, default="")

class Category(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(160), unique=True, nullable=False, index=True)
    icon = db.Column(db.String(120), default="")
    position = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=now_utc)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "slug": self.slug, "icon": self.icon, "position": self.position}

class Product(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("category.id", ondelete="SET NULL"), nullable=True)

    name = db.Column(db.String(180), nullable=False)
    slug = db.Column(db.String(220), unique=True, nullable=False, index=True)
    description = db.Column(db.Text, default="")

    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    original_price = db.Column(db.Numeric(10, 2), nullable=True)
    stock = db.Column(db.Integer, nullable=False, default=0)
    sizes = db.Column(db.String(80), default="")
    is_active = db.Column(db.Boolean, default=True)

    image_filename = db.Column(db.String(255), default="")
    created_at = db.Column(db.DateTime, default=now_utc)

    category = db.relationship("Category", lazy=True)
    images = db.relationship(
        "ProductImage", backref="product", lazy=True, cascade="all, delete-orphan",
        order_by="ProductImage.display_order",
    )
    variants = db.relationship(
        "ProductVariant", backref="product", lazy=True, cascade="all, delete-orphan",
        order_by=lambda: (ProductVariant.display_order, ProductVariant.name),
    )

    @property
    def visible_variants(self):
        return [v for v in self.variants if v.visible]

    @property
    def size_list(self) -> list[str]:
        return [s.strip().upper() for s in (self.sizes or "").split(",") if s.strip()]

    @property
    def total_stock(self) -> int:
        if self.variants:
            return sum(v.stock for v in self.visible_variants)
        return self.stock

    def to_dict(self, with_variants=True):
        data = {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "price": float(self.price or 0),
            "original_price": float(self.original_price) if self.original_price is not None else None,
            "stock": self.total_stock,
            "sizes": self.size_list,
            "visible": bool(self.is_active),
            "category": self.category.to_dict() if self.category else None,
            "images": [i.to_dict() for i in self.images],
        }
        if with_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
        return data

class ProductImage(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)
    image_url = db.Column(db.String(500), nullable=False)
    display_order = db.Column(db.Integer, default=0)

    def to_dict(self):
        return {"id": self.id, "image_url": self.image_url, "display_order": self.display_order}

class ProductVariant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    sku = db.Column(db.String(80), default="")
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    original_price = db.Column(db.Numeric(10, 2), nullable=True)
    cost_price = db.Column(db.Numeric(10, 2), default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    weight_kg = db.Column(db.Numeric(8, 3), default=0.1)
    color_hex = db.Column(db.String(9), default="")
    flavor = db.Column(db.String(80), default="")
    size = db.Column(db.String(20), default="")
    display_order = db.Column(db.Integer, default=0)
    visible = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=now_utc)

    def to_dict(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "price": float(self.price or 0),
            "original_price": float(self.original_price) if self.original_price is not None else None,
            "stock": self.stock,
            "weight_kg": float(self.weight_kg or 0),
            "color_hex": self.color_hex,
            "flavor": self.flavor,
            "size": self.size,
            "display_order": self.display_order,
            "visible": bool(self.visible),
        }

class Banner(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(180), default="")
    subtitle = db.Column(db.String(240), default="")
    cta_text = db.Column(db.String(60), default="Comprar agora")
    cta_link = db.Column(db.String(240), default="/produtos")
    image_filename = db.Column(db.String(255), default="")
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=now_utc)


# -------------------------
# Orders
# -------------------------
class Order(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.String(120), unique=True, nullable=True, index=True)
    external_id = db.Column(db.String(120), default="", index=True)
    payment_provider = db.Column(db.String(40), default="")
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    status = db.Column(db.String(20), default="pending", index=True)

    customer_name = db.Column(db.String(180), default="")
    customer_document = db.Column(db.String(14), default="", index=True)
    customer_email = db.Column(db.String(190), default="")
    customer_phone = db.Column(db.String(40), default="")
    customer_cep = db.Column(db.String(9), default="")
    customer_address = db.Column(db.String(240), default="")
    customer_number = db.Column(db.String(20), default="")
    customer_complement = db.Column(db.String(120), default="")
    customer_neighborhood = db.Column(db.String(120), default="")
    customer_city = db.Column(db.String(120), default="")
    customer_state = db.Column(db.String(2), default="")

    shipping_distance_km = db.Column(db.Numeric(8, 2), default=0)
    shipping_cost = db.Column(db.Numeric(10, 2), default=0)
    shipping_time_minutes = db.Column(db.Integer, default=0)

    subtotal = db.Column(db.Numeric(10, 2), default=0)
    total = db.Column(db.Numeric(10, 2), default=0)
    delivery_notes = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime, default=now_utc, index=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    shipped_at = db.Column(db.DateTime, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship("OrderItem", backref="order", lazy=True, cascade="all, delete-orphan",
                            order_by="OrderItem.id")

    @property
    def status_label(self):
        return ORDER_STATUS_LABELS.get(self.status, self.status)

class OrderItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("order.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, nullable=True)
    variant_id = db.Column(db.Integer, nullable=True)
    product_name = db.Column(db.String(180), nullable=False)
    variant_name = db.Column(db.String(120), default="")
    sku = db.Column(db.String(80), default="")

    unit_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    cost_price = db.Column(db.Numeric(10, 2), default=0)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    total_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    product_image_url = db.Column(db.String(500), default="")

class StockMovement(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variant.id", ondelete="SET NULL"), nullable=True)
    product_id = db.Column(db.Integer, nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("order.id", ondelete="SET NULL"), nullable=True)
    movement_type = db.Column(db.String(20), default="sale")
    quantity_change = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=now_utc)
