import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .errors import NotFoundError, ValidationError
from .helpers import money, now_utc, only_digits
from .models import (
    ORDER_STATUSES, PAID_STATUSES, Order, OrderItem, Product, ProductVariant, StockMovement,
)
from .notifications import notify_order

logger = logging.getLogger(__name__)

PLATFORM_FEE_RATE = Decimal("0.05")

STATUS_TIMESTAMPS = {
    "paid": "paid_at",
    "shipped": "shipped_at",
    "delivered": "delivered_at",
    "cancelled": "cancelled_at",
}


@dataclass
class NewOrderItem:
    product_id: int | None
    product_name: str
    unit_price: Decimal
    quantity: int
    variant_id: int | None = None
    variant_name: str = ""
    sku: str = ""
    cost_price: Decimal = Decimal("0.00")
    image_url: str = ""


@dataclass
class NewOrder:
    customer_name: str
    customer_document: str
    items: list
    transaction_id: str | None = None
    external_id: str = ""
    payment_provider: str = ""
    user_id: int | None = None
    customer_email: str = ""
    customer_phone: str = ""
    customer_cep: str = ""
    customer_address: str = ""
    customer_number: str = ""
    customer_complement: str = ""
    customer_neighborhood: str = ""
    customer_city: str = ""
    customer_state: str = ""
    shipping_distance_km: Decimal = Decimal("0")
    shipping_cost: Decimal = Decimal("0.00")
    shipping_time_minutes: int = 0
    delivery_notes: str = ""
    subtotal: Decimal | None = None
    total: Decimal | None = None


# -------------------------
# Create / update
# -------------------------
def _decrement_stock(order: Order, item: NewOrderItem):
    qty = int(item.quantity)
    if item.variant_id:
        variant = db.session.get(ProductVariant, item.variant_id)
        if not variant:
            return
        before = int(variant.stock or 0)
        after = max(0, before - qty)
        variant.stock = after
        db.session.add(StockMovement(
            variant_id=variant.id,
            product_id=variant.product_id,
            order_id=order.id,
            movement_type="sale",
            quantity_change=-qty,
            stock_before=before,
            stock_after=after,
        ))
    elif item.product_id:
        product = db.session.get(Product, item.product_id)
        if product:
            product.stock = max(0, int(product.stock or 0) - qty)

def create_order(data: NewOrder) -> Order:
    if not data.items:
        raise ValidationError("Pedido sem itens", field="items")

    subtotal = data.subtotal
    if subtotal is None:
        subtotal = sum((money(i.unit_price) * int(i.quantity) for i in data.items), Decimal("0.00"))
    subtotal = money(subtotal)
    shipping_cost = money(data.shipping_cost)
    total = money(data.total) if data.total is not None else money(subtotal + shipping_cost)

    order = Order(
        transaction_id=data.transaction_id,
        external_id=data.external_id or "",
        payment_provider=data.payment_provider or "",
        user_id=data.user_id,
        status="pending",
        customer_name=data.customer_name.strip(),
        customer_document=only_digits(data.customer_document),
        customer_email=(data.customer_email or "").strip().lower(),
        customer_phone=data.customer_phone or "",
        customer_cep=data.customer_cep or "",
        customer_address=data.customer_address or "",
        customer_number=data.customer_number or "",
        customer_complement=data.customer_complement or "",
        customer_neighborhood=data.customer_neighborhood or "",
        customer_city=data.customer_city or "",
        customer_state=(data.customer_state or "").upper()[:2],
        shipping_distance_km=data.shipping_distance_km or 0,
        shipping_cost=shipping_cost,
        shipping_time_minutes=int(data.shipping_time_minutes or 0),
        subtotal=subtotal,
        total=total,
        delivery_notes=data.delivery_notes or "",
    )

    try:
        db.session.add(order)
        db.session.flush()

        for item in data.items:
            unit = money(item.unit_price)
            qty = int(item.quantity)
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                product_name=item.product_name,
                variant_name=item.variant_name or "",
                sku=item.sku or "",
                unit_price=unit,
                cost_price=money(item.cost_price),
                quantity=qty,
                total_price=money(unit * qty),
                product_image_url=item.image_url or "",
            ))
            _decrement_stock(order, item)

        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Erro ao criar pedido (transação %s)", data.transaction_id)
        raise

    logger.info("Pedido %s criado (transação %s, total %s)", order.id, order.transaction_id, order.total)

    if order.customer_phone:
        notify_order("order.created", order)
    return order

def get_order(ref) -> Order | None:
    """Find an order by transaction id, falling back to the numeric id."""
    ref = str(ref or "").strip()
    if not ref:
        return None
    order = Order.query.filter_by(transaction_id=ref).first()
    if order is None and ref.isdigit():
        order = db.session.get(Order, int(ref))
    return order

def get_order_by_transaction_id(transaction_id: str) -> Order | None:
    if not transaction_id:
        return None
    return Order.query.filter_by(transaction_id=transaction_id).first()

def update_order_status(ref, status: str, by_transaction: bool = False) -> Order:
    """
    ``by_transaction`` matches on the gateway transaction id only, with no
    fallback to the numeric order id.
    """
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Status inválido: {status}", field="status", value=status)

    order = get_order_by_transaction_id(str(ref or "").strip()) if by_transaction else get_order(ref)
    if not order:
        raise NotFoundError("Pedido", ref)

    order.status = status
    stamp = STATUS_TIMESTAMPS.get(status)
    if stamp:
        setattr(order, stamp, now_utc())
    db.session.commit()

    logger.info("Status do pedido atualizado: %s -> %s", order.transaction_id or order.id, status)
    return order


# -------------------------
# Queries
# -------------------------
def list_orders(status=None, customer_document=None, date_from=None, date_to=None, page=1, limit=20):
    q = Order.query
    if status:
        q = q.filter(Order.status == status)
    if customer_document:
        q = q.filter(Order.customer_document == only_digits(customer_document))
    if date_from:
        q = q.filter(Order.created_at >= date_from)
    if date_to:
        q = q.filter(Order.created_at <= date_to)

    total = q.count()
    page = max(1, int(page))
    limit = max(1, int(limit))
    orders = (
        q.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total

def find_customer_orders(document=None, email=None, limit=50):
    conditions = []
    if document and only_digits(document):
        conditions.append(Order.customer_document == only_digits(document))
    if email and email.strip():
        conditions.append(func.lower(Order.customer_email) == email.strip().lower())
    if not conditions:
        return []
    return (
        Order.query.filter(*conditions)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )

def user_orders(user, limit=50):
    """Orders placed by ``user``, or under the same email before signing up."""
    return (
        Order.query.filter(db.or_(
            Order.user_id == user.id,
            func.lower(Order.customer_email) == (user.email or "").lower(),
        ))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )

def user_owns_order(user, order: Order) -> bool:
    if order.user_id and order.user_id == user.id:
        return True
    return bool(order.customer_email) and order.customer_email.lower() == (user.email or "").lower()

def _iso(dt):
    return dt.isoformat() if dt else None

def order_to_dict(order: Order, items=True) -> dict:
    data = {
        "id": order.id,
        "transaction_id": order.transaction_id,
        "external_id": order.external_id,
        "payment_provider": order.payment_provider,
        "status": order.status,
        "status_label": order.status_label,
        "customer_name": order.customer_name,
        "customer_document": order.customer_document,
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "customer_cep": order.customer_cep,
        "customer_address": order.customer_address,
        "customer_number": order.customer_number,
        "customer_complement": order.customer_complement,
        "customer_neighborhood": order.customer_neighborhood,
        "customer_city": order.customer_city,
        "customer_state": order.customer_state,
        "shipping_distance_km": float(order.shipping_distance_km or 0),
        "shipping_cost": float(order.shipping_cost or 0),
        "shipping_time_minutes": order.shipping_time_minutes or 0,
        "subtotal": float(order.subtotal or 0),
        "total": float(order.total or 0),
        "delivery_notes": order.delivery_notes,
        "items_count": len(order.items),
        "created_at": _iso(order.created_at),
        "paid_at": _iso(order.paid_at),
        "shipped_at": _iso(order.shipped_at),
        "delivered_at": _iso(order.delivered_at),
        "cancelled_at": _iso(order.cancelled_at),
    }
    if items:
        data["items"] = [
            {
                "id": it.id,
                "product_id": it.product_id,
                "variant_id": it.variant_id,
                "product_name": it.product_name,
                "variant_name": it.variant_name,
                "sku": it.sku,
                "quantity": it.quantity,
                "unit_price": float(it.unit_price or 0),
                "total_price": float(it.total_price or 0),
                "product_image_url": it.product_image_url,
            }
            for it in order.items
        ]
    return data


# -------------------------
# Dashboard
# -------------------------
def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)

def _sales_since(start: datetime, end: datetime | None = None):
    q = db.session.query(func.count(Order.id), func.coalesce(func.sum(Order.total), 0)).filter(
        Order.status.in_(PAID_STATUSES), Order.created_at >= start,
    )
    if end is not None:
        q = q.filter(Order.created_at < end)
    count, total = q.one()
    return {"orders": int(count or 0), "revenue": float(total or 0)}

def dashboard_stats(today: date | None = None) -> dict:
    today = today or now_utc().date()
    today_start = _day_start(today)
    tomorrow = today_start + timedelta(days=1)
    week_start = _day_start(today - timedelta(days=today.weekday()))
    month_start = _day_start(today.replace(day=1))
    last_30 = today_start - timedelta(days=30)

    paid = Order.status.in_(PAID_STATUSES)

    by_status = (
        db.session.query(Order.status, func.count(Order.id))
        .group_by(Order.status)
        .order_by(func.count(Order.id).desc())
        .all()
    )

    avg_ticket = db.session.query(func.avg(Order.total)).filter(paid).scalar()
    avg_shipping = db.session.query(func.avg(Order.shipping_cost)).filter(paid, Order.shipping_cost > 0).scalar()

    top_products = (
        db.session.query(
            OrderItem.product_name,
            OrderItem.variant_name,
            func.sum(OrderItem.quantity),
            func.sum(OrderItem.total_price),
            func.count(func.distinct(OrderItem.order_id)),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(paid)
        .group_by(OrderItem.product_name, OrderItem.variant_name)
        .order_by(func.sum(OrderItem.quantity).desc())
        .limit(10)
        .all()
    )

    per_day = defaultdict(lambda: {"orders": 0, "revenue": Decimal("0.00")})
    for created_at, total in (
        db.session.query(Order.created_at, Order.total).filter(paid, Order.created_at >= last_30).all()
    ):
        key = created_at.date().isoformat()
        per_day[key]["orders"] += 1
        per_day[key]["revenue"] += money(total)
    sales_by_day = [
        {"date": d, "orders": v["orders"], "revenue": float(v["revenue"])}
        for d, v in sorted(per_day.items(), reverse=True)
    ]

    regions = (
        db.session.query(Order.customer_city, Order.customer_state, func.count(Order.id), func.sum(Order.total))
        .filter(paid, Order.customer_city.isnot(None), Order.customer_city != "")
        .group_by(Order.customer_city, Order.customer_state)
        .order_by(func.count(Order.id).desc())
        .limit(10)
        .all()
    )

    recent_total = Order.query.filter(Order.created_at >= last_30).count()
    recent_paid = Order.query.filter(paid, Order.created_at >= last_30).count()
    conversion = (recent_paid / recent_total * 100) if recent_total else 0.0

    month_orders = Order.query.filter(paid, Order.created_at >= month_start).all()
    revenue = sum((money(o.total) for o in month_orders), Decimal("0.00"))
    cost = sum(
        (money(it.cost_price) * int(it.quantity) for o in month_orders for it in o.items),
        Decimal("0.00"),
    )
    gross = revenue - cost
    fee = money(revenue * PLATFORM_FEE_RATE)

    return {
        "today": _sales_since(today_start, tomorrow),
        "week": _sales_since(week_start),
        "month": _sales_since(month_start),
        "orders_by_status": [{"status": s, "count": int(c)} for s, c in by_status],
        "avg_ticket": float(avg_ticket or 0),
        "avg_shipping": float(avg_shipping or 0),
        "top_products": [
            {
                "product_name": name,
                "variant_name": variant,
                "quantity": int(qty or 0),
                "revenue": float(rev or 0),
                "orders": int(n or 0),
            }
            for name, variant, qty, rev, n in top_products
        ],
        "sales_by_day": sales_by_day,
        "sales_by_region": [
            {"city": city, "state": state, "orders": int(n or 0), "revenue": float(rev or 0)}
            for city, state, n, rev in regions
        ],
        "conversion_rate": round(conversion, 2),
        "profit": {
            "total_revenue": float(revenue),
            "total_cost": float(money(cost)),
            "gross_profit": float(money(gross)),
            "platform_fee": float(fee),
            "platform_fee_rate": float(PLATFORM_FEE_RATE * 100),
            "net_profit": float(money(gross - fee)),
        },
    }
