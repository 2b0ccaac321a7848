from decimal import InvalidOperation

from .extensions import db
from .helpers import money
from .models import Setting

DEFAULT_SETTINGS = {
    # Loja
    "store_name": "PixStore",
    "store_description": "Bem-vindo à nossa loja",
    "store_email": "",
    "store_phone": "",
    "whatsapp": "",
    "topbar_note": "Frete grátis nas compras acima de R$ 300,00",
    # Hero da home
    "hero_type": "none",
    "hero_image_url": "",
    "hero_video_url": "",
    "hero_title": "",
    "hero_subtitle": "",
    "hero_cta_text": "Comprar agora",
    "hero_cta_link": "/produtos",
    # Tema
    "primary_color": "#10b981",
    "secondary_color": "#059669",
    "accent_color": "#34d399",
    "theme_mode": "dark",
    "font_family": "Poppins",
    # Redes / SEO
    "social_instagram": "",
    "social_facebook": "",
    "seo_title": "",
    "seo_description": "",
    # Pagamento
    "currency": "BRL",
    "currency_symbol": "R$",
    # Frete
    "free_shipping_threshold": "300.00",
    "shipping_price_per_km": "1.85",
    "shipping_min_cost": "10.00",
    "shipping_max_distance_km": "50",
}

PUBLIC_KEYS = (
    "store_name", "store_description", "store_email", "store_phone", "whatsapp", "topbar_note",
    "hero_type", "hero_image_url", "hero_video_url", "hero_title", "hero_subtitle",
    "hero_cta_text", "hero_cta_link", "primary_color", "secondary_color", "accent_color",
    "theme_mode", "font_family", "social_instagram", "social_facebook", "seo_title",
    "seo_description", "currency", "currency_symbol", "free_shipping_threshold",
)


def get_setting(key: str, default: str | None = None) -> str:
    if default is None:
        default = DEFAULT_SETTINGS.get(key, "")
    s = Setting.query.filter_by(key=key).first()
    if not s or s.value is None:
        return default
    return str(s.value)

def get_setting_decimal(key: str, default: str | None = None):
    fallback = default if default is not None else DEFAULT_SETTINGS.get(key, "0")
    try:
        return money(get_setting(key, fallback))
    except (InvalidOperation, ValueError):
        return money(fallback)

def ensure_settings():
    for k, v in DEFAULT_SETTINGS.items():
        if not Setting.query.filter_by(key=k).first():
            db.session.add(Setting(key=k, value=str(v)))
    db.session.commit()

def save_settings(pairs: dict):
    for k, v in pairs.items():
        s = Setting.query.filter_by(key=k).first()
        if not s:
            db.session.add(Setting(key=k, value=str(v)))
        else:
            s.value = str(v)
    db.session.commit()

def public_settings() -> dict:
    rows = {s.key: s.value for s in Setting.query.filter(Setting.key.in_(PUBLIC_KEYS)).all()}
    data = {k: rows.get(k, DEFAULT_SETTINGS.get(k, "")) for k in PUBLIC_KEYS}
    data["free_shipping_threshold"] = float(money(data["free_shipping_threshold"]))
    return data
