import re
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from urllib.parse import quote

from slugify import slugify
from werkzeug.utils import secure_filename


def now_utc():
    return datetime.now(timezone.utc)

def money(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    if isinstance(v, Decimal):
        return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return Decimal(str(v)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

def to_cents(v) -> int:
    return int(money(v) * 100)

def from_cents(cents) -> Decimal:
    return money(Decimal(int(cents or 0)) / 100)

def format_brl(v) -> str:
    v = money(v)
    s = f"{v:.2f}"
    inteiro, dec = s.split(".")
    sign = ""
    if inteiro.startswith("-"):
        sign, inteiro = "-", inteiro[1:]
    inteiro = re.sub(r"(?<!^)(?=(\d{3})+$)", ".", inteiro)
    return f"{sign}R$ {inteiro},{dec}"

def only_digits(s) -> str:
    return re.sub(r"\D+", "", s or "")

def format_cep(cep: str) -> str:
    digits = only_digits(cep)
    if len(digits) != 8:
        return cep
    return f"{digits[:5]}-{digits[5:]}"

def unique_slug(model, name: str, exclude_id=None) -> str:
    """Gera um slug livre para ``model`` acrescentando -2, -3... quando já existe."""
    base = slugify(name) or "item"
    slug = base
    i = 2
    while True:
        q = model.query.filter_by(slug=slug)
        if exclude_id is not None:
            q = q.filter(model.id != exclude_id)
        if not q.first():
            return slug
        slug = f"{base}-{i}"
        i += 1

def allowed_file(filename: str) -> bool:
    ext = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""
    return ext in {"png", "jpg", "jpeg", "webp"}

def secure_upload_name(prefix: str, filename: str) -> str:
    safe = secure_filename(filename)
    return f"{prefix}-{safe}"

def wa_link(phone: str, message: str) -> str:
    phone = only_digits(phone)
    return f"https://wa.me/{phone}?text={quote(message)}"

def parse_int(value, default: int, minimum=None, maximum=None) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        n = default
    if minimum is not None:
        n = max(minimum, n)
    if maximum is not None:
        n = min(maximum, n)
    return n
