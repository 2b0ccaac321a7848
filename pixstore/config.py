import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

load_dotenv()


def _env_bool(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")

    # SQLite por padrão
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{(BASE_DIR.parent / 'instance' / 'pixstore.db').as_posix()}"
    )
    # Render/Railway às vezes mandam postgres:// (antigo). SQLAlchemy quer postgresql://
    if SQLALCHEMY_DATABASE_URI.startswith("postgres://"):
        SQLALCHEMY_DATABASE_URI = SQLALCHEMY_DATABASE_URI.replace("postgres://", "postgresql://", 1)

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SITE_URL = os.environ.get("SITE_URL", "http://localhost:5000").rstrip("/")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    SEED_DEMO_DATA = _env_bool("SEED_DEMO_DATA", "1")

    # Uploads
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", str(BASE_DIR / "static" / "uploads"))
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024  # 8MB

    # Sessões (admin_token / user_token)
    ADMIN_TOKEN_HOURS = int(os.environ.get("ADMIN_TOKEN_HOURS", "24"))
    USER_TOKEN_DAYS = int(os.environ.get("USER_TOKEN_DAYS", "7"))
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE")

    # Pagamentos
    DEFAULT_PAYMENT_GATEWAY = os.environ.get("DEFAULT_PAYMENT_GATEWAY", "greenpag")
    GREENPAG_API_URL = os.environ.get("GREENPAG_API_URL", "https://api.greenpag.com.br/v1")
    GREENPAG_PUBLIC_KEY = os.environ.get("GREENPAG_PUBLIC_KEY", "")
    GREENPAG_SECRET_KEY = os.environ.get("GREENPAG_SECRET_KEY", "")
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_PUBLIC_KEY = os.environ.get("STRIPE_PUBLIC_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    PAYMENT_TIMEOUT = int(os.environ.get("PAYMENT_TIMEOUT", "25"))
    PAYMENT_STATUS_MAX_AGE = int(os.environ.get("PAYMENT_STATUS_MAX_AGE", str(24 * 60 * 60)))

    # Notificações WhatsApp via n8n
    N8N_WEBHOOK_URL = os.environ.get("N8N_WEBHOOK_URL", "")
    N8N_WEBHOOK_SECRET = os.environ.get("N8N_WEBHOOK_SECRET", "")

    # Frete (origem das entregas)
    WAREHOUSE_LAT = float(os.environ.get("WAREHOUSE_LAT", "-23.6947"))
    WAREHOUSE_LON = float(os.environ.get("WAREHOUSE_LON", "-46.5558"))
    HTTP_USER_AGENT = os.environ.get("HTTP_USER_AGENT", "PixStore-Delivery-App/1.0")


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    SEED_DEMO_DATA = False
    SITE_URL = "http://localhost"
    DEFAULT_PAYMENT_GATEWAY = ""
    GREENPAG_PUBLIC_KEY = ""
    GREENPAG_SECRET_KEY = ""
    STRIPE_SECRET_KEY = ""
    STRIPE_WEBHOOK_SECRET = ""
    N8N_WEBHOOK_URL = ""
    N8N_WEBHOOK_SECRET = "n8n-test-secret"
