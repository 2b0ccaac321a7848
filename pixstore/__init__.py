import logging
import os

import stripe
from flask import Flask
from flask_login import current_user

from .cart import cart_count, cart_get
from .cli import register_cli, seed_if_needed
from .config import Config
from .extensions import db, login_manager
from .helpers import format_brl, wa_link
from .payments import init_store
from .settings import ensure_settings, public_settings
from .views import register_blueprints

from . import auth  # noqa: F401  (request_loader)

__version__ = "1.0.0"


# -------------------------
# App factory
# -------------------------
def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    logging.basicConfig(
        level=getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)
    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    login_manager.init_app(app)
    init_store(app)

    stripe.api_key = app.config.get("STRIPE_SECRET_KEY", "")

    with app.app_context():
        db.create_all()
        if app.config.get("SEED_DEMO_DATA"):
            seed_if_needed(demo=True)
        else:
            ensure_settings()

    register_blueprints(app)
    register_cli(app)

    @app.context_processor
    def inject_globals():
        return dict(
            STORE=public_settings(),
            CART_COUNT=cart_count(cart_get()),
            format_brl=format_brl,
            wa_link=wa_link,
            current_user=current_user,
        )

    return app
