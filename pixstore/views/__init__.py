from . import account, admin, admin_api, api, cart, checkout, payments, store

BLUEPRINTS = (
    store.bp,
    cart.bp,
    checkout.bp,
    payments.bp,
    api.bp,
    account.bp,
    admin.bp,
    admin_api.bp,
)


def register_blueprints(app):
    for bp in BLUEPRINTS:
        app.register_blueprint(bp)
