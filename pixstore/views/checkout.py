import logging

from flask import Blueprint, abort, flash, redirect, render_template, request, session, url_for
from flask_login import current_user

from ..cart import cart_get, cart_lines, cart_payload, cart_save, cart_subtotal
from ..errors import PaymentError, PaymentGatewayError
from ..extensions import db
from ..helpers import format_cep, money, only_digits
from ..models import Order
from ..orders import get_order_by_transaction_id
from ..payments import get_gateway, get_store
from ..payments.service import CheckoutCustomer, create_checkout_payment, payment_status
from ..forms import CheckoutForm
from ..shipping import ShippingError
from .payments import quote_for

logger = logging.getLogger(__name__)

bp = Blueprint("checkout", __name__)

PIX_SESSION_KEY = "pix"


def _remember_pix(order_id: int, payment):
    pix = session.get(PIX_SESSION_KEY, {})
    pix[str(order_id)] = {
        "transaction_id": payment.transaction_id,
        "qr_code": payment.pix.qr_code if payment.pix else "",
        "qr_code_base64": payment.pix.qr_code_base64 if payment.pix else "",
        "expires_at": payment.expires_at.isoformat() if payment.expires_at else None,
    }
    # só os últimos pedidos da sessão
    session[PIX_SESSION_KEY] = dict(list(pix.items())[-5:])
    session.modified = True

def _prefill(form: CheckoutForm):
    if not current_user.is_authenticated:
        return
    form.name.data = form.name.data or current_user.name
    form.email.data = form.email.data or current_user.email
    form.phone.data = form.phone.data or current_user.whatsapp
    address = current_user.addresses[0] if current_user.addresses else None
    if address:
        form.cep.data = form.cep.data or address.zip_code
        form.address.data = form.address.data or address.street
        form.number.data = form.number.data or address.number
        form.complement.data = form.complement.data or address.complement
        form.neighborhood.data = form.neighborhood.data or address.neighborhood
        form.city.data = form.city.data or address.city
        form.state.data = form.state.data or address.state


# ---------- checkout ----------
@bp.route("/checkout", methods=["GET", "POST"])
def checkout():
    lines = cart_lines(cart_get())
    if not lines:
        flash("Seu carrinho está vazio.", "warning")
        return redirect(url_for("store.produtos"))

    form = CheckoutForm()
    if request.method == "GET":
        _prefill(form)

    if form.validate_on_submit():
        gateway = get_gateway()
        if gateway is None:
            flash("Pagamento indisponível no momento. Tente novamente mais tarde.", "danger")
            return render_template("checkout.html", form=form, payload=cart_payload())

        customer = CheckoutCustomer(
            name=form.name.data.strip(),
            document=only_digits(form.document.data),
            email=form.email.data.strip().lower(),
            phone=(form.phone.data or "").strip(),
            cep=format_cep(form.cep.data),
            address=form.address.data.strip(),
            number=form.number.data.strip(),
            complement=(form.complement.data or "").strip(),
            neighborhood=(form.neighborhood.data or "").strip(),
            city=form.city.data.strip(),
            state=form.state.data.strip().upper(),
            notes=(form.notes.data or "").strip(),
        )

        try:
            quote = quote_for(customer.cep, cart_subtotal(lines))
            result = create_checkout_payment(
                lines,
                customer,
                gateway=gateway,
                store=get_store(),
                shipping_quote=quote,
                utm={k: request.args[k] for k in ("utm_source", "utm_medium", "utm_campaign") if request.args.get(k)},
                user=current_user if current_user.is_authenticated else None,
            )
        except ShippingError as exc:
            flash(f"Frete: {exc}", "danger")
            return render_template("checkout.html", form=form, payload=cart_payload())
        except PaymentError as exc:
            flash(exc.message, "danger")
            return render_template("checkout.html", form=form, payload=cart_payload())
        except PaymentGatewayError as exc:
            logger.error("Falha no gateway %s: %s", exc.gateway_name, exc.message)
            flash("Não foi possível gerar o pagamento. Tente novamente.", "danger")
            return render_template("checkout.html", form=form, payload=cart_payload())

        cart_save({})

        if result.payment.redirect_url:
            return redirect(result.payment.redirect_url, code=303)
        if result.order is None:
            flash("Pagamento gerado, mas houve um erro ao registrar o pedido. Guarde o código da transação.", "warning")
            return render_template("pagamento.html", order=None, pix={
                "transaction_id": result.payment.transaction_id,
                "qr_code": result.payment.pix.qr_code if result.payment.pix else "",
                "qr_code_base64": result.payment.pix.qr_code_base64 if result.payment.pix else "",
                "expires_at": result.payment.expires_at.isoformat() if result.payment.expires_at else None,
            }, total=money(result.total))

        _remember_pix(result.order.id, result.payment)
        return redirect(url_for("checkout.pagamento", order_id=result.order.id))

    return render_template("checkout.html", form=form, payload=cart_payload())

@bp.route("/pagamento/<int:order_id>")
def pagamento(order_id):
    order = db.session.get(Order, order_id)
    if not order:
        abort(404)
    if order.status != "pending":
        return redirect(url_for("checkout.pedido_view", order_id=order.id))

    pix = session.get(PIX_SESSION_KEY, {}).get(str(order.id))
    return render_template("pagamento.html", order=order, pix=pix, total=money(order.total))

@bp.route("/pagamento/retorno")
def pagamento_retorno():
    transaction_id = (request.args.get("session_id") or "").strip()
    order = get_order_by_transaction_id(transaction_id)
    if not order:
        abort(404)

    status = payment_status(transaction_id, get_store(), gateway=get_gateway(), refresh=True)
    if status["status"] == "paid":
        flash("Pagamento confirmado! Pedido registrado.", "success")
    else:
        flash("Pagamento em processamento. Você será avisado quando for confirmado.", "info")
    return redirect(url_for("checkout.pedido_view", order_id=order.id))

# ---------- Pedido público ----------
@bp.route("/pedido/<int:order_id>")
def pedido_view(order_id):
    order = db.session.get(Order, order_id)
    if not order:
        abort(404)
    return render_template("pedido.html", order=order, public_view=True)
