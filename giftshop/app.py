from functools import wraps
from typing import Optional
from urllib.parse import urlparse, urljoin

import bcrypt
import stripe
from flask import (
    Flask, Response, render_template, request, redirect, url_for, flash, abort, jsonify,
    stream_with_context,
)
from flask_login import (
    LoginManager, login_user, login_required, logout_user, current_user, UserMixin
)
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, selectinload

from .cart import Cart
from .config import GiftMessageOptions, Settings
from .display import DisplayAdapter
from .emails import GiftMessageEmailSection, OrderMailer
from .export import export_filename, generate_csv
from .inputs import read_gift_message, read_quantity
from .models import Base, Order, OrderItem, Product, User
from .notify import Mailer, Notifier, setup_logging
from .orders import Customer, EmptyCartError, place_order
from .presenter import FieldPresenter
from .validation import GiftMessageValidator, pattern_table


def format_money(cents: int, currency: str = "USD") -> str:
    return f"${cents/100:.2f}" if currency.upper() == "USD" else f"{cents/100:.2f} {currency}"


class LoginUser(UserMixin):
    def __init__(self, u: User):
        self.id = str(u.id)
        self.email = u.email
        self.is_admin = bool(u.is_admin)


def create_app(settings: Optional[Settings] = None, options: Optional[GiftMessageOptions] = None,
               mailer=None) -> Flask:
    settings = settings or Settings.from_env()
    options = options or GiftMessageOptions(max_length=settings.gift_message_max_length)
    log = setup_logging(settings.log_file)

    app = Flask(__name__, static_folder="static", template_folder="templates")
    app.secret_key = settings.secret_key

    # ---------- Engine ----------
    engine = create_engine(settings.database_url, future=True)
    Base.metadata.create_all(engine)

    def main_session():
        return Session(engine)

    # ---------- Gift message pipeline ----------
    validator = GiftMessageValidator(options.max_length, options.rules)
    presenter = FieldPresenter(options.max_length, options.eligible)
    adapter = DisplayAdapter(options.meta_key, options.formatter)
    section = GiftMessageEmailSection(adapter, options.email_types, options.show_in_admin_emails)
    mailer = mailer or Mailer(settings)
    notify = Notifier(settings, mailer)
    order_mailer = OrderMailer(mailer, section, settings.site_name, settings.alert_email_to,
                               lambda c: format_money(c, settings.currency))

    app.extensions["giftshop"] = {
        "settings": settings, "options": options, "engine": engine,
        "validator": validator, "presenter": presenter, "adapter": adapter,
        "order_mailer": order_mailer,
    }

    # ---------- Auth ----------
    login_manager = LoginManager(app)
    login_manager.login_view = "login"

    @login_manager.user_loader
    def load_user(user_id):
        with main_session() as db:
            u = db.get(User, int(user_id))
            return LoginUser(u) if u else None

    def admin_required(f):
        @wraps(f)
        @login_required
        def wrapper(*args, **kwargs):
            if not current_user.is_admin:
                abort(403)
            return f(*args, **kwargs)
        return wrapper

    @app.context_processor
    def inject_globals():
        qty = 0
        if hasattr(current_user, "is_authenticated") and current_user.is_authenticated:
            with main_session() as db:
                qty = Cart(db, int(current_user.id)).quantity()
        return {
            "SITE_NAME": settings.site_name, "cart_qty": qty,
            "format_money": lambda c: format_money(c, settings.currency),
            "gift": adapter,
        }

    def is_safe_url(target):
        ref_url = urlparse(request.host_url)
        test_url = urlparse(urljoin(request.host_url, target))
        return test_url.scheme in ("http", "https") and ref_url.netloc == test_url.netloc

    def wants_json() -> bool:
        return request.is_json or request.accept_mimetypes.best == "application/json"

    def payload():
        if request.is_json:
            data = request.get_json(silent=True)
            return data if isinstance(data, dict) else {}
        return request.form

    def gift_page(template, **ctx):
        return render_template(template, gift_assets=True,
                               gift_rules={"maxLength": options.max_length, "patterns": pattern_table()},
                               **ctx)

    def mark_processing(db: Session, order: Order):
        order.status = "processing"
        db.commit()
        order_mailer.send("customer_processing_order", order)
        order_mailer.send("new_order", order)

    # --------------------------- AUTH ROUTES ---------------------------
    @app.get("/login")
    def login():
        return render_template("login.html")

    @app.post("/login")
    def login_post():
        email = request.form.get("email", "").strip().lower()
        password = request.form.get("password", "")
        with main_session() as db:
            u = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if not u or not bcrypt.checkpw(password.encode(), u.password_hash.encode()):
                notify(f"Failed login attempt for {email}")
                return (render_template("login.html", error="Invalid credentials"), 401)
            login_user(LoginUser(u))
        nxt = request.args.get("next")
        return redirect(nxt if nxt and is_safe_url(nxt) else url_for("index"))

    @app.get("/logout")
    @login_required
    def logout():
        logout_user()
        return redirect(url_for("login"))

    @app.get("/register")
    def register():
        return render_template("register.html")

    @app.post("/register")
    def register_post():
        email = request.form.get("email", "").strip().lower()
        password = request.form.get("password", "")
        if not email or not password:
            return (render_template("register.html", error="Email and password required"), 400)
        with main_session() as db:
            exists = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if exists:
                return (render_template("register.html", error="User already exists"), 409)
            pw_hash = bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()
            u = User(email=email, password_hash=pw_hash)
            db.add(u)
            db.commit()
            login_user(LoginUser(u))
        return redirect(url_for("index"))

    # --------------------------- CATALOG ---------------------------
    @app.get("/")
    def index():
        with main_session() as db:
            products = db.execute(select(Product).order_by(Product.created_at.desc())).scalars().all()
        return render_template("index.html", products=products)

    @app.get("/product/<slug>")
    def product(slug):
        with main_session() as db:
            p = db.execute(select(Product).where(Product.slug == slug)).scalar_one_or_none()
        if not p:
            abort(404)
        return gift_page("product.html", p=p, gift_field=presenter.render(p, ""))

    # --------------------------- CART ---------------------------
    @app.post("/cart/add")
    @login_required
    def cart_add():
        data = payload()
        try:
            pid = int(data.get("product_id") or 0)
        except (TypeError, ValueError):
            pid = 0
        if not pid:
            abort(400)
        qty = read_quantity(data)
        raw = read_gift_message(data)

        with main_session() as db:
            p = db.get(Product, pid)
            if not p:
                abort(404)

            message = ""
            if presenter.should_present(p):
                result = validator.validate(raw)
                if not result.ok:
                    log.info(f"Gift message rejected for product {pid}: {result.reason.value}")
                    if wants_json():
                        return jsonify({"error": result.reason.value, "message": result.message}), 400
                    return (gift_page("product.html", p=p, gift_field=presenter.render(p, raw),
                                      error=result.message), 400)
                message = result.value
            elif raw.strip():
                log.info(f"Ignoring gift message for ineligible product {pid}")

            line = Cart(db, int(current_user.id)).add_line(p, qty, message)
            token = line.line_token
            db.commit()

        if wants_json():
            return jsonify({"line_token": token, "gift_message": message}), 201
        flash("Added to cart.", "success")
        next_url = data.get("next") or url_for("cart_view")
        return redirect(next_url if is_safe_url(next_url) else url_for("cart_view"))

    @app.get("/cart")
    @login_required
    def cart_view():
        items = []
        subtotal = 0
        with main_session() as db:
            for line in Cart(db, int(current_user.id)).lines():
                if line.product is None:
                    continue
                total = line.product.price_cents * line.quantity
                subtotal += total
                items.append((line.product, line, total))
            return gift_page("cart.html", items=items, subtotal=subtotal)

    @app.post("/cart/update")
    @login_required
    def cart_update():
        quantities = {}
        for key, val in request.form.items():
            if key.startswith("qty_"):
                try:
                    quantities[key.split("_", 1)[1]] = max(0, int(val or "0"))
                except ValueError:
                    continue
        try:
            with main_session() as db:
                Cart(db, int(current_user.id)).update_quantities(quantities)
                db.commit()
            flash("Cart updated.", "success")
        except Exception as e:
            log.exception("Cart update failed")
            notify(f"Cart update failed for user {current_user.id}: {e}")
            flash("Update failed.", "danger")
        return redirect(url_for("cart_view"))

    @app.post("/cart/remove/<token>")
    @login_required
    def cart_remove(token):
        with main_session() as db:
            if Cart(db, int(current_user.id)).remove(token):
                db.commit()
                flash("Item removed.", "success")
        return redirect(url_for("cart_view"))

    # --------------------------- CHECKOUT ---------------------------
    @app.get("/checkout")
    @login_required
    def checkout_get():
        with main_session() as db:
            lines = Cart(db, int(current_user.id)).lines()
            if not lines:
                flash("Cart is empty.", "warning")
                return redirect(url_for("index"))
            return gift_page("checkout.html", lines=lines)

    @app.post("/checkout")
    @login_required
    def checkout_post():
        name = request.form.get("name", "").strip()
        email = request.form.get("email", "").strip()
        address = request.form.get("address", "").strip()
        if not (name and email and address):
            flash("Please fill in all fields.", "danger")
            return redirect(url_for("checkout_get"))

        with main_session() as db:
            try:
                o = place_order(db, int(current_user.id), Customer(name, email, address), options.meta_key,
                                clear_cart=not settings.stripe_secret_key)
            except EmptyCartError:
                flash("Cart is empty.", "warning")
                return redirect(url_for("index"))

            if not settings.stripe_secret_key:
                mark_processing(db, o)
                return redirect(url_for("success_page", order_id=o.id))

            line_items = [{
                "quantity": it.quantity,
                "price_data": {
                    "currency": settings.currency.lower(),
                    "unit_amount": it.unit_price_cents,
                    "product_data": {"name": it.product_name},
                },
            } for it in o.items]
            try:
                cs = stripe.checkout.Session.create(
                    api_key=settings.stripe_secret_key,
                    mode="payment",
                    customer_email=email,
                    line_items=line_items,
                    success_url=f"{settings.public_base_url}/success?order_id={o.id}",
                    cancel_url=f"{settings.public_base_url}/cart",
                    metadata={"order_id": str(o.id), "user_id": str(current_user.id)},
                )
                o.stripe_session_id = cs.id
                db.commit()
                return redirect(cs.url, code=303)
            except Exception as e:
                # the pending order and its gift messages roll back together
                db.rollback()
                log.exception("Stripe checkout create failed")
                notify(f"Stripe checkout failed for user {current_user.id}: {e}")
                flash("Payment init failed. Please try again.", "danger")
                return redirect(url_for("cart_view"))

    @app.get("/success")
    @login_required
    def success_page():
        order_id = request.args.get("order_id", type=int)
        if not order_id:
            return redirect(url_for("index"))
        with main_session() as db:
            o = db.get(Order, order_id)
            if not o or o.user_id != int(current_user.id):
                abort(404)
            return render_template("success.html", order=o, gift_messages=adapter.collect_for_order(o))

    # --------------------------- ACCOUNT ---------------------------
    @app.get("/account/orders")
    @login_required
    def account_orders():
        with main_session() as db:
            orders = db.execute(
                select(Order).where(Order.user_id == int(current_user.id)).order_by(Order.created_at.desc())
            ).scalars().all()
            return render_template("account_orders.html", orders=orders)

    @app.get("/account/orders/<int:order_id>")
    @login_required
    def account_order(order_id):
        with main_session() as db:
            o = db.get(Order, order_id)
            if not o or o.user_id != int(current_user.id):
                abort(404)
            return render_template("account_order.html", order=o)

    # --------------------------- STRIPE WEBHOOK ---------------------------
    @app.post("/webhooks/stripe")
    def stripe_webhook():
        body = request.get_data(as_text=True)
        sig = request.headers.get("Stripe-Signature", "")
        try:
            event = stripe.Webhook.construct_event(body, sig, settings.stripe_webhook_secret)
        except Exception as e:
            log.warning(f"Stripe webhook signature failure: {e}")
            return "bad sig", 400
        try:
            if event["type"] in ("checkout.session.completed", "checkout.session.expired"):
                data = event["data"]["object"]
                order_id = int(data["metadata"]["order_id"])
                with main_session() as db:
                    o = db.get(Order, order_id)
                    if o and o.status == "pending":
                        if event["type"] == "checkout.session.completed":
                            # the cart survives a cancelled payment; it is emptied once paid
                            Cart(db, o.user_id).clear()
                            mark_processing(db, o)
                            notify(f"Order #{o.id} paid by user {o.user_id}")
                        else:
                            o.status = "failed"
                            db.commit()
                            order_mailer.send("failed_order", o)
            return "ok", 200
        except Exception as e:
            log.exception("Stripe webhook error")
            notify(f"Stripe webhook error: {e}")
            return "error", 500

    # --------------------------- ADMIN ---------------------------
    @app.get("/admin/orders")
    @admin_required
    def admin_orders():
        with main_session() as db:
            orders = db.execute(
                select(Order).options(selectinload(Order.items).selectinload(OrderItem.meta))
                .order_by(Order.created_at.desc(), Order.id.desc())
            ).scalars().all()
            orderby = request.args.get("orderby", "")
            direction = "desc" if request.args.get("order") == "desc" else "asc"
            if orderby == "gift_message":
                orders = sorted(orders, key=adapter.sort_key, reverse=direction == "desc")
            return render_template("admin/orders.html", orders=orders, admin_assets=True,
                                   orderby=orderby, direction=direction)

    @app.get("/admin/orders/<int:order_id>")
    @admin_required
    def admin_order(order_id):
        with main_session() as db:
            o = db.get(Order, order_id)
            if not o:
                abort(404)
            return render_template("admin/order.html", order=o,
                                   gift_messages=adapter.collect_for_order(o), admin_assets=True)

    @app.post("/admin/orders/<int:order_id>/status")
    @admin_required
    def admin_order_status(order_id):
        status = request.form.get("status", "")
        if status not in ("completed", "cancelled"):
            abort(400)
        with main_session() as db:
            o = db.get(Order, order_id)
            if not o:
                abort(404)
            o.status = status
            db.commit()
            if status == "completed":
                order_mailer.send("customer_completed_order", o)
            else:
                order_mailer.send("cancelled_order", o)
            log.info(f"Order #{o.id} marked {status} by admin {current_user.id}")
        flash(f"Order #{order_id} marked {status}.", "success")
        return redirect(url_for("admin_order", order_id=order_id))

    @app.post("/admin/orders/<int:order_id>/invoice")
    @admin_required
    def admin_order_invoice(order_id):
        with main_session() as db:
            o = db.get(Order, order_id)
            if not o:
                abort(404)
            sent = order_mailer.send("customer_invoice", o)
        flash("Invoice sent." if sent else "Invoice could not be sent.", "success" if sent else "warning")
        return redirect(url_for("admin_order", order_id=order_id))

    @app.post("/admin/orders/export")
    @admin_required
    def admin_orders_export():
        ids = []
        for v in request.form.getlist("order_ids"):
            try:
                ids.append(int(v))
            except ValueError:
                continue
        if not ids:
            flash("Select at least one order to export.", "warning")
            return redirect(url_for("admin_orders"))
        log.info(f"Exporting gift messages for {len(ids)} orders")

        def rows():
            with main_session() as db:
                orders = db.execute(
                    select(Order).where(Order.id.in_(ids))
                    .options(selectinload(Order.items).selectinload(OrderItem.meta))
                    .order_by(Order.id)
                ).scalars().all()
                yield from generate_csv(orders, adapter)

        return Response(
            stream_with_context(rows()),
            mimetype="text/csv",
            headers={
                "Content-Disposition": f"attachment; filename={export_filename()}",
            },
        )

    # --------------------------- 404 ---------------------------
    @app.errorhandler(404)
    def not_found(e):
        return render_template("404.html"), 404

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=3000, debug=True)
