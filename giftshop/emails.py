import logging
from typing import Optional, Sequence

from markupsafe import Markup

from .config import DEFAULT_EMAIL_TYPES
from .display import DisplayAdapter
from .models import Order

log = logging.getLogger("shop.emails")

# email id -> (subject template, sent to admin)
EMAIL_TYPES = {
    "customer_processing_order": ("Your {site} order #{id} has been received", False),
    "customer_completed_order": ("Your {site} order #{id} is complete", False),
    "customer_invoice": ("Invoice for order #{id} from {site}", False),
    "new_order": ("[{site}] New order #{id}", True),
    "cancelled_order": ("[{site}] Order #{id} cancelled", True),
    "failed_order": ("[{site}] Order #{id} failed", True),
}

FONT = "'Helvetica Neue', Helvetica, Roboto, Arial, sans-serif"
SECTION_TITLE = "Gift Messages"


class GiftMessageEmailSection:
    def __init__(self, adapter: DisplayAdapter, email_types: Sequence[str] = DEFAULT_EMAIL_TYPES,
                 show_in_admin_emails: bool = False):
        self.adapter = adapter
        self.email_types = tuple(email_types)
        self.show_in_admin_emails = show_in_admin_emails

    def should_include(self, email_id: str, sent_to_admin: bool = False) -> bool:
        if sent_to_admin:
            return self.show_in_admin_emails
        return email_id in self.email_types

    def render_plain(self, order: Order) -> str:
        entries = self.adapter.collect_for_order(order)
        if not entries:
            return ""
        out = ["", SECTION_TITLE.upper(), "=" * len(SECTION_TITLE), ""]
        for e in entries:
            label = e.line_label + (f" (×{e.quantity})" if e.quantity > 1 else "")
            out.append(label + ":")
            out.append(self.adapter.format(e.text) + "\n")
        out.append("-" * 50)
        return "\n".join(out) + "\n\n"

    def render_html(self, order: Order) -> Markup:
        entries = self.adapter.collect_for_order(order)
        if not entries:
            return Markup("")
        parts = [Markup(
            '<div class="gift-messages-email-section">'
            '<h2 style="color: #557da1; font-family: {f}; font-size: 18px; font-weight: bold; '
            'margin: 16px 0 8px;">{t}</h2><div class="gift-messages-list" style="margin-bottom: 40px;">'
        ).format(f=Markup(FONT), t=SECTION_TITLE)]
        for e in entries:
            qty = Markup(' <span style="font-weight: normal; color: #666;">(×{})</span>').format(e.quantity) \
                if e.quantity > 1 else ""
            parts.append(Markup(
                '<div class="gift-message-item" style="margin-bottom: 20px; padding: 15px; '
                'background-color: #f8f8f8; border-left: 4px solid #557da1;">'
                '<h3 style="color: #333; font-family: {f}; font-size: 14px; margin: 0 0 8px;">{label}{qty}</h3>'
                '<div class="gift-message-content" style="color: #636363; font-family: {f}; font-size: 14px; '
                'font-style: italic; line-height: 150%;">{body}</div></div>'
            ).format(f=Markup(FONT), label=e.line_label, qty=qty,
                     body=self.adapter.format(e.text, "web-html", "email")))
        parts.append(Markup("</div></div>"))
        return Markup("").join(parts)


class OrderMailer:
    """Builds and sends the order emails."""

    def __init__(self, mailer, section: GiftMessageEmailSection, site_name: str = "My Shop",
                 admin_email: Optional[str] = None, format_money=None):
        self.mailer = mailer
        self.section = section
        self.site_name = site_name
        self.admin_email = admin_email
        self.format_money = format_money or (lambda c: f"{c/100:.2f}")

    def subject(self, email_id: str, order: Order) -> str:
        return EMAIL_TYPES[email_id][0].format(site=self.site_name, id=order.id)

    def render(self, email_id: str, order: Order):
        """Return ``(text, html)`` bodies for ``email_id``."""
        sent_to_admin = EMAIL_TYPES[email_id][1]
        lines = [f"Order #{order.id} ({order.status})", ""]
        rows = []
        for item in order.items:
            lines.append(f"{item.product_name} × {item.quantity}  "
                         f"{self.format_money(item.unit_price_cents * item.quantity)}")
            msg = self.adapter.present(item)
            if msg:
                lines.append(f"Gift Message: {msg}")
            rows.append(Markup("<tr><td>{name}{block}</td><td>{q}</td><td>{price}</td></tr>").format(
                name=item.product_name, q=item.quantity,
                block=self.adapter.block(item, "email"),
                price=self.format_money(item.unit_price_cents * item.quantity)))
        lines += ["", f"Total: {self.format_money(order.total_cents)}"]
        text = "\n".join(lines) + "\n"

        gift_html = Markup("")
        if self.section.should_include(email_id, sent_to_admin):
            text += self.section.render_plain(order)
            gift_html = self.section.render_html(order)

        html = Markup(
            "<h1>{site}</h1><p>Order #{id} ({status})</p>"
            '<table class="order-items gift-message-email-table">'
            "<thead><tr><th>Product</th><th>Qty</th><th>Price</th></tr></thead>"
            "<tbody>{rows}</tbody></table><p>Total: <b>{total}</b></p>{gift}"
        ).format(site=self.site_name, id=order.id, status=order.status,
                 rows=Markup("").join(rows), total=self.format_money(order.total_cents), gift=gift_html)
        return text, str(html)

    @property
    def adapter(self) -> DisplayAdapter:
        return self.section.adapter

    def send(self, email_id: str, order: Order) -> bool:
        sent_to_admin = EMAIL_TYPES[email_id][1]
        to = self.admin_email if sent_to_admin else order.email
        if not to:
            log.info(f"No recipient for {email_id} on order #{order.id}")
            return False
        text, html = self.render(email_id, order)
        try:
            return bool(self.mailer.send(to, self.subject(email_id, order), text, html))
        except Exception:
            log.exception(f"Sending {email_id} for order #{order.id} failed")
            return False
