"""Read side of the gift message pipeline.

Every surface (thank-you page, account page, cart, admin, emails, CSV) reads
committed messages through :class:`DisplayAdapter`. Display is best effort:
a failing formatter falls back to the escaped text and never raises.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from markupsafe import Markup, escape

from .config import DEFAULT_META_KEY
from .models import CartItem, Order, OrderItem

log = logging.getLogger("shop.display")

PLAIN_TEXT = "plain-text"
WEB_HTML = "web-html"
SURFACES = (PLAIN_TEXT, WEB_HTML)


@dataclass(frozen=True)
class GiftMessageEntry:
    item_id: int
    line_label: str
    quantity: int
    text: str


def nl2br(text: str) -> Markup:
    return Markup("<br>\n").join(escape(text).split("\n"))


def preview(text: str, length: int = 50) -> str:
    text = (text or "").strip()
    if len(text) <= length:
        return text
    return text[:length] + "..."


class DisplayAdapter:
    def __init__(self, meta_key: str = DEFAULT_META_KEY, formatter: Optional[Callable] = None,
                 preview_length: int = 50):
        self.meta_key = meta_key
        self.formatter = formatter
        self.preview_length = preview_length

    def message_for(self, order_item: OrderItem) -> str:
        if order_item is None:
            return ""
        return order_item.get_meta(self.meta_key) or ""

    def present(self, order_item: OrderItem, surface: str = PLAIN_TEXT, context: Optional[str] = None):
        return self.format(self.message_for(order_item), surface, context)

    def present_cart_line(self, cart_line: CartItem, surface: str = WEB_HTML, context: Optional[str] = None):
        text = (cart_line.gift_message or "") if cart_line is not None else ""
        return self.format(text, surface, context)

    def format(self, text: str, surface: str = PLAIN_TEXT, context: Optional[str] = None):
        if surface not in SURFACES:
            log.warning(f"Unknown display surface {surface!r}, using {PLAIN_TEXT}")
            surface = PLAIN_TEXT
        if surface == PLAIN_TEXT:
            return text
        if not text:
            return Markup("")
        html = nl2br(text)
        if self.formatter is None:
            return html
        try:
            return Markup(self.formatter(html, context))
        except Exception:
            log.exception("Gift message formatter failed, showing unformatted text")
            return html

    def css_class(self, context: Optional[str] = None) -> str:
        cls = "gift-message-display"
        if context:
            cls += " gift-message-" + "".join(c if c.isalnum() or c in "-_" else "-" for c in context)
        return cls

    def block(self, order_item: OrderItem, context: Optional[str] = None) -> Markup:
        """Per-line ``Gift Message: ...`` block for HTML order tables."""
        body = self.present(order_item, WEB_HTML, context)
        if not body:
            return Markup("")
        return Markup('<div class="{}"><strong>Gift Message:</strong> '
                      '<span class="gift-message-text">{}</span></div>').format(self.css_class(context), body)

    def collect_for_order(self, order: Order) -> List[GiftMessageEntry]:
        if order is None:
            return []
        entries = []
        for item in order.items:
            text = self.message_for(item)
            if text:
                entries.append(GiftMessageEntry(item.id, item.product_name, item.quantity, text))
        return entries

    def order_has_messages(self, order: Order) -> bool:
        return any(self.message_for(item) for item in (order.items if order else []))

    def preview(self, text: str) -> str:
        return preview(text, self.preview_length)

    def copy_text(self, order: Order) -> str:
        """All of an order's messages as one clipboard-ready block."""
        return "\n\n".join(f"{e.line_label} (×{e.quantity}): {e.text}" for e in self.collect_for_order(order))

    def sort_key(self, order: Order) -> str:
        # orders without messages sort first
        entries = self.collect_for_order(order)
        return entries[0].text.casefold() if entries else ""

    def column_summary(self, order: Order) -> str:
        entries = self.collect_for_order(order)
        if not entries:
            return "–"
        if len(entries) == 1:
            return self.preview(entries[0].text)
        return f"{len(entries)} messages"
