"""Tests for rendering committed gift messages."""

from __future__ import annotations

from markupsafe import Markup

from giftshop.display import DisplayAdapter, nl2br, preview
from giftshop.models import CartItem, Order, OrderItem


def _item(item_id: int, label: str, message: str | None = None, qty: int = 1) -> OrderItem:
    item = OrderItem(id=item_id, product_name=label, quantity=qty, unit_price_cents=100)
    if message is not None:
        item.add_meta("_gift_message", message)
    return item


def _order(*items: OrderItem) -> Order:
    order = Order(id=1, name="Ada", email="ada@example.com", address="x", total_cents=0)
    order.items.extend(items)
    return order


def test_plain_text_is_verbatim_and_idempotent() -> None:
    text = "Congratulations!!! 🎉\nSee you soon"
    item = _item(1, "Mug", text)
    adapter = DisplayAdapter()
    assert adapter.present(item) == text
    assert adapter.present(item, "plain-text") == text
    assert adapter.present(item, "plain-text") == text


def test_missing_message_is_empty() -> None:
    adapter = DisplayAdapter()
    assert adapter.present(_item(1, "Mug")) == ""
    assert str(adapter.present(_item(1, "Mug"), "web-html")) == ""
    assert adapter.present(None) == ""  # type: ignore[arg-type]
    assert str(adapter.block(_item(1, "Mug"))) == ""


def test_only_the_configured_key_is_read() -> None:
    """Other attributes on the line are never shown as the message."""

    item = _item(1, "Mug")
    item.add_meta("_gift_message_display", "stale")
    assert DisplayAdapter().present(item) == ""
    assert DisplayAdapter(meta_key="_gift_message_display").present(item) == "stale"


def test_web_html_escapes_and_breaks_lines() -> None:
    item = _item(1, "Mug", "Line one\nLine <two> & more")
    html = DisplayAdapter().present(item, "web-html")
    assert isinstance(html, Markup)
    assert str(html) == "Line one<br>\nLine &lt;two&gt; &amp; more"


def test_context_never_changes_content() -> None:
    item = _item(1, "Mug", "Same text")
    adapter = DisplayAdapter()
    assert adapter.present(item, "web-html", "cart") == adapter.present(item, "web-html", "admin")
    assert "gift-message-order-confirmation" in adapter.css_class("order-confirmation")
    assert adapter.css_class() == "gift-message-display"


def test_formatter_wraps_output() -> None:
    calls = []

    def formatter(html: Markup, context: str | None) -> Markup:
        calls.append(context)
        return Markup("<em>{}</em>").format(html)

    adapter = DisplayAdapter(formatter=formatter)
    out = adapter.present(_item(1, "Mug", "Hi <b>"), "web-html", "email")
    assert str(out) == "<em>Hi &lt;b&gt;</em>"
    assert calls == ["email"]
    assert adapter.present(_item(1, "Mug", "Hi"), "plain-text") == "Hi"


def test_failing_formatter_falls_back_to_escaped_text() -> None:
    """Display never raises; the message is still shown."""

    def formatter(html: Markup, context: str | None) -> Markup:
        raise RuntimeError("boom")

    adapter = DisplayAdapter(formatter=formatter)
    out = adapter.present(_item(1, "Mug", "Hi\nthere"), "web-html")
    assert str(out) == "Hi<br>\nthere"


def test_unknown_surface_degrades_to_plain_text() -> None:
    assert DisplayAdapter().present(_item(1, "Mug", "Hi"), "sms") == "Hi"


def test_block_markup() -> None:
    html = str(DisplayAdapter().block(_item(1, "Mug", "Hi"), "my-account"))
    assert 'class="gift-message-display gift-message-my-account"' in html
    assert '<span class="gift-message-text">Hi</span>' in html


def test_present_cart_line() -> None:
    adapter = DisplayAdapter()
    line = CartItem(line_token="g1", gift_message="Hi\nyou")
    assert str(adapter.present_cart_line(line)) == "Hi<br>\nyou"
    assert adapter.present_cart_line(CartItem(line_token="p1"), "plain-text") == ""


def test_collect_for_order_skips_and_keeps_order() -> None:
    order = _order(_item(1, "A", "one"), _item(2, "B"), _item(3, "C", "three", qty=2))
    entries = DisplayAdapter().collect_for_order(order)
    assert [(e.item_id, e.line_label, e.quantity, e.text) for e in entries] == [
        (1, "A", 1, "one"),
        (3, "C", 2, "three"),
    ]


def test_collect_for_order_does_not_dedupe() -> None:
    order = _order(_item(1, "A", "same"), _item(2, "A", "same"))
    assert len(DisplayAdapter().collect_for_order(order)) == 2


def test_order_has_messages() -> None:
    adapter = DisplayAdapter()
    assert adapter.order_has_messages(_order(_item(1, "A"), _item(2, "B", "x")))
    assert not adapter.order_has_messages(_order(_item(1, "A")))
    assert adapter.collect_for_order(None) == []  # type: ignore[arg-type]


def test_preview_truncates() -> None:
    assert preview("short") == "short"
    assert preview("x" * 50) == "x" * 50
    assert preview("x" * 60) == "x" * 50 + "..."
    assert preview("abcdef", 3) == "abc..."


def test_column_summary() -> None:
    adapter = DisplayAdapter()
    assert adapter.column_summary(_order(_item(1, "A"))) == "–"
    assert adapter.column_summary(_order(_item(1, "A", "y" * 70))) == "y" * 50 + "..."
    assert adapter.column_summary(_order(_item(1, "A", "a"), _item(2, "B", "b"))) == "2 messages"


def test_nl2br() -> None:
    assert str(nl2br("a\nb")) == "a<br>\nb"


def test_copy_text_joins_all_messages() -> None:
    order = _order(_item(1, "Mug", "Happy birthday", qty=2), _item(2, "Cap"), _item(3, "T-Shirt", "Congrats"))
    assert DisplayAdapter().copy_text(order) == "Mug (×2): Happy birthday\n\nT-Shirt (×1): Congrats"
    assert DisplayAdapter().copy_text(_order(_item(1, "Cap"))) == ""


def test_sort_key_uses_first_message() -> None:
    adapter = DisplayAdapter()
    assert adapter.sort_key(_order(_item(1, "Cap"), _item(2, "Mug", "Zebra"), _item(3, "Mug", "Apple"))) == "zebra"
    assert adapter.sort_key(_order(_item(1, "Cap"))) == ""
