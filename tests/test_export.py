"""Tests for the gift message CSV export."""

from __future__ import annotations

import csv
import io
from datetime import datetime

from giftshop.export import CSV_HEADER, export_filename, generate_csv
from giftshop.models import Order, OrderItem


def _order(order_id: int, *lines: tuple) -> Order:
    order = Order(id=order_id, name="Ada Lovelace", email="ada@example.com", address="x",
                  total_cents=0, created_at=datetime(2024, 5, 1, 12, 30, 0))
    for i, (label, qty, message) in enumerate(lines, start=1):
        item = OrderItem(id=order_id * 10 + i, product_name=label, quantity=qty)
        if message:
            item.add_meta("_gift_message", message)
        order.items.append(item)
    return order


def _rows(chunks) -> list:
    data = b"".join(chunks).decode("utf-8")
    return list(csv.reader(io.StringIO(data)))


def test_header_only_when_nothing_to_export() -> None:
    rows = _rows(generate_csv([_order(1, ("Mug", 1, None))]))
    assert rows == [CSV_HEADER]
    assert _rows(generate_csv([])) == [CSV_HEADER]


def test_one_row_per_annotated_line() -> None:
    orders = [
        _order(1, ("Mug", 2, "Happy birthday"), ("Cap", 1, None), ("T-Shirt", 1, "Congrats")),
        _order(2, ("Cap", 1, None)),
        _order(3, ("Mug", 1, "Congratulations!!! 🎉")),
    ]
    rows = _rows(generate_csv(orders))
    assert rows[0] == [
        "Order ID", "Order Date", "Customer Name", "Customer Email",
        "Product Name", "Quantity", "Gift Message",
    ]
    assert rows[1:] == [
        ["1", "2024-05-01 12:30:00", "Ada Lovelace", "ada@example.com", "Mug", "2", "Happy birthday"],
        ["1", "2024-05-01 12:30:00", "Ada Lovelace", "ada@example.com", "T-Shirt", "1", "Congrats"],
        ["3", "2024-05-01 12:30:00", "Ada Lovelace", "ada@example.com", "Mug", "1", "Congratulations!!! 🎉"],
    ]


def test_embedded_commas_quotes_and_newlines_are_quoted() -> None:
    message = 'Hi, "Bob"\nLove, Ann'
    raw = b"".join(generate_csv([_order(1, ("Mug", 1, message))])).decode("utf-8")
    assert '"Hi, ""Bob""\nLove, Ann"' in raw
    assert _rows([raw.encode("utf-8")])[1][6] == message


def test_rows_are_streamed_separately() -> None:
    chunks = list(generate_csv([_order(1, ("Mug", 1, "a"), ("Cap", 1, "b"))]))
    assert len(chunks) == 3
    assert all(isinstance(c, bytes) for c in chunks)


def test_export_filename() -> None:
    assert export_filename(datetime(2024, 5, 1, 12, 30, 5)) == "gift-messages-2024-05-01-12-30-05.csv"
