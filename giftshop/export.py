import csv
import io
from datetime import datetime
from typing import Iterable, Iterator, Optional

from .display import DisplayAdapter
from .models import Order

CSV_HEADER = ["Order ID", "Order Date", "Customer Name", "Customer Email",
              "Product Name", "Quantity", "Gift Message"]
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def export_filename(now: Optional[datetime] = None) -> str:
    return "gift-messages-" + (now or datetime.now()).strftime("%Y-%m-%d-%H-%M-%S") + ".csv"


def generate_csv(orders: Iterable[Order], adapter: Optional[DisplayAdapter] = None) -> Iterator[bytes]:
    """Yield the gift message export one encoded row at a time.

    One row per (order, line with a gift message); orders without messages
    contribute nothing but the header is always written.
    """
    adapter = adapter or DisplayAdapter()
    buf = io.StringIO()
    writer = csv.writer(buf)

    def flush() -> bytes:
        data = buf.getvalue().encode("utf-8")
        buf.seek(0)
        buf.truncate(0)
        return data

    writer.writerow(CSV_HEADER)
    yield flush()
    for order in orders:
        if order is None:
            continue
        created = order.created_at.strftime(DATE_FORMAT) if order.created_at else ""
        for entry in adapter.collect_for_order(order):
            writer.writerow([order.id, created, order.name, order.email,
                             entry.line_label, entry.quantity, entry.text])
            yield flush()
