import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from .cart import Cart, CartAnnotationStore
from .config import DEFAULT_META_KEY
from .models import CartItem, Order, OrderItem

log = logging.getLogger("shop.orders")


@dataclass
class Customer:
    name: str
    email: str
    address: str


class EmptyCartError(Exception):
    pass


class LineItemCommitter:
    """Copies a cart line's gift message onto its order line.

    Runs once per line inside the order-creation transaction; nothing is
    written when the line carries no message.
    """

    def __init__(self, store: CartAnnotationStore, meta_key: str = DEFAULT_META_KEY):
        self.store = store
        self.meta_key = meta_key

    def commit(self, cart_line: CartItem, order_item: OrderItem) -> bool:
        text = self.store.get(cart_line.line_token)
        if not text:
            return False
        order_item.add_meta(self.meta_key, text)
        return True


def place_order(db: Session, user_id: int, customer: Customer, meta_key: str = DEFAULT_META_KEY,
                clear_cart: bool = True) -> Order:
    """Turn the user's cart into a pending order.

    The cart is emptied unless ``clear_cart`` is false; a payment flow that
    can be abandoned keeps it until payment is confirmed. The caller owns the
    transaction: on rollback neither the order nor any gift message is
    persisted.
    """
    cart = Cart(db, user_id)
    lines = cart.lines()
    if not lines:
        raise EmptyCartError("Cart is empty")

    committer = LineItemCommitter(cart.annotations, meta_key)
    order = Order(user_id=user_id, email=customer.email, name=customer.name,
                  address=customer.address, total_cents=0, status="pending")
    db.add(order)

    total = 0
    committed = 0
    for line in lines:
        p = line.product
        if p is None:
            log.warning(f"Cart line {line.line_token} points at a missing product, skipping")
            continue
        item = OrderItem(product_id=p.id, product_name=p.title,
                         quantity=line.quantity, unit_price_cents=p.price_cents)
        order.items.append(item)
        if committer.commit(line, item):
            committed += 1
        total += p.price_cents * line.quantity
    order.total_cents = total
    db.flush()

    if clear_cart:
        cart.clear()
    log.info(f"Order #{order.id} created for user {user_id}: {len(lines)} lines, {committed} gift messages")
    return order
