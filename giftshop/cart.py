import hashlib
import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import CartItem, Product

log = logging.getLogger("shop.cart")


def line_token_for(product_id: int, gift_message: str = "") -> str:
    """Unannotated lines share a per-product token so they merge; every
    annotated add gets a fresh token so it stays its own line."""
    if not gift_message:
        return f"p{product_id}"
    seed = f"{product_id}:{gift_message}:{uuid.uuid4().hex}"
    return "g" + hashlib.sha256(seed.encode("utf-8")).hexdigest()[:40]


class CartAnnotationStore:
    """Gift messages held against cart lines for the current user."""

    def __init__(self, db: Session, user_id: int):
        self.db = db
        self.user_id = user_id

    def line(self, line_token: str) -> Optional[CartItem]:
        return self.db.execute(
            select(CartItem).where(CartItem.user_id == self.user_id,
                                   CartItem.line_token == line_token)
        ).scalar_one_or_none()

    def put(self, line_token: str, text: str):
        row = self.line(line_token)
        if row is None:
            raise KeyError(line_token)
        row.gift_message = text or None

    def get(self, line_token: str) -> Optional[str]:
        row = self.line(line_token)
        if row is None or not row.gift_message:
            return None
        return row.gift_message

    def has_any(self) -> bool:
        return self.db.execute(
            select(CartItem.id).where(CartItem.user_id == self.user_id,
                                      CartItem.gift_message.is_not(None),
                                      CartItem.gift_message != "")
        ).first() is not None


class Cart:
    def __init__(self, db: Session, user_id: int):
        self.db = db
        self.user_id = user_id
        self.annotations = CartAnnotationStore(db, user_id)

    def lines(self) -> List[CartItem]:
        return self.db.execute(
            select(CartItem).where(CartItem.user_id == self.user_id).order_by(CartItem.id)
        ).scalars().all()

    def quantity(self) -> int:
        return sum(line.quantity for line in self.lines())

    def add_line(self, product: Product, quantity: int = 1, gift_message: str = "") -> CartItem:
        qty = max(1, quantity)
        token = line_token_for(product.id, gift_message)
        row = None if gift_message else self.annotations.line(token)
        if row:
            row.quantity += qty
            return row
        row = CartItem(user_id=self.user_id, product_id=product.id, quantity=qty, line_token=token)
        self.db.add(row)
        self.db.flush()
        if gift_message:
            self.annotations.put(token, gift_message)
        log.info(f"Cart line {token} added for user {self.user_id} (product {product.id} x{qty})")
        return row

    def update_quantities(self, quantities: Dict[str, int]):
        for token, q in quantities.items():
            row = self.annotations.line(token)
            if not row:
                continue
            if q <= 0:
                self.db.delete(row)
            else:
                row.quantity = q

    def remove(self, line_token: str) -> bool:
        row = self.annotations.line(line_token)
        if not row:
            return False
        self.db.delete(row)
        return True

    def clear(self):
        for row in self.lines():
            self.db.delete(row)
