from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# product kinds that ship something physical / personalisable
PHYSICAL_KINDS = ("simple", "variable")
PRODUCT_KINDS = PHYSICAL_KINDS + ("virtual", "downloadable")

ORDER_STATUSES = ("pending", "processing", "completed", "cancelled", "failed")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String(200), unique=True, nullable=False)
    password_hash = Column(String(200), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    carts = relationship("CartItem", back_populates="user", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="user")


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    slug = Column(String(200), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    image_url = Column(String(500), nullable=True)
    kind = Column(String(32), nullable=False, default="simple")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("user_id", "line_token", name="uq_cart_line"),)
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    # distinguishes lines of the same product carrying different messages
    line_token = Column(String(64), nullable=False)
    gift_message = Column(Text, nullable=True)
    user = relationship("User", back_populates="carts")
    product = relationship("Product")


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    email = Column(String(200), nullable=False)
    name = Column(String(200), nullable=False)
    address = Column(Text, nullable=False)
    total_cents = Column(Integer, nullable=False, default=0)
    status = Column(String(50), nullable=False, default="pending")  # see ORDER_STATUSES
    stripe_session_id = Column(String(128))
    created_at = Column(DateTime, default=datetime.utcnow)
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan",
                         order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    product_name = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price_cents = Column(Integer, nullable=False, default=0)
    order = relationship("Order", back_populates="items")
    product = relationship("Product")
    meta = relationship("OrderItemMeta", back_populates="item", cascade="all, delete-orphan",
                        order_by="OrderItemMeta.id")

    def get_meta(self, key: str):
        for m in self.meta:
            if m.meta_key == key:
                return m.meta_value
        return None

    def add_meta(self, key: str, value: str):
        self.meta.append(OrderItemMeta(meta_key=key, meta_value=value))


class OrderItemMeta(Base):
    """Generic key/value attributes attached to an order line."""
    __tablename__ = "order_item_meta"
    __table_args__ = (UniqueConstraint("order_item_id", "meta_key", name="uq_item_meta"),)
    id = Column(Integer, primary_key=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False)
    meta_key = Column(String(100), nullable=False)
    meta_value = Column(Text, nullable=True)
    item = relationship("OrderItem", back_populates="meta")
