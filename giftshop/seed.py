import os

import bcrypt
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from .config import Settings
from .models import Base, Product, User

demo = [
    dict(title="T-Shirt", slug="t-shirt", description="Soft cotton tee", price_cents=1999,
         image_url="https://picsum.photos/seed/tee/600/600", kind="simple"),
    dict(title="Mug", slug="mug", description="Ceramic mug", price_cents=1299,
         image_url="https://picsum.photos/seed/mug/600/600", kind="simple"),
    dict(title="Cap", slug="cap", description="Adjustable cap", price_cents=1599,
         image_url="https://picsum.photos/seed/cap/600/600", kind="variable"),
    dict(title="E-Gift Card", slug="e-gift-card", description="Delivered by email", price_cents=2500,
         image_url="https://picsum.photos/seed/card/600/600", kind="virtual"),
    dict(title="Recipe E-Book", slug="recipe-e-book", description="PDF download", price_cents=900,
         image_url="https://picsum.photos/seed/book/600/600", kind="downloadable"),
]


def seed(database_url: str, admin_email: str = "admin@example.com", admin_password: str = "changeme") -> int:
    engine = create_engine(database_url, future=True)
    Base.metadata.create_all(engine)
    with Session(engine) as db:
        for d in demo:
            existing = db.execute(select(Product).where(Product.slug == d["slug"])).scalar_one_or_none()
            if existing:
                for k, v in d.items():
                    setattr(existing, k, v)
            else:
                db.add(Product(**d))
        admin = db.execute(select(User).where(User.email == admin_email)).scalar_one_or_none()
        if not admin:
            pw_hash = bcrypt.hashpw(admin_password.encode(), bcrypt.gensalt()).decode()
            db.add(User(email=admin_email, password_hash=pw_hash, is_admin=True))
        db.commit()
    return len(demo)


if __name__ == "__main__":
    n = seed(Settings.from_env().database_url,
             os.getenv("ADMIN_EMAIL", "admin@example.com"),
             os.getenv("ADMIN_PASSWORD", "changeme"))
    print("Seeded products:", n)
