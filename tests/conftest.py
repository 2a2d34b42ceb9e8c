"""Shared fixtures: an app on a throwaway SQLite file with a recording mailer."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import bcrypt
import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from giftshop import create_app
from giftshop.config import GiftMessageOptions, Settings
from giftshop.models import Product, User

PASSWORD = "secret"


class RecordingMailer:
    """Mailer stand-in that keeps every message in memory."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    def send(self, to: str, subject: str, text: str, html: str | None = None) -> bool:
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})
        return True


def make_app(tmp_path: Path, options: GiftMessageOptions | None = None, **overrides: Any):
    """Build an app plus its mailer for the given settings overrides."""

    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'shop.db'}",
        secret_key="test",
        log_file=None,
        alert_email_to="admin@example.com",
        **overrides,
    )
    mailer = RecordingMailer()
    app = create_app(settings, options, mailer=mailer)
    app.config["TESTING"] = True
    seed(app)
    return app, mailer


def seed(app) -> None:
    """Insert the demo catalogue, a shopper and an admin."""

    pw_hash = bcrypt.hashpw(PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
    with Session(app.extensions["giftshop"]["engine"]) as db:
        db.add_all([
            Product(title="Mug", slug="mug", price_cents=1299, kind="simple"),
            Product(title="Cap", slug="cap", price_cents=1599, kind="variable"),
            Product(title="T-Shirt", slug="t-shirt", price_cents=1999, kind="simple"),
            Product(title="Recipe E-Book", slug="recipe-e-book", price_cents=900, kind="downloadable"),
            User(email="shopper@example.com", password_hash=pw_hash),
            User(email="admin@example.com", password_hash=pw_hash, is_admin=True),
        ])
        db.commit()


@pytest.fixture
def app_and_mailer(tmp_path: Path):
    return make_app(tmp_path)


@pytest.fixture
def app(app_and_mailer):
    return app_and_mailer[0]


@pytest.fixture
def mailer(app_and_mailer) -> RecordingMailer:
    return app_and_mailer[1]


@pytest.fixture
def db(app):
    with Session(app.extensions["giftshop"]["engine"]) as session:
        yield session


def login(client, email: str = "shopper@example.com") -> None:
    resp = client.post("/login", data={"email": email, "password": PASSWORD})
    assert resp.status_code == 302


@pytest.fixture
def client(app):
    c = app.test_client()
    login(c)
    return c


@pytest.fixture
def admin_client(app):
    c = app.test_client()
    login(c, "admin@example.com")
    return c


def product_id(app, slug: str) -> int:
    with Session(app.extensions["giftshop"]["engine"]) as db:
        return db.execute(select(Product.id).where(Product.slug == slug)).scalar_one()


def user_id(app, email: str = "shopper@example.com") -> int:
    with Session(app.extensions["giftshop"]["engine"]) as db:
        return db.execute(select(User.id).where(User.email == email)).scalar_one()
