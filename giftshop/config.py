import os
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from dotenv import load_dotenv

load_dotenv()

DEFAULT_MAX_LENGTH = 150
DEFAULT_META_KEY = "_gift_message"

# customer-facing emails that carry the gift message section
DEFAULT_EMAIL_TYPES = (
    "customer_completed_order",
    "customer_invoice",
    "customer_processing_order",
)


@dataclass
class Settings:
    database_url: str = "sqlite:///ecommerce.db"
    site_name: str = "My Shop"
    currency: str = "USD"
    secret_key: str = "dev-key"
    public_base_url: str = "http://localhost:3000"
    slack_webhook_url: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    alert_email_to: Optional[str] = None
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    gift_message_max_length: int = DEFAULT_MAX_LENGTH
    log_file: Optional[str] = "app.log"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///ecommerce.db"),
            site_name=os.getenv("SITE_NAME", "My Shop"),
            currency=os.getenv("CURRENCY", "USD"),
            secret_key=os.getenv("FLASK_SECRET_KEY", "dev-key"),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:3000"),
            slack_webhook_url=os.getenv("SLACK_WEBHOOK_URL"),
            smtp_host=os.getenv("SMTP_HOST"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER"),
            smtp_pass=os.getenv("SMTP_PASS"),
            alert_email_to=os.getenv("ALERT_EMAIL_TO"),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
            gift_message_max_length=int(
                os.getenv("GIFT_MESSAGE_MAX_LENGTH", str(DEFAULT_MAX_LENGTH))
            ),
            log_file=os.getenv("LOG_FILE", "app.log") or None,
        )


@dataclass
class GiftMessageOptions:
    """Integrator overrides for the gift message pipeline.

    Every field has a working default; pass a customised instance to
    ``create_app`` instead of patching the components.
    """

    max_length: int = DEFAULT_MAX_LENGTH
    # product -> bool; replaces the physical-kinds default
    eligible: Optional[Callable] = None
    meta_key: str = DEFAULT_META_KEY
    # text -> RuleOutcome | bool | str | None
    rules: Sequence[Callable] = ()
    # (Markup, context) -> Markup
    formatter: Optional[Callable] = None
    email_types: Sequence[str] = field(default_factory=lambda: DEFAULT_EMAIL_TYPES)
    show_in_admin_emails: bool = False
