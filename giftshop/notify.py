import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import requests

from .config import Settings

log = logging.getLogger("shop")


# ---------- Logging ----------
def setup_logging(log_file: Optional[str] = "app.log") -> logging.Logger:
    log.setLevel(logging.INFO)
    if log.handlers:
        return log
    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        log.addHandler(fh)
    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    log.addHandler(ch)
    return log


# ---------- Mail ----------
class Mailer:
    """SMTP sender. Without SMTP_HOST every send is logged and skipped."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
        s = self.settings
        if not (s.smtp_host and to):
            log.info(f"SMTP not configured, skipping email '{subject}' to {to}")
            return False
        if html:
            m = MIMEMultipart("alternative")
            m.attach(MIMEText(text, "plain", "utf-8"))
            m.attach(MIMEText(html, "html", "utf-8"))
        else:
            m = MIMEText(text, "plain", "utf-8")
        m["Subject"] = subject
        m["From"] = s.smtp_user or "noreply@localhost"
        m["To"] = to
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=5) as conn:
            conn.starttls()
            if s.smtp_user and s.smtp_pass:
                conn.login(s.smtp_user, s.smtp_pass)
            conn.send_message(m)
        return True


# ---------- Notify ----------
class Notifier:
    def __init__(self, settings: Settings, mailer: Mailer):
        self.settings = settings
        self.mailer = mailer

    def __call__(self, msg: str):
        s = self.settings
        try:
            if s.slack_webhook_url:
                requests.post(s.slack_webhook_url, json={"text": msg}, timeout=5)
        except Exception as e:
            log.warning(f"Slack notify failed: {e}")
        try:
            if s.alert_email_to:
                self.mailer.send(s.alert_email_to, f"[{s.site_name}] Notification", msg)
        except Exception as e:
            log.warning(f"Email notify failed: {e}")
