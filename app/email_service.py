# app/email_service.py
import logging
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from html import escape
from typing import Optional

import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


class EmailDeliveryError(RuntimeError):
    pass


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    text: str
    html: Optional[str] = None


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    # stringa vuota = non impostata
    return os.getenv(name) or default


# ------------------------
# PROVIDER: RESEND (HTTP)
# ------------------------
def _deliver_resend(mail: OutgoingEmail) -> None:
    api_key = _env("RESEND_API_KEY")
    sender = _env("FROM_EMAIL")
    if not api_key or not sender:
        raise EmailDeliveryError("RESEND_API_KEY / FROM_EMAIL not configured")

    body = {"from": sender, "to": [mail.to], "subject": mail.subject, "text": mail.text}
    if mail.html:
        body["html"] = mail.html
    if _env("REPLY_TO_EMAIL"):
        body["reply_to"] = _env("REPLY_TO_EMAIL")

    resp = requests.post(
        RESEND_URL,
        headers={"Authorization": f"Bearer {api_key}"},
        json=body,
        timeout=15,
    )
    if resp.status_code >= 300:
        raise EmailDeliveryError(f"Resend rejected the message: {resp.status_code} {resp.text}")


# ------------------------
# PROVIDER: SMTP
# ------------------------
def _deliver_smtp(mail: OutgoingEmail) -> None:
    host = _env("SMTP_HOST")
    user = _env("SMTP_USER")
    sender = _env("SMTP_FROM", user)
    if not host or not sender:
        raise EmailDeliveryError("SMTP_HOST / SMTP_FROM not configured")

    sender_name = _env("SMTP_FROM_NAME")
    msg = EmailMessage()
    msg["From"] = f"{sender_name} <{sender}>" if sender_name else sender
    msg["To"] = mail.to
    msg["Subject"] = mail.subject
    msg.set_content(mail.text)
    if mail.html:
        msg.add_alternative(mail.html, subtype="html")

    # le app password Gmail arrivano spesso con gli spazi
    password = (_env("SMTP_PASS") or "").replace(" ", "")

    with smtplib.SMTP(host, int(_env("SMTP_PORT", "587")), timeout=20) as server:
        if _env("SMTP_TLS", "1") == "1":
            server.starttls()
        if user and password:
            server.login(user, password)
        server.send_message(msg)


_PROVIDERS = {
    "resend": _deliver_resend,
    "smtp": _deliver_smtp,
}


def deliver(mail: OutgoingEmail) -> None:
    """
    EMAIL_ENABLED=1 per inviare davvero; altrimenti si logga e basta (dev/test).
    EMAIL_PROVIDER sceglie il canale (resend | smtp, default smtp).
    """
    if _env("EMAIL_ENABLED", "0") != "1":
        logger.info("EMAIL: disabled, skipping | to=%s | subject=%s", mail.to, mail.subject)
        return

    provider = (_env("EMAIL_PROVIDER", "smtp")).strip().lower()
    send = _PROVIDERS.get(provider)
    if send is None:
        raise EmailDeliveryError(f"Unknown EMAIL_PROVIDER '{provider}'")

    send(mail)
    logger.info("EMAIL: sent | provider=%s | to=%s", provider, mail.to)


def _money(v) -> str:
    try:
        return f"{float(v):,.2f}"
    except (TypeError, ValueError):
        return str(v)


# =================================================
# PAYOUT PAID: una sola volta per (merchant, ciclo)
# =================================================
def send_payout_paid_email(
    to_email: str,
    merchant_name: str,
    settlement_cycle: str,
    total_orders: int,
    total_revenue,
    commission,
    payable,
    owner_name: Optional[str] = None,
) -> None:
    greeting = f"Hello {owner_name}," if owner_name else "Hello,"
    details = [
        ("Settlement cycle", settlement_cycle),
        ("Orders", str(total_orders)),
        ("Gross revenue", _money(total_revenue)),
        ("Platform commission", _money(commission)),
        ("Amount paid", _money(payable)),
    ]

    text = "\n".join(
        [greeting, "", f"The payout for {merchant_name} has been marked as PAID.", ""]
        + [f"{label}: {value}" for label, value in details]
        + ["", "Reply to this email if something does not add up.", "", "MessPay Team"]
    )

    rows = "".join(
        f"<tr><td style=\"color:#666;padding-right:12px;\">{escape(label)}</td>"
        f"<td><b>{escape(value)}</b></td></tr>"
        for label, value in details
    )
    html = (
        "<div style=\"font-family:Arial,Helvetica,sans-serif;font-size:14px;color:#111;\">"
        f"<p>{escape(greeting)}</p>"
        f"<p>The payout for <b>{escape(merchant_name)}</b> has been marked as <b>PAID</b>.</p>"
        f"<table style=\"border:1px solid #e5e5e5;padding:12px;margin:16px 0;\">{rows}</table>"
        "<p style=\"color:#444;\">MessPay Team</p>"
        "</div>"
    )

    deliver(
        OutgoingEmail(
            to=to_email,
            subject=f"MessPay: payout for {settlement_cycle} completed",
            text=text,
            html=html,
        )
    )
