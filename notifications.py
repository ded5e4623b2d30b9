"""
Transactional email.

`SmtpMailer` delivers messages; `Notifier` builds them. Delivery is
best-effort: every public Notifier method logs and swallows failures so that
callers never see a mail error.
"""

import smtplib
from email.message import EmailMessage
from html import escape
from typing import Iterable, List, Optional, Union
from urllib.parse import quote

import structlog

from settings import Settings

logger = structlog.get_logger(__name__)


class MailNotConfigured(RuntimeError):
    pass


class SmtpMailer:
    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to: Union[str, Iterable[str]], subject: str, html: str, text: Optional[str] = None) -> None:
        s = self.settings
        if not s.smtp_configured:
            raise MailNotConfigured("SMTP configuration is missing. Set SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS.")

        recipients = [to] if isinstance(to, str) else list(to)
        msg = EmailMessage()
        msg["From"] = s.mail_from
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.set_content(text or "")
        msg.add_alternative(html, subtype="html")

        if s.smtp_port == 465:
            with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds) as smtp:
                smtp.login(s.smtp_user, s.smtp_pass)
                smtp.send_message(msg)
        else:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds) as smtp:
                smtp.starttls()
                smtp.login(s.smtp_user, s.smtp_pass)
                smtp.send_message(msg)


def _money(value: float) -> str:
    return f"${value:,.2f}"


def _item_rows(items: List[dict]) -> str:
    rows = []
    for item in items:
        rows.append(
            "<tr>"
            f"<td>{escape(item['name'])}</td>"
            f"<td style=\"text-align:center\">x{item['quantity']}</td>"
            f"<td style=\"text-align:right\">{_money(item['price'] * item['quantity'])}</td>"
            "</tr>"
        )
    return "".join(rows)


def _item_lines(items: List[dict]) -> str:
    return "\n".join(f"{i['name']} x{i['quantity']} - {_money(i['price'] * i['quantity'])}" for i in items)


def _format_address(address: Optional[dict]) -> str:
    if not address:
        return ""
    parts = [address.get("address"), address.get("city"), address.get("province"), address.get("postal_code")]
    return ", ".join(p for p in parts if p)


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"></head>"
        "<body style=\"font-family:sans-serif;background:#f5f5f5\">"
        "<div style=\"max-width:600px;margin:0 auto;background:#fff\">"
        f"<h1 style=\"padding:24px;margin:0\">{escape(title)}</h1>"
        f"<div style=\"padding:24px\">{body}</div>"
        "<p style=\"padding:24px;color:#6b7280;font-size:12px\">This is an automated message. Please do not reply.</p>"
        "</div></body></html>"
    )


def build_reset_password_email(token: str, frontend_url: str, expiry_minutes: int):
    reset_link = f"{frontend_url.rstrip('/')}/reset-password?token={quote(token)}"
    subject = "Reset your password"
    html = _page(subject, (
        "<p>You asked to reset the password of your account.</p>"
        f"<p><a href=\"{escape(reset_link)}\">Reset password</a></p>"
        f"<p>This link expires in {expiry_minutes} minutes. If you did not ask for it, ignore this email.</p>"
    ))
    text = f"You asked to reset your password. Link: {reset_link}\n\nThis link expires in {expiry_minutes} minutes."
    return subject, html, text


def _order_summary(order: dict) -> str:
    subtotal = sum(i["price"] * i["quantity"] for i in order["items"])
    return (
        f"<table style=\"width:100%\">{_item_rows(order['items'])}</table>"
        f"<p>Subtotal: {_money(subtotal)}<br>Shipping: {_money(order.get('shipping_cost', 0))}<br>"
        f"<strong>Total: {_money(order['total_amount'])}</strong></p>"
    )


def build_order_confirmation_email(order: dict):
    subject = "Your order is confirmed"
    address = _format_address(order.get("shipping_address")) or "Store pickup"
    html = _page(subject, (
        f"<p>Thanks for your purchase! Order <strong>#{order['id']}</strong> ({order['order_status']}).</p>"
        f"{_order_summary(order)}"
        f"<p>Shipping: {escape(address)}</p>"
    ))
    text = (
        f"Thanks for your purchase!\n\nOrder #{order['id']}\n{_item_lines(order['items'])}\n\n"
        f"Total: {_money(order['total_amount'])}\nStatus: {order['order_status']}"
    )
    return subject, html, text


def build_order_admin_email(order: dict, customer: dict):
    subject = f"New order received #{order['id']}"
    name = f"{customer.get('first_name', '')} {customer.get('last_name', '')}".strip() or "N/A"
    email = customer.get("email") or "no email"
    address = _format_address(order.get("shipping_address"))
    html = _page(subject, (
        f"<p>Order <strong>#{order['id']}</strong> ({order['order_status']}) via {order['shipping_method']}.</p>"
        f"<p>Customer: {escape(name)} &lt;{escape(email)}&gt;</p>"
        f"{_order_summary(order)}"
        + (f"<p>Ship to: {escape(address)}</p>" if address else "")
    ))
    text = (
        f"NEW ORDER\n\nOrder: #{order['id']}\nCustomer: {name} ({email})\n\n{_item_lines(order['items'])}\n\n"
        f"Total: {_money(order['total_amount'])}\nStatus: {order['order_status']}"
    )
    return subject, html, text


class Notifier:
    def __init__(self, mailer, settings: Settings):
        self.mailer = mailer
        self.settings = settings

    def password_reset(self, email: str, token: str) -> bool:
        subject, html, text = build_reset_password_email(
            token, self.settings.frontend_url, self.settings.reset_token_exp_min
        )
        try:
            self.mailer.send(email, subject, html, text)
        except Exception:
            logger.exception("mail.password_reset_failed", to=email)
            return False
        return True

    def order_placed(self, order: dict, customer: dict) -> bool:
        """Mail the purchaser and, when ADMIN_EMAILS is set, the administrators."""
        try:
            subject, html, text = build_order_confirmation_email(order)
            self.mailer.send(customer["email"], subject, html, text)

            if self.settings.admin_emails:
                subject, html, text = build_order_admin_email(order, customer)
                self.mailer.send(self.settings.admin_emails, subject, html, text)
        except Exception:
            logger.exception("order.notify_failed", order_id=order.get("id"))
            return False
        return True
