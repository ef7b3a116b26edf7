"""
Customer notifications.

Email goes through an ``SMTPTransport`` chosen once from ``EMAIL_SERVICE``.
SMS has no transport wired in and is only logged. Every ``send_*`` method
returns a ``{"success": ...}`` dict instead of raising so callers can carry on
whatever the delivery outcome.
"""

import html
import logging
import os
import re
import smtplib
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Dict, Optional

from pdf_generator import order_customer_name, sanitize_name

logger = logging.getLogger(__name__)

SMTP_HOSTS = {
    "mailtrap": ("smtp.mailtrap.io", 2525, False),
    "ethereal": ("smtp.ethereal.email", 587, False),
    "brevo": ("smtp-relay.brevo.com", 587, False),
    "sendgrid": ("smtp.sendgrid.net", 587, False),
    "gmail": ("smtp.gmail.com", 465, True),
}


def normalize_phone_number(raw: Optional[str], default_country_code: str = "91") -> str:
    """Reduce a phone number to digits with a country code prefix."""
    if not raw:
        return ""
    digits = re.sub(r"\D", "", str(raw))
    if digits.startswith("0"):
        return default_country_code + digits.lstrip("0")
    if len(digits) == 10:
        return default_country_code + digits
    return digits


class SMTPTransport:
    def __init__(self, host: str, port: int, username: str = "", password: str = "",
                 use_ssl: bool = False, timeout: float = 30):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.timeout = timeout

    def send(self, message: EmailMessage) -> None:
        if self.use_ssl:
            smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with smtp:
            if not self.use_ssl:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls()
                    smtp.ehlo()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)


def build_mail_transport(settings) -> SMTPTransport:
    service = settings.email_service.lower()
    credentials = {
        "mailtrap": (settings.mailtrap_user, settings.mailtrap_pass),
        "ethereal": (settings.ethereal_user, settings.ethereal_pass),
        "brevo": (settings.brevo_user, settings.brevo_api_key),
        "sendgrid": ("apikey", settings.sendgrid_api_key),
        "gmail": (settings.email_user, settings.email_password),
    }
    if service not in SMTP_HOSTS:
        logger.warning("Unknown EMAIL_SERVICE %r, falling back to gmail", service)
        service = "gmail"
    host, port, use_ssl = SMTP_HOSTS[service]
    username, password = credentials[service]
    logger.info("Mail transport: %s (%s:%s)", service, host, port)
    return SMTPTransport(host, port, username, password, use_ssl=use_ssl)


def _panel(title: str, rows: Dict[str, str]) -> str:
    body = "".join(f"<p><strong>{html.escape(k)}:</strong> {html.escape(v)}</p>" for k, v in rows.items())
    return (
        '<div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">'
        f'<h3 style="margin-top: 0;">{html.escape(title)}</h3>{body}</div>'
    )


def _wrap(heading: str, greeting_name: str, paragraphs_before: str, panel: str, paragraphs_after: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: #333;">{html.escape(heading)}</h2>'
        f"<p>Hello {html.escape(greeting_name)},</p>{paragraphs_before}{panel}{paragraphs_after}"
        "<p>Best regards,<br>Your Store Team</p></div>"
    )


class NotificationService:
    def __init__(self, transport, sender: str, default_country_code: str = "91", currency: str = "Rs."):
        self.transport = transport
        self.sender = sender
        self.default_country_code = default_country_code
        self.currency = currency

    @classmethod
    def from_settings(cls, settings, transport=None) -> "NotificationService":
        address = settings.mail_from or settings.brevo_user or settings.email_user or "no-reply@localhost"
        return cls(
            transport or build_mail_transport(settings),
            sender=formataddr((settings.store_name, address)),
            default_country_code=settings.default_country_code,
            currency=settings.currency,
        )

    def _message(self, to: str, subject: str, body: str,
                 attachment: Optional[str] = None, attachment_name: Optional[str] = None) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(body, subtype="html")
        if attachment and os.path.exists(attachment):
            try:
                with open(attachment, "rb") as fh:
                    data = fh.read()
            except OSError as e:
                logger.error("Could not read attachment %s, sending without it: %s", attachment, e)
            else:
                message.add_attachment(data, maintype="application", subtype="pdf",
                                       filename=attachment_name or os.path.basename(attachment))
        return message

    def _deliver(self, message: EmailMessage, label: str) -> Dict[str, Any]:
        try:
            self.transport.send(message)
        except Exception as e:
            logger.exception("%s email to %s failed", label, message["To"])
            return {"success": False, "message": f"Failed to send {label.lower()} email", "error": str(e)}
        logger.info("%s email sent to %s", label, message["To"])
        return {"success": True, "message_id": message["Message-ID"], "message": f"{label} email sent successfully"}

    def send_sms_notification(self, phone_number: str, message: str) -> Dict[str, Any]:
        normalized = normalize_phone_number(phone_number, self.default_country_code)
        if not normalized:
            return {"success": False, "message": "No phone number to notify"}
        logger.info("SMS notification to %s: %s", normalized, message)
        return {"success": True, "message": "SMS notification sent successfully", "phone_number": normalized}

    def send_order_confirmation(self, order: Dict[str, Any], pdf_path: Optional[str] = None) -> Dict[str, Any]:
        user = order.get("user") or {}
        recipient = (order.get("shipping_info") or {}).get("email") or user.get("email")
        if not recipient:
            logger.error("Order %s has no email recipient", order.get("invoice_number"))
            return {"success": False, "message": "No recipient email for order confirmation"}

        reference = order.get("invoice_number") or order.get("id")
        panel = _panel("Order Details", {
            "Order ID": str(order.get("id", "")),
            "Invoice": str(order.get("invoice_number", "")),
            "Order Date": (order.get("created_at") or datetime.now()).strftime("%d/%m/%Y"),
            "Total Amount": f"{self.currency} {order['total_price']:.2f}",
            "Status": order.get("order_status", "Pending"),
        })
        body = _wrap(
            "Order Confirmation",
            user.get("name") or "Customer",
            "<p>Your order has been confirmed and is being processed!</p>",
            panel,
            ("<p>Your invoice is attached to this email for your records.</p>" if pdf_path else "")
            + "<p>We'll keep you updated on the status of your order.</p>",
        )
        attachment_name = f"invoice_{sanitize_name(order_customer_name(order))}_{reference}.pdf"
        message = self._message(recipient, f"Order Confirmation - #{reference}", body, pdf_path, attachment_name)
        return self._deliver(message, "Order confirmation")

    def send_cart_summary(self, email: str, user: Optional[Dict[str, Any]], cart: Dict[str, Any],
                          pdf_path: Optional[str]) -> Dict[str, Any]:
        user = user or {}
        if not email:
            return {"success": False, "message": "No recipient email for cart summary"}
        items = cart.get("items", [])
        total_amount = sum(item["price"] * item["quantity"] for item in items)
        name = user.get("name") or "Customer"
        panel = _panel("Cart Details", {
            "Total Items": str(len(items)),
            "Total Amount": f"{self.currency} {total_amount:.2f}",
            "Date": datetime.now().strftime("%d/%m/%Y"),
        })
        body = _wrap(
            "Cart Summary",
            name,
            f"<p>Here's your current cart summary with {len(items)} items.</p>",
            panel,
            "<p>Check the attached PDF for complete details!</p>",
        )
        attachment_name = f"cart_summary_{sanitize_name(name)}.pdf"
        message = self._message(email, "Your Cart Summary", body, pdf_path, attachment_name)
        return self._deliver(message, "Cart summary")
