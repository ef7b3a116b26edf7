"""Tests for phone normalization and the notification service."""

import pytest

from config import Settings
from conftest import RecordingTransport
from notifications import SMTPTransport, NotificationService, build_mail_transport, normalize_phone_number


class TestNormalizePhoneNumber:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("9876543210", "919876543210"),
            ("098765 43210", "919876543210"),
            ("+91 98765-43210", "919876543210"),
            ("0044 20 7946 0958", "91442079460958"),
            ("12345", "12345"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_phone_number(raw, "91") == expected

    def test_custom_country_code(self):
        assert normalize_phone_number("5551234567", "1") == "15551234567"


class TestMailTransport:
    def test_mailtrap_default(self):
        transport = build_mail_transport(Settings(mailtrap_user="u", mailtrap_pass="p"))
        assert isinstance(transport, SMTPTransport)
        assert (transport.host, transport.port, transport.username) == ("smtp.mailtrap.io", 2525, "u")

    def test_sendgrid_uses_apikey_user(self):
        transport = build_mail_transport(Settings(email_service="sendgrid", sendgrid_api_key="SG.key"))
        assert transport.username == "apikey"
        assert transport.password == "SG.key"

    def test_gmail_uses_ssl(self):
        transport = build_mail_transport(Settings(email_service="gmail"))
        assert transport.use_ssl is True
        assert transport.port == 465

    def test_unknown_service_falls_back_to_gmail(self):
        transport = build_mail_transport(Settings(email_service="pigeon"))
        assert transport.host == "smtp.gmail.com"


@pytest.fixture
def service():
    return NotificationService(RecordingTransport(), sender="Store <store@example.com>")


def _order(**overrides):
    order = {
        "id": "64b7f0c2a1b2c3d4e5f60718",
        "invoice_number": "INV-20240305-001",
        "total_price": 200.0,
        "order_status": "Pending",
        "shipping_info": {"name": "Asha <b>Patel</b>", "address": "Surat", "phone_no": "9876543210"},
        "user": {"id": "u1", "name": "Asha", "email": "asha@example.com"},
    }
    order.update(overrides)
    return order


class TestNotificationService:
    def test_sms_is_logged_and_normalized(self, service):
        result = service.send_sms_notification("09876543210", "Shipped")
        assert result["success"] is True
        assert result["phone_number"] == "919876543210"
        assert service.transport.sent == []

    def test_sms_without_phone(self, service):
        assert service.send_sms_notification("", "Shipped")["success"] is False

    def test_order_confirmation_to_account_email(self, service):
        result = service.send_order_confirmation(_order())
        assert result["success"] is True
        message = service.transport.sent[0]
        assert message["To"] == "asha@example.com"
        assert message["Subject"] == "Order Confirmation - #INV-20240305-001"

    def test_order_confirmation_prefers_shipping_email(self, service):
        order = _order()
        order["shipping_info"]["email"] = "gift@example.com"
        service.send_order_confirmation(order)
        assert service.transport.sent[0]["To"] == "gift@example.com"

    def test_order_confirmation_attaches_pdf(self, service, temp_dir):
        pdf = temp_dir / "invoice.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        service.send_order_confirmation(_order(), str(pdf))
        attachments = list(service.transport.sent[0].iter_attachments())
        assert attachments[0].get_filename() == "invoice_asha_bpatelb_INV-20240305-001.pdf"

    def test_unreadable_attachment_is_skipped(self, service, temp_dir):
        unreadable = temp_dir / "invoice.pdf"
        unreadable.mkdir()
        result = service.send_order_confirmation(_order(), str(unreadable))
        assert result["success"] is True
        assert list(service.transport.sent[0].iter_attachments()) == []

    def test_html_is_escaped(self, service):
        service.send_cart_summary("asha@example.com", {"name": "<script>"}, {"items": []}, None)
        html = service.transport.sent[0].get_body(("html",)).get_content()
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_no_recipient(self, service):
        result = service.send_order_confirmation(_order(user=None))
        assert result["success"] is False
        assert service.transport.sent == []

    def test_transport_failure_is_reported_not_raised(self):
        service = NotificationService(RecordingTransport(fail=True), sender="store@example.com")
        result = service.send_cart_summary("asha@example.com", {"name": "Asha"}, {"items": []}, None)
        assert result["success"] is False
        assert "SMTP server unavailable" in result["error"]
