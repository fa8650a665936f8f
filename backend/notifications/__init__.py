"""Outbound e-mail (Resend) with delivery logging."""
from .mailer import admin_recipients, get_mail_client, send_email

__all__ = ["admin_recipients", "get_mail_client", "send_email"]
