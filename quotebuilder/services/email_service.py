"""
Email delivery for quotes.
Uses Flask-Mail for SMTP integration.
"""
import logging
from io import BytesIO

from flask import current_app
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents 500 errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return bool(
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def send_quote_email(
    to_email: str,
    customer_name: str,
    quote_number: str,
    total_text: str,
    pdf_buffer: BytesIO,
    filename: str,
    business_name: str = '',
) -> bool:
    """
    Send a quote PDF to the customer.

    Returns:
        True if sent (or mail is disabled), False if delivery failed
    """
    try:
        logger.info(f"[EMAIL] Preparing quote {quote_number} for {to_email}")

        if not _mail_enabled():
            logger.warning(f"[MAIL DISABLED] Quote email skipped for {to_email}")
            return True

        sender_line = f" from {business_name}" if business_name else ""
        subject = f"Quote {quote_number}{sender_line}"

        text_body = f"""
Hello {customer_name},

Please find attached quote {quote_number}{sender_line}.
Total: {total_text}

Kind regards,
{business_name}
"""

        msg = Message(
            subject=subject,
            recipients=[to_email],
            body=text_body,
        )
        msg.attach(filename, 'application/pdf', pdf_buffer.getvalue())

        mail.send(msg)
        logger.info(f"[EMAIL] Quote {quote_number} sent to {to_email}")
        return True

    except Exception as e:
        logger.exception(f"[EMAIL] Error sending quote {quote_number}: {e}")
        return False
