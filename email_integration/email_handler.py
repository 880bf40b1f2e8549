import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import config

logger = logging.getLogger("deliveries.email")

def send_email(to_recipient: str, subject: str, body: str, cc_recipients: list = None):
    """
    Sends an HTML email through the configured SMTP server.

    Args:
        to_recipient: The email address of the recipient.
        subject: The subject of the email.
        body: The HTML content of the email.
        cc_recipients: List of email addresses to CC.

    Returns:
        {"status": "success"} when the server accepted the message, otherwise None.
        Never raises; callers treat delivery as best effort.
    """
    if not all([config.SMTP_SERVER, config.SMTP_USERNAME, config.SMTP_PASSWORD, config.SENDER_EMAIL]):
        logger.warning("Email sending is not configured; skipped message to %s", to_recipient)
        return None

    try:
        msg = MIMEMultipart()
        msg['From'] = config.SENDER_EMAIL
        msg['To'] = to_recipient
        if cc_recipients:
            msg['Cc'] = ', '.join(cc_recipients)
        msg['Subject'] = subject

        msg.attach(MIMEText(body, 'html'))

        with smtplib.SMTP(config.SMTP_SERVER, config.SMTP_PORT, timeout=config.SMTP_TIMEOUT_SECONDS) as server:
            server.starttls()
            server.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
            server.sendmail(config.SENDER_EMAIL, [to_recipient] + list(cc_recipients or []), msg.as_string())
        logger.info("Successfully sent email to %s", to_recipient)
        return {"status": "success"}
    except (smtplib.SMTPException, OSError) as e:
        logger.error("An error occurred while sending email to %s: %s", to_recipient, e)
        return None
