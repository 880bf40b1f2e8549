"""
Static HTML used by supplier emails and by the confirmation link pages.

Every interpolated value is escaped; order folios and supplier names come from
user-entered data.
"""

from datetime import date, datetime
from html import escape
from typing import Iterable, Optional
from urllib.parse import urlencode

import config

SUCCESS_COLOR = "#22c55e"
WARNING_COLOR = "#f59e0b"
ERROR_COLOR = "#ef4444"

_CHECK_ICON = '<path d="M9 16.17L4.83 12l-1.42 1.41L9 19 21 7l-1.41-1.41z"/>'
_ALERT_ICON = '<path d="M12 2C6.48 2 2 6.48 2 12s4.48 10 10 10 10-4.48 10-10S17.52 2 12 2zm1 15h-2v-2h2v2zm0-4h-2V7h2v6z"/>'


def format_long_date(day: date) -> str:
    """Friday, March 1, 2024"""
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def format_timestamp(ts: datetime) -> str:
    suffix = " UTC" if ts.tzinfo is None else f" {ts:%Z}"
    return f"{ts:%Y-%m-%d %H:%M}{suffix}"


def confirm_url(order_id: str, installment_ids: Optional[Iterable[str]] = None) -> str:
    params = {"id": order_id, "action": "confirm"}
    ids = [i for i in (installment_ids or []) if i]
    if ids:
        params["installments"] = ",".join(ids)
    return f"{config.PUBLIC_BASE_URL.rstrip('/')}/confirm?{urlencode(params)}"


def tracking_pixel_url(order_id: str) -> str:
    return f"{config.PUBLIC_BASE_URL.rstrip('/')}/confirm?{urlencode({'id': order_id, 'action': 'track'})}"


# --- Supplier emails ---

def reschedule_email(folio: str, original_date: date, new_date: date, installment_number: Optional[int] = None) -> dict:
    """Subject and body telling a supplier that a missed delivery was moved."""
    delivery = f"delivery #{installment_number} of order" if installment_number else "delivery of order"
    body = f"""
<div style="font-family: Arial, sans-serif;">
  <h2>Delivery Rescheduled</h2>
  <p>The {escape(delivery)} <strong>{escape(folio)}</strong> scheduled for <strong>{format_long_date(original_date)}</strong> was not received.</p>
  <p>It has been automatically rescheduled for <strong>{format_long_date(new_date)}</strong>.</p>
  <p>Please confirm the new delivery date.</p>
  <hr>
  <p style="color: #666; font-size: 12px;">{escape(config.COMPANY_NAME)}</p>
</div>
"""
    return {"subject": f"Delivery rescheduled - {folio}", "body": body}


def installment_schedule_email(order_id: str, folio: str, installments: list) -> dict:
    """Subject and body listing every installment date, with the confirm link and tracking pixel."""
    rows = "".join(
        f"<li><strong>Delivery {inst.installment_number}:</strong> {inst.quantity:,} units - "
        f"{format_long_date(inst.scheduled_date) if inst.scheduled_date else 'date pending'}</li>"
        for inst in installments
    )
    link = confirm_url(order_id, [inst.id for inst in installments if inst.scheduled_date])
    body = f"""
<div style="font-family: Arial, sans-serif;">
  <h2>Delivery schedule - {escape(folio)}</h2>
  <p>The deliveries for your order are scheduled as follows:</p>
  <ul>{rows}</ul>
  <p><a href="{escape(link)}">Confirm delivery dates</a></p>
  <p>Best regards,<br>{escape(config.COMPANY_NAME)}</p>
  <img src="{escape(tracking_pixel_url(order_id))}" width="1" height="1" alt="" style="display:none">
</div>
"""
    return {"subject": f"Delivery schedule - {folio}", "body": body}


# --- Confirmation link pages ---

def render_page(title: str, message: str, details: str, color: str) -> str:
    icon = _CHECK_ICON if color == SUCCESS_COLOR else _ALERT_ICON
    company = escape(config.COMPANY_NAME)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(title)} - {company}</title>
  <style>
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body {{
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
      background: linear-gradient(135deg, #f5f7fa 0%, #c3cfe2 100%);
      min-height: 100vh; display: flex; align-items: center; justify-content: center; padding: 20px;
    }}
    .card {{ background: white; border-radius: 16px; box-shadow: 0 10px 40px rgba(0,0,0,0.1); padding: 40px; max-width: 500px; text-align: center; }}
    .icon {{ width: 80px; height: 80px; border-radius: 50%; background: {color}; margin: 0 auto 24px; display: flex; align-items: center; justify-content: center; }}
    .icon svg {{ width: 40px; height: 40px; fill: white; }}
    h1 {{ color: #1f2937; font-size: 24px; margin-bottom: 16px; }}
    p {{ color: #4b5563; font-size: 16px; line-height: 1.6; margin-bottom: 12px; }}
    .details {{ color: #6b7280; font-size: 14px; margin-top: 20px; padding-top: 20px; border-top: 1px solid #e5e7eb; }}
    .logo {{ margin-top: 30px; color: #9ca3af; font-size: 12px; }}
  </style>
</head>
<body>
  <div class="card">
    <div class="icon"><svg viewBox="0 0 24 24" xmlns="http://www.w3.org/2000/svg">{icon}</svg></div>
    <h1>{escape(title)}</h1>
    <p>{escape(message)}</p>
    <p class="details">{escape(details)}</p>
    <p class="logo">{company}</p>
  </div>
</body>
</html>
"""


def already_confirmed_page(confirmed_at: Optional[datetime]) -> str:
    details = f"Confirmed on: {format_timestamp(confirmed_at)}" if confirmed_at else "Confirmed earlier."
    return render_page(
        "Already Confirmed",
        "This purchase order was already confirmed.",
        details,
        WARNING_COLOR,
    )


def confirmation_received_page(folio: str) -> str:
    return render_page(
        "Confirmation Received!",
        f"Thank you for confirming purchase order {folio}.",
        f"{config.COMPANY_NAME} has been notified of your confirmation.",
        SUCCESS_COLOR,
    )


def not_found_page() -> str:
    return render_page(
        "Error",
        "The purchase order could not be found.",
        "Please contact our purchasing team.",
        ERROR_COLOR,
    )


def error_page() -> str:
    return render_page(
        "Error",
        "An error occurred while processing your confirmation.",
        "Please try again or contact our purchasing team.",
        ERROR_COLOR,
    )
