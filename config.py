import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./deliveries.db")

# Calendar used to compute "today" and the next business day.
# Weekdays follow datetime.weekday(): Monday=0 ... Sunday=6.
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "America/Mexico_City")
NON_WORKING_WEEKDAYS = os.getenv("NON_WORKING_WEEKDAYS", "6")

SMTP_SERVER = os.getenv("SMTP_SERVER", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SENDER_EMAIL = os.getenv("SENDER_EMAIL")
SMTP_TIMEOUT_SECONDS = float(os.getenv("SMTP_TIMEOUT_SECONDS", 10))

EMAIL_MAX_ATTEMPTS = int(os.getenv("EMAIL_MAX_ATTEMPTS", 3))
EMAIL_BACKOFF_SECONDS = float(os.getenv("EMAIL_BACKOFF_SECONDS", 1.0))
EMAIL_BACKOFF_MAX_SECONDS = float(os.getenv("EMAIL_BACKOFF_MAX_SECONDS", 8.0))

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")
COMPANY_NAME = os.getenv("COMPANY_NAME", "Purchasing Department")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = os.getenv("LOG_FILE")


def parse_weekdays(raw: str) -> frozenset[int]:
    """Parses a comma separated weekday list such as "5,6"."""
    days = set()
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        day = int(part)
        if day < 0 or day > 6:
            raise ValueError(f"Weekday out of range (0-6): {day}")
        days.add(day)
    return frozenset(days)
