import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

import config
from db.database import SessionLocal
from email_integration import templates
from email_integration.email_handler import send_email as smtp_send_email
from erp import erp_models, schemas

DELIVERY_RESCHEDULED = "delivery_rescheduled"

_logger = logging.getLogger("deliveries.notifications")


@dataclass(frozen=True)
class NotificationEvent:
    kind: str
    title: str
    description: str
    folio: str
    old_date: date
    new_date: date
    supplier_name: Optional[str] = None
    supplier_email: Optional[str] = None
    installment_number: Optional[int] = None
    quantity: Optional[int] = None

    @classmethod
    def delivery_rescheduled(cls, folio: str, old_date: date, new_date: date,
                             supplier_name: Optional[str] = None, supplier_email: Optional[str] = None,
                             installment_number: Optional[int] = None, quantity: Optional[int] = None) -> "NotificationEvent":
        what = f"Delivery #{installment_number}" if installment_number else "The delivery"
        supplier = f" from {supplier_name}" if supplier_name else ""
        return cls(
            kind=DELIVERY_RESCHEDULED,
            title=f"Delivery rescheduled: {folio}",
            description=(
                f"{what}{supplier} scheduled for {old_date.isoformat()} was automatically "
                f"rescheduled to {new_date.isoformat()} because it was not received."
            ),
            folio=folio,
            old_date=old_date,
            new_date=new_date,
            supplier_name=supplier_name,
            supplier_email=supplier_email,
            installment_number=installment_number,
            quantity=quantity,
        )


@dataclass
class DispatchReport:
    notifications_created: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    emails_skipped: int = 0

    def to_schema(self) -> schemas.DispatchSummary:
        return schemas.DispatchSummary(
            notifications_created=self.notifications_created,
            emails_sent=self.emails_sent,
            emails_failed=self.emails_failed,
            emails_skipped=self.emails_skipped,
        )


class NotificationDispatcher:
    """
    Best-effort fan-out of in-app notifications and supplier emails.

    Nothing here raises: a failed insert or a failed email is logged and
    counted in the returned DispatchReport. The state that produced the events
    is already committed by the time dispatch() is called.
    """

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        send_email: Callable = smtp_send_email,
        max_attempts: int = None,
        backoff_seconds: float = None,
        max_backoff_seconds: float = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger = None,
    ):
        self.session_factory = session_factory
        self.send_email = send_email
        self.max_attempts = max(1, max_attempts if max_attempts is not None else config.EMAIL_MAX_ATTEMPTS)
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else config.EMAIL_BACKOFF_SECONDS
        self.max_backoff_seconds = max_backoff_seconds if max_backoff_seconds is not None else config.EMAIL_BACKOFF_MAX_SECONDS
        self.sleep = sleep
        self.logger = logger or _logger

    def dispatch(self, events: Sequence[NotificationEvent]) -> DispatchReport:
        report = DispatchReport()
        if not events:
            return report

        report.notifications_created = self._store_notifications(events)

        for event in events:
            if not event.supplier_email:
                report.emails_skipped += 1
                continue
            content = templates.reschedule_email(event.folio, event.old_date, event.new_date, event.installment_number)
            if self._send_with_backoff(event.supplier_email, content["subject"], content["body"]):
                report.emails_sent += 1
            else:
                report.emails_failed += 1

        self.logger.info(
            "Dispatched %d events: %d notifications, %d emails sent, %d failed, %d skipped",
            len(events), report.notifications_created, report.emails_sent, report.emails_failed, report.emails_skipped,
        )
        return report

    def send_installment_schedule(self, order_id: str, folio: str, supplier_email: Optional[str], installments: list) -> bool:
        """Emails the supplier the current installment dates of an order, if it has an email."""
        if not supplier_email:
            self.logger.info("No supplier email for %s; schedule email skipped", folio)
            return False
        content = templates.installment_schedule_email(order_id, folio, installments)
        return self._send_with_backoff(supplier_email, content["subject"], content["body"])

    def _store_notifications(self, events: Sequence[NotificationEvent]) -> int:
        db = self.session_factory()
        try:
            db.add_all([
                erp_models.Notification(kind=e.kind, title=e.title, description=e.description, read=False)
                for e in events
            ])
            db.commit()
            return len(events)
        except SQLAlchemyError as e:
            db.rollback()
            self.logger.error("Failed to store %d in-app notifications: %s", len(events), e)
            return 0
        finally:
            db.close()

    def _send_with_backoff(self, to_recipient: str, subject: str, body: str) -> bool:
        delay = self.backoff_seconds
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = self.send_email(to_recipient, subject, body)
            except Exception as e:
                self.logger.warning("Email to %s raised on attempt %d: %s", to_recipient, attempt, e)
                result = None
            if result:
                return True
            if attempt < self.max_attempts:
                self.sleep(delay)
                delay = min(delay * 2.0, self.max_backoff_seconds)

        self.logger.error("Giving up on email to %s after %d attempts (%s)", to_recipient, self.max_attempts, subject)
        return False
