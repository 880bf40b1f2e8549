"""
Daily reconciliation of missed delivery promises.

Every scheduled delivery whose date is already in the past (and that was not
received or confirmed) is moved to the next business day, an audit note is
appended to the record, and the supplier and purchasing team are notified.

The job is safe to re-run: the new date is always after "today", so a
rescheduled record no longer matches the overdue selection. Each row is moved
with a conditional update on its previous date, so two overlapping runs cannot
both claim (and notify about) the same record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from email_integration.notification_sender import DispatchReport, NotificationDispatcher, NotificationEvent
from erp import crud, schemas
from erp.errors import ReconciliationError
from logging_setup import log_event
from scheduling.business_calendar import BusinessCalendar, default_calendar

_logger = logging.getLogger("deliveries.reconciliation")


@dataclass(frozen=True)
class SingleDelivery:
    """A single-delivery order; the promise is the order's own date."""
    order_id: str
    folio: str
    scheduled_date: date
    supplier_name: Optional[str] = None
    supplier_email: Optional[str] = None


@dataclass(frozen=True)
class InstallmentDelivery:
    """One numbered installment of a multi-delivery order."""
    installment_id: str
    order_id: str
    folio: str
    installment_number: int
    quantity: int
    scheduled_date: date
    supplier_name: Optional[str] = None
    supplier_email: Optional[str] = None


OverdueDelivery = Union[SingleDelivery, InstallmentDelivery]


@dataclass
class ReconciliationResult:
    run_date: date
    target_date: date
    selected_count: int = 0
    rescheduled: List[OverdueDelivery] = field(default_factory=list)
    failed: List[OverdueDelivery] = field(default_factory=list)
    skipped: List[OverdueDelivery] = field(default_factory=list)
    dispatch: Optional[DispatchReport] = None

    @property
    def processed_count(self) -> int:
        return len(self.rescheduled)

    def to_summary(self) -> schemas.ReconciliationSummary:
        return schemas.ReconciliationSummary(
            run_date=self.run_date,
            target_date=self.target_date,
            processed_count=self.processed_count,
            selected_count=self.selected_count,
            skipped_count=len(self.skipped),
            failed_count=len(self.failed),
            rescheduled_items=[_summary_item(item, self.target_date) for item in self.rescheduled],
            dispatch=self.dispatch.to_schema() if self.dispatch else None,
        )


def auto_note(today: date, old_date: date, new_date: date) -> str:
    return f"[AUTO {today.isoformat()}] Rescheduled from {old_date.isoformat()} to {new_date.isoformat()}: not received"


def select_overdue(db: Session, today: date) -> List[OverdueDelivery]:
    """Snapshots every overdue delivery promise. Raises ReconciliationError if either query fails."""
    try:
        installments = crud.list_overdue_installments(db, today)
        orders = crud.list_overdue_single_orders(db, today)
    except SQLAlchemyError as e:
        db.rollback()
        raise ReconciliationError(f"Could not select overdue deliveries: {e}") from e

    overdue: List[OverdueDelivery] = []
    for inst in installments:
        order = inst.purchase_order
        supplier = order.supplier if order else None
        overdue.append(InstallmentDelivery(
            installment_id=inst.id,
            order_id=inst.purchase_order_id,
            folio=order.folio if order else "",
            installment_number=inst.installment_number,
            quantity=inst.quantity,
            scheduled_date=inst.scheduled_date,
            supplier_name=supplier.name if supplier else None,
            supplier_email=supplier.email if supplier else None,
        ))
    for order in orders:
        supplier = order.supplier
        overdue.append(SingleDelivery(
            order_id=order.id,
            folio=order.folio,
            scheduled_date=order.scheduled_delivery_date,
            supplier_name=supplier.name if supplier else None,
            supplier_email=supplier.email if supplier else None,
        ))
    return overdue


def _reschedule(db: Session, item: OverdueDelivery, target: date, note: str) -> bool:
    if isinstance(item, InstallmentDelivery):
        return crud.reschedule_overdue_installment(db, item.installment_id, item.scheduled_date, target, note)
    if isinstance(item, SingleDelivery):
        return crud.reschedule_overdue_order(db, item.order_id, item.scheduled_date, target, note)
    raise TypeError(f"Unknown delivery variant: {item!r}")


def _to_event(item: OverdueDelivery, target: date) -> NotificationEvent:
    if isinstance(item, InstallmentDelivery):
        return NotificationEvent.delivery_rescheduled(
            item.folio, item.scheduled_date, target,
            supplier_name=item.supplier_name, supplier_email=item.supplier_email,
            installment_number=item.installment_number, quantity=item.quantity,
        )
    if isinstance(item, SingleDelivery):
        return NotificationEvent.delivery_rescheduled(
            item.folio, item.scheduled_date, target,
            supplier_name=item.supplier_name, supplier_email=item.supplier_email,
        )
    raise TypeError(f"Unknown delivery variant: {item!r}")


def _summary_item(item: OverdueDelivery, target: date) -> schemas.RescheduledItem:
    if isinstance(item, InstallmentDelivery):
        return schemas.RescheduledItem(
            type="installment",
            folio=item.folio,
            installment_number=item.installment_number,
            quantity=item.quantity,
            supplier=item.supplier_name,
            supplier_email=item.supplier_email,
            original_date=item.scheduled_date,
            new_date=target,
        )
    if isinstance(item, SingleDelivery):
        return schemas.RescheduledItem(
            type="single_order",
            folio=item.folio,
            supplier=item.supplier_name,
            supplier_email=item.supplier_email,
            original_date=item.scheduled_date,
            new_date=target,
        )
    raise TypeError(f"Unknown delivery variant: {item!r}")


def run_reconciliation(
    db: Session,
    calendar: BusinessCalendar = None,
    dispatcher: NotificationDispatcher = None,
    today: date = None,
    logger: logging.Logger = None,
) -> ReconciliationResult:
    """
    Reschedules every overdue delivery to the next business day.

    A failure selecting the overdue records aborts the run with
    ReconciliationError. A failure on one record is logged and the record is
    left for the next run. Notifications go out only after all updates are
    committed, and their failure never fails the run.
    """
    logger = logger or _logger
    calendar = calendar or default_calendar()
    dispatcher = dispatcher or NotificationDispatcher(logger=logger)

    today = calendar.to_date(today) if today is not None else calendar.today()
    target = calendar.next_business_day(today)
    log_event(logger, "reconciliation.start", run_date=today.isoformat(), target_date=target.isoformat())

    overdue = select_overdue(db, today)
    result = ReconciliationResult(run_date=today, target_date=target, selected_count=len(overdue))
    logger.info("Found %d overdue deliveries", len(overdue))

    for item in overdue:
        note = auto_note(today, item.scheduled_date, target)
        try:
            moved = _reschedule(db, item, target, note)
        except Exception as e:
            db.rollback()
            result.failed.append(item)
            log_event(logger, "reconciliation.item_failed", level=logging.ERROR,
                      folio=item.folio, scheduled_date=item.scheduled_date.isoformat(), error=str(e))
            continue

        if not moved:
            # Another run or a manual change got there first
            result.skipped.append(item)
            logger.info("Skipped %s: record changed since it was selected", item.folio)
            continue
        result.rescheduled.append(item)

    events = [_to_event(item, target) for item in result.rescheduled]
    if events:
        try:
            result.dispatch = dispatcher.dispatch(events)
        except Exception as e:
            logger.error("Notification dispatch failed for %d events: %s", len(events), e)

    log_event(
        logger, "reconciliation.done",
        rescheduled=result.processed_count, failed=len(result.failed), skipped=len(result.skipped),
    )
    return result
