from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from erp import confirmations, crud
from erp.erp_models import DeliveryMode, InstallmentStatus, PurchaseOrder
from erp.errors import AlreadyConfirmedError, InvalidTransitionError
from logging_setup import log_event

_logger = logging.getLogger("deliveries.confirmation")


class ConfirmationOutcome(enum.Enum):
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    NOT_FOUND = "not_found"


@dataclass
class ConfirmationResult:
    outcome: ConfirmationOutcome
    folio: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    confirmed_installments: List[str] = field(default_factory=list)


def handle_track(db: Session, order_id: str, source_ip: str, user_agent: str,
                 now: datetime = None, logger: logging.Logger = None) -> bool:
    """
    Tracking-pixel hit: records the first read of the order email.

    Returns True when this call stored the first-read timestamp. Never raises;
    mail clients fetching the pixel cannot do anything with an error.
    """
    logger = logger or _logger
    now = now or datetime.now(timezone.utc)
    try:
        first_read = crud.mark_email_read(db, order_id, now)
        if crud.get_purchase_order(db, order_id) is not None:
            confirmations.record_link_opened(db, order_id, source_ip, user_agent)
        if first_read:
            log_event(logger, "confirmation.email_read", order_id=order_id, source_ip=source_ip)
        return first_read
    except Exception as e:
        db.rollback()
        logger.warning("Tracking pixel update failed for order %s: %s", order_id, e)
        return False


def handle_confirm(db: Session, order_id: str, installment_ids: Sequence[str] = (),
                   source_ip: str = "unknown", user_agent: str = "unknown",
                   now: datetime = None, logger: logging.Logger = None) -> ConfirmationResult:
    """
    Supplier clicked the confirmation link.

    The first successful call writes the confirmed ledger row; every later call
    (double click, second tab, retried request) gets ALREADY_CONFIRMED with the
    original timestamp. Unknown orders get NOT_FOUND and nothing is written.
    """
    logger = logger or _logger

    existing = confirmations.get_confirmed_record(db, order_id)
    if existing is not None:
        logger.info("Order %s already confirmed at %s", order_id, existing.confirmed_at)
        return ConfirmationResult(ConfirmationOutcome.ALREADY_CONFIRMED, confirmed_at=existing.confirmed_at)

    order = crud.get_purchase_order(db, order_id)
    if order is None:
        logger.warning("Confirmation requested for unknown order %s", order_id)
        return ConfirmationResult(ConfirmationOutcome.NOT_FOUND)
    folio = order.folio

    try:
        record = confirmations.record_confirmation(db, order_id, source_ip, user_agent, now=now)
    except AlreadyConfirmedError as e:
        # Lost the race to a concurrent request
        logger.info("Order %s confirmed concurrently by another request", order_id)
        return ConfirmationResult(
            ConfirmationOutcome.ALREADY_CONFIRMED,
            folio=folio,
            confirmed_at=e.record.confirmed_at if e.record is not None else None,
        )

    confirmed = _confirm_deliveries(db, order, installment_ids, logger)
    log_event(logger, "confirmation.received", folio=folio, source_ip=source_ip, installments=len(confirmed))
    return ConfirmationResult(
        ConfirmationOutcome.CONFIRMED,
        folio=folio,
        confirmed_at=record.confirmed_at,
        confirmed_installments=confirmed,
    )


def _confirm_deliveries(db: Session, order: PurchaseOrder, installment_ids: Sequence[str],
                        logger: logging.Logger) -> List[str]:
    if order.delivery_mode == DeliveryMode.SINGLE:
        crud.mark_confirmed(db, order_id=order.id)
        return []

    confirmed = []
    for installment_id in installment_ids:
        installment = crud.get_installment(db, installment_id)
        if installment is None or installment.purchase_order_id != order.id:
            logger.warning("Installment %s does not belong to order %s; ignored", installment_id, order.folio)
            continue
        if installment.status == InstallmentStatus.UNSCHEDULED:
            logger.warning("Installment %s of %s has no date yet; not confirmed", installment.installment_number, order.folio)
            continue
        try:
            crud.mark_confirmed(db, installment_id=installment_id)
            confirmed.append(installment_id)
        except (InvalidTransitionError, SQLAlchemyError) as e:
            db.rollback()
            logger.error("Could not confirm installment %s of %s: %s", installment_id, order.folio, e)
    return confirmed
