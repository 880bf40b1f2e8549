from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from erp import erp_models
from erp.errors import AlreadyConfirmedError

Record = erp_models.ConfirmationRecord


def get_confirmed_record(db: Session, order_id: str) -> Optional[Record]:
    return (
        db.query(Record)
        .filter(Record.purchase_order_id == order_id, Record.confirmed_at.isnot(None))
        .first()
    )


def get_open_record(db: Session, order_id: str) -> Optional[Record]:
    """Returns a ledger row created when the link was opened but not yet confirmed."""
    return (
        db.query(Record)
        .filter(Record.purchase_order_id == order_id, Record.confirmed_at.is_(None))
        .order_by(Record.created_at)
        .first()
    )


def record_link_opened(db: Session, order_id: str, source_ip: str, user_agent: str) -> Optional[Record]:
    """Adds an unconfirmed row the first time a supplier interacts with the order."""
    exists = db.query(Record.id).filter(Record.purchase_order_id == order_id).first()
    if exists:
        return None
    record = Record(purchase_order_id=order_id, source_ip=source_ip, user_agent=user_agent)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def record_confirmation(db: Session, order_id: str, source_ip: str, user_agent: str, now: datetime = None) -> Record:
    """
    Claims the single confirmed slot of an order.

    An existing unconfirmed row is promoted with a conditional update; otherwise
    a new confirmed row is inserted. The partial unique index on
    (purchase_order_id) WHERE confirmed_at IS NOT NULL decides concurrent
    claims: the loser gets AlreadyConfirmedError carrying the winning row.
    """
    now = now or datetime.now(timezone.utc)
    open_record = get_open_record(db, order_id)

    try:
        if open_record is not None:
            result = db.execute(
                update(Record)
                .where(Record.id == open_record.id, Record.confirmed_at.is_(None))
                .values(confirmed_at=now, source_ip=source_ip, user_agent=user_agent)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                raise AlreadyConfirmedError(order_id, get_confirmed_record(db, order_id))
            db.commit()
            db.refresh(open_record)
            return open_record

        record = Record(
            purchase_order_id=order_id,
            confirmed_at=now,
            source_ip=source_ip,
            user_agent=user_agent,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record
    except IntegrityError:
        db.rollback()
        raise AlreadyConfirmedError(order_id, get_confirmed_record(db, order_id)) from None
