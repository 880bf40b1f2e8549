from datetime import date, datetime
from typing import Optional

from sqlalchemy import case, or_, update
from sqlalchemy.orm import Session, joinedload
from erp import erp_models, schemas
from erp.erp_models import ACTIVE_STATUSES, DeliveryMode, InstallmentStatus
from erp.errors import InstallmentPlanError, InvalidTransitionError, NotFoundError

def get_purchase_order(db: Session, order_id: str):
    return db.query(erp_models.PurchaseOrder).filter(erp_models.PurchaseOrder.id == order_id).first()

def get_purchase_order_by_folio(db: Session, folio: str):
    return db.query(erp_models.PurchaseOrder).filter(erp_models.PurchaseOrder.folio == folio).first()

def get_installment(db: Session, installment_id: str):
    return db.query(erp_models.DeliveryInstallment).filter(erp_models.DeliveryInstallment.id == installment_id).first()

def list_installments(db: Session, order_id: str):
    return (
        db.query(erp_models.DeliveryInstallment)
        .filter(erp_models.DeliveryInstallment.purchase_order_id == order_id)
        .order_by(erp_models.DeliveryInstallment.installment_number)
        .all()
    )

def _require_order(db: Session, order_id: str) -> erp_models.PurchaseOrder:
    db_po = get_purchase_order(db, order_id)
    if db_po is None:
        raise NotFoundError("Purchase order", order_id)
    return db_po

def _require_installment(db: Session, installment_id: str) -> erp_models.DeliveryInstallment:
    installment = get_installment(db, installment_id)
    if installment is None:
        raise NotFoundError("Installment", installment_id)
    return installment

def _apply_date(installment: erp_models.DeliveryInstallment, day: Optional[date]) -> None:
    """Moves an installment to scheduled (date given) or unscheduled (None)."""
    requested = InstallmentStatus.SCHEDULED if day is not None else InstallmentStatus.UNSCHEDULED
    if installment.status == InstallmentStatus.CONFIRMED:
        raise InvalidTransitionError(installment.id, installment.status.value, requested.value)
    installment.scheduled_date = day
    installment.status = requested

# --- Installment state machine ---

def set_scheduled_date(db: Session, installment_id: str, day: date):
    """
    Sets the promised date of an installment and resets its status to scheduled.
    Confirmed installments are final and cannot be rescheduled.
    """
    installment = _require_installment(db, installment_id)
    _apply_date(installment, day)
    db.commit()
    db.refresh(installment)
    return installment

def clear_scheduled_date(db: Session, installment_id: str):
    installment = _require_installment(db, installment_id)
    _apply_date(installment, None)
    db.commit()
    db.refresh(installment)
    return installment

def mark_confirmed(db: Session, installment_id: str = None, order_id: str = None):
    """
    Marks a delivery as confirmed by the supplier.

    For an installment the status becomes confirmed (repeat calls are no-ops).
    Single-delivery orders have no delivery status of their own; their
    confirmation lives in the confirmation ledger, so only existence is checked.
    """
    if installment_id is None and order_id is None:
        raise ValueError("installment_id or order_id is required")

    if installment_id is not None:
        installment = _require_installment(db, installment_id)
        if installment.status == InstallmentStatus.CONFIRMED:
            return installment
        if installment.status != InstallmentStatus.SCHEDULED:
            raise InvalidTransitionError(installment.id, installment.status.value, InstallmentStatus.CONFIRMED.value)
        installment.status = InstallmentStatus.CONFIRMED
        db.commit()
        db.refresh(installment)
        return installment

    return _require_order(db, order_id)

def append_note(existing: Optional[str], text: str) -> str:
    if not existing:
        return text
    return f"{existing}\n{text}"

def _appended_notes_expr(column, text: str):
    # SQL-side version of append_note so the update stays a single-row statement
    return case(
        (or_(column.is_(None), column == ""), text),
        else_=column + "\n" + text,
    )

# --- Overdue selection and automatic rescheduling ---

def list_overdue_installments(db: Session, today: date):
    return (
        db.query(erp_models.DeliveryInstallment)
        .options(joinedload(erp_models.DeliveryInstallment.purchase_order).joinedload(erp_models.PurchaseOrder.supplier))
        .filter(
            erp_models.DeliveryInstallment.status == InstallmentStatus.SCHEDULED,
            erp_models.DeliveryInstallment.scheduled_date.isnot(None),
            erp_models.DeliveryInstallment.scheduled_date < today,
        )
        .order_by(erp_models.DeliveryInstallment.scheduled_date)
        .all()
    )

def list_overdue_single_orders(db: Session, today: date):
    return (
        db.query(erp_models.PurchaseOrder)
        .options(joinedload(erp_models.PurchaseOrder.supplier))
        .filter(
            erp_models.PurchaseOrder.delivery_mode == DeliveryMode.SINGLE,
            erp_models.PurchaseOrder.status.in_(list(ACTIVE_STATUSES)),
            erp_models.PurchaseOrder.scheduled_delivery_date.isnot(None),
            erp_models.PurchaseOrder.scheduled_delivery_date < today,
        )
        .order_by(erp_models.PurchaseOrder.scheduled_delivery_date)
        .all()
    )

def reschedule_overdue_installment(db: Session, installment_id: str, expected_date: date, new_date: date, note: str) -> bool:
    """
    Moves an overdue installment to new_date, only if it still holds
    expected_date and is still scheduled. Returns False when another run (or a
    user) changed the row first.
    """
    model = erp_models.DeliveryInstallment
    result = db.execute(
        update(model)
        .where(
            model.id == installment_id,
            model.status == InstallmentStatus.SCHEDULED,
            model.scheduled_date == expected_date,
        )
        .values(
            scheduled_date=new_date,
            status=InstallmentStatus.SCHEDULED,
            notes=_appended_notes_expr(model.notes, note),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1

def reschedule_overdue_order(db: Session, order_id: str, expected_date: date, new_date: date, note: str) -> bool:
    model = erp_models.PurchaseOrder
    result = db.execute(
        update(model)
        .where(
            model.id == order_id,
            model.delivery_mode == DeliveryMode.SINGLE,
            model.status.in_(list(ACTIVE_STATUSES)),
            model.scheduled_delivery_date == expected_date,
        )
        .values(
            scheduled_delivery_date=new_date,
            notes=_appended_notes_expr(model.notes, note),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1

def mark_email_read(db: Session, order_id: str, now: datetime) -> bool:
    """Stores the first time the order email was opened. Later opens leave it untouched."""
    model = erp_models.PurchaseOrder
    result = db.execute(
        update(model)
        .where(model.id == order_id, model.email_read_at.is_(None))
        .values(email_read_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1

# --- Purchasing-side helpers ---

def create_supplier(db: Session, supplier: schemas.SupplierCreate):
    db_supplier = erp_models.Supplier(**supplier.model_dump())
    db.add(db_supplier)
    db.commit()
    db.refresh(db_supplier)
    return db_supplier

def create_purchase_order(db: Session, po: schemas.PurchaseOrderCreate):
    db_po = erp_models.PurchaseOrder(
        folio=po.folio,
        supplier_id=po.supplier_id,
        status=po.status,
        scheduled_delivery_date=po.scheduled_delivery_date,
        notes=po.notes,
    )
    db.add(db_po)
    db.flush()  # Use flush to get the db_po.id before committing

    for item in po.line_items:
        db.add(erp_models.PurchaseOrderLineItem(**item.model_dump(), po_id=db_po.id))

    db.commit()
    db.refresh(db_po)
    return db_po

def split_into_installments(db: Session, order_id: str, plan: list[schemas.InstallmentPlanItem]):
    """
    Converts a single-delivery order into numbered installments.

    Every installment needs a positive quantity and a date, and the quantities
    must add up to the order total. The order keeps the first installment's
    date as its headline delivery date.
    """
    db_po = _require_order(db, order_id)
    if db_po.delivery_mode == DeliveryMode.MULTI:
        raise InstallmentPlanError(f"Purchase order {db_po.folio} already has multiple deliveries")
    if not plan:
        raise InstallmentPlanError("At least one installment is required")

    missing_dates = [i + 1 for i, item in enumerate(plan) if item.scheduled_date is None]
    if missing_dates:
        raise InstallmentPlanError(f"Installments without a scheduled date: {missing_dates}")
    bad_quantities = [i + 1 for i, item in enumerate(plan) if item.quantity <= 0]
    if bad_quantities:
        raise InstallmentPlanError(f"Installments need a quantity greater than 0: {bad_quantities}")

    total = db_po.total_quantity
    assigned = sum(item.quantity for item in plan)
    if assigned != total:
        raise InstallmentPlanError(f"Assigned quantity ({assigned}) must equal the order total ({total})")

    for number, item in enumerate(plan, start=1):
        db.add(erp_models.DeliveryInstallment(
            purchase_order_id=db_po.id,
            installment_number=number,
            quantity=item.quantity,
            scheduled_date=item.scheduled_date,
            status=InstallmentStatus.SCHEDULED,
        ))

    db_po.delivery_mode = DeliveryMode.MULTI
    db_po.scheduled_delivery_date = plan[0].scheduled_date
    db.commit()
    db.refresh(db_po)
    return list_installments(db, db_po.id)

def reschedule_installments(db: Session, order_id: str, dates: dict[str, date]):
    """
    Sets new dates on several installments of one order in a single commit.
    Returns the installments that changed.
    """
    _require_order(db, order_id)
    if not dates:
        return []

    installments = []
    for installment_id, day in dates.items():
        installment = _require_installment(db, installment_id)
        if installment.purchase_order_id != order_id:
            raise NotFoundError("Installment", installment_id)
        installments.append((installment, day))

    try:
        for installment, day in installments:
            _apply_date(installment, day)
    except InvalidTransitionError:
        db.rollback()
        raise

    db.commit()
    changed = [installment for installment, _ in installments]
    for installment in changed:
        db.refresh(installment)
    return changed
