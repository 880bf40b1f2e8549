import logging
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
from sqlalchemy.orm import Session

from db.database import SessionLocal, create_tables
from email_integration import templates
from email_integration.notification_sender import NotificationDispatcher
from erp import crud, schemas
from erp.errors import InstallmentPlanError, InvalidTransitionError, NotFoundError, ReconciliationError
from logging_setup import setup_logging
from orchestration.confirmation import ConfirmationOutcome, handle_confirm, handle_track
from orchestration.reconciliation import run_reconciliation
from scheduling.business_calendar import default_calendar

app = FastAPI(title="Delivery Expeditor")
logger = logging.getLogger("deliveries.api")

# 1x1 transparent GIF
TRACKING_PIXEL = bytes([
    0x47, 0x49, 0x46, 0x38, 0x39, 0x61, 0x01, 0x00, 0x01, 0x00,
    0x80, 0x00, 0x00, 0xff, 0xff, 0xff, 0x00, 0x00, 0x00, 0x21,
    0xf9, 0x04, 0x01, 0x00, 0x00, 0x00, 0x00, 0x2c, 0x00, 0x00,
    0x00, 0x00, 0x01, 0x00, 0x01, 0x00, 0x00, 0x02, 0x02, 0x44,
    0x01, 0x00, 0x3b,
])
NO_STORE = "no-cache, no-store, must-revalidate"

# Dependencies
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_calendar():
    return default_calendar()

def get_dispatcher():
    return NotificationDispatcher(logger=logging.getLogger("deliveries.notifications"))

@app.on_event("startup")
def on_startup():
    setup_logging("deliveries")
    create_tables()

def _client_info(request: Request) -> tuple[str, str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        source_ip = forwarded.split(",")[0].strip()
    else:
        source_ip = request.headers.get("cf-connecting-ip") or (request.client.host if request.client else None)
    return source_ip or "unknown", request.headers.get("user-agent") or "unknown"

def _parse_ids(raw: Optional[str]) -> list[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]

# --- Supplier confirmation link (unauthenticated) ---

@app.get("/confirm")
def confirm_order(
    request: Request,
    order_id: Optional[str] = Query(None, alias="id"),
    action: str = "confirm",
    installments: Optional[str] = None,
    db: Session = Depends(get_db),
):
    if not order_id:
        return PlainTextResponse("Order id not provided", status_code=400)

    source_ip, user_agent = _client_info(request)

    if action == "track":
        handle_track(db, order_id, source_ip, user_agent)
        return Response(content=TRACKING_PIXEL, media_type="image/gif", headers={"Cache-Control": NO_STORE})

    try:
        result = handle_confirm(db, order_id, _parse_ids(installments), source_ip, user_agent)
    except Exception:
        logger.exception("Error processing confirmation for order %s", order_id)
        return HTMLResponse(templates.error_page(), headers={"Cache-Control": NO_STORE})

    if result.outcome == ConfirmationOutcome.ALREADY_CONFIRMED:
        page = templates.already_confirmed_page(result.confirmed_at)
    elif result.outcome == ConfirmationOutcome.NOT_FOUND:
        page = templates.not_found_page()
    else:
        page = templates.confirmation_received_page(result.folio)
    return HTMLResponse(page, headers={"Cache-Control": NO_STORE})

# --- Scheduler trigger ---

@app.post("/jobs/reconcile-deliveries", response_model=schemas.ReconciliationSummary)
def reconcile_deliveries(
    db: Session = Depends(get_db),
    calendar=Depends(get_calendar),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    try:
        result = run_reconciliation(db, calendar=calendar, dispatcher=dispatcher)
    except ReconciliationError as e:
        logger.error("Reconciliation run aborted: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_summary()

# --- Delivery scheduling ---

@app.post("/suppliers/", response_model=schemas.Supplier)
def create_supplier(supplier: schemas.SupplierCreate, db: Session = Depends(get_db)):
    return crud.create_supplier(db=db, supplier=supplier)

@app.post("/purchase_orders/", response_model=schemas.PurchaseOrder)
def create_purchase_order(po: schemas.PurchaseOrderCreate, db: Session = Depends(get_db)):
    if crud.get_purchase_order_by_folio(db, po.folio):
        raise HTTPException(status_code=409, detail=f"Purchase order {po.folio} already exists")
    return crud.create_purchase_order(db=db, po=po)

@app.get("/purchase_orders/{order_id}", response_model=schemas.PurchaseOrder)
def read_purchase_order(order_id: str, db: Session = Depends(get_db)):
    db_po = crud.get_purchase_order(db, order_id)
    if db_po is None:
        raise HTTPException(status_code=404, detail="Purchase order not found")
    return db_po

def _notify_schedule(background_tasks: BackgroundTasks, dispatcher: NotificationDispatcher, db: Session,
                     order_id: str, installments: list) -> list:
    db_po = crud.get_purchase_order(db, order_id)
    snapshot = [schemas.DeliveryInstallment.model_validate(inst) for inst in installments]
    supplier_email = db_po.supplier.email if db_po.supplier else None
    background_tasks.add_task(dispatcher.send_installment_schedule, db_po.id, db_po.folio, supplier_email, snapshot)
    return snapshot

@app.post("/purchase_orders/{order_id}/installments", response_model=list[schemas.DeliveryInstallment])
def split_purchase_order(
    order_id: str,
    plan: schemas.InstallmentPlan,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    try:
        installments = crud.split_into_installments(db, order_id, plan.installments)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InstallmentPlanError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _notify_schedule(background_tasks, dispatcher, db, order_id, installments)

@app.put("/purchase_orders/{order_id}/installments/schedule", response_model=list[schemas.DeliveryInstallment])
def reschedule_purchase_order_installments(
    order_id: str,
    body: schemas.InstallmentRescheduleRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    dates = {item.installment_id: item.scheduled_date for item in body.installments}
    try:
        changed = crud.reschedule_installments(db, order_id, dates)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not changed:
        return []
    return _notify_schedule(background_tasks, dispatcher, db, order_id, changed)

@app.put("/installments/{installment_id}/schedule", response_model=schemas.DeliveryInstallment)
def schedule_installment(installment_id: str, update: schemas.ScheduleUpdate, db: Session = Depends(get_db)):
    try:
        return crud.set_scheduled_date(db, installment_id, update.scheduled_date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

@app.delete("/installments/{installment_id}/schedule", response_model=schemas.DeliveryInstallment)
def unschedule_installment(installment_id: str, db: Session = Depends(get_db)):
    try:
        return crud.clear_scheduled_date(db, installment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
