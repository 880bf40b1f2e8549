import os

# Keep the module-level engine off the local deliveries.db file
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from db.database import create_tables  # noqa: E402
from email_integration.notification_sender import DispatchReport  # noqa: E402
from erp import erp_models  # noqa: E402
from erp.erp_models import DeliveryMode, InstallmentStatus, PurchaseOrderStatus  # noqa: E402
from scheduling.business_calendar import BusinessCalendar  # noqa: E402


class FakeDispatcher:
    """Records dispatched batches instead of writing notifications or sending email."""

    def __init__(self):
        self.batches = []
        self.schedules = []

    def dispatch(self, events):
        self.batches.append(list(events))
        return DispatchReport(notifications_created=len(events))

    def send_installment_schedule(self, order_id, folio, supplier_email, installments):
        self.schedules.append((order_id, folio, supplier_email, list(installments)))
        return True

    @property
    def events(self):
        return [e for batch in self.batches for e in batch]


class FixedCalendar(BusinessCalendar):
    """Sunday-only calendar pinned to a given day."""

    def __init__(self, fixed_today: date):
        super().__init__(non_working_weekdays={6}, timezone="America/Mexico_City")
        self.fixed_today = fixed_today

    def today(self, now=None):
        return self.fixed_today


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def calendar():
    return BusinessCalendar(non_working_weekdays={6}, timezone="America/Mexico_City")


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def supplier(db):
    db_supplier = erp_models.Supplier(name="Harinas del Norte", contact_person="Ventas", email="ventas@harinas.test")
    db.add(db_supplier)
    db.commit()
    db.refresh(db_supplier)
    return db_supplier


@pytest.fixture
def make_order(db, supplier):
    def _make(folio, scheduled=None, status=PurchaseOrderStatus.ISSUED, quantity=100,
              mode=DeliveryMode.SINGLE, notes=None, order_supplier=None):
        order = erp_models.PurchaseOrder(
            folio=folio,
            supplier_id=(order_supplier or supplier).id,
            status=status,
            delivery_mode=mode,
            scheduled_delivery_date=scheduled,
            notes=notes,
        )
        db.add(order)
        db.flush()
        db.add(erp_models.PurchaseOrderLineItem(po_id=order.id, description="Flour 25kg", quantity=quantity, unit_price="350.00"))
        db.commit()
        db.refresh(order)
        return order
    return _make


@pytest.fixture
def make_installment(db):
    def _make(order, number, scheduled=None, status=None, quantity=50, notes=None):
        if status is None:
            status = InstallmentStatus.SCHEDULED if scheduled else InstallmentStatus.UNSCHEDULED
        installment = erp_models.DeliveryInstallment(
            purchase_order_id=order.id,
            installment_number=number,
            quantity=quantity,
            scheduled_date=scheduled,
            status=status,
            notes=notes,
        )
        db.add(installment)
        db.commit()
        db.refresh(installment)
        return installment
    return _make


@pytest.fixture
def fixed_calendar():
    return FixedCalendar
