from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Enum as SQLAlchemyEnum,
)
from sqlalchemy.orm import relationship
from db.database import Base
from datetime import datetime, timezone
import enum
import uuid


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PurchaseOrderStatus(enum.Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    CONFIRMED = "confirmed"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"

# Orders still waiting on goods; only these are rescheduled automatically.
ACTIVE_STATUSES = frozenset({
    PurchaseOrderStatus.ISSUED,
    PurchaseOrderStatus.CONFIRMED,
    PurchaseOrderStatus.PARTIALLY_RECEIVED,
})

class DeliveryMode(enum.Enum):
    SINGLE = "single"
    MULTI = "multi"

class InstallmentStatus(enum.Enum):
    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"

class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True)
    contact_person = Column(String, nullable=True)
    email = Column(String, nullable=True)

class PurchaseOrderLineItem(Base):
    __tablename__ = "purchase_order_line_items"

    id = Column(Integer, primary_key=True, index=True)
    po_id = Column(String(36), ForeignKey("purchase_orders.id"))
    description = Column(String)
    quantity = Column(Integer)
    unit_price = Column(String)  # Using String to accommodate various currency formats

    purchase_order = relationship("PurchaseOrder", back_populates="line_items")

class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(String(36), primary_key=True, default=_new_id)
    folio = Column(String, unique=True, index=True, nullable=False)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    status = Column(SQLAlchemyEnum(PurchaseOrderStatus), default=PurchaseOrderStatus.ISSUED, nullable=False)
    delivery_mode = Column(SQLAlchemyEnum(DeliveryMode), default=DeliveryMode.SINGLE, nullable=False)
    scheduled_delivery_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    # First time the supplier's mail client loaded the tracking pixel
    email_read_at = Column(DateTime(timezone=True), nullable=True)

    supplier = relationship("Supplier")
    line_items = relationship("PurchaseOrderLineItem", back_populates="purchase_order")
    installments = relationship(
        "DeliveryInstallment",
        back_populates="purchase_order",
        order_by="DeliveryInstallment.installment_number",
    )
    confirmations = relationship("ConfirmationRecord", back_populates="purchase_order")

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity or 0 for item in self.line_items)

class DeliveryInstallment(Base):
    __tablename__ = "delivery_installments"
    __table_args__ = (
        UniqueConstraint("purchase_order_id", "installment_number", name="uq_installment_number"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    purchase_order_id = Column(String(36), ForeignKey("purchase_orders.id"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    scheduled_date = Column(Date, nullable=True)
    status = Column(SQLAlchemyEnum(InstallmentStatus), default=InstallmentStatus.UNSCHEDULED, nullable=False)
    notes = Column(Text, nullable=True)

    purchase_order = relationship("PurchaseOrder", back_populates="installments")

class ConfirmationRecord(Base):
    __tablename__ = "order_confirmations"

    id = Column(String(36), primary_key=True, default=_new_id)
    purchase_order_id = Column(String(36), ForeignKey("purchase_orders.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    # NULL means the link was opened but nothing was confirmed yet
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    source_ip = Column(String, nullable=True)
    user_agent = Column(Text, nullable=True)

    purchase_order = relationship("PurchaseOrder", back_populates="confirmations")

# At most one confirmed row per order, enforced by the database.
Index(
    "uq_order_confirmed_once",
    ConfirmationRecord.purchase_order_id,
    unique=True,
    sqlite_where=ConfirmationRecord.confirmed_at.isnot(None),
    postgresql_where=ConfirmationRecord.confirmed_at.isnot(None),
)

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
