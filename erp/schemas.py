from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from erp.erp_models import DeliveryMode, InstallmentStatus, PurchaseOrderStatus

class PurchaseOrderLineItemBase(BaseModel):
    description: str
    quantity: int
    unit_price: str

class PurchaseOrderLineItemCreate(PurchaseOrderLineItemBase):
    pass

class PurchaseOrderLineItem(PurchaseOrderLineItemBase):
    id: int
    po_id: str

    class Config:
        from_attributes = True

class SupplierBase(BaseModel):
    name: str
    contact_person: Optional[str] = None
    email: Optional[str] = None

class SupplierCreate(SupplierBase):
    pass

class Supplier(SupplierBase):
    id: int

    class Config:
        from_attributes = True

class PurchaseOrderBase(BaseModel):
    folio: str
    supplier_id: int
    scheduled_delivery_date: Optional[date] = None
    notes: Optional[str] = None

class PurchaseOrderCreate(PurchaseOrderBase):
    status: PurchaseOrderStatus = PurchaseOrderStatus.ISSUED
    line_items: List[PurchaseOrderLineItemCreate] = []

class DeliveryInstallment(BaseModel):
    id: str
    purchase_order_id: str
    installment_number: int
    quantity: int
    scheduled_date: Optional[date] = None
    status: InstallmentStatus
    notes: Optional[str] = None

    class Config:
        from_attributes = True

class PurchaseOrder(PurchaseOrderBase):
    id: str
    status: PurchaseOrderStatus
    delivery_mode: DeliveryMode
    email_read_at: Optional[datetime] = None
    line_items: List[PurchaseOrderLineItem] = []
    installments: List[DeliveryInstallment] = []

    class Config:
        from_attributes = True

# --- Delivery scheduling requests ---

class InstallmentPlanItem(BaseModel):
    quantity: int
    scheduled_date: Optional[date] = None

class InstallmentPlan(BaseModel):
    installments: List[InstallmentPlanItem]

class ScheduleUpdate(BaseModel):
    scheduled_date: date

class InstallmentReschedule(BaseModel):
    installment_id: str
    scheduled_date: date

class InstallmentRescheduleRequest(BaseModel):
    installments: List[InstallmentReschedule]

# --- Reconciliation job output ---

class RescheduledItem(BaseModel):
    """One delivery promise moved by the reconciliation job, in the JSON shape schedulers log."""
    type: str
    folio: Optional[str] = None
    installment_number: Optional[int] = Field(default=None, serialization_alias="installmentNumber")
    quantity: Optional[int] = None
    supplier: Optional[str] = None
    supplier_email: Optional[str] = Field(default=None, serialization_alias="supplierEmail")
    original_date: date = Field(serialization_alias="originalDate")
    new_date: date = Field(serialization_alias="newDate")

class DispatchSummary(BaseModel):
    notifications_created: int = Field(default=0, serialization_alias="notificationsCreated")
    emails_sent: int = Field(default=0, serialization_alias="emailsSent")
    emails_failed: int = Field(default=0, serialization_alias="emailsFailed")
    emails_skipped: int = Field(default=0, serialization_alias="emailsSkipped")

class ReconciliationSummary(BaseModel):
    run_date: date = Field(serialization_alias="runDate")
    target_date: date = Field(serialization_alias="targetDate")
    processed_count: int = Field(serialization_alias="processedCount")
    selected_count: int = Field(serialization_alias="selectedCount")
    skipped_count: int = Field(serialization_alias="skippedCount")
    failed_count: int = Field(serialization_alias="failedCount")
    rescheduled_items: List[RescheduledItem] = Field(default=[], serialization_alias="rescheduledItems")
    dispatch: Optional[DispatchSummary] = None
