class DeliveryError(Exception):
    """Base class for delivery scheduling errors."""


class NotFoundError(DeliveryError):
    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class InvalidTransitionError(DeliveryError):
    """An installment was asked to move to a status its current status does not allow."""

    def __init__(self, installment_id: str, current: str, requested: str):
        super().__init__(f"Installment {installment_id} cannot go from {current} to {requested}")
        self.installment_id = installment_id
        self.current = current
        self.requested = requested


class InstallmentPlanError(DeliveryError):
    """An order cannot be split into the requested installments."""


class AlreadyConfirmedError(DeliveryError):
    def __init__(self, order_id: str, record=None):
        super().__init__(f"Purchase order {order_id} was already confirmed")
        self.order_id = order_id
        self.record = record


class ReconciliationError(DeliveryError):
    """The overdue-delivery selection failed, so the run was aborted."""
