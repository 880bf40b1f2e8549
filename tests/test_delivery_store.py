from datetime import date

import pytest

from erp import crud
from erp.erp_models import DeliveryMode, InstallmentStatus, PurchaseOrderStatus
from erp.errors import InstallmentPlanError, InvalidTransitionError, NotFoundError
from erp.schemas import InstallmentPlanItem


class TestInstallmentStateMachine:
    def test_set_scheduled_date_schedules_installment(self, db, make_order, make_installment):
        order = make_order("OC-0001", mode=DeliveryMode.MULTI)
        inst = make_installment(order, 1)
        assert inst.status == InstallmentStatus.UNSCHEDULED

        updated = crud.set_scheduled_date(db, inst.id, date(2024, 3, 8))

        assert updated.status == InstallmentStatus.SCHEDULED
        assert updated.scheduled_date == date(2024, 3, 8)

    def test_rescheduling_a_scheduled_installment(self, db, make_order, make_installment):
        order = make_order("OC-0002", mode=DeliveryMode.MULTI)
        inst = make_installment(order, 1, scheduled=date(2024, 3, 8))

        updated = crud.set_scheduled_date(db, inst.id, date(2024, 3, 12))

        assert updated.status == InstallmentStatus.SCHEDULED
        assert updated.scheduled_date == date(2024, 3, 12)

    def test_clear_scheduled_date(self, db, make_order, make_installment):
        order = make_order("OC-0003", mode=DeliveryMode.MULTI)
        inst = make_installment(order, 1, scheduled=date(2024, 3, 8))

        updated = crud.clear_scheduled_date(db, inst.id)

        assert updated.status == InstallmentStatus.UNSCHEDULED
        assert updated.scheduled_date is None

    def test_confirmed_installment_cannot_be_rescheduled(self, db, make_order, make_installment):
        order = make_order("OC-0004", mode=DeliveryMode.MULTI)
        inst = make_installment(order, 1, scheduled=date(2024, 3, 8), status=InstallmentStatus.CONFIRMED)

        with pytest.raises(InvalidTransitionError):
            crud.set_scheduled_date(db, inst.id, date(2024, 3, 12))
        with pytest.raises(InvalidTransitionError):
            crud.clear_scheduled_date(db, inst.id)

        db.refresh(inst)
        assert inst.status == InstallmentStatus.CONFIRMED
        assert inst.scheduled_date == date(2024, 3, 8)

    def test_unknown_installment(self, db):
        with pytest.raises(NotFoundError):
            crud.set_scheduled_date(db, "missing", date(2024, 3, 8))
        with pytest.raises(NotFoundError):
            crud.clear_scheduled_date(db, "missing")

    def test_mark_confirmed(self, db, make_order, make_installment):
        order = make_order("OC-0005", mode=DeliveryMode.MULTI)
        inst = make_installment(order, 1, scheduled=date(2024, 3, 8))

        assert crud.mark_confirmed(db, installment_id=inst.id).status == InstallmentStatus.CONFIRMED
        # second call is a no-op
        assert crud.mark_confirmed(db, installment_id=inst.id).status == InstallmentStatus.CONFIRMED

    def test_mark_confirmed_requires_a_date(self, db, make_order, make_installment):
        order = make_order("OC-0006", mode=DeliveryMode.MULTI)
        inst = make_installment(order, 1)

        with pytest.raises(InvalidTransitionError):
            crud.mark_confirmed(db, installment_id=inst.id)

    def test_mark_confirmed_single_order_is_a_hook(self, db, make_order):
        order = make_order("OC-0007", scheduled=date(2024, 3, 8))

        assert crud.mark_confirmed(db, order_id=order.id).id == order.id
        with pytest.raises(NotFoundError):
            crud.mark_confirmed(db, order_id="missing")
        with pytest.raises(ValueError):
            crud.mark_confirmed(db)


def test_append_note_keeps_previous_text():
    assert crud.append_note(None, "first") == "first"
    assert crud.append_note("", "first") == "first"
    assert crud.append_note("first", "second") == "first\nsecond"


class TestOverdueSelection:
    def test_installment_boundaries(self, db, make_order, make_installment):
        today = date(2024, 3, 6)
        order = make_order("OC-0010", mode=DeliveryMode.MULTI)
        overdue = make_installment(order, 1, scheduled=date(2024, 3, 5))
        make_installment(order, 2, scheduled=date(2024, 3, 5), status=InstallmentStatus.CONFIRMED)
        make_installment(order, 3, scheduled=today)
        make_installment(order, 4)

        selected = crud.list_overdue_installments(db, today)

        assert [i.id for i in selected] == [overdue.id]

    def test_single_order_filters(self, db, make_order):
        today = date(2024, 3, 6)
        issued = make_order("OC-0011", scheduled=date(2024, 3, 1))
        partial = make_order("OC-0012", scheduled=date(2024, 3, 2), status=PurchaseOrderStatus.PARTIALLY_RECEIVED)
        make_order("OC-0013", scheduled=date(2024, 3, 1), status=PurchaseOrderStatus.RECEIVED)
        make_order("OC-0014", scheduled=date(2024, 3, 1), status=PurchaseOrderStatus.CANCELLED)
        make_order("OC-0015", scheduled=date(2024, 3, 1), mode=DeliveryMode.MULTI)
        make_order("OC-0016", scheduled=today)
        make_order("OC-0017", scheduled=None)

        selected = crud.list_overdue_single_orders(db, today)

        assert [o.folio for o in selected] == [issued.folio, partial.folio]

    def test_conditional_reschedule_detects_stale_snapshot(self, db, make_order):
        order = make_order("OC-0018", scheduled=date(2024, 3, 1), notes="Call before delivering")

        assert crud.reschedule_overdue_order(db, order.id, date(2024, 3, 1), date(2024, 3, 5), "[AUTO] moved")
        # the row no longer holds the date the caller saw
        assert not crud.reschedule_overdue_order(db, order.id, date(2024, 3, 1), date(2024, 3, 5), "[AUTO] moved")

        db.refresh(order)
        assert order.scheduled_delivery_date == date(2024, 3, 5)
        assert order.notes == "Call before delivering\n[AUTO] moved"

    def test_conditional_reschedule_skips_confirmed_installment(self, db, make_order, make_installment):
        order = make_order("OC-0019", mode=DeliveryMode.MULTI)
        inst = make_installment(order, 1, scheduled=date(2024, 3, 1), status=InstallmentStatus.CONFIRMED)

        assert not crud.reschedule_overdue_installment(db, inst.id, date(2024, 3, 1), date(2024, 3, 5), "note")


class TestSplitIntoInstallments:
    def test_split(self, db, make_order):
        order = make_order("OC-0020", scheduled=date(2024, 3, 8), quantity=300)
        plan = [
            InstallmentPlanItem(quantity=100, scheduled_date=date(2024, 3, 8)),
            InstallmentPlanItem(quantity=200, scheduled_date=date(2024, 3, 15)),
        ]

        installments = crud.split_into_installments(db, order.id, plan)

        assert [(i.installment_number, i.quantity, i.status) for i in installments] == [
            (1, 100, InstallmentStatus.SCHEDULED),
            (2, 200, InstallmentStatus.SCHEDULED),
        ]
        db.refresh(order)
        assert order.delivery_mode == DeliveryMode.MULTI
        assert order.scheduled_delivery_date == date(2024, 3, 8)

    @pytest.mark.parametrize("plan, message", [
        ([], "At least one"),
        ([InstallmentPlanItem(quantity=300)], "without a scheduled date"),
        ([InstallmentPlanItem(quantity=0, scheduled_date=date(2024, 3, 8)),
          InstallmentPlanItem(quantity=300, scheduled_date=date(2024, 3, 9))], "greater than 0"),
        ([InstallmentPlanItem(quantity=100, scheduled_date=date(2024, 3, 8))], "must equal the order total"),
    ])
    def test_invalid_plans(self, db, make_order, plan, message):
        order = make_order("OC-0021", quantity=300)

        with pytest.raises(InstallmentPlanError, match=message):
            crud.split_into_installments(db, order.id, plan)

        db.refresh(order)
        assert order.delivery_mode == DeliveryMode.SINGLE
        assert crud.list_installments(db, order.id) == []

    def test_already_multi(self, db, make_order):
        order = make_order("OC-0022", mode=DeliveryMode.MULTI, quantity=100)

        with pytest.raises(InstallmentPlanError):
            crud.split_into_installments(db, order.id, [InstallmentPlanItem(quantity=100, scheduled_date=date(2024, 3, 8))])

    def test_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            crud.split_into_installments(db, "missing", [InstallmentPlanItem(quantity=1, scheduled_date=date(2024, 3, 8))])


class TestRescheduleInstallments:
    def test_reschedules_several(self, db, make_order, make_installment):
        order = make_order("OC-0030", mode=DeliveryMode.MULTI)
        first = make_installment(order, 1, scheduled=date(2024, 3, 8))
        second = make_installment(order, 2)

        changed = crud.reschedule_installments(db, order.id, {
            first.id: date(2024, 3, 9),
            second.id: date(2024, 3, 16),
        })

        assert {i.id: (i.scheduled_date, i.status) for i in changed} == {
            first.id: (date(2024, 3, 9), InstallmentStatus.SCHEDULED),
            second.id: (date(2024, 3, 16), InstallmentStatus.SCHEDULED),
        }

    def test_rejects_installment_of_other_order(self, db, make_order, make_installment):
        order = make_order("OC-0031", mode=DeliveryMode.MULTI)
        other = make_order("OC-0032", mode=DeliveryMode.MULTI)
        foreign = make_installment(other, 1, scheduled=date(2024, 3, 8))

        with pytest.raises(NotFoundError):
            crud.reschedule_installments(db, order.id, {foreign.id: date(2024, 3, 9)})

    def test_confirmed_installment_rolls_back_batch(self, db, make_order, make_installment):
        order = make_order("OC-0033", mode=DeliveryMode.MULTI)
        open_one = make_installment(order, 1, scheduled=date(2024, 3, 8))
        confirmed = make_installment(order, 2, scheduled=date(2024, 3, 9), status=InstallmentStatus.CONFIRMED)

        with pytest.raises(InvalidTransitionError):
            crud.reschedule_installments(db, order.id, {
                open_one.id: date(2024, 3, 10),
                confirmed.id: date(2024, 3, 11),
            })

        db.refresh(open_one)
        assert open_one.scheduled_date == date(2024, 3, 8)
