"""Time-derived bill status."""

from datetime import date

from clubdues.models.bill import BillStatus, PayableBill


def derive_bill_status(bill: PayableBill, today: date) -> BillStatus:
    """
    paid stays paid. Otherwise a bill is overdue once its due date is
    strictly before today, and pending until then.
    """
    if bill.status == BillStatus.PAID:
        return BillStatus.PAID
    if bill.due_date < today:
        return BillStatus.OVERDUE
    return BillStatus.PENDING


def with_derived_status(bill: PayableBill, today: date) -> PayableBill:
    status = derive_bill_status(bill, today)
    if status == bill.status:
        return bill
    return bill.model_copy(update={"status": status})
