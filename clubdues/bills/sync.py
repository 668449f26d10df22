"""
Bill <-> Transaction Synchronization

A paid bill and the expense that settled it mirror each other's
description, amount, category, payee, attachment and notes/comments,
and the bill's paid date is the transaction's date.

DESIGN DECISION: Sync is the engine's job, never the caller's.
Whichever side is edited, the service that edits it calls the matching
push function, so a legitimate edit never has to touch both records.
Sync writes are not audit-logged; the edit that caused them is.
"""

from datetime import date
from typing import Any, Optional

import structlog

from clubdues.bills.status import with_derived_status
from clubdues.models.bill import BillStatus, PayableBill
from clubdues.models.ledger import Transaction
from clubdues.services.storage import BillRepository, TransactionRepository


logger = structlog.get_logger()


class BillLinkError(Exception):
    """A bill and a transaction cannot be linked as requested."""
    pass


def transaction_fields_from_bill(bill: PayableBill) -> dict[str, Any]:
    fields = {
        "description": bill.description,
        "amount": bill.amount,
        "category_id": bill.category_id,
        "payee_id": bill.payee_id,
        "attachment_url": bill.attachment_url,
        "attachment_filename": bill.attachment_filename,
        "comments": bill.notes,
    }
    # A transaction always has a date
    if bill.paid_date is not None:
        fields["date"] = bill.paid_date
    return fields


def bill_fields_from_transaction(transaction: Transaction) -> dict[str, Any]:
    return {
        "description": transaction.description,
        "amount": transaction.amount,
        "category_id": transaction.category_id,
        "payee_id": transaction.payee_id,
        "attachment_url": transaction.attachment_url,
        "attachment_filename": transaction.attachment_filename,
        "notes": transaction.comments,
        "paid_date": transaction.date,
    }


def mark_paid_from_transaction(bill: PayableBill, transaction: Transaction) -> PayableBill:
    """The bill as settled by the transaction: paid and fully mirrored."""
    data = bill.model_dump()
    data.update(bill_fields_from_transaction(transaction))
    data.update(status=BillStatus.PAID, transaction_id=transaction.id)
    return PayableBill.model_validate(data)


def revert_bill_payment(bill: PayableBill, today: date) -> PayableBill:
    """
    Undo the payment side of a bill after its transaction is gone.

    The status falls back to pending or overdue from the due date.
    """
    reverted = bill.model_copy(update={
        "status": BillStatus.PENDING,
        "paid_date": None,
        "transaction_id": None,
        "attachment_url": None,
        "attachment_filename": None,
    })
    return with_derived_status(reverted, today)


async def push_bill_to_transaction(
    bill: PayableBill,
    transactions: TransactionRepository,
) -> Optional[Transaction]:
    """
    Copy the bill's mirrored fields onto its linked transaction.

    Raises:
        NotFoundError: If the bill points at a transaction that is gone
    """
    if bill.transaction_id is None:
        return None
    transaction = await transactions.require(bill.transaction_id)

    data = transaction.model_dump()
    data.update(transaction_fields_from_bill(bill))
    updated = Transaction.model_validate(data)
    if updated != transaction:
        await transactions.update(updated)
        logger.info(
            "bill_synced_to_transaction",
            bill_id=str(bill.id),
            transaction_id=str(transaction.id),
        )
    return updated


async def find_linked_bill(
    transaction: Transaction,
    bills: BillRepository,
) -> Optional[PayableBill]:
    """The bill a transaction settles, found through either side of the link."""
    if transaction.payable_bill_id is not None:
        bill = await bills.get(transaction.payable_bill_id)
        if bill is not None:
            return bill
    matches = await bills.find(transaction_id=transaction.id)
    return matches[0] if matches else None


async def push_transaction_to_bill(
    transaction: Transaction,
    bills: BillRepository,
) -> Optional[PayableBill]:
    """Copy the transaction's mirrored fields onto the bill it settles."""
    bill = await find_linked_bill(transaction, bills)
    if bill is None:
        return None

    data = bill.model_dump()
    data.update(bill_fields_from_transaction(transaction))
    updated = PayableBill.model_validate(data)
    if updated != bill:
        await bills.update(updated)
        logger.info(
            "transaction_synced_to_bill",
            bill_id=str(bill.id),
            transaction_id=str(transaction.id),
        )
    return updated
