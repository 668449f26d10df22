"""Payable bills: status derivation, transaction sync and lifecycle."""

from clubdues.bills.estimate import decode_legacy_estimate, strip_marker
from clubdues.bills.lifecycle import BillLifecycleManager
from clubdues.bills.status import derive_bill_status, with_derived_status
from clubdues.bills.sync import (
    BillLinkError,
    push_bill_to_transaction,
    push_transaction_to_bill,
    revert_bill_payment,
)

__all__ = [
    "BillLifecycleManager",
    "BillLinkError",
    "decode_legacy_estimate",
    "derive_bill_status",
    "push_bill_to_transaction",
    "push_transaction_to_bill",
    "revert_bill_payment",
    "strip_marker",
    "with_derived_status",
]
