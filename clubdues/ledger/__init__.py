"""Ledger mutation layer: transactions, dues payments, lookup tables and reports."""

from clubdues.ledger.lookups import LookupService, Reference, lookup_names
from clubdues.ledger.payments import PaymentService
from clubdues.ledger.reports import ReportService
from clubdues.ledger.transactions import PaymentLinkError, TransactionService

__all__ = [
    "LookupService",
    "PaymentLinkError",
    "PaymentService",
    "Reference",
    "ReportService",
    "TransactionService",
    "lookup_names",
]
