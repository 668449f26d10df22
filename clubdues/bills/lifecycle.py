"""
Bill Lifecycle Manager

Creates single, installment and monthly bills, derives their status,
and settles them against ledger transactions.

State machine per bill:
    pending <-> overdue     derived from due_date on every read
    pending/overdue -> paid only through pay_bill, pay_bill_with_transaction_data
                            or link_expense_to_bill
    paid -> pending/overdue only when the settling transaction is removed

CRITICAL: time never marks a bill as paid.
"""

import re
from datetime import date
from typing import TYPE_CHECKING, Callable, Optional
from uuid import UUID, uuid4

import structlog

from clubdues.audit.logger import AuditLogger
from clubdues.bills.estimate import decode_legacy_estimate
from clubdues.bills.status import with_derived_status
from clubdues.bills.sync import (
    BillLinkError,
    mark_paid_from_transaction,
    push_bill_to_transaction,
)
from clubdues.config import AppSettings, get_settings
from clubdues.dates import add_months_utc, noon_utc, utc_today
from clubdues.models.audit import EntityType, LogEntryBuilder
from clubdues.models.bill import (
    BillPayment,
    BillPaymentType,
    BillStatus,
    BillUpdate,
    InstallmentInfo,
    NewPayableBillRequest,
    PayableBill,
)
from clubdues.models.common import apply_patch
from clubdues.models.ledger import (
    Transaction,
    TransactionCreate,
    TransactionType,
)
from clubdues.services.attachments import AttachmentStore, upload_staged
from clubdues.services.storage import BillRepository, TransactionRepository

if TYPE_CHECKING:
    from clubdues.ledger.transactions import TransactionService


logger = structlog.get_logger()

ENTITY_LABEL = "Payable bill"

_INSTALLMENT_SUFFIX = re.compile(r"\s\(\d+/\d+\)$")


def bill_display_name(bill: PayableBill) -> str:
    return f"{bill.description} (due {bill.due_date.isoformat()})"


class BillLifecycleManager:
    """Payable bill CRUD, generation and settlement."""

    def __init__(
        self,
        bills: BillRepository,
        transactions: TransactionRepository,
        transaction_service: "TransactionService",
        audit: AuditLogger,
        attachments: Optional[AttachmentStore] = None,
        today: Callable[[], date] = utc_today,
        settings: Optional[AppSettings] = None,
    ):
        self._bills = bills
        self._transactions = transactions
        self._transaction_service = transaction_service
        self._audit = audit
        self._attachments = attachments
        self._today = today
        self._settings = settings or get_settings().app

    def _prepare(self, bill: PayableBill) -> PayableBill:
        """Decode the legacy estimate marker and derive the status."""
        bill = decode_legacy_estimate(bill, self._settings.legacy_estimate_marker)
        return with_derived_status(bill, self._today())

    async def _upload(self, staged) -> tuple[Optional[str], Optional[str], Optional[str]]:
        result = await upload_staged(
            self._attachments, staged, self._settings.max_attachment_size_bytes
        )
        return result.url, result.filename, result.warning

    # =========================================================================
    # READS
    # =========================================================================

    async def get_all(self) -> list[PayableBill]:
        """Every bill, by due date, with status re-derived."""
        bills = [self._prepare(b) for b in await self._bills.list_all()]
        bills.sort(key=lambda b: b.due_date)
        return bills

    async def get(self, bill_id: UUID) -> Optional[PayableBill]:
        bill = await self._bills.get(bill_id)
        return self._prepare(bill) if bill is not None else None

    async def get_bills_for_linking(self) -> list[PayableBill]:
        """Bills an existing expense may settle: open ones, or paid ones with no transaction."""
        return [
            bill for bill in await self.get_all()
            if bill.status != BillStatus.PAID or bill.transaction_id is None
        ]

    async def get_unlinked_expenses(self) -> list[Transaction]:
        """Expenses not settling any bill yet, newest first."""
        linked = {
            bill.transaction_id
            for bill in await self._bills.list_all()
            if bill.transaction_id is not None
        }
        expenses = [
            t for t in await self._transactions.find(type=TransactionType.EXPENSE)
            if t.id not in linked and t.payable_bill_id is None
        ]
        expenses.sort(key=lambda t: t.date, reverse=True)
        return expenses[:self._settings.unlinked_expenses_limit]

    # =========================================================================
    # CRUD
    # =========================================================================

    async def add(self, bill: PayableBill) -> PayableBill:
        bill = self._prepare(bill)
        await self._bills.insert(bill)
        await self._audit.log(LogEntryBuilder.created(
            EntityType.BILL, "payable bill", bill_display_name(bill), bill.id
        ))
        return bill

    async def update(
        self,
        bill_id: UUID,
        patch: BillUpdate,
    ) -> tuple[PayableBill, Optional[str]]:
        """
        Update a bill and push the mirrored fields to its transaction.

        Returns:
            (bill, warning) where warning reports a failed attachment upload
        """
        stored = await self._bills.require(bill_id)
        before = self._prepare(stored)

        overrides = {}
        warning = None
        if patch.staged_attachment is not None:
            url, filename, warning = await self._upload(patch.staged_attachment)
            if url is not None:
                overrides = {"attachment_url": url, "attachment_filename": filename}
            else:
                overrides = {
                    "attachment_url": before.attachment_url,
                    "attachment_filename": before.attachment_filename,
                }

        after = with_derived_status(apply_patch(before, patch, **overrides), self._today())
        await self._bills.update(after)
        await self._audit.log(LogEntryBuilder.updated(
            EntityType.BILL, ENTITY_LABEL, bill_display_name(after), stored, after
        ))

        await push_bill_to_transaction(after, self._transactions)
        return after, warning

    async def remove(self, bill_id: UUID) -> None:
        """Delete one bill. The settling transaction stays, unlinked."""
        before = await self._bills.require(bill_id)
        await self._bills.delete(bill_id)
        await self._audit.log(LogEntryBuilder.deleted(
            EntityType.BILL, "payable bill", bill_display_name(before), before
        ))

        await self._release_transaction(before)

    async def _release_transaction(self, bill: PayableBill) -> None:
        """Clear the back-link of the transaction that settled a deleted bill."""
        if bill.transaction_id is None:
            return
        transaction = await self._transactions.get(bill.transaction_id)
        if transaction is not None and transaction.payable_bill_id == bill.id:
            await self._transaction_service.link_to_bill(transaction.id, None)

    async def delete_installment_group(self, group_id: UUID) -> int:
        """
        Delete every bill of an installment group, as one log entry.

        Returns the number of bills removed.
        """
        bills = await self._bills.find(installment_group_id=group_id)
        if not bills:
            logger.warning("installment_group_empty", group_id=str(group_id))
            return 0

        bills.sort(key=lambda b: b.due_date)
        for bill in bills:
            await self._bills.delete(bill.id)

        base = _INSTALLMENT_SUFFIX.sub("", bills[0].description)
        await self._audit.log(LogEntryBuilder.deleted_many(
            EntityType.BILL,
            f'Removed installment group "{base}" ({len(bills)} bills)',
            bills,
        ))
        for bill in bills:
            await self._release_transaction(bill)
        return len(bills)

    async def delete_future_recurring(self, recurring_id: UUID, from_due_date: date) -> int:
        """
        Delete occurrences of a monthly series due on or after a date.

        Earlier occurrences are kept. Returns the number removed.
        """
        bills = [
            b for b in await self._bills.find(recurring_id=recurring_id)
            if b.due_date >= from_due_date
        ]
        if not bills:
            logger.warning(
                "recurring_series_nothing_to_delete",
                recurring_id=str(recurring_id),
                from_due_date=from_due_date.isoformat(),
            )
            return 0

        bills.sort(key=lambda b: b.due_date)
        for bill in bills:
            await self._bills.delete(bill.id)

        await self._audit.log(LogEntryBuilder.deleted_many(
            EntityType.BILL,
            f'Removed {len(bills)} recurring bills "{bills[0].description}" '
            f'from {from_due_date.isoformat()}',
            bills,
        ))
        for bill in bills:
            await self._release_transaction(bill)
        return len(bills)

    # =========================================================================
    # GENERATION
    # =========================================================================

    async def add_payable_bill(
        self,
        request: NewPayableBillRequest,
    ) -> tuple[list[PayableBill], Optional[str]]:
        """
        Create one bill, an installment group or a monthly series.

        - single: one bill due on first_due_date
        - installments(n): n bills one calendar month apart, sharing a
          group id, described "<description> (i/n)", each for the full amount
        - monthly: recurring_horizon_months bills sharing a recurring id

        Returns:
            (bills in due-date order, attachment warning)
        """
        attachment_url = attachment_filename = warning = None
        if request.staged_attachment is not None:
            attachment_url, attachment_filename, warning = await self._upload(
                request.staged_attachment
            )

        common = {
            "description": request.description,
            "payee_id": request.payee_id,
            "category_id": request.category_id,
            "amount": request.amount,
            "notes": request.notes,
            "is_estimate": request.is_estimate,
            "attachment_url": attachment_url,
            "attachment_filename": attachment_filename,
        }

        if request.payment_type == BillPaymentType.SINGLE:
            drafts = [PayableBill(**common, due_date=request.first_due_date)]
        elif request.payment_type == BillPaymentType.INSTALLMENTS:
            total = request.installments
            group_id = uuid4()
            drafts = [
                PayableBill(
                    **{**common, "description": f"{request.description} ({i + 1}/{total})"},
                    due_date=add_months_utc(request.first_due_date, i),
                    installment_info=InstallmentInfo(current=i + 1, total=total),
                    installment_group_id=group_id,
                )
                for i in range(total)
            ]
        else:
            recurring_id = uuid4()
            drafts = [
                PayableBill(
                    **common,
                    due_date=add_months_utc(request.first_due_date, i),
                    recurring_id=recurring_id,
                )
                for i in range(self._settings.recurring_horizon_months)
            ]

        created = [await self.add(draft) for draft in drafts]
        logger.info(
            "payable_bills_created",
            payment_type=request.payment_type.value,
            count=len(created),
        )
        return created, warning

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    async def _settle(self, bill: PayableBill, transaction: Transaction) -> PayableBill:
        after = mark_paid_from_transaction(bill, transaction)
        await self._bills.update(after)
        await self._audit.log(LogEntryBuilder.updated(
            EntityType.BILL,
            ENTITY_LABEL,
            bill_display_name(after),
            bill,
            after,
            description=(
                f'{ENTITY_LABEL} "{bill_display_name(after)}" paid by '
                f'transaction "{transaction.description}".'
            ),
        ))
        return after

    async def _require_payable(self, bill_id: UUID) -> PayableBill:
        bill = self._prepare(await self._bills.require(bill_id))
        if bill.transaction_id is not None:
            raise BillLinkError(f'Bill "{bill.description}" is already settled by a transaction')
        return bill

    async def pay_bill(
        self,
        bill_id: UUID,
        payment: BillPayment,
    ) -> tuple[PayableBill, Optional[str]]:
        """
        Pay a bill with a new expense transaction.

        The transaction takes the bill's description, category, payee and
        notes. The bill then mirrors the transaction's amount, date and
        attachment and is marked paid.

        Returns:
            (bill, warning)
        """
        bill = await self._require_payable(bill_id)
        transaction, warning = await self._transaction_service.add(
            TransactionCreate(
                description=bill.description,
                amount=payment.amount or bill.amount,
                date=noon_utc(payment.paid_date),
                type=TransactionType.EXPENSE,
                account_id=payment.account_id,
                category_id=bill.category_id,
                payee_id=bill.payee_id,
                comments=bill.notes,
                attachment_url=bill.attachment_url,
                attachment_filename=bill.attachment_filename,
                staged_attachment=payment.staged_attachment,
            ),
            payable_bill_id=bill.id,
        )
        return await self._settle(bill, transaction), warning

    async def pay_bill_with_transaction_data(
        self,
        bill_id: UUID,
        data: TransactionCreate,
    ) -> tuple[PayableBill, Optional[str]]:
        """
        Pay a bill with a transaction described entirely by the caller.

        The bill is overwritten with the transaction's mirrored fields.

        Raises:
            BillLinkError: If the data is not an expense
        """
        if data.type != TransactionType.EXPENSE:
            raise BillLinkError("A bill can only be paid by an expense")
        bill = await self._require_payable(bill_id)
        transaction, warning = await self._transaction_service.add(
            data, payable_bill_id=bill.id
        )
        return await self._settle(bill, transaction), warning

    async def link_expense_to_bill(self, bill_id: UUID, transaction_id: UUID) -> PayableBill:
        """
        Settle a bill with an expense that already exists.

        The bill takes every mirrored field from the transaction and is
        marked paid; the transaction is stamped with the bill's id.

        Raises:
            BillLinkError: If the transaction is not a free expense
        """
        transaction = await self._transactions.require(transaction_id)
        if transaction.type != TransactionType.EXPENSE:
            raise BillLinkError("Only expense transactions can settle a bill")
        if transaction.payable_bill_id not in (None, bill_id):
            raise BillLinkError(
                f'Transaction "{transaction.description}" already settles another bill'
            )
        others = [
            b for b in await self._bills.find(transaction_id=transaction_id)
            if b.id != bill_id
        ]
        if others:
            raise BillLinkError(
                f'Transaction "{transaction.description}" already settles another bill'
            )

        bill = await self._require_payable(bill_id)
        settled = await self._settle(bill, transaction)
        await self._transaction_service.link_to_bill(transaction_id, bill_id)
        return settled
