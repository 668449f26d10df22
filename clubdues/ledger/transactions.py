"""
Transaction Service

Ledger CRUD plus the side effects that keep other tables consistent:
- attachment upload, degraded to a warning on failure
- bill sync when a bill-linked transaction is edited
- cascade on delete: dependent payments are removed and a settled bill
  is reverted to pending/overdue
- multi-payment linking, where one deposit funds several member-months

DESIGN DECISION: No cross-table transactions.
Every step is a separate single-row write followed by its log entry.
The single-admin assumption makes this acceptable; two simultaneous
edits of the same record race and the last write wins.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog

from clubdues.audit.logger import AuditLogger
from clubdues.bills.sync import (
    BillLinkError,
    find_linked_bill,
    push_transaction_to_bill,
    revert_bill_payment,
)
from clubdues.dates import ensure_utc, utc_today
from clubdues.ledger.lookups import lookup_names
from clubdues.models.audit import EntityType, LogEntryBuilder
from clubdues.models.common import apply_patch
from clubdues.models.ledger import (
    Account,
    AccountBalance,
    Transaction,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
)
from clubdues.models.member import Payment, PaymentLink
from clubdues.services.attachments import AttachmentStore, upload_staged
from clubdues.services.storage import (
    BillRepository,
    PaymentRepository,
    Repository,
    TransactionRepository,
)


logger = structlog.get_logger()

ENTITY_LABEL = "Transaction"


class PaymentLinkError(Exception):
    """A transaction cannot fund the requested member-months."""
    pass


class TransactionService:
    """Ledger writes and their cross-table side effects."""

    def __init__(
        self,
        transactions: TransactionRepository,
        payments: PaymentRepository,
        bills: BillRepository,
        accounts: Repository[Account],
        audit: AuditLogger,
        attachments: Optional[AttachmentStore] = None,
        today: Callable[[], date] = utc_today,
        name_sources: Iterable[Repository] = (),
        max_attachment_bytes: Optional[int] = None,
    ):
        self._transactions = transactions
        self._payments = payments
        self._bills = bills
        self._accounts = accounts
        self._audit = audit
        self._attachments = attachments
        self._today = today
        self._name_sources = list(name_sources)
        self._max_attachment_bytes = max_attachment_bytes

    # =========================================================================
    # READS
    # =========================================================================

    async def get_all(self) -> list[Transaction]:
        """Newest first."""
        transactions = await self._transactions.list_all()
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    async def get(self, transaction_id: UUID) -> Optional[Transaction]:
        return await self._transactions.get(transaction_id)

    async def get_account_balances(self) -> list[AccountBalance]:
        """Initial balance plus income minus expense, per account."""
        accounts = await self._accounts.list_all()
        totals: dict[UUID, Decimal] = {a.id: Decimal("0") for a in accounts}
        for transaction in await self._transactions.list_all():
            if transaction.account_id in totals:
                totals[transaction.account_id] += transaction.signed_amount

        balances = [
            AccountBalance(
                account_id=account.id,
                name=account.name,
                initial_balance=account.initial_balance,
                current_balance=account.initial_balance + totals[account.id],
            )
            for account in accounts
        ]
        balances.sort(key=lambda b: b.name.lower())
        return balances

    # =========================================================================
    # WRITES
    # =========================================================================

    async def add(
        self,
        data: TransactionCreate,
        payable_bill_id: Optional[UUID] = None,
    ) -> tuple[Transaction, Optional[str]]:
        """
        Create a transaction.

        A staged attachment that cannot be uploaded is dropped and the
        transaction is saved without it.

        Returns:
            (transaction, warning)
        """
        fields = data.model_dump(exclude={"staged_attachment"})
        warning = None
        if data.staged_attachment is not None:
            result = await upload_staged(
                self._attachments, data.staged_attachment, self._max_attachment_bytes
            )
            fields["attachment_url"] = result.url
            fields["attachment_filename"] = result.filename
            warning = result.warning

        transaction = Transaction(**fields, payable_bill_id=payable_bill_id)
        await self._transactions.insert(transaction)
        await self._audit.log(LogEntryBuilder.created(
            EntityType.TRANSACTION, "transaction", transaction.description, transaction.id
        ))
        return transaction, warning

    async def update(
        self,
        transaction_id: UUID,
        patch: TransactionUpdate,
    ) -> tuple[Transaction, Optional[str]]:
        """
        Update a transaction and push the mirrored fields to its bill.

        A staged attachment that cannot be uploaded leaves the previous
        attachment in place.

        Returns:
            (transaction, warning)
        """
        before = await self._transactions.require(transaction_id)

        overrides = {}
        warning = None
        if patch.staged_attachment is not None:
            result = await upload_staged(
                self._attachments, patch.staged_attachment, self._max_attachment_bytes
            )
            if result.uploaded:
                overrides = {
                    "attachment_url": result.url,
                    "attachment_filename": result.filename,
                }
            else:
                overrides = {
                    "attachment_url": before.attachment_url,
                    "attachment_filename": before.attachment_filename,
                }
                warning = result.warning

        after = apply_patch(before, patch, **overrides)
        await self._transactions.update(after)
        await self._audit.log(LogEntryBuilder.updated(
            EntityType.TRANSACTION,
            ENTITY_LABEL,
            after.description,
            before,
            after,
            names=await lookup_names(self._name_sources),
        ))

        await push_transaction_to_bill(after, self._bills)
        return after, warning

    async def link_to_bill(
        self,
        transaction_id: UUID,
        bill_id: Optional[UUID],
    ) -> Transaction:
        """
        Set or clear the bill back-link of a transaction.

        The link is owned by the bill lifecycle, which is why it is not
        part of TransactionUpdate.
        """
        before = await self._transactions.require(transaction_id)
        if bill_id is not None and before.type != TransactionType.EXPENSE:
            raise BillLinkError("Only expense transactions can settle a bill")
        if before.payable_bill_id == bill_id:
            return before

        after = before.model_copy(update={"payable_bill_id": bill_id})
        await self._transactions.update(after)
        action = "linked to bill" if bill_id else "unlinked from bill"
        await self._audit.log(LogEntryBuilder.updated(
            EntityType.TRANSACTION,
            ENTITY_LABEL,
            after.description,
            before,
            after,
            description=f'{ENTITY_LABEL} "{after.description}" {action}.',
        ))
        return after

    async def remove(self, transaction_id: UUID) -> None:
        """
        Delete a transaction and clean up what depended on it.

        Payments funded by the transaction are deleted. A bill it settled
        goes back to pending/overdue with its payment fields cleared.
        Each of these writes gets its own log entry.
        """
        before = await self._transactions.require(transaction_id)
        linked_bill = await find_linked_bill(before, self._bills)

        await self._transactions.delete(transaction_id)
        await self._audit.log(LogEntryBuilder.deleted(
            EntityType.TRANSACTION, "transaction", before.description, before
        ))

        for payment in await self._payments.find(transaction_id=transaction_id):
            await self._payments.delete(payment.id)
            await self._audit.log(LogEntryBuilder.deleted(
                EntityType.PAYMENT,
                "payment",
                f"{payment.reference_month} ({payment.amount})",
                payment,
            ))

        if linked_bill is not None and linked_bill.transaction_id == transaction_id:
            reverted = revert_bill_payment(linked_bill, self._today())
            await self._bills.update(reverted)
            await self._audit.log(LogEntryBuilder.updated(
                EntityType.BILL,
                "Payable bill",
                reverted.description,
                linked_bill,
                reverted,
                description=(
                    f'Payable bill "{reverted.description}" reverted to '
                    f'{reverted.status.value} after its transaction was removed.'
                ),
            ))

        logger.info("transaction_removed", transaction_id=str(transaction_id))

    async def set_multiple_payment_links(
        self,
        transaction_id: UUID,
        links: list[PaymentLink],
        payment_date: Optional[datetime] = None,
    ) -> list[Payment]:
        """
        Make one income transaction fund several member-months.

        Every payment currently pointing at the transaction is unlinked
        first. Then each link updates the member's existing payment row
        for that month, keeping its comments and attachment, or creates
        a new one. Calling this twice with the same links reuses the same
        rows, so the final state is identical.

        Args:
            transaction_id: The lump income transaction
            links: Member-months funded by it
            payment_date: Defaults to the transaction's date
        """
        transaction = await self._transactions.require(transaction_id)
        if transaction.type != TransactionType.INCOME:
            raise PaymentLinkError("Only income transactions can fund member payments")
        linked_total = sum((link.amount for link in links), Decimal("0"))
        if linked_total > transaction.amount:
            raise PaymentLinkError(
                f"Linked payments total {linked_total} but the transaction "
                f"is only {transaction.amount}"
            )
        paid_at = ensure_utc(payment_date) if payment_date else transaction.date

        for payment in await self._payments.find(transaction_id=transaction_id):
            unlinked = payment.model_copy(update={"transaction_id": None, "payment_date": None})
            await self._payments.update(unlinked)
            await self._audit.log(LogEntryBuilder.updated(
                EntityType.PAYMENT,
                "Payment",
                payment.reference_month,
                payment,
                unlinked,
                description=(
                    f'Payment for {payment.reference_month} unlinked from '
                    f'transaction "{transaction.description}".'
                ),
            ))

        linked = []
        for link in links:
            existing = await self._payments.find(
                member_id=link.member_id,
                reference_month=link.reference_month,
            )
            if existing:
                before = existing[0]
                after = before.model_copy(update={
                    "amount": link.amount,
                    "transaction_id": transaction.id,
                    "payment_date": paid_at,
                })
                await self._payments.update(after)
                await self._audit.log(LogEntryBuilder.updated(
                    EntityType.PAYMENT,
                    "Payment",
                    link.reference_month,
                    before,
                    after,
                    description=(
                        f'Payment for {link.reference_month} linked to '
                        f'transaction "{transaction.description}".'
                    ),
                ))
            else:
                after = Payment(
                    member_id=link.member_id,
                    amount=link.amount,
                    payment_date=paid_at,
                    reference_month=link.reference_month,
                    transaction_id=transaction.id,
                )
                await self._payments.insert(after)
                await self._audit.log(LogEntryBuilder.created(
                    EntityType.PAYMENT, "payment", link.reference_month, after.id
                ))
            linked.append(after)

        logger.info(
            "payment_links_set",
            transaction_id=str(transaction_id),
            link_count=len(linked),
        )
        return linked
