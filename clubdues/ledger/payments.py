"""
Payment Service

Member dues payments and the income transactions behind them.

A dues payment normally travels with one income transaction in the
dues category. Historical payments have no transaction; they count for
the dues walk but move no money.
"""

from datetime import date
from typing import Callable, Optional
from uuid import UUID

import structlog

from clubdues.audit.logger import AuditLogger
from clubdues.config import AppSettings, get_settings
from clubdues.dates import noon_utc, utc_today
from clubdues.ledger.lookups import LookupService
from clubdues.ledger.transactions import TransactionService
from clubdues.models.audit import EntityType, LogEntryBuilder
from clubdues.models.common import apply_patch
from clubdues.models.ledger import (
    Category,
    CategoryType,
    IncomePaymentRequest,
    PaymentEdit,
    Transaction,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
)
from clubdues.models.member import Member, Payment
from clubdues.services.attachments import AttachmentStore, upload_staged
from clubdues.services.storage import MemberRepository, PaymentRepository


logger = structlog.get_logger()

ENTITY_LABEL = "Payment"


def dues_description(member: Member, reference_month: str) -> str:
    return f"Monthly fee - {member.name} ({reference_month})"


def payment_name(payment: Payment, member: Optional[Member] = None) -> str:
    who = member.name if member else str(payment.member_id)
    return f"{who} {payment.reference_month}"


class PaymentService:
    """Dues payments and their income transactions."""

    def __init__(
        self,
        payments: PaymentRepository,
        members: MemberRepository,
        transaction_service: TransactionService,
        categories: LookupService[Category],
        audit: AuditLogger,
        attachments: Optional[AttachmentStore] = None,
        today: Callable[[], date] = utc_today,
        settings: Optional[AppSettings] = None,
    ):
        self._payments = payments
        self._members = members
        self._transactions = transaction_service
        self._categories = categories
        self._audit = audit
        self._attachments = attachments
        self._today = today
        self._settings = settings or get_settings().app

    # =========================================================================
    # READS
    # =========================================================================

    async def get_payments_by_member(self, member_id: UUID) -> list[Payment]:
        """Newest payment date first. Undated historical rows go last."""
        payments = await self._payments.find(member_id=member_id)
        dated = sorted(
            (p for p in payments if p.payment_date is not None),
            key=lambda p: p.payment_date,
            reverse=True,
        )
        undated = sorted(
            (p for p in payments if p.payment_date is None),
            key=lambda p: p.reference_month,
            reverse=True,
        )
        return dated + undated

    async def get_payment_details(
        self,
        payment_id: UUID,
    ) -> Optional[tuple[Payment, Optional[Transaction]]]:
        """A payment and its transaction, or None when the payment is gone."""
        payment = await self._payments.get(payment_id)
        if payment is None:
            return None
        transaction = None
        if payment.transaction_id is not None:
            transaction = await self._transactions.get(payment.transaction_id)
        return payment, transaction

    # =========================================================================
    # WRITES
    # =========================================================================

    async def _dues_category(self) -> Category:
        """Find the dues income category, creating it on first use."""
        name = self._settings.dues_category_name
        category = await self._categories.find_by_name(name)
        if category is not None:
            return category
        logger.info("dues_category_created", category_name=name)
        return await self._categories.add(Category(name=name, type=CategoryType.INCOME))

    async def add_income_transaction_and_payment(
        self,
        request: IncomePaymentRequest,
    ) -> tuple[Payment, Optional[str]]:
        """
        Record a member paying one month of dues.

        Creates an income transaction in the dues category and a payment
        pointing at it, each with its own log entry.

        Returns:
            (payment, warning)
        """
        member = await self._members.require(request.member_id)
        category = await self._dues_category()

        transaction, warning = await self._transactions.add(TransactionCreate(
            description=dues_description(member, request.reference_month),
            amount=request.amount,
            date=noon_utc(request.payment_date),
            type=TransactionType.INCOME,
            account_id=request.account_id,
            category_id=category.id,
            comments=request.comments,
            staged_attachment=request.staged_attachment,
        ))

        payment = Payment(
            member_id=member.id,
            amount=request.amount,
            payment_date=transaction.date,
            reference_month=request.reference_month,
            comments=request.comments,
            attachment_url=transaction.attachment_url,
            attachment_filename=transaction.attachment_filename,
            transaction_id=transaction.id,
        )
        await self._payments.insert(payment)
        await self._audit.log(LogEntryBuilder.created(
            EntityType.PAYMENT, "payment", payment_name(payment, member), payment.id
        ))
        return payment, warning

    async def update_payment_and_transaction(
        self,
        payment_id: UUID,
        edit: PaymentEdit,
    ) -> tuple[Payment, Optional[str]]:
        """
        Edit a payment and keep its transaction in step.

        Returns:
            (payment, warning)
        """
        before = await self._payments.require(payment_id)
        member = await self._members.get(before.member_id)

        overrides = {}
        warning = None
        if edit.staged_attachment is not None:
            result = await upload_staged(
                self._attachments,
                edit.staged_attachment,
                self._settings.max_attachment_size_bytes,
            )
            warning = result.warning
            if result.uploaded:
                overrides = {
                    "attachment_url": result.url,
                    "attachment_filename": result.filename,
                }
        if edit.payment_date is not None:
            overrides["payment_date"] = noon_utc(edit.payment_date)

        after = apply_patch(before, edit, exclude={"account_id", "payment_date"}, **overrides)
        await self._payments.update(after)
        await self._audit.log(LogEntryBuilder.updated(
            EntityType.PAYMENT, ENTITY_LABEL, payment_name(after, member), before, after
        ))

        if after.transaction_id is not None:
            changes = await self._transaction_changes(before, after, edit, member, overrides)
            if changes:
                await self._transactions.update(after.transaction_id, TransactionUpdate(**changes))

        return after, warning

    async def _transaction_changes(
        self,
        before: Payment,
        after: Payment,
        edit: PaymentEdit,
        member: Optional[Member],
        overrides: dict,
    ) -> dict:
        """
        Fields of the payment edit that also belong on its transaction.

        Only fields set in the edit are pushed. A lump transaction that
        funds other payments keeps its own amount, comments, attachment
        and description; only its date and account follow the edit.
        """
        changes = {}
        if edit.payment_date is not None:
            changes["date"] = after.payment_date
        if edit.account_id is not None:
            changes["account_id"] = edit.account_id

        funding = await self._payments.find(transaction_id=after.transaction_id)
        if any(p.id != after.id for p in funding):
            logger.info(
                "shared_transaction_partially_updated",
                transaction_id=str(after.transaction_id),
                payment_id=str(after.id),
            )
            return changes

        set_fields = edit.model_fields_set
        if "amount" in set_fields and edit.amount is not None:
            changes["amount"] = after.amount
        if "comments" in set_fields:
            changes["comments"] = after.comments
        if "attachment_url" in overrides:
            changes["attachment_url"] = after.attachment_url
            changes["attachment_filename"] = after.attachment_filename
        if member is not None and after.reference_month != before.reference_month:
            changes["description"] = dues_description(member, after.reference_month)
        return changes

    async def delete_payment(self, payment_id: UUID) -> None:
        """
        Delete a payment, and its transaction when nothing else uses it.

        A lump transaction funding other member-months is kept.
        """
        before = await self._payments.require(payment_id)
        member = await self._members.get(before.member_id)

        await self._payments.delete(payment_id)
        await self._audit.log(LogEntryBuilder.deleted(
            EntityType.PAYMENT, "payment", payment_name(before, member), before
        ))

        if before.transaction_id is None:
            return
        still_funding = await self._payments.find(transaction_id=before.transaction_id)
        if still_funding:
            logger.info(
                "payment_transaction_kept",
                transaction_id=str(before.transaction_id),
                remaining_payments=len(still_funding),
            )
            return
        if await self._transactions.get(before.transaction_id) is not None:
            await self._transactions.remove(before.transaction_id)
