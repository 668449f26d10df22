"""Tests for payable bills: generation, status, settlement and sync."""

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from clubdues.bills import BillLinkError, derive_bill_status, strip_marker
from clubdues.models.bill import (
    BillPayment,
    BillPaymentType,
    BillStatus,
    BillUpdate,
    NewPayableBillRequest,
    PayableBill,
)
from clubdues.models.ledger import (
    StagedAttachment,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
)


def new_bill_request(category, **overrides):
    data = dict(
        description="Electricity",
        category_id=category.id,
        amount=Decimal("120.00"),
        first_due_date=date(2025, 1, 15),
    )
    data.update(overrides)
    return NewPayableBillRequest(**data)


def add_single_bill(app, category, **overrides):
    bills, _ = asyncio.run(app.add_payable_bill(new_bill_request(category, **overrides)))
    return bills[0]


def add_expense(app, account, category, **overrides):
    data = dict(
        description="Power company",
        amount=Decimal("118.40"),
        date=datetime(2025, 1, 8, 12, 0, tzinfo=timezone.utc),
        type=TransactionType.EXPENSE,
        account_id=account.id,
        category_id=category.id,
    )
    data.update(overrides)
    transaction, _ = asyncio.run(app.transactions.add(TransactionCreate(**data)))
    return transaction


class TestBillStatus:
    """Tests for time-derived status."""

    def _bill(self, due, status=BillStatus.PENDING):
        return PayableBill(
            description="Rent",
            category_id=uuid4(),
            amount=Decimal("900"),
            due_date=due,
            status=status,
        )

    def test_due_today_is_pending(self):
        assert derive_bill_status(self._bill(date(2025, 1, 10)), date(2025, 1, 10)) == BillStatus.PENDING

    def test_past_due_is_overdue(self):
        assert derive_bill_status(self._bill(date(2025, 1, 9)), date(2025, 1, 10)) == BillStatus.OVERDUE

    def test_overdue_goes_back_to_pending_when_due_date_moves(self):
        bill = self._bill(date(2025, 2, 1), status=BillStatus.OVERDUE)
        assert derive_bill_status(bill, date(2025, 1, 10)) == BillStatus.PENDING

    def test_time_never_marks_paid(self):
        """Test paid stays paid and nothing else becomes paid."""
        bill = self._bill(date(2020, 1, 1), status=BillStatus.PAID)
        assert derive_bill_status(bill, date(2025, 1, 10)) == BillStatus.PAID

    def test_reads_rederive_status(self, app, expense_category, clock):
        bill = add_single_bill(app, expense_category)
        assert bill.status == BillStatus.PENDING
        clock.today = date(2025, 1, 20)
        assert asyncio.run(app.payable_bills.get(bill.id)).status == BillStatus.OVERDUE


class TestBillGeneration:
    """Tests for add_payable_bill."""

    def test_installments(self, app, expense_category):
        """Test installments are one month apart and share a group id."""
        bills, warning = asyncio.run(app.add_payable_bill(new_bill_request(
            expense_category,
            description="Gym equipment",
            amount=Decimal("300.00"),
            payment_type=BillPaymentType.INSTALLMENTS,
            installments=3,
        )))

        assert warning is None
        assert [b.due_date for b in bills] == [
            date(2025, 1, 15), date(2025, 2, 15), date(2025, 3, 15),
        ]
        assert [b.description for b in bills] == [
            "Gym equipment (1/3)", "Gym equipment (2/3)", "Gym equipment (3/3)",
        ]
        assert len({b.installment_group_id for b in bills}) == 1
        assert bills[0].installment_group_id is not None
        assert [b.installment_info.current for b in bills] == [1, 2, 3]
        assert all(b.installment_info.total == 3 for b in bills)
        assert all(b.amount == Decimal("300.00") for b in bills)

    def test_installments_clamp_month_end(self, app, expense_category):
        bills, _ = asyncio.run(app.add_payable_bill(new_bill_request(
            expense_category,
            first_due_date=date(2025, 1, 31),
            payment_type=BillPaymentType.INSTALLMENTS,
            installments=2,
        )))
        assert [b.due_date for b in bills] == [date(2025, 1, 31), date(2025, 2, 28)]

    def test_monthly_series(self, app, expense_category):
        """Test a monthly bill generates the configured horizon."""
        bills, _ = asyncio.run(app.add_payable_bill(new_bill_request(
            expense_category,
            payment_type=BillPaymentType.MONTHLY,
        )))
        assert len(bills) == 12
        assert len({b.recurring_id for b in bills}) == 1
        assert bills[-1].due_date == date(2025, 12, 15)
        assert all(b.installment_group_id is None for b in bills)

    def test_each_bill_is_logged(self, app, expense_category):
        asyncio.run(app.add_payable_bill(new_bill_request(
            expense_category,
            payment_type=BillPaymentType.INSTALLMENTS,
            installments=2,
        )))
        logs = asyncio.run(app.get_logs())
        assert len([e for e in logs if e.entity_type.value == "bill"]) == 2

    def test_estimate_flag_is_a_column(self, app, expense_category):
        bill = add_single_bill(app, expense_category, is_estimate=True, notes="Rough guess")
        stored = asyncio.run(app.repositories.bills.get(bill.id))
        assert stored.is_estimate is True
        assert stored.notes == "Rough guess"

    def test_failed_attachment_still_saves(self, app, store, expense_category):
        """Test an upload failure becomes a warning and the bill is saved."""
        store.fail = True
        bills, warning = asyncio.run(app.add_payable_bill(new_bill_request(
            expense_category,
            staged_attachment=StagedAttachment(filename="invoice.pdf", content=b"%PDF"),
        )))
        assert warning is not None
        assert "could not be uploaded" in warning
        assert bills[0].attachment_url is None
        assert asyncio.run(app.repositories.bills.get(bills[0].id)) is not None


class TestLegacyEstimateMarker:
    """Tests for rows written before the is_estimate column existed."""

    def test_strip_marker(self):
        assert strip_marker("[ESTIMATE] waiting for invoice", "[ESTIMATE]") == (
            "waiting for invoice", True,
        )
        assert strip_marker("[ESTIMATE]", "[ESTIMATE]") == (None, True)
        assert strip_marker("paid by card", "[ESTIMATE]") == ("paid by card", False)
        assert strip_marker(None, "[ESTIMATE]") == (None, False)

    def test_legacy_row_decoded_on_read(self, app, repositories, expense_category):
        legacy = PayableBill(
            description="Water",
            category_id=expense_category.id,
            amount=Decimal("40"),
            due_date=date(2025, 2, 1),
            notes="[ESTIMATE] based on last year",
        )
        asyncio.run(repositories.bills.insert(legacy))

        bill = asyncio.run(app.payable_bills.get(legacy.id))
        assert bill.is_estimate is True
        assert bill.notes == "based on last year"

    def test_legacy_row_stored_clean_on_next_write(self, app, repositories, expense_category):
        legacy = PayableBill(
            description="Water",
            category_id=expense_category.id,
            amount=Decimal("40"),
            due_date=date(2025, 2, 1),
            notes="[ESTIMATE]",
        )
        asyncio.run(repositories.bills.insert(legacy))
        asyncio.run(app.payable_bills.update(legacy.id, BillUpdate(amount=Decimal("42"))))

        stored = asyncio.run(repositories.bills.get(legacy.id))
        assert stored.is_estimate is True
        assert stored.notes is None


class TestBillSettlement:
    """Tests for paying bills and linking existing expenses."""

    def test_pay_bill_creates_linked_expense(self, app, account, expense_category):
        """Test paying a bill creates an expense and marks the bill paid."""
        bill = add_single_bill(app, expense_category, notes="Account 1234")
        paid, warning = asyncio.run(app.pay_bill(bill.id, BillPayment(
            account_id=account.id,
            paid_date=date(2025, 1, 12),
        )))

        assert warning is None
        assert paid.status == BillStatus.PAID
        assert paid.paid_date == datetime(2025, 1, 12, 12, 0, tzinfo=timezone.utc)

        transaction = asyncio.run(app.transactions.get(paid.transaction_id))
        assert transaction.type == TransactionType.EXPENSE
        assert transaction.description == bill.description
        assert transaction.amount == bill.amount
        assert transaction.category_id == expense_category.id
        assert transaction.comments == "Account 1234"
        assert transaction.payable_bill_id == bill.id

    def test_pay_bill_with_other_amount(self, app, account, expense_category):
        bill = add_single_bill(app, expense_category)
        paid, _ = asyncio.run(app.pay_bill(bill.id, BillPayment(
            account_id=account.id,
            paid_date=date(2025, 1, 12),
            amount=Decimal("118.40"),
        )))
        assert paid.amount == Decimal("118.40")

    def test_pay_bill_twice_refused(self, app, account, expense_category):
        bill = add_single_bill(app, expense_category)
        payment = BillPayment(account_id=account.id, paid_date=date(2025, 1, 12))
        asyncio.run(app.pay_bill(bill.id, payment))
        with pytest.raises(BillLinkError):
            asyncio.run(app.pay_bill(bill.id, payment))

    def test_pay_bill_with_receipt(self, app, store, account, expense_category):
        bill = add_single_bill(app, expense_category)
        paid, warning = asyncio.run(app.pay_bill(bill.id, BillPayment(
            account_id=account.id,
            paid_date=date(2025, 1, 12),
            staged_attachment=StagedAttachment(filename="receipt.pdf", content=b"%PDF"),
        )))
        assert warning is None
        assert paid.attachment_url.endswith("/receipt.pdf")
        assert paid.attachment_filename == "receipt.pdf"
        assert len(store.uploads) == 1

    def test_pay_bill_with_transaction_data_requires_expense(self, app, account, income_category, expense_category):
        bill = add_single_bill(app, expense_category)
        with pytest.raises(BillLinkError):
            asyncio.run(app.pay_bill_with_transaction_data(bill.id, TransactionCreate(
                description="Refund",
                amount=Decimal("10"),
                date=date(2025, 1, 12),
                type=TransactionType.INCOME,
                account_id=account.id,
                category_id=income_category.id,
            )))

    def test_pay_bill_with_transaction_data_mirrors_transaction(self, app, account, expense_category):
        bill = add_single_bill(app, expense_category)
        paid, _ = asyncio.run(app.pay_bill_with_transaction_data(bill.id, TransactionCreate(
            description="Power company January",
            amount=Decimal("119.90"),
            date=date(2025, 1, 11),
            type=TransactionType.EXPENSE,
            account_id=account.id,
            category_id=expense_category.id,
        )))
        assert paid.status == BillStatus.PAID
        assert paid.description == "Power company January"
        assert paid.amount == Decimal("119.90")

    def test_link_existing_expense(self, app, account, expense_category):
        """Test an existing expense settles a bill and leaves the unlinked list."""
        bill = add_single_bill(app, expense_category)
        transaction = add_expense(app, account, expense_category)
        assert transaction.id in [t.id for t in asyncio.run(app.get_unlinked_expenses())]

        settled = asyncio.run(app.link_expense_to_bill(bill.id, transaction.id))

        assert settled.status == BillStatus.PAID
        assert settled.transaction_id == transaction.id
        assert settled.amount == Decimal("118.40")
        assert settled.description == "Power company"
        linked = asyncio.run(app.transactions.get(transaction.id))
        assert linked.payable_bill_id == bill.id
        assert transaction.id not in [t.id for t in asyncio.run(app.get_unlinked_expenses())]

    def test_link_income_refused(self, app, account, expense_category, income_category):
        bill = add_single_bill(app, expense_category)
        income = add_expense(app, account, income_category, type=TransactionType.INCOME)
        with pytest.raises(BillLinkError):
            asyncio.run(app.link_expense_to_bill(bill.id, income.id))

    def test_expense_cannot_settle_two_bills(self, app, account, expense_category):
        first = add_single_bill(app, expense_category)
        second = add_single_bill(app, expense_category, description="Water")
        transaction = add_expense(app, account, expense_category)
        asyncio.run(app.link_expense_to_bill(first.id, transaction.id))
        with pytest.raises(BillLinkError):
            asyncio.run(app.link_expense_to_bill(second.id, transaction.id))

    def test_bills_for_linking(self, app, account, expense_category):
        open_bill = add_single_bill(app, expense_category)
        paid_bill = add_single_bill(app, expense_category, description="Water")
        asyncio.run(app.pay_bill(paid_bill.id, BillPayment(account_id=account.id, paid_date=date(2025, 1, 12))))
        ids = [b.id for b in asyncio.run(app.payable_bills.get_bills_for_linking())]
        assert ids == [open_bill.id]


class TestBillTransactionSync:
    """Tests for two-way mirroring between a paid bill and its expense."""

    def _paid_bill(self, app, account, category):
        bill = add_single_bill(app, category, amount=Decimal("100.00"))
        paid, _ = asyncio.run(app.pay_bill(bill.id, BillPayment(
            account_id=account.id,
            paid_date=date(2025, 1, 12),
        )))
        return paid

    def test_bill_edit_reaches_transaction(self, app, account, expense_category):
        """Test editing the bill amount updates the transaction."""
        bill = self._paid_bill(app, account, expense_category)
        updated, _ = asyncio.run(app.payable_bills.update(bill.id, BillUpdate(amount=Decimal("150.00"))))
        assert updated.status == BillStatus.PAID

        transaction = asyncio.run(app.transactions.get(bill.transaction_id))
        assert transaction.amount == Decimal("150.00")

    def test_bill_notes_become_comments(self, app, account, expense_category):
        bill = self._paid_bill(app, account, expense_category)
        asyncio.run(app.payable_bills.update(bill.id, BillUpdate(notes="Late fee included")))
        transaction = asyncio.run(app.transactions.get(bill.transaction_id))
        assert transaction.comments == "Late fee included"

    def test_transaction_edit_reaches_bill(self, app, account, expense_category):
        """Test editing the transaction description updates the bill."""
        bill = self._paid_bill(app, account, expense_category)
        asyncio.run(app.transactions.update(
            bill.transaction_id,
            TransactionUpdate(description="Electricity January", date=date(2025, 1, 13)),
        ))

        synced = asyncio.run(app.payable_bills.get(bill.id))
        assert synced.description == "Electricity January"
        assert synced.paid_date == datetime(2025, 1, 13, 12, 0, tzinfo=timezone.utc)

    def test_unpaid_bill_edit_touches_no_transaction(self, app, account, expense_category):
        bill = add_single_bill(app, expense_category)
        updated, warning = asyncio.run(app.payable_bills.update(bill.id, BillUpdate(amount=Decimal("99"))))
        assert warning is None
        assert updated.transaction_id is None
        assert asyncio.run(app.transactions.get_all()) == []

    def test_removing_transaction_reverts_bill(self, app, account, expense_category):
        """Test a bill goes back to pending when its transaction is deleted."""
        bill = self._paid_bill(app, account, expense_category)
        asyncio.run(app.transactions.remove(bill.transaction_id))

        reverted = asyncio.run(app.payable_bills.get(bill.id))
        assert reverted.status == BillStatus.PENDING
        assert reverted.transaction_id is None
        assert reverted.paid_date is None

    def test_removing_transaction_of_past_due_bill_reverts_to_overdue(self, app, account, expense_category, clock):
        bill = self._paid_bill(app, account, expense_category)
        clock.today = date(2025, 2, 1)
        asyncio.run(app.transactions.remove(bill.transaction_id))
        reverted = asyncio.run(app.repositories.bills.get(bill.id))
        assert reverted.status == BillStatus.OVERDUE

    def test_removing_bill_unlinks_transaction(self, app, account, expense_category):
        bill = self._paid_bill(app, account, expense_category)
        asyncio.run(app.payable_bills.remove(bill.id))
        transaction = asyncio.run(app.transactions.get(bill.transaction_id))
        assert transaction is not None
        assert transaction.payable_bill_id is None


class TestBillGroupDeletes:
    """Tests for installment group and recurring series deletes."""

    def test_delete_installment_group(self, app, expense_category):
        """Test a group delete removes every installment under one log entry."""
        bills, _ = asyncio.run(app.add_payable_bill(new_bill_request(
            expense_category,
            description="Gym equipment",
            payment_type=BillPaymentType.INSTALLMENTS,
            installments=3,
        )))
        removed = asyncio.run(app.payable_bills.delete_installment_group(bills[0].installment_group_id))

        assert removed == 3
        assert asyncio.run(app.payable_bills.get_all()) == []
        latest = asyncio.run(app.get_logs())[0]
        assert latest.description == 'Removed installment group "Gym equipment" (3 bills)'
        assert len(latest.undo.snapshots) == 3

    def test_delete_unknown_group(self, app):
        assert asyncio.run(app.payable_bills.delete_installment_group(uuid4())) == 0

    def test_delete_future_recurring(self, app, expense_category):
        """Test only occurrences due on or after the cutoff are deleted."""
        bills, _ = asyncio.run(app.add_payable_bill(new_bill_request(
            expense_category,
            payment_type=BillPaymentType.MONTHLY,
        )))
        removed = asyncio.run(app.payable_bills.delete_future_recurring(
            bills[0].recurring_id, date(2025, 6, 15)
        ))

        assert removed == 7
        remaining = asyncio.run(app.payable_bills.get_all())
        assert [b.due_date.month for b in remaining] == [1, 2, 3, 4, 5]

    def test_delete_group_with_paid_installment_frees_transaction(self, app, account, expense_category):
        """Test the expense that settled a deleted installment can settle another bill."""
        bills, _ = asyncio.run(app.add_payable_bill(new_bill_request(
            expense_category,
            description="Gym equipment",
            payment_type=BillPaymentType.INSTALLMENTS,
            installments=2,
        )))
        paid, _ = asyncio.run(app.pay_bill(bills[0].id, BillPayment(
            account_id=account.id,
            paid_date=date(2025, 1, 12),
        )))

        asyncio.run(app.payable_bills.delete_installment_group(bills[0].installment_group_id))

        transaction = asyncio.run(app.transactions.get(paid.transaction_id))
        assert transaction.payable_bill_id is None
        unlinked = asyncio.run(app.get_unlinked_expenses())
        assert [t.id for t in unlinked] == [transaction.id]

        other = add_single_bill(app, expense_category)
        linked = asyncio.run(app.link_expense_to_bill(other.id, transaction.id))
        assert linked.transaction_id == transaction.id

    def test_delete_future_recurring_with_paid_occurrence_frees_transaction(self, app, account, expense_category):
        bills, _ = asyncio.run(app.add_payable_bill(new_bill_request(
            expense_category,
            payment_type=BillPaymentType.MONTHLY,
        )))
        june = next(b for b in bills if b.due_date.month == 6)
        paid, _ = asyncio.run(app.pay_bill(june.id, BillPayment(
            account_id=account.id,
            paid_date=date(2025, 1, 12),
        )))

        asyncio.run(app.payable_bills.delete_future_recurring(
            bills[0].recurring_id, date(2025, 6, 15)
        ))

        transaction = asyncio.run(app.transactions.get(paid.transaction_id))
        assert transaction.payable_bill_id is None
