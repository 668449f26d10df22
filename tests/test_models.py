"""
Tests for Club Dues

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (in-memory storage, fake attachment store)
3. No real API calls in tests (use fakes and mocks)
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from clubdues.models.audit import (
    ActionType,
    CreateUndo,
    DeleteUndo,
    EntityType,
    LogEntry,
    LogEntryBuilder,
    UpdateUndo,
    describe_changes,
)
from clubdues.models.bill import (
    BillPaymentType,
    BillStatus,
    InstallmentInfo,
    NewPayableBillRequest,
    PayableBill,
)
from clubdues.models.common import apply_patch
from clubdues.models.ledger import (
    CategoryType,
    Transaction,
    TransactionType,
)
from clubdues.models.member import (
    ActivityStatus,
    Leave,
    LeaveUpdate,
    Member,
    MemberDues,
    MemberUpdate,
    Payment,
    PaymentStatus,
)


class TestMemberModels:
    """Tests for member-related Pydantic models."""

    def test_member_creation(self):
        """Test Member model creation."""
        member = Member(
            name="Ana Souza",
            join_date=date(2024, 1, 1),
            monthly_fee=Decimal("50.00"),
        )
        assert member.activity_status == ActivityStatus.ACTIVE
        assert member.is_exempt is False
        assert member.on_leave is False

    def test_member_strips_whitespace(self):
        """Test that whitespace is stripped from member name."""
        member = Member(name="  Ana  ", monthly_fee=Decimal("10"))
        assert member.name == "Ana"

    def test_member_rejects_negative_fee(self):
        """Test that negative fees are rejected."""
        with pytest.raises(ValueError):
            Member(name="Ana", monthly_fee=Decimal("-1"))

    def test_member_blank_contact_is_none(self):
        member = Member(name="Ana", monthly_fee=Decimal("10"), email="  ", phone="")
        assert member.email is None
        assert member.phone is None

    def test_member_unparseable_join_date_becomes_none(self):
        """Test a broken join date does not reject the whole record."""
        member = Member(name="Ana", monthly_fee=Decimal("10"), join_date="31/02/2024")
        assert member.join_date is None

    def test_member_join_date_from_string(self):
        member = Member(name="Ana", monthly_fee=Decimal("10"), join_date="2024-03-15")
        assert member.join_date == date(2024, 3, 15)

    def test_terminal_statuses(self):
        assert ActivityStatus.TERMINATED.is_terminal
        assert ActivityStatus.ARCHIVED.is_terminal
        assert not ActivityStatus.INACTIVE.is_terminal

    def test_member_dues_to_member_drops_derived_fields(self):
        """Test the read model converts back to the stored model."""
        dues = MemberDues(
            name="Ana",
            monthly_fee=Decimal("10"),
            payment_status=PaymentStatus.ON_TIME,
        )
        member = dues.to_member()
        assert type(member) is Member
        assert member.id == dues.id
        assert dues.overdue_months_count == 0

    def test_leave_end_before_start_rejected(self):
        """Test leave end date cannot be before start date."""
        with pytest.raises(ValueError, match="Leave end date cannot be before start date"):
            Leave(member_id=uuid4(), start_date=date(2024, 3, 10), end_date=date(2024, 3, 1))

    def test_open_leave_allowed(self):
        leave = Leave(member_id=uuid4(), start_date=date(2024, 3, 10))
        assert leave.end_date is None

    def test_payment_reference_month_validated(self):
        """Test that reference months must be YYYY-MM."""
        with pytest.raises(ValueError, match="Reference month must be YYYY-MM"):
            Payment(member_id=uuid4(), amount=Decimal("50"), reference_month="2024-1")

    def test_payment_date_is_utc(self):
        payment = Payment(
            member_id=uuid4(),
            amount=Decimal("50"),
            reference_month="2024-01",
            payment_date=datetime(2024, 1, 5, 12, 0),
        )
        assert payment.payment_date.tzinfo == timezone.utc


class TestLedgerModels:
    """Tests for transaction and lookup models."""

    def _transaction(self, **overrides):
        data = dict(
            description="Electricity",
            amount=Decimal("80.00"),
            date=datetime(2025, 1, 5, 12, 0, tzinfo=timezone.utc),
            type=TransactionType.EXPENSE,
            account_id=uuid4(),
            category_id=uuid4(),
        )
        data.update(overrides)
        return Transaction(**data)

    def test_transaction_amount_must_be_positive(self):
        """Test direction comes from type, never from the sign."""
        with pytest.raises(ValueError):
            self._transaction(amount=Decimal("0"))

    def test_blank_ids_become_none(self):
        transaction = self._transaction(payee_id="", project_id="  ", payable_bill_id="")
        assert transaction.payee_id is None
        assert transaction.project_id is None
        assert transaction.payable_bill_id is None

    def test_empty_tag_list_becomes_none(self):
        assert self._transaction(tag_ids=[]).tag_ids is None

    def test_naive_date_taken_as_utc(self):
        transaction = self._transaction(date=datetime(2025, 1, 5, 9, 0))
        assert transaction.date.tzinfo == timezone.utc

    def test_signed_amount(self):
        assert self._transaction().signed_amount == Decimal("-80.00")
        income = self._transaction(type=TransactionType.INCOME)
        assert income.signed_amount == Decimal("80.00")

    def test_category_type_accepts(self):
        assert CategoryType.BOTH.accepts(TransactionType.INCOME)
        assert CategoryType.EXPENSE.accepts(TransactionType.EXPENSE)
        assert not CategoryType.INCOME.accepts(TransactionType.EXPENSE)


class TestBillModels:
    """Tests for payable bill models."""

    def test_bill_defaults_to_pending(self):
        bill = PayableBill(
            description="Rent",
            category_id=uuid4(),
            amount=Decimal("900"),
            due_date=date(2025, 1, 15),
        )
        assert bill.status == BillStatus.PENDING
        assert bill.is_estimate is False
        assert not bill.is_paid

    def test_installment_current_within_total(self):
        with pytest.raises(ValueError, match="exceeds total"):
            InstallmentInfo(current=4, total=3)

    def test_installment_request_needs_two(self):
        """Test an installment request with fewer than 2 installments is rejected."""
        with pytest.raises(ValueError, match="at least 2 installments"):
            NewPayableBillRequest(
                description="Gym",
                category_id=uuid4(),
                amount=Decimal("100"),
                first_due_date=date(2025, 1, 15),
                payment_type=BillPaymentType.INSTALLMENTS,
                installments=1,
            )


class TestPatches:
    """Tests for partial updates."""

    def test_apply_patch_only_touches_set_fields(self):
        """Test unset patch fields never overwrite stored values."""
        member = Member(name="Ana", monthly_fee=Decimal("50"), email="ana@example.com")
        updated = apply_patch(member, MemberUpdate(monthly_fee=Decimal("60")))
        assert updated.monthly_fee == Decimal("60")
        assert updated.email == "ana@example.com"
        assert updated.id == member.id

    def test_apply_patch_can_clear_a_field(self):
        member = Member(name="Ana", monthly_fee=Decimal("50"), email="ana@example.com")
        updated = apply_patch(member, MemberUpdate(email=None))
        assert updated.email is None

    def test_apply_patch_revalidates(self):
        leave = Leave(member_id=uuid4(), start_date=date(2024, 3, 1))
        with pytest.raises(ValueError):
            apply_patch(leave, LeaveUpdate(end_date=date(2024, 2, 1)))


class TestAuditModels:
    """Tests for audit-related models."""

    def test_created_entry(self):
        """Test LogEntryBuilder.created."""
        record_id = uuid4()
        entry = LogEntryBuilder.created(EntityType.MEMBER, "member", "Ana", record_id)
        assert entry.action_type == ActionType.CREATE
        assert entry.description == 'Added member: "Ana"'
        assert isinstance(entry.undo, CreateUndo)
        assert entry.undo.id == record_id

    def test_updated_entry_keeps_before_image(self):
        """Test the update entry snapshots the row before the change."""
        before = Member(name="Ana", monthly_fee=Decimal("50"))
        after = before.model_copy(update={"name": "Ana Souza"})
        entry = LogEntryBuilder.updated(EntityType.MEMBER, "Member", after.name, before, after)
        assert isinstance(entry.undo, UpdateUndo)
        assert entry.undo.snapshot["name"] == "Ana"
        assert "Name changed from Ana to Ana Souza." in entry.description

    def test_deleted_entry(self):
        before = Member(name="Ana", monthly_fee=Decimal("50"))
        entry = LogEntryBuilder.deleted(EntityType.MEMBER, "member", "Ana", before)
        assert entry.description == 'Removed member: "Ana"'
        assert isinstance(entry.undo, DeleteUndo)
        assert len(entry.undo.snapshots) == 1

    def test_undo_round_trips_through_json(self):
        """Test the undo union is rebuilt from its kind tag."""
        entry = LogEntryBuilder.deleted_many(
            EntityType.BILL,
            "Removed installment group",
            [
                PayableBill(
                    description=f"Gym ({i}/2)",
                    category_id=uuid4(),
                    amount=Decimal("100"),
                    due_date=date(2025, i, 15),
                )
                for i in (1, 2)
            ],
        )
        restored = LogEntry.model_validate_json(entry.model_dump_json())
        assert isinstance(restored.undo, DeleteUndo)
        assert len(restored.undo.snapshots) == 2

    def test_describe_changes_no_changes(self):
        snapshot = {"name": "Ana", "monthly_fee": "50"}
        text = describe_changes(snapshot, dict(snapshot), "Member", "Ana")
        assert text == 'Member "Ana" saved with no changes.'

    def test_describe_changes_uses_lookup_names(self):
        """Test ids are rendered through the names map."""
        old, new = str(uuid4()), str(uuid4())
        text = describe_changes(
            {"category_id": old},
            {"category_id": new},
            "Transaction",
            "Power",
            names={old: "Rent", new: "Utilities"},
        )
        assert text == 'Transaction "Power" updated. Category changed from Rent to Utilities.'

    def test_describe_changes_ignores_bookkeeping_fields(self):
        text = describe_changes(
            {"transaction_id": str(uuid4())},
            {"transaction_id": None},
            "Payment",
            "2024-01",
        )
        assert text.endswith("saved with no changes.")

    def test_log_entry_is_undone(self):
        entry = LogEntry(
            description="[UNDONE] Added member: \"Ana\"",
            action_type=ActionType.CREATE,
            entity_type=EntityType.MEMBER,
            undo=CreateUndo(id=uuid4()),
        )
        assert entry.is_undone("[UNDONE]")
        assert entry.to_log_dict()["entity_type"] == "member"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
