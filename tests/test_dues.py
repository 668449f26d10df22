"""Tests for the dues engine and the member service."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from clubdues.dues import ActivityFilter, MemberFilters, MemberSort, compute_member_dues
from clubdues.models.member import (
    ActivityStatus,
    Leave,
    Member,
    MemberUpdate,
    Payment,
    PaymentStatus,
)


def make_member(**overrides):
    data = dict(name="Ana", join_date=date(2024, 1, 1), monthly_fee=Decimal("50.00"))
    data.update(overrides)
    return Member(**data)


def paid(member, *months):
    return [
        Payment(member_id=member.id, amount=member.monthly_fee, reference_month=m)
        for m in months
    ]


class TestComputeMemberDues:
    """Tests for the pure dues computation."""

    def test_leave_and_payment_skip_months(self):
        """Test paid months and months starting on leave are not overdue."""
        member = make_member()
        leave = Leave(member_id=member.id, start_date=date(2024, 3, 1), end_date=date(2024, 3, 31))

        dues = compute_member_dues(member, paid(member, "2024-02"), [leave], date(2024, 4, 1))

        assert dues.payment_status == PaymentStatus.OVERDUE
        assert [m.month for m in dues.overdue_months] == ["2024-01", "2024-04"]
        assert dues.total_due == Decimal("100.00")

    def test_unpaid_member_owes_every_month_through_current(self):
        """Test the walk includes both the join month and the current month."""
        member = make_member(join_date=date(2024, 1, 15))
        dues = compute_member_dues(member, [], [], date(2024, 6, 10))
        assert dues.overdue_months_count == 6
        assert dues.overdue_months[0].month == "2024-01"
        assert dues.overdue_months[-1].month == "2024-06"
        assert dues.total_due == Decimal("300.00")

    def test_total_is_sum_of_month_amounts(self):
        member = make_member(monthly_fee=Decimal("33.33"))
        dues = compute_member_dues(member, [], [], date(2024, 3, 1))
        assert dues.total_due == sum(m.amount for m in dues.overdue_months)
        assert dues.total_due == Decimal("99.99")

    def test_on_leave_today_short_circuits(self):
        """Test an open leave covering today hides all debt."""
        member = make_member()
        leave = Leave(member_id=member.id, start_date=date(2024, 2, 1))
        dues = compute_member_dues(member, [], [leave], date(2024, 6, 1))
        assert dues.payment_status == PaymentStatus.ON_LEAVE
        assert dues.overdue_months == []
        assert dues.total_due == Decimal("0")

    def test_exempt_member_owes_nothing(self):
        dues = compute_member_dues(make_member(is_exempt=True), [], [], date(2024, 6, 1))
        assert dues.payment_status == PaymentStatus.EXEMPT
        assert dues.overdue_months == []

    def test_leave_mid_month_does_not_cover_month(self):
        """Test only the first day of a month decides leave coverage."""
        member = make_member()
        leave = Leave(member_id=member.id, start_date=date(2024, 2, 10), end_date=date(2024, 2, 20))
        dues = compute_member_dues(member, paid(member, "2024-01", "2024-03"), [leave], date(2024, 3, 5))
        assert [m.month for m in dues.overdue_months] == ["2024-02"]

    def test_terminated_member_stops_before_current_month(self):
        """Test departed members keep their debt but stop accruing."""
        member = make_member(activity_status=ActivityStatus.TERMINATED)
        dues = compute_member_dues(member, [], [], date(2024, 4, 15))
        assert dues.payment_status == PaymentStatus.TERMINATED
        assert [m.month for m in dues.overdue_months] == ["2024-01", "2024-02", "2024-03"]

    def test_archived_status_forced(self):
        member = make_member(activity_status=ActivityStatus.ARCHIVED)
        dues = compute_member_dues(member, paid(member, "2024-01"), [], date(2024, 2, 1))
        assert dues.payment_status == PaymentStatus.ARCHIVED
        assert dues.overdue_months == []

    def test_inactive_member_still_accrues(self):
        member = make_member(activity_status=ActivityStatus.INACTIVE)
        dues = compute_member_dues(member, [], [], date(2024, 2, 1))
        assert dues.payment_status == PaymentStatus.OVERDUE
        assert dues.overdue_months_count == 2

    def test_paid_ahead_is_advance(self):
        member = make_member()
        payments = paid(member, "2024-01", "2024-02", "2024-03", "2024-04", "2024-05")
        dues = compute_member_dues(member, payments, [], date(2024, 4, 10))
        assert dues.payment_status == PaymentStatus.ADVANCE

    def test_paid_through_current_month_is_on_time(self):
        member = make_member()
        dues = compute_member_dues(member, paid(member, "2024-01", "2024-02"), [], date(2024, 2, 29))
        assert dues.payment_status == PaymentStatus.ON_TIME
        assert dues.total_due == Decimal("0")

    def test_missing_join_date_means_nothing_overdue(self):
        """Test an unparseable join date yields zero overdue instead of failing."""
        member = make_member(join_date="not a date")
        dues = compute_member_dues(member, [], [], date(2024, 6, 1))
        assert dues.payment_status == PaymentStatus.ON_TIME
        assert dues.overdue_months == []

    @pytest.mark.parametrize("today", [date(2024, 1, 1), date(2024, 7, 31), date(2025, 12, 15)])
    def test_unpaid_months_count(self, today):
        """Test an unpaid member owes one month per calendar month since joining."""
        member = make_member()
        months = (today.year - 2024) * 12 + today.month
        dues = compute_member_dues(member, [], [], today)
        assert dues.overdue_months_count == months

    def test_deterministic(self):
        member = make_member()
        payments = paid(member, "2024-02")
        first = compute_member_dues(member, payments, [], date(2024, 5, 1))
        second = compute_member_dues(member, payments, [], date(2024, 5, 1))
        assert first == second


class TestMemberService:
    """Tests for member reads with derived dues."""

    def _add(self, app, **overrides):
        return asyncio.run(app.add_member(make_member(**overrides)))

    def test_add_member_is_logged(self, app):
        dues = self._add(app, name="Bruno")
        logs = asyncio.run(app.get_logs())
        assert logs[0].description == 'Added member: "Bruno"'
        assert logs[0].undo.id == dues.id

    def test_get_member_by_id_computes_dues(self, app, clock):
        clock.today = date(2024, 3, 20)
        dues = self._add(app)
        loaded = asyncio.run(app.get_member_by_id(dues.id))
        assert loaded.payment_status == PaymentStatus.OVERDUE
        assert loaded.overdue_months_count == 3

    def test_get_member_by_id_unknown(self, app):
        assert asyncio.run(app.get_member_by_id(uuid4())) is None

    def test_default_filter_hides_archived(self, app):
        self._add(app, name="Active")
        self._add(app, name="Gone", activity_status=ActivityStatus.ARCHIVED)
        names = [m.name for m in asyncio.run(app.get_members())]
        assert names == ["Active"]

    def test_search_and_sort(self, app):
        for name in ("Carla", "Bruno", "Ana Maria", "Mariana"):
            self._add(app, name=name)
        result = asyncio.run(app.get_members(MemberFilters(search="MARI", sort=MemberSort.NAME_DESC)))
        assert [m.name for m in result] == ["Mariana", "Ana Maria"]

    def test_activity_filter(self, app):
        self._add(app, name="Ana")
        self._add(app, name="Bruno", activity_status=ActivityStatus.TERMINATED)
        result = asyncio.run(app.get_members(MemberFilters(activity=ActivityFilter.TERMINATED)))
        assert [m.name for m in result] == ["Bruno"]

    def test_on_leave_filter(self, app, clock):
        clock.today = date(2024, 6, 1)
        away = self._add(app, name="Away")
        self._add(app, name="Here")
        asyncio.run(app.leaves.add(Leave(member_id=away.id, start_date=date(2024, 5, 1))))
        result = asyncio.run(app.get_members(MemberFilters(activity=ActivityFilter.ON_LEAVE)))
        assert [m.name for m in result] == ["Away"]

    def test_overdue_report(self, app, clock):
        """Test the report lists active members who owe something."""
        clock.today = date(2024, 1, 20)
        self._add(app, name="Owes")
        self._add(app, name="Exempt", is_exempt=True)
        self._add(app, name="Left", activity_status=ActivityStatus.TERMINATED, join_date=date(2023, 6, 1))
        report = asyncio.run(app.members.get_overdue_report())
        assert [m.name for m in report] == ["Owes"]

    def test_update_member_logs_diff(self, app):
        dues = self._add(app)
        updated = asyncio.run(app.update_member(dues.id, MemberUpdate(monthly_fee=Decimal("60.00"))))
        assert updated.monthly_fee == Decimal("60.00")
        logs = asyncio.run(app.get_logs())
        assert "Monthly fee changed from" in logs[0].description
