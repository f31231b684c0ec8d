"""
Financial period guard tests.

Verifies:
- OPEN -> LOCKED -> OPEN lifecycle with audit fields
- Privilege checks for locking, unlocking and posting into a locked period
- Owner override is allowed, flagged on the entry and logged
- Period validation and listing
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.authority import never_override, role_policy
from ledger_kernel.domain.dtos import ActingUser
from ledger_kernel.exceptions import (
    AlreadyLockedError,
    InsufficientPrivilegeError,
    InvalidPeriodError,
    NotLockedError,
    PeriodLockedError,
    UnlockReasonRequiredError,
)
from ledger_kernel.services.period_service import PeriodService


class TestLockLifecycle:

    def test_missing_period_is_open(self, ledger, tenant_id):
        period = ledger.period_service.get_period(tenant_id, 2024, 3)

        assert not period.is_locked
        assert not ledger.period_service.is_locked(tenant_id, 2024, 3)
        assert ledger.period_service.list_periods(tenant_id) == []

    def test_lock_records_actor_and_time(
        self, ledger, tenant_id, accountant, deterministic_clock
    ):
        period = ledger.period_service.lock(tenant_id, 2024, 3, accountant)

        assert period.is_locked
        assert period.locked_by_id == accountant.user_id
        assert period.locked_at == deterministic_clock.now()
        assert ledger.period_service.is_locked(tenant_id, 2024, 3)

    def test_lock_twice_rejected(self, ledger, tenant_id, owner):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)

        with pytest.raises(AlreadyLockedError):
            ledger.period_service.lock(tenant_id, 2024, 3, owner)

    def test_staff_cannot_lock(self, ledger, tenant_id, staff):
        with pytest.raises(InsufficientPrivilegeError) as exc_info:
            ledger.period_service.lock(tenant_id, 2024, 3, staff)

        assert exc_info.value.role == "staff"
        assert not ledger.period_service.is_locked(tenant_id, 2024, 3)

    def test_unlock_reopens(self, ledger, tenant_id, owner):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)

        period = ledger.period_service.unlock(
            tenant_id, 2024, 3, owner, reason="Late supplier invoice"
        )

        assert not period.is_locked
        assert period.unlock_reason == "Late supplier invoice"
        assert period.unlocked_by_id == owner.user_id

    def test_relock_after_unlock(self, ledger, tenant_id, owner):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)
        ledger.period_service.unlock(tenant_id, 2024, 3, owner, reason="fix")

        period = ledger.period_service.lock(tenant_id, 2024, 3, owner)

        assert period.is_locked

    def test_unlock_open_period_rejected(self, ledger, tenant_id, owner):
        with pytest.raises(NotLockedError):
            ledger.period_service.unlock(tenant_id, 2024, 3, owner, reason="fix")

    def test_unlock_requires_reason(self, ledger, tenant_id, owner):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)

        with pytest.raises(UnlockReasonRequiredError):
            ledger.period_service.unlock(tenant_id, 2024, 3, owner, reason="  ")

    def test_accountant_cannot_unlock(self, ledger, tenant_id, owner, accountant):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)

        with pytest.raises(InsufficientPrivilegeError):
            ledger.period_service.unlock(tenant_id, 2024, 3, accountant, reason="fix")

        assert ledger.period_service.is_locked(tenant_id, 2024, 3)

    @pytest.mark.parametrize("year,month", [(2024, 0), (2024, 13), (0, 5)])
    def test_invalid_period_rejected(self, ledger, tenant_id, owner, year, month):
        with pytest.raises(InvalidPeriodError):
            ledger.period_service.lock(tenant_id, year, month, owner)

    def test_locks_are_per_tenant(self, ledger, tenant_id, other_tenant_id, owner):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)

        assert not ledger.period_service.is_locked(other_tenant_id, 2024, 3)

    def test_list_periods_newest_first(self, ledger, tenant_id, owner):
        ledger.period_service.lock(tenant_id, 2023, 12, owner)
        ledger.period_service.lock(tenant_id, 2024, 2, owner)
        ledger.period_service.lock(tenant_id, 2024, 1, owner)
        ledger.period_service.unlock(tenant_id, 2024, 1, owner, reason="fix")

        listed = ledger.period_service.list_periods(tenant_id)
        locked_2024 = ledger.period_service.list_periods(
            tenant_id, year=2024, is_locked=True
        )

        assert [(p.year, p.month) for p in listed] == [(2024, 2), (2024, 1), (2023, 12)]
        assert [(p.year, p.month) for p in locked_2024] == [(2024, 2)]


class TestPostingGate:

    def test_staff_rejected_in_locked_period(
        self, ledger, tenant_id, owner, staff, post_entry, balance_of
    ):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)

        with pytest.raises(PeriodLockedError) as exc_info:
            post_entry("1010", "6010", "100", actor=staff)

        assert (exc_info.value.year, exc_info.value.month) == (2024, 3)
        assert balance_of("1010") == Decimal("0.00")

    def test_accountant_rejected_in_locked_period(
        self, ledger, tenant_id, owner, accountant, post_entry
    ):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)

        with pytest.raises(PeriodLockedError):
            post_entry("1010", "6010", "100", actor=accountant)

    def test_owner_override_is_flagged_and_logged(
        self, ledger, tenant_id, owner, post_entry, captured_logs
    ):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)

        entry = post_entry("1010", "6010", "100", actor=owner)

        assert entry.period_override is True
        assert ledger.period_service.is_locked(tenant_id, 2024, 3)
        overrides = [
            r for r in captured_logs() if r["message"] == "period_lock_overridden"
        ]
        assert len(overrides) == 1
        assert overrides[0]["actor_id"] == str(owner.user_id)

    def test_posting_after_unlock_accepted(
        self, ledger, tenant_id, owner, staff, post_entry
    ):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)
        ledger.period_service.unlock(tenant_id, 2024, 3, owner, reason="fix")

        entry = post_entry("1010", "6010", "100", actor=staff)

        assert entry.period_override is False

    def test_other_months_unaffected(self, ledger, tenant_id, owner, staff, post_entry):
        ledger.period_service.lock(tenant_id, 2024, 3, owner)

        entry = post_entry("1010", "6010", "100", entry_date=date(2024, 4, 1), actor=staff)

        assert (entry.year, entry.month) == (2024, 4)

    def test_injected_policy_replaces_roles(self, session, tenant_id, owner, deterministic_clock):
        service = PeriodService(
            session, deterministic_clock, can_override_lock=never_override
        )
        service.lock(tenant_id, 2024, 3, owner)

        with pytest.raises(PeriodLockedError):
            service.guard_posting(tenant_id, date(2024, 3, 5), owner)

    def test_custom_role_policy(self, session, tenant_id, deterministic_clock):
        auditor = ActingUser(user_id=uuid4(), role="auditor")
        service = PeriodService(
            session,
            deterministic_clock,
            can_override_lock=role_policy(["auditor"]),
            can_lock_period=role_policy(["auditor"]),
        )
        service.lock(tenant_id, 2024, 3, auditor)

        assert service.guard_posting(tenant_id, date(2024, 3, 5), auditor) is True


class TestSummary:

    def test_recompute_from_posted_lines(
        self, ledger, tenant_id, owner, post_entry
    ):
        post_entry("1010", "6010", "1000")
        post_entry("1010", "6020", "250.50")
        post_entry("8010", "1010", "400")
        post_entry("1010", "6010", "999", entry_date=date(2024, 4, 1))

        period = ledger.period_service.recompute_summary(tenant_id, 2024, 3, owner)

        assert period.total_revenue == Decimal("1250.50")
        assert period.total_expenses == Decimal("400.00")
        assert period.net_income == Decimal("850.50")
        assert period.journal_entry_count == 3

    def test_recompute_is_idempotent(self, ledger, tenant_id, owner, post_entry):
        post_entry("1010", "6010", "1000")
        post_entry("8010", "1010", "400")

        first = ledger.period_service.recompute_summary(tenant_id, 2024, 3)
        second = ledger.period_service.recompute_summary(tenant_id, 2024, 3)

        assert (first.total_revenue, first.total_expenses, first.net_income) == (
            second.total_revenue, second.total_expenses, second.net_income
        )
        assert first.journal_entry_count == second.journal_entry_count == 2

    def test_reversal_nets_out_of_summary(self, ledger, tenant_id, owner, post_entry):
        entry = post_entry("1010", "6010", "1000")
        ledger.reversal_service.reverse_entry(tenant_id, entry.id, owner)

        period = ledger.period_service.recompute_summary(tenant_id, 2024, 3)

        assert period.total_revenue == Decimal("0.00")
        assert period.journal_entry_count == 2

    def test_recompute_keeps_lock_state(self, ledger, tenant_id, owner, post_entry):
        post_entry("1010", "6010", "1000")
        ledger.period_service.lock(tenant_id, 2024, 3, owner)

        period = ledger.period_service.recompute_summary(tenant_id, 2024, 3)

        assert period.is_locked
