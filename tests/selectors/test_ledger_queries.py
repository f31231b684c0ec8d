"""
Ledger read-side tests.

Verifies:
- Account activity ordering, date filtering and restartability
- As-of balances against the stored running balance
- Trial balance columns, totals and the balanced flag
- Entry listing filters and paging
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.values import Side
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.journal import EntryType
from ledger_kernel.selectors.ledger_selector import AccountActivity


class TestAccountActivity:

    def test_ordered_by_date_then_sequence(self, ledger, tenant_id, account_ids, post_entry):
        late = post_entry("1010", "6010", "30", entry_date=date(2024, 3, 20))
        early = post_entry("1010", "6010", "10", entry_date=date(2024, 3, 1))
        same_day = post_entry("7010", "1010", "5", entry_date=date(2024, 3, 20))

        activity = list(
            ledger.ledger_selector.get_account_activity(tenant_id, account_ids["1010"])
        )

        assert [line.entry_id for line in activity] == [early.id, late.id, same_day.id]
        assert [line.side for line in activity] == [Side.DEBIT, Side.DEBIT, Side.CREDIT]
        assert activity[2].credit == Decimal("5.00")

    def test_date_bounds_are_inclusive(self, ledger, tenant_id, account_ids, post_entry):
        post_entry("1010", "6010", "10", entry_date=date(2024, 3, 1))
        post_entry("1010", "6010", "20", entry_date=date(2024, 3, 10))
        post_entry("1010", "6010", "30", entry_date=date(2024, 3, 20))

        activity = ledger.ledger_selector.get_account_activity(
            tenant_id, account_ids["1010"],
            start_date=date(2024, 3, 10), end_date=date(2024, 3, 20),
        )

        assert [line.amount for line in activity] == [Decimal("20.00"), Decimal("30.00")]

    def test_stream_is_lazy_and_restartable(self, ledger, tenant_id, account_ids, post_entry):
        activity = ledger.ledger_selector.get_account_activity(
            tenant_id, account_ids["1010"]
        )
        post_entry("1010", "6010", "10")

        assert isinstance(activity, AccountActivity)
        first = list(activity)
        post_entry("1010", "6010", "20")
        second = list(activity)

        assert len(first) == 1
        assert len(second) == 2
        assert second[0] == first[0]

    def test_other_tenant_sees_no_activity(
        self, ledger, other_tenant_id, account_ids, post_entry
    ):
        post_entry("1010", "6010", "10")

        assert list(
            ledger.ledger_selector.get_account_activity(other_tenant_id, account_ids["1010"])
        ) == []


class TestAccountBalance:

    def test_as_of_balance_excludes_later_postings(self, post_entry, balance_of):
        post_entry("1010", "6010", "100", entry_date=date(2024, 3, 1))
        post_entry("1010", "6010", "50", entry_date=date(2024, 3, 15))

        assert balance_of("1010", as_of=date(2024, 3, 1)) == Decimal("100.00")
        assert balance_of("1010", as_of=date(2024, 3, 31)) == Decimal("150.00")
        assert balance_of("1010") == Decimal("150.00")

    def test_as_of_includes_opening_balance(self, ledger, tenant_id, owner, account_ids):
        till = ledger.account_service.create_account(
            tenant_id, "1011", "Till", "asset", owner, opening_balance=Decimal("75")
        )

        assert ledger.ledger_selector.account_balance(
            tenant_id, till.id, as_of=date(2020, 1, 1)
        ) == Decimal("75.00")

    def test_as_of_matches_running_balance(
        self, ledger, tenant_id, owner, post_entry, balance_of
    ):
        post_entry("1010", "6010", "100")
        post_entry("7010", "1010", "40")
        entry = post_entry("1010", "6020", "15")
        ledger.reversal_service.reverse_entry(tenant_id, entry.id, owner)

        assert balance_of("1010", as_of=date(2099, 1, 1)) == balance_of("1010")

    def test_unknown_account(self, ledger, tenant_id, seeded_accounts):
        with pytest.raises(AccountNotFoundError):
            ledger.ledger_selector.account_balance(tenant_id, uuid4())


class TestTrialBalance:

    def test_empty_ledger_is_balanced(self, ledger, tenant_id, seeded_accounts):
        tb = ledger.ledger_selector.trial_balance(tenant_id)

        assert tb.is_balanced
        assert tb.total_debits == tb.total_credits == Decimal("0.00")
        assert len(tb.rows) == len(seeded_accounts)

    def test_columns_follow_normal_balance(self, ledger, tenant_id, post_entry):
        post_entry("1010", "6010", "1000")
        post_entry("8010", "1010", "250")

        rows = {r.code: r for r in ledger.ledger_selector.trial_balance(tenant_id).rows}

        assert (rows["1010"].debit, rows["1010"].credit) == (Decimal("750.00"), Decimal("0.00"))
        assert (rows["6010"].debit, rows["6010"].credit) == (Decimal("0.00"), Decimal("1000.00"))
        assert (rows["8010"].debit, rows["8010"].credit) == (Decimal("250.00"), Decimal("0.00"))

    def test_negative_balance_lands_in_opposite_column(self, ledger, tenant_id, post_entry):
        post_entry("7010", "1010", "40")

        rows = {r.code: r for r in ledger.ledger_selector.trial_balance(tenant_id).rows}

        assert rows["1010"].balance == Decimal("-40.00")
        assert rows["1010"].credit == Decimal("40.00")

    def test_totals_balance(self, ledger, tenant_id, post_entry):
        post_entry("1010", "6010", "1000")
        post_entry("8010", "1010", "250")
        post_entry("1030", "6020", "99.99")

        tb = ledger.ledger_selector.trial_balance(tenant_id)

        assert tb.total_debits == tb.total_credits == Decimal("1099.99")
        assert tb.is_balanced

    def test_as_of_trial_balance(self, ledger, tenant_id, post_entry):
        post_entry("1010", "6010", "1000", entry_date=date(2024, 3, 1))
        post_entry("1010", "6010", "500", entry_date=date(2024, 3, 25))

        tb = ledger.ledger_selector.trial_balance(tenant_id, as_of=date(2024, 3, 10))

        rows = {r.code: r for r in tb.rows}
        assert rows["1010"].debit == Decimal("1000.00")
        assert tb.as_of == date(2024, 3, 10)
        assert tb.is_balanced

    def test_inactive_zero_balance_accounts_excluded(self, ledger, tenant_id, owner, account_ids):
        ledger.account_service.deactivate_account(tenant_id, account_ids["2020"], owner)

        codes = {r.code for r in ledger.ledger_selector.trial_balance(tenant_id).rows}

        assert "2020" not in codes

    @pytest.mark.parametrize("as_of", [None, date(2024, 3, 31)])
    def test_inactive_account_with_balance_still_counted(
        self, ledger, tenant_id, owner, account_ids, post_entry, as_of
    ):
        post_entry("1010", "6010", "100")
        ledger.account_service.deactivate_account(tenant_id, account_ids["1010"], owner)

        tb = ledger.ledger_selector.trial_balance(tenant_id, as_of=as_of)

        rows = {r.code: r for r in tb.rows}
        assert rows["1010"].debit == Decimal("100.00")
        assert tb.total_debits == tb.total_credits == Decimal("100.00")
        assert tb.is_balanced


class TestEntries:

    def test_list_in_posting_order(self, ledger, tenant_id, post_entry):
        entries = [post_entry("1010", "6010", str(n)) for n in (1, 2, 3)]

        listed = ledger.ledger_selector.list_entries(tenant_id)

        assert [e.id for e in listed] == [e.id for e in entries]

    def test_filters_and_paging(self, ledger, tenant_id, post_entry):
        post_entry("1010", "6010", "1", entry_date=date(2024, 3, 1))
        post_entry("1010", "6010", "2", entry_date=date(2024, 3, 2),
                   entry_type=EntryType.INVOICE)
        post_entry("1010", "6010", "3", entry_date=date(2024, 3, 3),
                   entry_type=EntryType.INVOICE)
        post_entry("1010", "6010", "4", entry_date=date(2024, 4, 1),
                   entry_type=EntryType.INVOICE)

        invoices = ledger.ledger_selector.list_entries(tenant_id, entry_type="invoice")
        march = ledger.ledger_selector.list_entries(
            tenant_id, start_date=date(2024, 3, 1), end_date=date(2024, 3, 31)
        )
        page = ledger.ledger_selector.list_entries(tenant_id, limit=2, offset=1)

        assert len(invoices) == 3
        assert len(march) == 3
        assert [e.entry_number for e in page] == ["JE-000002", "JE-000003"]

    def test_get_entry_scoped_to_tenant(self, ledger, other_tenant_id, post_entry):
        entry = post_entry("1010", "6010", "1")

        assert ledger.ledger_selector.get_entry(other_tenant_id, entry.id) is None
