"""
Journal posting tests.

Verifies:
- The cash sale example: both accounts move by the amount in their
  normal direction and an entry number is assigned
- Line validation (count, sides, negatives) and the balance tolerance
- Entry numbering is monotonic per tenant
- Entry metadata round-trips through the stored entry
- Tenant isolation of referenced accounts
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.domain.entry_metadata import SourceDocumentMetadata
from ledger_kernel.domain.values import Side
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    InvalidEntryError,
    InvalidLineError,
    UnbalancedEntryError,
)
from ledger_kernel.models.journal import EntryType


class TestCashSale:
    """Cash 1000 / Sales Revenue 1000 on an open March 2024."""

    def test_entry_posts_and_moves_balances(self, post_entry, balance_of):
        entry = post_entry("1010", "6010", "1000")

        assert entry.entry_number == "JE-000001"
        assert entry.status == "posted"
        assert entry.total_debits == Decimal("1000")
        assert entry.total_credits == Decimal("1000")
        assert balance_of("1010") == Decimal("1000.00")
        assert balance_of("6010") == Decimal("1000.00")

    def test_entry_records_period_and_actor(self, post_entry, owner, deterministic_clock):
        entry = post_entry("1010", "6010", "1000")

        assert (entry.year, entry.month) == (2024, 3)
        assert entry.posted_by_id == owner.user_id
        assert entry.period_override is False
        assert entry.posted_at == deterministic_clock.now()

    def test_lines_keep_request_order(self, post_entry, account_ids):
        entry = post_entry("1010", "6010", "1000")

        assert [ln.line_seq for ln in entry.lines] == [0, 1]
        assert entry.lines[0].account_id == account_ids["1010"]
        assert entry.lines[0].side == Side.DEBIT
        assert entry.lines[1].credit == Decimal("1000")

    def test_credit_on_debit_normal_account_decreases_it(self, post_entry, balance_of):
        post_entry("1010", "6010", "1000")
        post_entry("7010", "1010", "300")

        assert balance_of("1010") == Decimal("700.00")
        assert balance_of("7010") == Decimal("300.00")

    def test_entry_numbers_increase(self, post_entry):
        numbers = [post_entry("1010", "6010", "10").entry_number for _ in range(3)]

        assert numbers == ["JE-000001", "JE-000002", "JE-000003"]

    def test_tenants_number_independently(
        self, ledger, post_entry, other_tenant_id, owner
    ):
        post_entry("1010", "6010", "10")
        other = {
            a.code: a.id
            for a in ledger.account_service.initialize_chart(other_tenant_id, owner)
        }

        entry = ledger.journal_writer.create_entry(
            other_tenant_id, date(2024, 3, 15), "Other tenant sale",
            [LineSpec.debit_line(other["1010"], Decimal("5")),
             LineSpec.credit_line(other["6010"], Decimal("5"))],
            EntryType.MANUAL, owner,
        )

        assert entry.entry_number == "JE-000001"


class TestValidation:
    """Requests rejected before anything is written."""

    def _post(self, ledger, tenant_id, owner, lines, **kwargs):
        return ledger.journal_writer.create_entry(
            tenant_id, date(2024, 3, 15), kwargs.pop("description", "Test"),
            lines, kwargs.pop("entry_type", EntryType.MANUAL), owner, **kwargs
        )

    def test_single_line_rejected(self, ledger, tenant_id, owner, account_ids):
        with pytest.raises(InvalidEntryError):
            self._post(
                ledger, tenant_id, owner,
                [LineSpec.debit_line(account_ids["1010"], Decimal("10"))],
            )

    def test_line_with_both_sides_rejected(self, ledger, tenant_id, owner, account_ids):
        with pytest.raises(InvalidLineError) as exc_info:
            self._post(
                ledger, tenant_id, owner,
                [LineSpec(account_ids["1010"], debit=Decimal("10"), credit=Decimal("10")),
                 LineSpec.credit_line(account_ids["6010"], Decimal("10"))],
            )
        assert exc_info.value.line_index == 0

    def test_line_with_neither_side_rejected(self, ledger, tenant_id, owner, account_ids):
        with pytest.raises(InvalidLineError) as exc_info:
            self._post(
                ledger, tenant_id, owner,
                [LineSpec.debit_line(account_ids["1010"], Decimal("10")),
                 LineSpec.credit_line(account_ids["6010"], Decimal("10")),
                 LineSpec(account_ids["6020"])],
            )
        assert exc_info.value.line_index == 2

    def test_negative_amount_rejected(self, ledger, tenant_id, owner, account_ids):
        with pytest.raises(InvalidLineError):
            self._post(
                ledger, tenant_id, owner,
                [LineSpec.debit_line(account_ids["1010"], Decimal("-10")),
                 LineSpec.credit_line(account_ids["6010"], Decimal("-10"))],
            )

    def test_float_amount_rejected(self, ledger, tenant_id, owner, account_ids):
        with pytest.raises(InvalidLineError):
            self._post(
                ledger, tenant_id, owner,
                [LineSpec.debit_line(account_ids["1010"], 10.0),
                 LineSpec.credit_line(account_ids["6010"], 10.0)],
            )

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", Decimal("NaN"), Decimal("Infinity")])
    def test_non_finite_amount_rejected(
        self, ledger, tenant_id, owner, account_ids, balance_of, captured_logs, amount
    ):
        with pytest.raises(InvalidLineError) as exc_info:
            self._post(
                ledger, tenant_id, owner,
                [LineSpec.debit_line(account_ids["1010"], amount),
                 LineSpec.credit_line(account_ids["6010"], amount)],
            )

        assert exc_info.value.line_index == 0
        assert balance_of("1010") == Decimal("0.00")
        rejected = [r for r in captured_logs() if r["message"] == "journal_entry_rejected"]
        assert rejected[-1]["error_code"] == "INVALID_LINE"

    def test_unbalanced_entry_rejected(self, ledger, tenant_id, owner, account_ids):
        with pytest.raises(UnbalancedEntryError):
            self._post(
                ledger, tenant_id, owner,
                [LineSpec.debit_line(account_ids["1010"], Decimal("100.00")),
                 LineSpec.credit_line(account_ids["6010"], Decimal("99.98"))],
            )

    def test_difference_within_tolerance_accepted(
        self, ledger, tenant_id, owner, account_ids
    ):
        entry = self._post(
            ledger, tenant_id, owner,
            [LineSpec.debit_line(account_ids["1010"], Decimal("100.00")),
             LineSpec.credit_line(account_ids["6010"], Decimal("99.99"))],
        )

        assert entry.total_debits - entry.total_credits == Decimal("0.01")

    def test_blank_description_rejected(self, ledger, tenant_id, owner, account_ids):
        with pytest.raises(InvalidEntryError):
            self._post(
                ledger, tenant_id, owner,
                [LineSpec.debit_line(account_ids["1010"], Decimal("10")),
                 LineSpec.credit_line(account_ids["6010"], Decimal("10"))],
                description="   ",
            )

    def test_unknown_entry_type_rejected(self, ledger, tenant_id, owner, account_ids):
        with pytest.raises(InvalidEntryError):
            self._post(
                ledger, tenant_id, owner,
                [LineSpec.debit_line(account_ids["1010"], Decimal("10")),
                 LineSpec.credit_line(account_ids["6010"], Decimal("10"))],
                entry_type="barter",
            )

    def test_entry_type_is_case_insensitive(self, ledger, tenant_id, owner, account_ids):
        entry = self._post(
            ledger, tenant_id, owner,
            [LineSpec.debit_line(account_ids["1010"], Decimal("10")),
             LineSpec.credit_line(account_ids["6010"], Decimal("10"))],
            entry_type="INVOICE",
        )

        assert entry.entry_type == EntryType.INVOICE.value

    def test_unknown_account_rejected(self, ledger, tenant_id, owner, account_ids):
        with pytest.raises(AccountNotFoundError):
            self._post(
                ledger, tenant_id, owner,
                [LineSpec.debit_line(uuid4(), Decimal("10")),
                 LineSpec.credit_line(account_ids["6010"], Decimal("10"))],
            )

    def test_other_tenants_account_rejected(
        self, ledger, tenant_id, other_tenant_id, owner, account_ids
    ):
        foreign = ledger.account_service.create_account(
            other_tenant_id, "1010", "Cash", "asset", owner
        )

        with pytest.raises(AccountNotFoundError):
            self._post(
                ledger, tenant_id, owner,
                [LineSpec.debit_line(foreign.id, Decimal("10")),
                 LineSpec.credit_line(account_ids["6010"], Decimal("10"))],
            )


class TestMetadata:

    def test_source_document_metadata_round_trips(
        self, ledger, tenant_id, owner, account_ids
    ):
        document_id = uuid4()
        entry = ledger.journal_writer.create_entry(
            tenant_id, date(2024, 3, 15), "Invoice INV-42",
            [LineSpec.debit_line(account_ids["1030"], Decimal("500")),
             LineSpec.credit_line(account_ids["6010"], Decimal("500"))],
            EntryType.INVOICE, owner,
            reference="INV-42",
            metadata=SourceDocumentMetadata(
                document_kind="invoice", document_id=document_id, number="INV-42"
            ),
        )

        stored = ledger.ledger_selector.get_entry(tenant_id, entry.id)
        assert stored.reference == "INV-42"
        assert stored.metadata == SourceDocumentMetadata(
            document_kind="invoice", document_id=document_id, number="INV-42"
        )

    def test_entry_without_metadata(self, post_entry, ledger, tenant_id):
        entry = post_entry("1010", "6010", "10")

        assert ledger.ledger_selector.get_entry(tenant_id, entry.id).metadata is None
