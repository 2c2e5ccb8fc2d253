"""
Reversal and adjustment tests.

Verifies:
- A full reversal swaps every line and nets each account to zero
- Partial reversals are bounded by the remaining balance of each line
- Voiding a reversal restores the original line's remaining balance
- The bound is enforced again at posting time
- Reversing lines keep the account and opposite side of their original
- Reversal date policy (original date, current date, explicit override)
- Transaction type mapping for full and partial reversals
- Originals are never modified; links and audit events are recorded
- Property: any posted transaction and its posted reversal net to zero
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from ledger_kernel.domain.dtos import LineSpec, PartialReversalLine
from ledger_kernel.exceptions import (
    AmountExceedsBalanceError,
    LockedPeriodError,
    ReversalLineMismatchError,
    TransactionLineNotFoundError,
    TransactionNotPostedError,
    ValidationError,
)
from ledger_kernel.models.reversal_link import ReversalKind
from ledger_kernel.models.transaction import (
    Direction,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)
from ledger_kernel.services.reversal_service import (
    ReversalDatePolicy,
    ReversalService,
    partial_reversal_type,
)


def _account_balance(selector, tenant_id, account_id, as_of=date(2024, 12, 31)) -> Decimal:
    for row in selector.account_activity(tenant_id, None, as_of):
        if row.account_id == account_id:
            return row.balance
    return Decimal("0")


@pytest.fixture
def posted_rent(ledger, post_transaction):
    """Posted: Dr Rent 100.00 / Cr Bank 100.00 on 2024-03-15."""
    draft, _ = post_transaction(
        [LineSpec.debit("5000", "100.00"), LineSpec.credit("1000", "100.00")],
        description="March rent",
    )
    return draft


class TestFullReversal:
    """Scenario: reverse a posted expense and post the reversal."""

    def test_reversal_nets_accounts_to_zero(
        self, posted_rent, reversal_service, posting_service, ledger_selector,
        standard_accounts, tenant_id, test_actor_id,
    ):
        reversal = reversal_service.reverse(tenant_id, posted_rent.id, test_actor_id)
        posting_service.post(tenant_id, reversal.id, test_actor_id)

        for code in ("5000", "1000"):
            account_id = standard_accounts[code].id
            assert _account_balance(ledger_selector, tenant_id, account_id) == Decimal("0")

    def test_reversal_lines_are_swapped_copies(
        self, posted_rent, reversal_service, tenant_id, test_actor_id,
    ):
        reversal = reversal_service.reverse(tenant_id, posted_rent.id, test_actor_id)

        assert reversal.status == TransactionStatus.DRAFT
        assert len(reversal.lines) == len(posted_rent.lines)
        for new, old in zip(reversal.lines, posted_rent.lines):
            assert new.account_id == old.account_id
            assert new.amount == old.amount
            assert new.direction == old.direction.opposite()
            assert new.reverses_line_id == old.id
            assert new.tax_code == old.tax_code
            assert new.memo == f"Reversal of line {old.line_seq}"

    def test_description_and_reference(
        self, ledger, post_transaction, reversal_service, tenant_id, test_actor_id,
    ):
        original, _ = post_transaction(
            [LineSpec.debit("5000", "10.00"), LineSpec.credit("1000", "10.00")],
            description="Office rent",
            reference="INV-42",
        )

        reversal = reversal_service.reverse(
            tenant_id, original.id, test_actor_id, reason="duplicate entry"
        )

        assert reversal.description == "Reversal of Office rent: duplicate entry"
        assert reversal.reference == "INV-42"

    def test_original_is_untouched(
        self, posted_rent, reversal_service, posting_service, transaction_service,
        tenant_id, test_actor_id,
    ):
        before = transaction_service.get(tenant_id, posted_rent.id)

        reversal = reversal_service.reverse(tenant_id, posted_rent.id, test_actor_id)
        posting_service.post(tenant_id, reversal.id, test_actor_id)

        assert transaction_service.get(tenant_id, posted_rent.id) == before

    def test_link_and_audit_recorded(
        self, posted_rent, reversal_service, auditor_service, tenant_id, test_actor_id,
    ):
        reversal = reversal_service.reverse(
            tenant_id, posted_rent.id, test_actor_id, reason="error"
        )

        links = reversal_service.reversals_of(tenant_id, posted_rent.id)
        assert len(links) == 1
        assert links[0].reversing_transaction_id == reversal.id
        assert links[0].kind == ReversalKind.FULL
        assert links[0].reason == "error"

        trace = auditor_service.get_trace(tenant_id, "Transaction", posted_rent.id)
        assert "REVERSAL_CREATED" in trace.event_types

    def test_full_reversal_keeps_type(
        self, ledger, post_transaction, reversal_service, tenant_id, test_actor_id,
    ):
        original, _ = post_transaction(
            [LineSpec.debit("1200", "115.00"), LineSpec.credit("4000", "115.00")],
            transaction_type=TransactionType.SALES_INVOICE,
        )

        reversal = reversal_service.reverse(tenant_id, original.id, test_actor_id)

        assert reversal.transaction_type == TransactionType.SALES_INVOICE

    def test_second_full_reversal_rejected_after_first_posts(
        self, posted_rent, reversal_service, posting_service, tenant_id, test_actor_id,
    ):
        first = reversal_service.reverse(tenant_id, posted_rent.id, test_actor_id)
        posting_service.post(tenant_id, first.id, test_actor_id)

        with pytest.raises(AmountExceedsBalanceError):
            reversal_service.reverse(tenant_id, posted_rent.id, test_actor_id)

    def test_draft_cannot_be_reversed(
        self, ledger, create_draft, reversal_service, tenant_id, test_actor_id,
    ):
        draft = create_draft([LineSpec.debit("5000", "5.00"), LineSpec.credit("1000", "5.00")])

        with pytest.raises(TransactionNotPostedError):
            reversal_service.reverse(tenant_id, draft.id, test_actor_id)


class TestPartialReversal:
    def test_partial_reduces_remaining_balance(
        self, posted_rent, reversal_service, posting_service, tenant_id, test_actor_id,
    ):
        debit_line, credit_line = posted_rent.lines
        partial = reversal_service.reverse_partial(
            tenant_id,
            posted_rent.id,
            test_actor_id,
            [
                PartialReversalLine(debit_line.id, "30.00"),
                PartialReversalLine(credit_line.id, "30.00"),
            ],
        )
        posting_service.post(tenant_id, partial.id, test_actor_id)

        remaining = reversal_service.remaining_balance(tenant_id, posted_rent.id)
        assert remaining == {debit_line.id: Decimal("70.00"), credit_line.id: Decimal("70.00")}
        assert reversal_service.reversals_of(tenant_id, posted_rent.id)[0].kind == ReversalKind.PARTIAL

    def test_partial_exceeding_remaining_rejected(
        self, posted_rent, reversal_service, posting_service, tenant_id, test_actor_id,
    ):
        debit_line, credit_line = posted_rent.lines
        first = reversal_service.reverse_partial(
            tenant_id, posted_rent.id, test_actor_id,
            [PartialReversalLine(debit_line.id, "80.00"), PartialReversalLine(credit_line.id, "80.00")],
        )
        posting_service.post(tenant_id, first.id, test_actor_id)

        with pytest.raises(AmountExceedsBalanceError) as exc_info:
            reversal_service.reverse_partial(
                tenant_id, posted_rent.id, test_actor_id,
                [PartialReversalLine(debit_line.id, "30.00")],
            )
        assert exc_info.value.remaining == "20.00"

    def test_exact_remaining_allowed(
        self, posted_rent, reversal_service, tenant_id, test_actor_id,
    ):
        debit_line, _ = posted_rent.lines

        draft = reversal_service.reverse_partial(
            tenant_id, posted_rent.id, test_actor_id,
            [PartialReversalLine(debit_line.id, "100.00")],
        )

        assert draft.lines[0].amount == Decimal("100.00")

    def test_bound_enforced_at_posting(
        self, posted_rent, reversal_service, posting_service, tenant_id, test_actor_id,
    ):
        """Two drafts each within bounds cannot both be posted."""
        debit_line, credit_line = posted_rent.lines
        selection = [
            PartialReversalLine(debit_line.id, "60.00"),
            PartialReversalLine(credit_line.id, "60.00"),
        ]
        first = reversal_service.reverse_partial(tenant_id, posted_rent.id, test_actor_id, selection)
        second = reversal_service.reverse_partial(tenant_id, posted_rent.id, test_actor_id, selection)
        posting_service.post(tenant_id, first.id, test_actor_id)

        with pytest.raises(AmountExceedsBalanceError):
            posting_service.post(tenant_id, second.id, test_actor_id)

    def test_empty_selection_rejected(self, posted_rent, reversal_service, tenant_id, test_actor_id):
        with pytest.raises(ValidationError):
            reversal_service.reverse_partial(tenant_id, posted_rent.id, test_actor_id, [])

    def test_duplicate_line_rejected(self, posted_rent, reversal_service, tenant_id, test_actor_id):
        line = posted_rent.lines[0]
        with pytest.raises(ValidationError):
            reversal_service.reverse_partial(
                tenant_id, posted_rent.id, test_actor_id,
                [PartialReversalLine(line.id, "1.00"), PartialReversalLine(line.id, "2.00")],
            )

    def test_foreign_line_rejected(
        self, posted_rent, ledger, post_transaction, reversal_service, tenant_id, test_actor_id,
    ):
        other, _ = post_transaction(
            [LineSpec.debit("5000", "1.00"), LineSpec.credit("1000", "1.00")]
        )

        with pytest.raises(TransactionLineNotFoundError):
            reversal_service.reverse_partial(
                tenant_id, posted_rent.id, test_actor_id,
                [PartialReversalLine(other.lines[0].id, "1.00")],
            )

    @pytest.mark.parametrize(
        "original_type, expected",
        [
            (TransactionType.SUPPLIER_BILL, TransactionType.DEBIT_NOTE),
            (TransactionType.SALES_INVOICE, TransactionType.CREDIT_NOTE),
            (TransactionType.JOURNAL, TransactionType.JOURNAL),
            (TransactionType.PAYMENT, TransactionType.JOURNAL),
            (TransactionType.CREDIT_NOTE, TransactionType.JOURNAL),
        ],
    )
    def test_partial_reversal_type(self, original_type, expected):
        assert partial_reversal_type(original_type) == expected

    def test_partial_of_supplier_bill_is_debit_note(
        self, ledger, post_transaction, reversal_service, tenant_id, test_actor_id,
    ):
        bill, _ = post_transaction(
            [LineSpec.debit("5000", "200.00"), LineSpec.credit("2000", "200.00")],
            transaction_type=TransactionType.SUPPLIER_BILL,
        )

        note = reversal_service.reverse_partial(
            tenant_id, bill.id, test_actor_id,
            [PartialReversalLine(l.id, "50.00") for l in bill.lines],
        )

        assert note.transaction_type == TransactionType.DEBIT_NOTE
        assert [l.direction for l in note.lines] == [Direction.CREDIT, Direction.DEBIT]


class TestReversingLinesMirrorOriginal:
    """A reversal draft cannot be edited into something that is not a reversal."""

    @pytest.fixture
    def reversal(self, posted_rent, reversal_service, tenant_id, test_actor_id):
        return reversal_service.reverse(tenant_id, posted_rent.id, test_actor_id)

    @pytest.mark.parametrize(
        "change", [{"account_code": "3000"}, {"direction": Direction.DEBIT}],
    )
    def test_account_and_direction_edits_rejected(
        self, reversal, transaction_service, tenant_id, test_actor_id, change,
    ):
        rent_line = reversal.lines[0]

        with pytest.raises(ReversalLineMismatchError) as exc_info:
            transaction_service.update_line(
                tenant_id, reversal.id, rent_line.id, test_actor_id, **change
            )
        assert exc_info.value.reverses_line_id == str(rent_line.reverses_line_id)

    def test_amount_and_memo_edits_allowed(
        self, reversal, transaction_service, tenant_id, test_actor_id,
    ):
        updated = transaction_service.update_line(
            tenant_id, reversal.id, reversal.lines[0].id, test_actor_id,
            amount="40.00", memo="part refund",
        )

        assert updated.amount == Decimal("40.00")
        assert updated.memo == "part refund"

    def test_account_swap_rejected_at_posting(
        self, posted_rent, reversal, posting_service, reversal_service, session,
        standard_accounts, ledger_selector, tenant_id, test_actor_id,
    ):
        session.get(TransactionLine, reversal.lines[0].id).account_id = standard_accounts["3000"].id
        session.flush()

        with pytest.raises(ReversalLineMismatchError) as exc_info:
            posting_service.post(tenant_id, reversal.id, test_actor_id)

        assert exc_info.value.field == "account"
        assert ledger_selector.count_entries(tenant_id, reversal.id) == 0
        remaining = reversal_service.remaining_balance(tenant_id, posted_rent.id)
        assert set(remaining.values()) == {Decimal("100.00")}

    def test_direction_flip_rejected_at_posting(
        self, reversal, posting_service, session, tenant_id, test_actor_id,
    ):
        # flip both sides so the draft still balances
        for line in reversal.lines:
            session.get(TransactionLine, line.id).direction = line.direction.opposite()
        session.flush()

        with pytest.raises(ReversalLineMismatchError) as exc_info:
            posting_service.post(tenant_id, reversal.id, test_actor_id)

        assert exc_info.value.field == "direction"


class TestVoidingReversals:
    def test_reversing_a_reversal_restores_balance(
        self, posted_rent, reversal_service, posting_service, tenant_id, test_actor_id,
    ):
        debit_line, credit_line = posted_rent.lines
        partial = reversal_service.reverse_partial(
            tenant_id, posted_rent.id, test_actor_id,
            [PartialReversalLine(debit_line.id, "40.00"), PartialReversalLine(credit_line.id, "40.00")],
        )
        posting_service.post(tenant_id, partial.id, test_actor_id)

        void = reversal_service.reverse(tenant_id, partial.id, test_actor_id, reason="void")
        posting_service.post(tenant_id, void.id, test_actor_id)

        remaining = reversal_service.remaining_balance(tenant_id, posted_rent.id)
        assert remaining[debit_line.id] == Decimal("100.00")
        assert remaining[credit_line.id] == Decimal("100.00")

    def test_draft_reversals_do_not_reduce_balance(
        self, posted_rent, reversal_service, tenant_id, test_actor_id,
    ):
        reversal_service.reverse(tenant_id, posted_rent.id, test_actor_id)

        remaining = reversal_service.remaining_balance(tenant_id, posted_rent.id)
        assert set(remaining.values()) == {Decimal("100.00")}

    def test_deleting_draft_reversal_removes_link(
        self, posted_rent, reversal_service, transaction_service, tenant_id, test_actor_id,
    ):
        reversal = reversal_service.reverse(tenant_id, posted_rent.id, test_actor_id)

        transaction_service.delete_draft(tenant_id, reversal.id, test_actor_id)

        assert reversal_service.reversals_of(tenant_id, posted_rent.id) == []


class TestReversalDate:
    def test_original_date_by_default(self, posted_rent, reversal_service, tenant_id, test_actor_id):
        reversal = reversal_service.reverse(tenant_id, posted_rent.id, test_actor_id)

        assert reversal.transaction_date == posted_rent.transaction_date

    def test_current_date_policy(
        self, session, deterministic_clock, auditor_service, posted_rent, tenant_id, test_actor_id,
    ):
        service = ReversalService(
            session, deterministic_clock, auditor_service, ReversalDatePolicy.CURRENT_DATE
        )

        reversal = service.reverse(tenant_id, posted_rent.id, test_actor_id)

        assert reversal.transaction_date == date(2024, 6, 10)

    def test_explicit_date_overrides_policy(
        self, posted_rent, reversal_service, tenant_id, test_actor_id,
    ):
        reversal = reversal_service.reverse(
            tenant_id, posted_rent.id, test_actor_id, reversal_date=date(2024, 4, 2)
        )

        assert reversal.transaction_date == date(2024, 4, 2)

    def test_reversal_into_locked_period_fails_at_posting(
        self, posted_rent, reversal_service, posting_service, period_service,
        tenant_id, test_actor_id,
    ):
        period_service.lock_period(tenant_id, "FY2024-03", test_actor_id)
        reversal = reversal_service.reverse(tenant_id, posted_rent.id, test_actor_id)

        with pytest.raises(LockedPeriodError):
            posting_service.post(tenant_id, reversal.id, test_actor_id)

    def test_locked_original_period_reversed_into_open_period(
        self, posted_rent, reversal_service, posting_service, period_service,
        tenant_id, test_actor_id,
    ):
        period_service.lock_period(tenant_id, "FY2024-03", test_actor_id)
        reversal = reversal_service.reverse(
            tenant_id, posted_rent.id, test_actor_id, reversal_date=date(2024, 4, 1)
        )

        result = posting_service.post(tenant_id, reversal.id, test_actor_id)

        assert result.period_code == "FY2024-04"


amounts = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("99999.99"), places=2,
    allow_nan=False, allow_infinity=False,
)


class TestReversalProperty:
    @settings(max_examples=25, deadline=None,
              suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(rent=st.lists(amounts, min_size=1, max_size=3),
           salaries=st.lists(amounts, max_size=3))
    def test_posted_reversal_nets_every_account_to_zero(
        self, ledger, post_transaction, reversal_service, posting_service,
        ledger_selector, tenant_id, test_actor_id, rent, salaries,
    ):
        lines = [LineSpec.debit("5000", a) for a in rent]
        lines += [LineSpec.debit("5100", a) for a in salaries]
        lines.append(LineSpec.credit("1000", sum(rent + salaries, Decimal("0"))))
        original, _ = post_transaction(lines)

        reversal = reversal_service.reverse(tenant_id, original.id, test_actor_id)
        posting_service.post(tenant_id, reversal.id, test_actor_id)

        net: dict = {}
        for tx_id in (original.id, reversal.id):
            for entry in ledger_selector.entries_for_transaction(tenant_id, tx_id):
                net[entry.account_id] = net.get(entry.account_id, Decimal("0")) + (
                    entry.amount_dr - entry.amount_cr
                )
        assert set(net.values()) == {Decimal("0")}
        assert set(reversal_service.remaining_balance(tenant_id, original.id).values()) == {
            Decimal("0")
        }
