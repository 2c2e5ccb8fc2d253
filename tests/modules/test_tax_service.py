"""
Tax code maintenance, taxed draft lines and tax summaries.

Verifies:
- Tax code CRUD with rate validation, uniqueness and audit
- Default tax code seeding is idempotent
- add_taxed_line for tax-exclusive and tax-inclusive amounts
- tax_summary over posted entries (drafts excluded, reversals net out)
- Summary tax is the tax posted: later rate changes and per-line rounding hold
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import (
    DuplicateTaxCodeError,
    TaxCodeNotFoundError,
    TransactionNotDraftError,
    ValidationError,
)
from ledger_kernel.models.transaction import Direction, TransactionType
from ledger_modules.tax.config import DefaultTaxCode
from ledger_modules.tax.models import TaxType

FY_START = date(2024, 1, 1)
FY_END = date(2024, 12, 31)


class TestTaxCodes:
    def test_defaults_seeded(self, tax_codes):
        assert set(tax_codes) == {"GST", "ZERO", "EXEMPT", "N/A"}
        assert tax_codes["GST"].rate == Decimal("0.15")
        assert tax_codes["GST"].tax_type == TaxType.STANDARD

    def test_seeding_skips_existing(self, tax_codes, tax_code_service, tenant_id, test_actor_id):
        assert tax_code_service.create_default_tax_codes(tenant_id, test_actor_id) == []

    def test_custom_seed(self, tax_code_service, tenant_id, test_actor_id):
        created = tax_code_service.create_default_tax_codes(
            tenant_id,
            test_actor_id,
            codes=[DefaultTaxCode("VAT20", "VAT 20%", "0.20", "standard", report_box="1")],
        )

        assert [c.code for c in created] == ["VAT20"]
        assert created[0].report_box == "1"

    def test_create_and_find(self, tax_code_service, tenant_id, test_actor_id):
        tax_code_service.create_tax_code(
            tenant_id, "LUX", "Luxury 25%", "0.25", TaxType.STANDARD, test_actor_id
        )

        found = tax_code_service.find_by_code(tenant_id, "LUX")
        assert found.rate == Decimal("0.2500")
        assert found.is_active

    @pytest.mark.parametrize("rate", ["-0.01", "1.01", "0.12345"])
    def test_invalid_rate_rejected(self, tax_code_service, tenant_id, test_actor_id, rate):
        with pytest.raises(ValidationError):
            tax_code_service.create_tax_code(
                tenant_id, "BAD", "Bad", rate, TaxType.STANDARD, test_actor_id
            )

    def test_duplicate_rejected(self, tax_codes, tax_code_service, tenant_id, test_actor_id):
        with pytest.raises(DuplicateTaxCodeError):
            tax_code_service.create_tax_code(
                tenant_id, "GST", "Again", "0.15", TaxType.STANDARD, test_actor_id
            )

    def test_unknown_code(self, tax_codes, tax_code_service, other_tenant_id):
        with pytest.raises(TaxCodeNotFoundError):
            tax_code_service.find_by_code(other_tenant_id, "GST")

    def test_update_audits_changes(
        self, tax_codes, tax_code_service, auditor_service, tenant_id, test_actor_id,
    ):
        updated = tax_code_service.update_tax_code(
            tenant_id, "GST", test_actor_id, rate="0.125", report_box="5"
        )

        assert updated.rate == Decimal("0.1250")
        trace = auditor_service.get_trace(tenant_id, "TaxCode", updated.id)
        change = [e for e in trace.entries if e.event_type == "TAXCODE_UPDATED"][0]
        assert change.details["rate"] == {"from": "0.1500", "to": "0.1250"}
        assert change.details["report_box"] == {"from": None, "to": "5"}

    def test_update_without_changes_not_audited(
        self, tax_codes, tax_code_service, auditor_service, tenant_id, test_actor_id,
    ):
        updated = tax_code_service.update_tax_code(tenant_id, "GST", test_actor_id, name="GST 15%")

        trace = auditor_service.get_trace(tenant_id, "TaxCode", updated.id)
        assert "TAXCODE_UPDATED" not in trace.event_types

    def test_deactivate(self, tax_codes, tax_code_service, tenant_id, test_actor_id):
        tax_code_service.deactivate_tax_code(tenant_id, "ZERO", test_actor_id)

        active = {c.code for c in tax_code_service.list_active(tenant_id)}
        assert "ZERO" not in active
        assert not tax_code_service.find_by_code(tenant_id, "ZERO").is_active


class TestTaxedLines:
    @pytest.fixture
    def draft(self, ledger, create_draft):
        return create_draft([], transaction_type=TransactionType.SUPPLIER_BILL)

    def test_tax_exclusive_line(self, draft, tax_service, tenant_id, test_actor_id):
        net, tax = tax_service.add_taxed_line(
            tenant_id, draft.id, LineSpec.debit("5000", "100.00"), "2200", test_actor_id
        )

        assert net.amount == Decimal("100.00")
        assert net.tax_code == "GST"
        assert tax.amount == Decimal("15.00")
        assert tax.direction == Direction.DEBIT
        assert tax.tax_code == "GST"
        assert tax.is_tax_line and not net.is_tax_line
        assert tax.memo == "GST 15% on line 1"

    def test_tax_inclusive_line(self, draft, tax_service, tenant_id, test_actor_id):
        net, tax = tax_service.add_taxed_line(
            tenant_id, draft.id, LineSpec.debit("5000", "115.00"), "2200", test_actor_id,
            amount_includes_tax=True,
        )

        assert (net.amount, tax.amount) == (Decimal("100.00"), Decimal("15.00"))

    def test_zero_tax_adds_no_tax_line(self, draft, tax_service, transaction_service,
                                       tenant_id, test_actor_id):
        net, tax = tax_service.add_taxed_line(
            tenant_id, draft.id, LineSpec.debit("5000", "100.00", tax_code="EXEMPT"),
            "2200", test_actor_id,
        )

        assert tax is None
        assert len(transaction_service.get(tenant_id, draft.id).lines) == 1

    def test_missing_tax_code_rejected(self, draft, tax_service, tenant_id, test_actor_id):
        with pytest.raises(ValidationError):
            tax_service.add_taxed_line(
                tenant_id, draft.id, LineSpec.debit("1000", "10.00"), "2200", test_actor_id
            )

    def test_taxed_bill_posts_balanced(
        self, draft, tax_service, transaction_service, posting_service, tenant_id, test_actor_id,
    ):
        tax_service.add_taxed_line(
            tenant_id, draft.id, LineSpec.debit("5000", "200.00"), "2200", test_actor_id
        )
        transaction_service.add_line(
            tenant_id, draft.id, LineSpec.credit("2000", "230.00"), test_actor_id
        )

        result = posting_service.post(tenant_id, draft.id, test_actor_id)

        assert result.total_debits == Decimal("230.00")

    def test_posted_transaction_rejected(
        self, ledger, post_transaction, tax_service, tenant_id, test_actor_id,
    ):
        posted, _ = post_transaction(
            [LineSpec.debit("5000", "1.00"), LineSpec.credit("1000", "1.00")]
        )

        with pytest.raises(TransactionNotDraftError):
            tax_service.add_taxed_line(
                tenant_id, posted.id, LineSpec.debit("5000", "1.00"), "2200", test_actor_id
            )

    def test_calculate(self, tax_codes, tax_service, tenant_id):
        assert tax_service.calculate(tenant_id, "GST", "200.00") == Decimal("30.00")


class TestTaxSummary:
    @pytest.fixture
    def trading(self, ledger, create_draft, tax_service, transaction_service, posting_service,
                tenant_id, test_actor_id):
        """A posted taxed sale (200 + GST) and a posted taxed purchase (100 + GST)."""
        sale = create_draft([], transaction_type=TransactionType.SALES_INVOICE)
        tax_service.add_taxed_line(
            tenant_id, sale.id, LineSpec.credit("4000", "200.00"), "2200", test_actor_id
        )
        transaction_service.add_line(
            tenant_id, sale.id, LineSpec.debit("1200", "230.00"), test_actor_id
        )
        posting_service.post(tenant_id, sale.id, test_actor_id)

        bill = create_draft([], transaction_type=TransactionType.SUPPLIER_BILL)
        tax_service.add_taxed_line(
            tenant_id, bill.id, LineSpec.debit("5000", "100.00"), "2200", test_actor_id
        )
        transaction_service.add_line(
            tenant_id, bill.id, LineSpec.credit("2000", "115.00"), test_actor_id
        )
        posting_service.post(tenant_id, bill.id, test_actor_id)
        return sale, bill

    def test_output_and_input_tax(self, trading, tax_service, tenant_id):
        summary = tax_service.tax_summary(tenant_id, FY_START, FY_END)

        [gst] = summary.lines
        assert gst.tax_code == "GST"
        assert gst.output_base == Decimal("200.00")
        assert gst.input_base == Decimal("100.00")
        assert gst.output_tax == Decimal("30.00")
        assert gst.input_tax == Decimal("15.00")
        assert summary.net_tax_payable == Decimal("15.00")

    def test_drafts_excluded(self, trading, ledger, create_draft, tax_service, tenant_id):
        create_draft([LineSpec.credit("4000", "1000.00"), LineSpec.debit("1200", "1000.00")])

        summary = tax_service.tax_summary(tenant_id, FY_START, FY_END)

        assert summary.lines[0].output_base == Decimal("200.00")

    def test_reversal_nets_out(
        self, trading, reversal_service, posting_service, tax_service, tenant_id, test_actor_id,
    ):
        sale, _ = trading
        reversal = reversal_service.reverse(tenant_id, sale.id, test_actor_id)
        posting_service.post(tenant_id, reversal.id, test_actor_id)

        [gst] = tax_service.tax_summary(tenant_id, FY_START, FY_END).lines

        # the reversed sale lands on the debit side; only the purchase remains net
        assert gst.output_base == Decimal("200.00")
        assert gst.input_base == Decimal("300.00")
        assert gst.net_base == Decimal("-100.00")

    def test_same_range_same_summary(self, trading, tax_service, tenant_id):
        first = tax_service.tax_summary(tenant_id, FY_START, FY_END)
        second = tax_service.tax_summary(tenant_id, FY_START, FY_END)

        assert first == second

    def test_range_outside_activity(self, trading, tax_service, tenant_id):
        summary = tax_service.tax_summary(tenant_id, date(2023, 1, 1), date(2023, 12, 31))

        assert summary.lines == ()
        assert summary.net_tax_payable == Decimal("0.00")

    def test_report_boxes(self, trading, tax_code_service, tax_service, tenant_id, test_actor_id):
        tax_code_service.update_tax_code(tenant_id, "GST", test_actor_id, report_box="5")

        boxes = tax_service.tax_summary(tenant_id, FY_START, FY_END).by_report_box()

        assert boxes == {"5": Decimal("100.00")}

    def test_reversal_posts_tax_back(
        self, trading, reversal_service, posting_service, tax_service, tenant_id, test_actor_id,
    ):
        sale, _ = trading
        reversal = reversal_service.reverse(tenant_id, sale.id, test_actor_id)
        posting_service.post(tenant_id, reversal.id, test_actor_id)

        [gst] = tax_service.tax_summary(tenant_id, FY_START, FY_END).lines

        assert gst.output_tax == Decimal("30.00")
        assert gst.input_tax == Decimal("45.00")
        assert gst.net_tax == Decimal("-15.00")
        # tax entries are not counted as base entries
        assert gst.entry_count == 3


class TestPostedTaxInSummary:
    def _sell(self, create_draft, tax_service, transaction_service, posting_service,
              tenant_id, actor_id, amounts):
        sale = create_draft([], transaction_type=TransactionType.SALES_INVOICE)
        for amount in amounts:
            tax_service.add_taxed_line(
                tenant_id, sale.id, LineSpec.credit("4000", amount), "2200", actor_id
            )
        total = sum(l.amount for l in transaction_service.get(tenant_id, sale.id).lines)
        transaction_service.add_line(
            tenant_id, sale.id, LineSpec.debit("1200", total), actor_id
        )
        posting_service.post(tenant_id, sale.id, actor_id)
        return sale

    def test_rate_change_does_not_restate_posted_tax(
        self, ledger, create_draft, tax_service, tax_code_service, transaction_service,
        posting_service, tenant_id, test_actor_id,
    ):
        self._sell(create_draft, tax_service, transaction_service, posting_service,
                   tenant_id, test_actor_id, ["100.00"])

        tax_code_service.update_tax_code(tenant_id, "GST", test_actor_id, rate="0.10")
        [gst] = tax_service.tax_summary(tenant_id, FY_START, FY_END).lines

        assert gst.output_tax == Decimal("15.00")
        assert gst.rate == Decimal("0.1000")

    def test_per_line_rounding_kept(
        self, ledger, create_draft, tax_service, transaction_service, posting_service,
        tenant_id, test_actor_id,
    ):
        # 15% of 0.10 is 0.015, rounded half-up to 0.02 on each line
        self._sell(create_draft, tax_service, transaction_service, posting_service,
                   tenant_id, test_actor_id, ["0.10", "0.10"])

        [gst] = tax_service.tax_summary(tenant_id, FY_START, FY_END).lines

        assert gst.output_base == Decimal("0.20")
        assert gst.output_tax == Decimal("0.04")
        assert gst.entry_count == 2

    def test_untaxed_coded_lines_add_base_only(
        self, ledger, post_transaction, tax_service, tenant_id,
    ):
        # 4000 defaults to GST but no tax line is generated
        post_transaction([LineSpec.credit("4000", "50.00"), LineSpec.debit("1200", "50.00")])

        [gst] = tax_service.tax_summary(tenant_id, FY_START, FY_END).lines

        assert gst.output_base == Decimal("50.00")
        assert gst.output_tax == Decimal("0.00")
