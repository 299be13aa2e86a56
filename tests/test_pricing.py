"""Tests for pricing primitives and line-item parsing."""
import pytest
from datetime import date
from decimal import Decimal

from django_booking_totals.exceptions import MalformedLineItem
from django_booking_totals.pricing import (
    AFTER_TAX,
    BEFORE_TAX,
    PER_GROUP,
    PER_PERSON,
    AddonLine,
    DateRange,
    TentParameterLine,
    VoucherSnapshot,
    line_amount,
    parse_line,
)


class TestLineAmount:
    """Test suite for line_amount()."""

    def test_per_person_multiplies(self):
        assert line_amount(2, Decimal("150000"), PER_PERSON) == Decimal("300000")

    def test_per_group_ignores_quantity(self):
        """A per_group row with quantity 5 and price 100 contributes 100."""
        assert line_amount(5, Decimal("100"), PER_GROUP) == Decimal("100")

    def test_missing_mode_multiplies(self):
        assert line_amount(3, Decimal("10"), None) == Decimal("30")

    def test_zero_quantity(self):
        assert line_amount(0, Decimal("150000")) == Decimal("0")

    def test_accepts_int_and_str(self):
        assert line_amount("2", 1000) == Decimal("2000")


class TestParseTentLine:
    """Test suite for parse_line() on tent parameter rows."""

    def test_empty_metadata_is_per_person_tent_line(self):
        line = parse_line({})
        assert isinstance(line, TentParameterLine)
        assert line.pricing_mode == PER_PERSON

    def test_none_metadata_is_tent_line(self):
        assert isinstance(parse_line(None), TentParameterLine)

    def test_reads_dates_and_mode(self):
        line = parse_line({
            'checkInDate': '2025-06-02',
            'checkOutDate': '2025-06-04T00:00:00Z',
            'pricingMode': 'per_group',
        })
        assert line.check_in_date == date(2025, 6, 2)
        assert line.check_out_date == date(2025, 6, 4)
        assert line.amount(4, Decimal("500000")) == Decimal("500000")

    def test_metadata_written_by_line_parses_back(self):
        line = TentParameterLine(PER_GROUP, date(2025, 6, 2), date(2025, 6, 4))
        assert parse_line(line.to_metadata()) == line


class TestParseAddonLine:
    """Test suite for parse_line() on add-on rows."""

    def test_addon_type_yields_addon_line(self):
        line = parse_line({'type': 'addon', 'pricingMode': 'per_person'})
        assert isinstance(line, AddonLine)
        assert line.voucher is None
        assert line.discount == Decimal("0")

    def test_reads_date_range(self):
        line = parse_line({
            'type': 'addon',
            'dates': {'from': '2025-06-02', 'to': '2025-06-03'},
            'selectedDate': '2025-06-02',
        })
        assert line.dates == DateRange(date(2025, 6, 2), date(2025, 6, 3))
        assert line.selected_date == date(2025, 6, 2)

    def test_legacy_check_in_keys_become_date_range(self):
        line = parse_line({'type': 'addon', 'checkInDate': '2025-06-02'})
        assert line.dates == DateRange(date(2025, 6, 2), None)

    def test_price_override_wins(self):
        line = parse_line({'type': 'addon', 'priceOverride': '250000'})
        assert line.price_override == Decimal("250000")
        assert line.amount(2, Decimal("150000")) == Decimal("250000")

    def test_zero_price_override_is_kept(self):
        line = parse_line({'type': 'addon', 'priceOverride': 0})
        assert line.amount(2, Decimal("150000")) == Decimal("0")

    def test_reads_voucher_snapshot(self):
        line = parse_line({
            'type': 'addon',
            'voucher': {
                'code': 'BBQ50',
                'id': 7,
                'discountType': 'fixed',
                'discountValue': '50000',
                'discountAmount': '50000',
                'applicationMethod': AFTER_TAX,
            },
        })
        assert line.voucher.code == 'BBQ50'
        assert line.voucher.voucher_id == 7
        assert line.discount == Decimal("50000")
        assert line.voucher.application_method == AFTER_TAX

    def test_voucher_without_code_is_no_voucher(self):
        line = parse_line({'type': 'addon', 'voucher': {'code': ''}})
        assert line.voucher is None

    def test_voucher_method_defaults_to_before_tax(self):
        snapshot = VoucherSnapshot.from_metadata({'code': 'X', 'discountAmount': '10'})
        assert snapshot.application_method == BEFORE_TAX

    def test_metadata_written_by_line_parses_back(self):
        line = AddonLine(
            pricing_mode=PER_GROUP,
            dates=DateRange(date(2025, 6, 2), date(2025, 6, 4)),
            voucher=VoucherSnapshot('BBQ50', 7, 'fixed', Decimal("50000"), Decimal("50000")),
            price_override=Decimal("90000"),
        )
        assert parse_line(line.to_metadata()) == line


class TestMalformedLines:
    """parse_line() rejects data it cannot interpret."""

    @pytest.mark.parametrize("metadata", [
        {'pricingMode': 'per_night'},
        {'type': 'addon', 'pricingMode': 'tiered'},
        {'checkInDate': 'next tuesday'},
        {'type': 'addon', 'dates': 'June'},
        {'type': 'addon', 'priceOverride': 'free'},
        {'type': 'addon', 'priceOverride': '-1'},
        {'type': 'addon', 'voucher': 'SUMMER10'},
        {'type': 'addon', 'voucher': {'code': 'X', 'discountAmount': 'lots'}},
        {'type': 'addon', 'voucher': {'code': 'X', 'applicationMethod': 'whenever'}},
        ['not', 'an', 'object'],
    ])
    def test_raises_malformed_line_item(self, metadata):
        with pytest.raises(MalformedLineItem) as exc_info:
            parse_line(metadata, line_id='row-1')
        assert exc_info.value.line_id == 'row-1'
