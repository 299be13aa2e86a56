"""Tests for voucher validation and usage accounting."""
import pytest
from datetime import date
from decimal import Decimal

from freezegun import freeze_time

from django_booking_totals.exceptions import (
    VoucherError,
    VoucherExpired,
    VoucherInactive,
    VoucherNotFound,
    VoucherNotYetActive,
    VoucherScopeMismatch,
    VoucherUsageExceeded,
)
from django_booking_totals.models import Voucher, VoucherItem
from django_booking_totals.vouchers import (
    APPLICATION_ACCOMMODATION,
    APPLICATION_ALL,
    APPLICATION_MENU,
    VoucherContext,
    calculate_discount,
    increment_voucher_usage,
    validate_voucher,
    voucher_code_changed,
)


MONDAY = date(2025, 6, 2)


def tent_context(tent_item, **kwargs):
    values = {
        'zone_id': tent_item.zone_id,
        'item_id': tent_item.pk,
        'check_in': MONDAY,
        'total_amount': Decimal("2000000"),
        'application_type': APPLICATION_ACCOMMODATION,
    }
    values.update(kwargs)
    return VoucherContext(**values)


class TestCalculateDiscount:
    """Test suite for calculate_discount()."""

    def test_percentage(self):
        assert calculate_discount('percentage', 10, Decimal("2000000")) == Decimal("200000")

    def test_fixed(self):
        assert calculate_discount('fixed', 50000, Decimal("300000")) == Decimal("50000")

    def test_fixed_capped_at_total(self):
        assert calculate_discount('fixed', 500000, Decimal("300000")) == Decimal("300000")

    def test_percentage_over_100_capped_at_total(self):
        assert calculate_discount('percentage', 150, Decimal("1000")) == Decimal("1000")

    def test_rounded_to_currency(self):
        assert calculate_discount('percentage', 15, Decimal("333"), 'VND') == Decimal("50")

    def test_unknown_type_is_zero(self):
        assert calculate_discount('bogo', 10, Decimal("1000")) == Decimal("0")


class TestVoucherCodeChanged:
    def test_new_code_on_empty_line(self):
        assert voucher_code_changed(None, 'SUMMER10') is True

    def test_same_code_different_case(self):
        assert voucher_code_changed('SUMMER10', ' summer10 ') is False

    def test_removing_is_not_a_change_to_validate(self):
        assert voucher_code_changed('SUMMER10', '') is False

    def test_different_code(self):
        assert voucher_code_changed('SUMMER10', 'WINTER5') is True


@pytest.mark.django_db
class TestValidateVoucher:
    """Test suite for validate_voucher()."""

    def test_valid_percentage_voucher(self, make_voucher, tent_item):
        voucher = make_voucher()
        result = validate_voucher('SUMMER10', tent_context(tent_item))
        assert result.voucher_id == voucher.pk
        assert result.code == 'SUMMER10'
        assert result.discount_type == 'percentage'
        assert result.discount_value == Decimal("10")
        assert result.discount_amount == Decimal("200000")
        assert result.application_method == 'per_booking_before_tax'

    def test_lookup_is_case_insensitive(self, make_voucher, tent_item):
        make_voucher(code='Summer10')
        result = validate_voucher('  sUmMeR10 ', tent_context(tent_item))
        assert result.code == 'Summer10'

    def test_application_method_from_voucher(self, make_voucher, tent_item):
        make_voucher(apply_after_tax=True)
        make_voucher(code='ITEM5', apply_type=Voucher.ApplyType.PER_ITEM)
        assert validate_voucher('SUMMER10', tent_context(tent_item)).application_method == (
            'per_booking_after_tax'
        )
        assert validate_voucher('ITEM5', tent_context(tent_item)).application_method == 'per_item'

    def test_missing_code(self, tent_item):
        with pytest.raises(VoucherNotFound):
            validate_voucher('  ', tent_context(tent_item))

    def test_zero_total(self, make_voucher, tent_item):
        make_voucher()
        with pytest.raises(VoucherNotFound):
            validate_voucher('SUMMER10', tent_context(tent_item, total_amount=Decimal("0")))

    def test_unknown_code(self, tent_item):
        with pytest.raises(VoucherNotFound) as exc_info:
            validate_voucher('NOPE', tent_context(tent_item))
        assert exc_info.value.code == 'NOPE'

    def test_inactive(self, make_voucher, tent_item):
        make_voucher(status=Voucher.Status.INACTIVE)
        with pytest.raises(VoucherInactive):
            validate_voucher('SUMMER10', tent_context(tent_item))

    def test_usage_exhausted(self, make_voucher, tent_item):
        make_voucher(max_uses=3, current_uses=3)
        with pytest.raises(VoucherUsageExceeded):
            validate_voucher('SUMMER10', tent_context(tent_item))

    def test_usage_counted_earlier_in_same_transaction(self, make_voucher, tent_item):
        make_voucher(max_uses=3, current_uses=2)
        validation = validate_voucher('SUMMER10', tent_context(tent_item))
        increment_voucher_usage(validation.voucher_id)
        with pytest.raises(VoucherUsageExceeded):
            validate_voucher('SUMMER10', tent_context(tent_item))

    def test_one_time_voucher_used_once(self, make_voucher, tent_item):
        make_voucher(recurrence=Voucher.Recurrence.ONE_TIME, current_uses=1)
        with pytest.raises(VoucherUsageExceeded):
            validate_voucher('SUMMER10', tent_context(tent_item))

    def test_inactive_checked_before_usage(self, make_voucher, tent_item):
        make_voucher(status=Voucher.Status.INACTIVE, max_uses=1, current_uses=1)
        with pytest.raises(VoucherInactive):
            validate_voucher('SUMMER10', tent_context(tent_item))

    def test_rejection_is_logged(self, make_voucher, tent_item, caplog):
        make_voucher(status=Voucher.Status.INACTIVE)
        with pytest.raises(VoucherError):
            validate_voucher('SUMMER10', tent_context(tent_item))
        assert "SUMMER10" in caplog.text
        assert any(record.levelname == 'WARNING' for record in caplog.records)


@pytest.mark.django_db
class TestVoucherDateWindow:
    """Date-range vouchers are checked against today's date."""

    @pytest.fixture
    def june_voucher(self, make_voucher):
        return make_voucher(
            recurrence=Voucher.Recurrence.DATE_RANGE,
            start_date=date(2025, 6, 1),
            end_date=date(2025, 6, 30),
        )

    @freeze_time("2025-06-15 09:00:00")
    def test_inside_window(self, june_voucher, tent_item):
        assert validate_voucher('SUMMER10', tent_context(tent_item)).voucher_id == june_voucher.pk

    @freeze_time("2025-06-30 23:00:00")
    def test_last_day_inclusive(self, june_voucher, tent_item):
        validate_voucher('SUMMER10', tent_context(tent_item))

    @freeze_time("2025-07-01 09:00:00")
    def test_expired(self, june_voucher, tent_item):
        with pytest.raises(VoucherExpired) as exc_info:
            validate_voucher('SUMMER10', tent_context(tent_item))
        assert not isinstance(exc_info.value, VoucherNotYetActive)

    @freeze_time("2025-05-31 09:00:00")
    def test_not_yet_active(self, june_voucher, tent_item):
        with pytest.raises(VoucherNotYetActive):
            validate_voucher('SUMMER10', tent_context(tent_item))

    @freeze_time("2025-08-01 09:00:00")
    def test_always_voucher_ignores_dates(self, make_voucher, tent_item):
        make_voucher(start_date=date(2025, 6, 1), end_date=date(2025, 6, 30))
        validate_voucher('SUMMER10', tent_context(tent_item))


@pytest.mark.django_db
class TestVoucherScope:
    """Zone, weekday, application type and item scoping."""

    def test_weekly_days_match(self, make_voucher, tent_item):
        make_voucher(weekly_days=[1, 2])
        validate_voucher('SUMMER10', tent_context(tent_item))

    def test_weekly_days_sunday_is_zero(self, make_voucher, tent_item):
        make_voucher(weekly_days=[0])
        validate_voucher('SUMMER10', tent_context(tent_item, check_in=date(2025, 6, 8)))
        with pytest.raises(VoucherScopeMismatch):
            validate_voucher('SUMMER10', tent_context(tent_item))

    def test_weekly_days_skipped_without_check_in(self, make_voucher, tent_item):
        make_voucher(weekly_days=[5])
        validate_voucher('SUMMER10', tent_context(tent_item, check_in=None))

    def test_other_zone(self, make_voucher, tent_item, other_zone):
        make_voucher(zone=other_zone)
        with pytest.raises(VoucherScopeMismatch):
            validate_voucher('SUMMER10', tent_context(tent_item))

    def test_same_zone(self, make_voucher, tent_item, zone):
        make_voucher(zone=zone)
        validate_voucher('SUMMER10', tent_context(tent_item))

    def test_menu_voucher_on_accommodation(self, make_voucher, tent_item):
        make_voucher(application_type=Voucher.ApplicationType.MENU)
        with pytest.raises(VoucherScopeMismatch) as exc_info:
            validate_voucher('SUMMER10', tent_context(tent_item))
        assert str(exc_info.value) == "Voucher does not apply to accommodation"

    def test_tent_voucher_on_menu(self, make_voucher, menu_item):
        make_voucher(application_type=Voucher.ApplicationType.TENT)
        context = VoucherContext(
            zone_id=menu_item.zone_id,
            item_id=menu_item.pk,
            total_amount=Decimal("240000"),
            application_type=APPLICATION_MENU,
        )
        with pytest.raises(VoucherScopeMismatch):
            validate_voucher('SUMMER10', context)

    def test_any_voucher_when_caller_applies_to_all(self, make_voucher, addon_item):
        make_voucher(application_type=Voucher.ApplicationType.MENU)
        context = VoucherContext(
            zone_id=addon_item.zone_id,
            item_id=addon_item.pk,
            total_amount=Decimal("300000"),
            application_type=APPLICATION_ALL,
        )
        validate_voucher('SUMMER10', context)

    def test_item_scope_match(self, make_voucher, tent_item):
        voucher = make_voucher()
        VoucherItem.objects.create(voucher=voucher, item=tent_item)
        validate_voucher('SUMMER10', tent_context(tent_item))

    def test_item_scope_mismatch(self, make_voucher, tent_item, other_tent_item):
        voucher = make_voucher()
        VoucherItem.objects.create(voucher=voucher, item=other_tent_item)
        with pytest.raises(VoucherScopeMismatch) as exc_info:
            validate_voucher('SUMMER10', tent_context(tent_item))
        assert str(exc_info.value) == "Voucher does not apply to this tent type"

    def test_menu_item_scope(self, make_voucher, menu_item, tent_item):
        voucher = make_voucher()
        VoucherItem.objects.create(voucher=voucher, item=tent_item)
        context = VoucherContext(
            zone_id=menu_item.zone_id,
            item_id=menu_item.pk,
            total_amount=Decimal("240000"),
            application_type=APPLICATION_MENU,
        )
        with pytest.raises(VoucherScopeMismatch):
            validate_voucher('SUMMER10', context)

    def test_validation_does_not_count_usage(self, make_voucher, tent_item):
        voucher = make_voucher(max_uses=10)
        validate_voucher('SUMMER10', tent_context(tent_item))
        voucher.refresh_from_db()
        assert voucher.current_uses == 0


@pytest.mark.django_db
class TestIncrementVoucherUsage:
    def test_increments_by_one(self, make_voucher):
        voucher = make_voucher(current_uses=4)
        increment_voucher_usage(voucher.pk)
        voucher.refresh_from_db()
        assert voucher.current_uses == 5

    def test_unknown_voucher_is_noop(self, make_voucher):
        increment_voucher_usage(999999)
        assert not Voucher.objects.filter(current_uses__gt=0).exists()
