"""Tests for live totals, balance due and deposit selectors."""
import pytest
from decimal import Decimal

from django_booking_totals.engine import recalculate_booking_totals
from django_booking_totals.exceptions import EntityNotFound
from django_booking_totals.models import Booking, BookingAdditionalCost, BookingPayment
from django_booking_totals.selectors import (
    deposit_ratio,
    get_additional_costs_total,
    get_balance_due,
    get_booking_financials,
    get_deposit_due,
    get_edit_history,
    get_live_totals,
    get_total_paid,
)


def pay(booking, amount, status=BookingPayment.Status.SUCCESSFUL):
    return BookingPayment.objects.create(booking=booking, amount=Decimal(amount), status=status)


@pytest.mark.django_db
class TestLiveTotals:
    """Test suite for get_live_totals()."""

    def test_computed_from_child_rows(self, scenario_a):
        booking, _tent = scenario_a
        totals = get_live_totals(booking.pk)
        assert totals.total == Decimal("2530000")

    def test_ignores_stale_stored_columns(self, scenario_a):
        booking, _tent = scenario_a
        Booking.objects.filter(pk=booking.pk).update(total_amount=Decimal("1"))
        assert get_live_totals(booking.pk).total == Decimal("2530000")

    def test_does_not_write(self, scenario_a):
        booking, _tent = scenario_a
        get_live_totals(booking.pk)
        booking.refresh_from_db()
        assert booking.version == 0

    def test_unknown_booking(self, db):
        with pytest.raises(EntityNotFound):
            get_live_totals('00000000-0000-0000-0000-000000000000')


@pytest.mark.django_db
class TestTotalPaid:
    def test_only_received_statuses_count(self, booking):
        pay(booking, "1000000")
        pay(booking, "200000", BookingPayment.Status.COMPLETED)
        pay(booking, "300000", BookingPayment.Status.PAID)
        pay(booking, "400000", BookingPayment.Status.PENDING)
        pay(booking, "500000", BookingPayment.Status.FAILED)
        assert get_total_paid(booking.pk) == Decimal("1500000")

    def test_no_payments(self, booking):
        assert get_total_paid(booking.pk) == Decimal("0")

    def test_paid_statuses_setting(self, booking, settings):
        settings.BOOKING_TOTALS_PAID_STATUSES = ('paid',)
        pay(booking, "1000000")
        pay(booking, "300000", BookingPayment.Status.PAID)
        assert get_total_paid(booking.pk) == Decimal("300000")


@pytest.mark.django_db
class TestBalanceDue:
    """Test suite for get_balance_due()."""

    def test_total_minus_successful_payment(self, scenario_a):
        booking, _tent = scenario_a
        pay(booking, "1000000")
        assert get_balance_due(booking.pk) == Decimal("1530000")

    def test_never_negative(self, scenario_a):
        booking, _tent = scenario_a
        pay(booking, "3000000")
        assert get_balance_due(booking.pk) == Decimal("0")

    def test_additional_costs_increase_balance(self, scenario_a):
        booking, _tent = scenario_a
        pay(booking, "1000000")
        BookingAdditionalCost.objects.create(
            booking=booking,
            name="Late checkout",
            quantity=1,
            unit_price=Decimal("200000"),
            total_price=Decimal("200000"),
            tax_rate=Decimal("10"),
            tax_amount=Decimal("20000"),
        )
        assert get_additional_costs_total(booking.pk) == Decimal("220000")
        assert get_balance_due(booking.pk) == Decimal("1750000")

    def test_uses_live_total(self, scenario_a):
        booking, _tent = scenario_a
        Booking.objects.filter(pk=booking.pk).update(total_amount=Decimal("99"))
        assert get_balance_due(booking.pk) == Decimal("2530000")


@pytest.mark.django_db
class TestDepositDue:
    """Deposit is the stored deposit ratio applied to the live total."""

    def test_ratio_from_stored_pair(self, scenario_a, make_addon_row):
        booking, _tent = scenario_a
        recalculate_booking_totals(booking.pk)
        # 30% deposit taken at checkout
        Booking.objects.filter(pk=booking.pk).update(deposit_due=Decimal("759000"))
        booking.refresh_from_db()
        assert deposit_ratio(booking) == Decimal("0.3")

        make_addon_row(quantity=1, unit_price=Decimal("100000"))
        # live total 2,640,000
        assert get_deposit_due(booking.pk) == Decimal("792000")

    def test_full_amount_without_stored_deposit(self, scenario_a):
        booking, _tent = scenario_a
        assert deposit_ratio(booking) == Decimal("1")
        assert get_deposit_due(booking.pk) == Decimal("2530000")


@pytest.mark.django_db
class TestBookingFinancials:
    def test_snapshot(self, scenario_a):
        booking, _tent = scenario_a
        pay(booking, "1000000")
        financials = get_booking_financials(booking.pk)

        assert financials.totals.total == Decimal("2530000")
        assert financials.total_paid == Decimal("1000000")
        assert financials.additional_costs == Decimal("0")
        assert financials.balance_due == Decimal("1530000")
        assert financials.deposit_due == Decimal("2530000")
        assert financials.stored_in_sync is False

    def test_in_sync_after_recalculation(self, scenario_a):
        booking, _tent = scenario_a
        recalculate_booking_totals(booking.pk)
        assert get_booking_financials(booking.pk).stored_in_sync is True


@pytest.mark.django_db
class TestEditHistory:
    def test_empty(self, booking):
        assert list(get_edit_history(booking.pk)) == []
