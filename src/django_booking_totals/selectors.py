"""Read-only booking total queries.

Live totals are computed from child rows on every call, so the booking
detail never serves stale cached columns. Nothing here locks or writes.
"""

from decimal import Decimal
from typing import NamedTuple

from django.db import DEFAULT_DB_ALIAS
from django.db.models import Sum

from .conf import get_paid_statuses
from .engine import BookingTotals, compute_booking_totals
from .exceptions import EntityNotFound
from .models import Booking, BookingAdditionalCost, BookingEditLog, BookingPayment
from .money import Money, round_amount, to_decimal


class BookingFinancials(NamedTuple):
    """Financial snapshot served to the booking detail."""

    totals: BookingTotals
    deposit_due: Decimal
    total_paid: Decimal
    additional_costs: Decimal
    balance_due: Decimal
    stored_in_sync: bool


def _get_booking(booking_id, using=DEFAULT_DB_ALIAS) -> Booking:
    try:
        return Booking.objects.using(using).get(pk=booking_id)
    except Booking.DoesNotExist:
        raise EntityNotFound('Booking', booking_id)


def get_live_totals(booking_id, *, tax_rates=None, using=DEFAULT_DB_ALIAS) -> BookingTotals:
    """Totals from current child rows, identical to what the engine would write."""
    booking = _get_booking(booking_id, using)
    return compute_booking_totals(booking, tax_rates=tax_rates, using=using)


def get_total_paid(booking_id, using=DEFAULT_DB_ALIAS) -> Decimal:
    """Sum of payments whose status counts as received."""
    result = BookingPayment.objects.using(using).filter(
        booking_id=booking_id,
        status__in=get_paid_statuses(),
    ).aggregate(total=Sum('amount'))
    return to_decimal(result['total'])


def get_additional_costs_total(booking_id, using=DEFAULT_DB_ALIAS) -> Decimal:
    """Sum of additional costs including their tax."""
    result = BookingAdditionalCost.objects.using(using).filter(booking_id=booking_id).aggregate(
        total=Sum('total_price'),
        tax=Sum('tax_amount'),
    )
    return to_decimal(result['total']) + to_decimal(result['tax'])


def deposit_ratio(booking) -> Decimal:
    """Fraction of the total due as deposit, from the last persisted pair.

    Defaults to 1 when either stored amount is zero.
    """
    stored_deposit = to_decimal(booking.deposit_due)
    stored_total = to_decimal(booking.total_amount)
    if stored_deposit <= 0 or stored_total <= 0:
        return Decimal('1')
    return stored_deposit / stored_total


def _balance(total, additional, paid, currency) -> Decimal:
    owed = Money(total + additional, currency) - Money(paid, currency)
    return owed.floored_at_zero().quantized().amount


def get_balance_due(booking_id, *, tax_rates=None, using=DEFAULT_DB_ALIAS) -> Decimal:
    """max(0, live total + additional costs - paid). Never negative."""
    totals = get_live_totals(booking_id, tax_rates=tax_rates, using=using)
    return _balance(
        totals.total,
        get_additional_costs_total(booking_id, using),
        get_total_paid(booking_id, using),
        totals.currency,
    )


def get_deposit_due(booking_id, *, tax_rates=None, using=DEFAULT_DB_ALIAS) -> Decimal:
    """Stored deposit ratio applied to the live total."""
    booking = _get_booking(booking_id, using)
    totals = compute_booking_totals(booking, tax_rates=tax_rates, using=using)
    return round_amount(totals.total * deposit_ratio(booking), booking.currency)


def get_booking_financials(booking_id, *, tax_rates=None, using=DEFAULT_DB_ALIAS) -> BookingFinancials:
    """Everything the booking detail needs, from a single live computation."""
    booking = _get_booking(booking_id, using)
    totals = compute_booking_totals(booking, tax_rates=tax_rates, using=using)
    paid = get_total_paid(booking_id, using)
    additional = get_additional_costs_total(booking_id, using)
    return BookingFinancials(
        totals=totals,
        deposit_due=round_amount(totals.total * deposit_ratio(booking), booking.currency),
        total_paid=paid,
        additional_costs=additional,
        balance_due=_balance(totals.total, additional, paid, booking.currency),
        stored_in_sync=totals.matches(booking),
    )


def get_edit_history(booking_id, using=DEFAULT_DB_ALIAS):
    """Audit rows for a booking, oldest first."""
    return BookingEditLog.objects.using(using).filter(booking_id=booking_id).select_related(
        'actor'
    ).order_by('created_at')
