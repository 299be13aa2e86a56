"""Booking total recalculation engine.

compute_booking_totals() is the single implementation of the booking total
arithmetic. recalculate_booking_totals() persists its result; the selectors
call it without writing.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Optional

from django.core.exceptions import ObjectDoesNotExist
from django.db import DEFAULT_DB_ALIAS, DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from .aggregators import DEFAULT_AGGREGATORS
from .conf import get_setting, get_tax_composition, get_tax_rate_provider
from .exceptions import (
    EntityNotFound,
    InvariantViolation,
    MalformedLineItem,
    RecalculationFailed,
    StaleBooking,
    TransactionRequired,
)
from .models import Booking
from .money import ZERO, Money, round_amount
from .tax import ADDON, MENU, TENT, compute_tax


logger = logging.getLogger(__name__)


# Errors an aggregator or tax provider may raise while reading line items
AGGREGATION_ERRORS = (
    MalformedLineItem,
    DatabaseError,
    ObjectDoesNotExist,
    InvalidOperation,
    TypeError,
    ValueError,
)


class BookingTotals(NamedTuple):
    """Derived totals of one booking.

    total == subtotal + tax - discount always holds.
    """

    booking_id: object
    currency: str
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    accommodation_subtotal: Decimal = ZERO
    addon_subtotal: Decimal = ZERO
    menu_subtotal: Decimal = ZERO
    tax_method: str = ''
    version: Optional[int] = None

    @property
    def taxable_base(self) -> Decimal:
        return self.subtotal - self.discount

    def as_money(self) -> dict:
        return {
            'subtotal': Money(self.subtotal, self.currency),
            'discount': Money(self.discount, self.currency),
            'tax': Money(self.tax, self.currency),
            'total': Money(self.total, self.currency),
        }

    def matches(self, booking) -> bool:
        """True when the booking's stored columns equal these totals."""
        return (
            booking.subtotal_amount == self.subtotal
            and booking.discount_amount == self.discount
            and booking.tax_amount == self.tax
            and booking.total_amount == self.total
        )


def check_totals(totals: BookingTotals) -> None:
    """Raise InvariantViolation if totals break the total identity."""
    if min(totals.subtotal, totals.discount, totals.tax, totals.total) < 0:
        raise InvariantViolation(
            f"Negative amount in totals for booking {totals.booking_id}: {totals}"
        )
    if totals.discount > totals.subtotal:
        raise InvariantViolation(
            f"Discount {totals.discount} exceeds subtotal {totals.subtotal} "
            f"for booking {totals.booking_id}"
        )
    if totals.total != totals.subtotal + totals.tax - totals.discount:
        raise InvariantViolation(
            f"Total mismatch for booking {totals.booking_id}: "
            f"{totals.total} != {totals.subtotal} + {totals.tax} - {totals.discount}"
        )


def compute_booking_totals(booking, *, tax_rates=None, aggregators=DEFAULT_AGGREGATORS,
                           using=DEFAULT_DB_ALIAS) -> BookingTotals:
    """Compute a booking's totals from its current child rows. Never writes.

    Args:
        booking: Booking instance
        tax_rates: TaxRateProvider (defaults to BOOKING_TOTALS_TAX_RATE_PROVIDER)
        aggregators: Aggregators to run, in order tent/add-on/menu
        using: Database alias

    Raises:
        RecalculationFailed: If a line item cannot be read or interpreted
        InvariantViolation: If the computed totals are inconsistent
    """
    provider = tax_rates if tax_rates is not None else get_tax_rate_provider()
    composition = get_tax_composition()
    currency = booking.currency or get_setting('DEFAULT_CURRENCY')

    try:
        results = [
            aggregator.compute_for_booking(booking.pk, using=using) for aggregator in aggregators
        ]
        lines = [line for result in results for line in result.lines]
        breakdown = compute_tax(lines, booking, provider, composition, currency)
    except AGGREGATION_ERRORS as e:
        logger.error(f"Aggregation failed for booking {booking.pk}: {e}")
        raise RecalculationFailed(booking.pk, str(e)) from e

    by_kind = {}
    for aggregator, result in zip(aggregators, results):
        by_kind[aggregator.kind] = by_kind.get(aggregator.kind, ZERO) + round_amount(
            result.subtotal, currency
        )
    raw_subtotal = sum(by_kind.values(), ZERO)
    discounts = round_amount(sum((result.discount_amount for result in results), ZERO), currency)
    discount = min(discounts, raw_subtotal)
    taxable_base = max(ZERO, raw_subtotal - discount)

    totals = BookingTotals(
        booking_id=booking.pk,
        currency=currency,
        subtotal=raw_subtotal,
        discount=discount,
        tax=breakdown.amount,
        total=taxable_base + breakdown.amount,
        accommodation_subtotal=by_kind.get(TENT, ZERO),
        addon_subtotal=by_kind.get(ADDON, ZERO),
        menu_subtotal=by_kind.get(MENU, ZERO),
        tax_method=breakdown.method,
        version=booking.version,
    )
    check_totals(totals)
    return totals


def recalculate_booking_totals(booking_id, *, tax_rates=None, expected_version: Optional[int] = None,
                               using=DEFAULT_DB_ALIAS) -> BookingTotals:
    """Recompute and persist a booking's four cached total columns.

    Must be called inside transaction.atomic(); it never opens its own
    transaction, so any failure rolls back the caller's mutation with it.
    Idempotent: with unchanged child rows a second call writes the same
    values. Voucher usage is never touched here. deposit_due is left as is.

    Args:
        booking_id: Booking primary key
        tax_rates: TaxRateProvider override
        expected_version: If given, the write is a compare-and-swap on
            Booking.version and StaleBooking is raised on mismatch
        using: Database alias

    Returns:
        The BookingTotals that were written (version is the new version).

    Raises:
        TransactionRequired, EntityNotFound, StaleBooking,
        RecalculationFailed, InvariantViolation
    """
    if not transaction.get_connection(using).in_atomic_block:
        raise TransactionRequired('recalculate_booking_totals')

    try:
        booking = Booking.objects.using(using).select_for_update().get(pk=booking_id)
    except Booking.DoesNotExist:
        raise EntityNotFound('Booking', booking_id)

    if expected_version is not None and booking.version != expected_version:
        raise StaleBooking(booking_id, expected_version, booking.version)

    totals = compute_booking_totals(booking, tax_rates=tax_rates, using=using)

    queryset = Booking.objects.using(using).filter(pk=booking_id)
    if expected_version is not None:
        queryset = queryset.filter(version=expected_version)
    updated = queryset.update(
        subtotal_amount=totals.subtotal,
        discount_amount=totals.discount,
        tax_amount=totals.tax,
        total_amount=totals.total,
        version=F('version') + 1,
        updated_at=timezone.now(),
    )
    if not updated:
        actual = (
            Booking.objects.using(using).filter(pk=booking_id)
            .values_list('version', flat=True).first()
        )
        raise StaleBooking(booking_id, expected_version, actual)

    logger.debug(
        f"Recalculated booking {booking_id}: subtotal={totals.subtotal} "
        f"discount={totals.discount} tax={totals.tax} ({totals.tax_method}) total={totals.total}"
    )
    return totals._replace(version=booking.version + 1)
