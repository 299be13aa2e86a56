"""Tax rate providers and tax composition.

The core does not own tax-rate storage. A TaxRateProvider answers "which
percentage applies to this booking / this line"; compute_tax() turns the
taxable lines into a tax amount according to the composition policy:

    aggregate  round(base * booking_rate / 100), base = subtotal - before-tax discounts
    per_line   sum(round(max(0, amount - before-tax discount) * line_rate / 100))
    auto       aggregate when every line shares one rate and one discount
               application method, per_line otherwise

Rates are percentages (10 means 10%).
"""

from decimal import Decimal
from typing import NamedTuple, Optional

from django.db import DEFAULT_DB_ALIAS

from .money import ZERO, round_amount, to_decimal
from .pricing import AFTER_TAX, BEFORE_TAX


TENT = 'tent'
ADDON = 'addon'
MENU = 'menu'

AGGREGATE = 'aggregate'
PER_LINE = 'per_line'
AUTO = 'auto'


class TaxableLine(NamedTuple):
    """One tax-bearing contribution produced by an aggregator."""

    kind: str
    source_id: object
    item_id: Optional[int]
    amount: Decimal
    discount: Decimal = ZERO
    application_method: str = BEFORE_TAX

    @property
    def before_tax_discount(self) -> Decimal:
        if self.application_method == AFTER_TAX:
            return ZERO
        return self.discount


class LineTax(NamedTuple):
    line: TaxableLine
    rate: Decimal
    base: Decimal
    tax: Decimal


class TaxBreakdown(NamedTuple):
    """Result of compute_tax()."""

    amount: Decimal
    method: str
    lines: tuple = ()


class TaxRateProvider:
    """Base provider. Subclasses override booking_rate and optionally line_rate."""

    def booking_rate(self, booking) -> Decimal:
        raise NotImplementedError

    def line_rate(self, booking, line: TaxableLine) -> Decimal:
        return self.booking_rate(booking)


class BookingTaxRateProvider(TaxRateProvider):
    """Booking's own VAT rate, charged only when a tax invoice is required."""

    def booking_rate(self, booking) -> Decimal:
        if not booking.tax_invoice_required:
            return ZERO
        return to_decimal(booking.tax_rate)


class ItemTaxRateProvider(BookingTaxRateProvider):
    """Per-item rates: Item.tax_rate for tents/add-ons, MenuItem.tax_rate for menu lines.

    Items without a rate fall back to the booking rate. Rates are read from
    the database the booking was loaded from.
    """

    def __init__(self):
        self._rates = {}

    def _rate_for(self, booking, line: TaxableLine):
        from .models import Item, MenuItem

        if line.item_id is None:
            return None
        using = booking._state.db or DEFAULT_DB_ALIAS
        model = MenuItem if line.kind == MENU else Item
        key = (using, model, line.item_id)
        if key not in self._rates:
            self._rates[key] = (
                model.objects.using(using)
                .filter(pk=line.item_id)
                .values_list('tax_rate', flat=True)
                .first()
            )
        return self._rates[key]

    def line_rate(self, booking, line: TaxableLine) -> Decimal:
        if not booking.tax_invoice_required:
            return ZERO
        rate = self._rate_for(booking, line)
        if rate is None:
            return self.booking_rate(booking)
        return to_decimal(rate)


class FixedTaxRateProvider(TaxRateProvider):
    """Constant rate, with optional overrides keyed by (kind, item_id).

    Used by callers that resolve rates themselves (and by tests).
    """

    def __init__(self, rate, line_rates=None):
        self.rate = to_decimal(rate)
        self.line_rates = {key: to_decimal(value) for key, value in (line_rates or {}).items()}

    def booking_rate(self, booking) -> Decimal:
        return self.rate

    def line_rate(self, booking, line: TaxableLine) -> Decimal:
        return self.line_rates.get((line.kind, line.item_id), self.rate)


def _tax(base: Decimal, rate: Decimal, currency: str) -> Decimal:
    return round_amount(base * rate / Decimal('100'), currency)


def resolve_composition(composition: str, rates, lines) -> str:
    """Pick aggregate or per_line for the given lines."""
    if composition != AUTO:
        return composition
    methods = {line.application_method for line in lines if line.discount > 0}
    if len(set(rates)) <= 1 and len(methods) <= 1:
        return AGGREGATE
    return PER_LINE


def compute_tax(lines, booking, provider: TaxRateProvider, composition: str = AUTO,
                currency: str = 'VND') -> TaxBreakdown:
    """Compute tax for a booking's taxable lines."""
    lines = list(lines)
    rates = [provider.line_rate(booking, line) for line in lines]
    method = resolve_composition(composition, rates, lines)

    if method == PER_LINE:
        details = []
        for line, rate in zip(lines, rates):
            base = max(ZERO, line.amount - line.before_tax_discount)
            details.append(LineTax(line, rate, base, _tax(base, rate, currency)))
        total = sum((detail.tax for detail in details), ZERO)
        return TaxBreakdown(amount=total, method=PER_LINE, lines=tuple(details))

    if lines and len(set(rates)) == 1:
        rate = rates[0]
    else:
        rate = provider.booking_rate(booking)
    subtotal = sum((line.amount for line in lines), ZERO)
    before_tax = min(sum((line.before_tax_discount for line in lines), ZERO), subtotal)
    base = max(ZERO, subtotal - before_tax)
    return TaxBreakdown(amount=_tax(base, rate, currency), method=AGGREGATE)
