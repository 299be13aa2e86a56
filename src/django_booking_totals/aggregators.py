"""Line-item aggregators.

Each aggregator sums one child table of a booking into an AggregateResult.
They are shared by the recalculation engine (write path) and the live-total
selectors (read path); there is no second implementation of this arithmetic.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import NamedTuple

from django.db import DEFAULT_DB_ALIAS

from .exceptions import MalformedLineItem
from .models import BookingItem, BookingMenuProduct, BookingTent
from .money import ZERO, to_decimal
from .pricing import ADDON, BEFORE_TAX, AddonLine
from .tax import ADDON as ADDON_LINE
from .tax import MENU, TENT, TaxableLine


class AggregateResult(NamedTuple):
    subtotal: Decimal
    discount_amount: Decimal
    lines: tuple = ()


def _result(lines) -> AggregateResult:
    lines = tuple(lines)
    return AggregateResult(
        subtotal=sum((line.amount for line in lines), ZERO),
        discount_amount=sum((line.discount for line in lines), ZERO),
        lines=lines,
    )


def compute_tent_subtotal(booking_tent_id, using=DEFAULT_DB_ALIAS) -> Decimal:
    """Sum a tent's parameter pricing rows (pre-discount, no override)."""
    total = ZERO
    for row in BookingItem.objects.using(using).filter(booking_tent_id=booking_tent_id):
        line = row.as_line()
        if isinstance(line, AddonLine):
            continue
        total += line.amount(row.quantity, row.unit_price)
    return total


class TentAggregator:
    """Accommodation: subtotal_override ?? subtotal per tent.

    tent.subtotal is trusted as persisted; it is rewritten by the tent
    editor whenever the parameter set changes.
    """

    kind = TENT

    def compute_for_booking(self, booking_id, using=DEFAULT_DB_ALIAS) -> AggregateResult:
        lines = []
        tents = BookingTent.objects.using(using).filter(booking_id=booking_id).order_by(
            'created_at', 'pk'
        )
        for tent in tents:
            amount = to_decimal(tent.effective_subtotal)
            if amount < 0:
                raise MalformedLineItem(tent.pk, "negative tent subtotal")
            discount = to_decimal(tent.discount_amount) if tent.has_voucher else ZERO
            lines.append(TaxableLine(
                kind=self.kind,
                source_id=tent.pk,
                item_id=tent.item_id,
                amount=amount,
                discount=min(discount, amount),
                application_method=tent.discount_application_method or BEFORE_TAX,
            ))
        return _result(lines)


class AddonAggregator:
    """Common items: priceOverride ?? line_amount(...) per add-on row.

    The generated total_price column is never read here. Rows are grouped
    per (item, tent) so each add-on group yields one taxable line.
    """

    kind = ADDON_LINE

    def compute_for_booking(self, booking_id, using=DEFAULT_DB_ALIAS) -> AggregateResult:
        groups = OrderedDict()
        rows = BookingItem.objects.using(using).filter(
            booking_id=booking_id, metadata__type=ADDON
        ).order_by('created_at', 'pk')
        for row in rows:
            line = row.as_line()
            key = (row.item_id, row.booking_tent_id)
            group = groups.setdefault(key, {
                'source_id': row.pk,
                'amount': ZERO,
                'discount': ZERO,
                'method': BEFORE_TAX,
            })
            group['amount'] += line.amount(row.quantity, row.unit_price)
            if line.voucher:
                group['discount'] += line.discount
                group['method'] = line.voucher.application_method

        return _result(
            TaxableLine(
                kind=self.kind,
                source_id=group['source_id'],
                item_id=item_id,
                amount=group['amount'],
                discount=min(group['discount'], group['amount']),
                application_method=group['method'],
            )
            for (item_id, _tent_id), group in groups.items()
        )


class MenuAggregator:
    """Menu products: stored total_price, minus snapshot discount."""

    kind = MENU

    def compute_for_booking(self, booking_id, using=DEFAULT_DB_ALIAS) -> AggregateResult:
        lines = []
        products = BookingMenuProduct.objects.using(using).filter(booking_id=booking_id).order_by(
            'created_at', 'pk'
        )
        for product in products:
            amount = to_decimal(product.total_price)
            discount = to_decimal(product.discount_amount) if product.has_voucher else ZERO
            lines.append(TaxableLine(
                kind=self.kind,
                source_id=product.pk,
                item_id=product.menu_item_id,
                amount=amount,
                discount=min(discount, amount),
                application_method=product.discount_application_method or BEFORE_TAX,
            ))
        return _result(lines)


DEFAULT_AGGREGATORS = (TentAggregator(), AddonAggregator(), MenuAggregator())
