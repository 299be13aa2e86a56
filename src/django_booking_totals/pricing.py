"""Pricing primitives and typed line-item variants.

BookingItem.metadata is a JSON blob in storage. Everything in Python reads it
through parse_line(), which returns either a TentParameterLine or an AddonLine.
Nothing here rounds; rounding happens once in the engine.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from .exceptions import MalformedLineItem
from .money import ZERO, to_decimal


PER_PERSON = 'per_person'
PER_GROUP = 'per_group'
PRICING_MODES = (PER_PERSON, PER_GROUP)

ADDON = 'addon'

# Voucher application methods
PER_ITEM = 'per_item'
BEFORE_TAX = 'per_booking_before_tax'
AFTER_TAX = 'per_booking_after_tax'
APPLICATION_METHODS = (PER_ITEM, BEFORE_TAX, AFTER_TAX)


def line_amount(quantity, unit_price, pricing_mode: Optional[str] = PER_PERSON) -> Decimal:
    """Contribution of one priced row.

    per_group is a fixed package price: quantity is informational only.
    Any other mode (including a missing one) multiplies.
    """
    unit_price = to_decimal(unit_price)
    if pricing_mode == PER_GROUP:
        return unit_price
    return to_decimal(quantity) * unit_price


def _parse_date(value, line_id, key: str) -> Optional[date]:
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise MalformedLineItem(line_id, f"invalid {key} {value!r}") from e


def _parse_amount(value, line_id, key: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise MalformedLineItem(line_id, f"invalid {key} {value!r}") from e
    if not amount.is_finite() or amount < 0:
        raise MalformedLineItem(line_id, f"invalid {key} {value!r}")
    return amount


@dataclass(frozen=True)
class DateRange:
    start: Optional[date] = None
    end: Optional[date] = None

    def to_metadata(self) -> dict:
        return {
            'from': self.start.isoformat() if self.start else None,
            'to': self.end.isoformat() if self.end else None,
        }


@dataclass(frozen=True)
class VoucherSnapshot:
    """Voucher frozen onto a line at apply time."""

    code: str
    voucher_id: Optional[int]
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal
    application_method: str = BEFORE_TAX

    @classmethod
    def from_validation(cls, validation) -> 'VoucherSnapshot':
        return cls(
            code=validation.code,
            voucher_id=validation.voucher_id,
            discount_type=validation.discount_type,
            discount_value=validation.discount_value,
            discount_amount=validation.discount_amount,
            application_method=validation.application_method,
        )

    @classmethod
    def from_metadata(cls, data, line_id=None) -> Optional['VoucherSnapshot']:
        if not data:
            return None
        if not isinstance(data, dict):
            raise MalformedLineItem(line_id, "voucher snapshot must be an object")
        if not data.get('code'):
            return None
        method = data.get('applicationMethod') or BEFORE_TAX
        if method not in APPLICATION_METHODS:
            raise MalformedLineItem(line_id, f"unknown voucher application method {method!r}")
        return cls(
            code=data['code'],
            voucher_id=data.get('id'),
            discount_type=data.get('discountType') or '',
            discount_value=_parse_amount(data.get('discountValue'), line_id, 'discountValue'),
            discount_amount=_parse_amount(data.get('discountAmount'), line_id, 'discountAmount'),
            application_method=method,
        )

    def to_metadata(self) -> dict:
        return {
            'code': self.code,
            'id': self.voucher_id,
            'discountAmount': str(self.discount_amount),
            'discountType': self.discount_type,
            'discountValue': str(self.discount_value),
            'applicationMethod': self.application_method,
        }


@dataclass(frozen=True)
class TentParameterLine:
    """A tent's parameter pricing row."""

    pricing_mode: str = PER_PERSON
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None

    def amount(self, quantity, unit_price) -> Decimal:
        return line_amount(quantity, unit_price, self.pricing_mode)

    def to_metadata(self) -> dict:
        return {
            'checkInDate': self.check_in_date.isoformat() if self.check_in_date else None,
            'checkOutDate': self.check_out_date.isoformat() if self.check_out_date else None,
            'pricingMode': self.pricing_mode,
        }


@dataclass(frozen=True)
class AddonLine:
    """A common-item row, attached to a tent or shared across the booking."""

    pricing_mode: str = PER_PERSON
    dates: Optional[DateRange] = None
    selected_date: Optional[date] = None
    voucher: Optional[VoucherSnapshot] = None
    price_override: Optional[Decimal] = None

    def amount(self, quantity, unit_price) -> Decimal:
        if self.price_override is not None:
            return self.price_override
        return line_amount(quantity, unit_price, self.pricing_mode)

    @property
    def discount(self) -> Decimal:
        return self.voucher.discount_amount if self.voucher else ZERO

    def to_metadata(self) -> dict:
        data = {
            'type': ADDON,
            'pricingMode': self.pricing_mode,
            'dates': self.dates.to_metadata() if self.dates else None,
            'voucher': self.voucher.to_metadata() if self.voucher else None,
        }
        if self.selected_date:
            data['selectedDate'] = self.selected_date.isoformat()
        if self.price_override is not None:
            data['priceOverride'] = str(self.price_override)
        return data


Line = Union[TentParameterLine, AddonLine]


def parse_line(metadata, line_id=None) -> Line:
    """Interpret a BookingItem.metadata blob.

    Raises MalformedLineItem for an unknown pricing mode, a non-object blob,
    or an override/date/voucher value that cannot be read.
    """
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise MalformedLineItem(line_id, "metadata must be an object")

    pricing_mode = metadata.get('pricingMode') or PER_PERSON
    if pricing_mode not in PRICING_MODES:
        raise MalformedLineItem(line_id, f"unknown pricing mode {pricing_mode!r}")

    if metadata.get('type') != ADDON:
        return TentParameterLine(
            pricing_mode=pricing_mode,
            check_in_date=_parse_date(metadata.get('checkInDate'), line_id, 'checkInDate'),
            check_out_date=_parse_date(metadata.get('checkOutDate'), line_id, 'checkOutDate'),
        )

    dates = None
    raw_dates = metadata.get('dates')
    if raw_dates:
        if not isinstance(raw_dates, dict):
            raise MalformedLineItem(line_id, "dates must be an object")
        dates = DateRange(
            start=_parse_date(raw_dates.get('from'), line_id, 'dates.from'),
            end=_parse_date(raw_dates.get('to'), line_id, 'dates.to'),
        )
    elif metadata.get('checkInDate') or metadata.get('checkOutDate'):
        dates = DateRange(
            start=_parse_date(metadata.get('checkInDate'), line_id, 'checkInDate'),
            end=_parse_date(metadata.get('checkOutDate'), line_id, 'checkOutDate'),
        )

    price_override = None
    if metadata.get('priceOverride') is not None:
        price_override = _parse_amount(metadata['priceOverride'], line_id, 'priceOverride')

    return AddonLine(
        pricing_mode=pricing_mode,
        dates=dates,
        selected_date=_parse_date(metadata.get('selectedDate'), line_id, 'selectedDate'),
        voucher=VoucherSnapshot.from_metadata(metadata.get('voucher'), line_id),
        price_override=price_override,
    )
