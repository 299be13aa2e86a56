"""Voucher validation and usage accounting.

validate_voucher() is side-effect free apart from the row lock it takes on the
voucher. Usage is incremented separately, exactly once, when a mutation
attaches a code that was not already on the line (see voucher_code_changed).
"""

import logging
from datetime import date
from decimal import Decimal
from typing import NamedTuple, Optional

from django.db.models import F
from django.utils import timezone

from .exceptions import (
    VoucherExpired,
    VoucherInactive,
    VoucherNotFound,
    VoucherNotYetActive,
    VoucherScopeMismatch,
    VoucherUsageExceeded,
)
from .money import ZERO, round_amount, to_decimal
from .models import Voucher, VoucherItem


logger = logging.getLogger(__name__)


# Caller-side application types and the voucher application_type they map to
APPLICATION_ALL = 'all'
APPLICATION_ACCOMMODATION = 'accommodation'
APPLICATION_MENU = 'menu_only'

APPLICATION_TYPE_MAP = {
    APPLICATION_ACCOMMODATION: Voucher.ApplicationType.TENT,
    APPLICATION_MENU: Voucher.ApplicationType.MENU,
}


class VoucherContext(NamedTuple):
    """What the code is being applied to."""

    zone_id: Optional[int] = None
    item_id: Optional[int] = None
    check_in: Optional[date] = None
    total_amount: Decimal = ZERO
    application_type: str = APPLICATION_ALL
    currency: str = 'VND'


class VoucherValidation(NamedTuple):
    """Successful validation result, ready to be snapshotted onto a line."""

    voucher_id: int
    code: str
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal
    application_method: str


def normalize_code(code) -> str:
    return (code or '').strip()


def voucher_code_changed(old_code, new_code) -> bool:
    """True when the caller must validate (and later count) a new code.

    Comparison is case-insensitive; blank and None both mean "no voucher".
    """
    new_code = normalize_code(new_code)
    if not new_code:
        return False
    return normalize_code(old_code).upper() != new_code.upper()


def _js_weekday(day: date) -> int:
    """Weekday with Sunday=0, the convention stored in weekly_days."""
    return (day.weekday() + 1) % 7


def calculate_discount(discount_type: str, value, total_amount, currency: str = 'VND') -> Decimal:
    """Discount for a voucher against total_amount, capped at the total."""
    value = to_decimal(value)
    total_amount = to_decimal(total_amount)
    if discount_type == Voucher.DiscountType.PERCENTAGE:
        amount = total_amount * value / Decimal('100')
    elif discount_type == Voucher.DiscountType.FIXED:
        amount = value
    else:
        amount = ZERO
    return round_amount(max(ZERO, min(amount, total_amount)), currency)


def _reject(exc_class, message: str, code: str):
    logger.warning(f"Voucher {code!r} rejected: {message}")
    raise exc_class(message, code=code)


def validate_voucher(code, context: VoucherContext) -> VoucherValidation:
    """Validate a voucher code against a context.

    Must be called inside transaction.atomic(): the voucher row is locked
    with select_for_update() so concurrent applies serialize on it.

    Args:
        code: Voucher code (case-insensitive)
        context: VoucherContext describing the target line

    Returns:
        VoucherValidation

    Raises:
        VoucherNotFound, VoucherInactive, VoucherUsageExceeded,
        VoucherExpired / VoucherNotYetActive, VoucherScopeMismatch
    """
    code = normalize_code(code)
    total_amount = to_decimal(context.total_amount)
    if not code or total_amount <= 0:
        _reject(VoucherNotFound, "Missing required fields: code and total amount", code)

    voucher = (
        Voucher.objects.select_for_update()
        .filter(code__iexact=code, code__isnull=False)
        .first()
    )
    if voucher is None:
        _reject(VoucherNotFound, "Voucher code is not valid", code)

    if voucher.status != Voucher.Status.ACTIVE:
        _reject(VoucherInactive, "Voucher has been suspended", code)

    if voucher.max_uses is not None and voucher.current_uses >= voucher.max_uses:
        _reject(VoucherUsageExceeded, "Voucher has no uses left", code)

    today = timezone.localdate()
    if voucher.recurrence == Voucher.Recurrence.DATE_RANGE:
        if voucher.start_date and voucher.start_date > today:
            _reject(VoucherNotYetActive, "Voucher is not active yet", code)
        if voucher.end_date and voucher.end_date < today:
            _reject(VoucherExpired, "Voucher has expired", code)
    elif voucher.recurrence == Voucher.Recurrence.ONE_TIME:
        if voucher.current_uses > 0:
            _reject(VoucherUsageExceeded, "Voucher has already been used", code)

    if voucher.weekly_days and context.check_in:
        if _js_weekday(context.check_in) not in voucher.weekly_days:
            _reject(VoucherScopeMismatch, "Voucher does not apply to this check-in day", code)

    if voucher.zone_id and context.zone_id and voucher.zone_id != context.zone_id:
        _reject(VoucherScopeMismatch, "Voucher does not apply to this zone", code)

    if context.application_type != APPLICATION_ALL:
        wanted = APPLICATION_TYPE_MAP.get(context.application_type, context.application_type)
        if voucher.application_type not in (Voucher.ApplicationType.ALL, wanted):
            if context.application_type == APPLICATION_MENU:
                message = "Voucher does not apply to menu items"
            elif context.application_type == APPLICATION_ACCOMMODATION:
                message = "Voucher does not apply to accommodation"
            else:
                message = "Voucher does not apply to this type"
            _reject(VoucherScopeMismatch, message, code)

    if context.item_id:
        scope = VoucherItem.objects.filter(voucher=voucher)
        if scope.exists():
            if context.application_type == APPLICATION_MENU:
                in_scope = scope.filter(menu_item_id=context.item_id).exists()
                message = "Voucher does not apply to this menu item"
            else:
                in_scope = scope.filter(item_id=context.item_id).exists()
                message = "Voucher does not apply to this tent type"
            if not in_scope:
                _reject(VoucherScopeMismatch, message, code)

    discount_amount = calculate_discount(
        voucher.discount_type, voucher.amount, total_amount, context.currency
    )
    logger.debug(f"Voucher {voucher.code} valid: {discount_amount} off {total_amount}")
    return VoucherValidation(
        voucher_id=voucher.pk,
        code=voucher.code,
        discount_type=voucher.discount_type,
        discount_value=voucher.amount,
        discount_amount=discount_amount,
        application_method=voucher.application_method,
    )


def increment_voucher_usage(voucher_id) -> None:
    """Count one use of a voucher with an atomic in-database increment."""
    updated = Voucher.objects.filter(pk=voucher_id).update(
        current_uses=F('current_uses') + 1,
        updated_at=timezone.now(),
    )
    if updated:
        logger.info(f"Voucher {voucher_id} usage incremented")
