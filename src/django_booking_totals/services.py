"""Booking line-item mutation services.

Every service follows the same sequence inside one transaction:

    lock booking -> mutate child rows -> recalculate totals -> write edit log

Any error (rejected voucher, malformed line, stale version, audit failure)
rolls the whole edit back, so stored totals never describe a state that was
not persisted, and no state change is persisted without its log entry.

Voucher usage is counted here, once, when a code is newly attached to a
line. Re-submitting the same code does not count it again.
"""

import logging
from dataclasses import replace
from decimal import Decimal
from typing import NamedTuple, Optional

from django.db import transaction

from .aggregators import compute_tent_subtotal
from .audit import (
    Actions,
    change,
    describe_additional_cost_add,
    describe_additional_cost_delete,
    describe_additional_cost_edit,
    describe_addon_add,
    describe_addon_delete,
    describe_addon_edit,
    describe_menu_product_add,
    describe_menu_product_delete,
    describe_menu_product_edit,
    describe_tax_invoice_toggle,
    describe_tent_add,
    describe_tent_delete,
    describe_tent_edit,
    describe_voucher_change,
    format_amount,
    log_booking_edit,
)
from .engine import recalculate_booking_totals
from .exceptions import EntityNotFound, StaleBooking
from .models import (
    Booking,
    BookingAdditionalCost,
    BookingItem,
    BookingMenuProduct,
    BookingParameter,
    BookingTent,
    Item,
    MenuItem,
    Parameter,
)
from .money import ZERO, round_amount, to_decimal
from .pricing import (
    ADDON,
    PER_PERSON,
    PRICING_MODES,
    AddonLine,
    DateRange,
    TentParameterLine,
    VoucherSnapshot,
    line_amount,
)
from .vouchers import (
    APPLICATION_ACCOMMODATION,
    APPLICATION_ALL,
    APPLICATION_MENU,
    VoucherContext,
    increment_voucher_usage,
    normalize_code,
    validate_voucher,
    voucher_code_changed,
)


logger = logging.getLogger(__name__)


class _Unset:
    """Marker for "argument not given" where None is a meaningful value."""

    def __repr__(self):
        return 'UNSET'

    def __bool__(self):
        return False


UNSET = _Unset()


class ParameterInput(NamedTuple):
    """One guest-category row submitted for a tent or an add-on."""

    parameter_id: int
    quantity: int
    unit_price: Decimal
    pricing_mode: str = PER_PERSON
    price_override: Optional[Decimal] = None


class AddonQuantity(NamedTuple):
    """Quantity (and optional override) change for one row of an add-on group."""

    parameter_id: int
    quantity: int
    price_override: object = UNSET


class EditResult(NamedTuple):
    """What a mutation service returns."""

    instance: object
    totals: object
    log_entry: object


# =============================================================================
# Helpers
# =============================================================================


def _lock_booking(booking_id, expected_version: Optional[int] = None) -> Booking:
    try:
        booking = Booking.objects.select_for_update().get(pk=booking_id)
    except Booking.DoesNotExist:
        raise EntityNotFound('Booking', booking_id)
    if expected_version is not None and booking.version != expected_version:
        raise StaleBooking(booking_id, expected_version, booking.version)
    return booking


def _get(model, entity: str, entity_id, **filters):
    try:
        return model.objects.get(pk=entity_id, **filters)
    except model.DoesNotExist:
        raise EntityNotFound(entity, entity_id)


def _get_tent(booking, booking_tent_id) -> Optional[BookingTent]:
    if booking_tent_id is None:
        return None
    return _get(BookingTent, 'BookingTent', booking_tent_id, booking=booking)


def _normalize_parameters(parameters) -> list:
    normalized = []
    for param in parameters:
        if not isinstance(param, ParameterInput):
            param = ParameterInput(**param)
        if param.pricing_mode not in PRICING_MODES:
            raise ValueError(f"Unknown pricing mode: {param.pricing_mode!r}")
        if param.quantity < 0:
            raise ValueError(f"Quantity must not be negative: {param.quantity}")
        unit_price = to_decimal(param.unit_price)
        if unit_price < 0:
            raise ValueError(f"Unit price must not be negative: {unit_price}")
        override = param.price_override
        if override is not None:
            override = to_decimal(override)
            if override < 0:
                raise ValueError(f"Price override must not be negative: {override}")
        normalized.append(param._replace(unit_price=unit_price, price_override=override))
    return normalized


def _parameters_by_id(parameters) -> dict:
    ids = {param.parameter_id for param in parameters}
    found = Parameter.objects.in_bulk(ids)
    for parameter_id in ids:
        if parameter_id not in found:
            raise EntityNotFound('Parameter', parameter_id)
    return found


def _parameters_subtotal(parameters) -> Decimal:
    return sum(
        (line_amount(param.quantity, param.unit_price, param.pricing_mode) for param in parameters),
        ZERO,
    )


def _replace_tent_parameters(booking, tent, parameters) -> None:
    """Delete the tent's parameter rows and insert the new set.

    Add-on rows attached to the tent are left alone.
    """
    stale = [row.pk for row in tent.items.all() if not row.is_addon]
    BookingItem.objects.filter(pk__in=stale).delete()
    BookingParameter.objects.filter(booking_tent=tent).delete()

    known = _parameters_by_id(parameters)
    for param in parameters:
        parameter = known[param.parameter_id]
        line = TentParameterLine(
            pricing_mode=param.pricing_mode,
            check_in_date=tent.check_in_date,
            check_out_date=tent.check_out_date,
        )
        BookingItem.objects.create(
            booking=booking,
            booking_tent=tent,
            item_id=tent.item_id,
            parameter=parameter,
            quantity=param.quantity,
            unit_price=param.unit_price,
            metadata=line.to_metadata(),
        )
        BookingParameter.objects.create(
            booking=booking,
            booking_tent=tent,
            parameter=parameter,
            label=parameter.name,
            booked_quantity=param.quantity,
            controls_inventory=parameter.controls_inventory,
        )


def _validate_code(code, booking, *, zone_id, item_id, check_in, total_amount, application_type):
    return validate_voucher(
        code,
        VoucherContext(
            zone_id=zone_id,
            item_id=item_id,
            check_in=check_in,
            total_amount=total_amount,
            application_type=application_type,
            currency=booking.currency,
        ),
    )


def _finish(booking, *, actor, action: str, description: str, metadata: dict, instance=None) -> EditResult:
    totals = recalculate_booking_totals(booking.pk)
    entry = log_booking_edit(
        booking.pk,
        actor=actor,
        action=action,
        description=description,
        metadata=metadata,
    )
    return EditResult(instance=instance, totals=totals, log_entry=entry)


def _set_tax_invoice_flag(booking, required: bool) -> None:
    booking.tax_invoice_required = required
    booking.save(update_fields=['tax_invoice_required', 'updated_at'])


# =============================================================================
# Tents
# =============================================================================


@transaction.atomic
def add_tent(
    booking_id,
    *,
    item_id,
    check_in_date,
    check_out_date,
    parameters=(),
    subtotal=None,
    special_requests: str = '',
    voucher_code=None,
    actor=None,
    expected_version: Optional[int] = None,
) -> EditResult:
    """Add an accommodation unit to a booking.

    The tent subtotal is the given subtotal, or the sum of its parameter
    rows. A voucher code is validated against that subtotal and counted once.

    Raises:
        EntityNotFound: Unknown booking, item or parameter
        VoucherError: Voucher rejected (nothing is written)
        ValueError: Invalid dates or parameter rows
    """
    booking = _lock_booking(booking_id, expected_version)
    item = _get(Item, 'Item', item_id)
    if check_out_date < check_in_date:
        raise ValueError("Check-out date must not be before check-in date")

    parameters = _normalize_parameters(parameters)
    computed = to_decimal(subtotal) if subtotal is not None else _parameters_subtotal(parameters)

    tent = BookingTent(
        booking=booking,
        item=item,
        check_in_date=check_in_date,
        check_out_date=check_out_date,
        subtotal=computed,
        special_requests=special_requests or '',
    )
    validation = None
    if normalize_code(voucher_code):
        validation = _validate_code(
            voucher_code,
            booking,
            zone_id=item.zone_id,
            item_id=item.pk,
            check_in=check_in_date,
            total_amount=computed,
            application_type=APPLICATION_ACCOMMODATION,
        )
        tent.apply_voucher(validation)
    tent.save()
    _replace_tent_parameters(booking, tent, parameters)

    if validation:
        increment_voucher_usage(validation.voucher_id)

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_ADD,
        description=describe_tent_add(item.name, check_in_date, check_out_date, computed),
        metadata={'booking_tent_id': str(tent.pk), 'item_id': item.pk},
        instance=tent,
    )
    logger.info(f"Added tent {tent.pk} ({item.name}) to booking {booking.pk}")
    return result


@transaction.atomic
def update_tent(
    booking_id,
    booking_tent_id,
    *,
    item_id=UNSET,
    check_in_date=UNSET,
    check_out_date=UNSET,
    special_requests=UNSET,
    parameters=UNSET,
    subtotal_override=UNSET,
    voucher_code=UNSET,
    tax_invoice_required=UNSET,
    actor=None,
    expected_version: Optional[int] = None,
) -> EditResult:
    """Edit a booked tent.

    parameters, when given, replace the tent's whole parameter set and
    recompute tent.subtotal. subtotal_override=None clears the override.
    voucher_code='' (or None) removes the voucher; an unchanged code is kept
    without revalidation and is not counted again.
    """
    booking = _lock_booking(booking_id, expected_version)
    tent = _get(BookingTent, 'BookingTent', booking_tent_id, booking=booking)

    old_name = tent.item.name
    old_check_in = tent.check_in_date
    old_check_out = tent.check_out_date
    old_effective = tent.effective_subtotal
    old_code = tent.voucher_code

    if item_id is not UNSET and item_id != tent.item_id:
        tent.item = _get(Item, 'Item', item_id)
    if check_in_date is not UNSET:
        tent.check_in_date = check_in_date
    if check_out_date is not UNSET:
        tent.check_out_date = check_out_date
    if tent.check_out_date < tent.check_in_date:
        raise ValueError("Check-out date must not be before check-in date")
    if special_requests is not UNSET:
        tent.special_requests = special_requests or ''

    if parameters is not UNSET:
        parameters = _normalize_parameters(parameters)
        tent.subtotal = _parameters_subtotal(parameters)
    if subtotal_override is not UNSET:
        tent.subtotal_override = None if subtotal_override is None else to_decimal(subtotal_override)
        if tent.subtotal_override is not None and tent.subtotal_override < 0:
            raise ValueError("Subtotal override must not be negative")

    validation = None
    if voucher_code is not UNSET:
        if not normalize_code(voucher_code):
            tent.clear_voucher()
        elif voucher_code_changed(old_code, voucher_code):
            validation = _validate_code(
                voucher_code,
                booking,
                zone_id=tent.item.zone_id,
                item_id=tent.item_id,
                check_in=tent.check_in_date,
                total_amount=tent.effective_subtotal,
                application_type=APPLICATION_ACCOMMODATION,
            )
            tent.apply_voucher(validation)

    tent.save()
    if parameters is not UNSET:
        _replace_tent_parameters(booking, tent, parameters)
    if tax_invoice_required is not UNSET:
        _set_tax_invoice_flag(booking, bool(tax_invoice_required))
    if validation:
        increment_voucher_usage(validation.voucher_id)

    changes = []
    if tent.item.name != old_name:
        changes.append(change('Item', old_name, tent.item.name))
    if tent.check_in_date != old_check_in:
        changes.append(change('Check-in', old_check_in, tent.check_in_date))
    if tent.check_out_date != old_check_out:
        changes.append(change('Check-out', old_check_out, tent.check_out_date))
    if subtotal_override is not UNSET and tent.subtotal_override is not None:
        changes.append(change(
            'Subtotal override',
            format_amount(old_effective),
            format_amount(tent.subtotal_override),
        ))
    if voucher_code is not UNSET and (tent.voucher_code or None) != (old_code or None):
        changes.append(describe_voucher_change(old_code, tent.voucher_code))

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_EDIT,
        description=describe_tent_edit(tent.item.name, changes),
        metadata={'booking_tent_id': str(tent.pk)},
        instance=tent,
    )
    logger.info(f"Updated tent {tent.pk} on booking {booking.pk}")
    return result


@transaction.atomic
def delete_tent(booking_id, booking_tent_id, *, actor=None,
                expected_version: Optional[int] = None) -> EditResult:
    """Remove a tent with its parameters, add-ons and menu products."""
    booking = _lock_booking(booking_id, expected_version)
    tent = _get(BookingTent, 'BookingTent', booking_tent_id, booking=booking)
    description = describe_tent_delete(
        tent.item.name, tent.check_in_date, tent.check_out_date, tent.subtotal
    )
    tent_pk = tent.pk
    tent.delete()

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_DELETE,
        description=description,
        metadata={'booking_tent_id': str(tent_pk)},
    )
    logger.info(f"Deleted tent {tent_pk} from booking {booking.pk}")
    return result


# =============================================================================
# Add-ons (common items)
# =============================================================================


def _addon_rows(booking, item_id, booking_tent_id):
    return list(
        BookingItem.objects.filter(
            booking=booking,
            item_id=item_id,
            booking_tent_id=booking_tent_id,
            metadata__type=ADDON,
        ).select_related('parameter').order_by('created_at', 'pk')
    )


def _addon_metadata(item_id, booking_tent_id) -> dict:
    return {'item_id': item_id, 'booking_tent_id': str(booking_tent_id) if booking_tent_id else None}


def _to_date_range(dates) -> Optional[DateRange]:
    if dates is None or isinstance(dates, DateRange):
        return dates
    start, end = dates
    return DateRange(start=start, end=end)


@transaction.atomic
def add_addon(
    booking_id,
    *,
    item_id,
    parameters,
    booking_tent_id=None,
    dates=None,
    selected_date=None,
    voucher_code=None,
    actor=None,
    expected_version: Optional[int] = None,
) -> EditResult:
    """Add a common item group (one row per parameter) to a tent or the whole booking.

    The voucher snapshot is stored on the group's first row only, so the
    discount is counted once per group.
    """
    booking = _lock_booking(booking_id, expected_version)
    item = _get(Item, 'Item', item_id)
    tent = _get_tent(booking, booking_tent_id)
    parameters = _normalize_parameters(parameters)
    if not parameters:
        raise ValueError("An add-on needs at least one parameter row")
    if _addon_rows(booking, item.pk, booking_tent_id):
        raise ValueError(f"Add-on {item.name} is already on this booking; update it instead")

    known = _parameters_by_id(parameters)
    dates = _to_date_range(dates)
    group_amount = sum(
        (
            param.price_override if param.price_override is not None
            else line_amount(param.quantity, param.unit_price, param.pricing_mode)
            for param in parameters
        ),
        ZERO,
    )

    snapshot = None
    if normalize_code(voucher_code):
        if dates and dates.start:
            check_in = dates.start
        elif tent:
            check_in = tent.check_in_date
        else:
            check_in = booking.check_in_date
        validation = _validate_code(
            voucher_code,
            booking,
            zone_id=item.zone_id,
            item_id=item.pk,
            check_in=check_in,
            total_amount=group_amount,
            application_type=APPLICATION_ALL,
        )
        snapshot = VoucherSnapshot.from_validation(validation)

    rows = []
    for index, param in enumerate(parameters):
        line = AddonLine(
            pricing_mode=param.pricing_mode,
            dates=dates,
            selected_date=selected_date,
            voucher=snapshot if index == 0 else None,
            price_override=param.price_override,
        )
        rows.append(BookingItem.objects.create(
            booking=booking,
            booking_tent=tent,
            item=item,
            parameter=known[param.parameter_id],
            quantity=param.quantity,
            unit_price=param.unit_price,
            metadata=line.to_metadata(),
        ))

    if snapshot:
        increment_voucher_usage(snapshot.voucher_id)

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_ADD,
        description=describe_addon_add(
            item.name,
            [(known[param.parameter_id].name, param.quantity) for param in parameters],
        ),
        metadata=_addon_metadata(item.pk, booking_tent_id),
        instance=rows,
    )
    logger.info(f"Added add-on {item.name} ({len(rows)} rows) to booking {booking.pk}")
    return result


@transaction.atomic
def update_addon(
    booking_id,
    item_id,
    *,
    booking_tent_id=None,
    quantities=(),
    dates=UNSET,
    voucher_code=UNSET,
    actor=None,
    expected_version: Optional[int] = None,
) -> EditResult:
    """Edit an add-on group: quantities, per-row price overrides, dates, voucher.

    quantities is a list of AddonQuantity (or dicts); rows whose parameter is
    not listed are left unchanged, and a parameter outside the group raises
    EntityNotFound. A price_override of None clears the row's
    override.
    """
    booking = _lock_booking(booking_id, expected_version)
    rows = _addon_rows(booking, item_id, booking_tent_id)
    if not rows:
        raise EntityNotFound('Add-on', item_id)
    item_name = rows[0].item.name

    lines = {row.pk: row.as_line() for row in rows}
    changes = []

    for update in quantities:
        if not isinstance(update, AddonQuantity):
            update = AddonQuantity(**update)
        row = next((r for r in rows if r.parameter_id == update.parameter_id), None)
        if row is None:
            raise EntityNotFound('Parameter', update.parameter_id)
        if update.quantity < 0:
            raise ValueError(f"Quantity must not be negative: {update.quantity}")
        label = row.parameter.name if row.parameter else update.parameter_id
        if row.quantity != update.quantity:
            changes.append(change(label, row.quantity, update.quantity))
            row.quantity = update.quantity
        if update.price_override is not UNSET:
            old_override = lines[row.pk].price_override
            new_override = None if update.price_override is None else to_decimal(update.price_override)
            if new_override is not None and new_override < 0:
                raise ValueError(f"Price override must not be negative: {new_override}")
            if old_override != new_override:
                changes.append(change(
                    f"{label} price override",
                    format_amount(old_override) if old_override is not None else 'none',
                    format_amount(new_override) if new_override is not None else 'removed',
                ))
            lines[row.pk] = replace(lines[row.pk], price_override=new_override)

    if dates is not UNSET:
        new_dates = _to_date_range(dates)
        if lines[rows[0].pk].dates != new_dates:
            changes.append('Dates updated')
        for row in rows:
            lines[row.pk] = replace(lines[row.pk], dates=new_dates)

    validation = None
    if voucher_code is not UNSET:
        old_code = next((line.voucher.code for line in lines.values() if line.voucher), None)
        if not normalize_code(voucher_code):
            for row in rows:
                lines[row.pk] = replace(lines[row.pk], voucher=None)
        elif voucher_code_changed(old_code, voucher_code):
            group_amount = sum(
                (lines[row.pk].amount(row.quantity, row.unit_price) for row in rows), ZERO
            )
            anchor_dates = lines[rows[0].pk].dates
            check_in = anchor_dates.start if anchor_dates and anchor_dates.start else booking.check_in_date
            validation = _validate_code(
                voucher_code,
                booking,
                zone_id=rows[0].item.zone_id,
                item_id=item_id,
                check_in=check_in,
                total_amount=group_amount,
                application_type=APPLICATION_ALL,
            )
            snapshot = VoucherSnapshot.from_validation(validation)
            for index, row in enumerate(rows):
                lines[row.pk] = replace(lines[row.pk], voucher=snapshot if index == 0 else None)
        new_code = next((line.voucher.code for line in lines.values() if line.voucher), None)
        if (new_code or None) != (old_code or None):
            changes.append(describe_voucher_change(old_code, new_code))

    for row in rows:
        row.metadata = lines[row.pk].to_metadata()
        row.save(update_fields=['quantity', 'metadata', 'updated_at'])

    if validation:
        increment_voucher_usage(validation.voucher_id)

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_EDIT,
        description=describe_addon_edit(item_name, changes),
        metadata=_addon_metadata(item_id, booking_tent_id),
        instance=rows,
    )
    logger.info(f"Updated add-on {item_name} on booking {booking.pk}")
    return result


@transaction.atomic
def delete_addon(
    booking_id,
    item_id,
    *,
    booking_tent_id=None,
    actor=None,
    expected_version: Optional[int] = None,
) -> EditResult:
    """Delete every row of an add-on group."""
    booking = _lock_booking(booking_id, expected_version)
    rows = _addon_rows(booking, item_id, booking_tent_id)
    if not rows:
        raise EntityNotFound('Add-on', item_id)
    item_name = rows[0].item.name
    deleted, _ = BookingItem.objects.filter(pk__in=[row.pk for row in rows]).delete()

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_DELETE,
        description=describe_addon_delete(item_name, deleted),
        metadata=_addon_metadata(item_id, booking_tent_id),
    )
    logger.info(f"Deleted add-on {item_name} ({deleted} rows) from booking {booking.pk}")
    return result


# =============================================================================
# Menu products
# =============================================================================


def _menu_total(quantity, unit_price, subtotal_override) -> Decimal:
    if subtotal_override is not None:
        return to_decimal(subtotal_override)
    return to_decimal(quantity) * to_decimal(unit_price)


@transaction.atomic
def add_menu_product(
    booking_id,
    *,
    menu_item_id,
    quantity: int,
    unit_price=None,
    booking_tent_id=None,
    serving_date=None,
    subtotal_override=None,
    voucher_code=None,
    actor=None,
    expected_version: Optional[int] = None,
) -> EditResult:
    """Add a food/service line. unit_price defaults to the menu item's price."""
    booking = _lock_booking(booking_id, expected_version)
    menu_item = _get(MenuItem, 'MenuItem', menu_item_id)
    tent = _get_tent(booking, booking_tent_id)
    if quantity <= 0:
        raise ValueError("Quantity must be at least 1")
    unit_price = menu_item.price if unit_price is None else to_decimal(unit_price)
    total = _menu_total(quantity, unit_price, subtotal_override)
    if unit_price < 0 or total < 0:
        raise ValueError("Menu product amounts must not be negative")

    product = BookingMenuProduct(
        booking=booking,
        booking_tent=tent,
        menu_item=menu_item,
        quantity=quantity,
        unit_price=unit_price,
        total_price=total,
        subtotal_override=None if subtotal_override is None else to_decimal(subtotal_override),
        serving_date=serving_date,
    )
    validation = None
    if normalize_code(voucher_code):
        validation = _validate_code(
            voucher_code,
            booking,
            zone_id=menu_item.zone_id,
            item_id=menu_item.pk,
            check_in=None,
            total_amount=total,
            application_type=APPLICATION_MENU,
        )
        product.apply_voucher(validation)
    product.save()

    if validation:
        increment_voucher_usage(validation.voucher_id)

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_ADD,
        description=describe_menu_product_add(menu_item.name, quantity, total),
        metadata={'booking_menu_product_id': str(product.pk), 'menu_item_id': menu_item.pk},
        instance=product,
    )
    logger.info(f"Added menu product {product.pk} ({menu_item.name}) to booking {booking.pk}")
    return result


@transaction.atomic
def update_menu_product(
    booking_id,
    product_id,
    *,
    menu_item_id=UNSET,
    quantity=UNSET,
    unit_price=UNSET,
    serving_date=UNSET,
    subtotal_override=UNSET,
    voucher_code=UNSET,
    tax_invoice_required=UNSET,
    actor=None,
    expected_version: Optional[int] = None,
) -> EditResult:
    """Edit a menu product; total_price is rewritten from override or quantity x price."""
    booking = _lock_booking(booking_id, expected_version)
    product = _get(BookingMenuProduct, 'BookingMenuProduct', product_id, booking=booking)

    old_name = product.menu_item.name
    old_quantity = product.quantity
    old_total = product.total_price
    old_code = product.voucher_code

    if menu_item_id is not UNSET and menu_item_id != product.menu_item_id:
        product.menu_item = _get(MenuItem, 'MenuItem', menu_item_id)
    if quantity is not UNSET:
        if quantity <= 0:
            raise ValueError("Quantity must be at least 1")
        product.quantity = quantity
    if unit_price is not UNSET:
        product.unit_price = to_decimal(unit_price)
    if serving_date is not UNSET:
        product.serving_date = serving_date
    if subtotal_override is not UNSET:
        product.subtotal_override = None if subtotal_override is None else to_decimal(subtotal_override)
    product.total_price = _menu_total(product.quantity, product.unit_price, product.subtotal_override)
    if product.unit_price < 0 or product.total_price < 0:
        raise ValueError("Menu product amounts must not be negative")

    validation = None
    if voucher_code is not UNSET:
        if not normalize_code(voucher_code):
            product.clear_voucher()
        elif voucher_code_changed(old_code, voucher_code):
            validation = _validate_code(
                voucher_code,
                booking,
                zone_id=product.menu_item.zone_id,
                item_id=product.menu_item_id,
                check_in=None,
                total_amount=product.total_price,
                application_type=APPLICATION_MENU,
            )
            product.apply_voucher(validation)

    product.save()
    if tax_invoice_required is not UNSET:
        _set_tax_invoice_flag(booking, bool(tax_invoice_required))
    if validation:
        increment_voucher_usage(validation.voucher_id)

    changes = []
    if product.menu_item.name != old_name:
        changes.append(change('Item', old_name, product.menu_item.name))
    if product.quantity != old_quantity:
        changes.append(change('Qty', old_quantity, product.quantity))
    if subtotal_override is not UNSET and product.subtotal_override is not None:
        changes.append(change(
            'Subtotal override', format_amount(old_total), format_amount(product.subtotal_override)
        ))
    if voucher_code is not UNSET and (product.voucher_code or None) != (old_code or None):
        changes.append(describe_voucher_change(old_code, product.voucher_code))

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_EDIT,
        description=describe_menu_product_edit(product.menu_item.name, changes),
        metadata={'booking_menu_product_id': str(product.pk)},
        instance=product,
    )
    logger.info(f"Updated menu product {product.pk} on booking {booking.pk}")
    return result


@transaction.atomic
def delete_menu_product(booking_id, product_id, *, actor=None,
                        expected_version: Optional[int] = None) -> EditResult:
    booking = _lock_booking(booking_id, expected_version)
    product = _get(BookingMenuProduct, 'BookingMenuProduct', product_id, booking=booking)
    description = describe_menu_product_delete(
        product.menu_item.name, product.quantity, product.total_price
    )
    product_pk = product.pk
    product.delete()

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_DELETE,
        description=description,
        metadata={'booking_menu_product_id': str(product_pk)},
    )
    logger.info(f"Deleted menu product {product_pk} from booking {booking.pk}")
    return result


# =============================================================================
# Additional costs
# =============================================================================


def _cost_amounts(quantity, unit_price, tax_rate, currency):
    total = round_amount(to_decimal(quantity) * to_decimal(unit_price), currency)
    tax = round_amount(total * to_decimal(tax_rate) / Decimal('100'), currency)
    return total, tax


@transaction.atomic
def add_additional_cost(
    booking_id,
    *,
    name: str,
    unit_price,
    quantity: int = 1,
    notes: str = '',
    actor=None,
    expected_version: Optional[int] = None,
) -> EditResult:
    """Charge an extra cost on top of the booking total.

    Taxed at the booking rate when a tax invoice is required, else untaxed.
    """
    booking = _lock_booking(booking_id, expected_version)
    name = (name or '').strip()
    if not name:
        raise ValueError("Name is required")
    unit_price = to_decimal(unit_price)
    if unit_price < 0:
        raise ValueError("Invalid unit price")
    if quantity < 1:
        raise ValueError("Quantity must be at least 1")

    tax_rate = booking.tax_rate if booking.tax_invoice_required else ZERO
    total, tax = _cost_amounts(quantity, unit_price, tax_rate, booking.currency)
    cost = BookingAdditionalCost.objects.create(
        booking=booking,
        name=name,
        quantity=quantity,
        unit_price=unit_price,
        total_price=total,
        tax_rate=tax_rate,
        tax_amount=tax,
        notes=notes or '',
        created_by=actor,
    )

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_EDIT,
        description=describe_additional_cost_add(name, quantity, total),
        metadata={'additional_cost_id': str(cost.pk)},
        instance=cost,
    )
    logger.info(f"Added additional cost {cost.pk} ({name}) to booking {booking.pk}")
    return result


@transaction.atomic
def update_additional_cost(
    booking_id,
    cost_id,
    *,
    name=UNSET,
    quantity=UNSET,
    unit_price=UNSET,
    notes=UNSET,
    actor=None,
    expected_version: Optional[int] = None,
) -> EditResult:
    """Edit an additional cost; its tax rate stays the one it was created with."""
    booking = _lock_booking(booking_id, expected_version)
    cost = _get(BookingAdditionalCost, 'BookingAdditionalCost', cost_id, booking=booking)
    old_name, old_quantity, old_unit_price = cost.name, cost.quantity, cost.unit_price

    if name is not UNSET:
        cost.name = (name or '').strip()
        if not cost.name:
            raise ValueError("Name is required")
    if quantity is not UNSET:
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")
        cost.quantity = quantity
    if unit_price is not UNSET:
        cost.unit_price = to_decimal(unit_price)
        if cost.unit_price < 0:
            raise ValueError("Invalid unit price")
    if notes is not UNSET:
        cost.notes = notes or ''
    cost.total_price, cost.tax_amount = _cost_amounts(
        cost.quantity, cost.unit_price, cost.tax_rate, booking.currency
    )
    cost.save()

    changes = []
    if cost.name != old_name:
        changes.append(change('Name', f'"{old_name}"', f'"{cost.name}"'))
    if cost.quantity != old_quantity:
        changes.append(change('Qty', old_quantity, cost.quantity))
    if cost.unit_price != old_unit_price:
        changes.append(change('Price', format_amount(old_unit_price), format_amount(cost.unit_price)))

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_EDIT,
        description=describe_additional_cost_edit(cost.name, changes),
        metadata={'additional_cost_id': str(cost.pk)},
        instance=cost,
    )
    logger.info(f"Updated additional cost {cost.pk} on booking {booking.pk}")
    return result


@transaction.atomic
def delete_additional_cost(booking_id, cost_id, *, actor=None,
                           expected_version: Optional[int] = None) -> EditResult:
    booking = _lock_booking(booking_id, expected_version)
    cost = _get(BookingAdditionalCost, 'BookingAdditionalCost', cost_id, booking=booking)
    description = describe_additional_cost_delete(cost.name, cost.quantity, cost.total_price)
    cost_pk = cost.pk
    cost.delete()

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_DELETE,
        description=description,
        metadata={'additional_cost_id': str(cost_pk)},
    )
    logger.info(f"Deleted additional cost {cost_pk} from booking {booking.pk}")
    return result


# =============================================================================
# Booking-level settings
# =============================================================================


@transaction.atomic
def set_tax_invoice_required(booking_id, required: bool, *, actor=None,
                             expected_version: Optional[int] = None) -> EditResult:
    """Toggle the VAT invoice flag and recompute tax."""
    booking = _lock_booking(booking_id, expected_version)
    _set_tax_invoice_flag(booking, bool(required))

    result = _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_EDIT,
        description=describe_tax_invoice_toggle(bool(required)),
        metadata={'tax_invoice_required': bool(required)},
        instance=booking,
    )
    logger.info(f"Booking {booking.pk} tax invoice required set to {bool(required)}")
    return result


@transaction.atomic
def refresh_tent_subtotal(booking_id, booking_tent_id, *, actor=None,
                          expected_version: Optional[int] = None) -> EditResult:
    """Rewrite tent.subtotal from the tent's stored parameter rows.

    Repairs a tent whose persisted subtotal drifted from its rows
    (for example after a direct data fix).
    """
    booking = _lock_booking(booking_id, expected_version)
    tent = _get(BookingTent, 'BookingTent', booking_tent_id, booking=booking)
    old_subtotal = tent.subtotal
    tent.subtotal = compute_tent_subtotal(tent.pk)
    tent.save(update_fields=['subtotal', 'updated_at'])

    changes = []
    if tent.subtotal != old_subtotal:
        changes.append(change('Subtotal', format_amount(old_subtotal), format_amount(tent.subtotal)))

    return _finish(
        booking,
        actor=actor,
        action=Actions.ITEM_EDIT,
        description=describe_tent_edit(tent.item.name, changes),
        metadata={'booking_tent_id': str(tent.pk)},
        instance=tent,
    )
