"""Booking edit audit trail.

All mutation services call log_booking_edit() after the recalculation has
succeeded and before commit. The log is not best-effort: any failure here
propagates and rolls back the edit it describes.

Usage:
    from django_booking_totals.audit import Actions, log_booking_edit

    log_booking_edit(
        booking.pk,
        actor=request.user,
        action=Actions.ITEM_EDIT,
        description=describe_tent_edit("Safari Tent", changes),
    )
"""

import logging

from django.db import DEFAULT_DB_ALIAS, transaction

from .exceptions import TransactionRequired
from .models import BookingEditLog
from .money import to_decimal


logger = logging.getLogger(__name__)


# =============================================================================
# Stable Action Constants - PUBLIC CONTRACT
# =============================================================================
# Stored in BookingEditLog.action and read by the history view.
# DO NOT RENAME.


class Actions:
    """Stable audit action strings for booking line-item edits."""

    ITEM_ADD = BookingEditLog.Action.ITEM_ADD.value
    ITEM_EDIT = BookingEditLog.Action.ITEM_EDIT.value
    ITEM_DELETE = BookingEditLog.Action.ITEM_DELETE.value

    ALL = (ITEM_ADD, ITEM_EDIT, ITEM_DELETE)


def log_booking_edit(booking_id, *, actor=None, action: str, description: str,
                     metadata: dict | None = None, using=DEFAULT_DB_ALIAS) -> BookingEditLog:
    """Append one edit-log row for a booking.

    Args:
        booking_id: Booking primary key
        actor: User who made the edit (None for system jobs)
        action: One of Actions.ALL
        description: Human-readable change description
        metadata: Structured details of the change
        using: Database alias

    Raises:
        TransactionRequired: If called outside transaction.atomic()
        ValueError: If action is unknown or description is empty
    """
    if not transaction.get_connection(using).in_atomic_block:
        raise TransactionRequired('log_booking_edit')
    if action not in Actions.ALL:
        raise ValueError(f"Unknown booking edit action: {action!r}")
    if not description:
        raise ValueError("Booking edit description is required")

    actor_display = ''
    if actor is not None:
        actor_display = actor.get_full_name() or actor.get_username()

    entry = BookingEditLog.objects.using(using).create(
        booking_id=booking_id,
        actor=actor,
        actor_display=actor_display,
        action=action,
        description=description,
        metadata=metadata or {},
    )
    logger.info(f"Booking {booking_id} {action} by {actor_display or 'system'}: {description}")
    return entry


# =============================================================================
# Description builders
# =============================================================================


def format_amount(value) -> str:
    """2000000 -> '2,000,000'."""
    return f"{to_decimal(value).normalize():,f}"


def change(label: str, old, new) -> str:
    return f"{label}: {old} → {new}"


def _edited(kind: str, name: str, changes) -> str:
    changes = [c for c in changes if c]
    if changes:
        return f'Edited {kind} "{name}": {", ".join(changes)}'
    return f'Edited {kind} "{name}"'


def describe_tent_add(name, check_in, check_out, subtotal) -> str:
    return f'Added tent "{name}" ({check_in} - {check_out}, subtotal: {format_amount(subtotal)})'


def describe_tent_edit(name, changes) -> str:
    return _edited('tent', name, changes)


def describe_tent_delete(name, check_in, check_out, subtotal) -> str:
    return f'Deleted tent "{name}" ({check_in} - {check_out}, subtotal: {format_amount(subtotal)})'


def describe_addon_add(name, quantities) -> str:
    """quantities: iterable of (parameter label, quantity)."""
    detail = ', '.join(f"{label}: {qty}" for label, qty in quantities)
    return f'Added common item "{name}" ({detail})'


def describe_addon_edit(name, changes) -> str:
    return _edited('common item', name, changes)


def describe_addon_delete(name, row_count: int) -> str:
    return f'Deleted common item "{name}" ({row_count} rows)'


def describe_menu_product_add(name, quantity, total) -> str:
    return f'Added menu product "{name}" (qty: {quantity}, price: {format_amount(total)})'


def describe_menu_product_edit(name, changes) -> str:
    return _edited('menu product', name, changes)


def describe_menu_product_delete(name, quantity, total) -> str:
    return f'Deleted menu product "{name}" (qty: {quantity}, total: {format_amount(total)})'


def describe_additional_cost_add(name, quantity, total) -> str:
    return f'Added additional cost "{name}" (qty: {quantity}, total: {format_amount(total)})'


def describe_additional_cost_edit(name, changes) -> str:
    return _edited('additional cost', name, changes)


def describe_additional_cost_delete(name, quantity, total) -> str:
    return f'Deleted additional cost "{name}" (qty: {quantity}, total: {format_amount(total)})'


def describe_tax_invoice_toggle(required: bool) -> str:
    return f"VAT invoice {'enabled' if required else 'disabled'}"


def describe_voucher_change(old_code, new_code) -> str:
    return change('Voucher', old_code or 'none', new_code or 'removed')
