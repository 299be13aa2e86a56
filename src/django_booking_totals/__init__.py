"""Django Booking Totals - derived monetary totals for glamping bookings."""

__version__ = "0.1.0"

__all__ = [
    "recalculate_booking_totals",
    "get_live_totals",
    "get_balance_due",
    "get_deposit_due",
    "validate_voucher",
    "log_booking_edit",
]


def __getattr__(name):
    """Lazy import public API to avoid AppRegistryNotReady errors."""
    if name == "recalculate_booking_totals":
        from django_booking_totals.engine import recalculate_booking_totals
        return recalculate_booking_totals
    if name in ("get_live_totals", "get_balance_due", "get_deposit_due"):
        from django_booking_totals import selectors
        return getattr(selectors, name)
    if name == "validate_voucher":
        from django_booking_totals.vouchers import validate_voucher
        return validate_voucher
    if name == "log_booking_edit":
        from django_booking_totals.audit import log_booking_edit
        return log_booking_edit
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
