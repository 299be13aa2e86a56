"""Exceptions for django-booking-totals."""


class BookingTotalsError(Exception):
    """Base exception for booking totals errors."""

    pass


# =============================================================================
# Voucher rejections
# =============================================================================


class VoucherError(BookingTotalsError):
    """Base exception for a rejected voucher code."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class VoucherNotFound(VoucherError):
    """Raised when no voucher matches the code."""

    pass


class VoucherInactive(VoucherError):
    """Raised when the voucher has been disabled."""

    pass


class VoucherExpired(VoucherError):
    """Raised when the voucher date window has passed."""

    pass


class VoucherNotYetActive(VoucherExpired):
    """Raised when the voucher date window has not started yet."""

    pass


class VoucherScopeMismatch(VoucherError):
    """Raised when zone, item, weekday or application type do not match."""

    pass


class VoucherUsageExceeded(VoucherError):
    """Raised when the voucher has no uses left."""

    pass


# =============================================================================
# Booking tree / engine errors
# =============================================================================


class EntityNotFound(BookingTotalsError):
    """Raised when a booking, tent, line or referenced item does not exist."""

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class MalformedLineItem(BookingTotalsError):
    """Raised when a line item's metadata cannot be interpreted."""

    def __init__(self, line_id, reason: str):
        super().__init__(f"Line item {line_id} is malformed: {reason}")
        self.line_id = line_id
        self.reason = reason


class RecalculationFailed(BookingTotalsError):
    """Raised when an aggregator cannot read the booking's line items."""

    def __init__(self, booking_id, reason: str):
        super().__init__(f"Recalculation failed for booking {booking_id}: {reason}")
        self.booking_id = booking_id
        self.reason = reason


class InvariantViolation(BookingTotalsError):
    """Raised when computed totals break the total identity."""

    pass


class TransactionRequired(BookingTotalsError):
    """Raised when a write-path function is called outside transaction.atomic()."""

    def __init__(self, operation: str):
        super().__init__(
            f"{operation} must run inside an open transaction (transaction.atomic())"
        )
        self.operation = operation


class StaleBooking(BookingTotalsError):
    """Raised when a booking changed since the caller read it."""

    def __init__(self, booking_id, expected_version: int, actual_version: int | None):
        super().__init__(
            f"Booking {booking_id} was modified concurrently: "
            f"expected version {expected_version}, found {actual_version}"
        )
        self.booking_id = booking_id
        self.expected_version = expected_version
        self.actual_version = actual_version
