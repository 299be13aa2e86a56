"""Django Booking Totals configuration.

All settings can be overridden in your Django settings.py.

Example:
    # settings.py
    BOOKING_TOTALS_TAX_RATE_PROVIDER = 'myproject.tax.ZoneTaxRateProvider'
    BOOKING_TOTALS_TAX_COMPOSITION = 'per_line'
"""

from django.conf import settings
from django.utils.module_loading import import_string


# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULTS = {
    # Dotted path to a TaxRateProvider subclass (instantiated without args)
    'TAX_RATE_PROVIDER': 'django_booking_totals.tax.BookingTaxRateProvider',
    # auto | aggregate | per_line
    'TAX_COMPOSITION': 'auto',
    'DEFAULT_CURRENCY': 'VND',
    # Payment statuses that count toward the amount paid
    'PAID_STATUSES': ('successful', 'completed', 'paid'),
}

TAX_COMPOSITIONS = ('auto', 'aggregate', 'per_line')


def get_setting(name: str, default=None):
    """Get a setting with BOOKING_TOTALS_ prefix."""
    if default is None:
        default = DEFAULTS.get(name)
    return getattr(settings, f"BOOKING_TOTALS_{name}", default)


def get_tax_composition() -> str:
    """Return the configured tax composition policy."""
    composition = get_setting('TAX_COMPOSITION')
    if composition not in TAX_COMPOSITIONS:
        raise ValueError(
            f"BOOKING_TOTALS_TAX_COMPOSITION must be one of {TAX_COMPOSITIONS}, "
            f"got {composition!r}"
        )
    return composition


def get_tax_rate_provider():
    """Instantiate the configured tax rate provider."""
    return import_string(get_setting('TAX_RATE_PROVIDER'))()


def get_paid_statuses() -> tuple:
    """Payment statuses that count as money received."""
    return tuple(get_setting('PAID_STATUSES'))
