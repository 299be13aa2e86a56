"""Money value object with currency-aware arithmetic."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Union


# Currency precision rules for settlement/display
CURRENCY_DECIMALS = {
    'VND': 0, 'JPY': 0, 'KRW': 0,
    'USD': 2, 'EUR': 2, 'THB': 2,
}

ZERO = Decimal('0')


class CurrencyMismatchError(ValueError):
    """Raised when attempting operations between different currencies."""
    pass


def to_decimal(value) -> Decimal:
    """Coerce an int/float/str/None amount to Decimal (None -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_amount(amount: Decimal, currency: str) -> Decimal:
    """Round half-up to the currency's settlement precision."""
    decimals = CURRENCY_DECIMALS.get(currency, 2)
    return to_decimal(amount).quantize(Decimal(10) ** -decimals, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """
    Immutable money value object.

    Usage:
        room = Money(Decimal("2000000"), "VND")
        tax = (room * Decimal("0.1")).quantized()
        total = room + tax
    """
    amount: Decimal
    currency: str

    def __post_init__(self):
        """Normalize amount to Decimal."""
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))

    @classmethod
    def zero(cls, currency: str) -> 'Money':
        return cls(ZERO, currency)

    def quantized(self) -> 'Money':
        """Return amount rounded half-up to currency decimals."""
        return Money(round_amount(self.amount, self.currency), self.currency)

    def __add__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise CurrencyMismatchError(
                f"Cannot add {self.currency} to {other.currency}"
            )
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise CurrencyMismatchError(
                f"Cannot subtract {other.currency} from {self.currency}"
            )
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, factor: Union[Decimal, int, float]) -> 'Money':
        return Money(self.amount * to_decimal(factor), self.currency)

    def __rmul__(self, factor: Union[Decimal, int, float]) -> 'Money':
        return self.__mul__(factor)

    def floored_at_zero(self) -> 'Money':
        """Return this amount, or zero when negative."""
        if self.amount < 0:
            return Money.zero(self.currency)
        return self

    def is_zero(self) -> bool:
        return self.amount == 0
