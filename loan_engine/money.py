"""
Money Module

Fixed-precision rupee amounts for every loan figure. Values are Decimal,
rounded to 2 places with banker's rounding each time a Money is built, so
every stored or displayed sub-result is already rounded. NEVER uses float.
"""

from decimal import Decimal, ROUND_HALF_EVEN, ROUND_FLOOR, getcontext
from dataclasses import dataclass
from typing import Any, Iterable, List, Union

# Set global decimal context for financial precision
getcontext().prec = 28

CURRENCY_CODE = "INR"
CURRENCY_SYMBOL = "₹"
PRECISION = 2
QUANTUM = Decimal('0.01')

Number = Union[Decimal, int, str]


def to_decimal(value: Number) -> Decimal:
    """
    Convert an int, string or Decimal to Decimal

    Floats are refused: binary floating point cannot represent most
    rupee amounts exactly.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Refusing to build a Decimal from {type(value).__name__} {value!r}")
    return Decimal(str(value))


def quantize(value: Decimal) -> Decimal:
    """Round a Decimal to money precision using banker's rounding"""
    return value.quantize(QUANTUM, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class Money:
    """
    Immutable rupee amount rounded to 2 decimal places.
    All monetary values in the engine MUST use this class.
    """
    amount: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'amount', quantize(to_decimal(self.amount)))

    @classmethod
    def zero(cls) -> 'Money':
        return cls(Decimal('0'))

    @classmethod
    def sum(cls, values: Iterable['Money']) -> 'Money':
        """Add up Money values; empty input gives zero"""
        total = cls.zero()
        for value in values:
            total = total + value
        return total

    def __add__(self, other: 'Money') -> 'Money':
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount + other.amount)

    def __sub__(self, other: 'Money') -> 'Money':
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount - other.amount)

    def __mul__(self, multiplier: Number) -> 'Money':
        return Money(self.amount * to_decimal(multiplier))

    __rmul__ = __mul__

    def __truediv__(self, divisor: Number) -> 'Money':
        return Money(self.amount / to_decimal(divisor))

    def __neg__(self) -> 'Money':
        return Money(-self.amount)

    def __abs__(self) -> 'Money':
        return Money(abs(self.amount))

    def __lt__(self, other: 'Money') -> bool:
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def split(self, parts: int) -> List['Money']:
        """
        Split into equal shares that add back up to this amount exactly

        Each share is floored to money precision; the remainder lost to
        flooring is added to the last share.

        Args:
            parts: Number of shares (must be positive)

        Returns:
            List of Money shares, len == parts
        """
        if parts <= 0:
            raise ValueError(f"Cannot split into {parts} parts")

        share = (self.amount / Decimal(parts)).quantize(QUANTUM, rounding=ROUND_FLOOR)
        shares = [Money(share) for _ in range(parts - 1)]
        shares.append(Money(self.amount - share * (parts - 1)))
        return shares

    def to_string(self) -> str:
        """Format for display"""
        return f"{CURRENCY_SYMBOL}{self.amount:,.{PRECISION}f}"

    def to_plain(self) -> str:
        """2-place string without grouping, used for storage and API output"""
        return f"{self.amount:.{PRECISION}f}"

    def __str__(self) -> str:
        return self.to_plain()
