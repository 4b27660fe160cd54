"""
Amount type.

Values are counted in nicks, the smallest ledger unit. One display unit
(NOCK) is 65536 nicks.
"""

from typing import Union

# Nicks per display unit
NICKS_PER_NOCK = 65536


class InvalidAmount(ValueError):
    """Raised when an amount would be negative or is not an integer."""
    pass


class Amount(int):
    """
    Non-negative integer quantity of nicks.

    Amounts are plain Python ints underneath, so arithmetic is unbounded.
    Adding two Amounts yields an Amount; subtraction that could go
    negative must use checked_sub().
    """

    def __new__(cls, value: int = 0) -> "Amount":
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidAmount(f"Amount must be an integer, got {type(value).__name__}")
        if value < 0:
            raise InvalidAmount(f"Amount cannot be negative: {value}")
        return super().__new__(cls, value)

    @classmethod
    def from_integer(cls, value: int) -> "Amount":
        """Create an Amount from a nick count."""
        return cls(value)

    @classmethod
    def from_display(cls, nock: Union[int, float]) -> "Amount":
        """Convert a display-unit quantity to nicks."""
        return cls(int(nock * NICKS_PER_NOCK))

    def to_integer(self) -> int:
        return int(self)

    def to_display(self) -> int:
        """Whole display units, truncating any sub-unit remainder."""
        return int(self) // NICKS_PER_NOCK

    def format_display(self) -> str:
        """Human-readable balance, e.g. '1,500 NOCK'."""
        return f"{self.to_display():,} NOCK"

    def checked_sub(self, other: int) -> "Amount":
        """Subtract, raising InvalidAmount instead of going negative."""
        return Amount(int(self) - int(other))

    def __add__(self, other):
        if isinstance(other, Amount):
            return Amount(int(self) + int(other))
        return int(self) + other

    def __radd__(self, other):
        if isinstance(other, int) and not isinstance(other, bool) and other >= 0:
            return Amount(other + int(self))
        return other + int(self)

    def __repr__(self) -> str:
        return f"Amount({int(self)})"

    def __str__(self) -> str:
        return int.__repr__(self)


Amount.ZERO = Amount(0)


def from_integer(value: int) -> Amount:
    return Amount.from_integer(value)


def from_display(nock: Union[int, float]) -> Amount:
    return Amount.from_display(nock)


def to_display(amount: int) -> int:
    return Amount(amount).to_display()


def total(values) -> Amount:
    """Sum a sequence of amounts."""
    result = Amount.ZERO
    for value in values:
        result = Amount(int(result) + int(value))
    return result
