"""
Money value object for variant prices.

Prices coming from the catalog API are decimal strings; every computed
price is rounded half-up to two decimal places and never negative.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class Money:
    """
    Immutable value object representing a price with currency.

    Attributes:
        amount: The monetary amount as Decimal, quantized to cents
        currency: Shop currency code (e.g., "USD"); empty when unknown

    Example:
        >>> price = Money.parse("20.00", "USD")
        >>> price.scale(Decimal("1.1")).to_str()
        '22.00'
    """

    amount: Decimal
    currency: str = ""

    def __post_init__(self) -> None:
        """Validate money object after initialization."""
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))

        normalized_amount = self.amount.quantize(CENTS, rounding=ROUND_HALF_UP)
        object.__setattr__(self, "amount", normalized_amount)

        if self.amount < 0:
            raise ValueError(f"Money amount cannot be negative: {self.amount}")

        if self.currency and len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")

    def scale(self, multiplier: Decimal) -> "Money":
        """Multiply by a non-negative factor, flooring the result at zero."""
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(amount=max(self.amount * multiplier, Decimal("0")), currency=self.currency)

    def __add__(self, other: "Money") -> "Money":
        """Add two Money objects with the same currency."""
        if not isinstance(other, Money):
            raise TypeError(f"Cannot add Money with {type(other)}")

        if self.currency != other.currency:
            raise ValueError(f"Cannot add different currencies: {self.currency} and {other.currency}")

        return Money(amount=self.amount + other.amount, currency=self.currency)

    def to_str(self) -> str:
        """Price as the API expects it (two decimals, no currency)."""
        return f"{self.amount:.2f}"

    def __str__(self) -> str:
        """String representation of Money."""
        if self.currency:
            return f"{self.currency} {self.amount:.2f}"
        return self.to_str()

    def __repr__(self) -> str:
        """Developer-friendly representation."""
        return f"Money(amount=Decimal('{self.amount}'), currency='{self.currency}')"

    @property
    def is_zero(self) -> bool:
        """Check if amount is zero."""
        return self.amount == Decimal("0")

    @classmethod
    def zero(cls, currency: str = "") -> "Money":
        """Create a zero Money object."""
        return cls(amount=Decimal("0"), currency=currency)

    @classmethod
    def parse(cls, raw: str | None, currency: str = "") -> "Money":
        """
        Create Money from an API price string.

        Missing, unparseable or negative values are treated as zero.
        """
        if raw is None or str(raw).strip() == "":
            return cls.zero(currency)

        try:
            amount = Decimal(str(raw).strip())
        except InvalidOperation:
            return cls.zero(currency)

        if not amount.is_finite() or amount < 0:
            return cls.zero(currency)

        return cls(amount=amount, currency=currency)
