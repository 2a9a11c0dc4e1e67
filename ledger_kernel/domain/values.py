"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Provides Currency and Money, the foundation of every balance check in
    the ledger.  Money is fixed-point: the amount is an integer count of the
    currency's minor unit (millimes for TND, cents for EUR).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    No outward dependencies except ledger_kernel.domain.currency.

Invariants enforced:
    - No binary floating point: Money.of() refuses float input, and all
      arithmetic and comparison happen on ``int`` minor units.
    - No silent rounding: an amount with more decimals than the currency
      allows is rejected, never truncated.
    - Same-currency arithmetic only.

Failure modes:
    - ValueError on invalid currency, excess precision, or mixed currencies.
    - TypeError on float input or non-Money operands.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext

from ledger_kernel.domain.currency import CurrencyRegistry

# Largest minor-unit count a BIGINT amount column holds.
MAX_MINOR_UNITS = 2**63 - 1


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Contract:
        Wraps a three-letter ISO 4217 code. Validated and normalized (uppercased)
        on construction. Invalid codes are rejected immediately.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - code is always uppercase and stripped of whitespace
    """

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if self.code else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise ValueError(f"Invalid ISO 4217 currency code: {self.code}")
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        """Number of decimal places of the minor unit."""
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def minor_unit_factor(self) -> int:
        return 10 ** self.decimal_places

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


def _as_currency(currency: str | Currency) -> Currency:
    if isinstance(currency, Currency):
        return currency
    if isinstance(currency, str):
        return Currency(currency)
    raise TypeError(f"currency must be Currency or str, got {type(currency)}")


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object in integer minor units.

    Contract:
        Pairs an ``int`` count of minor units with its Currency -- they are
        NEVER separated.  ``Money.of("1000.000", "TND")`` holds
        ``minor_units=1_000_000``.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - Equality and ordering are exact integer comparisons
        - Arithmetic enforces the same-currency constraint

    Non-goals:
        - Does NOT perform currency conversion
        - Does NOT round
    """

    minor_units: int
    currency: Currency

    def __post_init__(self) -> None:
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise TypeError(
                f"minor_units must be int, got {type(self.minor_units).__name__}"
            )
        object.__setattr__(self, "currency", _as_currency(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """
        Create Money from a major-unit amount.

        Preconditions:
            - amount is a Decimal, str or int (float is refused)
            - amount has no more decimals than the currency allows

        Raises:
            TypeError: If amount is a float or another unsupported type.
            ValueError: If amount is not numeric, not finite, has excess
                precision, or currency is invalid.
        """
        currency = _as_currency(currency)
        if isinstance(amount, bool) or isinstance(amount, float):
            raise TypeError("Money amounts must not be built from float")
        if isinstance(amount, (str, int)):
            try:
                amount = Decimal(str(amount).strip())
            except InvalidOperation as e:
                raise ValueError(f"Invalid amount: {amount!r}") from e
        if not isinstance(amount, Decimal):
            raise TypeError(f"Unsupported amount type: {type(amount).__name__}")
        if not amount.is_finite():
            raise ValueError(f"Invalid amount: {amount}")

        # Exact scaling: the context must hold every digit of the product.
        try:
            with localcontext() as ctx:
                ctx.prec = max(ctx.prec, len(amount.as_tuple().digits) + currency.decimal_places + 1)
                scaled = amount.scaleb(currency.decimal_places)
                exact = scaled == scaled.to_integral_value()
        except ArithmeticError as e:
            raise ValueError(f"Amount out of range: {amount}") from e
        if not exact:
            raise ValueError(
                f"Amount {amount} has more than {currency.decimal_places} "
                f"decimal places for {currency.code}"
            )
        return cls(minor_units=int(scaled), currency=currency)

    @classmethod
    def from_minor(cls, minor_units: int, currency: str | Currency) -> Money:
        """Create Money directly from a minor-unit count."""
        return cls(minor_units=minor_units, currency=_as_currency(currency))

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        """Create a zero amount in the given currency."""
        return cls(minor_units=0, currency=_as_currency(currency))

    @property
    def amount(self) -> Decimal:
        """Major-unit Decimal at the currency's exact precision."""
        sign, digits, _ = Decimal(self.minor_units).as_tuple()
        return Decimal((sign, digits, -self.currency.decimal_places))

    @property
    def is_zero(self) -> bool:
        return self.minor_units == 0

    @property
    def is_positive(self) -> bool:
        return self.minor_units > 0

    def _check_same_currency(self, other: Money, op: str) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {op} Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same_currency(other, "add")
        return Money(self.minor_units + other.minor_units, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same_currency(other, "subtract")
        return Money(self.minor_units - other.minor_units, self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same_currency(other, "compare")
        return self.minor_units < other.minor_units

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same_currency(other, "compare")
        return self.minor_units <= other.minor_units

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same_currency(other, "compare")
        return self.minor_units > other.minor_units

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_same_currency(other, "compare")
        return self.minor_units >= other.minor_units

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({str(self.amount)!r}, {self.currency.code!r})"
