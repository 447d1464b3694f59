"""
Fixed-point money.

Amounts are integer minor units plus an ISO 4217 currency code. Upstream
decimal strings are converted with ``Decimal`` and rejected if they carry
more precision than the currency allows.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable

from ..errors import CurrencyMismatch

# ISO 4217 minor-unit exponents that differ from 2
_ZERO_DECIMAL = {
    "BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF", "KRW", "PYG",
    "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
}
_THREE_DECIMAL = {"BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"}

_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£", "JPY": "¥"}


def currency_exponent(currency: str) -> int:
    code = currency.upper()
    if code in _ZERO_DECIMAL:
        return 0
    if code in _THREE_DECIMAL:
        return 3
    return 2


def normalize_currency(currency: str) -> str:
    code = (currency or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"Invalid ISO currency code: {currency!r}")
    return code


@dataclass(frozen=True)
class Money:
    amount_minor: int
    currency: str

    def __post_init__(self):
        if isinstance(self.amount_minor, bool) or not isinstance(self.amount_minor, int):
            raise TypeError("amount_minor must be an int")
        object.__setattr__(self, "currency", normalize_currency(self.currency))

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(0, currency)

    @classmethod
    def from_decimal_string(cls, value, currency: str) -> "Money":
        """Parse an upstream amount such as "123.45" without going through float."""
        code = normalize_currency(currency)
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid amount: {value!r}")
        if not amount.is_finite():
            raise ValueError(f"Invalid amount: {value!r}")

        exponent = currency_exponent(code)
        scaled = amount.scaleb(exponent)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{value!r} has more precision than {code} allows")
        return cls(int(scaled), code)

    def _check(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot combine Money with {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatch(
                f"Cannot combine {self.currency} with {other.currency}",
                expected=self.currency,
                got=other.currency,
            )

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount_minor + other.amount_minor, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount_minor - other.amount_minor, self.currency)

    def __mul__(self, quantity: int) -> "Money":
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise TypeError("Money can only be multiplied by an int quantity")
        return Money(self.amount_minor * quantity, self.currency)

    __rmul__ = __mul__

    def to_decimal(self) -> Decimal:
        return Decimal(self.amount_minor).scaleb(-currency_exponent(self.currency))

    def display(self) -> str:
        """"EUR 230.00" style used in draft and guest views."""
        exponent = currency_exponent(self.currency)
        return f"{self.currency} {self.to_decimal():.{exponent}f}"

    def format_currency(self) -> str:
        """"€230.00" style used in receipts."""
        exponent = currency_exponent(self.currency)
        amount = self.to_decimal()
        sign = "-" if amount < 0 else ""
        number = f"{abs(amount):,.{exponent}f}"
        symbol = _SYMBOLS.get(self.currency)
        if symbol:
            return f"{sign}{symbol}{number}"
        return f"{sign}{self.currency} {number}"

    def __str__(self) -> str:
        return self.display()


def sum_money(items: Iterable[Money], currency: str) -> Money:
    total = Money.zero(currency)
    for item in items:
        total = total + item
    return total
