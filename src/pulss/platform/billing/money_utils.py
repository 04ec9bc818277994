"""
Money and currency utilities using py-moneyed and Babel.

All billing amounts are ``Decimal`` values in rupees. Rounding is half-up to
the currency's minor unit (paise), which is how GST amounts are stated on
tax invoices; locale-aware formatting uses the Indian grouping (en_IN).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from babel import Locale
from babel.core import UnknownLocaleError
from babel.numbers import format_currency, format_decimal, get_currency_precision
from moneyed import Currency, Money, get_currency
from moneyed.classes import CurrencyDoesNotExist

DEFAULT_CURRENCY = "INR"
DEFAULT_LOCALE = "en_IN"

ZERO = Decimal("0")


class MoneyHandler:
    """Central handler for money operations with proper error handling."""

    def __init__(
        self, default_currency: str = DEFAULT_CURRENCY, default_locale: str = DEFAULT_LOCALE
    ) -> None:
        self.default_currency = self._validate_currency(default_currency)
        self.default_locale = self._validate_locale(default_locale)

    def _validate_currency(self, currency_code: str) -> Currency:
        """Validate and return Currency object."""
        try:
            return get_currency(currency_code.upper())
        except CurrencyDoesNotExist:
            raise ValueError(f"Invalid currency code: {currency_code}")

    def _validate_locale(self, locale_code: str) -> str:
        """Validate locale code."""
        try:
            Locale.parse(locale_code)
            return locale_code
        except (UnknownLocaleError, ValueError):
            return DEFAULT_LOCALE

    def to_decimal(self, amount: int | float | Decimal | str | None) -> Decimal:
        """Convert to Decimal without going through binary floats."""
        if amount is None:
            return ZERO
        if isinstance(amount, Decimal):
            return amount
        try:
            return Decimal(str(amount))
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {amount!r}")

    def quantize(self, amount: int | float | Decimal | str | None, currency: str | None = None) -> Decimal:
        """Round half-up to the currency minor unit."""
        precision = self.get_currency_precision(currency or self.default_currency.code)
        exponent = Decimal(1).scaleb(-precision)
        return self.to_decimal(amount).quantize(exponent, rounding=ROUND_HALF_UP)

    def create_money(
        self, amount: int | float | Decimal | str, currency: str | None = None
    ) -> Money:
        """Create Money object with proper validation."""
        currency = currency or self.default_currency.code
        validated_currency = self._validate_currency(currency)
        return Money(amount=self.to_decimal(amount), currency=validated_currency)

    def format_money(self, money: Money, locale: str | None = None, **kwargs: Any) -> str:
        """Format Money object with locale-aware formatting."""
        locale = locale or self.default_locale
        validated_locale = self._validate_locale(locale)

        try:
            return format_currency(
                number=money.amount, currency=money.currency.code, locale=validated_locale, **kwargs
            )
        except (TypeError, ValueError):
            # Fallback to simple formatting if locale issues
            return f"{money.currency.code} {money.amount}"

    def format_amount(self, amount: Decimal | int | float | str, locale: str | None = None) -> str:
        """Format a bare amount with two decimals and locale grouping (12,34,567.50)."""
        validated_locale = self._validate_locale(locale or self.default_locale)
        # Keep the locale's grouping (en_IN groups lakhs), fix two fraction digits
        integer_pattern = Locale.parse(validated_locale).decimal_formats[None].pattern
        integer_pattern = integer_pattern.split(";")[0].split(".")[0]
        return format_decimal(
            self.quantize(amount),
            format=f"{integer_pattern}.00",
            locale=validated_locale,
        )

    def get_currency_precision(self, currency_code: str) -> int:
        """Get decimal precision for a currency."""
        return get_currency_precision(currency_code.upper())


# Global instance for convenience
money_handler = MoneyHandler()


def round_amount(amount: int | float | Decimal | str | None) -> Decimal:
    """Round to paise (half-up) with the default handler."""
    return money_handler.quantize(amount)


def create_money(amount: int | float | Decimal | str, currency: str = DEFAULT_CURRENCY) -> Money:
    """Create Money object with default handler."""
    return money_handler.create_money(amount, currency)


def format_inr(amount: Decimal | int | float | str, locale: str | None = None) -> str:
    """Format a rupee amount, e.g. ``₹1,178.82``."""
    return money_handler.format_money(create_money(round_amount(amount)), locale)


__all__ = [
    "MoneyHandler",
    "money_handler",
    "round_amount",
    "create_money",
    "format_inr",
    "ZERO",
]
