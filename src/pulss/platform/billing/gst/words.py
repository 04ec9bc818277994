"""Rupee amounts in words, Indian numbering (crore, lakh, thousand)."""

from decimal import ROUND_HALF_UP, Decimal

_ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
_TEENS = [
    "Ten",
    "Eleven",
    "Twelve",
    "Thirteen",
    "Fourteen",
    "Fifteen",
    "Sixteen",
    "Seventeen",
    "Eighteen",
    "Nineteen",
]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]

_SCALES = (
    (10_000_000, "Crore"),
    (100_000, "Lakh"),
    (1_000, "Thousand"),
    (100, "Hundred"),
)


def _below_hundred(n: int) -> list[str]:
    if n >= 20:
        return [w for w in (_TENS[n // 10], _ONES[n % 10]) if w]
    if n >= 10:
        return [_TEENS[n - 10]]
    return [_ONES[n]] if n else []


def integer_to_words(n: int) -> str:
    """``1234567`` -> ``"Twelve Lakh Thirty Four Thousand Five Hundred Sixty Seven"``."""
    if n < 0:
        raise ValueError("Amount cannot be negative")
    if n == 0:
        return "Zero"

    words: list[str] = []
    for scale, name in _SCALES:
        count, n = divmod(n, scale)
        if count:
            # Counts above 99 crore recurse, e.g. "One Hundred Crore"
            words.extend([integer_to_words(count), name])
    words.extend(_below_hundred(n))
    return " ".join(words)


def number_to_words(amount: Decimal | int | float | str) -> str:
    """Render an INR amount for the "amount in words" line of a tax invoice.

    >>> number_to_words(Decimal("1234567.50"))
    'Twelve Lakh Thirty Four Thousand Five Hundred Sixty Seven Rupees and Fifty Paise Only'
    """
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if value < 0:
        raise ValueError("Amount cannot be negative")
    rupees = int(value)
    paise = int((value - rupees) * 100)

    words = f"{integer_to_words(rupees)} Rupees"
    if paise:
        words += f" and {integer_to_words(paise)} Paise"
    return f"{words} Only"


__all__ = ["integer_to_words", "number_to_words"]
