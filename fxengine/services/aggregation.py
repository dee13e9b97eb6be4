"""
Cross-currency totals for budget and wealth dashboards.

Raw amounts in different currencies are never added together. Every item is
brought to USD (its pre-computed amount_in_usd when the write path stored one,
otherwise to_usd with the item's rate), summed there, and only then converted
into the display currency.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from fxengine.services.conversion import (
    BASE_CURRENCY,
    CurrencyClassifier,
    Number,
    ZERO,
    default_classifier,
    from_usd,
    round_amount,
    round_money,
    to_decimal,
    to_usd,
)

# Fiat currencies worth more than 1 USD; the inflation guard cannot apply to them.
STRONG_CURRENCIES = frozenset({"GBP", "EUR", "KWD", "BHD", "OMR", "JOD", "CHF"})
SANITY_RATIO = Decimal("1.5")


class ConversionSanityError(ValueError):
    """A write-path USD value looks like the rate was applied in the wrong direction."""


@dataclass(frozen=True)
class MoneyItem:
    amount: Decimal
    currency: str
    amount_in_usd: Optional[Decimal] = None
    rate: Optional[Decimal] = None


@dataclass(frozen=True)
class CurrencyTotal:
    currency: str
    total: Decimal
    total_in_usd: Decimal


def item_usd(item: MoneyItem, classifier: Optional[CurrencyClassifier] = None) -> Decimal:
    if item.amount_in_usd is not None:
        return to_decimal(item.amount_in_usd) or ZERO
    return to_decimal(to_usd(item.amount, item.currency, item.rate, classifier)) or ZERO


def sum_in_usd(
    items: Iterable[MoneyItem], classifier: Optional[CurrencyClassifier] = None
) -> Decimal:
    return round_money(sum((item_usd(i, classifier) for i in items), ZERO))


def total_in_currency(
    items: Iterable[MoneyItem],
    target_currency: str,
    target_rate: Optional[Number],
    classifier: Optional[CurrencyClassifier] = None,
) -> CurrencyTotal:
    """
    Total in the display currency plus the USD total.

    Items already in the target currency contribute their raw amount so a
    single-currency budget is not disturbed by rounding through USD. A crypto
    target keeps 8 decimal places; fiat and USD targets are rounded to cents.
    """
    total = ZERO
    total_in_usd = ZERO
    for item in items:
        usd = item_usd(item, classifier)
        total_in_usd += usd
        if item.currency == target_currency:
            total += to_decimal(item.amount) or ZERO
        else:
            total += to_decimal(from_usd(usd, target_currency, target_rate, classifier)) or ZERO
    return CurrencyTotal(
        currency=target_currency,
        total=round_amount(total, target_currency, classifier),
        total_in_usd=round_money(total_in_usd),
    )


def balance_in_usd_for_write(
    balance: Number,
    currency: str,
    rate: Optional[Number],
    classifier: Optional[CurrencyClassifier] = None,
) -> Decimal:
    """
    USD value to persist alongside a native balance.

    Unlike to_usd this is strict: it raises instead of storing a zero or an
    obviously inverted value.
    """
    amount = to_decimal(balance)
    if amount is None:
        raise ConversionSanityError(f"Invalid balance: {balance!r}")
    if currency == BASE_CURRENCY:
        return round_money(amount)

    r = to_decimal(rate)
    if r is None or r <= 0:
        raise ConversionSanityError(
            f"Invalid exchange rate: {rate!r}. Rate must be positive."
        )

    cls = classifier if classifier is not None else default_classifier
    usd = to_decimal(to_usd(amount, currency, r, cls)) or ZERO

    if (
        not cls.is_crypto(currency)
        and currency not in STRONG_CURRENCIES
        and abs(usd) > abs(amount) * SANITY_RATIO
    ):
        raise ConversionSanityError(
            f"USD balance ({usd}) for {amount} {currency} is larger than the native "
            f"balance; the rate ({r}) looks inverted."
        )
    return usd
