"""
Currency conversion: the single place where exchange-rate direction is decided.

All amounts pivot through USD. Stored rates follow a dual convention:

  - Fiat:   rate = units per 1 USD  → to USD divides,   from USD multiplies
            5000 ARS @ 1415  → 5000 / 1415  = 3.53 USD
  - Crypto: rate = USD per 1 unit   → to USD multiplies, from USD divides
            0.5 BTC @ 50000  → 0.5 * 50000 = 25000.00 USD

Getting this backwards silently inflates balances by the square of the rate,
so every caller must go through these functions and must classify currencies
with CurrencyClassifier rather than guessing from the code.

Every guard returns Decimal("0") instead of raising: these functions run inside
dashboard aggregation where a missing rate must not break the whole response.
Callers that need strict validation check for a zero result themselves.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Literal, Optional, Union

from fxengine.config import settings

BASE_CURRENCY = "USD"

Number = Union[Decimal, int, float, str]
DisplayMode = Literal["foreign-to-usd", "usd-to-foreign"]

ZERO = Decimal("0")
_CENT = Decimal("0.01")
# asset_snapshot.balance is NUMERIC(19, 8)
_CRYPTO_QUANTUM = Decimal("0.00000001")


class CurrencyClassifier:
    """Decides whether a currency's stored rate is crypto-style (USD per unit)."""

    def __init__(self, crypto_currencies: Iterable[str] = ()):
        self._crypto = frozenset(c.upper() for c in crypto_currencies)

    @property
    def crypto_currencies(self) -> frozenset[str]:
        return self._crypto

    def is_crypto(self, currency: str) -> bool:
        code = (currency or "").upper()
        if code == BASE_CURRENCY:
            return False
        return code in self._crypto

    def with_currencies(self, extra: Iterable[str]) -> "CurrencyClassifier":
        return CurrencyClassifier(self._crypto | {c.upper() for c in extra})


default_classifier = CurrencyClassifier(settings.crypto_currencies_set)


def _classifier(classifier: Optional[CurrencyClassifier]) -> CurrencyClassifier:
    return classifier if classifier is not None else default_classifier


def to_decimal(value: Optional[Number]) -> Optional[Decimal]:
    """Coerce to a finite Decimal, or None. Floats go through str() to avoid binary noise."""
    if value is None or isinstance(value, bool):
        return None
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def _usable_rate(rate: Optional[Number]) -> Optional[Decimal]:
    d = to_decimal(rate)
    if d is None or d <= 0:
        return None
    return d


def round_money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def round_amount(
    value: Decimal, currency: str, classifier: Optional[CurrencyClassifier] = None
) -> Decimal:
    """Round an amount held in `currency`: cents for USD and fiat, 8 places for crypto."""
    if _classifier(classifier).is_crypto(currency):
        return value.quantize(_CRYPTO_QUANTUM, rounding=ROUND_HALF_UP)
    return round_money(value)


def is_crypto(currency: str, classifier: Optional[CurrencyClassifier] = None) -> bool:
    return _classifier(classifier).is_crypto(currency)


def _raw_to_usd(amount: Decimal, currency: str, rate: Decimal, classifier: CurrencyClassifier) -> Decimal:
    if classifier.is_crypto(currency):
        return amount * rate
    return amount / rate


def _raw_from_usd(usd_amount: Decimal, currency: str, rate: Decimal, classifier: CurrencyClassifier) -> Decimal:
    if classifier.is_crypto(currency):
        return usd_amount / rate
    return usd_amount * rate


def to_usd(
    amount: Optional[Number],
    currency: str,
    rate: Optional[Number],
    classifier: Optional[CurrencyClassifier] = None,
):
    """
    Convert an amount in `currency` to USD using the stored rate.

    Returns the amount untouched for USD, and Decimal("0") for a zero amount
    or a missing / non-positive rate.
    """
    if not amount:
        return ZERO
    if currency == BASE_CURRENCY:
        return amount
    amt = to_decimal(amount)
    r = _usable_rate(rate)
    if amt is None or r is None:
        return ZERO
    return round_money(_raw_to_usd(amt, currency, r, _classifier(classifier)))


def from_usd(
    usd_amount: Optional[Number],
    currency: str,
    rate: Optional[Number],
    classifier: Optional[CurrencyClassifier] = None,
):
    """Convert a USD amount into `currency`. Mirror image of to_usd."""
    if not usd_amount:
        return ZERO
    if currency == BASE_CURRENCY:
        return usd_amount
    amt = to_decimal(usd_amount)
    r = _usable_rate(rate)
    if amt is None or r is None:
        return ZERO
    cls = _classifier(classifier)
    return round_amount(_raw_from_usd(amt, currency, r, cls), currency, cls)


def convert(
    amount: Optional[Number],
    from_currency: str,
    from_rate: Optional[Number],
    to_currency: str,
    to_rate: Optional[Number],
    classifier: Optional[CurrencyClassifier] = None,
):
    """
    Convert between any two currencies through the USD pivot.

    The USD leg is kept unrounded; the result is rounded once, to cents for
    USD and fiat targets and to 8 places for crypto targets.
    A missing rate on either non-USD leg yields Decimal("0").
    """
    if from_currency == to_currency:
        return amount
    if not amount:
        return ZERO
    amt = to_decimal(amount)
    if amt is None:
        return ZERO
    cls = _classifier(classifier)

    if from_currency == BASE_CURRENCY:
        usd_amount = amt
    else:
        r = _usable_rate(from_rate)
        if r is None:
            return ZERO
        usd_amount = _raw_to_usd(amt, from_currency, r, cls)

    if to_currency == BASE_CURRENCY:
        return round_money(usd_amount)

    r = _usable_rate(to_rate)
    if r is None:
        return ZERO
    return round_amount(_raw_from_usd(usd_amount, to_currency, r, cls), to_currency, cls)


def get_display_rate(
    rate: Optional[Number],
    currency: str,
    mode: DisplayMode = "usd-to-foreign",
    classifier: Optional[CurrencyClassifier] = None,
) -> Decimal:
    """
    Rate as shown to a user.

    usd-to-foreign: "1 USD = X FOREIGN" (raw fiat rate)
    foreign-to-usd: "1 FOREIGN = X USD" (reciprocal of the fiat rate)
    Crypto rates are already USD per unit and display the same in both modes.
    """
    r = _usable_rate(rate)
    if r is None:
        return ZERO
    if currency == BASE_CURRENCY:
        return Decimal("1")
    if _classifier(classifier).is_crypto(currency):
        return r
    if mode == "foreign-to-usd":
        return Decimal("1") / r
    return r
