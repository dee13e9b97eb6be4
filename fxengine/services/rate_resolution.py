"""
Default rate resolution for a currency.

Priority:
  1. the user's first favorite (by order) for this currency whose type is available
  2. "blue"
  3. "official"
  4. first available option
The "custom" pseudo-rate is never picked automatically.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from fxengine.services.conversion import Number, to_decimal

CUSTOM_RATE_TYPE = "custom"

RATE_TYPE_LABELS = {
    "official": "Official",
    "blue": "Blue (Informal)",
    "mep": "MEP",
    "crypto": "Crypto",
    "tourist": "Tourist",
}


@dataclass(frozen=True)
class RateOption:
    type: str
    rate: Decimal
    label: str
    exchange_rate_id: Optional[str] = None
    date: Optional[datetime] = None


@dataclass(frozen=True)
class FavoriteRate:
    currency: str
    type: str
    order: int


def get_rate_type_label(rate_type: str) -> str:
    if rate_type in RATE_TYPE_LABELS:
        return RATE_TYPE_LABELS[rate_type]
    return rate_type[:1].upper() + rate_type[1:]


def build_rate_options(rows: Iterable) -> list[RateOption]:
    """RateOptions from ExchangeRate rows, preserving row order."""
    return [
        RateOption(
            type=row.type,
            rate=Decimal(str(row.rate)),
            label=get_rate_type_label(row.type),
            exchange_rate_id=str(row.id),
            date=row.date,
        )
        for row in rows
    ]


def get_rate_by_type(options: Sequence[RateOption], rate_type: str) -> Optional[RateOption]:
    for option in options:
        if option.type == rate_type:
            return option
    return None


def get_default_rate(
    options: Sequence[RateOption],
    currency: str,
    favorites: Optional[Sequence[FavoriteRate]] = None,
) -> Optional[RateOption]:
    candidates = [o for o in options if o.type != CUSTOM_RATE_TYPE]
    if not candidates:
        return None

    if favorites:
        for fav in sorted(favorites, key=lambda f: f.order):
            if fav.currency != currency:
                continue
            match = get_rate_by_type(candidates, fav.type)
            if match:
                return match

    for preferred in ("blue", "official"):
        match = get_rate_by_type(candidates, preferred)
        if match:
            return match

    return candidates[0]


def get_effective_rate(rate: Optional[Number], invert: bool) -> Decimal:
    """
    Reading-direction toggle for display ("1 A = x B" vs "1 B = x A").

    Independent of the fiat/crypto storage convention.
    """
    r = to_decimal(rate)
    if r is None:
        return Decimal("0")
    if not invert:
        return r
    if r == 0:
        return Decimal("0")
    return Decimal("1") / r


class RateSelection:
    """
    Active rate for a form field: either a stored rate type or a user-typed custom value.

    The two modes are mutually exclusive; entering one clears the other.
    """

    def __init__(self):
        self.rate_type: Optional[str] = None
        self.rate: Optional[Decimal] = None
        self.custom_rate: Optional[Decimal] = None
        self.is_custom = False

    def apply_default(
        self,
        options: Sequence[RateOption],
        currency: str,
        favorites: Optional[Sequence[FavoriteRate]] = None,
    ) -> Optional[RateOption]:
        """Preselect the default rate unless the user already chose something."""
        if self.is_custom or self.rate_type is not None:
            return None
        default = get_default_rate(options, currency, favorites)
        if default:
            self.rate_type = default.type
            self.rate = default.rate
        return default

    def select_type(self, options: Sequence[RateOption], rate_type: str) -> Optional[RateOption]:
        if rate_type == CUSTOM_RATE_TYPE:
            self.select_custom(None)
            return None
        option = get_rate_by_type(options, rate_type)
        if option is None:
            raise ValueError(f"Rate type '{rate_type}' is not available")
        self.is_custom = False
        self.custom_rate = None
        self.rate_type = option.type
        self.rate = option.rate
        return option

    def select_custom(self, value: Optional[Number]) -> None:
        self.is_custom = True
        self.rate_type = None
        self.rate = None
        self.custom_rate = to_decimal(value)

    @property
    def active_rate(self) -> Optional[Decimal]:
        return self.custom_rate if self.is_custom else self.rate

    @property
    def active_type(self) -> Optional[str]:
        return CUSTOM_RATE_TYPE if self.is_custom else self.rate_type
