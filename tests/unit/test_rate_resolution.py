"""
Unit tests for fxengine/services/rate_resolution.py and rate_store.pick_best_rate
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from fxengine.services.rate_resolution import (
    FavoriteRate,
    RateOption,
    RateSelection,
    build_rate_options,
    get_default_rate,
    get_effective_rate,
    get_rate_type_label,
)
from fxengine.services.rate_store import pick_best_rate


def _option(rate_type: str, rate: str) -> RateOption:
    return RateOption(type=rate_type, rate=Decimal(rate), label=get_rate_type_label(rate_type))


ARS_OPTIONS = [
    _option("official", "1415"),
    _option("blue", "1480"),
    _option("mep", "1450"),
]


# ---------------------------------------------------------------------------
# get_default_rate
# ---------------------------------------------------------------------------


def test_blue_beats_official_without_favorites():
    assert get_default_rate(ARS_OPTIONS, "ARS").type == "blue"


def test_official_when_no_blue():
    options = [_option("mep", "1450"), _option("official", "1415")]
    assert get_default_rate(options, "ARS").type == "official"


def test_first_option_when_neither_blue_nor_official():
    options = [_option("tourist", "1800"), _option("mep", "1450")]
    assert get_default_rate(options, "ARS").type == "tourist"


def test_favorite_wins_over_blue():
    favorites = [FavoriteRate(currency="ARS", type="mep", order=0)]
    assert get_default_rate(ARS_OPTIONS, "ARS", favorites).type == "mep"


def test_lowest_order_favorite_wins():
    favorites = [
        FavoriteRate(currency="ARS", type="official", order=3),
        FavoriteRate(currency="ARS", type="mep", order=1),
    ]
    assert get_default_rate(ARS_OPTIONS, "ARS", favorites).type == "mep"


def test_favorites_for_other_currencies_ignored():
    favorites = [FavoriteRate(currency="BRL", type="mep", order=0)]
    assert get_default_rate(ARS_OPTIONS, "ARS", favorites).type == "blue"


def test_unavailable_favorite_type_falls_through():
    favorites = [FavoriteRate(currency="ARS", type="tourist", order=0)]
    assert get_default_rate(ARS_OPTIONS, "ARS", favorites).type == "blue"


def test_custom_is_never_a_default():
    assert get_default_rate([_option("custom", "1")], "ARS") is None
    options = [_option("custom", "1"), _option("mep", "1450")]
    assert get_default_rate(options, "ARS").type == "mep"


def test_no_options_no_default():
    assert get_default_rate([], "ARS") is None


# ---------------------------------------------------------------------------
# Labels / options / effective rate
# ---------------------------------------------------------------------------


def test_rate_type_labels():
    assert get_rate_type_label("blue") == "Blue (Informal)"
    assert get_rate_type_label("mep") == "MEP"
    assert get_rate_type_label("card") == "Card"


def test_build_rate_options_from_rows():
    row = SimpleNamespace(id="r1", type="blue", rate=1480.5, date=None)
    [option] = build_rate_options([row])
    assert option.exchange_rate_id == "r1"
    assert option.rate == Decimal("1480.5")
    assert option.label == "Blue (Informal)"


def test_effective_rate_inverts_for_display():
    assert get_effective_rate(4, invert=False) == Decimal("4")
    assert get_effective_rate(4, invert=True) == Decimal("0.25")
    assert get_effective_rate(0, invert=True) == Decimal("0")
    assert get_effective_rate(None, invert=False) == Decimal("0")


# ---------------------------------------------------------------------------
# RateSelection
# ---------------------------------------------------------------------------


def test_selection_applies_default_once():
    selection = RateSelection()
    selection.apply_default(ARS_OPTIONS, "ARS")
    assert selection.active_type == "blue"

    selection.select_type(ARS_OPTIONS, "official")
    # a later default pass must not override the user's choice
    assert selection.apply_default(ARS_OPTIONS, "ARS") is None
    assert selection.active_type == "official"
    assert selection.active_rate == Decimal("1415")


def test_custom_rate_clears_stored_selection():
    selection = RateSelection()
    selection.select_type(ARS_OPTIONS, "mep")
    selection.select_custom("1500")

    assert selection.is_custom is True
    assert selection.rate_type is None
    assert selection.active_type == "custom"
    assert selection.active_rate == Decimal("1500")


def test_stored_selection_clears_custom_rate():
    selection = RateSelection()
    selection.select_custom("1500")
    selection.select_type(ARS_OPTIONS, "blue")

    assert selection.is_custom is False
    assert selection.custom_rate is None
    assert selection.active_rate == Decimal("1480")


def test_selecting_custom_type_switches_to_custom_mode():
    selection = RateSelection()
    selection.select_type(ARS_OPTIONS, "blue")
    assert selection.select_type(ARS_OPTIONS, "custom") is None
    assert selection.is_custom is True
    assert selection.active_rate is None


def test_unknown_type_rejected():
    selection = RateSelection()
    with pytest.raises(ValueError):
        selection.select_type(ARS_OPTIONS, "tourist")


# ---------------------------------------------------------------------------
# pick_best_rate (server-side priority)
# ---------------------------------------------------------------------------


def _row(rate_type, rate):
    return SimpleNamespace(type=rate_type, rate=rate)


def test_best_rate_priority_crypto_blue_official():
    rows = [_row("official", 1415), _row("blue", 1480), _row("crypto", 1500)]
    best = pick_best_rate(rows)
    assert (best.type, best.rate) == ("crypto", Decimal("1500"))

    best = pick_best_rate(rows[:2])
    assert best.type == "blue"


def test_best_rate_falls_back_to_first_row():
    best = pick_best_rate([_row("mep", 1450), _row("tourist", 1800)])
    assert (best.type, best.rate) == ("mep", Decimal("1450"))


def test_best_rate_none_for_no_rows():
    assert pick_best_rate([]) is None
