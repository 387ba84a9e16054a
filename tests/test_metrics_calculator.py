import importlib
from datetime import date, timedelta

import pytest

from models import IndexPoint, ProviderQuote, SortKey, SortState, Tier


def _hist(values):
    start = date(2025, 1, 1)
    return tuple(
        IndexPoint(date=start + timedelta(days=i), label="", index_value=v,
                   low_price=v - 1, high_price=v + 1, spread=2.0, provider_count=10)
        for i, v in enumerate(values)
    )


def _q(name, price, prev=None, tier=Tier.SPECIALIST):
    return ProviderQuote(name=name, current_price=price,
                         previous_price=price if prev is None else prev, tier=tier)


def test_day_change_scenario_plus_ten_percent():
    calc = importlib.import_module("metrics_calculator")
    hist = (
        IndexPoint(date=date(2025, 3, 2), label="Mar 2", index_value=3.00, low_price=2.0, high_price=5.0, spread=3.0),
        IndexPoint(date=date(2025, 3, 3), label="Mar 3", index_value=3.30, low_price=2.1, high_price=5.2, spread=3.1),
    )
    assert calc.day_change_pct(hist) == pytest.approx(10.0)
    assert f"{calc.day_change_pct(hist):+.2f}%" == "+10.00%"


def test_day_change_zero_below_two_points():
    calc = importlib.import_module("metrics_calculator")
    assert calc.day_change_pct(()) == 0.0
    assert calc.day_change_pct(_hist([3.0])) == 0.0


def test_week_change_boundaries():
    calc = importlib.import_module("metrics_calculator")
    assert calc.week_change_pct(()) == 0.0
    assert calc.week_change_pct(_hist([3.0])) == 0.0
    # shorter than 8 points -> clamped to the oldest
    assert calc.week_change_pct(_hist([2.0, 2.5, 3.0])) == pytest.approx(50.0)
    # strict variant reports 0 below 8 points
    assert calc.week_change_pct(_hist([2.0, 2.5, 3.0]), clamp=False) == 0.0
    # exactly 8 points -> compares against the first
    eight = _hist([2.0, 9, 9, 9, 9, 9, 9, 2.2])
    assert calc.week_change_pct(eight) == pytest.approx(10.0)
    assert calc.week_change_pct(eight, clamp=False) == pytest.approx(10.0)
    # longer history -> exactly 7 positions back
    ten = _hist([1.0, 1.0, 4.0, 9, 9, 9, 9, 9, 9, 5.0])
    assert calc.week_change_pct(ten) == pytest.approx(25.0)


def test_month_change_clamped():
    calc = importlib.import_module("metrics_calculator")
    values = [2.0] + [3.0] * 9 + [4.0]
    assert calc.month_change_pct(_hist(values)) == pytest.approx(100.0)


def test_change_pct_zero_base():
    calc = importlib.import_module("metrics_calculator")
    assert calc.change_pct(3.0, 0.0) == 0.0


def test_quote_change_zero_baseline_guard():
    calc = importlib.import_module("metrics_calculator")
    vast = _q("Vast.ai", 1.87, prev=0.0, tier=Tier.MARKETPLACE)
    assert calc.quote_change_pct(vast) == pytest.approx(187.0)
    assert calc.quote_change_pct(_q("AWS", 4.4, prev=4.0)) == pytest.approx(10.0)
    assert calc.quote_change_pct(_q("AWS", 4.0)) == 0.0


def test_zero_baseline_quote_ranks_as_top_mover():
    calc = importlib.import_module("metrics_calculator")
    vast = _q("Vast.ai", 1.87, prev=0.0, tier=Tier.MARKETPLACE)
    aws = _q("AWS", 4.4, prev=4.0, tier=Tier.HYPERSCALER)
    assert f"{calc.quote_change_pct(vast):+.2f}%" == "+187.00%"
    assert calc.top_movers([aws, vast])[0].name == "Vast.ai"
    ordered = calc.sort_quotes([vast, aws], SortState(SortKey.CHANGE, True))
    assert [q.name for q in ordered] == ["Vast.ai", "AWS"]


def test_descending_is_exact_reverse_with_tied_keys():
    calc = importlib.import_module("metrics_calculator")
    quotes = [_q("C", 2.0), _q("A", 2.0), _q("B", 2.0), _q("D", 1.0)]
    asc = calc.sort_quotes(quotes, SortState(SortKey.PRICE, False))
    desc = calc.sort_quotes(quotes, SortState(SortKey.PRICE, True))
    assert [q.name for q in asc] == ["D", "A", "B", "C"]
    assert desc == tuple(reversed(asc))


def test_tier_averages_omit_empty_tiers():
    calc = importlib.import_module("metrics_calculator")
    quotes = [
        _q("AWS", 4.0, tier=Tier.HYPERSCALER),
        _q("Azure", 6.0, tier=Tier.HYPERSCALER),
        _q("Vast.ai", 1.8, tier=Tier.MARKETPLACE),
    ]
    avgs = calc.tier_averages(quotes)
    assert avgs == {Tier.HYPERSCALER: pytest.approx(5.0), Tier.MARKETPLACE: pytest.approx(1.8)}
    assert Tier.BUDGET not in avgs

    aggs = calc.tier_aggregates(quotes)
    assert [a.tier for a in aggs] == [Tier.HYPERSCALER, Tier.MARKETPLACE]
    assert aggs[0].count == 2
    assert aggs[0].label == "Hyperscaler"
    assert aggs[0].bar_fraction == pytest.approx(5.0 / 6.0)
    assert calc.tier_aggregates([]) == ()


def test_tier_bar_fraction_scale_has_floor_of_one():
    calc = importlib.import_module("metrics_calculator")
    aggs = calc.tier_aggregates([_q("Cheap", 0.5, tier=Tier.BUDGET)])
    assert aggs[0].bar_fraction == pytest.approx(0.5)


def test_price_distribution():
    calc = importlib.import_module("metrics_calculator")
    quotes = [_q("B", 3.0), _q("A", 1.0), _q("C", 2.0), _q("D", 6.0)]
    d = calc.price_distribution(quotes)
    assert [q.name for q in d.quotes] == ["A", "C", "B", "D"]
    assert (d.min, d.max, d.count) == (1.0, 6.0, 4)
    assert d.median == pytest.approx(2.5)
    assert d.mean == pytest.approx(3.0)
    assert calc.price_distribution([]).count == 0


def test_sort_toggle_same_key_reverses_new_key_ascends():
    calc = importlib.import_module("metrics_calculator")
    quotes = [_q("b-cloud", 3.0, prev=2.0), _q("Alpha", 1.0, prev=1.1), _q("Cirrus", 2.0, prev=2.0)]

    state = SortState().toggle(SortKey.NAME)
    first = calc.sort_quotes(quotes, state)
    assert [q.name for q in first] == ["Alpha", "b-cloud", "Cirrus"]
    state = state.toggle(SortKey.NAME)
    assert state.descending
    assert calc.sort_quotes(quotes, state) == tuple(reversed(first))

    state = state.toggle("price")
    assert state == SortState(SortKey.PRICE, False)
    assert [q.current_price for q in calc.sort_quotes(quotes, state)] == [1.0, 2.0, 3.0]

    state = state.toggle(SortKey.CHANGE)
    assert [q.name for q in calc.sort_quotes(quotes, state)] == ["Alpha", "Cirrus", "b-cloud"]


def test_default_sort_state_is_price_ascending():
    state = SortState()
    assert state.key == SortKey.PRICE and not state.descending
    # price is already the key: selecting it again flips direction
    assert state.toggle(SortKey.PRICE).descending


def test_index_metrics_bundle_and_alert():
    calc = importlib.import_module("metrics_calculator")
    m = calc.index_metrics(_hist([3.0, 3.3]))
    assert m.latest.index_value == 3.3
    assert m.previous.index_value == 3.0
    assert m.day_change_pct == pytest.approx(10.0)
    assert m.alert_triggered

    calm = calc.index_metrics(_hist([3.0, 3.03]))
    assert not calm.alert_triggered
    assert calc.index_metrics(()).latest is None


def test_top_movers():
    calc = importlib.import_module("metrics_calculator")
    quotes = [_q("A", 2.0, prev=1.0), _q("B", 1.0), _q("C", 0.9, prev=1.0)]
    assert [q.name for q in calc.top_movers(quotes)] == ["A", "C"]
