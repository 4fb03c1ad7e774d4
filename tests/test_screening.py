"""
Tests for stock screening: fundamental and technical scores, signals,
the quality filter and the tier split over a market snapshot.
"""

from __future__ import annotations

import pytest

from conftest import make_snapshot
from tools.models import StockFundamentals, StockQuote
from tools.screening import (
    TIER1_SIZE,
    TIER2_SIZE,
    TIER3_SIZE,
    UNKNOWN_SECTOR,
    fundamental_score,
    passes_screen,
    screen_snapshot,
    screen_stock,
    technical_score,
)


def _quote(code: str = "1155.KL", price: float = 2.0, **kw) -> StockQuote:
    kw.setdefault("previous_close", price)
    kw.setdefault("volume", 1000)
    return StockQuote(code=code, price=price, **kw)


class TestFundamentalScore:
    def test_category_only(self):
        assert fundamental_score(1, None, False, None, None) == 45
        assert fundamental_score(6, None, False, None, None) == 10

    def test_unrecognised_category_scores_as_unknown(self):
        assert fundamental_score(9, None, False, None, None) == fundamental_score(2, None, False, None, None)

    @pytest.mark.parametrize("pe, points", [
        (7.0, 25), (10.0, 22), (14.0, 18), (18.0, 12), (25.0, 5), (40.0, 0), (-5.0, 0),
    ])
    def test_pe_bands(self, pe, points):
        assert fundamental_score(2, pe, False, None, None) == 12 + points

    @pytest.mark.parametrize("growth, points", [(25.0, 20), (15.0, 18), (5.0, 16), (-10.0, 15), (None, 15)])
    def test_profitability_and_growth(self, growth, points):
        assert fundamental_score(2, None, True, growth, None) == 12 + points

    @pytest.mark.parametrize("dividend, points", [(7.0, 15), (5.0, 12), (3.0, 8), (1.5, 4), (0.0, 0)])
    def test_dividend_bands(self, dividend, points):
        assert fundamental_score(2, None, False, None, dividend) == 12 + points

    def test_capped_at_100(self):
        # 45 + 25 + 15 + 5 + 15
        assert fundamental_score(1, 7.0, True, 25.0, 7.0) == 100


class TestTechnicalScore:
    def test_neutral(self):
        assert technical_score(50.0, 1.0, 0.0, False, False) == 50

    def test_volume_and_momentum(self):
        assert technical_score(50.0, 2.5, 2.0, False, False) == 85
        assert technical_score(50.0, 0.4, -4.0, False, False) == 30

    def test_support_bounce_needs_flat_or_up_day(self):
        assert technical_score(10.0, 1.0, 0.0, True, False) == 65
        assert technical_score(10.0, 1.0, -0.5, True, False) == 50

    def test_range_extremes_penalised(self):
        assert technical_score(2.0, 1.0, 0.0, True, False) == 55
        assert technical_score(97.0, 1.0, 0.0, False, True) == 45

    def test_clamped_to_100(self):
        assert technical_score(90.0, 4.0, 5.0, False, True) == 100


class TestScreenStock:
    def test_no_history_is_neutral(self):
        stock = screen_stock(_quote())
        assert stock.volume_ratio == 1.0
        assert stock.price_position == 50.0
        assert not stock.near_support and not stock.near_resistance
        assert stock.sector == UNKNOWN_SECTOR
        assert stock.yoy_category == 2
        assert stock.technical_score == 50
        assert stock.signals == []

    def test_volume_spike_at_support(self):
        quote = _quote(volume=3000, avg_volume=1000.0, week52_high=3.0, week52_low=1.9)
        stock = screen_stock(quote)

        assert stock.volume_ratio == pytest.approx(3.0)
        assert stock.price_position == pytest.approx(100 / 11)
        assert stock.near_support
        assert stock.technical_score == 90
        assert stock.fundamental_score == 12
        assert stock.overall_score == pytest.approx(12 * 0.6 + 90 * 0.4)
        assert stock.signals == ["Unusual Volume (2x+)", "Support Bounce"]
        assert passes_screen(stock)

    def test_fundamentals_drive_score_and_signals(self):
        fundamentals = StockFundamentals(
            code="1155.KL", name="Maybank", sector="Financial Services",
            profit=120.0, profit_prev=100.0, yoy_category=1, pe_ratio=9.0, dividend_yield=5.5,
        )
        stock = screen_stock(_quote(), fundamentals)

        assert stock.name == "Maybank"
        assert stock.sector == "Financial Services"
        assert stock.is_profitable
        assert stock.profit_growth_pct == pytest.approx(20.0)
        # 45 category + 22 PE + 15 profitable + 3 growth + 12 dividend
        assert stock.fundamental_score == 97
        assert stock.signals == ["Strong Growth (Rev+Profit UP)", "Low PE (<10)", "High Dividend (>5%)"]

    def test_turnaround_growth_against_loss(self):
        fundamentals = StockFundamentals(code="7113.KL", profit=50.0, profit_prev=-100.0, yoy_category=5)
        stock = screen_stock(_quote("7113.KL"), fundamentals)
        assert stock.profit_growth_pct == pytest.approx(150.0)
        assert "Turnaround" in stock.signals
        assert "Profit Surge (+50%)" in stock.signals

    def test_breakout_near_resistance(self):
        quote = _quote(price=2.9, previous_close=2.8, week52_high=3.0, week52_low=1.0)
        stock = screen_stock(quote)
        assert stock.near_resistance
        assert "Breakout" in stock.signals

    def test_weak_stock_filtered(self):
        assert not passes_screen(screen_stock(_quote()))


class TestScreenSnapshot:
    def test_fixture_market(self):
        result = screen_snapshot(make_snapshot())

        assert result.total_analyzed == 3
        assert [s.code for s in result.tier1] == ["1155.KL", "5347.KL", "7113.KL"]
        assert result.tier2 == [] and result.tier3 == []
        assert result.tier1[0].overall_score == pytest.approx(51.0)
        assert result.category_distribution == {1: 3, 2: 0, 3: 0, 4: 0, 5: 0, 6: 0}
        assert result.health.advancing == 3
        assert result.health.advancing_pct == pytest.approx(100.0)
        assert result.health.avg_pe is None
        assert list(result.sector_leaders) == [UNKNOWN_SECTOR]
        assert result.sector_leaders[UNKNOWN_SECTOR].code == "1155.KL"

    def test_tier_sizes(self):
        prices = {f"{i:04d}.KL": 1.0 + i / 100 for i in range(120)}
        result = screen_snapshot(make_snapshot(prices))

        assert result.total_analyzed == 120
        assert len(result.tier1) == TIER1_SIZE
        assert len(result.tier2) == TIER2_SIZE
        assert len(result.tier3) == TIER3_SIZE
        scores = [s.overall_score for s in result.tier1 + result.tier2 + result.tier3]
        assert scores == sorted(scores, reverse=True)

    def test_without_fundamentals_nothing_passes(self):
        snapshot = make_snapshot().model_copy(update={"fundamentals": []})
        result = screen_snapshot(snapshot)
        assert result.total_analyzed == 3
        assert result.tier1 == []
        assert result.category_distribution[2] == 3

    def test_sector_leaders_and_average_pe(self):
        snapshot = make_snapshot().model_copy(update={"fundamentals": [
            StockFundamentals(code="1155.KL", sector="Financial Services", yoy_category=1, pe_ratio=12.0),
            StockFundamentals(code="5347.KL", sector="Utilities", yoy_category=1, pe_ratio=150.0),
            StockFundamentals(code="7113.KL", sector="Healthcare", yoy_category=6, pe_ratio=8.0),
        ]})
        result = screen_snapshot(snapshot)

        # PE above 100 is left out of the average
        assert result.health.avg_pe == pytest.approx(10.0)
        assert {sector: s.code for sector, s in result.sector_leaders.items()} == {
            "Financial Services": "1155.KL",
            "Utilities": "5347.KL",
        }
        assert set(result.health.sector_strength) == {"Financial Services", "Healthcare", "Utilities"}

    def test_unpriced_quotes_skipped(self):
        result = screen_snapshot(make_snapshot({"1155.KL": 2.0, "0166.KL": 0.0}))
        assert result.total_analyzed == 1

    def test_deterministic(self):
        assert screen_snapshot(make_snapshot()) == screen_snapshot(make_snapshot())
