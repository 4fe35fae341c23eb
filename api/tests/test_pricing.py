"""Fee calculation tests (pure functions, no DB)."""

import pytest

from tennisclub.services.pricing import PricingConfig, compute_fee, hourly_fee

MEMBERS = ["John Dela Cruz", "Maria Santos", "Andres Reyes"]


# ---------------------------------------------------------------------------
# Single hour
# ---------------------------------------------------------------------------


class TestSingleHour:
    def test_offpeak_members_only(self):
        quote = compute_fee(9, 1, ["John Dela Cruz", "Maria Santos"], MEMBERS)
        assert quote.amount == 40
        assert quote.is_peak_hour is False

    def test_offpeak_mixed_roster(self):
        quote = compute_fee(10, 1, ["John Dela Cruz", "Maria Santos", "Visiting Guest"], MEMBERS)
        assert quote.amount == 90
        assert quote.breakdown["member_count"] == 2
        assert quote.breakdown["non_member_count"] == 1

    def test_peak_minimum_applies(self):
        quote = compute_fee(18, 1, ["John Dela Cruz", "Visiting Guest"], MEMBERS)
        # 20 + 50 = 70, lifted to the peak minimum
        assert quote.amount == 100
        assert quote.is_peak_hour is True

    def test_peak_above_minimum(self):
        quote = compute_fee(19, 1, ["Guest One", "Guest Two", "Guest Three", "Guest Four"], MEMBERS)
        assert quote.amount == 200

    @pytest.mark.parametrize("hour", [5, 18, 19, 21])
    def test_peak_never_below_peak_fee(self, hour):
        for players in ([], ["John Dela Cruz"], ["Guest"], MEMBERS):
            assert compute_fee(hour, 1, players, MEMBERS).amount >= 100

    def test_fuzzy_spelling_gets_member_rate(self):
        quote = compute_fee(9, 1, ["Jon Dela Cruz"], MEMBERS)
        assert quote.amount == 20
        player = quote.breakdown["players"][0]
        assert player["is_member"] is True
        assert player["matched_name"] == "John Dela Cruz"
        assert player["strategy"] == "fuzzy"

    def test_empty_roster_everyone_pays_non_member_rate(self):
        quote = compute_fee(9, 1, ["John Dela Cruz", "Maria Santos"], [])
        assert quote.amount == 100


# ---------------------------------------------------------------------------
# Multi-hour
# ---------------------------------------------------------------------------


class TestMultiHour:
    def test_each_hour_priced_separately(self):
        # 17:00 off-peak (40) + 18:00 peak (min 100)
        quote = compute_fee(17, 2, ["John Dela Cruz", "Maria Santos"], MEMBERS)
        assert quote.amount == 140
        assert quote.is_peak_hour is True
        assert [h["amount"] for h in quote.breakdown["hours"]] == [40, 100]
        assert [h["hour"] for h in quote.breakdown["hours"]] == [17, 18]

    def test_multi_hour_equals_sum_of_single_hours(self):
        players = ["John Dela Cruz", "Guest", "Another Guest"]
        for start in range(5, 19):
            for duration in (1, 2, 3, 4):
                total = compute_fee(start, duration, players, MEMBERS).amount
                singles = sum(compute_fee(start + i, 1, players, MEMBERS).amount for i in range(duration))
                assert total == singles

    def test_no_peak_hour_in_range(self):
        quote = compute_fee(8, 3, ["Guest"], MEMBERS)
        assert quote.amount == 150
        assert quote.is_peak_hour is False

    def test_calculation_mentions_hours(self):
        quote = compute_fee(8, 3, ["Guest"], MEMBERS)
        assert "over 3 hours" in quote.breakdown["calculation"]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestPricingConfig:
    def test_defaults_match_settings(self):
        assert PricingConfig.from_settings() == PricingConfig()

    def test_injected_config(self):
        config = PricingConfig(peak_hours=frozenset({9}), peak_hour_fee=150, member_rate=30, non_member_rate=60)
        quote = compute_fee(9, 1, ["John Dela Cruz"], MEMBERS, config=config)
        assert quote.amount == 150
        assert compute_fee(18, 1, ["John Dela Cruz"], MEMBERS, config=config).amount == 30

    def test_hourly_fee(self):
        config = PricingConfig()
        assert hourly_fee(12, 1, 1, config) == 70
        assert hourly_fee(21, 1, 1, config) == 100
        assert hourly_fee(21, 0, 3, config) == 150
