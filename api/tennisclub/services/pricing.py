"""Pricing service for court fee calculation.

Each hour of a booking is priced on its own. Off-peak hours cost the sum of
the per-player rates (members and non-members pay different rates). Peak
hours cost the same per-player sum but never less than the flat peak fee.
Rates and peak hours come from settings via PricingConfig.from_settings();
nothing in compute_fee reads global state.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from tennisclub.core.config import settings
from tennisclub.services.member_matching import MatchConfig, MatchResult, classify


@dataclass(frozen=True)
class PricingConfig:
    peak_hours: frozenset[int] = frozenset({5, 18, 19, 21})
    peak_hour_fee: float = 100.0
    member_rate: float = 20.0
    non_member_rate: float = 50.0

    @classmethod
    def from_settings(cls) -> "PricingConfig":
        return cls(
            peak_hours=frozenset(settings.peak_hours),
            peak_hour_fee=settings.peak_hour_fee,
            member_rate=settings.member_rate,
            non_member_rate=settings.non_member_rate,
        )

    def is_peak(self, hour: int) -> bool:
        return hour in self.peak_hours


@dataclass
class FeeQuote:
    amount: float
    is_peak_hour: bool
    breakdown: dict = field(default_factory=dict)


def hourly_fee(hour: int, member_count: int, non_member_count: int, config: PricingConfig) -> float:
    """Fee for a single hour given the roster split."""
    player_fee = member_count * config.member_rate + non_member_count * config.non_member_rate
    if config.is_peak(hour):
        return max(config.peak_hour_fee, player_fee)
    return player_fee


def classify_players(
    players: Sequence[str],
    member_names: Iterable[str],
    match_config: MatchConfig | None = None,
) -> list[MatchResult]:
    roster = list(member_names)
    return [classify(p, roster, match_config) for p in players]


def compute_fee(
    time_slot: int,
    duration: int,
    players: Sequence[str],
    member_names: Iterable[str],
    config: PricingConfig | None = None,
    match_config: MatchConfig | None = None,
) -> FeeQuote:
    """Price a booking of `duration` hours starting at `time_slot`.

    Returns the total, whether any hour is peak, and a breakdown suitable for
    storing in payment metadata.
    """
    config = config or PricingConfig()
    matches = classify_players(players, member_names, match_config)
    member_count = sum(1 for m in matches if m.matched)
    non_member_count = len(matches) - member_count

    hours = []
    for hour in range(time_slot, time_slot + max(duration, 1)):
        hours.append(
            {
                "hour": hour,
                "is_peak": config.is_peak(hour),
                "amount": hourly_fee(hour, member_count, non_member_count, config),
            }
        )

    amount = round(sum(h["amount"] for h in hours), 2)
    is_peak = any(h["is_peak"] for h in hours)

    calculation = (
        f"{member_count} member(s) x {config.member_rate:.0f} + "
        f"{non_member_count} non-member(s) x {config.non_member_rate:.0f}"
    )
    if is_peak:
        calculation += f", minimum {config.peak_hour_fee:.0f} per peak hour"
    if len(hours) > 1:
        calculation += f", over {len(hours)} hours"

    return FeeQuote(
        amount=amount,
        is_peak_hour=is_peak,
        breakdown={
            "player_count": len(matches),
            "member_count": member_count,
            "non_member_count": non_member_count,
            "hours": hours,
            "players": [m.to_dict() for m in matches],
            "calculation": calculation,
        },
    )
