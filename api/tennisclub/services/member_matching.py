"""Resolve free-text player names to club members.

Players are typed in by hand when a court is booked, so "Jon Dela Cruz"
has to be recognised as the member "John Dela Cruz". Strategies are tried
in order and the first one that succeeds wins:

1. exact: trimmed, case-insensitive equality
2. fuzzy: best Levenshtein similarity above similarity_threshold
3. substring: the input appears inside a member name (inputs of 3+ chars)
4. token: any word of the input closely matches any word of a member name

Everything here is pure; callers pass in the roster snapshot.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from tennisclub.core.config import settings

STRATEGY_EXACT = "exact"
STRATEGY_FUZZY = "fuzzy"
STRATEGY_SUBSTRING = "substring"
STRATEGY_TOKEN = "token"


@dataclass(frozen=True)
class MatchConfig:
    similarity_threshold: float = 0.6
    token_threshold: float = 0.8
    min_fragment_length: int = 3

    @classmethod
    def from_settings(cls) -> "MatchConfig":
        return cls(
            similarity_threshold=settings.fuzzy_similarity_threshold,
            token_threshold=settings.token_similarity_threshold,
        )


@dataclass(frozen=True)
class MatchResult:
    player_name: str
    matched: bool
    matched_name: str | None = None
    confidence: float = 0.0
    strategy: str | None = None

    def to_dict(self) -> dict:
        return {
            "player_name": self.player_name,
            "is_member": self.matched,
            "matched_name": self.matched_name,
            "confidence": round(self.confidence, 3),
            "strategy": self.strategy,
        }


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit cost insert/delete/substitute."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """(maxLen - distance) / maxLen; 1.0 for identical strings, 0.0 if either is empty."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    longest = max(len(a), len(b))
    return (longest - levenshtein(a, b)) / longest


def normalise(name: str) -> str:
    return name.strip().casefold()


def classify(player_name: str, member_names: Iterable[str], config: MatchConfig | None = None) -> MatchResult:
    """Decide whether player_name refers to one of member_names."""
    config = config or MatchConfig()
    clean = normalise(player_name)
    # Keep the original spelling for matched_name, compare on the normalised form
    roster = [(normalise(m), m) for m in member_names if m and m.strip()]

    if not clean:
        return MatchResult(player_name, matched=False)

    for clean_member, member in roster:
        if clean_member == clean:
            return MatchResult(player_name, True, member, 1.0, STRATEGY_EXACT)

    best_score, best_member = 0.0, None
    for clean_member, member in roster:
        score = similarity(clean, clean_member)
        if score > config.similarity_threshold and score > best_score:
            best_score, best_member = score, member
    if best_member is not None:
        return MatchResult(player_name, True, best_member, best_score, STRATEGY_FUZZY)

    if len(clean) >= config.min_fragment_length:
        for clean_member, member in roster:
            if clean in clean_member:
                return MatchResult(player_name, True, member, len(clean) / len(clean_member), STRATEGY_SUBSTRING)

    input_words = [w for w in clean.split() if len(w) >= config.min_fragment_length]
    for clean_member, member in roster:
        member_words = [w for w in clean_member.split() if len(w) >= config.min_fragment_length]
        best_token = max(
            (similarity(iw, mw) for iw in input_words for mw in member_words),
            default=0.0,
        )
        if best_token > config.token_threshold:
            return MatchResult(player_name, True, member, best_token, STRATEGY_TOKEN)

    return MatchResult(player_name, matched=False)
