from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from ..traits import CORE_TRAITS, LIFESTYLE_TRAITS, TWO_PLACES, TraitVector


CRITICAL_TRAITS: tuple[str, ...] = ("veganism_support", "environmental_consciousness", "social_justice")

PERSONALITY_WEIGHT = Decimal("60")
LIFESTYLE_WEIGHT = Decimal("40")
EXTROVERSION_IDEAL_GAP = Decimal("0.3")
EXTROVERSION_GAP_TOLERANCE = Decimal("0.1")
EXTROVERSION_GAP_RELIEF = Decimal("0.1")
CRITICAL_GAP = Decimal("0.6")
CRITICAL_STRENGTH = Decimal("0.8")
GROWTH_THRESHOLD = Decimal("0.7")
BONUS_POINTS = Decimal("10")

BONUS_EXTROVERSION_COMPLEMENT = "extroversion_complement"
BONUS_SHARED_GROWTH = "shared_growth_mindset"

_ZERO = Decimal("0")
_ONE = Decimal("1")
_HALF = Decimal("0.5")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CompatibilityBreakdown:
    overall: int
    personality: Decimal
    lifestyle: Decimal
    trait_similarity: dict[str, int]
    critical_mismatch: bool
    bonuses: tuple[str, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "personality": float(self.personality),
            "lifestyle": float(self.lifestyle),
            "trait_similarity": dict(self.trait_similarity),
            "critical_mismatch": self.critical_mismatch,
            "bonuses": list(self.bonuses),
        }


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    return tuple(sorted((str(user_a), str(user_b))))


def pair_key(user_a: str, user_b: str) -> str:
    low, high = canonical_pair(user_a, user_b)
    return f"{low}:{high}"


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def _is_complementary_extroversion(gap: Decimal) -> bool:
    return abs(gap - EXTROVERSION_IDEAL_GAP) < EXTROVERSION_GAP_TOLERANCE


def _similarity(trait: str, a: Decimal, b: Decimal) -> Decimal:
    gap = abs(a - b)
    if trait == "extroversion" and _is_complementary_extroversion(gap):
        gap = max(_ZERO, gap - EXTROVERSION_GAP_RELIEF)
    return max(_ZERO, _ONE - gap)


def _is_critical_mismatch(a: Decimal, b: Decimal) -> bool:
    return abs(a - b) > CRITICAL_GAP and max(a, b) > CRITICAL_STRENGTH


def compute_compatibility(a: TraitVector, b: TraitVector) -> CompatibilityBreakdown:
    """Score two trait vectors against each other.

    Core traits contribute up to 60 points and lifestyle traits up to 40. A strong
    disagreement on a value-laden lifestyle trait halves the total before the
    complementary-extroversion and shared-growth bonuses are added. The result is
    symmetric in its arguments.
    """
    similarity: dict[str, int] = {}

    core_sum = _ZERO
    for trait in CORE_TRAITS:
        s = _similarity(trait, a.value(trait), b.value(trait))
        similarity[trait] = _round_half_up(s * _HUNDRED)
        core_sum += s
    personality = core_sum / len(CORE_TRAITS) * PERSONALITY_WEIGHT

    lifestyle_sum = _ZERO
    critical = False
    for trait in LIFESTYLE_TRAITS:
        va, vb = a.value(trait), b.value(trait)
        if trait in CRITICAL_TRAITS and _is_critical_mismatch(va, vb):
            critical = True
        s = _similarity(trait, va, vb)
        similarity[trait] = _round_half_up(s * _HUNDRED)
        lifestyle_sum += s
    lifestyle = lifestyle_sum / len(LIFESTYLE_TRAITS) * LIFESTYLE_WEIGHT

    total = personality + lifestyle
    if critical:
        total *= _HALF

    bonuses: list[str] = []
    if _is_complementary_extroversion(abs(a.extroversion - b.extroversion)):
        total += BONUS_POINTS
        bonuses.append(BONUS_EXTROVERSION_COMPLEMENT)
    if a.growth_mindset > GROWTH_THRESHOLD and b.growth_mindset > GROWTH_THRESHOLD:
        total += BONUS_POINTS
        bonuses.append(BONUS_SHARED_GROWTH)

    overall = min(100, max(0, _round_half_up(total)))
    return CompatibilityBreakdown(
        overall=overall,
        personality=personality.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
        lifestyle=lifestyle.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
        trait_similarity=similarity,
        critical_mismatch=critical,
        bonuses=tuple(bonuses),
    )
