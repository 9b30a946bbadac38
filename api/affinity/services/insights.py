from __future__ import annotations

from decimal import Decimal
from typing import Any

from ..traits import ALL_TRAITS, TraitVector

HIGH = Decimal("0.7")
LOW = Decimal("0.3")


def _label(trait: str) -> str:
    return trait.replace("_", " ")


def generate_personality_insights(vector: TraitVector) -> dict[str, Any]:
    primary_traits = [_label(t) for t in ALL_TRAITS if vector.value(t) > HIGH]
    strengths: list[str] = []
    challenges: list[str] = []
    tips: list[str] = []
    relationship_style = ""

    if vector.extroversion > HIGH:
        strengths.append("You energize others and build connections easily")
        relationship_style = "You thrive in social relationships and enjoy shared activities"
    elif vector.extroversion < LOW:
        strengths.append("You form deep, meaningful connections")
        relationship_style = "You prefer intimate relationships with quality time together"

    if vector.growth_mindset > HIGH:
        strengths.append("You embrace challenges and continuous improvement")
        tips.append("Look for partners who also value personal growth")

    if vector.agreeableness > HIGH:
        strengths.append("You create harmony and show empathy for others")
        challenges.append("You might need to practice setting boundaries")

    if vector.environmental_consciousness > HIGH:
        tips.append("Environmental values are important to you, so look for someone who shares them")

    return {
        "primary_traits": primary_traits,
        "strengths": strengths,
        "challenges": challenges,
        "relationship_style": relationship_style,
        "compatibility_tips": tips,
    }
