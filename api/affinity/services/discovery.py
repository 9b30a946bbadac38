from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable

from ..config import DISCOVERY_DEFAULT_LIMIT, DISCOVERY_MAX_LIMIT, DISCOVERY_OVERFETCH_FACTOR, EARTH_RADIUS_KM
from ..errors import InvalidOperationError, NotFoundError, PreconditionFailedError
from .personality import PersonalityService, vector_from_profile

logger = logging.getLogger(__name__)

SOURCE_PERSONALITY = "personality"
SOURCE_BASIC = "basic"

PUBLIC_PROFILE_FIELDS = ("user_id", "display_name", "gender", "education", "profile_completeness", "interests")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DiscoveryFilters:
    min_age: int | None = None
    max_age: int | None = None
    max_distance_km: float | None = None
    exclude_user_ids: list[str] = field(default_factory=list)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float, radius_km: float = EARTH_RADIUS_KM) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return math.floor(radius_km * c * 10 + 0.5) / 10


def distance_between(a: dict[str, Any], b: dict[str, Any]) -> float | None:
    coords = (a.get("latitude"), a.get("longitude"), b.get("latitude"), b.get("longitude"))
    if any(v is None for v in coords):
        return None
    return haversine_km(*(float(v) for v in coords))


def years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year - years, day=28)


def age_on(date_of_birth: date, today: date) -> int:
    return today.year - date_of_birth.year - ((today.month, today.day) < (date_of_birth.month, date_of_birth.day))


def effective_age_range(preferences: dict[str, Any], filters: DiscoveryFilters) -> tuple[int, int]:
    min_age = int(preferences["min_age"])
    max_age = int(preferences["max_age"])
    if filters.min_age is not None:
        min_age = max(min_age, int(filters.min_age))
    if filters.max_age is not None:
        max_age = min(max_age, int(filters.max_age))
    return min_age, max_age


def birth_date_window(today: date, min_age: int, max_age: int) -> tuple[date, date]:
    """Inclusive date-of-birth bounds for people aged min_age..max_age today."""
    earliest = years_before(today, max_age + 1) + timedelta(days=1)
    latest = years_before(today, min_age)
    return earliest, latest


def effective_max_distance(preferences: dict[str, Any], filters: DiscoveryFilters) -> float | None:
    limits = [float(v) for v in (preferences.get("max_distance_km"), filters.max_distance_km) if v is not None]
    return min(limits) if limits else None


def _interest_score(a: list[str], b: list[str]) -> Decimal:
    left = set(a or [])
    right = set(b or [])
    if not left or not right:
        return Decimal("0")
    return Decimal(2 * len(left & right)) / Decimal(len(left) + len(right)) * 40


def _education_score(a: str | None, b: str | None) -> Decimal:
    if not a or not b:
        return Decimal("0")
    if a == b:
        return Decimal("15")
    la, lb = a.lower(), b.lower()
    if la in lb or lb in la:
        return Decimal("10")
    return Decimal("5")


def basic_compatibility(a: dict[str, Any], b: dict[str, Any], today: date) -> int:
    score = _interest_score(a.get("interests") or [], b.get("interests") or [])

    age_gap = abs(age_on(a["date_of_birth"], today) - age_on(b["date_of_birth"], today))
    score += max(Decimal("0"), Decimal(10 - age_gap) / 10) * 20

    score += _education_score(a.get("education"), b.get("education"))
    score += Decimal(int(a.get("profile_completeness") or 0) + int(b.get("profile_completeness") or 0)) / 20
    # proximity share is reserved and contributes nothing

    return min(100, int(score.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


class DiscoveryService:
    def __init__(
        self,
        repo,
        personality: PersonalityService,
        *,
        clock: Callable[[], datetime] = _now_utc,
        overfetch_factor: int = DISCOVERY_OVERFETCH_FACTOR,
        max_limit: int = DISCOVERY_MAX_LIMIT,
    ) -> None:
        self.repo = repo
        self.personality = personality
        self._clock = clock
        self._overfetch_factor = max(1, int(overfetch_factor))
        self._max_limit = max_limit

    def _score(self, requester: dict[str, Any], candidate: dict[str, Any], today: date) -> tuple[int, str]:
        try:
            mine = vector_from_profile(requester)
            theirs = vector_from_profile(candidate)
        except ValueError:
            logger.warning(
                "[discovery] unreadable trait vector user_id=%s candidate=%s",
                requester["user_id"],
                candidate["user_id"],
                exc_info=True,
            )
            mine = theirs = None
        if mine is not None and theirs is not None:
            breakdown = self.personality.compatibility_for_vectors(
                requester["user_id"], mine, candidate["user_id"], theirs
            )
            return breakdown.overall, SOURCE_PERSONALITY
        return basic_compatibility(requester, candidate, today), SOURCE_BASIC

    def discover(
        self, user_id: str, limit: int = DISCOVERY_DEFAULT_LIMIT, filters: DiscoveryFilters | None = None
    ) -> list[dict[str, Any]]:
        filters = filters or DiscoveryFilters()
        limit = max(1, min(int(limit), self._max_limit))

        requester = self.repo.get_profile(user_id)
        if not requester:
            raise NotFoundError("Profile not found", code="profile_not_found")
        if not requester.get("is_discoverable"):
            raise InvalidOperationError("Discovery is disabled for this profile", code="discovery_disabled")
        preferences = requester.get("preferences")
        if not preferences:
            raise PreconditionFailedError("Match preferences not set", code="preferences_missing")

        today = self._clock().date()
        min_age, max_age = effective_age_range(preferences, filters)
        if min_age > max_age:
            return []
        dob_min, dob_max = birth_date_window(today, min_age, max_age)

        excluded = {str(user_id)}
        excluded.update(str(u) for u in self.repo.list_discovery_exclusions(user_id))
        excluded.update(str(u) for u in filters.exclude_user_ids)

        gender_pref = preferences.get("gender_preference") or "ALL"
        candidates = self.repo.query_discovery_candidates(
            exclude_ids=sorted(excluded),
            gender=None if gender_pref == "ALL" else gender_pref,
            dob_min=dob_min,
            dob_max=dob_max,
            limit=limit * self._overfetch_factor,
        )

        max_distance = effective_max_distance(preferences, filters)
        ranked: list[dict[str, Any]] = []
        for candidate in candidates:
            if str(candidate["user_id"]) in excluded:
                continue
            distance = distance_between(requester, candidate)
            if max_distance is not None and distance is not None and distance > max_distance:
                continue
            compatibility, source = self._score(requester, candidate, today)
            item = {k: candidate.get(k) for k in PUBLIC_PROFILE_FIELDS}
            item["age"] = age_on(candidate["date_of_birth"], today)
            item["compatibility"] = compatibility
            item["compatibility_source"] = source
            item["distance_km"] = distance
            ranked.append(item)

        ranked.sort(
            key=lambda r: (
                -r["compatibility"],
                r["distance_km"] is None,
                r["distance_km"] or 0.0,
                str(r["user_id"]),
            )
        )
        logger.debug("[discovery] user_id=%s pool=%s returned=%s", user_id, len(candidates), min(limit, len(ranked)))
        return ranked[:limit]
