from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ..traits import ALL_TRAITS, TraitVector, to_fixed
from .compatibility import CompatibilityBreakdown, canonical_pair, pair_key

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def inputs_fingerprint(user_a: str, vector_a: TraitVector, user_b: str, vector_b: TraitVector) -> str:
    """Digest of both trait vectors, taken in canonical pair order."""
    ordered = sorted([(str(user_a), vector_a), (str(user_b), vector_b)], key=lambda item: item[0])
    raw = "|".join(",".join(str(vector.value(t)) for t in ALL_TRAITS) for _, vector in ordered)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def breakdown_from_row(row: dict[str, Any]) -> CompatibilityBreakdown:
    return CompatibilityBreakdown(
        overall=int(row["overall"]),
        personality=to_fixed(row["personality_score"]),
        lifestyle=to_fixed(row["lifestyle_score"]),
        trait_similarity={str(k): int(v) for k, v in (row.get("trait_similarity") or {}).items()},
        critical_mismatch=bool(row.get("critical_mismatch")),
        bonuses=tuple(row.get("bonuses") or ()),
    )


class CompatibilityCache:
    """Durable memo of pairwise scores, keyed by the unordered user pair.

    Storage failures never reach the caller: a failed read is a miss and a
    failed write is skipped. Entries written with an inputs fingerprint only
    hit for a reader holding the same trait vectors, so a score computed
    before a resubmission is never served after it.
    """

    def __init__(self, repo, ttl: timedelta, clock: Callable[[], datetime] = _now_utc) -> None:
        self._repo = repo
        self._ttl = ttl
        self._clock = clock

    def get(self, user_a: str, user_b: str, fingerprint: str | None = None) -> CompatibilityBreakdown | None:
        key = pair_key(user_a, user_b)
        try:
            row = self._repo.get_compatibility_score(key)
        except Exception:
            logger.warning("[compat-cache] read failed pair=%s", key, exc_info=True)
            return None
        if not row:
            return None
        if not self._clock() < row["expires_at"]:
            return None
        if fingerprint is not None and row.get("inputs_fingerprint") != fingerprint:
            logger.debug("[compat-cache] inputs changed pair=%s", key)
            return None
        try:
            return breakdown_from_row(row)
        except (KeyError, TypeError, ValueError):
            logger.warning("[compat-cache] unreadable entry pair=%s", key, exc_info=True)
            return None

    def put(
        self, user_a: str, user_b: str, breakdown: CompatibilityBreakdown, fingerprint: str | None = None
    ) -> bool:
        low, high = canonical_pair(user_a, user_b)
        now = self._clock()
        row = {
            "pair_key": pair_key(low, high),
            "user_low_id": low,
            "user_high_id": high,
            "overall": breakdown.overall,
            "personality_score": breakdown.personality,
            "lifestyle_score": breakdown.lifestyle,
            "trait_similarity": dict(breakdown.trait_similarity),
            "critical_mismatch": breakdown.critical_mismatch,
            "bonuses": list(breakdown.bonuses),
            "inputs_fingerprint": fingerprint,
            "computed_at": now,
            "expires_at": now + self._ttl,
        }
        try:
            self._repo.upsert_compatibility_score(row)
        except Exception:
            logger.warning("[compat-cache] write failed pair=%s", row["pair_key"], exc_info=True)
            return False
        return True

    def invalidate_all(self, user_id: str) -> int:
        try:
            removed = int(self._repo.delete_compatibility_scores_for_user(user_id) or 0)
        except Exception:
            logger.warning("[compat-cache] invalidate failed user_id=%s", user_id, exc_info=True)
            return 0
        logger.debug("[compat-cache] invalidated user_id=%s removed=%s", user_id, removed)
        return removed
