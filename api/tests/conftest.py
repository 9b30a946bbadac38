import copy
import itertools
import threading
import uuid
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest

from affinity.services.compatibility import canonical_pair, pair_key
from affinity.traits import ALL_TRAITS, to_fixed

ALICE = "00000000-0000-0000-0000-00000000000a"
BOB = "00000000-0000-0000-0000-00000000000b"
CAROL = "00000000-0000-0000-0000-00000000000c"
DAVE = "00000000-0000-0000-0000-00000000000d"
ERIN = "00000000-0000-0000-0000-00000000000e"

DEFAULT_PREFERENCES = {"min_age": 18, "max_age": 99, "gender_preference": "ALL", "max_distance_km": None}

SAMPLE_QUESTIONS = [
    {
        "id": "q-social",
        "question_number": 1,
        "category": "Social",
        "question_text": "How do you spend a free evening?",
        "options": ["Out with a big group", "Dinner with one friend", "Alone with a book"],
        "scoring_weights": [
            {"extroversion": 0.9, "collectivism": 0.7},
            {"extroversion": 0.5, "agreeableness": 0.8},
            {"extroversion": 0.1, "openness": 0.6},
        ],
    },
    {
        "id": "q-growth",
        "question_number": 2,
        "category": "Growth",
        "question_text": "A project fails. What next?",
        "options": ["Learn from it and try again", "Move on to something else"],
        "scoring_weights": [
            {"growth_mindset": 0.9, "conscientiousness": 0.8},
            {"growth_mindset": 0.3, "emotional_stability": 0.6},
        ],
    },
    {
        "id": "q-food",
        "question_number": 3,
        "category": "Lifestyle",
        "question_text": "What does your ideal dinner look like?",
        "options": ["Plant-based", "Anything goes"],
        "scoring_weights": [
            {"veganism_support": 0.9, "environmental_consciousness": 0.8, "health_focus": 0.7},
            {"veganism_support": 0.2},
        ],
    },
]


def trait_values(default: float = 0.5, **overrides: float) -> dict[str, float]:
    values = {t: default for t in ALL_TRAITS}
    values.update(overrides)
    return values


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeRepo:
    """In-memory stand-in for affinity.repo with the same function surface."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._seq = itertools.count(1)
        self.calls: Counter = Counter()
        self.fail: set[str] = set()
        self.profiles: dict[str, dict[str, Any]] = {}
        self.questions: dict[str, dict[str, Any]] = {}
        self.answers: dict[str, list[dict[str, Any]]] = {}
        self.scores: dict[str, dict[str, Any]] = {}
        self.likes: dict[tuple[str, str], int] = {}
        self.passes: set[tuple[str, str]] = set()
        self.super_likes: set[tuple[str, str]] = set()
        self.blocks: set[tuple[str, str]] = set()
        self.matches: dict[str, dict[str, Any]] = {}
        self.activity: list[dict[str, Any]] = []
        self.outbox: dict[str, dict[str, Any]] = {}

    def _enter(self, op: str) -> None:
        self.calls[op] += 1
        if op in self.fail:
            raise RuntimeError(f"{op} unavailable")

    # seeding helpers

    def add_profile(
        self,
        user_id: str,
        *,
        gender: str = "FEMALE",
        date_of_birth: date = date(1996, 6, 15),
        latitude: float | None = None,
        longitude: float | None = None,
        education: str | None = None,
        profile_completeness: int = 80,
        is_discoverable: bool = True,
        interests: list[str] | None = None,
        traits: dict[str, float] | None = None,
        preferences: dict[str, Any] | None = DEFAULT_PREFERENCES,
        display_name: str | None = None,
    ) -> None:
        self.profiles[user_id] = {
            "user_id": user_id,
            "display_name": display_name or user_id[-1].upper(),
            "gender": gender,
            "date_of_birth": date_of_birth,
            "latitude": latitude,
            "longitude": longitude,
            "education": education,
            "profile_completeness": profile_completeness,
            "is_discoverable": is_discoverable,
            "interests": list(interests or []),
            "personality_completed": traits is not None,
            "personality_completed_at": datetime(2026, 1, 1, tzinfo=timezone.utc) if traits is not None else None,
            "traits": {t: to_fixed(traits[t]) if traits is not None else None for t in ALL_TRAITS},
            "preferences": dict(preferences) if preferences is not None else None,
        }

    def add_like(self, sender_id: str, receiver_id: str) -> None:
        self.likes[(sender_id, receiver_id)] = next(self._seq)

    def add_block(self, blocker_id: str, blocked_id: str) -> None:
        self.blocks.add((blocker_id, blocked_id))

    # profiles and questions

    def get_profile(self, user_id: str) -> dict[str, Any] | None:
        self._enter("get_profile")
        with self._lock:
            profile = self.profiles.get(user_id)
            return copy.deepcopy(profile) if profile else None

    def list_questions(self) -> list[dict[str, Any]]:
        self._enter("list_questions")
        with self._lock:
            rows = sorted(self.questions.values(), key=lambda q: q["question_number"])
            return copy.deepcopy(rows)

    def upsert_question(self, row: dict[str, Any]) -> None:
        self._enter("upsert_question")
        with self._lock:
            self.questions[row["id"]] = copy.deepcopy(row)

    def replace_personality_answers(self, user_id, answers, traits, completed_at) -> None:
        self._enter("replace_personality_answers")
        with self._lock:
            profile = self.profiles[user_id]
            self.answers[user_id] = copy.deepcopy(list(answers))
            profile["traits"] = {t: traits[t] for t in ALL_TRAITS}
            profile["personality_completed"] = True
            profile["personality_completed_at"] = completed_at

    def clear_personality(self, user_id: str) -> None:
        self._enter("clear_personality")
        with self._lock:
            profile = self.profiles[user_id]
            self.answers.pop(user_id, None)
            profile["traits"] = {t: None for t in ALL_TRAITS}
            profile["personality_completed"] = False
            profile["personality_completed_at"] = None

    # compatibility cache

    def get_compatibility_score(self, key: str) -> dict[str, Any] | None:
        self._enter("get_compatibility_score")
        with self._lock:
            row = self.scores.get(key)
            return copy.deepcopy(row) if row else None

    def upsert_compatibility_score(self, row: dict[str, Any]) -> None:
        self._enter("upsert_compatibility_score")
        with self._lock:
            self.scores[row["pair_key"]] = copy.deepcopy(row)

    def delete_compatibility_scores_for_user(self, user_id: str) -> int:
        self._enter("delete_compatibility_scores_for_user")
        with self._lock:
            doomed = [k for k, r in self.scores.items() if user_id in (r["user_low_id"], r["user_high_id"])]
            for k in doomed:
                del self.scores[k]
            return len(doomed)

    # relationship edges

    def has_like(self, sender_id: str, receiver_id: str) -> bool:
        with self._lock:
            return (sender_id, receiver_id) in self.likes

    def has_pass(self, sender_id: str, receiver_id: str) -> bool:
        with self._lock:
            return (sender_id, receiver_id) in self.passes

    def has_super_like(self, sender_id: str, receiver_id: str) -> bool:
        with self._lock:
            return (sender_id, receiver_id) in self.super_likes

    def is_blocked_pair(self, user_a: str, user_b: str) -> bool:
        with self._lock:
            return (user_a, user_b) in self.blocks or (user_b, user_a) in self.blocks

    def create_like(self, sender_id: str, receiver_id: str) -> bool:
        self._enter("create_like")
        with self._lock:
            if (sender_id, receiver_id) in self.likes:
                return False
            self.likes[(sender_id, receiver_id)] = next(self._seq)
            self.activity.append({"user_id": sender_id, "type": "LIKE_SENT", "data": {"liked_user_id": receiver_id}})
            return True

    def create_pass(self, sender_id: str, receiver_id: str) -> bool:
        self._enter("create_pass")
        with self._lock:
            if (sender_id, receiver_id) in self.passes:
                return False
            self.passes.add((sender_id, receiver_id))
            return True

    def create_super_like(self, sender_id: str, receiver_id: str) -> bool:
        self._enter("create_super_like")
        with self._lock:
            if (sender_id, receiver_id) in self.super_likes:
                return False
            self.super_likes.add((sender_id, receiver_id))
            if (sender_id, receiver_id) not in self.likes:
                self.likes[(sender_id, receiver_id)] = next(self._seq)
                self.activity.append({"user_id": sender_id, "type": "LIKE_SENT", "data": {"liked_user_id": receiver_id}})
            self.activity.append(
                {"user_id": sender_id, "type": "SUPER_LIKE_SENT", "data": {"super_liked_user_id": receiver_id}}
            )
            return True

    def find_match(self, user_a: str, user_b: str) -> dict[str, Any] | None:
        with self._lock:
            match = self.matches.get(pair_key(user_a, user_b))
            if not match:
                return None
            return {"match_id": match["match_id"], "conversation_id": match["conversation_id"]}

    def create_match_if_mutual(self, user_a: str, user_b: str) -> dict[str, Any] | None:
        self._enter("create_match_if_mutual")
        with self._lock:
            if (user_a, user_b) not in self.likes or (user_b, user_a) not in self.likes:
                return None
            key = pair_key(user_a, user_b)
            existing = self.matches.get(key)
            if existing:
                return {"match_id": existing["match_id"], "conversation_id": existing["conversation_id"], "created": False}
            low, high = canonical_pair(user_a, user_b)
            match = {
                "match_id": str(uuid.uuid4()),
                "conversation_id": str(uuid.uuid4()),
                "user_low_id": low,
                "user_high_id": high,
                "seq": next(self._seq),
            }
            self.matches[key] = match
            for uid, other in ((low, high), (high, low)):
                self.activity.append(
                    {"user_id": uid, "type": "MATCH_CREATED", "data": {"matched_user_id": other, "match_id": match["match_id"]}}
                )
            return {"match_id": match["match_id"], "conversation_id": match["conversation_id"], "created": True}

    # discovery and listings

    def list_discovery_exclusions(self, user_id: str) -> list[str]:
        self._enter("list_discovery_exclusions")
        with self._lock:
            out = {r for (s, r) in self.likes if s == user_id}
            out |= {r for (s, r) in self.passes if s == user_id}
            out |= {b for (a, b) in self.blocks if a == user_id}
            out |= {a for (a, b) in self.blocks if b == user_id}
            return sorted(out)

    def query_discovery_candidates(self, *, exclude_ids, gender, dob_min, dob_max, limit) -> list[dict[str, Any]]:
        self._enter("query_discovery_candidates")
        with self._lock:
            excluded = set(exclude_ids)
            rows = [
                p
                for p in self.profiles.values()
                if p["is_discoverable"]
                and p["user_id"] not in excluded
                and (gender is None or p["gender"] == gender)
                and dob_min <= p["date_of_birth"] <= dob_max
            ]
            rows.sort(key=lambda p: (-p["profile_completeness"], p["user_id"]))
            return copy.deepcopy(rows[:limit])

    def list_likes_received(self, user_id: str, limit: int = 20, offset: int = 0) -> list[dict[str, Any]]:
        with self._lock:
            edges = sorted(((seq, s) for (s, r), seq in self.likes.items() if r == user_id), reverse=True)
            return [
                {
                    "user_id": s,
                    "display_name": self.profiles[s]["display_name"],
                    "liked_at": seq,
                    "is_super_like": (s, user_id) in self.super_likes,
                }
                for seq, s in edges[offset : offset + limit]
                if s in self.profiles
            ]

    def count_likes_received(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for (_, r) in self.likes if r == user_id)

    def list_matches(self, user_id: str, limit: int = 20, offset: int = 0) -> list[dict[str, Any]]:
        with self._lock:
            mine = [m for m in self.matches.values() if user_id in (m["user_low_id"], m["user_high_id"])]
            mine.sort(key=lambda m: m["seq"], reverse=True)
            return [
                {
                    "match_id": m["match_id"],
                    "user_id": m["user_high_id"] if m["user_low_id"] == user_id else m["user_low_id"],
                    "conversation_id": m["conversation_id"],
                }
                for m in mine[offset : offset + limit]
            ]

    def count_matches(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for m in self.matches.values() if user_id in (m["user_low_id"], m["user_high_id"]))

    def enqueue_notification(self, *, user_id, notification_type, payload, idempotency_key) -> bool:
        self._enter("enqueue_notification")
        with self._lock:
            if idempotency_key in self.outbox:
                return False
            self.outbox[idempotency_key] = {"user_id": user_id, "type": notification_type, "payload": payload}
            return True


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def repo():
    fake = FakeRepo()
    for row in SAMPLE_QUESTIONS:
        fake.upsert_question(row)
    fake.calls.clear()
    return fake


@pytest.fixture
def services(repo, clock):
    from affinity.deps import build_services

    return build_services(repo, clock=clock)
