import json
import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from affinity.database import SessionLocal
from affinity.services.compatibility import canonical_pair, pair_key
from affinity.services.events import (
    ACTIVITY_LIKE_SENT,
    ACTIVITY_MATCH_CREATED,
    ACTIVITY_SUPER_LIKE_SENT,
    log_user_activity,
)
from affinity.traits import ALL_TRAITS

_EDGE_TABLES = {"like": "user_like", "pass": "user_pass", "super_like": "user_super_like"}

_PROFILE_COLUMNS = ",\n  ".join(
    [
        "p.user_id",
        "p.display_name",
        "p.gender",
        "p.date_of_birth",
        "p.latitude",
        "p.longitude",
        "p.education",
        "p.profile_completeness",
        "p.is_discoverable",
        "p.personality_completed",
        "p.personality_completed_at",
        *(f"p.{t}" for t in ALL_TRAITS),
        "ARRAY(SELECT pi.name FROM profile_interest pi WHERE pi.user_id = p.user_id ORDER BY pi.name) AS interests",
    ]
)


def _as_uuid(value: Any) -> str | None:
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError):
        return None


def _uuid_list(values: list[str]) -> list[str]:
    out: list[str] = []
    for v in values:
        parsed = _as_uuid(v)
        if parsed and parsed not in out:
            out.append(parsed)
    return out


def _row_dict(row) -> dict[str, Any]:
    return {k: str(v) if isinstance(v, uuid.UUID) else v for k, v in dict(row).items()}


def _profile_from_row(row) -> dict[str, Any]:
    data = _row_dict(row)
    profile = {
        "user_id": data["user_id"],
        "display_name": data.get("display_name"),
        "gender": data.get("gender"),
        "date_of_birth": data.get("date_of_birth"),
        "latitude": data.get("latitude"),
        "longitude": data.get("longitude"),
        "education": data.get("education"),
        "profile_completeness": int(data.get("profile_completeness") or 0),
        "is_discoverable": bool(data.get("is_discoverable")),
        "interests": list(data.get("interests") or []),
        "personality_completed": bool(data.get("personality_completed")),
        "personality_completed_at": data.get("personality_completed_at"),
        "traits": {t: data.get(t) for t in ALL_TRAITS},
        "preferences": None,
    }
    if data.get("pref_user_id"):
        profile["preferences"] = {
            "min_age": int(data["min_age"]),
            "max_age": int(data["max_age"]),
            "gender_preference": data["gender_preference"],
            "max_distance_km": data.get("max_distance_km"),
        }
    return profile


def get_profile(user_id: str) -> dict[str, Any] | None:
    uid = _as_uuid(user_id)
    if not uid:
        return None
    with SessionLocal() as db:
        row = db.execute(
            text(
                f"""
                SELECT
                  {_PROFILE_COLUMNS},
                  mp.user_id AS pref_user_id,
                  mp.min_age,
                  mp.max_age,
                  mp.gender_preference,
                  mp.max_distance_km
                FROM profile p
                LEFT JOIN match_preferences mp ON mp.user_id = p.user_id
                WHERE p.user_id = CAST(:user_id AS uuid)
                """
            ),
            {"user_id": uid},
        ).mappings().first()
    return _profile_from_row(row) if row else None


def list_questions() -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT id, question_number, category, question_text, options, scoring_weights
                FROM personality_question
                ORDER BY question_number ASC
                """
            )
        ).mappings().all()
    return [dict(r) for r in rows]


def upsert_question(row: dict[str, Any]) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO personality_question (id, question_number, category, question_text, options, scoring_weights)
                VALUES (:id, :question_number, :category, :question_text, CAST(:options AS jsonb), CAST(:scoring_weights AS jsonb))
                ON CONFLICT (id)
                DO UPDATE SET
                  question_number = EXCLUDED.question_number,
                  category = EXCLUDED.category,
                  question_text = EXCLUDED.question_text,
                  options = EXCLUDED.options,
                  scoring_weights = EXCLUDED.scoring_weights,
                  updated_at = NOW()
                """
            ),
            {
                "id": row["id"],
                "question_number": int(row["question_number"]),
                "category": row["category"],
                "question_text": row["question_text"],
                "options": json.dumps(row["options"]),
                "scoring_weights": json.dumps(row["scoring_weights"]),
            },
        )
        db.commit()


def replace_personality_answers(
    user_id: str,
    answers: list[dict[str, Any]],
    traits: dict[str, Any],
    completed_at: datetime,
) -> None:
    assignments = ", ".join(f"{t} = :{t}" for t in ALL_TRAITS)
    with SessionLocal() as db:
        db.execute(
            text("DELETE FROM personality_answer WHERE user_id = CAST(:user_id AS uuid)"),
            {"user_id": user_id},
        )
        for answer in answers:
            db.execute(
                text(
                    """
                    INSERT INTO personality_answer (user_id, question_id, option_index, selected_option, answered_at)
                    VALUES (CAST(:user_id AS uuid), :question_id, :option_index, :selected_option, :answered_at)
                    """
                ),
                {
                    "user_id": user_id,
                    "question_id": answer["question_id"],
                    "option_index": int(answer["option_index"]),
                    "selected_option": answer["selected_option"],
                    "answered_at": completed_at,
                },
            )
        db.execute(
            text(
                f"""
                UPDATE profile
                SET {assignments},
                    personality_completed = TRUE,
                    personality_completed_at = :completed_at
                WHERE user_id = CAST(:user_id AS uuid)
                """
            ),
            {**{t: traits[t] for t in ALL_TRAITS}, "user_id": user_id, "completed_at": completed_at},
        )
        db.commit()


def clear_personality(user_id: str) -> None:
    assignments = ", ".join(f"{t} = NULL" for t in ALL_TRAITS)
    with SessionLocal() as db:
        db.execute(
            text("DELETE FROM personality_answer WHERE user_id = CAST(:user_id AS uuid)"),
            {"user_id": user_id},
        )
        db.execute(
            text(
                f"""
                UPDATE profile
                SET {assignments},
                    personality_completed = FALSE,
                    personality_completed_at = NULL
                WHERE user_id = CAST(:user_id AS uuid)
                """
            ),
            {"user_id": user_id},
        )
        db.commit()


def get_compatibility_score(key: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT pair_key, user_low_id, user_high_id, overall, personality_score, lifestyle_score,
                       trait_similarity, critical_mismatch, bonuses, inputs_fingerprint, computed_at, expires_at
                FROM compatibility_score
                WHERE pair_key = :pair_key
                """
            ),
            {"pair_key": key},
        ).mappings().first()
    return _row_dict(row) if row else None


def upsert_compatibility_score(row: dict[str, Any]) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO compatibility_score (
                  pair_key, user_low_id, user_high_id, overall, personality_score, lifestyle_score,
                  trait_similarity, critical_mismatch, bonuses, inputs_fingerprint, computed_at, expires_at
                )
                VALUES (
                  :pair_key,
                  CAST(:user_low_id AS uuid),
                  CAST(:user_high_id AS uuid),
                  :overall,
                  :personality_score,
                  :lifestyle_score,
                  CAST(:trait_similarity AS jsonb),
                  :critical_mismatch,
                  CAST(:bonuses AS jsonb),
                  :inputs_fingerprint,
                  :computed_at,
                  :expires_at
                )
                ON CONFLICT (pair_key)
                DO UPDATE SET
                  overall = EXCLUDED.overall,
                  personality_score = EXCLUDED.personality_score,
                  lifestyle_score = EXCLUDED.lifestyle_score,
                  trait_similarity = EXCLUDED.trait_similarity,
                  critical_mismatch = EXCLUDED.critical_mismatch,
                  bonuses = EXCLUDED.bonuses,
                  inputs_fingerprint = EXCLUDED.inputs_fingerprint,
                  computed_at = EXCLUDED.computed_at,
                  expires_at = EXCLUDED.expires_at
                """
            ),
            {
                **row,
                "trait_similarity": json.dumps(row["trait_similarity"]),
                "bonuses": json.dumps(list(row["bonuses"])),
            },
        )
        db.commit()


def delete_compatibility_scores_for_user(user_id: str) -> int:
    uid = _as_uuid(user_id)
    if not uid:
        return 0
    with SessionLocal() as db:
        result = db.execute(
            text(
                """
                DELETE FROM compatibility_score
                WHERE user_low_id = CAST(:user_id AS uuid) OR user_high_id = CAST(:user_id AS uuid)
                """
            ),
            {"user_id": uid},
        )
        db.commit()
    return int(result.rowcount or 0)


def _edge_exists(kind: str, sender_id: str, receiver_id: str) -> bool:
    with SessionLocal() as db:
        row = db.execute(
            text(
                f"""
                SELECT 1 AS present
                FROM {_EDGE_TABLES[kind]}
                WHERE sender_id = CAST(:sender_id AS uuid) AND receiver_id = CAST(:receiver_id AS uuid)
                """
            ),
            {"sender_id": sender_id, "receiver_id": receiver_id},
        ).mappings().first()
    return row is not None


def has_like(sender_id: str, receiver_id: str) -> bool:
    return _edge_exists("like", sender_id, receiver_id)


def has_pass(sender_id: str, receiver_id: str) -> bool:
    return _edge_exists("pass", sender_id, receiver_id)


def has_super_like(sender_id: str, receiver_id: str) -> bool:
    return _edge_exists("super_like", sender_id, receiver_id)


def is_blocked_pair(user_a: str, user_b: str) -> bool:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT 1 AS present
                FROM user_block
                WHERE (blocker_id = CAST(:a AS uuid) AND blocked_id = CAST(:b AS uuid))
                   OR (blocker_id = CAST(:b AS uuid) AND blocked_id = CAST(:a AS uuid))
                LIMIT 1
                """
            ),
            {"a": user_a, "b": user_b},
        ).mappings().first()
    return row is not None


def _insert_edge(db, kind: str, sender_id: str, receiver_id: str) -> bool:
    row = db.execute(
        text(
            f"""
            INSERT INTO {_EDGE_TABLES[kind]} (sender_id, receiver_id)
            VALUES (CAST(:sender_id AS uuid), CAST(:receiver_id AS uuid))
            ON CONFLICT (sender_id, receiver_id) DO NOTHING
            RETURNING sender_id
            """
        ),
        {"sender_id": sender_id, "receiver_id": receiver_id},
    ).mappings().first()
    return row is not None


def create_like(sender_id: str, receiver_id: str) -> bool:
    with SessionLocal() as db:
        created = _insert_edge(db, "like", sender_id, receiver_id)
        if created:
            log_user_activity(db, sender_id, ACTIVITY_LIKE_SENT, {"liked_user_id": receiver_id})
        db.commit()
    return created


def create_pass(sender_id: str, receiver_id: str) -> bool:
    with SessionLocal() as db:
        created = _insert_edge(db, "pass", sender_id, receiver_id)
        db.commit()
    return created


def create_super_like(sender_id: str, receiver_id: str) -> bool:
    with SessionLocal() as db:
        if not _insert_edge(db, "super_like", sender_id, receiver_id):
            return False
        if _insert_edge(db, "like", sender_id, receiver_id):
            log_user_activity(db, sender_id, ACTIVITY_LIKE_SENT, {"liked_user_id": receiver_id})
        log_user_activity(db, sender_id, ACTIVITY_SUPER_LIKE_SENT, {"super_liked_user_id": receiver_id})
        db.commit()
    return True


def _match_by_key(db, key: str) -> dict[str, Any] | None:
    row = db.execute(
        text(
            """
            SELECT m.id AS match_id, c.id AS conversation_id
            FROM match m
            LEFT JOIN conversation c ON c.match_id = m.id
            WHERE m.pair_key = :pair_key
            """
        ),
        {"pair_key": key},
    ).mappings().first()
    return _row_dict(row) if row else None


def find_match(user_a: str, user_b: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        return _match_by_key(db, pair_key(user_a, user_b))


def create_match_if_mutual(user_a: str, user_b: str) -> dict[str, Any] | None:
    low, high = canonical_pair(user_a, user_b)
    key = pair_key(low, high)
    try:
        with SessionLocal() as db:
            mutual = db.execute(
                text(
                    """
                    SELECT COUNT(*) AS n
                    FROM user_like
                    WHERE (sender_id = CAST(:a AS uuid) AND receiver_id = CAST(:b AS uuid))
                       OR (sender_id = CAST(:b AS uuid) AND receiver_id = CAST(:a AS uuid))
                    """
                ),
                {"a": low, "b": high},
            ).mappings().first()
            if int(mutual["n"]) < 2:
                return None
            existing = _match_by_key(db, key)
            if existing:
                return {**existing, "created": False}

            match_id = str(uuid.uuid4())
            conversation_id = str(uuid.uuid4())
            db.execute(
                text(
                    """
                    INSERT INTO match (id, pair_key, user_low_id, user_high_id)
                    VALUES (CAST(:id AS uuid), :pair_key, CAST(:low AS uuid), CAST(:high AS uuid))
                    """
                ),
                {"id": match_id, "pair_key": key, "low": low, "high": high},
            )
            db.execute(
                text(
                    """
                    INSERT INTO conversation (id, match_id, user_low_id, user_high_id)
                    VALUES (CAST(:id AS uuid), CAST(:match_id AS uuid), CAST(:low AS uuid), CAST(:high AS uuid))
                    """
                ),
                {"id": conversation_id, "match_id": match_id, "low": low, "high": high},
            )
            log_user_activity(db, low, ACTIVITY_MATCH_CREATED, {"matched_user_id": high, "match_id": match_id})
            log_user_activity(db, high, ACTIVITY_MATCH_CREATED, {"matched_user_id": low, "match_id": match_id})
            db.commit()
            return {"match_id": match_id, "conversation_id": conversation_id, "created": True}
    except IntegrityError:
        # the other like of the pair committed its match first
        with SessionLocal() as db:
            existing = _match_by_key(db, key)
        if existing:
            return {**existing, "created": False}
        raise


def list_discovery_exclusions(user_id: str) -> list[str]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT receiver_id AS user_id FROM user_like WHERE sender_id = CAST(:user_id AS uuid)
                UNION
                SELECT receiver_id FROM user_pass WHERE sender_id = CAST(:user_id AS uuid)
                UNION
                SELECT blocked_id FROM user_block WHERE blocker_id = CAST(:user_id AS uuid)
                UNION
                SELECT blocker_id FROM user_block WHERE blocked_id = CAST(:user_id AS uuid)
                """
            ),
            {"user_id": user_id},
        ).mappings().all()
    return [str(r["user_id"]) for r in rows]


def query_discovery_candidates(
    *,
    exclude_ids: list[str],
    gender: str | None,
    dob_min: date,
    dob_max: date,
    limit: int,
) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                f"""
                SELECT
                  {_PROFILE_COLUMNS}
                FROM profile p
                WHERE p.is_discoverable = TRUE
                  AND NOT (p.user_id = ANY(CAST(:exclude_ids AS uuid[])))
                  AND (CAST(:gender AS text) IS NULL OR p.gender = CAST(:gender AS text))
                  AND p.date_of_birth BETWEEN :dob_min AND :dob_max
                ORDER BY p.profile_completeness DESC, p.user_id
                LIMIT :limit
                """
            ),
            {
                "exclude_ids": _uuid_list(exclude_ids),
                "gender": gender,
                "dob_min": dob_min,
                "dob_max": dob_max,
                "limit": int(limit),
            },
        ).mappings().all()
    return [_profile_from_row(r) for r in rows]


def list_likes_received(user_id: str, limit: int = 20, offset: int = 0) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT
                  l.sender_id AS user_id,
                  p.display_name,
                  p.gender,
                  p.education,
                  p.profile_completeness,
                  l.created_at AS liked_at,
                  EXISTS (
                    SELECT 1 FROM user_super_like s
                    WHERE s.sender_id = l.sender_id AND s.receiver_id = l.receiver_id
                  ) AS is_super_like
                FROM user_like l
                JOIN profile p ON p.user_id = l.sender_id
                WHERE l.receiver_id = CAST(:user_id AS uuid)
                ORDER BY l.created_at DESC
                LIMIT :limit OFFSET :offset
                """
            ),
            {"user_id": user_id, "limit": int(limit), "offset": int(offset)},
        ).mappings().all()
    return [_row_dict(r) for r in rows]


def count_likes_received(user_id: str) -> int:
    with SessionLocal() as db:
        row = db.execute(
            text("SELECT COUNT(*) AS n FROM user_like WHERE receiver_id = CAST(:user_id AS uuid)"),
            {"user_id": user_id},
        ).mappings().first()
    return int(row["n"]) if row else 0


def list_matches(user_id: str, limit: int = 20, offset: int = 0) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT
                  m.id AS match_id,
                  other.user_id,
                  p.display_name,
                  m.created_at AS matched_at,
                  c.id AS conversation_id,
                  c.last_message_at
                FROM match m
                CROSS JOIN LATERAL (
                  SELECT CASE WHEN m.user_low_id = CAST(:user_id AS uuid) THEN m.user_high_id ELSE m.user_low_id END AS user_id
                ) other
                LEFT JOIN profile p ON p.user_id = other.user_id
                LEFT JOIN conversation c ON c.match_id = m.id
                WHERE m.user_low_id = CAST(:user_id AS uuid) OR m.user_high_id = CAST(:user_id AS uuid)
                ORDER BY m.created_at DESC
                LIMIT :limit OFFSET :offset
                """
            ),
            {"user_id": user_id, "limit": int(limit), "offset": int(offset)},
        ).mappings().all()
    return [_row_dict(r) for r in rows]


def count_matches(user_id: str) -> int:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT COUNT(*) AS n FROM match
                WHERE user_low_id = CAST(:user_id AS uuid) OR user_high_id = CAST(:user_id AS uuid)
                """
            ),
            {"user_id": user_id},
        ).mappings().first()
    return int(row["n"]) if row else 0


def enqueue_notification(
    *,
    user_id: str,
    notification_type: str,
    payload: dict[str, Any],
    idempotency_key: str,
) -> bool:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                INSERT INTO notification_outbox (id, user_id, notification_type, payload, idempotency_key)
                VALUES (CAST(:id AS uuid), CAST(:user_id AS uuid), :notification_type, CAST(:payload AS jsonb), :idempotency_key)
                ON CONFLICT (idempotency_key) DO NOTHING
                RETURNING id
                """
            ),
            {
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "notification_type": notification_type,
                "payload": json.dumps(payload or {}),
                "idempotency_key": idempotency_key,
            },
        ).mappings().first()
        db.commit()
    return row is not None
