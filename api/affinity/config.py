import os
from pathlib import Path

_default_questions = Path(__file__).resolve().parents[1] / "questions.json"
QUESTIONS_PATH = Path(os.getenv("QUESTIONS_PATH", str(_default_questions)))

COMPATIBILITY_TTL_DAYS = int(os.getenv("COMPATIBILITY_TTL_DAYS", "7"))
BULK_COMPATIBILITY_MAX_TARGETS = int(os.getenv("BULK_COMPATIBILITY_MAX_TARGETS", "100"))
BULK_COMPATIBILITY_WORKERS = int(os.getenv("BULK_COMPATIBILITY_WORKERS", "8"))
BULK_COMPATIBILITY_TIMEOUT_SECONDS = float(os.getenv("BULK_COMPATIBILITY_TIMEOUT_SECONDS", "10"))
MAX_ANSWERS_PER_SUBMISSION = int(os.getenv("MAX_ANSWERS_PER_SUBMISSION", "50"))

DISCOVERY_DEFAULT_LIMIT = int(os.getenv("DISCOVERY_DEFAULT_LIMIT", "10"))
DISCOVERY_MAX_LIMIT = int(os.getenv("DISCOVERY_MAX_LIMIT", "50"))
DISCOVERY_OVERFETCH_FACTOR = int(os.getenv("DISCOVERY_OVERFETCH_FACTOR", "3"))
EARTH_RADIUS_KM = float(os.getenv("EARTH_RADIUS_KM", "6371"))

JWT_SECRET = os.getenv("JWT_SECRET", "")
ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "15"))
JWT_LEEWAY_SECONDS = int(os.getenv("JWT_LEEWAY_SECONDS", "30"))

RL_LIKE_LIMIT = int(os.getenv("RL_LIKE_LIMIT", "100"))
RL_PASS_LIMIT = int(os.getenv("RL_PASS_LIMIT", "200"))
RL_SUPER_LIKE_LIMIT = int(os.getenv("RL_SUPER_LIKE_LIMIT", "20"))
RL_SUBMIT_ANSWERS_LIMIT = int(os.getenv("RL_SUBMIT_ANSWERS_LIMIT", "10"))
RL_BULK_COMPATIBILITY_LIMIT = int(os.getenv("RL_BULK_COMPATIBILITY_LIMIT", "30"))
RL_WINDOW_SECONDS = int(os.getenv("RL_WINDOW_SECONDS", "60"))

ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
