import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from . import repo as sql_repo
from .config import ALLOWED_ORIGINS
from .database import SessionLocal
from .deps import build_services
from .errors import AffinityError
from .question_loader import sync_questions
from .routes import include_modular_routers

logger = logging.getLogger(__name__)


def run_migrations() -> None:
    env_dir = os.getenv("MIGRATIONS_DIR", "").strip()
    docker_dir = Path("/app/migrations")
    local_dir = Path(__file__).resolve().parents[1] / "migrations"

    if env_dir:
        migrations_dir = Path(env_dir)
    elif docker_dir.exists():
        migrations_dir = docker_dir
    else:
        migrations_dir = local_dir

    if not migrations_dir.exists() or not migrations_dir.is_dir():
        raise FileNotFoundError(
            "Migrations directory not found. Checked: "
            f"MIGRATIONS_DIR={env_dir or '<unset>'}, {docker_dir}, {local_dir}"
        )

    files = sorted([f.name for f in migrations_dir.iterdir() if f.is_file() and f.suffix == ".sql"])
    with SessionLocal() as db:
        for fname in files:
            sql = (migrations_dir / fname).read_text(encoding="utf-8")
            db.execute(text(sql))
        db.commit()
    logger.info("[startup] applied %s migration files from %s", len(files), migrations_dir)


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


def bootstrap_database(repo) -> None:
    wait_for_db()
    run_migrations()
    # question bank is seeded once; later edits go through scripts/seed_questions.py
    if not repo.list_questions():
        sync_questions(repo)


async def _affinity_error_handler(request: Request, exc: AffinityError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


def create_app(repo=None, clock=None) -> FastAPI:
    """Build the API around a repository.

    Without an explicit repository the PostgreSQL-backed `affinity.repo` module
    is used and the database is migrated on startup.
    """
    use_database = repo is None
    repo = sql_repo if repo is None else repo

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if use_database:
            bootstrap_database(repo)
        yield

    app = FastAPI(title="Affinity Matching API", lifespan=lifespan)
    app.state.services = build_services(repo, clock=clock)
    app.add_exception_handler(AffinityError, _affinity_error_handler)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    include_modular_routers(app)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
