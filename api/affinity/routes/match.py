from typing import Any

from fastapi import APIRouter, Depends, Query

from ..auth.deps import get_current_user_id
from ..config import RL_LIKE_LIMIT, RL_PASS_LIMIT, RL_SUPER_LIKE_LIMIT, RL_WINDOW_SECONDS
from ..deps import get_match_manager
from ..schemas import ActionResponse, TargetUserRequest
from ..services.match_actions import MatchTransitionManager
from ..services.rate_limit import rate_limit_dependency

router = APIRouter(prefix="/matches")

RL_LIKE = rate_limit_dependency("match_like", RL_LIKE_LIMIT, RL_WINDOW_SECONDS)
RL_PASS = rate_limit_dependency("match_pass", RL_PASS_LIMIT, RL_WINDOW_SECONDS)
RL_SUPER_LIKE = rate_limit_dependency("match_super_like", RL_SUPER_LIKE_LIMIT, RL_WINDOW_SECONDS)


@router.post("/like", response_model=ActionResponse, dependencies=[RL_LIKE])
def like(
    payload: TargetUserRequest,
    user_id: str = Depends(get_current_user_id),
    manager: MatchTransitionManager = Depends(get_match_manager),
) -> dict[str, Any]:
    return manager.like(user_id, payload.user_id).as_dict()


@router.post("/pass", response_model=ActionResponse, dependencies=[RL_PASS])
def pass_profile(
    payload: TargetUserRequest,
    user_id: str = Depends(get_current_user_id),
    manager: MatchTransitionManager = Depends(get_match_manager),
) -> dict[str, Any]:
    return manager.pass_profile(user_id, payload.user_id).as_dict()


@router.post("/super-like", response_model=ActionResponse, dependencies=[RL_SUPER_LIKE])
def super_like(
    payload: TargetUserRequest,
    user_id: str = Depends(get_current_user_id),
    manager: MatchTransitionManager = Depends(get_match_manager),
) -> dict[str, Any]:
    return manager.super_like(user_id, payload.user_id).as_dict()


@router.get("/who-liked-me")
def who_liked_me(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(get_current_user_id),
    manager: MatchTransitionManager = Depends(get_match_manager),
) -> dict[str, Any]:
    return manager.who_liked_me(user_id, limit=limit, offset=offset)


@router.get("")
def list_matches(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(get_current_user_id),
    manager: MatchTransitionManager = Depends(get_match_manager),
) -> dict[str, Any]:
    return manager.list_matches(user_id, limit=limit, offset=offset)
