from typing import Any

from fastapi import APIRouter, Depends

from ..auth.deps import get_current_user_id
from ..config import RL_BULK_COMPATIBILITY_LIMIT, RL_SUBMIT_ANSWERS_LIMIT, RL_WINDOW_SECONDS
from ..deps import get_personality_service
from ..schemas import BulkCompatibilityRequest, PersonalityScoresResponse, SubmitAnswersRequest
from ..services.personality import CompatibilitySuccess, PersonalityService
from ..services.rate_limit import rate_limit_dependency
from ..traits import Answer

router = APIRouter(prefix="/personality")

RL_SUBMIT_ANSWERS = rate_limit_dependency("personality_submit", RL_SUBMIT_ANSWERS_LIMIT, RL_WINDOW_SECONDS)
RL_BULK_COMPATIBILITY = rate_limit_dependency("bulk_compatibility", RL_BULK_COMPATIBILITY_LIMIT, RL_WINDOW_SECONDS)


@router.get("/questions")
def list_questions(service: PersonalityService = Depends(get_personality_service)) -> dict[str, Any]:
    return {"questions": service.list_questions()}


@router.post("/submit", dependencies=[RL_SUBMIT_ANSWERS])
def submit_answers(
    payload: SubmitAnswersRequest,
    user_id: str = Depends(get_current_user_id),
    service: PersonalityService = Depends(get_personality_service),
) -> dict[str, Any]:
    answers = [Answer(question_id=a.question_id, option_index=a.option_index) for a in payload.answers]
    status = service.submit_answers(user_id, answers)
    return {"message": "Personality questionnaire completed successfully", **status.as_dict()}


@router.get("/scores", response_model=PersonalityScoresResponse)
def get_scores(
    user_id: str = Depends(get_current_user_id),
    service: PersonalityService = Depends(get_personality_service),
) -> dict[str, Any]:
    return service.get_trait_vector(user_id).as_dict()


@router.get("/compatibility/{target_user_id}")
def get_compatibility(
    target_user_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PersonalityService = Depends(get_personality_service),
) -> dict[str, Any]:
    breakdown = service.compatibility(user_id, target_user_id)
    return {"user_id": target_user_id, "compatibility": breakdown.as_dict()}


@router.post("/bulk-compatibility", dependencies=[RL_BULK_COMPATIBILITY])
def bulk_compatibility(
    payload: BulkCompatibilityRequest,
    user_id: str = Depends(get_current_user_id),
    service: PersonalityService = Depends(get_personality_service),
) -> dict[str, Any]:
    results = service.bulk_compatibility(user_id, payload.user_ids)
    return {
        "results": [r.as_dict() for r in results],
        "succeeded": sum(1 for r in results if isinstance(r, CompatibilitySuccess)),
        "failed": sum(1 for r in results if not isinstance(r, CompatibilitySuccess)),
    }


@router.delete("/retake")
def retake(
    user_id: str = Depends(get_current_user_id),
    service: PersonalityService = Depends(get_personality_service),
) -> dict[str, Any]:
    service.reset_personality(user_id)
    return {"message": "Personality data has been reset. You can now retake the questionnaire."}


@router.get("/insights")
def get_insights(
    user_id: str = Depends(get_current_user_id),
    service: PersonalityService = Depends(get_personality_service),
) -> dict[str, Any]:
    return service.insights(user_id)
