from fastapi import APIRouter, Depends

from dependencies.security import get_school_state, require_role
from schemas.results import DomainRatingsRequest
from services import domain_ratings
from services.school_state import SchoolState

router = APIRouter(
    prefix="/ratings",
    tags=["영역 평가"],
    dependencies=[Depends(require_role("teacher"))],
)


# ✅ [SAVE] 학생 한 명의 정의적/심동적 영역 평가 저장
@router.post("/")
def save_ratings(req: DomainRatingsRequest, state: SchoolState = Depends(get_school_state)):
    saved = domain_ratings.save_domain_ratings(
        state, req.class_id, req.student_id, req.affective, req.psychomotor
    )
    return {"success": True, "data": saved, "message": "Ratings saved"}


# ✅ [READ] 반 학생별 입력 현황
@router.get("/status")
def read_rating_status(class_id: int, state: SchoolState = Depends(get_school_state)):
    domain_ratings.require_class_teacher(state, class_id)
    return {"success": True, "data": domain_ratings.rating_status(state, class_id)}
