import logging
from datetime import date
from typing import Dict, List

from schemas.results import (
    AFFECTIVE_TRAITS,
    PSYCHOMOTOR_TRAITS,
    AffectiveDomain,
    PsychomotorDomain,
    TraitRating,
)
from services import grading
from services.errors import PermissionDeniedError, ScoreValidationError
from services.school_state import SchoolState

logger = logging.getLogger(__name__)


def require_class_teacher(state: SchoolState, class_id: int):
    """담임만 영역평가 입력 / 결과 집계 가능"""
    teacher = state.current_teacher()
    if teacher is None:
        raise PermissionDeniedError("Only class teachers can perform this action")
    cls = state.get_class(class_id)
    if cls.class_teacher_id != teacher.id:
        raise PermissionDeniedError("You are not the class teacher of this class")
    return teacher, cls


def _complete_ratings(traits, ratings: Dict[str, TraitRating]) -> Dict[str, TraitRating]:
    # 모든 항목 1~5 필수, 평어가 비어 있으면 라벨로 채움
    filled = {}
    for trait in traits:
        rating = ratings.get(trait)
        if rating is None or not 1 <= rating.value <= 5:
            raise ScoreValidationError("Please provide ratings for all traits")
        filled[trait] = TraitRating(
            value=rating.value,
            remark=rating.remark.strip() or grading.rating_label(rating.value),
        )
    return filled


def save_domain_ratings(
    state: SchoolState,
    class_id: int,
    student_id: int,
    affective: Dict[str, TraitRating],
    psychomotor: Dict[str, TraitRating],
) -> Dict[str, object]:
    teacher, _ = require_class_teacher(state, class_id)
    if student_id not in {s.id for s in state.class_students(class_id)}:
        raise ScoreValidationError("Student is not an active member of this class")

    affective_ratings = _complete_ratings(AFFECTIVE_TRAITS, affective)
    psychomotor_ratings = _complete_ratings(PSYCHOMOTOR_TRAITS, psychomotor)

    common = dict(
        student_id=student_id,
        class_id=class_id,
        term=state.current_term_name(),
        academic_year=state.current_academic_year(),
        entered_by=teacher.id,
        entered_date=date.today().isoformat(),
    )
    existing_a = state.affective_for(student_id, class_id)
    existing_p = state.psychomotor_for(student_id, class_id)
    affective_row = AffectiveDomain(
        id=existing_a.id if existing_a else None, ratings=affective_ratings, **common
    )
    psychomotor_row = PsychomotorDomain(
        id=existing_p.id if existing_p else None, ratings=psychomotor_ratings, **common
    )

    # 두 요청이 모두 성공한 뒤에만 로컬 상태를 바꾼다
    state.client.save_affective_domain(affective_row.model_dump(exclude_none=True))
    state.client.save_psychomotor_domain(psychomotor_row.model_dump(exclude_none=True))
    state.upsert_domain("affective", affective_row)
    state.upsert_domain("psychomotor", psychomotor_row)

    logger.info("domain ratings saved: class_id=%s student_id=%s", class_id, student_id)
    return {"affective": affective_row, "psychomotor": psychomotor_row}


def rating_status(state: SchoolState, class_id: int) -> List[Dict[str, object]]:
    """학생별 영역평가 입력 여부"""
    return [
        {
            "student_id": s.id,
            "student_name": s.full_name,
            "has_affective": state.affective_for(s.id, class_id) is not None,
            "has_psychomotor": state.psychomotor_for(s.id, class_id) is not None,
        }
        for s in state.class_students(class_id)
    ]
