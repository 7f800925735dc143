"""
schemas/results.py

- 정의적(Affective) / 심동적(Psychomotor) 영역 평가
- 반 단위 결과 집계(CompiledResult) 와 미리보기, 결재(승인/반려) 요청 스키마
"""

from typing import Annotated, Dict, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from schemas.scores import Score


def _result_status(v):
    if isinstance(v, str) and v:
        return v.strip().capitalize()
    return v


ResultStatus = Annotated[
    Literal["Draft", "Submitted", "Approved", "Rejected"],
    BeforeValidator(_result_status),
]

AFFECTIVE_TRAITS = (
    "attentiveness",
    "honesty",
    "neatness",
    "obedience",
    "sense_of_responsibility",
)

PSYCHOMOTOR_TRAITS = (
    "attention_to_direction",
    "considerate_of_others",
    "handwriting",
    "sports",
    "verbal_fluency",
    "works_well_independently",
)


class TraitRating(BaseModel):
    value: int = Field(0, ge=0, le=5)        # 0 = 미평가, 1~5
    remark: str = ""


class AffectiveDomain(BaseModel):
    id: Optional[int] = None
    student_id: int
    class_id: int
    term: str = ""
    academic_year: str = ""
    ratings: Dict[str, TraitRating] = Field(default_factory=dict)
    entered_by: Optional[int] = None
    entered_date: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class PsychomotorDomain(AffectiveDomain):
    pass


class DomainRatingsRequest(BaseModel):
    """담임이 학생 한 명의 두 영역 평가를 한 번에 저장"""
    class_id: int
    student_id: int
    affective: Dict[str, TraitRating]
    psychomotor: Dict[str, TraitRating]


class CompiledResult(BaseModel):
    id: Optional[int] = None
    student_id: int
    class_id: int
    term: str = ""
    academic_year: str = ""
    scores: List[Score] = Field(default_factory=list)
    affective: Optional[AffectiveDomain] = None
    psychomotor: Optional[PsychomotorDomain] = None
    total_score: float = 0
    average_score: float = 0
    class_average: float = 0
    position: Optional[int] = None           # 평균 0점인 학생은 석차 없음
    total_students: int = 0
    term_begin: Optional[str] = None
    term_end: Optional[str] = None
    next_term_begin: Optional[str] = None
    class_teacher_name: str = ""
    class_teacher_comment: str = ""
    principal_name: str = ""
    principal_comment: str = ""
    compiled_by: Optional[int] = None
    compiled_date: Optional[str] = None
    status: ResultStatus = "Draft"
    approved_by: Optional[int] = None
    approved_date: Optional[str] = None
    rejection_reason: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class StudentResultPreview(BaseModel):
    student_id: int
    student_name: str
    admission_number: str
    scores: List[Score]
    has_affective: bool
    has_psychomotor: bool
    total_score: float
    average_score: float
    subjects_completed: int
    total_subjects: int
    class_teacher_comment: str
    auto_comment: str
    is_complete: bool
    position: Optional[int] = None
    status: Optional[str] = None             # 기존 집계본 상태
    rejection_reason: Optional[str] = None


class ClassResultPreview(BaseModel):
    class_id: int
    class_name: str
    term: str
    academic_year: str
    class_average: float
    total_students: int
    incomplete_count: int
    editable: bool                           # 미제출 또는 반려 상태
    rejection_reason: Optional[str] = None
    students: List[StudentResultPreview]


# =========================================================
# 요청 바디
# =========================================================

class SubmitResultsRequest(BaseModel):
    class_id: int
    comments: Dict[int, str] = Field(default_factory=dict)   # 학생 ID → 담임 코멘트


class ApproveResultsRequest(BaseModel):
    result_ids: List[int] = Field(..., min_length=1)


class RejectResultsRequest(BaseModel):
    result_ids: List[int] = Field(..., min_length=1)
    rejection_reason: str

    @field_validator("rejection_reason")
    @classmethod
    def _strip_reason(cls, v: str) -> str:
        return v.strip()
