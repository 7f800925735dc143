"""
schemas/scores.py

- 과목별 성적(CA1, CA2, Exam) 입력/조회 스키마
- 입력 폼은 빈 문자열("")을 보낼 수 있으므로 "" → None 으로 정규화한다.
  None 은 "아직 입력 안 됨" 이며 0점과 다르다.
"""

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _score_status(v):
    # 백엔드 payload 는 'submitted' / 'draft' 소문자로 오기도 한다
    if isinstance(v, str) and v:
        return v.strip().capitalize()
    return v


Component = Annotated[Optional[float], BeforeValidator(_blank_to_none)]
ScoreStatus = Annotated[Literal["Draft", "Submitted"], BeforeValidator(_score_status)]
ScoreField = Literal["ca1", "ca2", "exam"]


class ScoreEntry(BaseModel):
    """한 학생의 입력 중인 성적 한 줄"""
    ca1: Component = None                    # 0~20
    ca2: Component = None                    # 0~20
    exam: Component = None                   # 0~60

    def has_any(self) -> bool:
        return any(v is not None for v in (self.ca1, self.ca2, self.exam))

    def is_complete(self) -> bool:
        return all(v is not None for v in (self.ca1, self.ca2, self.exam))


class DerivedScore(BaseModel):
    total: float                             # ca1 + ca2 + exam (0~100)
    grade: str                               # A ~ F
    remark: str                              # Excellent ~ Very Poor


class Score(BaseModel):
    """백엔드에 저장된 과목 성적 한 건"""
    id: Optional[int] = None
    student_id: int
    subject_assignment_id: int
    subject_name: str = ""
    ca1: float = 0
    ca2: float = 0
    exam: float = 0
    total: float = 0
    grade: str = ""
    remark: str = ""
    class_average: float = 0
    class_min: float = 0
    class_max: float = 0
    subject_position: Optional[int] = None
    subject_teacher: str = ""
    entered_by: Optional[int] = None
    entered_date: Optional[str] = None
    term: str = ""
    academic_year: str = ""
    status: ScoreStatus = "Draft"

    model_config = ConfigDict(extra="ignore")


class ScoreSheetRow(BaseModel):
    student_id: int
    student_name: str
    admission_number: str
    entry: ScoreEntry
    derived: Optional[DerivedScore] = None   # 한 칸이라도 입력된 경우에만
    status: Optional[str] = None             # 기존 저장본의 상태


class ScoreSheet(BaseModel):
    class_id: int
    class_name: str
    subject_id: int
    subject_name: str
    subject_assignment_id: int
    term: str
    academic_year: str
    locked: bool                             # 제출 완료 → 수정 불가
    rows: List[ScoreSheetRow]


# =========================================================
# 요청 바디
# =========================================================

class ValidateEntryRequest(BaseModel):
    field: ScoreField
    value: Optional[Union[float, str]] = None    # 숫자 또는 문자열


class ScoreSheetRequest(BaseModel):
    """임시저장 / 제출 공통 요청: 학생 ID → 입력값"""
    class_id: int
    subject_id: int
    entries: Dict[int, ScoreEntry] = Field(default_factory=dict)


class ScoreImportResult(BaseModel):
    imported: int
    skipped: int
    entries: Dict[int, ScoreEntry]
