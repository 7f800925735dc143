"""
services/grading.py

- 성적 계산 공용 헬퍼 (순수 함수만 둔다)
  1) 입력값 범위 검증: validate_component
  2) 총점/등급/평어 산출: derive_score  ← 성적 입력 화면과 제출 시점 모두 이 함수 하나만 사용
  3) 평균 기준 담임 자동 코멘트: auto_comment
  4) 석차: assign_positions (동점 = 같은 석차, 다음 석차는 건너뜀)
  5) 반 통계: class_statistics
"""

import math
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from schemas.scores import DerivedScore
from services.errors import ScoreValidationError


# 항목별 만점
SCORE_LIMITS: Dict[str, float] = {"ca1": 20, "ca2": 20, "exam": 60}

# (하한, 등급, 평어): 위에서부터 처음 만족하는 구간
GRADE_BANDS = (
    (70, "A", "Excellent"),
    (60, "B", "Very Good"),
    (50, "C", "Good"),
    (45, "D", "Fair"),
    (40, "E", "Poor"),
)
FAIL_GRADE = ("F", "Very Poor")

REMARKS: Dict[str, str] = {grade: remark for _, grade, remark in GRADE_BANDS}
REMARKS[FAIL_GRADE[0]] = FAIL_GRADE[1]

# 평균 기준 자동 코멘트. 등급 구간과 비슷하지만 총점이 아니라 "평균"으로 판단한다.
COMMENT_BANDS = (
    (70, "Excellent performance! Keep up the outstanding work."),
    (60, "Very good performance. Continue to work hard."),
    (50, "Good effort. There is room for improvement."),
    (40, "Fair performance. More effort is needed."),
)
LOW_COMMENT = "Needs serious improvement. Please put in more effort."

RATING_LABELS = {5: "Excellent", 4: "Very Good", 3: "Good", 2: "Fair", 1: "Poor"}


def round2(value: float) -> float:
    return round(float(value), 2)


# ==========================================================
# 1) 입력값 검증
# ==========================================================
def validate_component(field: str, value: Union[str, float, int, None]) -> Optional[float]:
    """
    한 칸의 입력값을 검증해 float 으로 돌려준다.
    - 빈 값(None, "")은 "미입력" → None
    - 숫자가 아니거나 범위를 벗어나면 ScoreValidationError
    """
    if field not in SCORE_LIMITS:
        raise ScoreValidationError(f"Unknown score field: {field}")
    if value is None or (isinstance(value, str) and not value.strip()):
        return None

    limit = SCORE_LIMITS[field]
    message = f"{field.upper()} must be between 0 and {limit:g}"
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ScoreValidationError(message)
    if math.isnan(number) or number < 0 or number > limit:
        raise ScoreValidationError(message)
    return number


def validate_entry(ca1, ca2, exam) -> tuple:
    return (
        validate_component("ca1", ca1),
        validate_component("ca2", ca2),
        validate_component("exam", exam),
    )


# ==========================================================
# 2) 총점 / 등급 / 평어
# ==========================================================
def grade_for_total(total: float) -> str:
    for floor, grade, _ in GRADE_BANDS:
        if total >= floor:
            return grade
    return FAIL_GRADE[0]


def derive_score(ca1: Optional[float], ca2: Optional[float], exam: Optional[float]) -> DerivedScore:
    """미입력 칸은 0 으로 보고 합산 (임시저장 시 일부만 입력된 경우)"""
    total = (ca1 or 0) + (ca2 or 0) + (exam or 0)
    grade = grade_for_total(total)
    return DerivedScore(total=total, grade=grade, remark=REMARKS[grade])


# ==========================================================
# 3) 담임 자동 코멘트 / 영역평가 라벨
# ==========================================================
def auto_comment(average: float) -> str:
    for floor, comment in COMMENT_BANDS:
        if average >= floor:
            return comment
    if average > 0:
        return LOW_COMMENT
    return ""


def rating_label(value: int) -> str:
    return RATING_LABELS.get(value, "Not Rated")


# ==========================================================
# 4) 석차
# ==========================================================
def assign_positions(
    values: Sequence[float],
    participates: Callable[[float], bool] = lambda v: True,
) -> List[Optional[int]]:
    """
    입력 순서 그대로의 석차 목록을 돌려준다.
    - 높은 값이 1등. 동점은 같은 석차, 다음 석차는 동점자 수만큼 건너뜀
      예) [82, 91, 91, 40] → [3, 1, 1, 4]
    - participates 가 False 인 항목은 석차 None
    """
    ranked = sorted((v for v in values if participates(v)), reverse=True)
    first_index: Dict[float, int] = {}
    for i, v in enumerate(ranked):
        first_index.setdefault(v, i + 1)
    return [first_index[v] if participates(v) else None for v in values]


def rank_averages(averages: Sequence[float]) -> List[Optional[int]]:
    """결과 집계용: 평균 0 이하는 석차에서 제외"""
    return assign_positions(averages, participates=lambda v: v > 0)


# ==========================================================
# 5) 반 통계
# ==========================================================
def class_statistics(totals: Iterable[float]) -> Dict[str, float]:
    values = list(totals)
    if not values:
        return {"class_average": 0.0, "class_min": 0.0, "class_max": 0.0}
    return {
        "class_average": round2(sum(values) / len(values)),
        "class_min": min(values),
        "class_max": max(values),
    }


def mean(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0
