"""
services/result_compilation.py

- 담임의 반 결과 집계 흐름
  1) 미리보기: 재학생별 과목 성적 / 영역평가 유무 / 코멘트 / 완료 여부 / 석차
  2) 제출: 한 명이라도 미완료면 원격 호출 없이 거절, 통과하면 반 단위 compile 1회
  3) 결재: 관리자 승인 / 반려 (반려 사유 필수)
  4) 반 요약 CSV
- 석차는 grading.rank_averages 하나로만 계산한다 (평균 0 은 석차 없음)
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from config.settings import settings
from schemas.results import ClassResultPreview, CompiledResult, StudentResultPreview
from services import grading
from services.domain_ratings import require_class_teacher
from services.errors import CompletenessError, ConflictError, ScoreValidationError
from services.notifications import send_notification
from services.school_client import SchoolAPIError
from services.school_state import SchoolState

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = (
    "Results have already been compiled for this class, term, and session. "
    "Please contact the administrator if you need changes."
)
SUBMIT_FAILED_MESSAGE = "Failed to submit results. Please try again."

SUMMARY_HEADER = "Student Name,Admission Number,Subjects Completed,Total Score,Average,Position,Status"

# 학기별 (시작, 종료, 다음 학기 시작). (연도 오프셋, 월-일), 오프셋 0 = 학년도 시작 연도
TERM_CALENDAR = {
    "First Term": ((0, "09-01"), (0, "12-15"), (1, "01-08")),
    "Second Term": ((1, "01-08"), (1, "04-12"), (1, "04-28")),
    "Third Term": ((1, "04-28"), (1, "07-28"), (1, "09-01")),
}


def get_term_dates(term: str, academic_year: str) -> Dict[str, str]:
    """
    학기명 + 학년도("2024/2025") → 학기 시작/종료/다음 학기 시작일 (YYYY-MM-DD)
    - 모르는 학기명은 First Term 으로 본다
    """
    try:
        start_year = int(academic_year.split("/")[0])
    except ValueError:
        start_year = datetime.now(timezone.utc).year
    begin, end, next_begin = TERM_CALENDAR.get(term, TERM_CALENDAR["First Term"])

    def _date(part: Tuple[int, str]) -> str:
        return f"{start_year + part[0]}-{part[1]}"

    return {
        "term_begin": _date(begin),
        "term_end": _date(end),
        "next_term_begin": _date(next_begin),
    }


# ==========================================================
# 1) 미리보기
# ==========================================================
def _editable(results: List[CompiledResult]) -> Tuple[bool, Optional[str]]:
    """(수정 가능 여부, 반려 사유). 미제출이거나 반려됐으면 수정 가능"""
    rejected = [r for r in results if r.status == "Rejected"]
    if rejected:
        return True, rejected[0].rejection_reason
    locked = any(r.status in ("Submitted", "Approved") for r in results)
    return not locked, None


def build_class_preview(
    state: SchoolState,
    class_id: int,
    comments: Optional[Dict[int, str]] = None,
) -> ClassResultPreview:
    _, cls = require_class_teacher(state, class_id)
    comments = comments or {}

    assignment_ids = {a.id for a in state.class_subject_assignments(class_id)}
    total_subjects = len(assignment_ids)
    scores = [s for s in state.class_scores(class_id) if s.subject_assignment_id in assignment_ids]

    rows: List[StudentResultPreview] = []
    for student in state.class_students(class_id):
        student_scores = [s for s in scores if s.student_id == student.id]
        # 집계에는 제출된 성적만 들어간다
        submitted = [s for s in student_scores if s.status == "Submitted"]
        total = sum(s.total for s in submitted)
        average = grading.round2(total / len(submitted)) if submitted else 0.0
        existing = state.compiled_result_for(student.id, class_id)
        auto = grading.auto_comment(average)

        # 직접 입력 > 기존 집계본 코멘트 > 자동 코멘트
        comment = (
            (comments.get(student.id) or "").strip()
            or (existing.class_teacher_comment if existing else "")
            or auto
        )
        has_affective = state.affective_for(student.id, class_id) is not None
        has_psychomotor = state.psychomotor_for(student.id, class_id) is not None

        rows.append(StudentResultPreview(
            student_id=student.id,
            student_name=student.full_name,
            admission_number=student.admission_number,
            scores=student_scores,
            has_affective=has_affective,
            has_psychomotor=has_psychomotor,
            total_score=total,
            average_score=average,
            subjects_completed=len(submitted),
            total_subjects=total_subjects,
            class_teacher_comment=comment,
            auto_comment=auto,
            is_complete=(
                total_subjects > 0
                and len(submitted) == total_subjects
                and has_affective
                and has_psychomotor
                and bool(comment.strip())
            ),
            status=existing.status if existing else None,
            rejection_reason=existing.rejection_reason if existing else None,
        ))

    positions = grading.rank_averages([r.average_score for r in rows])
    for row, position in zip(rows, positions):
        row.position = position

    ranked = [r.average_score for r, p in zip(rows, positions) if p is not None]
    editable, rejection_reason = _editable(state.class_compiled_results(class_id))

    return ClassResultPreview(
        class_id=class_id,
        class_name=cls.name,
        term=state.current_term_name(),
        academic_year=state.current_academic_year(),
        class_average=grading.round2(grading.mean(ranked)),
        total_students=len(rows),
        incomplete_count=sum(1 for r in rows if not r.is_complete),
        editable=editable,
        rejection_reason=rejection_reason,
        students=rows,
    )


# ==========================================================
# 2) 제출
# ==========================================================
def _compiled_ids(response) -> Dict[int, int]:
    """compile 응답에서 student_id → result id (응답 형식이 다르면 빈 dict)"""
    rows = response.get("results") if isinstance(response, dict) else response
    if not isinstance(rows, list):
        return {}
    return {
        r["student_id"]: r["id"]
        for r in rows
        if isinstance(r, dict) and "student_id" in r and "id" in r
    }


def submit_class_results(
    state: SchoolState,
    class_id: int,
    comments: Optional[Dict[int, str]] = None,
) -> Dict[str, object]:
    teacher, cls = require_class_teacher(state, class_id)
    session, term = state.require_session_term()

    preview = build_class_preview(state, class_id, comments)
    if not preview.editable:
        raise ConflictError(CONFLICT_MESSAGE)
    if not preview.students:
        raise CompletenessError("There are no active students in this class")

    incomplete = [r for r in preview.students if not r.is_complete]
    if incomplete:
        raise CompletenessError(
            f"{len(incomplete)} student(s) have incomplete data. Please ensure all scores, "
            "affective/psychomotor assessments, and comments are entered.",
            missing=[{"student_id": r.student_id, "student_name": r.student_name} for r in incomplete],
        )

    dates = get_term_dates(preview.term, preview.academic_year)
    students_meta = [
        {
            "student_id": r.student_id,
            **dates,
            "class_teacher_name": teacher.full_name,
            "class_teacher_comment": r.class_teacher_comment,
            "principal_name": settings.PRINCIPAL_NAME,
            "principal_comment": "",
        }
        for r in preview.students
    ]

    try:
        response = state.client.compile_results(
            class_id=class_id,
            term_id=term.id,
            session_id=session.id,
            students_meta=students_meta,
        )
    except SchoolAPIError as e:
        logger.warning("compile failed: class_id=%s status=%s msg=%s", class_id, e.status_code, e.message)
        if "already compiled" in (e.server_message or e.message).lower():
            raise ConflictError(CONFLICT_MESSAGE)
        raise SchoolAPIError(
            e.server_message or SUBMIT_FAILED_MESSAGE,
            status_code=e.status_code,
            data=e.data,
        )

    ids = _compiled_ids(response)
    compiled_date = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    results = [
        CompiledResult(
            id=ids.get(r.student_id),
            student_id=r.student_id,
            class_id=class_id,
            term=preview.term,
            academic_year=preview.academic_year,
            scores=r.scores,
            affective=state.affective_for(r.student_id, class_id),
            psychomotor=state.psychomotor_for(r.student_id, class_id),
            total_score=r.total_score,
            average_score=r.average_score,
            class_average=preview.class_average,
            position=r.position,
            total_students=preview.total_students,
            class_teacher_name=teacher.full_name,
            class_teacher_comment=r.class_teacher_comment,
            principal_name=settings.PRINCIPAL_NAME,
            compiled_by=teacher.id,
            compiled_date=compiled_date,
            status="Submitted",
            **dates,
        )
        for r in preview.students
    ]
    state.replace_compiled_results(class_id, results)
    logger.info(
        "class results submitted: class_id=%s students=%s class_average=%s",
        class_id, len(results), preview.class_average,
    )

    notified = send_notification(
        state.client,
        "Class Results Submitted for Approval",
        f"{teacher.full_name} has submitted compiled results for {cls.name} "
        f"({preview.term}, {preview.academic_year}) for approval.",
        target_audience="admins",
        sender=state.identity,
        priority="high",
    )
    return {
        "class_average": preview.class_average,
        "total_students": preview.total_students,
        "results": results,
        "notified": notified,
    }


# ==========================================================
# 3) 결재 (관리자)
# ==========================================================
def _require_submitted(state: SchoolState, result_ids: List[int], action: str) -> List[CompiledResult]:
    pending = {r.id: r for r in state.results_with_status("Submitted")}
    unknown = [rid for rid in result_ids if rid not in pending]
    if unknown:
        raise ScoreValidationError(
            f"Only submitted results can be {action}",
            details={"result_ids": unknown},
        )
    return [pending[rid] for rid in result_ids]


def pending_results(state: SchoolState) -> List[CompiledResult]:
    return state.results_with_status("Submitted")


def approve_results(state: SchoolState, result_ids: List[int]) -> Dict[str, object]:
    results = _require_submitted(state, result_ids, "approved")
    state.client.approve_results(result_ids)
    state.invalidate("results:Submitted")
    logger.info("results approved: ids=%s", result_ids)

    class_count = len({r.class_id for r in results})
    send_notification(
        state.client,
        "Results Approved",
        f"{len(results)} compiled result(s) across {class_count} class(es) have been approved.",
        target_audience="all",
        sender=state.identity,
    )
    return {"approved": len(result_ids)}


def reject_results(state: SchoolState, result_ids: List[int], rejection_reason: str) -> Dict[str, object]:
    reason = (rejection_reason or "").strip()
    if not reason:
        raise ScoreValidationError("Please provide a reason for rejection")
    _require_submitted(state, result_ids, "rejected")

    state.client.reject_results(result_ids, reason)
    state.invalidate("results:Submitted")
    logger.info("results rejected: ids=%s", result_ids)

    send_notification(
        state.client,
        "Results Rejected",
        f"Compiled results were returned for correction. Reason: {reason}",
        target_audience="teachers",
        sender=state.identity,
        priority="high",
    )
    return {"rejected": len(result_ids), "rejection_reason": reason}


# ==========================================================
# 4) 반 요약 CSV
# ==========================================================
def export_class_summary_csv(
    state: SchoolState,
    class_id: int,
    comments: Optional[Dict[int, str]] = None,
) -> Tuple[str, str]:
    preview = build_class_preview(state, class_id, comments)
    lines = [SUMMARY_HEADER]
    for r in preview.students:
        lines.append(",".join([
            r.student_name,
            r.admission_number,
            f"{r.subjects_completed}/{r.total_subjects}",
            f"{r.total_score:g}",
            f"{r.average_score:.2f}",
            str(r.position) if r.position is not None else "-",
            "Complete" if r.is_complete else "Incomplete",
        ]))
    filename = f"{preview.class_name}_Results_{preview.term}_{preview.academic_year}.csv"
    return filename.replace("/", "-").replace(" ", "_"), "\n".join(lines) + "\n"
