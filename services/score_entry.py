"""
services/score_entry.py

- 과목 교사의 성적 입력 흐름 (반 + 과목 단위)
  - 성적표(시트) 구성: 반의 재학생 한 줄씩, 기존 저장값으로 채움
  - 임시저장(Draft): 한 칸이라도 입력된 줄만 저장
  - 제출(Submitted): 모든 재학생이 세 칸을 다 채워야 가능, 반 통계/과목 석차를 찍어서 저장
  - CSV 내보내기 / 가져오기
- 제출된 성적은 잠긴다. 담임의 결과 집계가 반려(Rejected)되면 다시 열린다.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from schemas.scores import (
    DerivedScore,
    Score,
    ScoreEntry,
    ScoreImportResult,
    ScoreSheet,
    ScoreSheetRow,
)
from schemas.school import Student, SubjectAssignment
from services import grading
from services.errors import (
    CompletenessError,
    PermissionDeniedError,
    ScoreLockedError,
    ScoreValidationError,
)
from services.notifications import send_notification
from services.school_state import SchoolState

logger = logging.getLogger(__name__)

CSV_HEADER = "Student Name,Admission Number,CA1 (Max 20),CA2 (Max 20),Exam (Max 60)"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _fmt(value: Optional[float]) -> str:
    # 15.0 → "15", 12.5 → "12.5", None → ""
    return "" if value is None else f"{value:g}"


# ==========================================================
# [배정] 교사가 입력 가능한 반/과목
# ==========================================================
def assigned_classes(state: SchoolState) -> List[Dict[str, object]]:
    teacher = state.current_teacher()
    if teacher is None:
        return []
    seen: Dict[int, Dict[str, object]] = {}
    for a in state.teacher_assignments(teacher.id):
        seen.setdefault(a.class_id, {"id": a.class_id, "name": a.class_name})
    return list(seen.values())


def available_subjects(state: SchoolState, class_id: int) -> List[SubjectAssignment]:
    """교사 배정 ∩ 이번 학기 반 등록 과목"""
    teacher = state.current_teacher()
    if teacher is None:
        return []
    return [a for a in state.class_subject_assignments(class_id) if a.teacher_id == teacher.id]


def resolve_assignment(state: SchoolState, class_id: int, subject_id: int) -> SubjectAssignment:
    for a in available_subjects(state, class_id):
        if a.subject_id == subject_id:
            return a
    raise PermissionDeniedError("You are not assigned to this class and subject for the current term")


# ==========================================================
# [잠금] 제출 여부 판단
# ==========================================================
def is_sheet_locked(state: SchoolState, class_id: int, existing: List[Score]) -> bool:
    """제출된 성적이 있으면 잠금. 단, 반 결과가 반려된 상태면 다시 수정 가능"""
    if not any(s.status == "Submitted" for s in existing):
        return False
    reopened = any(r.status == "Rejected" for r in state.class_compiled_results(class_id))
    return not reopened


# ==========================================================
# [READ] 성적표 구성
# ==========================================================
def _entry_from_score(score: Optional[Score]) -> ScoreEntry:
    if score is None:
        return ScoreEntry()
    return ScoreEntry(ca1=score.ca1, ca2=score.ca2, exam=score.exam)


def _sheet_row(student: Student, entry: ScoreEntry, status: Optional[str] = None) -> ScoreSheetRow:
    derived = grading.derive_score(entry.ca1, entry.ca2, entry.exam) if entry.has_any() else None
    return ScoreSheetRow(
        student_id=student.id,
        student_name=student.full_name,
        admission_number=student.admission_number,
        entry=entry,
        derived=derived,
        status=status,
    )


def build_score_sheet(state: SchoolState, class_id: int, subject_id: int) -> ScoreSheet:
    assignment = resolve_assignment(state, class_id, subject_id)
    cls = state.get_class(class_id)
    existing = {s.student_id: s for s in state.scores_for_assignment(class_id, assignment.id)}

    rows = [
        _sheet_row(
            student,
            _entry_from_score(existing.get(student.id)),
            existing[student.id].status if student.id in existing else None,
        )
        for student in state.class_students(class_id)
    ]
    return ScoreSheet(
        class_id=class_id,
        class_name=cls.name,
        subject_id=subject_id,
        subject_name=assignment.subject_name,
        subject_assignment_id=assignment.id,
        term=state.current_term_name(),
        academic_year=state.current_academic_year(),
        locked=is_sheet_locked(state, class_id, list(existing.values())),
        rows=rows,
    )


# ==========================================================
# [VALIDATE] 입력 즉시 검증
# ==========================================================
def preview_entry(entry: ScoreEntry) -> DerivedScore:
    """한 줄 입력값을 검증하고 총점/등급/평어를 계산"""
    ca1, ca2, exam = grading.validate_entry(entry.ca1, entry.ca2, entry.exam)
    return grading.derive_score(ca1, ca2, exam)


def _validated_entries(students: List[Student], entries: Dict[int, ScoreEntry]) -> Dict[int, ScoreEntry]:
    by_id = {s.id: s for s in students}
    cleaned: Dict[int, ScoreEntry] = {}
    for student_id, entry in entries.items():
        student = by_id.get(student_id)
        if student is None:
            raise ScoreValidationError(f"Student {student_id} is not an active member of this class")
        try:
            ca1, ca2, exam = grading.validate_entry(entry.ca1, entry.ca2, entry.exam)
        except ScoreValidationError as e:
            raise ScoreValidationError(f"{student.full_name}: {e.message}")
        cleaned[student_id] = ScoreEntry(ca1=ca1, ca2=ca2, exam=exam)
    return cleaned


def _build_score(
    state: SchoolState,
    assignment: SubjectAssignment,
    student_id: int,
    entry: ScoreEntry,
    status: str,
    existing: Optional[Score],
    stats: Optional[Dict[str, float]] = None,
    position: Optional[int] = None,
) -> Score:
    teacher = state.current_teacher()
    derived = grading.derive_score(entry.ca1, entry.ca2, entry.exam)
    stats = stats or {"class_average": 0.0, "class_min": 0.0, "class_max": 0.0}
    return Score(
        id=existing.id if existing else None,
        student_id=student_id,
        subject_assignment_id=assignment.id,
        subject_name=assignment.subject_name,
        ca1=entry.ca1 or 0,
        ca2=entry.ca2 or 0,
        exam=entry.exam or 0,
        total=derived.total,
        grade=derived.grade,
        remark=derived.remark,
        subject_position=position,
        subject_teacher=teacher.full_name if teacher else "",
        entered_by=teacher.id if teacher else None,
        entered_date=_now_iso(),
        term=state.current_term_name(),
        academic_year=state.current_academic_year(),
        status=status,
        **stats,
    )


def _backend_payload(score: Score, assignment: SubjectAssignment, session_id=None, term_id=None) -> Dict:
    payload = score.model_dump(exclude_none=True)
    payload.update(
        subject_id=assignment.subject_id,
        class_id=assignment.class_id,
        teacher_id=assignment.teacher_id,
        score=score.total,
        status=score.status.lower(),
    )
    if session_id is not None:
        payload["session_id"] = session_id
    if term_id is not None:
        payload["term_id"] = term_id
    return payload


# ==========================================================
# [DRAFT] 임시저장
# ==========================================================
def save_draft(state: SchoolState, class_id: int, subject_id: int, entries: Dict[int, ScoreEntry]) -> Dict:
    assignment = resolve_assignment(state, class_id, subject_id)
    existing = {s.student_id: s for s in state.scores_for_assignment(class_id, assignment.id)}
    if is_sheet_locked(state, class_id, list(existing.values())):
        raise ScoreLockedError("Scores for this subject have been submitted and can no longer be edited")

    students = state.class_students(class_id)
    cleaned = _validated_entries(students, entries)

    rows = [
        _build_score(state, assignment, student.id, cleaned[student.id], "Draft", existing.get(student.id))
        for student in students
        if student.id in cleaned and cleaned[student.id].has_any()
    ]
    if rows:
        state.client.bulk_save_scores([_backend_payload(r, assignment) for r in rows])
        state.upsert_scores(class_id, rows)

    logger.info("draft saved: class_id=%s subject_id=%s rows=%s", class_id, subject_id, len(rows))
    return {"saved": len(rows), "scores": rows}


# ==========================================================
# [SUBMIT] 제출
# ==========================================================
def submit_scores(state: SchoolState, class_id: int, subject_id: int, entries: Dict[int, ScoreEntry]) -> Dict:
    assignment = resolve_assignment(state, class_id, subject_id)
    existing = {s.student_id: s for s in state.scores_for_assignment(class_id, assignment.id)}
    if is_sheet_locked(state, class_id, list(existing.values())):
        raise ScoreLockedError("Scores for this subject have already been submitted")

    session, term = state.require_session_term()
    students = state.class_students(class_id)
    cleaned = _validated_entries(students, entries)

    missing = [s for s in students if s.id not in cleaned or not cleaned[s.id].is_complete()]
    if missing:
        raise CompletenessError(
            f"Please enter all scores for all {len(students)} students before submitting",
            missing=[{"student_id": s.id, "student_name": s.full_name} for s in missing],
        )

    totals = [grading.derive_score(cleaned[s.id].ca1, cleaned[s.id].ca2, cleaned[s.id].exam).total
              for s in students]
    stats = grading.class_statistics(totals)
    positions = grading.assign_positions(totals)

    rows = [
        _build_score(
            state, assignment, student.id, cleaned[student.id], "Submitted",
            existing.get(student.id), stats=stats, position=position,
        )
        for student, position in zip(students, positions)
    ]
    if rows:
        state.client.bulk_save_scores(
            [_backend_payload(r, assignment, session_id=session.id, term_id=term.id) for r in rows]
        )
        state.upsert_scores(class_id, rows)

    logger.info(
        "scores submitted: class_id=%s subject_id=%s rows=%s avg=%s",
        class_id, subject_id, len(rows), stats["class_average"],
    )

    cls = state.get_class(class_id)
    teacher = state.current_teacher()
    if cls.class_teacher_id and teacher is not None:
        send_notification(
            state.client,
            "New Subject Scores Submitted",
            f"{teacher.full_name} has submitted {assignment.subject_name} scores for {cls.name}",
            target_audience="teachers",
            sender=state.identity,
        )

    return {"submitted": len(rows), **stats, "scores": rows}


# ==========================================================
# [CSV] 내보내기 / 가져오기
# ==========================================================
def export_scores_csv(
    state: SchoolState,
    class_id: int,
    subject_id: int,
    entries: Optional[Dict[int, ScoreEntry]] = None,
) -> Tuple[str, str]:
    """(파일명, CSV 본문). 이름에 콤마가 있으면 가져올 때 깨진다 (이스케이프 없음)"""
    sheet = build_score_sheet(state, class_id, subject_id)
    lines = [CSV_HEADER]
    for row in sheet.rows:
        entry = (entries or {}).get(row.student_id, row.entry)
        lines.append(",".join([
            row.student_name,
            row.admission_number,
            _fmt(entry.ca1),
            _fmt(entry.ca2),
            _fmt(entry.exam),
        ]))
    filename = f"{sheet.class_name}_{sheet.subject_name}_{sheet.term}_{sheet.academic_year}.csv"
    return filename.replace("/", "-").replace(" ", "_"), "\n".join(lines) + "\n"


def parse_scores_csv(students: List[Student], text: str) -> ScoreImportResult:
    """
    내보내기와 같은 형식의 CSV 를 읽어 학생별 입력값으로 변환
    - 첫 줄(헤더)은 건너뜀, 빈 줄/필드 5개 미만 줄은 무시
    - 학번을 모르거나 값이 범위를 벗어난 줄은 통째로 건너뛰고 skipped 로 집계
    """
    lines = [line for line in text.lstrip("\ufeff").splitlines() if line.strip()]
    if len(lines) < 2:
        raise ScoreValidationError("Invalid CSV file")

    by_admission = {s.admission_number: s for s in students}
    entries: Dict[int, ScoreEntry] = {}
    imported = skipped = 0

    for line in lines[1:]:
        parts = [p.strip() for p in line.split(",")]
        if len(parts) < 5:
            continue
        _, admission_number, ca1, ca2, exam = parts[:5]

        student = by_admission.get(admission_number)
        if student is None:
            skipped += 1
            continue
        try:
            values = grading.validate_entry(ca1, ca2, exam)
        except ScoreValidationError:
            skipped += 1
            continue
        if any(v is None for v in values):
            skipped += 1
            continue

        entries[student.id] = ScoreEntry(ca1=values[0], ca2=values[1], exam=values[2])
        imported += 1

    return ScoreImportResult(imported=imported, skipped=skipped, entries=entries)


def import_scores_csv(state: SchoolState, class_id: int, subject_id: int, text: str) -> ScoreImportResult:
    """가져온 값은 저장하지 않는다. 임시저장/제출 때 함께 보내야 반영됨"""
    assignment = resolve_assignment(state, class_id, subject_id)
    existing = state.scores_for_assignment(class_id, assignment.id)
    if is_sheet_locked(state, class_id, existing):
        raise ScoreLockedError("Scores for this subject have been submitted and can no longer be edited")

    result = parse_scores_csv(state.class_students(class_id), text)
    logger.info(
        "csv import: class_id=%s subject_id=%s imported=%s skipped=%s",
        class_id, subject_id, result.imported, result.skipped,
    )
    return result
