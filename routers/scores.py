from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from config.settings import settings
from dependencies.security import get_school_state, require_permission
from schemas.scores import ScoreEntry, ScoreSheetRequest, ValidateEntryRequest
from services import grading, score_entry
from services.errors import ScoreValidationError
from services.school_state import SchoolState

router = APIRouter(
    prefix="/scores",
    tags=["성적 입력"],
    dependencies=[Depends(require_permission("can_enter_scores"))],
)


# ==========================================================
# [1단계] 배정 조회
# ==========================================================

# ✅ [READ] 교사에게 배정된 반 목록
@router.get("/classes")
def read_assigned_classes(state: SchoolState = Depends(get_school_state)):
    return {"success": True, "data": score_entry.assigned_classes(state)}


# ✅ [READ] 반에서 이번 학기 입력 가능한 과목
@router.get("/subjects")
def read_available_subjects(class_id: int, state: SchoolState = Depends(get_school_state)):
    subjects = score_entry.available_subjects(state, class_id)
    return {"success": True, "data": [a.model_dump() for a in subjects]}


# ✅ [READ] 성적표 (반 × 과목)
@router.get("/sheet")
def read_score_sheet(class_id: int, subject_id: int, state: SchoolState = Depends(get_school_state)):
    sheet = score_entry.build_score_sheet(state, class_id, subject_id)
    return {"success": True, "data": sheet.model_dump()}


# ==========================================================
# [2단계] 입력 검증 (저장 없음)
# ==========================================================

# ✅ [VALIDATE] 한 칸 검증
@router.post("/validate")
def validate_field(req: ValidateEntryRequest):
    value = grading.validate_component(req.field, req.value)
    return {"success": True, "data": {"field": req.field, "value": value}}


# ✅ [PREVIEW] 한 줄 총점/등급/평어
@router.post("/preview")
def preview_row(entry: ScoreEntry):
    return {"success": True, "data": score_entry.preview_entry(entry).model_dump()}


# ==========================================================
# [3단계] 저장 / 제출
# ==========================================================

# ✅ [DRAFT] 임시저장
@router.post("/draft")
def save_draft(req: ScoreSheetRequest, state: SchoolState = Depends(get_school_state)):
    result = score_entry.save_draft(state, req.class_id, req.subject_id, req.entries)
    return {
        "success": True,
        "data": result,
        "message": f"Draft saved for {result['saved']} student(s)",
    }


# ✅ [SUBMIT] 제출 (이후 잠김)
@router.post("/submit")
def submit_scores(req: ScoreSheetRequest, state: SchoolState = Depends(get_school_state)):
    result = score_entry.submit_scores(state, req.class_id, req.subject_id, req.entries)
    return {
        "success": True,
        "data": result,
        "message": f"Scores submitted for {result['submitted']} student(s)",
    }


# ==========================================================
# [4단계] CSV
# ==========================================================

# ✅ [EXPORT] 성적표 CSV 내려받기
@router.get("/export")
def export_scores(class_id: int, subject_id: int, state: SchoolState = Depends(get_school_state)):
    filename, text = score_entry.export_scores_csv(state, class_id, subject_id)
    return Response(
        content=text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ✅ [IMPORT] CSV 업로드 → 입력값 (저장은 하지 않음)
@router.post("/import")
def import_scores(
    class_id: int = Form(...),
    subject_id: int = Form(...),
    file: UploadFile = File(...),
    state: SchoolState = Depends(get_school_state),
):
    raw = file.file.read()
    if len(raw) > settings.MAX_UPLOAD_MB * 1024 * 1024:
        raise ScoreValidationError(f"File is too large (max {settings.MAX_UPLOAD_MB}MB)")
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ScoreValidationError("Invalid CSV file")

    result = score_entry.import_scores_csv(state, class_id, subject_id, text)
    return {
        "success": True,
        "data": result.model_dump(),
        "message": f"Imported {result.imported} row(s), skipped {result.skipped}",
    }
