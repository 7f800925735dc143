from fastapi import APIRouter, Depends, Response

from dependencies.security import get_school_state, require_permission
from schemas.results import ApproveResultsRequest, RejectResultsRequest, SubmitResultsRequest
from services import result_compilation
from services.school_state import SchoolState

router = APIRouter(prefix="/results", tags=["결과 집계"])

class_teacher_only = [Depends(require_permission("can_enter_scores"))]
admin_only = [Depends(require_permission("can_approve_results"))]


# ==========================================================
# [1단계] 담임: 미리보기 / 제출
# ==========================================================

# ✅ [READ] 반 결과 미리보기 (저장된 코멘트 / 자동 코멘트 기준)
@router.get("/preview", dependencies=class_teacher_only)
def read_preview(class_id: int, state: SchoolState = Depends(get_school_state)):
    preview = result_compilation.build_class_preview(state, class_id)
    return {"success": True, "data": preview.model_dump()}


# ✅ [PREVIEW] 입력 중인 코멘트를 반영한 미리보기
@router.post("/preview", dependencies=class_teacher_only)
def preview_with_comments(req: SubmitResultsRequest, state: SchoolState = Depends(get_school_state)):
    preview = result_compilation.build_class_preview(state, req.class_id, req.comments)
    return {"success": True, "data": preview.model_dump()}


# ✅ [SUBMIT] 관리자 결재 요청
@router.post("/submit", dependencies=class_teacher_only)
def submit_results(req: SubmitResultsRequest, state: SchoolState = Depends(get_school_state)):
    result = result_compilation.submit_class_results(state, req.class_id, req.comments)
    return {
        "success": True,
        "data": result,
        "message": "Results submitted to admin for approval",
    }


# ✅ [EXPORT] 반 요약 CSV
@router.get("/summary/export", dependencies=class_teacher_only)
def export_summary(class_id: int, state: SchoolState = Depends(get_school_state)):
    filename, text = result_compilation.export_class_summary_csv(state, class_id)
    return Response(
        content=text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ==========================================================
# [2단계] 관리자: 결재
# ==========================================================

# ✅ [READ] 결재 대기 목록
@router.get("/pending", dependencies=admin_only)
def read_pending(state: SchoolState = Depends(get_school_state)):
    results = result_compilation.pending_results(state)
    return {"success": True, "data": [r.model_dump() for r in results]}


# ✅ [APPROVE] 승인
@router.post("/approve", dependencies=admin_only)
def approve(req: ApproveResultsRequest, state: SchoolState = Depends(get_school_state)):
    result = result_compilation.approve_results(state, req.result_ids)
    return {"success": True, "data": result, "message": f"{result['approved']} result(s) approved"}


# ✅ [REJECT] 반려 (사유 필수)
@router.post("/reject", dependencies=admin_only)
def reject(req: RejectResultsRequest, state: SchoolState = Depends(get_school_state)):
    result = result_compilation.reject_results(state, req.result_ids, req.rejection_reason)
    return {"success": True, "data": result, "message": f"{result['rejected']} result(s) rejected"}
