from fastapi import APIRouter, Depends

from dependencies.security import get_school_state
from services import dashboard
from services.school_state import SchoolState

router = APIRouter(prefix="/dashboard", tags=["대시보드"])


# ✅ [READ] 역할별 요약
@router.get("")
def read_dashboard(state: SchoolState = Depends(get_school_state)):
    return {"success": True, "data": dashboard.summary_for(state)}
