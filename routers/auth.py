from fastapi import APIRouter, Depends

from dependencies.security import get_current_identity, get_role_permissions
from schemas.auth import Identity

router = APIRouter(prefix="/auth", tags=["인증"])


# ✅ [READ] 현재 사용자 + 역할별 권한
@router.get("/me")
def read_me(identity: Identity = Depends(get_current_identity)):
    return {
        "success": True,
        "data": {
            "user": identity.model_dump(),
            "permissions": get_role_permissions(identity.role).model_dump(),
        },
        "message": "Current user loaded",
    }
