from typing import Annotated, Callable, Optional

from fastapi import Depends, Header, HTTPException

from schemas.auth import Identity, RolePermissions
from services.errors import PermissionDeniedError
from services.school_client import SchoolAPIClient
from services.school_state import SchoolState

AuthHeader = Annotated[Optional[str], Header(alias="Authorization")]


# 역할별 권한표
ROLE_PERMISSIONS = {
    "admin": RolePermissions(
        can_manage_users=True,
        can_manage_students=True,
        can_manage_teachers=True,
        can_manage_parents=True,
        can_manage_classes=True,
        can_manage_subjects=True,
        can_manage_assignments=True,
        can_approve_results=True,
        can_manage_payments=True,
        can_view_reports=True,
        can_manage_settings=True,
    ),
    "teacher": RolePermissions(can_enter_scores=True, can_view_reports=True),
    "accountant": RolePermissions(
        can_manage_payments=True,
        can_verify_payments=True,
        can_view_reports=True,
    ),
    "parent": RolePermissions(can_view_reports=True),
}


def get_role_permissions(role: Optional[str]) -> RolePermissions:
    # 모르는 역할은 권한 없음
    return ROLE_PERMISSIONS.get(role, RolePermissions())


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Missing Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # "Bearer <token>" 파싱
    try:
        scheme, token = authorization.split(" ", 1)
    except ValueError:
        raise HTTPException(
            status_code=401,
            detail="Invalid Authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=401,
            detail="Invalid auth scheme",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token.strip()


def get_school_client(authorization: AuthHeader = None) -> SchoolAPIClient:
    """요청의 사용자 토큰을 그대로 실어 백엔드를 부르는 클라이언트"""
    return SchoolAPIClient(token=_bearer_token(authorization))


def get_current_identity(client: SchoolAPIClient = Depends(get_school_client)) -> Identity:
    # 토큰 검증은 백엔드가 한다. 만료 시 SchoolAPIError(401)
    profile = client.get_profile()
    identity = Identity.model_validate(profile or {})
    identity.token = client.token or ""
    return identity


def get_school_state(
    client: SchoolAPIClient = Depends(get_school_client),
    identity: Identity = Depends(get_current_identity),
) -> SchoolState:
    return SchoolState(client, identity)


def require_permission(name: str) -> Callable[..., Identity]:
    """예) Depends(require_permission("can_enter_scores"))"""

    def _checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        if not getattr(get_role_permissions(identity.role), name, False):
            raise PermissionDeniedError("You do not have permission to perform this action.")
        return identity

    return _checker



def require_role(*roles: str) -> Callable[..., Identity]:
    """예) Depends(require_role("teacher"))"""

    def _checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in roles:
            raise PermissionDeniedError("You do not have permission to perform this action.")
        return identity

    return _checker
