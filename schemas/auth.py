from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


Role = Literal["admin", "teacher", "accountant", "parent"]


class Identity(BaseModel):
    """백엔드 /auth/profile 이 돌려주는 현재 사용자"""
    id: int                                   # users.id
    role: Role
    name: str = ""
    email: Optional[str] = None
    linked_id: Optional[int] = None           # 교사/학부모 테이블의 ID
    token: str = Field("", exclude=True)      # 원격 호출에 그대로 전달

    model_config = ConfigDict(extra="ignore")


class RolePermissions(BaseModel):
    can_manage_users: bool = False
    can_manage_students: bool = False
    can_manage_teachers: bool = False
    can_manage_parents: bool = False
    can_manage_classes: bool = False
    can_manage_subjects: bool = False
    can_manage_assignments: bool = False
    can_enter_scores: bool = False
    can_approve_results: bool = False
    can_manage_payments: bool = False
    can_verify_payments: bool = False
    can_view_reports: bool = False
    can_manage_settings: bool = False
