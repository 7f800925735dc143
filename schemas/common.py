"""
schemas/common.py

- 프로젝트 전반에서 재사용할 공용 스키마 모음
- Pydantic v2 기준
- 포함 내용:
  1) 에러 응답 표준: ErrorDetail, ErrorResponse
  2) 원격 백엔드 응답 봉투: RemoteEnvelope
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, ConfigDict


# =========================================================
# 1) 에러 응답 표준
# =========================================================

class ErrorDetail(BaseModel):
    """에러 코드/메시지를 담는 최소 단위"""
    code: str = Field(..., description="에러 식별 코드 (예: VALIDATION_ERROR, INCOMPLETE)")
    message: str = Field(..., description="사용자에게 그대로 보여줄 메시지")
    details: Optional[Any] = Field(default=None, description="누락 학생 목록 등 부가 정보")


class ErrorResponse(BaseModel):
    """
    전역 에러 핸들러에서 내려주는 표준 에러 응답
    - middlewares/error_handler.py에서 이 스키마로 리턴
    """
    success: bool = False
    error: ErrorDetail
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="응답 생성 시각 (UTC)"
    )

    model_config = ConfigDict(extra="ignore")


# =========================================================
# 2) 원격 백엔드 응답 봉투
# =========================================================

class RemoteEnvelope(BaseModel):
    """
    학교 REST 백엔드가 내려주는 { success, message, data } 봉투
    - success 키가 없는 응답은 봉투 없이 온 것으로 보고 data 로 통째로 취급
    """
    success: Optional[bool] = None
    message: Optional[str] = None
    data: Optional[Any] = None

    model_config = ConfigDict(extra="allow")
