"""
services/errors.py

- 성적 입력 / 결과 집계 서비스 레이어에서 사용하는 예외 모음
- 모든 예외는 사용자에게 그대로 보여줄 수 있는 message 를 가진다.
- HTTP 상태코드 매핑은 middlewares/error_handler.py 에서 처리
"""

from typing import Any, List, Optional


class SchoolPortalError(Exception):
    """서비스 레이어 공통 예외"""

    code = "SCHOOL_PORTAL_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ScoreValidationError(SchoolPortalError):
    """입력값 범위 오류 (CA1/CA2 0~20, Exam 0~60 등). 상태 변경 없음."""

    code = "VALIDATION_ERROR"
    status_code = 422


class CompletenessError(SchoolPortalError):
    """제출 조건 미충족. missing 에 빠진 학생/항목 목록을 담는다."""

    code = "INCOMPLETE"
    status_code = 422

    def __init__(self, message: str, missing: Optional[List[Any]] = None):
        super().__init__(message, details={"missing": missing or []})
        self.missing = missing or []


class ScoreLockedError(SchoolPortalError):
    """이미 제출(Submitted)된 성적을 수정/재제출하려는 경우"""

    code = "SCORES_LOCKED"
    status_code = 409


class ConflictError(SchoolPortalError):
    """같은 반/학기/세션에 대해 이미 집계된 결과가 있는 경우"""

    code = "CONFLICT"
    status_code = 409


class PermissionDeniedError(SchoolPortalError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(SchoolPortalError):
    code = "NOT_FOUND"
    status_code = 404


class SessionNotSetError(SchoolPortalError):
    """활성 학년도(세션) 또는 학기가 설정되지 않음"""

    code = "SESSION_NOT_SET"
    status_code = 409
