import logging
from typing import Any, Dict, List, Optional

import httpx

from config.settings import settings
from schemas.common import RemoteEnvelope

logger = logging.getLogger(__name__)


NETWORK_ERROR_MESSAGE = "Unable to reach the school server. Please check your connection and try again."

# 상태코드별 기본 메시지 (400/422 는 서버 메시지 우선)
STATUS_MESSAGES = {
    400: "Invalid request. Please check your input.",
    401: "Your session has expired. Please log in again.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    422: "Validation failed. Please check your input.",
    429: "Too many requests. Please try again later.",
    500: "Server error. Please try again later.",
}


class SchoolAPIError(Exception):
    """학교 REST 백엔드 연동 관련 예외 (non-2xx, success:false, 네트워크 오류 모두)"""

    def __init__(self, message: str, status_code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code      # None 이면 네트워크/타임아웃
        self.data = data

    @property
    def server_message(self) -> Optional[str]:
        """백엔드가 직접 내려준 message (없으면 None)"""
        if isinstance(self.data, dict):
            msg = self.data.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg
        return None


def _error_message(status_code: int, body: Dict[str, Any]) -> str:
    server_msg = body.get("message") if isinstance(body, dict) else None
    if status_code in (400, 422) and server_msg:
        return server_msg
    if status_code in STATUS_MESSAGES:
        return STATUS_MESSAGES[status_code]
    return server_msg or f"Request failed with status {status_code}"


class SchoolAPIClient:
    """학교 REST 백엔드 통합 클라이언트 (요청마다 사용자 토큰을 그대로 전달)"""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.SCHOOL_API_ROOT).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.SCHOOL_API_TIMEOUT
        self.token = token
        self._transport = transport          # 테스트에서 httpx.MockTransport 주입

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Requested-With": "XMLHttpRequest",
            "Cache-Control": "no-cache, no-store, must-revalidate",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """공통 HTTP 요청 처리: 봉투를 벗겨 data 만 돌려준다"""
        url = f"{self.base_url}{endpoint}"
        if "params" in kwargs and kwargs["params"] is not None:
            kwargs["params"] = {k: v for k, v in kwargs["params"].items() if v is not None}

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException:
            logger.warning("school api timeout: %s %s", method, endpoint)
            raise SchoolAPIError(NETWORK_ERROR_MESSAGE)
        except httpx.RequestError as e:
            logger.warning("school api unreachable: %s %s (%s)", method, endpoint, e)
            raise SchoolAPIError(NETWORK_ERROR_MESSAGE)

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.is_success:
            message = _error_message(response.status_code, body)
            logger.warning("school api %s %s -> %s: %s", method, endpoint, response.status_code, message)
            raise SchoolAPIError(message, status_code=response.status_code, data=body)

        if isinstance(body, dict) and "success" in body:
            envelope = RemoteEnvelope.model_validate(body)
            if envelope.success is False:
                message = envelope.message or "Request failed"
                logger.warning("school api %s %s -> success:false: %s", method, endpoint, message)
                raise SchoolAPIError(message, status_code=response.status_code, data=body)
            return envelope.data

        return body

    def _list(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        data = self._make_request("GET", endpoint, params=params)
        if isinstance(data, dict):
            # 페이지네이션 응답 { items: [...] } 도 허용
            data = data.get("items", data.get("data", []))
        return data if isinstance(data, list) else []

    # ===============================================================
    # 인증 / 학사 기본 정보
    # ===============================================================

    def get_profile(self) -> Dict[str, Any]:
        """현재 토큰의 사용자 프로필"""
        return self._make_request("GET", "/auth/profile")

    def get_active_session(self) -> Optional[Dict[str, Any]]:
        return self._make_request("GET", "/sessions/active")

    def get_current_term(self) -> Optional[Dict[str, Any]]:
        return self._make_request("GET", "/terms/current")

    def list_students(self, class_id: Optional[int] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._list("/students", {"class_id": class_id, "status": status})

    def list_classes(self) -> List[Dict[str, Any]]:
        return self._list("/classes")

    def get_class_with_subjects(self, class_id: int) -> Dict[str, Any]:
        """반 정보 + 백엔드에 연결된 과목 목록"""
        return self._make_request("GET", "/classes/with-subjects", params={"id": class_id}) or {}

    def list_teachers(self) -> List[Dict[str, Any]]:
        return self._list("/teachers")

    def list_subject_assignments(
        self,
        teacher_id: Optional[int] = None,
        class_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return self._list("/teacher-assignments", {"teacher_id": teacher_id, "class_id": class_id})

    def list_class_subject_registrations(
        self,
        class_id: Optional[int] = None,
        term: Optional[str] = None,
        academic_year: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self._list(
            "/class-subject-registrations",
            {"class_id": class_id, "term": term, "academic_year": academic_year},
        )

    # ===============================================================
    # 성적
    # ===============================================================

    def list_scores(self, class_id: int, subject_id: Optional[int] = None) -> List[Dict[str, Any]]:
        return self._list("/scores/by-class", {"class_id": class_id, "subject_id": subject_id})

    def bulk_save_scores(self, scores: List[Dict[str, Any]]) -> Any:
        """임시저장/제출 공통 일괄 저장"""
        return self._make_request("POST", "/scores/bulk", json={"scores": scores})

    # ===============================================================
    # 정의적 / 심동적 영역
    # ===============================================================

    def list_affective_domains(self, class_id: int) -> List[Dict[str, Any]]:
        return self._list("/affective-domains", {"class_id": class_id})

    def save_affective_domain(self, payload: Dict[str, Any]) -> Any:
        return self._make_request("POST", "/affective-domains", json=payload)

    def list_psychomotor_domains(self, class_id: int) -> List[Dict[str, Any]]:
        return self._list("/psychomotor-domains", {"class_id": class_id})

    def save_psychomotor_domain(self, payload: Dict[str, Any]) -> Any:
        return self._make_request("POST", "/psychomotor-domains", json=payload)

    # ===============================================================
    # 결과 집계 / 결재
    # ===============================================================

    def list_compiled_results(
        self,
        class_id: Optional[int] = None,
        student_id: Optional[int] = None,
        term_id: Optional[int] = None,
        session_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self._list(
            "/results/compiled",
            {
                "class_id": class_id,
                "student_id": student_id,
                "term_id": term_id,
                "session_id": session_id,
                "status": status,
            },
        )

    def compile_results(
        self,
        class_id: int,
        term_id: int,
        session_id: int,
        students_meta: List[Dict[str, Any]],
    ) -> Any:
        payload = {
            "class_id": class_id,
            "term_id": term_id,
            "session_id": session_id,
            "students_meta": students_meta,
        }
        return self._make_request("POST", "/results/compile", json=payload)

    def approve_results(self, result_ids: List[int]) -> Any:
        return self._make_request("POST", "/results/approve", json={"result_ids": result_ids})

    def reject_results(self, result_ids: List[int], rejection_reason: str) -> Any:
        payload = {"result_ids": result_ids, "rejection_reason": rejection_reason}
        return self._make_request("POST", "/results/reject", json=payload)

    # ===============================================================
    # 알림 / 수납
    # ===============================================================

    def create_notification(self, payload: Dict[str, Any]) -> Any:
        return self._make_request("POST", "/notifications", json=payload)

    def list_notifications(self) -> List[Dict[str, Any]]:
        return self._list("/notifications")

    def list_payments(self, student_id: Optional[int] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._list("/payments", {"student_id": student_id, "status": status})
