"""
services/school_state.py

- 요청 단위로 생성되는 도메인 상태 저장소 (SchoolState)
- 원격 백엔드에서 받아온 컬렉션을 메모리에 들고, 화면/서비스가 쓰는 조회·갱신 함수를 제공
- 리소스마다 load(최초 1회) / refresh(강제 재조회) 수명주기가 명시적으로 있다.
  백그라운드 동기화나 모듈 전역 싱글톤은 없다.
"""

import logging
from typing import Callable, Dict, List, Optional

from schemas.auth import Identity
from schemas.results import AffectiveDomain, CompiledResult, PsychomotorDomain
from schemas.school import (
    AcademicSession,
    AcademicTerm,
    ClassSubjectRegistration,
    Notification,
    Payment,
    SchoolClass,
    Student,
    SubjectAssignment,
    Teacher,
)
from schemas.scores import Score
from services.errors import NotFoundError, SessionNotSetError
from services.school_client import SchoolAPIClient

logger = logging.getLogger(__name__)


class SchoolState:
    """학교 도메인 컬렉션 저장소. FastAPI 의존성으로 주입된다."""

    def __init__(self, client: SchoolAPIClient, identity: Optional[Identity] = None):
        self.client = client
        self.identity = identity

        self.session: Optional[AcademicSession] = None
        self.term: Optional[AcademicTerm] = None
        self.students: List[Student] = []
        self.classes: List[SchoolClass] = []
        self.teachers: List[Teacher] = []
        self.subject_assignments: List[SubjectAssignment] = []
        self.payments: List[Payment] = []
        self.notifications: List[Notification] = []

        # 반 단위로 받아오는 컬렉션
        self.registrations: Dict[int, List[ClassSubjectRegistration]] = {}
        self.scores: Dict[int, List[Score]] = {}
        self.affective: Dict[int, List[AffectiveDomain]] = {}
        self.psychomotor: Dict[int, List[PsychomotorDomain]] = {}
        self.compiled_results: Dict[int, List[CompiledResult]] = {}
        self.results_by_status: Dict[str, List[CompiledResult]] = {}

        self._loaded: set = set()

    # ==========================================================
    # [공통] load / refresh 수명주기
    # ==========================================================
    def _ensure(self, key: str, loader: Callable[[], None]) -> None:
        if key not in self._loaded:
            loader()

    def invalidate(self, key: Optional[str] = None) -> None:
        """key 가 없으면 전체 무효화"""
        if key is None:
            self._loaded.clear()
        else:
            self._loaded.discard(key)

    # ==========================================================
    # [REFRESH] 리소스별 강제 재조회
    # ==========================================================
    def refresh_session_term(self) -> None:
        session = self.client.get_active_session()
        term = self.client.get_current_term()
        self.session = AcademicSession.model_validate(session) if session else None
        self.term = AcademicTerm.model_validate(term) if term else None
        self._loaded.add("session_term")

    def refresh_students(self) -> None:
        self.students = [Student.model_validate(s) for s in self.client.list_students()]
        self._loaded.add("students")

    def refresh_classes(self) -> None:
        self.classes = [SchoolClass.model_validate(c) for c in self.client.list_classes()]
        self._loaded.add("classes")

    def refresh_teachers(self) -> None:
        self.teachers = [Teacher.model_validate(t) for t in self.client.list_teachers()]
        self._loaded.add("teachers")

    def refresh_subject_assignments(self) -> None:
        rows = self.client.list_subject_assignments()
        self.subject_assignments = [SubjectAssignment.model_validate(a) for a in rows]
        self._loaded.add("subject_assignments")

    def refresh_registrations(self, class_id: int) -> None:
        rows = self.client.list_class_subject_registrations(
            class_id=class_id,
            term=self.current_term_name(),
            academic_year=self.current_academic_year(),
        )
        registrations = [
            ClassSubjectRegistration.model_validate(r) for r in rows if r.get("class_id") == class_id
        ]
        if not registrations:
            # 학기 등록이 없으면 반에 연결된 기본 과목 목록을 쓴다
            cls = self.client.get_class_with_subjects(class_id)
            registrations = [
                ClassSubjectRegistration(
                    id=0,
                    class_id=class_id,
                    subject_id=s["id"],
                    subject_name=s.get("name", ""),
                    term=self.current_term_name(),
                    academic_year=self.current_academic_year(),
                )
                for s in cls.get("subjects") or []
            ]
        self.registrations[class_id] = registrations
        self._loaded.add(f"registrations:{class_id}")

    def refresh_scores(self, class_id: int) -> None:
        self.scores[class_id] = [Score.model_validate(s) for s in self.client.list_scores(class_id)]
        self._loaded.add(f"scores:{class_id}")

    def refresh_domains(self, class_id: int) -> None:
        self.affective[class_id] = [
            AffectiveDomain.model_validate(a) for a in self.client.list_affective_domains(class_id)
        ]
        self.psychomotor[class_id] = [
            PsychomotorDomain.model_validate(p) for p in self.client.list_psychomotor_domains(class_id)
        ]
        self._loaded.add(f"domains:{class_id}")

    def refresh_compiled_results(self, class_id: int) -> None:
        rows = self.client.list_compiled_results(class_id=class_id)
        self.compiled_results[class_id] = [CompiledResult.model_validate(r) for r in rows]
        self._loaded.add(f"compiled:{class_id}")

    def refresh_results_by_status(self, status: str) -> None:
        rows = self.client.list_compiled_results(status=status)
        self.results_by_status[status] = [CompiledResult.model_validate(r) for r in rows]
        self._loaded.add(f"results:{status}")

    def refresh_payments(self) -> None:
        self.payments = [Payment.model_validate(p) for p in self.client.list_payments()]
        self._loaded.add("payments")

    def refresh_notifications(self) -> None:
        self.notifications = [Notification.model_validate(n) for n in self.client.list_notifications()]
        self._loaded.add("notifications")

    # ==========================================================
    # [READ] 세션 / 학기
    # ==========================================================
    def current_term_name(self) -> str:
        self._ensure("session_term", self.refresh_session_term)
        return self.term.name if self.term else ""

    def current_academic_year(self) -> str:
        self._ensure("session_term", self.refresh_session_term)
        return self.session.name if self.session else ""

    def require_session_term(self) -> tuple:
        """(session, term) 반환. 둘 중 하나라도 없으면 제출 불가"""
        self._ensure("session_term", self.refresh_session_term)
        if self.session is None or self.term is None:
            raise SessionNotSetError(
                "Active academic session or term is not set. Please contact the administrator."
            )
        return self.session, self.term

    # ==========================================================
    # [READ] 반 / 학생 / 교사
    # ==========================================================
    def get_class(self, class_id: int) -> SchoolClass:
        self._ensure("classes", self.refresh_classes)
        for cls in self.classes:
            if cls.id == class_id:
                return cls
        raise NotFoundError("Class not found")

    def class_students(self, class_id: int) -> List[Student]:
        """반의 재학(Active) 학생, 성(last name) 순 정렬"""
        cls = self.get_class(class_id)
        if cls.students:
            pool = cls.students
        else:
            self._ensure("students", self.refresh_students)
            pool = [s for s in self.students if s.class_id == class_id]
        return sorted((s for s in pool if s.is_active), key=lambda s: s.last_name.lower())

    def all_students(self) -> List[Student]:
        self._ensure("students", self.refresh_students)
        return self.students

    def current_teacher(self) -> Optional[Teacher]:
        if self.identity is None or self.identity.linked_id is None:
            return None
        self._ensure("teachers", self.refresh_teachers)
        for teacher in self.teachers:
            if teacher.id == self.identity.linked_id:
                return teacher
        return None

    def class_teacher_classes(self, teacher_id: int) -> List[SchoolClass]:
        self._ensure("classes", self.refresh_classes)
        return [c for c in self.classes if c.class_teacher_id == teacher_id and c.status == "Active"]

    # ==========================================================
    # [READ] 과목 배정 / 등록 과목
    # ==========================================================
    def teacher_assignments(self, teacher_id: int) -> List[SubjectAssignment]:
        self._ensure("subject_assignments", self.refresh_subject_assignments)
        return [a for a in self.subject_assignments if a.teacher_id == teacher_id]

    def registered_subject_ids(self, class_id: int) -> List[int]:
        key = f"registrations:{class_id}"
        self._ensure(key, lambda: self.refresh_registrations(class_id))
        return [r.subject_id for r in self.registrations.get(class_id, []) if r.status == "Active"]

    def class_subject_assignments(self, class_id: int) -> List[SubjectAssignment]:
        """이번 학기 반의 과목 배정 (등록 과목이 있으면 그것으로 거른다)"""
        self._ensure("subject_assignments", self.refresh_subject_assignments)
        term, year = self.current_term_name(), self.current_academic_year()
        registered = self.registered_subject_ids(class_id)
        return [
            a for a in self.subject_assignments
            if a.class_id == class_id
            and a.term == term
            and a.academic_year == year
            and (not registered or a.subject_id in registered)
        ]

    # ==========================================================
    # [READ] 성적 / 영역평가 / 집계결과
    # ==========================================================
    def class_scores(self, class_id: int) -> List[Score]:
        key = f"scores:{class_id}"
        self._ensure(key, lambda: self.refresh_scores(class_id))
        return self.scores.get(class_id, [])

    def scores_for_assignment(self, class_id: int, assignment_id: int) -> List[Score]:
        return [s for s in self.class_scores(class_id) if s.subject_assignment_id == assignment_id]

    def _domain_for(self, rows, student_id: int, class_id: int):
        term, year = self.current_term_name(), self.current_academic_year()
        for row in rows:
            if (row.student_id == student_id and row.class_id == class_id
                    and row.term == term and row.academic_year == year):
                return row
        return None

    def affective_for(self, student_id: int, class_id: int) -> Optional[AffectiveDomain]:
        self._ensure(f"domains:{class_id}", lambda: self.refresh_domains(class_id))
        return self._domain_for(self.affective.get(class_id, []), student_id, class_id)

    def psychomotor_for(self, student_id: int, class_id: int) -> Optional[PsychomotorDomain]:
        self._ensure(f"domains:{class_id}", lambda: self.refresh_domains(class_id))
        return self._domain_for(self.psychomotor.get(class_id, []), student_id, class_id)

    def class_compiled_results(self, class_id: int) -> List[CompiledResult]:
        self._ensure(f"compiled:{class_id}", lambda: self.refresh_compiled_results(class_id))
        term, year = self.current_term_name(), self.current_academic_year()
        return [
            r for r in self.compiled_results.get(class_id, [])
            if r.term == term and r.academic_year == year
        ]

    def results_with_status(self, status: str) -> List[CompiledResult]:
        """결재 화면용: 반과 상관없이 상태별 집계 결과"""
        self._ensure(f"results:{status}", lambda: self.refresh_results_by_status(status))
        return [r for r in self.results_by_status.get(status, []) if r.status == status]

    def compiled_result_for(self, student_id: int, class_id: int) -> Optional[CompiledResult]:
        for result in self.class_compiled_results(class_id):
            if result.student_id == student_id:
                return result
        return None

    def all_payments(self) -> List[Payment]:
        self._ensure("payments", self.refresh_payments)
        return self.payments

    def notifications_for(self, audience: str) -> List[Notification]:
        """대상이 audience 이거나 all 인 알림"""
        self._ensure("notifications", self.refresh_notifications)
        return [n for n in self.notifications if n.target_audience in (audience, "all")]

    # ==========================================================
    # [WRITE] 로컬 컬렉션 갱신 (원격 저장 성공 후에만 호출)
    # ==========================================================
    def upsert_scores(self, class_id: int, rows: List[Score]) -> None:
        existing = self.scores.setdefault(class_id, [])
        index = {(s.student_id, s.subject_assignment_id): i for i, s in enumerate(existing)}
        for row in rows:
            key = (row.student_id, row.subject_assignment_id)
            if key in index:
                existing[index[key]] = row
            else:
                index[key] = len(existing)
                existing.append(row)

    def upsert_domain(self, kind: str, row: AffectiveDomain) -> None:
        bucket = self.affective if kind == "affective" else self.psychomotor
        rows = bucket.setdefault(row.class_id, [])
        for i, existing in enumerate(rows):
            if (existing.student_id == row.student_id and existing.term == row.term
                    and existing.academic_year == row.academic_year):
                rows[i] = row
                return
        rows.append(row)

    def replace_compiled_results(self, class_id: int, results: List[CompiledResult]) -> None:
        keep = [
            r for r in self.compiled_results.get(class_id, [])
            if not any(r.student_id == n.student_id and r.term == n.term
                       and r.academic_year == n.academic_year for n in results)
        ]
        self.compiled_results[class_id] = keep + list(results)
        logger.debug("compiled results replaced: class_id=%s count=%s", class_id, len(results))
