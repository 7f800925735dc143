import json

import httpx
import pytest

from schemas.auth import Identity
from services.school_client import SchoolAPIClient
from services.school_state import SchoolState

BASE_URL = "http://school.test/api"

TERM = "First Term"
YEAR = "2024/2025"

CLASS_TEACHER_ID = 10
SUBJECT_TEACHER_ID = 11


class FakeSchoolBackend:
    """학교 REST 백엔드 흉내 (httpx.MockTransport 핸들러)"""

    def __init__(self):
        self.profile = {"id": 1, "role": "teacher", "name": "Grace Okafor", "linked_id": CLASS_TEACHER_ID}
        self.session = {"id": 3, "name": YEAR, "is_active": True}
        self.term = {"id": 7, "session_id": 3, "name": TERM, "is_current": True}
        self.classes = [
            {"id": 1, "name": "JSS 1A", "class_teacher_id": CLASS_TEACHER_ID, "status": "active"},
            {"id": 2, "name": "JSS 2B", "class_teacher_id": 99, "status": "active"},
        ]
        self.students = [
            {"id": 102, "first_name": "Ben", "last_name": "Bakare", "admission_number": "ADM/002",
             "class_id": 1, "parent_id": 501, "status": "active"},
            {"id": 101, "first_name": "Ada", "last_name": "Adeyemi", "admission_number": "ADM/001",
             "class_id": 1, "parent_id": 500, "status": "active"},
            {"id": 103, "first_name": "Chi", "last_name": "Chukwu", "admission_number": "ADM/003",
             "class_id": 1, "status": "inactive"},
        ]
        self.teachers = [
            {"id": CLASS_TEACHER_ID, "first_name": "Grace", "last_name": "Okafor",
             "is_class_teacher": True, "class_teacher_id": 1},
            {"id": SUBJECT_TEACHER_ID, "first_name": "Samuel", "last_name": "Bello"},
        ]
        self.assignments = [
            {"id": 201, "subject_id": 1, "subject_name": "Mathematics", "class_id": 1, "class_name": "JSS 1A",
             "teacher_id": CLASS_TEACHER_ID, "term": TERM, "academic_year": YEAR},
            {"id": 202, "subject_id": 2, "subject_name": "English", "class_id": 1, "class_name": "JSS 1A",
             "teacher_id": SUBJECT_TEACHER_ID, "term": TERM, "academic_year": YEAR},
            {"id": 203, "subject_id": 1, "subject_name": "Mathematics", "class_id": 1, "class_name": "JSS 1A",
             "teacher_id": CLASS_TEACHER_ID, "term": "Third Term", "academic_year": "2023/2024"},
        ]
        self.registrations = [
            {"id": 1, "class_id": 1, "subject_id": 1, "subject_name": "Mathematics",
             "term": TERM, "academic_year": YEAR, "status": "active"},
            {"id": 2, "class_id": 1, "subject_id": 2, "subject_name": "English",
             "term": TERM, "academic_year": YEAR, "status": "active"},
        ]
        self.class_subjects = {}  # class_id → [{"id", "name"}]
        self.scores = []
        self.affective = []
        self.psychomotor = []
        self.compiled = []
        self.notifications = []
        self.payments = []

        self.calls = []           # (method, path, json body)
        self.failures = {}        # (method, path) → (status, body)

        self.routes = {
            ("GET", "/auth/profile"): lambda req, body: self.profile,
            ("GET", "/sessions/active"): lambda req, body: self.session,
            ("GET", "/terms/current"): lambda req, body: self.term,
            ("GET", "/students"): lambda req, body: self.students,
            ("GET", "/classes"): lambda req, body: self.classes,
            ("GET", "/teachers"): lambda req, body: self.teachers,
            ("GET", "/teacher-assignments"): lambda req, body: self.assignments,
            ("GET", "/class-subject-registrations"): lambda req, body: self.registrations,
            ("GET", "/classes/with-subjects"): self._class_with_subjects,
            ("GET", "/scores/by-class"): self._list_scores,
            ("POST", "/scores/bulk"): self._bulk_scores,
            ("GET", "/affective-domains"): lambda req, body: self.affective,
            ("POST", "/affective-domains"): lambda req, body: self._save_domain(self.affective, body),
            ("GET", "/psychomotor-domains"): lambda req, body: self.psychomotor,
            ("POST", "/psychomotor-domains"): lambda req, body: self._save_domain(self.psychomotor, body),
            ("GET", "/results/compiled"): self._list_compiled,
            ("POST", "/results/compile"): self._compile,
            ("POST", "/results/approve"): lambda req, body: self._set_status(body, "Approved"),
            ("POST", "/results/reject"): lambda req, body: self._set_status(body, "Rejected"),
            ("POST", "/notifications"): self._notify,
            ("GET", "/notifications"): lambda req, body: self.notifications,
            ("GET", "/payments"): lambda req, body: self.payments,
        }

    # ---------- transport ----------
    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        key = (request.method, path)
        if key in self.failures:
            status, payload = self.failures[key]
            return httpx.Response(status, json=payload)
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, json={"success": False, "message": "Route not found"})
        return httpx.Response(200, json={"success": True, "message": "OK", "data": route(request, body)})

    def calls_to(self, method: str, path: str):
        return [c for c in self.calls if c[0] == method and c[1] == path]

    # ---------- handlers ----------
    def _class_with_subjects(self, request, body):
        class_id = int(request.url.params["id"])
        return {"id": class_id, "subjects": self.class_subjects.get(class_id, [])}

    def _list_scores(self, request, body):
        class_id = int(request.url.params["class_id"])
        return [s for s in self.scores if s.get("class_id") == class_id]

    def _bulk_scores(self, request, body):
        for row in body["scores"]:
            self.scores = [
                s for s in self.scores
                if not (s["student_id"] == row["student_id"]
                        and s["subject_assignment_id"] == row["subject_assignment_id"])
            ]
            self.scores.append(dict(row, id=len(self.scores) + 1000))
        return {"saved": len(body["scores"])}

    def _save_domain(self, bucket, body):
        bucket[:] = [d for d in bucket if d["student_id"] != body["student_id"]]
        bucket.append(dict(body, id=len(bucket) + 1))
        return bucket[-1]

    def _list_compiled(self, request, body):
        rows = self.compiled
        if "class_id" in request.url.params:
            rows = [r for r in rows if r["class_id"] == int(request.url.params["class_id"])]
        if "status" in request.url.params:
            rows = [r for r in rows if r["status"] == request.url.params["status"]]
        return rows

    def _compile(self, request, body):
        created = []
        for meta in body["students_meta"]:
            row = {
                "id": 9000 + len(self.compiled) + 1,
                "student_id": meta["student_id"],
                "class_id": body["class_id"],
                "term": TERM,
                "academic_year": YEAR,
                "class_teacher_comment": meta["class_teacher_comment"],
                "status": "Submitted",
            }
            self.compiled.append(row)
            created.append(row)
        return {"results": created}

    def _set_status(self, body, status):
        for row in self.compiled:
            if row["id"] in body["result_ids"]:
                row["status"] = status
                if status == "Rejected":
                    row["rejection_reason"] = body["rejection_reason"]
        return {"updated": len(body["result_ids"])}

    def _notify(self, request, body):
        self.notifications.append(body)
        return dict(body, id=len(self.notifications))


# ==========================================================
# 시드 헬퍼
# ==========================================================
def score_row(student_id, assignment_id, ca1, ca2, exam, status="submitted"):
    return {
        "student_id": student_id,
        "subject_assignment_id": assignment_id,
        "class_id": 1,
        "ca1": ca1,
        "ca2": ca2,
        "exam": exam,
        "total": ca1 + ca2 + exam,
        "term": TERM,
        "academic_year": YEAR,
        "status": status,
    }


def domain_row(student_id, traits):
    return {
        "student_id": student_id,
        "class_id": 1,
        "term": TERM,
        "academic_year": YEAR,
        "ratings": {t: {"value": 4, "remark": "Very Good"} for t in traits},
    }


@pytest.fixture
def backend():
    return FakeSchoolBackend()


@pytest.fixture
def make_client(backend):
    def _make(token="test-token"):
        return SchoolAPIClient(token=token, base_url=BASE_URL, transport=httpx.MockTransport(backend.handler))
    return _make


@pytest.fixture
def make_state(make_client):
    def _make(role="teacher", linked_id=CLASS_TEACHER_ID, user_id=1):
        identity = Identity(id=user_id, role=role, name="Test User", linked_id=linked_id)
        return SchoolState(make_client(), identity)
    return _make


@pytest.fixture
def api(backend, make_client):
    """TestClient: 원격 백엔드만 가짜로 바꾼 실제 앱"""
    from fastapi.testclient import TestClient

    from dependencies.security import get_school_client
    from main import app

    app.dependency_overrides[get_school_client] = lambda: make_client()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
