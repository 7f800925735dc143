"""
services/dashboard.py

- 로그인 역할별 첫 화면 요약
  - admin: 결재 대기 / 승인 / 반려 건수
  - teacher: 이번 학기 과목 배정, 담임 반
  - accountant: 수납 상태별 건수·금액
  - parent: 자녀의 승인된 결과
"""

import logging
from collections import defaultdict
from typing import Any, Dict

from services.school_state import SchoolState

logger = logging.getLogger(__name__)


def _admin_summary(state: SchoolState) -> Dict[str, Any]:
    return {
        "pending_approval": len(state.results_with_status("Submitted")),
        "approved": len(state.results_with_status("Approved")),
        "rejected": len(state.results_with_status("Rejected")),
    }


def _teacher_summary(state: SchoolState) -> Dict[str, Any]:
    teacher = state.current_teacher()
    if teacher is None:
        return {"assignments": [], "class_teacher_classes": []}

    term, year = state.current_term_name(), state.current_academic_year()
    assignments = [
        a for a in state.teacher_assignments(teacher.id)
        if a.term == term and a.academic_year == year
    ]
    return {
        "teacher_name": teacher.full_name,
        "assignments": [
            {"class_id": a.class_id, "class_name": a.class_name, "subject_name": a.subject_name}
            for a in assignments
        ],
        "class_teacher_classes": [
            {"id": c.id, "name": c.name} for c in state.class_teacher_classes(teacher.id)
        ],
    }


def _accountant_summary(state: SchoolState) -> Dict[str, Any]:
    counts: Dict[str, int] = defaultdict(int)
    amounts: Dict[str, float] = defaultdict(float)
    for p in state.all_payments():
        counts[p.status] += 1
        amounts[p.status] += p.amount
    return {
        "by_status": {
            status: {"count": counts[status], "amount": round(amounts[status], 2)}
            for status in sorted(counts)
        },
        "total_amount": round(sum(amounts.values()), 2),
    }


def _parent_summary(state: SchoolState) -> Dict[str, Any]:
    parent_id = state.identity.linked_id if state.identity else None
    children = [s for s in state.all_students() if parent_id is not None and s.parent_id == parent_id]
    child_ids = {c.id for c in children}
    approved = [r for r in state.results_with_status("Approved") if r.student_id in child_ids]
    return {
        "children": [{"id": c.id, "name": c.full_name, "class_id": c.class_id} for c in children],
        "approved_results": [
            {
                "id": r.id,
                "student_id": r.student_id,
                "term": r.term,
                "academic_year": r.academic_year,
                "average_score": r.average_score,
                "position": r.position,
                "total_students": r.total_students,
            }
            for r in approved
        ],
    }


# 역할 → 알림 대상
AUDIENCES = {"admin": "admins", "teacher": "teachers", "accountant": "accountants", "parent": "parents"}

_SUMMARIES = {
    "admin": _admin_summary,
    "teacher": _teacher_summary,
    "accountant": _accountant_summary,
    "parent": _parent_summary,
}


def summary_for(state: SchoolState) -> Dict[str, Any]:
    role = state.identity.role if state.identity else None
    builder = _SUMMARIES.get(role)
    if builder is None:
        return {"role": role}
    logger.debug("dashboard summary: role=%s", role)
    notices = state.notifications_for(AUDIENCES[role])
    return {
        "role": role,
        **builder(state),
        "notifications": [{"title": n.title, "priority": n.priority} for n in notices[-5:]],
    }
