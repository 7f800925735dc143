import pytest

from conftest import SUBJECT_TEACHER_ID, domain_row, score_row
from schemas.results import AFFECTIVE_TRAITS, PSYCHOMOTOR_TRAITS
from services import result_compilation
from services.errors import (
    CompletenessError,
    ConflictError,
    PermissionDeniedError,
    ScoreValidationError,
)
from services.school_client import SchoolAPIError


def seed_class(backend, averages=(75, 55), psychomotor_for=(101, 102)):
    """두 과목 모두 같은 점수로 넣어 평균 = 과목 점수가 되게 한다"""
    for student_id, total in zip((101, 102), averages):
        exam = total - 30
        for assignment_id in (201, 202):
            backend.scores.append(score_row(student_id, assignment_id, 15, 15, exam))
        backend.affective.append(domain_row(student_id, AFFECTIVE_TRAITS))
        if student_id in psychomotor_for:
            backend.psychomotor.append(domain_row(student_id, PSYCHOMOTOR_TRAITS))


def submitted_result(result_id, student_id=101, class_id=1):
    return {
        "id": result_id, "student_id": student_id, "class_id": class_id,
        "term": "First Term", "academic_year": "2024/2025", "status": "Submitted",
    }


# ==========================================================
# 학기 날짜
# ==========================================================
@pytest.mark.parametrize(
    "term, expected",
    [
        ("First Term", ("2024-09-01", "2024-12-15", "2025-01-08")),
        ("Second Term", ("2025-01-08", "2025-04-12", "2025-04-28")),
        ("Third Term", ("2025-04-28", "2025-07-28", "2025-09-01")),
        ("Summer School", ("2024-09-01", "2024-12-15", "2025-01-08")),
    ],
)
def test_term_dates(term, expected):
    dates = result_compilation.get_term_dates(term, "2024/2025")
    assert (dates["term_begin"], dates["term_end"], dates["next_term_begin"]) == expected


# ==========================================================
# 미리보기
# ==========================================================
def test_preview_ranks_and_averages(backend, make_state):
    seed_class(backend)
    preview = result_compilation.build_class_preview(make_state(), 1)

    rows = {r.student_id: r for r in preview.students}
    assert preview.class_average == 65.0
    assert preview.total_students == 2
    assert preview.incomplete_count == 0
    assert preview.editable is True
    assert (rows[101].position, rows[102].position) == (1, 2)
    assert rows[101].total_score == 150
    assert rows[101].average_score == 75.0
    assert (rows[101].subjects_completed, rows[101].total_subjects) == (2, 2)
    assert rows[101].class_teacher_comment == "Excellent performance! Keep up the outstanding work."
    assert rows[102].class_teacher_comment == "Good effort. There is room for improvement."


def test_preview_manual_comment_wins(backend, make_state):
    seed_class(backend)
    preview = result_compilation.build_class_preview(make_state(), 1, {102: "  Steady progress  "})

    rows = {r.student_id: r for r in preview.students}
    assert rows[102].class_teacher_comment == "Steady progress"
    assert rows[102].auto_comment == "Good effort. There is room for improvement."


def test_preview_equal_averages_share_position(backend, make_state):
    seed_class(backend, averages=(60, 60))
    preview = result_compilation.build_class_preview(make_state(), 1)
    assert [r.position for r in preview.students] == [1, 1]


def test_student_without_scores_is_unranked_and_incomplete(backend, make_state):
    seed_class(backend)
    backend.scores = [s for s in backend.scores if s["student_id"] != 102]

    preview = result_compilation.build_class_preview(make_state(), 1)
    rows = {r.student_id: r for r in preview.students}
    assert rows[102].position is None
    assert rows[102].average_score == 0
    assert rows[102].is_complete is False
    assert preview.class_average == 75.0


def test_preview_requires_class_teacher(backend, make_state):
    with pytest.raises(PermissionDeniedError):
        result_compilation.build_class_preview(make_state(linked_id=SUBJECT_TEACHER_ID), 1)
    with pytest.raises(PermissionDeniedError):
        result_compilation.build_class_preview(make_state(), 2)


# ==========================================================
# 제출
# ==========================================================
def test_incomplete_student_blocks_whole_class(backend, make_state):
    seed_class(backend, psychomotor_for=(101,))

    with pytest.raises(CompletenessError) as exc:
        result_compilation.submit_class_results(make_state(), 1)

    assert exc.value.message.startswith("1 student(s) have incomplete data.")
    assert exc.value.missing == [{"student_id": 102, "student_name": "Ben Bakare"}]
    assert backend.calls_to("POST", "/results/compile") == []
    assert backend.notifications == []


def test_draft_subject_score_blocks_compilation(backend, make_state):
    for student_id in (101, 102):
        backend.scores.append(score_row(student_id, 201, 15, 15, 40))
        backend.scores.append(score_row(student_id, 202, 15, 15, 40, status="draft"))
        backend.affective.append(domain_row(student_id, AFFECTIVE_TRAITS))
        backend.psychomotor.append(domain_row(student_id, PSYCHOMOTOR_TRAITS))

    preview = result_compilation.build_class_preview(make_state(), 1)
    ada = preview.students[0]
    assert (ada.subjects_completed, ada.total_subjects) == (1, 2)
    assert (ada.total_score, ada.average_score) == (70, 70.0)
    assert ada.is_complete is False

    with pytest.raises(CompletenessError) as exc:
        result_compilation.submit_class_results(make_state(), 1)
    assert exc.value.message.startswith("2 student(s) have incomplete data.")
    assert backend.calls_to("POST", "/results/compile") == []


def test_submit_compiles_once_and_notifies_admin_once(backend, make_state):
    seed_class(backend)
    state = make_state()

    outcome = result_compilation.submit_class_results(state, 1, {101: "Top of the class"})

    [(_, _, body)] = backend.calls_to("POST", "/results/compile")
    assert (body["class_id"], body["term_id"], body["session_id"]) == (1, 7, 3)
    meta = {m["student_id"]: m for m in body["students_meta"]}
    assert meta[101]["class_teacher_comment"] == "Top of the class"
    assert meta[101]["class_teacher_name"] == "Grace Okafor"
    assert meta[101]["principal_name"] == "Principal"
    assert meta[102]["term_begin"] == "2024-09-01"

    results = {r.student_id: r for r in outcome["results"]}
    assert outcome["class_average"] == 65.0
    assert {r.status for r in results.values()} == {"Submitted"}
    assert (results[101].position, results[102].position) == (1, 2)
    assert results[101].total_students == 2
    assert results[101].id is not None
    assert results[101].affective is not None

    assert [n["title"] for n in backend.notifications] == ["Class Results Submitted for Approval"]
    assert backend.notifications[0]["target_audience"] == "admins"
    assert len(state.class_compiled_results(1)) == 2


def test_backend_conflict_is_reported_and_state_untouched(backend, make_state):
    seed_class(backend)
    backend.failures[("POST", "/results/compile")] = (
        409, {"success": False, "message": "Results already compiled for this class and term"},
    )
    state = make_state()

    with pytest.raises(ConflictError) as exc:
        result_compilation.submit_class_results(state, 1)

    assert exc.value.message == result_compilation.CONFLICT_MESSAGE
    assert exc.value.status_code == 409
    assert state.class_compiled_results(1) == []
    assert backend.notifications == []


def test_backend_failure_surfaces_server_message(backend, make_state):
    seed_class(backend)
    backend.failures[("POST", "/results/compile")] = (500, {"success": False, "message": "Database unavailable"})

    with pytest.raises(SchoolAPIError) as exc:
        result_compilation.submit_class_results(make_state(), 1)
    assert exc.value.message == "Database unavailable"


def test_backend_failure_without_message_uses_generic_text(backend, make_state):
    seed_class(backend)
    backend.failures[("POST", "/results/compile")] = (500, {})

    with pytest.raises(SchoolAPIError) as exc:
        result_compilation.submit_class_results(make_state(), 1)
    assert exc.value.message == "Failed to submit results. Please try again."


def test_already_submitted_class_is_not_recompiled(backend, make_state):
    seed_class(backend)
    backend.compiled.append(submitted_result(9001))

    with pytest.raises(ConflictError):
        result_compilation.submit_class_results(make_state(), 1)
    assert backend.calls_to("POST", "/results/compile") == []


# ==========================================================
# 결재
# ==========================================================
def test_admin_approves_submitted_results(backend, make_state):
    backend.compiled.extend([submitted_result(9001), submitted_result(9002, student_id=102)])
    admin = make_state(role="admin", linked_id=None)

    assert [r.id for r in result_compilation.pending_results(admin)] == [9001, 9002]
    assert result_compilation.approve_results(admin, [9001, 9002]) == {"approved": 2}
    assert {r["status"] for r in backend.compiled} == {"Approved"}


def test_only_submitted_results_can_be_approved(backend, make_state):
    backend.compiled.append(dict(submitted_result(9001), status="Approved"))

    with pytest.raises(ScoreValidationError):
        result_compilation.approve_results(make_state(role="admin", linked_id=None), [9001])
    assert backend.calls_to("POST", "/results/approve") == []


def test_reject_requires_reason(backend, make_state):
    backend.compiled.append(submitted_result(9001))

    with pytest.raises(ScoreValidationError):
        result_compilation.reject_results(make_state(role="admin", linked_id=None), [9001], "   ")
    assert backend.calls_to("POST", "/results/reject") == []


def test_rejection_reopens_class_for_teacher(backend, make_state):
    seed_class(backend)
    backend.compiled.extend([submitted_result(9001), submitted_result(9002, student_id=102)])

    teacher_view = result_compilation.build_class_preview(make_state(), 1)
    assert teacher_view.editable is False

    result_compilation.reject_results(
        make_state(role="admin", linked_id=None), [9001, 9002], "Please recheck English scores"
    )

    preview = result_compilation.build_class_preview(make_state(), 1)
    assert preview.editable is True
    assert preview.rejection_reason == "Please recheck English scores"


# ==========================================================
# 요약 CSV
# ==========================================================
def test_class_summary_csv(backend, make_state):
    seed_class(backend, psychomotor_for=(101,))
    filename, text = result_compilation.export_class_summary_csv(make_state(), 1)

    assert filename == "JSS_1A_Results_First_Term_2024-2025.csv"
    assert text.splitlines() == [
        result_compilation.SUMMARY_HEADER,
        "Ada Adeyemi,ADM/001,2/2,150,75.00,1,Complete",
        "Ben Bakare,ADM/002,2/2,110,55.00,2,Incomplete",
    ]
