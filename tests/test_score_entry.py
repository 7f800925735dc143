import pytest

from conftest import score_row
from schemas.scores import ScoreEntry
from services import score_entry
from services.errors import (
    CompletenessError,
    PermissionDeniedError,
    ScoreLockedError,
    ScoreValidationError,
    SessionNotSetError,
)

MATHS = 1
MATHS_ASSIGNMENT = 201


def _complete_entries():
    return {
        101: ScoreEntry(ca1=15, ca2=15, exam=45),   # 75
        102: ScoreEntry(ca1=10, ca2=10, exam=35),   # 55
    }


# ==========================================================
# 배정 / 성적표
# ==========================================================
def test_teacher_sees_only_assigned_subjects_for_current_term(make_state):
    state = make_state()
    subjects = score_entry.available_subjects(state, 1)
    assert [(a.id, a.subject_name) for a in subjects] == [(MATHS_ASSIGNMENT, "Mathematics")]
    assert score_entry.assigned_classes(state) == [{"id": 1, "name": "JSS 1A"}]


def test_unassigned_subject_is_refused(make_state):
    with pytest.raises(PermissionDeniedError):
        score_entry.build_score_sheet(make_state(), 1, 2)


def test_class_without_term_registrations_uses_linked_subjects(backend, make_state):
    backend.registrations = []
    backend.class_subjects = {1: [{"id": MATHS, "name": "Mathematics"}]}
    state = make_state()

    assert state.registered_subject_ids(1) == [MATHS]
    assert [a.id for a in state.class_subject_assignments(1)] == [MATHS_ASSIGNMENT]
    assert backend.calls_to("GET", "/classes/with-subjects") == [("GET", "/classes/with-subjects", None)]


def test_sheet_lists_active_students_sorted_by_last_name(backend, make_state):
    backend.scores.append(score_row(102, MATHS_ASSIGNMENT, 5, 6, 0, status="draft"))
    sheet = score_entry.build_score_sheet(make_state(), 1, MATHS)

    assert [r.student_name for r in sheet.rows] == ["Ada Adeyemi", "Ben Bakare"]
    assert sheet.rows[0].entry == ScoreEntry()
    assert sheet.rows[0].derived is None
    assert sheet.rows[1].entry.ca2 == 6
    assert sheet.rows[1].derived.total == 11
    assert sheet.rows[1].status == "Draft"
    assert sheet.locked is False


def test_preview_entry_validates_and_derives():
    derived = score_entry.preview_entry(ScoreEntry(ca1="18", ca2=19, exam=50))
    assert (derived.total, derived.grade) == (87, "A")
    with pytest.raises(ScoreValidationError):
        score_entry.preview_entry(ScoreEntry(ca1=21))


# ==========================================================
# 임시저장
# ==========================================================
def test_draft_saves_only_rows_with_values(backend, make_state):
    result = score_entry.save_draft(make_state(), 1, MATHS, {101: ScoreEntry(ca1=12), 102: ScoreEntry()})

    assert result["saved"] == 1
    [(_, _, body)] = backend.calls_to("POST", "/scores/bulk")
    [row] = body["scores"]
    assert row["student_id"] == 101
    assert row["status"] == "draft"
    assert row["score"] == 12
    assert row["subject_id"] == MATHS


def test_draft_with_invalid_value_saves_nothing(backend, make_state):
    with pytest.raises(ScoreValidationError) as exc:
        score_entry.save_draft(make_state(), 1, MATHS, {101: ScoreEntry(ca1=25)})
    assert exc.value.message == "Ada Adeyemi: CA1 must be between 0 and 20"
    assert backend.calls_to("POST", "/scores/bulk") == []


def test_draft_rejects_student_outside_class(make_state):
    with pytest.raises(ScoreValidationError):
        score_entry.save_draft(make_state(), 1, MATHS, {103: ScoreEntry(ca1=5)})


# ==========================================================
# 제출
# ==========================================================
def test_submit_requires_every_student_complete(backend, make_state):
    entries = {101: ScoreEntry(ca1=15, ca2=15, exam=45), 102: ScoreEntry(ca1=10)}

    with pytest.raises(CompletenessError) as exc:
        score_entry.submit_scores(make_state(), 1, MATHS, entries)

    assert exc.value.message == "Please enter all scores for all 2 students before submitting"
    assert exc.value.missing == [{"student_id": 102, "student_name": "Ben Bakare"}]
    assert backend.calls_to("POST", "/scores/bulk") == []


def test_submit_stamps_statistics_and_positions(backend, make_state):
    result = score_entry.submit_scores(make_state(), 1, MATHS, _complete_entries())

    assert result["submitted"] == 2
    assert result["class_average"] == 65.0
    assert (result["class_min"], result["class_max"]) == (55, 75)

    [(_, _, body)] = backend.calls_to("POST", "/scores/bulk")
    by_student = {row["student_id"]: row for row in body["scores"]}
    assert by_student[101]["subject_position"] == 1
    assert by_student[102]["subject_position"] == 2
    assert by_student[101]["grade"] == "A"
    assert by_student[102]["grade"] == "C"
    assert {row["status"] for row in body["scores"]} == {"submitted"}
    assert {(row["session_id"], row["term_id"]) for row in body["scores"]} == {(3, 7)}

    assert [n["title"] for n in backend.notifications] == ["New Subject Scores Submitted"]


def test_submit_ties_share_position(backend, make_state):
    entries = {101: ScoreEntry(ca1=10, ca2=10, exam=30), 102: ScoreEntry(ca1=20, ca2=0, exam=30)}
    score_entry.submit_scores(make_state(), 1, MATHS, entries)

    [(_, _, body)] = backend.calls_to("POST", "/scores/bulk")
    assert {row["subject_position"] for row in body["scores"]} == {1}


def test_submit_without_active_term_is_refused(backend, make_state):
    backend.term = None
    with pytest.raises(SessionNotSetError):
        score_entry.submit_scores(make_state(), 1, MATHS, _complete_entries())


def test_notification_failure_does_not_undo_submit(backend, make_state):
    backend.failures[("POST", "/notifications")] = (500, {"success": False})
    result = score_entry.submit_scores(make_state(), 1, MATHS, _complete_entries())
    assert result["submitted"] == 2
    assert len(backend.calls_to("POST", "/scores/bulk")) == 1


# ==========================================================
# 잠금
# ==========================================================
def test_submitted_sheet_is_locked(backend, make_state):
    score_entry.submit_scores(make_state(), 1, MATHS, _complete_entries())

    state = make_state()
    assert score_entry.build_score_sheet(state, 1, MATHS).locked is True
    with pytest.raises(ScoreLockedError):
        score_entry.save_draft(state, 1, MATHS, {101: ScoreEntry(ca1=1)})
    with pytest.raises(ScoreLockedError):
        score_entry.submit_scores(state, 1, MATHS, _complete_entries())


def test_rejected_class_results_reopen_the_sheet(backend, make_state):
    backend.scores.append(score_row(101, MATHS_ASSIGNMENT, 15, 15, 45))
    backend.compiled.append({
        "id": 9001, "student_id": 101, "class_id": 1, "term": "First Term",
        "academic_year": "2024/2025", "status": "Rejected", "rejection_reason": "Recheck maths",
    })

    state = make_state()
    assert score_entry.build_score_sheet(state, 1, MATHS).locked is False
    assert score_entry.save_draft(state, 1, MATHS, {101: ScoreEntry(ca1=16)})["saved"] == 1


# ==========================================================
# CSV
# ==========================================================
def test_export_writes_header_and_rows(backend, make_state):
    backend.scores.append(score_row(101, MATHS_ASSIGNMENT, 15, 12.5, 45, status="draft"))
    filename, text = score_entry.export_scores_csv(make_state(), 1, MATHS)

    assert filename == "JSS_1A_Mathematics_First_Term_2024-2025.csv"
    assert text.splitlines() == [
        score_entry.CSV_HEADER,
        "Ada Adeyemi,ADM/001,15,12.5,45",
        "Ben Bakare,ADM/002,,,",
    ]


def test_exported_csv_imports_back_to_same_entries(make_state):
    state = make_state()
    entries = _complete_entries()
    _, text = score_entry.export_scores_csv(state, 1, MATHS, entries=entries)

    result = score_entry.parse_scores_csv(state.class_students(1), text)
    assert result.imported == 2
    assert result.skipped == 0
    assert result.entries == entries


def test_import_skips_bad_rows_and_never_persists(backend, make_state):
    text = "\ufeff" + "\n".join([
        score_entry.CSV_HEADER,
        "Ada Adeyemi,ADM/001,18,17,55",
        "",
        "Ben Bakare,ADM/002,10,10,70",
        "Nobody,ADM/999,10,10,10",
        "Short,line",
        "Ben Bakare,ADM/002,,,",
    ])
    result = score_entry.import_scores_csv(make_state(), 1, MATHS, text)

    assert result.imported == 1
    assert result.skipped == 3
    assert result.entries == {101: ScoreEntry(ca1=18, ca2=17, exam=55)}
    assert backend.calls_to("POST", "/scores/bulk") == []


def test_import_requires_header_and_a_row(make_state):
    with pytest.raises(ScoreValidationError) as exc:
        score_entry.import_scores_csv(make_state(), 1, MATHS, score_entry.CSV_HEADER)
    assert exc.value.message == "Invalid CSV file"
