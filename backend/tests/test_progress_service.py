"""Assignment lifecycle: creation, option-set playlist, answer sequencing and status transitions."""
import pytest

from anagram.domain.assignment.models import COMPLETE, DONE, IN_PROGRESS, TODO, Answer, StudentProgress
from anagram.domain.assignment.rules import validate_status_transition
from anagram.domain.assignment.service import AssignmentDomainService
from anagram.domain.common.errors import (
    ConfigurationError,
    InactiveAssignment,
    OutOfSequenceAnswer,
    OverdueSubmission,
    PermissionDenied,
)
from anagram.domain.puzzle.models import GeneratedPuzzle, LockedPosition
from anagram.domain.puzzle.tokens import NUMBERS, parse_tokens

SPEC = {"total": 8, "operators": 1}


def assignment_data(**overrides):
    data = {
        "title": "Week 3",
        "description": "Warm-up racks",
        "total_questions": 4,
        "due_date": None,
        "option_sets": [
            {"label": "easy", "numQuestions": 2, "spec": SPEC},
            {"label": "harder", "numQuestions": 2, "spec": {"total": 9, "operators": {"min": 1, "max": 2}}},
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def service():
    return AssignmentDomainService()


@pytest.fixture
def assignment(service, clock):
    result = service.create_assignment("admin-1", assignment_data(), clock.now())
    assert result.is_success, result.error
    return result.value


@pytest.fixture
def started(service, assignment, clock):
    progress = service.assign(assignment, "s1", clock.now())
    return service.start(progress, clock.now()).value


def answer(service, assignment, progress, number, clock):
    return service.submit_answer(
        assignment, progress, {"question_number": number, "question_text": "1 + = 2 1", "answer_text": "1+1=2"}, clock.now()
    )


# ------------------------------------------------------------------
# Creation
# ------------------------------------------------------------------
def test_create_assignment_parses_option_sets(assignment):
    assert assignment.title == "Week 3"
    assert assignment.created_by == "admin-1"
    assert [s.label for s in assignment.option_sets] == ["easy", "harder"]
    assert assignment.option_sets[0].spec.total == 8
    assert assignment.option_sets[0].to_dict()["numQuestions"] == 2


@pytest.mark.parametrize(
    "overrides, fragment",
    [
        ({"title": "  "}, "title"),
        ({"total_questions": 0}, "at least one question"),
        ({"option_sets": []}, "at least one option set"),
        ({"option_sets": [{"numQuestions": 1, "spec": {"total": 7, "operators": 1}}]}, "Option set 1"),
        ({"option_sets": [{"numQuestions": 1, "spec": {"total": 8}}]}, "'total' and 'operators'"),
        ({"option_sets": [{"spec": SPEC}]}, "Malformed option set"),
    ],
)
def test_create_assignment_rejects_bad_content(service, clock, overrides, fragment):
    result = service.create_assignment("admin-1", assignment_data(**overrides), clock.now())
    assert not result.is_success
    assert isinstance(result.error, ConfigurationError)
    assert fragment in result.error.message


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------
def test_assign_starts_in_todo(service, assignment, clock):
    progress = service.assign(assignment, "s1", clock.now())
    assert progress.status == TODO
    assert progress.answered_count == 0
    assert progress.next_question_number == 1


def test_start_is_idempotent(service, started, clock):
    assert started.status == IN_PROGRESS
    first_start = started.started_at
    clock.advance(minutes=5)
    again = service.start(started, clock.now())
    assert again.is_success
    assert again.value.started_at == first_start


def test_answers_walk_the_option_set_playlist(service, assignment, started, clock):
    assert service.current_option_set(assignment, started)[0] == 0
    answer(service, assignment, started, 1, clock)
    assert (started.current_option_set_index, started.questions_completed_in_current_set) == (0, 1)
    answer(service, assignment, started, 2, clock)
    assert (started.current_option_set_index, started.questions_completed_in_current_set) == (1, 0)
    assert service.current_option_set(assignment, started)[1].label == "harder"
    answer(service, assignment, started, 3, clock)
    assert started.status == IN_PROGRESS
    result = answer(service, assignment, started, 4, clock)
    assert result.is_success
    assert started.status == COMPLETE
    assert started.completed_at is not None
    assert [a.question_number for a in started.answers] == [1, 2, 3, 4]


def test_last_option_set_keeps_serving(service, clock):
    assignment = service.create_assignment("admin-1", assignment_data(total_questions=5), clock.now()).value
    progress = service.start(service.assign(assignment, "s1", clock.now()), clock.now()).value
    for n in range(1, 5):
        answer(service, assignment, progress, n, clock)
    assert progress.current_option_set_index == 1
    assert progress.questions_completed_in_current_set == 2
    assert service.current_option_set(assignment, progress)[1].label == "harder"
    assert progress.status == IN_PROGRESS
    answer(service, assignment, progress, 5, clock)
    assert progress.status == COMPLETE


def test_out_of_sequence_answers_are_rejected(service, assignment, started, clock):
    answer(service, assignment, started, 1, clock)
    duplicate = answer(service, assignment, started, 1, clock)
    assert isinstance(duplicate.error, OutOfSequenceAnswer)
    skipped = answer(service, assignment, started, 3, clock)
    assert isinstance(skipped.error, OutOfSequenceAnswer)
    assert started.answered_count == 1


def test_answers_need_an_active_assignment(service, assignment, clock):
    progress = service.assign(assignment, "s1", clock.now())
    result = answer(service, assignment, progress, 1, clock)
    assert isinstance(result.error, InactiveAssignment)
    assert progress.answers == []


def test_overdue_submission_leaves_progress_untouched(service, clock):
    assignment = service.create_assignment(
        "admin-1", assignment_data(due_date="2024-01-01T12:00:00Z"), clock.now()
    ).value
    progress = service.start(service.assign(assignment, "s1", clock.now()), clock.now()).value
    assert answer(service, assignment, progress, 1, clock).is_success

    clock.advance(hours=13)
    assert service.is_overdue(assignment, clock.now())
    result = answer(service, assignment, progress, 2, clock)
    assert isinstance(result.error, OverdueSubmission)
    assert progress.answered_count == 1
    assert progress.questions_completed_in_current_set == 1


def test_answer_keeps_locked_positions(service, assignment, started, clock):
    service.submit_answer(
        assignment,
        started,
        {"question_number": 1, "answer_text": "1+1=2", "locked_positions": [{"index": 0, "value": "1"}]},
        clock.now(),
    )
    stored = started.answers[0]
    assert stored.locked_positions == [LockedPosition(0, NUMBERS[1])]
    assert Answer.from_dict(stored.to_dict()) == stored


def test_submitting_clears_the_stored_puzzle(service, assignment, started, clock):
    started.current_puzzle = GeneratedPuzzle(elements=parse_tokens(["1", "+", "1", "=", "2"]))
    started.current_puzzle_question = 1
    assert service.active_puzzle(started) is started.current_puzzle
    answer(service, assignment, started, 1, clock)
    assert started.current_puzzle is None
    assert service.active_puzzle(started) is None


def test_stale_puzzle_is_not_active(service, started):
    started.current_puzzle = GeneratedPuzzle(elements=parse_tokens(["1", "+", "1", "=", "2"]))
    started.current_puzzle_question = 3
    assert service.active_puzzle(started) is None


def test_open_question_only_while_in_progress(service, assignment, started, clock):
    assert service.open_question(started).value == 1
    todo = service.assign(assignment, "s2", clock.now())
    assert isinstance(service.open_question(todo).error, InactiveAssignment)


# ------------------------------------------------------------------
# Marking done
# ------------------------------------------------------------------
def test_mark_done_rules(service, assignment, started, clock):
    early = service.mark_done(started, "admin", clock.now())
    assert isinstance(early.error, InactiveAssignment)

    for n in range(1, 5):
        answer(service, assignment, started, n, clock)
    student = service.mark_done(started, "student", clock.now())
    assert isinstance(student.error, PermissionDenied)
    assert started.status == COMPLETE

    done = service.mark_done(started, "admin", clock.now())
    assert done.is_success
    assert started.status == DONE
    assert started.marked_done_at is not None

    again = service.mark_done(started, "admin", clock.now())
    assert isinstance(again.error, InactiveAssignment)


def test_status_never_regresses():
    assert not validate_status_transition(COMPLETE, IN_PROGRESS).is_success
    assert not validate_status_transition(IN_PROGRESS, TODO).is_success
    assert not validate_status_transition(TODO, COMPLETE).is_success
    assert not validate_status_transition(TODO, "archived").is_success
    assert validate_status_transition(TODO, IN_PROGRESS, "student").is_success


# ------------------------------------------------------------------
# Derived values
# ------------------------------------------------------------------
def test_progress_percentage_rounds_down(service, clock):
    assignment = service.create_assignment("admin-1", assignment_data(total_questions=3), clock.now()).value
    progress = service.start(service.assign(assignment, "s1", clock.now()), clock.now()).value
    assert service.progress_percentage(assignment, progress) == 0
    answer(service, assignment, progress, 1, clock)
    assert service.progress_percentage(assignment, progress) == 33
    answer(service, assignment, progress, 2, clock)
    assert service.progress_percentage(assignment, progress) == 66


def test_statistics(service):
    progresses = [
        StudentProgress("a", "s1", status=TODO),
        StudentProgress("a", "s2", status=IN_PROGRESS),
        StudentProgress("a", "s3", status=COMPLETE),
        StudentProgress("a", "s4", status=DONE),
    ]
    stats = service.statistics(progresses)
    assert stats["totalStudents"] == 4
    assert stats["statusBreakdown"] == {TODO: 1, IN_PROGRESS: 1, COMPLETE: 1, DONE: 1}
    assert stats["completionRate"] == 50
    assert service.statistics([])["completionRate"] == 0
