"""Business rules for the Assignment domain — enforces the progress state machine."""
from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from anagram.core.clock import parse_iso
from anagram.domain.assignment.models import COMPLETE, DONE, IN_PROGRESS, TODO, OptionSet, StudentProgress
from anagram.domain.common.errors import (
    ConfigurationError,
    InactiveAssignment,
    OutOfSequenceAnswer,
    OverdueSubmission,
    PermissionDenied,
)
from anagram.domain.common.result import Result
from anagram.domain.puzzle.constraints import validate_constraint_spec

# Valid status values
VALID_STATUSES = {TODO, IN_PROGRESS, COMPLETE, DONE}

# The only allowed forward transitions (no regression)
ALLOWED_TRANSITIONS: dict[str, str] = {
    TODO: IN_PROGRESS,
    IN_PROGRESS: COMPLETE,
    COMPLETE: DONE,
}

# Which roles can make which transitions
TRANSITION_ROLES: dict[str, set[str]] = {
    IN_PROGRESS: {"student", "admin"},
    COMPLETE: {"student", "admin"},
    DONE: {"admin"},
}


def validate_status_transition(current_status: str, new_status: str, user_role: str = "admin") -> Result[str]:
    """
    Enforces todo → inprogress → complete → done.
    Returns Result.ok(new_status) or Result.fail(InactiveAssignment | PermissionDenied).
    """
    if new_status not in VALID_STATUSES:
        return Result.fail(InactiveAssignment(f"'{new_status}' is not a valid status. Must be one of {sorted(VALID_STATUSES)}."))

    expected_next = ALLOWED_TRANSITIONS.get(current_status)
    if expected_next is None:
        return Result.fail(InactiveAssignment(f"Assignment is already '{current_status}'. No further transitions allowed."))

    if new_status != expected_next:
        return Result.fail(InactiveAssignment(
            f"Invalid transition: '{current_status}' → '{new_status}'. "
            f"Only '{current_status}' → '{expected_next}' is allowed."
        ))

    allowed_roles = TRANSITION_ROLES.get(new_status, set())
    if user_role not in allowed_roles:
        return Result.fail(PermissionDenied(
            f"Role '{user_role}' cannot move an assignment to '{new_status}'. "
            f"Required roles: {sorted(allowed_roles)}."
        ))

    return Result.ok(new_status)


def is_overdue(due_date: Optional[str], now: datetime) -> bool:
    return bool(due_date) and now > parse_iso(due_date)


def validate_submission(
    progress: StudentProgress,
    question_number: int,
    due_date: Optional[str],
    now: datetime,
) -> Result[int]:
    """An answer is accepted only while in progress, before the due date, and for the next question."""
    if progress.status != IN_PROGRESS:
        return Result.fail(InactiveAssignment(
            f"Answers are only accepted while the assignment is '{IN_PROGRESS}' (it is '{progress.status}')."
        ))
    if is_overdue(due_date, now):
        return Result.fail(OverdueSubmission(f"The assignment was due {due_date}."))
    expected = progress.next_question_number
    if question_number != expected:
        return Result.fail(OutOfSequenceAnswer(f"Expected an answer to question {expected}, got {question_number}."))
    return Result.ok(question_number)


def validate_assignment_content(title: str, total_questions: int, option_sets: List[OptionSet]) -> Result[List[OptionSet]]:
    """Title present, at least one question and one option set, and every option set's spec consistent."""
    if not (title or "").strip():
        return Result.fail(ConfigurationError("Assignment 'title' is required and cannot be empty."))
    if total_questions < 1:
        return Result.fail(ConfigurationError("An assignment needs at least one question."))
    if not option_sets:
        return Result.fail(ConfigurationError("An assignment needs at least one option set."))
    for i, option_set in enumerate(option_sets, start=1):
        if option_set.num_questions < 1:
            return Result.fail(ConfigurationError(f"Option set {i} must ask at least one question."))
        validation = validate_constraint_spec(option_set.spec)
        if not validation.is_success:
            return Result.fail(ConfigurationError(f"Option set {i}: {validation.error.message}"))
    return Result.ok(option_sets)
