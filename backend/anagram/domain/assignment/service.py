"""Domain service — pure business logic for assignments and student progress."""
from __future__ import annotations
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from anagram.domain.assignment.models import (
    COMPLETE,
    DONE,
    IN_PROGRESS,
    TODO,
    Answer,
    Assignment,
    OptionSet,
    StudentProgress,
)
from anagram.domain.assignment.rules import (
    is_overdue,
    validate_assignment_content,
    validate_status_transition,
    validate_submission,
)
from anagram.domain.common.errors import ConfigurationError, DomainError, InactiveAssignment
from anagram.domain.common.result import Result
from anagram.domain.puzzle.models import GeneratedPuzzle, LockedPosition

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class AssignmentDomainService:
    """
    Pure domain operations — no I/O. All mutating methods return Result[T]
    and leave their input untouched when they fail.
    The application layer calls these and then persists via the repository.
    """

    def create_assignment(self, creator_id: str, data: dict, now: datetime) -> Result[Assignment]:
        """Build a new Assignment from an API payload; every option set's spec is validated."""
        try:
            option_sets = [
                raw if isinstance(raw, OptionSet) else OptionSet.from_dict(raw)
                for raw in data.get("option_sets") or []
            ]
            total_questions = int(data.get("total_questions") or 0)
        except DomainError as exc:
            return Result.fail(ConfigurationError(exc.message))
        except (KeyError, TypeError, ValueError) as exc:
            return Result.fail(ConfigurationError(f"Malformed option set: {exc}"))

        validation = validate_assignment_content(data.get("title") or "", total_questions, option_sets)
        if not validation.is_success:
            return Result.fail(validation.error)

        stamp = now.isoformat()
        assignment = Assignment(
            id=_new_id(),
            title=data["title"].strip(),
            description=data.get("description"),
            total_questions=total_questions,
            due_date=data.get("due_date"),
            option_sets=option_sets,
            created_by=creator_id,
            created_at=stamp,
            updated_at=stamp,
        )
        return Result.ok(assignment)

    def assign(self, assignment: Assignment, student_id: str, now: datetime) -> StudentProgress:
        return StudentProgress(assignment_id=assignment.id, student_id=student_id, status=TODO, assigned_at=now.isoformat())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, progress: StudentProgress, now: datetime) -> Result[StudentProgress]:
        """todo → inprogress; a no-op once the student has started."""
        if progress.status != TODO:
            return Result.ok(progress)
        validation = validate_status_transition(progress.status, IN_PROGRESS, "student")
        if not validation.is_success:
            return Result.fail(validation.error)
        progress.status = IN_PROGRESS
        progress.started_at = now.isoformat()
        logger.info("Student %s started assignment %s", progress.student_id, progress.assignment_id)
        return Result.ok(progress)

    def mark_done(self, progress: StudentProgress, user_role: str, now: datetime) -> Result[StudentProgress]:
        """complete → done, administrators only."""
        validation = validate_status_transition(progress.status, DONE, user_role)
        if not validation.is_success:
            return Result.fail(validation.error)
        progress.status = DONE
        progress.marked_done_at = now.isoformat()
        logger.info("Assignment %s marked done for student %s", progress.assignment_id, progress.student_id)
        return Result.ok(progress)

    # ------------------------------------------------------------------
    # Option sets and puzzles
    # ------------------------------------------------------------------
    def current_option_set(self, assignment: Assignment, progress: StudentProgress) -> Tuple[int, OptionSet]:
        """The option set serving the next question; the last one keeps serving past the playlist's end."""
        index = min(progress.current_option_set_index, len(assignment.option_sets) - 1)
        return index, assignment.option_sets[index]

    def active_puzzle(self, progress: StudentProgress) -> Optional[GeneratedPuzzle]:
        """The stored puzzle, if it belongs to the question the student is on."""
        if progress.current_puzzle is None or progress.current_puzzle_question != progress.next_question_number:
            return None
        return progress.current_puzzle

    def open_question(self, progress: StudentProgress) -> Result[int]:
        """The question number a new puzzle would be stored for; only while in progress."""
        if progress.status != IN_PROGRESS:
            return Result.fail(InactiveAssignment(
                f"Puzzles are only served while the assignment is '{IN_PROGRESS}' (it is '{progress.status}')."
            ))
        return Result.ok(progress.next_question_number)

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------
    def submit_answer(
        self,
        assignment: Assignment,
        progress: StudentProgress,
        data: dict,
        now: datetime,
    ) -> Result[StudentProgress]:
        """Record the answer to the next question and advance counters, set index and status."""
        question_number = int(data["question_number"])
        validation = validate_submission(progress, question_number, assignment.due_date, now)
        if not validation.is_success:
            return Result.fail(validation.error)

        answer = Answer(
            question_number=question_number,
            question_text=data.get("question_text") or "",
            answer_text=data.get("answer_text") or "",
            answered_at=now.isoformat(),
            locked_positions=[
                lp if isinstance(lp, LockedPosition) else LockedPosition.from_dict(lp)
                for lp in data.get("locked_positions") or []
            ],
        )
        progress.answers.append(answer)
        progress.current_puzzle = None
        progress.current_puzzle_question = None

        index, option_set = self.current_option_set(assignment, progress)
        progress.questions_completed_in_current_set += 1
        if progress.questions_completed_in_current_set >= option_set.num_questions and index < len(assignment.option_sets) - 1:
            progress.current_option_set_index = index + 1
            progress.questions_completed_in_current_set = 0
            logger.info("Student %s moved to option set %d of %s", progress.student_id, index + 1, assignment.id)

        if progress.answered_count >= assignment.total_questions:
            progress.status = COMPLETE
            progress.completed_at = now.isoformat()
            logger.info("Student %s completed assignment %s", progress.student_id, assignment.id)
        return Result.ok(progress)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------
    def progress_percentage(self, assignment: Assignment, progress: StudentProgress) -> int:
        if assignment.total_questions <= 0:
            return 0
        return min(progress.answered_count, assignment.total_questions) * 100 // assignment.total_questions

    def is_overdue(self, assignment: Assignment, now: datetime) -> bool:
        return is_overdue(assignment.due_date, now)

    def statistics(self, progresses: List[StudentProgress]) -> Dict[str, object]:
        breakdown = {status: 0 for status in (TODO, IN_PROGRESS, COMPLETE, DONE)}
        for progress in progresses:
            breakdown[progress.status] = breakdown.get(progress.status, 0) + 1
        total = len(progresses)
        finished = breakdown[COMPLETE] + breakdown[DONE]
        return {
            "totalStudents": total,
            "statusBreakdown": breakdown,
            "completionRate": finished * 100 // total if total else 0,
        }
