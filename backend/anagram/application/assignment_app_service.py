"""Application service — orchestrates validate → domain op → persist for assignments."""
from __future__ import annotations
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, TypeVar

from anagram.core.clock import Clock, SystemClock
from anagram.core.config import PERSIST_RETRY_ATTEMPTS, PERSIST_RETRY_BACKOFF, SUBMIT_CONFLICT_RETRIES
from anagram.domain.assignment.models import Answer, Assignment, OptionSet, StudentProgress
from anagram.domain.assignment.service import AssignmentDomainService
from anagram.domain.common.errors import (
    ConfigurationError,
    NotFound,
    PermissionDenied,
    PersistenceConflict,
    PersistenceUnavailable,
)
from anagram.domain.common.result import Result
from anagram.domain.puzzle.models import GeneratedPuzzle, puzzle_problems
from anagram.domain.puzzle.service import PuzzleDomainService
from anagram.persistence.interfaces.assignment_repository import AssignmentRepository, TransientPersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ADMIN = "admin"


@dataclass
class ProgressView:
    assignment: Assignment
    progress: StudentProgress
    progress_percentage: int
    is_overdue: bool


@dataclass
class CurrentPuzzle:
    """The puzzle for the student's next question. persisted=False: generated but not yet stored."""
    puzzle: GeneratedPuzzle
    question_number: int
    option_set_index: int
    persisted: bool


@dataclass
class CurrentSetInfo:
    option_set_index: int
    option_set: OptionSet
    questions_completed_in_current_set: int
    total_option_sets: int
    current_puzzle: Optional[GeneratedPuzzle]


@dataclass
class AnswerLedger:
    answers: List[Answer]
    answered_count: int
    total_questions: int


class AssignmentAppService:
    def __init__(
        self,
        repo: AssignmentRepository,
        puzzles: Optional[PuzzleDomainService] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        retry_attempts: int = PERSIST_RETRY_ATTEMPTS,
        retry_backoff: float = PERSIST_RETRY_BACKOFF,
        conflict_retries: int = SUBMIT_CONFLICT_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._repo = repo
        self._domain = AssignmentDomainService()
        self._puzzles = puzzles or PuzzleDomainService()
        self._clock = clock or SystemClock()
        self._rng = rng or random.Random()
        self._retry_attempts = max(1, retry_attempts)
        self._retry_backoff = retry_backoff
        self._conflict_retries = conflict_retries
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    def _call(self, fn: Callable[..., T], *args) -> T:
        """Run a repository call, retrying transient failures with exponential backoff."""
        delay = self._retry_backoff
        for attempt in range(1, self._retry_attempts + 1):
            try:
                return fn(*args)
            except TransientPersistenceError as exc:
                if attempt == self._retry_attempts:
                    logger.error("%s failed after %d attempts: %s", fn.__name__, attempt, exc)
                    raise PersistenceUnavailable(f"Storage is unavailable: {exc}") from exc
                logger.warning("%s failed (attempt %d/%d): %s; retrying in %.2fs",
                               fn.__name__, attempt, self._retry_attempts, exc, delay)
                self._sleep(delay)
                delay *= 2
        raise PersistenceUnavailable("Storage is unavailable.")

    @staticmethod
    def _is_admin(actor: dict) -> bool:
        return actor.get("role") == ADMIN

    def _authorize(self, actor: dict, student_id: str) -> Optional[PermissionDenied]:
        if self._is_admin(actor) or actor.get("sub") == student_id:
            return None
        return PermissionDenied("Students may only act on their own assignments.")

    def _require_admin(self, actor: dict) -> Optional[PermissionDenied]:
        if self._is_admin(actor):
            return None
        return PermissionDenied("Administrator role required.")

    def _load_assignment(self, assignment_id: str) -> Result[Assignment]:
        assignment = self._call(self._repo.get_assignment, assignment_id)
        if not assignment:
            return Result.fail(NotFound(f"Assignment '{assignment_id}' not found."))
        return Result.ok(assignment)

    def _load_progress(self, assignment_id: str, student_id: str) -> Result[StudentProgress]:
        progress = self._call(self._repo.get_progress, assignment_id, student_id)
        if not progress:
            return Result.fail(NotFound(f"Student '{student_id}' is not assigned to '{assignment_id}'."))
        return Result.ok(progress)

    def _view(self, assignment: Assignment, progress: StudentProgress) -> ProgressView:
        return ProgressView(
            assignment=assignment,
            progress=progress,
            progress_percentage=self._domain.progress_percentage(assignment, progress),
            is_overdue=self._domain.is_overdue(assignment, self._clock.now()),
        )

    def _update_progress(
        self,
        assignment: Assignment,
        student_id: str,
        mutate: Callable[[StudentProgress], Result[StudentProgress]],
    ) -> Result[StudentProgress]:
        """Load → mutate → compare-and-set; a lost race is retried against fresh state."""
        for attempt in range(self._conflict_retries + 1):
            loaded = self._load_progress(assignment.id, student_id)
            if not loaded.is_success:
                return loaded
            progress = loaded.value
            expected_version = progress.version
            result = mutate(progress)
            if not result.is_success:
                return result
            if self._call(self._repo.save_progress, progress, expected_version):
                return Result.ok(progress)
            logger.info("Version conflict on %s/%s (attempt %d); re-reading", assignment.id, student_id, attempt + 1)
        return Result.fail(PersistenceConflict(
            f"Progress for '{student_id}' kept changing underneath this update; try again."
        ))

    def _guarded(self, op: Callable[[], Result[T]]) -> Result[T]:
        try:
            return op()
        except PersistenceUnavailable as exc:
            return Result.fail(exc)

    # ------------------------------------------------------------------
    # ASSIGNMENTS
    # ------------------------------------------------------------------
    def create_assignment(self, actor: dict, data: dict) -> Result[Assignment]:
        denied = self._require_admin(actor)
        if denied:
            return Result.fail(denied)

        def op() -> Result[Assignment]:
            result = self._domain.create_assignment(actor.get("sub", ""), data, self._clock.now())
            if not result.is_success:
                return result
            self._call(self._repo.save_assignment, result.value)
            logger.info("Assignment %s created by %s", result.value.id, actor.get("sub"))
            return result

        return self._guarded(op)

    def get_assignment(self, assignment_id: str) -> Result[Assignment]:
        return self._guarded(lambda: self._load_assignment(assignment_id))

    def list_assignments(self) -> Result[List[Assignment]]:
        return self._guarded(lambda: Result.ok(self._call(self._repo.list_assignments)))

    def load_option_sets(self, assignment_id: str) -> Result[List[OptionSet]]:
        def op() -> Result[List[OptionSet]]:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            return Result.ok(self._call(self._repo.load_option_sets, assignment_id))

        return self._guarded(op)

    def delete_assignment(self, actor: dict, assignment_id: str) -> Result[bool]:
        denied = self._require_admin(actor)
        if denied:
            return Result.fail(denied)

        def op() -> Result[bool]:
            if not self._call(self._repo.delete_assignment, assignment_id):
                return Result.fail(NotFound(f"Assignment '{assignment_id}' not found."))
            logger.info("Assignment %s deleted by %s", assignment_id, actor.get("sub"))
            return Result.ok(True)

        return self._guarded(op)

    def assign_students(self, actor: dict, assignment_id: str, student_ids: List[str]) -> Result[List[StudentProgress]]:
        """Create `todo` records; students already assigned keep their progress."""
        denied = self._require_admin(actor)
        if denied:
            return Result.fail(denied)

        def op() -> Result[List[StudentProgress]]:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            now = self._clock.now()
            records = []
            for student_id in dict.fromkeys(s.strip() for s in student_ids if s and s.strip()):
                fresh = self._domain.assign(loaded.value, student_id, now)
                if self._call(self._repo.create_progress, fresh):
                    logger.info("Assigned %s to %s", assignment_id, student_id)
                records.append(self._call(self._repo.get_progress, assignment_id, student_id))
            return Result.ok([r for r in records if r is not None])

        return self._guarded(op)

    def assignment_statistics(self, actor: dict, assignment_id: str) -> Result[dict]:
        denied = self._require_admin(actor)
        if denied:
            return Result.fail(denied)

        def op() -> Result[dict]:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            progresses = self._call(self._repo.list_progress, assignment_id)
            stats = self._domain.statistics(progresses)
            stats["assignmentId"] = assignment_id
            stats["totalQuestions"] = loaded.value.total_questions
            return Result.ok(stats)

        return self._guarded(op)

    def list_student_assignments(self, actor: dict, student_id: str) -> Result[List[ProgressView]]:
        denied = self._authorize(actor, student_id)
        if denied:
            return Result.fail(denied)

        def op() -> Result[List[ProgressView]]:
            views = []
            for progress in self._call(self._repo.list_progress_for_student, student_id):
                assignment = self._call(self._repo.get_assignment, progress.assignment_id)
                if assignment:
                    views.append(self._view(assignment, progress))
            return Result.ok(views)

        return self._guarded(op)

    # ------------------------------------------------------------------
    # STUDENT PROGRESS
    # ------------------------------------------------------------------
    def get_progress(self, actor: dict, assignment_id: str, student_id: str) -> Result[ProgressView]:
        denied = self._authorize(actor, student_id)
        if denied:
            return Result.fail(denied)

        def op() -> Result[ProgressView]:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            progress = self._load_progress(assignment_id, student_id)
            if not progress.is_success:
                return Result.fail(progress.error)
            return Result.ok(self._view(loaded.value, progress.value))

        return self._guarded(op)

    def start(self, actor: dict, assignment_id: str, student_id: str) -> Result[ProgressView]:
        denied = self._authorize(actor, student_id)
        if denied:
            return Result.fail(denied)

        def op() -> Result[ProgressView]:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            now = self._clock.now()
            result = self._update_progress(loaded.value, student_id, lambda p: self._domain.start(p, now))
            if not result.is_success:
                return Result.fail(result.error)
            return Result.ok(self._view(loaded.value, result.value))

        return self._guarded(op)

    def get_current_set_info(self, actor: dict, assignment_id: str, student_id: str) -> Result[CurrentSetInfo]:
        denied = self._authorize(actor, student_id)
        if denied:
            return Result.fail(denied)

        def op() -> Result[CurrentSetInfo]:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            progress = self._load_progress(assignment_id, student_id)
            if not progress.is_success:
                return Result.fail(progress.error)
            index, option_set = self._domain.current_option_set(loaded.value, progress.value)
            return Result.ok(CurrentSetInfo(
                option_set_index=index,
                option_set=option_set,
                questions_completed_in_current_set=progress.value.questions_completed_in_current_set,
                total_option_sets=len(loaded.value.option_sets),
                current_puzzle=self._domain.active_puzzle(progress.value),
            ))

        return self._guarded(op)

    def get_or_create_current_puzzle(self, actor: dict, assignment_id: str, student_id: str) -> Result[CurrentPuzzle]:
        """
        Returns the stored puzzle for the student's next question, or generates
        one from the current option set and stores it (first write wins).
        If storage stays unavailable the fresh puzzle is returned with
        persisted=False; the next call reconciles.
        """
        denied = self._authorize(actor, student_id)
        if denied:
            return Result.fail(denied)

        try:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            progress = self._load_progress(assignment_id, student_id)
            if not progress.is_success:
                return Result.fail(progress.error)
        except PersistenceUnavailable as exc:
            return Result.fail(exc)

        assignment, record = loaded.value, progress.value
        index, option_set = self._domain.current_option_set(assignment, record)
        question_number = record.next_question_number

        existing = self._domain.active_puzzle(record)
        if existing is not None:
            return Result.ok(CurrentPuzzle(existing, question_number, index, persisted=True))

        opened = self._domain.open_question(record)
        if not opened.is_success:
            return Result.fail(opened.error)

        generated = self._puzzles.create_puzzle(option_set.spec, self._rng)
        if not generated.is_success:
            logger.warning("No puzzle for %s/%s question %d: %s",
                           assignment_id, student_id, question_number, generated.error)
            return Result.fail(generated.error)
        puzzle = generated.value

        try:
            return self._store_puzzle(assignment_id, student_id, question_number, index, puzzle)
        except PersistenceUnavailable:
            logger.warning("Puzzle for %s/%s question %d not persisted; serving it unsaved",
                           assignment_id, student_id, question_number)
            return Result.ok(CurrentPuzzle(puzzle, question_number, index, persisted=False))

    def persist_current_puzzle(
        self,
        actor: dict,
        assignment_id: str,
        student_id: str,
        puzzle: GeneratedPuzzle,
    ) -> Result[CurrentPuzzle]:
        """Store a client-generated puzzle if the slot is empty; returns whatever is stored."""
        denied = self._authorize(actor, student_id)
        if denied:
            return Result.fail(denied)
        problems = puzzle_problems(puzzle)
        if problems:
            return Result.fail(ConfigurationError(" ".join(problems)))

        def op() -> Result[CurrentPuzzle]:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            progress = self._load_progress(assignment_id, student_id)
            if not progress.is_success:
                return Result.fail(progress.error)
            opened = self._domain.open_question(progress.value)
            if not opened.is_success:
                return Result.fail(opened.error)
            index, _ = self._domain.current_option_set(loaded.value, progress.value)
            return self._store_puzzle(assignment_id, student_id, opened.value, index, puzzle)

        return self._guarded(op)

    def _store_puzzle(
        self,
        assignment_id: str,
        student_id: str,
        question_number: int,
        index: int,
        puzzle: GeneratedPuzzle,
    ) -> Result[CurrentPuzzle]:
        if self._call(self._repo.set_current_puzzle_if_absent, assignment_id, student_id, question_number, puzzle):
            return Result.ok(CurrentPuzzle(puzzle, question_number, index, persisted=True))

        # Someone else wrote first, or the student moved on; report what is stored now
        fresh = self._load_progress(assignment_id, student_id)
        if not fresh.is_success:
            return Result.fail(fresh.error)
        stored = self._domain.active_puzzle(fresh.value)
        if stored is not None and fresh.value.current_puzzle_question == question_number:
            return Result.ok(CurrentPuzzle(stored, question_number, index, persisted=True))
        return Result.fail(PersistenceConflict(
            f"Question {question_number} is no longer open for '{student_id}'."
        ))

    def submit_answer(self, actor: dict, assignment_id: str, student_id: str, data: dict) -> Result[ProgressView]:
        denied = self._authorize(actor, student_id)
        if denied:
            return Result.fail(denied)

        def op() -> Result[ProgressView]:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            assignment = loaded.value
            result = self._update_progress(
                assignment,
                student_id,
                lambda p: self._domain.submit_answer(assignment, p, data, self._clock.now()),
            )
            if not result.is_success:
                logger.info("Answer rejected for %s/%s: %s", assignment_id, student_id, result.error)
                return Result.fail(result.error)
            return Result.ok(self._view(assignment, result.value))

        return self._guarded(op)

    def get_answers(self, actor: dict, assignment_id: str, student_id: str) -> Result[AnswerLedger]:
        denied = self._authorize(actor, student_id)
        if denied:
            return Result.fail(denied)

        def op() -> Result[AnswerLedger]:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            progress = self._load_progress(assignment_id, student_id)
            if not progress.is_success:
                return Result.fail(progress.error)
            return Result.ok(AnswerLedger(
                answers=progress.value.answers,
                answered_count=progress.value.answered_count,
                total_questions=loaded.value.total_questions,
            ))

        return self._guarded(op)

    def mark_done(self, actor: dict, assignment_id: str, student_id: str) -> Result[ProgressView]:
        denied = self._require_admin(actor)
        if denied:
            return Result.fail(denied)

        def op() -> Result[ProgressView]:
            loaded = self._load_assignment(assignment_id)
            if not loaded.is_success:
                return Result.fail(loaded.error)
            now = self._clock.now()
            result = self._update_progress(
                loaded.value,
                student_id,
                lambda p: self._domain.mark_done(p, actor.get("role", ""), now),
            )
            if not result.is_success:
                return Result.fail(result.error)
            return Result.ok(self._view(loaded.value, result.value))

        return self._guarded(op)
