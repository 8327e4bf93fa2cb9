"""Abstract repository interface for assignments and student progress."""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Optional

from anagram.domain.assignment.models import Assignment, OptionSet, StudentProgress
from anagram.domain.puzzle.models import GeneratedPuzzle


class TransientPersistenceError(Exception):
    """The store could not serve the call right now (e.g. database locked); retrying may succeed."""


class AssignmentRepository(ABC):

    @abstractmethod
    def save_assignment(self, assignment: Assignment) -> None:
        """Insert or update the assignment row."""
        ...

    @abstractmethod
    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        ...

    @abstractmethod
    def list_assignments(self) -> List[Assignment]:
        """All assignments, newest first."""
        ...

    @abstractmethod
    def delete_assignment(self, assignment_id: str) -> bool:
        """Delete an assignment and cascade to its progress records. Returns True if deleted."""
        ...

    @abstractmethod
    def load_option_sets(self, assignment_id: str) -> List[OptionSet]:
        """The assignment's option sets in playlist order; empty if it does not exist."""
        ...

    @abstractmethod
    def create_progress(self, progress: StudentProgress) -> bool:
        """Insert a progress record unless one exists for the pair. Returns True if inserted."""
        ...

    @abstractmethod
    def get_progress(self, assignment_id: str, student_id: str) -> Optional[StudentProgress]:
        ...

    @abstractmethod
    def list_progress(self, assignment_id: str) -> List[StudentProgress]:
        ...

    @abstractmethod
    def list_progress_for_student(self, student_id: str) -> List[StudentProgress]:
        ...

    @abstractmethod
    def save_progress(self, progress: StudentProgress, expected_version: int) -> bool:
        """
        Compare-and-set: write only if the stored version still equals
        `expected_version`. On success `progress.version` is bumped and True returned.
        """
        ...

    @abstractmethod
    def set_current_puzzle_if_absent(
        self,
        assignment_id: str,
        student_id: str,
        question_number: int,
        puzzle: GeneratedPuzzle,
    ) -> bool:
        """
        Store `puzzle` for `question_number` only if that question is the
        student's next one and no puzzle is stored for it yet (first write wins).
        Returns True if this call wrote it.
        """
        ...
