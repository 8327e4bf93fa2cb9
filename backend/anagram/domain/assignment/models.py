"""Assignment domain models — pure Python, no DB or HTTP dependencies."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

from anagram.domain.puzzle.constraints import ConstraintSpec
from anagram.domain.puzzle.models import GeneratedPuzzle, LockedPosition

# Progress statuses, in lifecycle order
TODO = "todo"
IN_PROGRESS = "inprogress"
COMPLETE = "complete"
DONE = "done"


@dataclass
class OptionSet:
    """One difficulty stage of an assignment: `num_questions` puzzles drawn from `spec`."""
    spec: ConstraintSpec
    num_questions: int
    label: str = ""

    def to_dict(self) -> dict:
        return {"label": self.label, "numQuestions": self.num_questions, "spec": self.spec.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "OptionSet":
        return cls(
            spec=ConstraintSpec.from_dict(data["spec"]),
            num_questions=int(data["numQuestions"]),
            label=data.get("label") or "",
        )


@dataclass
class Assignment:
    id: str
    title: str
    total_questions: int
    option_sets: List[OptionSet]
    created_by: str
    created_at: str
    updated_at: str
    description: Optional[str] = None
    due_date: Optional[str] = None  # ISO-8601, UTC


@dataclass
class Answer:
    question_number: int
    question_text: str
    answer_text: str
    answered_at: str
    locked_positions: List[LockedPosition] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "questionNumber": self.question_number,
            "questionText": self.question_text,
            "answerText": self.answer_text,
            "answeredAt": self.answered_at,
            "lockedPositions": [lp.to_dict() for lp in self.locked_positions],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Answer":
        return cls(
            question_number=int(data["questionNumber"]),
            question_text=data.get("questionText") or "",
            answer_text=data.get("answerText") or "",
            answered_at=data.get("answeredAt") or "",
            locked_positions=[LockedPosition.from_dict(lp) for lp in (data.get("lockedPositions") or [])],
        )


@dataclass
class StudentProgress:
    assignment_id: str
    student_id: str
    status: str = TODO  # todo | inprogress | complete | done
    current_option_set_index: int = 0
    questions_completed_in_current_set: int = 0
    answers: List[Answer] = field(default_factory=list)
    current_puzzle: Optional[GeneratedPuzzle] = None
    current_puzzle_question: Optional[int] = None  # question number the stored puzzle belongs to
    assigned_at: str = ""
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    marked_done_at: Optional[str] = None
    version: int = 0

    @property
    def answered_count(self) -> int:
        return len(self.answers)

    @property
    def next_question_number(self) -> int:
        return self.answered_count + 1
