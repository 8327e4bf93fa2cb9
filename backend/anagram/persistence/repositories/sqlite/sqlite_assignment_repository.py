"""SQLite implementation of AssignmentRepository."""
from __future__ import annotations
import json
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from anagram.domain.assignment.models import Answer, Assignment, OptionSet, StudentProgress
from anagram.domain.puzzle.models import GeneratedPuzzle
from anagram.persistence.db import get_connection
from anagram.persistence.interfaces.assignment_repository import AssignmentRepository, TransientPersistenceError


def _row_to_assignment(row) -> Assignment:
    return Assignment(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        total_questions=row["total_questions"],
        due_date=row["due_date"],
        option_sets=[OptionSet.from_dict(o) for o in json.loads(row["option_sets"] or "[]")],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_progress(row) -> StudentProgress:
    puzzle = json.loads(row["current_puzzle"]) if row["current_puzzle"] else None
    return StudentProgress(
        assignment_id=row["assignment_id"],
        student_id=row["student_id"],
        status=row["status"],
        current_option_set_index=row["current_option_set_index"],
        questions_completed_in_current_set=row["questions_completed_in_current_set"],
        answers=[Answer.from_dict(a) for a in json.loads(row["answers"] or "[]")],
        current_puzzle=GeneratedPuzzle.from_payload(puzzle) if puzzle else None,
        current_puzzle_question=row["current_puzzle_question"],
        assigned_at=row["assigned_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        marked_done_at=row["marked_done_at"],
        version=row["version"],
    )


def _progress_params(progress: StudentProgress) -> dict:
    return {
        "assignment_id": progress.assignment_id,
        "student_id": progress.student_id,
        "status": progress.status,
        "current_option_set_index": progress.current_option_set_index,
        "questions_completed_in_current_set": progress.questions_completed_in_current_set,
        "answered_count": progress.answered_count,
        "answers": json.dumps([a.to_dict() for a in progress.answers]),
        "current_puzzle": json.dumps(progress.current_puzzle.to_payload()) if progress.current_puzzle else None,
        "current_puzzle_question": progress.current_puzzle_question,
        "assigned_at": progress.assigned_at,
        "started_at": progress.started_at,
        "completed_at": progress.completed_at,
        "marked_done_at": progress.marked_done_at,
        "version": progress.version,
    }


class SqliteAssignmentRepository(AssignmentRepository):

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """One connection per call; a locked or busy database surfaces as TransientPersistenceError."""
        try:
            conn = get_connection(self.db_path)
        except sqlite3.OperationalError as exc:
            raise TransientPersistenceError(str(exc)) from exc
        try:
            yield conn
            conn.commit()
        except sqlite3.OperationalError as exc:
            conn.rollback()
            raise TransientPersistenceError(str(exc)) from exc
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------
    def save_assignment(self, assignment: Assignment) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO assignments (
                    id, title, description, total_questions, due_date,
                    option_sets, created_by, created_at, updated_at
                ) VALUES (
                    :id, :title, :description, :total_questions, :due_date,
                    :option_sets, :created_by, :created_at, :updated_at
                )
                ON CONFLICT(id) DO UPDATE SET
                    title           = excluded.title,
                    description     = excluded.description,
                    total_questions = excluded.total_questions,
                    due_date        = excluded.due_date,
                    option_sets     = excluded.option_sets,
                    updated_at      = excluded.updated_at
                """,
                {
                    "id": assignment.id,
                    "title": assignment.title,
                    "description": assignment.description,
                    "total_questions": assignment.total_questions,
                    "due_date": assignment.due_date,
                    "option_sets": json.dumps([o.to_dict() for o in assignment.option_sets]),
                    "created_by": assignment.created_by,
                    "created_at": assignment.created_at,
                    "updated_at": assignment.updated_at,
                },
            )

    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM assignments WHERE id = ?", (assignment_id,)).fetchone()
        return _row_to_assignment(row) if row else None

    def list_assignments(self) -> List[Assignment]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM assignments ORDER BY created_at DESC").fetchall()
        return [_row_to_assignment(r) for r in rows]

    def delete_assignment(self, assignment_id: str) -> bool:
        with self._connection() as conn:
            cur = conn.execute("DELETE FROM assignments WHERE id = ?", (assignment_id,))
        return cur.rowcount > 0

    def load_option_sets(self, assignment_id: str) -> List[OptionSet]:
        with self._connection() as conn:
            row = conn.execute("SELECT option_sets FROM assignments WHERE id = ?", (assignment_id,)).fetchone()
        if not row:
            return []
        return [OptionSet.from_dict(o) for o in json.loads(row["option_sets"] or "[]")]

    # ------------------------------------------------------------------
    # Student progress
    # ------------------------------------------------------------------
    def create_progress(self, progress: StudentProgress) -> bool:
        with self._connection() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO student_progress (
                    assignment_id, student_id, status,
                    current_option_set_index, questions_completed_in_current_set,
                    answered_count, answers, current_puzzle, current_puzzle_question,
                    assigned_at, started_at, completed_at, marked_done_at, version
                ) VALUES (
                    :assignment_id, :student_id, :status,
                    :current_option_set_index, :questions_completed_in_current_set,
                    :answered_count, :answers, :current_puzzle, :current_puzzle_question,
                    :assigned_at, :started_at, :completed_at, :marked_done_at, :version
                )
                """,
                _progress_params(progress),
            )
        return cur.rowcount > 0

    def get_progress(self, assignment_id: str, student_id: str) -> Optional[StudentProgress]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM student_progress WHERE assignment_id = ? AND student_id = ?",
                (assignment_id, student_id),
            ).fetchone()
        return _row_to_progress(row) if row else None

    def list_progress(self, assignment_id: str) -> List[StudentProgress]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM student_progress WHERE assignment_id = ? ORDER BY assigned_at, student_id",
                (assignment_id,),
            ).fetchall()
        return [_row_to_progress(r) for r in rows]

    def list_progress_for_student(self, student_id: str) -> List[StudentProgress]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM student_progress WHERE student_id = ? ORDER BY assigned_at DESC",
                (student_id,),
            ).fetchall()
        return [_row_to_progress(r) for r in rows]

    def save_progress(self, progress: StudentProgress, expected_version: int) -> bool:
        params = _progress_params(progress)
        params["expected_version"] = expected_version
        with self._connection() as conn:
            cur = conn.execute(
                """
                UPDATE student_progress SET
                    status                             = :status,
                    current_option_set_index           = :current_option_set_index,
                    questions_completed_in_current_set = :questions_completed_in_current_set,
                    answered_count                     = :answered_count,
                    answers                            = :answers,
                    current_puzzle                     = :current_puzzle,
                    current_puzzle_question            = :current_puzzle_question,
                    started_at                         = :started_at,
                    completed_at                       = :completed_at,
                    marked_done_at                     = :marked_done_at,
                    version                            = version + 1
                WHERE assignment_id = :assignment_id
                  AND student_id = :student_id
                  AND version = :expected_version
                """,
                params,
            )
        if cur.rowcount == 0:
            return False
        progress.version = expected_version + 1
        return True

    def set_current_puzzle_if_absent(
        self,
        assignment_id: str,
        student_id: str,
        question_number: int,
        puzzle: GeneratedPuzzle,
    ) -> bool:
        with self._connection() as conn:
            cur = conn.execute(
                """
                UPDATE student_progress SET
                    current_puzzle          = :puzzle,
                    current_puzzle_question = :question_number,
                    version                 = version + 1
                WHERE assignment_id = :assignment_id
                  AND student_id = :student_id
                  AND status = 'inprogress'
                  AND answered_count + 1 = :question_number
                  AND (current_puzzle IS NULL OR current_puzzle_question IS NOT :question_number)
                """,
                {
                    "assignment_id": assignment_id,
                    "student_id": student_id,
                    "question_number": question_number,
                    "puzzle": json.dumps(puzzle.to_payload()),
                },
            )
        return cur.rowcount > 0
