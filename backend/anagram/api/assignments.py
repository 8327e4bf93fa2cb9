"""Assignment CRUD + student progress API endpoints."""
from __future__ import annotations
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from anagram.api.auth import get_current_user
from anagram.api.errors import to_http
from anagram.api.puzzles import LockBody, serialize_puzzle
from anagram.application.assignment_app_service import (
    AnswerLedger,
    AssignmentAppService,
    CurrentPuzzle,
    CurrentSetInfo,
    ProgressView,
)
from anagram.container import get_assignment_app_service
from anagram.domain.assignment.models import DONE, Answer, Assignment, StudentProgress
from anagram.domain.common.errors import ConfigurationError
from anagram.domain.puzzle.models import GeneratedPuzzle, LockedPosition

router = APIRouter(prefix="/assignments", tags=["assignments"])


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------
class OptionSetBody(BaseModel):
    label: str = ""
    numQuestions: int = Field(ge=1)
    spec: dict


class AssignmentBody(BaseModel):
    title: str
    description: Optional[str] = None
    totalQuestions: int
    dueDate: Optional[str] = None
    optionSets: List[OptionSetBody]


class AssignStudentsBody(BaseModel):
    studentIds: List[str]


class PuzzleBody(BaseModel):
    elements: List[str]
    solutionTokens: Optional[List[str]] = None
    solutionDisplay: Optional[List[str]] = None
    lockedPositions: List[dict] = []


class AnswerBody(BaseModel):
    questionNumber: int
    questionText: str = ""
    answerText: str = ""
    lockedPositions: List[LockBody] = []


class StatusBody(BaseModel):
    status: str = DONE


# ------------------------------------------------------------------
# Serializers
# ------------------------------------------------------------------
def _serialize_assignment(a: Assignment) -> dict:
    return {
        "id": a.id,
        "title": a.title,
        "description": a.description,
        "totalQuestions": a.total_questions,
        "dueDate": a.due_date,
        "optionSets": [o.to_dict() for o in a.option_sets],
        "createdBy": a.created_by,
        "createdAt": a.created_at,
        "updatedAt": a.updated_at,
    }


def _serialize_answer(a: Answer) -> dict:
    return a.to_dict()


def _serialize_progress(p: StudentProgress) -> dict:
    return {
        "assignmentId": p.assignment_id,
        "studentId": p.student_id,
        "status": p.status,
        "currentOptionSetIndex": p.current_option_set_index,
        "questionsCompletedInCurrentSet": p.questions_completed_in_current_set,
        "answeredCount": p.answered_count,
        "assignedAt": p.assigned_at,
        "startedAt": p.started_at,
        "completedAt": p.completed_at,
        "markedDoneAt": p.marked_done_at,
    }


def _serialize_view(v: ProgressView) -> dict:
    data = _serialize_progress(v.progress)
    data["assignment"] = _serialize_assignment(v.assignment)
    data["progressPercentage"] = v.progress_percentage
    data["isOverdue"] = v.is_overdue
    return data


def _serialize_current_puzzle(c: CurrentPuzzle, reveal: bool) -> dict:
    return {
        "questionNumber": c.question_number,
        "optionSetIndex": c.option_set_index,
        "persisted": c.persisted,
        "puzzle": serialize_puzzle(c.puzzle, reveal),
    }


def _serialize_set_info(s: CurrentSetInfo, reveal: bool) -> dict:
    return {
        "currentOptionSetIndex": s.option_set_index,
        "currentOptionSet": s.option_set.to_dict(),
        "questionsCompletedInCurrentSet": s.questions_completed_in_current_set,
        "totalOptionSets": s.total_option_sets,
        "currentPuzzle": serialize_puzzle(s.current_puzzle, reveal) if s.current_puzzle else None,
    }


def _serialize_ledger(l: AnswerLedger) -> dict:
    return {
        "answers": [_serialize_answer(a) for a in l.answers],
        "answeredCount": l.answered_count,
        "totalQuestions": l.total_questions,
    }


def _reveals_solution(user: dict) -> bool:
    return user.get("role") == "admin"


def _unwrap(result: Any) -> Any:
    if not result.is_success:
        raise to_http(result.error)
    return result.value


# ------------------------------------------------------------------
# Assignment endpoints
# ------------------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED)
def create_assignment(
    body: AssignmentBody,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    data = {
        "title": body.title,
        "description": body.description,
        "total_questions": body.totalQuestions,
        "due_date": body.dueDate,
        "option_sets": [o.model_dump() for o in body.optionSets],
    }
    return _serialize_assignment(_unwrap(svc.create_assignment(current_user, data)))


@router.get("")
def list_assignments(
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    return [_serialize_assignment(a) for a in _unwrap(svc.list_assignments())]


@router.get("/students/{student_id}/assignments")
def list_student_assignments(
    student_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    return [_serialize_view(v) for v in _unwrap(svc.list_student_assignments(current_user, student_id))]


@router.get("/{assignment_id}")
def get_assignment(
    assignment_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    return _serialize_assignment(_unwrap(svc.get_assignment(assignment_id)))


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    _unwrap(svc.delete_assignment(current_user, assignment_id))


@router.post("/{assignment_id}/assign")
def assign_students(
    assignment_id: str,
    body: AssignStudentsBody,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    records = _unwrap(svc.assign_students(current_user, assignment_id, body.studentIds))
    return [_serialize_progress(p) for p in records]


@router.get("/{assignment_id}/statistics")
def assignment_statistics(
    assignment_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    return _unwrap(svc.assignment_statistics(current_user, assignment_id))


# ------------------------------------------------------------------
# Student progress endpoints
# ------------------------------------------------------------------
@router.get("/{assignment_id}/students/{student_id}")
def get_progress(
    assignment_id: str,
    student_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    return _serialize_view(_unwrap(svc.get_progress(current_user, assignment_id, student_id)))


@router.patch("/{assignment_id}/students/{student_id}/start")
def start_assignment(
    assignment_id: str,
    student_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    return _serialize_view(_unwrap(svc.start(current_user, assignment_id, student_id)))


@router.get("/{assignment_id}/students/{student_id}/current-set")
def current_set(
    assignment_id: str,
    student_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    info = _unwrap(svc.get_current_set_info(current_user, assignment_id, student_id))
    return _serialize_set_info(info, _reveals_solution(current_user))


@router.get("/{assignment_id}/students/{student_id}/current-question")
def current_question(
    assignment_id: str,
    student_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    current = _unwrap(svc.get_or_create_current_puzzle(current_user, assignment_id, student_id))
    return _serialize_current_puzzle(current, _reveals_solution(current_user))


@router.patch("/{assignment_id}/students/{student_id}/current-question")
def persist_current_question(
    assignment_id: str,
    student_id: str,
    body: PuzzleBody,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    try:
        puzzle = GeneratedPuzzle.from_payload(body.model_dump())
    except ConfigurationError as exc:
        raise to_http(exc)
    except (KeyError, ValueError) as exc:
        raise to_http(ConfigurationError(f"Malformed puzzle: {exc}"))
    current = _unwrap(svc.persist_current_puzzle(current_user, assignment_id, student_id, puzzle))
    return _serialize_current_puzzle(current, _reveals_solution(current_user))


@router.post("/{assignment_id}/students/{student_id}/answers")
def submit_answer(
    assignment_id: str,
    student_id: str,
    body: AnswerBody,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    try:
        locks = [LockedPosition.from_dict(lp.model_dump()) for lp in body.lockedPositions]
    except ConfigurationError as exc:
        raise to_http(exc)
    data = {
        "question_number": body.questionNumber,
        "question_text": body.questionText,
        "answer_text": body.answerText,
        "locked_positions": locks,
    }
    return _serialize_view(_unwrap(svc.submit_answer(current_user, assignment_id, student_id, data)))


@router.get("/{assignment_id}/students/{student_id}/answers")
def get_answers(
    assignment_id: str,
    student_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    return _serialize_ledger(_unwrap(svc.get_answers(current_user, assignment_id, student_id)))


@router.patch("/{assignment_id}/students/{student_id}/status")
def mark_done(
    assignment_id: str,
    student_id: str,
    body: StatusBody,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    if body.status != DONE:
        raise to_http(ConfigurationError(f"Only '{DONE}' can be set here; other statuses follow from the student's work."))
    return _serialize_view(_unwrap(svc.mark_done(current_user, assignment_id, student_id)))
