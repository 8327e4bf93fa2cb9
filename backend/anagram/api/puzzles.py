"""Standalone puzzle endpoints — generate, solve, check."""
from __future__ import annotations
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from anagram.api.errors import to_http
from anagram.application.puzzle_app_service import PuzzleAppService
from anagram.container import get_puzzle_app_service
from anagram.domain.puzzle.constraints import MAX_TOTAL_COUNT
from anagram.domain.puzzle.models import EquationArrangement, GeneratedPuzzle

router = APIRouter(prefix="/puzzles", tags=["puzzles"])


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------
class GenerateBody(BaseModel):
    total: int
    operators: Any
    equals: Any = 1
    heavy: Any = 0
    wildcards: Any = 0
    zeros: Any = 0
    operator_symbols: Optional[Dict[str, Optional[int]]] = None
    lock_mode: bool = False
    seed: Optional[int] = None


class LockBody(BaseModel):
    index: int
    value: str


class SolveBody(BaseModel):
    elements: List[str] = Field(max_length=MAX_TOTAL_COUNT)
    limit: Optional[int] = Field(default=None, ge=0, le=500)
    locked_positions: List[LockBody] = []


class SlotBody(BaseModel):
    display: str
    value: Optional[str] = None


class CheckBody(BaseModel):
    elements: List[str] = Field(max_length=MAX_TOTAL_COUNT)
    answer: List[SlotBody] = Field(max_length=MAX_TOTAL_COUNT)
    locked_positions: List[LockBody] = []


# ------------------------------------------------------------------
# Serializers
# ------------------------------------------------------------------
def serialize_puzzle(p: GeneratedPuzzle, reveal: bool = True) -> dict:
    """`reveal=False` leaves out the solution so the rack can be shown to a player."""
    payload = p.to_payload()
    if reveal:
        payload["sampleEquation"] = p.sample_equation
    else:
        payload.pop("solutionTokens", None)
        payload.pop("solutionDisplay", None)
    payload["points"] = p.points
    return payload


def _serialize_arrangement(a: EquationArrangement) -> dict:
    return {
        "equation": a.text,
        "tokens": [p.concrete.symbol for p in a.placements],
        "display": [p.display.symbol for p in a.placements],
    }


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------
@router.post("/generate")
def generate(body: GenerateBody, svc: PuzzleAppService = Depends(get_puzzle_app_service)):
    spec = body.model_dump(exclude={"seed"})
    result = svc.generate(spec, seed=body.seed)
    if not result.is_success:
        raise to_http(result.error)
    return serialize_puzzle(result.value)


@router.post("/solve")
def solve(body: SolveBody, svc: PuzzleAppService = Depends(get_puzzle_app_service)):
    locks = [lp.model_dump() for lp in body.locked_positions]
    result = svc.solve(body.elements, body.limit, locks)
    if not result.is_success:
        raise to_http(result.error)
    outcome = result.value
    return {
        "solvable": bool(outcome.solutions),
        "exhausted": outcome.exhausted,
        "solutions": [_serialize_arrangement(a) for a in outcome.solutions],
    }


@router.post("/check")
def check(body: CheckBody, svc: PuzzleAppService = Depends(get_puzzle_app_service)):
    locks = [lp.model_dump() for lp in body.locked_positions]
    result = svc.check(body.elements, [s.model_dump() for s in body.answer], locks)
    if not result.is_success:
        raise to_http(result.error)
    verdict = result.value
    return {"valid": verdict.valid, "equation": verdict.equation, "reason": verdict.reason}


@router.get("/validate")
def validate_equation(equation: str, svc: PuzzleAppService = Depends(get_puzzle_app_service)):
    if not equation.strip():
        raise HTTPException(status_code=400, detail="Query parameter 'equation' cannot be empty")
    return {"equation": equation, "valid": svc.is_valid_equation(equation)}
