"""Application service — standalone puzzle generation, solving and answer checking."""
from __future__ import annotations
import random
from typing import Dict, List, Optional

from anagram.domain.common.errors import ConfigurationError
from anagram.domain.common.result import Result
from anagram.domain.puzzle.constraints import ConstraintSpec
from anagram.domain.puzzle.evaluator import AnswerCheck, is_valid_equation
from anagram.domain.puzzle.models import GeneratedPuzzle, LockedPosition, Placement
from anagram.domain.puzzle.service import PuzzleDomainService
from anagram.domain.puzzle.solver import SolveOutcome
from anagram.domain.puzzle.tokens import Token, parse_token, parse_tokens


def _locks(raw: Optional[List[dict]]) -> Dict[int, Token]:
    return {lp.index: lp.value for lp in (LockedPosition.from_dict(d) for d in raw or [])}


class PuzzleAppService:
    def __init__(self, puzzles: Optional[PuzzleDomainService] = None):
        self._puzzles = puzzles or PuzzleDomainService()

    # ------------------------------------------------------------------
    # GENERATE
    # ------------------------------------------------------------------
    def generate(self, spec_data: dict, seed: Optional[int] = None) -> Result[GeneratedPuzzle]:
        try:
            spec = ConstraintSpec.from_dict(spec_data)
        except ConfigurationError as exc:
            return Result.fail(exc)
        except (TypeError, ValueError) as exc:
            return Result.fail(ConfigurationError(f"Malformed constraint spec: {exc}"))
        return self._puzzles.create_puzzle(spec, random.Random(seed))

    # ------------------------------------------------------------------
    # SOLVE
    # ------------------------------------------------------------------
    def solve(
        self,
        elements: List[str],
        limit: Optional[int] = None,
        locked_positions: Optional[List[dict]] = None,
    ) -> Result[SolveOutcome]:
        try:
            tokens = parse_tokens(elements)
            locks = _locks(locked_positions)
        except ConfigurationError as exc:
            return Result.fail(exc)
        return Result.ok(self._puzzles.solve(tokens, limit, locks))

    # ------------------------------------------------------------------
    # CHECK
    # ------------------------------------------------------------------
    def check(
        self,
        elements: List[str],
        answer: List[dict],
        locked_positions: Optional[List[dict]] = None,
    ) -> Result[AnswerCheck]:
        """`answer` is one {display, value} per slot; value defaults to the display tile."""
        try:
            tokens = parse_tokens(elements)
            placements = []
            for slot in answer:
                display = parse_token(slot["display"])
                concrete = parse_token(slot.get("value") or slot["display"])
                placements.append(Placement(display=display, concrete=concrete))
            locks = _locks(locked_positions)
        except ConfigurationError as exc:
            return Result.fail(exc)
        except KeyError as exc:
            return Result.fail(ConfigurationError(f"Answer slot is missing {exc}."))
        return Result.ok(self._puzzles.check(tokens, placements, locks))

    def is_valid_equation(self, text: str) -> bool:
        return is_valid_equation(text, self._puzzles.order)
