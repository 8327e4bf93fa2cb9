"""Domain service — puzzle creation, solving and answer checking. No I/O."""
from __future__ import annotations
import random
from typing import Dict, Optional, Sequence

from anagram.core.config import GENERATION_MAX_ATTEMPTS
from anagram.domain.common.result import Result
from anagram.domain.puzzle.constraints import ConstraintSpec
from anagram.domain.puzzle.evaluator import AnswerCheck, check_answer, resolve_order
from anagram.domain.puzzle.generator import generate
from anagram.domain.puzzle.locks import select_locks
from anagram.domain.puzzle.models import GeneratedPuzzle, Placement
from anagram.domain.puzzle.solver import SolveOutcome, search
from anagram.domain.puzzle.tokens import Token


class PuzzleDomainService:
    """
    Pure puzzle operations. Stateless apart from the evaluation order;
    randomness always comes from the caller's RNG.
    """

    def __init__(self, order: Optional[str] = None, max_attempts: int = GENERATION_MAX_ATTEMPTS):
        self.order = resolve_order(order)
        self.max_attempts = max_attempts

    def create_puzzle(self, spec: ConstraintSpec, rng: random.Random) -> Result[GeneratedPuzzle]:
        """Generate a rack for `spec`; in lock mode also lock `total - 8` slots."""
        result = generate(spec, rng, self.order, self.max_attempts)
        if not result.is_success:
            return result

        puzzle = result.value
        if spec.lock_mode:
            puzzle.locked_positions = select_locks(puzzle, spec.lock_count, rng, self.order)
        return Result.ok(puzzle)

    def solve(
        self,
        tokens: Sequence[Token],
        limit: Optional[int] = None,
        locks: Optional[Dict[int, Token]] = None,
    ) -> SolveOutcome:
        return search(tokens, limit, self.order, locks)

    def check(
        self,
        elements: Sequence[Token],
        answer: Sequence[Placement],
        locks: Optional[Dict[int, Token]] = None,
    ) -> AnswerCheck:
        return check_answer(elements, answer, locks, self.order)
