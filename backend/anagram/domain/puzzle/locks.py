"""Position-lock selector — pre-fills answer slots taken from the puzzle's known solution."""
from __future__ import annotations
import logging
import random
from typing import List, Optional

from anagram.core.config import LOCK_MAX_RETRIES
from anagram.domain.puzzle.models import GeneratedPuzzle, LockedPosition
from anagram.domain.puzzle.solver import has_solution

logger = logging.getLogger(__name__)


def select_locks(
    puzzle: GeneratedPuzzle,
    lock_count: int,
    rng: Optional[random.Random] = None,
    order: Optional[str] = None,
    max_retries: int = LOCK_MAX_RETRIES,
) -> List[LockedPosition]:
    """
    Picks `lock_count` distinct solution slots uniformly at random and locks
    them to the solution's concrete value there. Each pick is confirmed with
    the solver; after `max_retries` rejected picks one fewer slot is locked.
    """
    rng = rng or random.Random()
    slots = len(puzzle.solution)
    count = max(0, min(lock_count, slots))

    while count > 0:
        for _ in range(max_retries):
            positions = sorted(rng.sample(range(slots), count))
            locks = [LockedPosition(index=i, value=puzzle.solution[i].concrete) for i in positions]
            if has_solution(puzzle.elements, order, {lp.index: lp.value for lp in locks}):
                return locks
        logger.warning("No solvable choice of %d locked positions after %d tries; trying %d", count, max_retries, count - 1)
        count -= 1
    return []
