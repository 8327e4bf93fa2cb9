"""
Equation solver — arranges a tile multiset into `<left> = <right>`.

The search builds the row slot by slot: a number (one heavy tile, one 0, or a
run of up to three digit tiles), then an operator or the single '=', and so
on. Choice tiles and blanks are resolved on the spot; every resolution is
tried. Dead states are memoized on (remaining multiset, side, left value,
running value), and a branch is cut as soon as the remaining tiles cannot
close the gap to the left-hand value.

Every search carries a budget of tile placements; once it is spent the search
stops and reports itself exhausted instead of running on.
"""
from __future__ import annotations
import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from anagram.core.config import SOLVER_DEFAULT_LIMIT, SOLVER_MAX_NODES
from anagram.domain.puzzle.evaluator import (
    LEFT_TO_RIGHT,
    MAX_NUMBER_DIGITS,
    State,
    apply_operator,
    resolve_order,
    start_state,
    state_value,
)
from anagram.domain.puzzle.models import EquationArrangement, Placement
from anagram.domain.puzzle.tokens import (
    BLANK,
    CHOICES,
    CONCRETE_TOKENS,
    DIGITS,
    DIVIDE,
    EQUALS_SIGN,
    HEAVY_NUMBERS,
    INDEX,
    MINUS,
    OPERATORS,
    VOCABULARY,
    ZERO,
    Token,
    resolve,
)

logger = logging.getLogger(__name__)

# Display tiles able to supply each concrete token, direct tile first
_SOURCES: Dict[Token, Tuple[Token, ...]] = {
    concrete: tuple(t for t in (concrete,) + CHOICES + (BLANK,) if concrete in resolve(t))
    for concrete in CONCRETE_TOKENS
}

_I_DIGITS = [INDEX[d] for d in DIGITS]
_I_HEAVY = [INDEX[h] for h in HEAVY_NUMBERS]
_I_ZERO = INDEX[ZERO]
_I_OPS = [INDEX[o] for o in OPERATORS + CHOICES]
_I_EQUALS = INDEX[EQUALS_SIGN]
_I_BLANK = INDEX[BLANK]

# Upper bound on (1 + |number|) contributed per tile; a blank may be a digit
_FACTORS = [1] * len(VOCABULARY)
for _d in DIGITS:
    _FACTORS[INDEX[_d]] = 10 * (_d.value + 1)
for _h in HEAVY_NUMBERS:
    _FACTORS[INDEX[_h]] = _h.value + 1
_FACTORS[_I_BLANK] = 10 * (9 + 1)


class _BudgetSpent(Exception):
    pass


@dataclass
class SolveOutcome:
    """Arrangements found, and whether the node budget ran out before the search finished."""
    solutions: List[EquationArrangement] = field(default_factory=list)
    exhausted: bool = False


class _Search:
    """Single-use depth-first search over one tile multiset."""

    def __init__(
        self,
        tokens: List[Token],
        order: str,
        locks: Optional[Dict[int, Token]] = None,
        max_nodes: int = SOLVER_MAX_NODES,
    ):
        self.order = order
        self.counts = [0] * len(VOCABULARY)
        for tok in tokens:
            self.counts[INDEX[tok]] += 1
        self.total = len(tokens)
        self.remaining = self.total
        self.locks = dict(locks or {})
        self.placed: List[Placement] = []
        self.dead: Set[tuple] = set()
        self.max_nodes = max_nodes
        self.nodes = 0
        self.exhausted = False

    # ------------------------------------------------------------------
    # Slot bookkeeping
    # ------------------------------------------------------------------
    def _take(self, display: Token, concrete: Token) -> bool:
        self.nodes += 1
        if self.nodes > self.max_nodes:
            raise _BudgetSpent()
        lock = self.locks.get(self.total - self.remaining)
        if lock is not None and lock != concrete:
            return False
        i = INDEX[display]
        if self.counts[i] == 0:
            return False
        self.counts[i] -= 1
        self.remaining -= 1
        self.placed.append(Placement(display=display, concrete=concrete))
        return True

    def _untake(self) -> None:
        placement = self.placed.pop()
        self.counts[INDEX[placement.display]] += 1
        self.remaining += 1

    def _memo(self, key: tuple, branches: Iterator[EquationArrangement]) -> Iterator[EquationArrangement]:
        if key in self.dead:
            return
        found = False
        for arrangement in branches:
            found = True
            yield arrangement
        if not found:
            self.dead.add(key)

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------
    def _magnitude_bound(self) -> int:
        """Product of per-tile factors; any expression over the remaining tiles stays below it."""
        bound = 1
        for i, n in enumerate(self.counts):
            if n:
                bound *= _FACTORS[i] ** n
        return bound

    def _structurally_feasible(self, side: int, expect_number: bool, at_start: bool) -> bool:
        c = self.counts
        n_equals = c[_I_EQUALS]
        n_blank = c[_I_BLANK]
        if n_equals > (1 if side == 0 else 0):
            return False
        if side == 0 and n_equals + n_blank == 0:
            return False
        n_digits = sum(c[i] for i in _I_DIGITS)
        n_single = sum(c[i] for i in _I_HEAVY) + c[_I_ZERO]
        n_ops = sum(c[i] for i in _I_OPS)

        unary = (1 if side == 0 else 0) + (1 if at_start else 0)
        extra = 1 if expect_number else 0
        separators_min = max(n_ops + n_equals - unary, 0)
        separators_max = n_ops + n_equals + n_blank
        units_min = n_single + -(-n_digits // MAX_NUMBER_DIGITS)
        units_max = n_digits + n_single + n_blank
        return max(separators_min + extra, units_min) <= min(separators_max + extra, units_max)

    def _can_close(self, state: State, target: int) -> bool:
        bound = self._magnitude_bound()
        acc, term = state
        if self.order == LEFT_TO_RIGHT:
            return abs(target) <= (abs(acc + term) + 1) * bound
        return abs(target - acc) <= (abs(term) + 1) * bound

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    def run(self) -> Iterator[EquationArrangement]:
        try:
            yield from self._side_start(0, None)
        except _BudgetSpent:
            self.exhausted = True
            logger.warning("Solver budget of %d placements spent on a %d-tile rack", self.max_nodes, self.total)

    def _extend(self, state: Optional[State], op: Optional[Token], n: int) -> Optional[State]:
        if state is None:
            return start_state(n)
        return apply_operator(state, op, n, self.order)

    def _side_start(self, side: int, target: Optional[int]) -> Iterator[EquationArrangement]:
        for source in _SOURCES[MINUS]:
            if self._take(source, MINUS):
                yield from self._number(side, target, None, None, True)
                self._untake()
        yield from self._number(side, target, None, None, False)

    def _number(self, side, target, state, op, negate) -> Iterator[EquationArrangement]:
        key = ("n", side, target, state, op, negate, tuple(self.counts))
        return self._memo(key, self._number_branches(side, target, state, op, negate))

    def _number_branches(self, side, target, state, op, negate) -> Iterator[EquationArrangement]:
        at_start = state is None and not negate
        if not self._structurally_feasible(side, True, at_start):
            return
        sign = -1 if negate else 1

        if not negate and op != DIVIDE:
            for source in _SOURCES[ZERO]:
                if self._take(source, ZERO):
                    yield from self._after_number(side, target, self._extend(state, op, 0))
                    self._untake()

        for heavy in HEAVY_NUMBERS:
            for source in _SOURCES[heavy]:
                if self._take(source, heavy):
                    extended = self._extend(state, op, sign * heavy.value)
                    if extended is not None:
                        yield from self._after_number(side, target, extended)
                    self._untake()

        yield from self._digit_run(side, target, state, op, sign, 0, 0)

    def _digit_run(self, side, target, state, op, sign, value, length) -> Iterator[EquationArrangement]:
        for digit in DIGITS:
            for source in _SOURCES[digit]:
                if not self._take(source, digit):
                    continue
                number = value * 10 + digit.value
                extended = self._extend(state, op, sign * number)
                if extended is not None:
                    yield from self._after_number(side, target, extended)
                if length + 1 < MAX_NUMBER_DIGITS:
                    yield from self._digit_run(side, target, state, op, sign, number, length + 1)
                self._untake()

    def _after_number(self, side, target, state) -> Iterator[EquationArrangement]:
        key = ("a", side, target, state, tuple(self.counts))
        return self._memo(key, self._after_number_branches(side, target, state))

    def _after_number_branches(self, side, target, state) -> Iterator[EquationArrangement]:
        if self.remaining == 0:
            if side == 1 and state_value(state) == target:
                yield EquationArrangement(tuple(self.placed))
            return
        if not self._structurally_feasible(side, False, False):
            return

        if side == 0:
            left = state_value(state)
            for source in _SOURCES[EQUALS_SIGN]:
                if self._take(source, EQUALS_SIGN):
                    if abs(left) < self._magnitude_bound():
                        yield from self._side_start(1, left)
                    self._untake()
        elif not self._can_close(state, target):
            return

        for op in OPERATORS:
            for source in _SOURCES[op]:
                if self._take(source, op):
                    yield from self._number(side, target, state, op, False)
                    self._untake()


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------
def iter_solutions(
    tokens: Iterable[Token],
    order: Optional[str] = None,
    locks: Optional[Dict[int, Token]] = None,
    max_nodes: int = SOLVER_MAX_NODES,
) -> Iterator[EquationArrangement]:
    """
    Lazily yield valid arrangements of all `tokens`; honours `locks` (slot -> concrete token).
    Stops early, with a warning logged, once `max_nodes` placements have been tried.
    """
    tokens = list(tokens)
    if len(tokens) < 3:
        return iter(())
    return _Search(tokens, resolve_order(order), locks, max_nodes).run()


def find_solution(
    tokens: Iterable[Token],
    order: Optional[str] = None,
    locks: Optional[Dict[int, Token]] = None,
    max_nodes: int = SOLVER_MAX_NODES,
) -> Optional[EquationArrangement]:
    return next(iter_solutions(tokens, order, locks, max_nodes), None)


def has_solution(
    tokens: Iterable[Token],
    order: Optional[str] = None,
    locks: Optional[Dict[int, Token]] = None,
    max_nodes: int = SOLVER_MAX_NODES,
) -> bool:
    """False also when the budget ran out first; use `search` to tell the two apart."""
    return find_solution(tokens, order, locks, max_nodes) is not None


def search(
    tokens: Iterable[Token],
    limit: Optional[int] = None,
    order: Optional[str] = None,
    locks: Optional[Dict[int, Token]] = None,
    max_nodes: int = SOLVER_MAX_NODES,
) -> SolveOutcome:
    """Up to `limit` distinct arrangements, flagged `exhausted` when the budget cut the search short."""
    limit = SOLVER_DEFAULT_LIMIT if limit is None else limit
    tokens = list(tokens)
    if limit <= 0 or len(tokens) < 3:
        return SolveOutcome()
    searcher = _Search(tokens, resolve_order(order), locks, max_nodes)
    solutions = list(itertools.islice(searcher.run(), limit))
    logger.debug(
        "solve: %d arrangement(s) found (limit %d, %d placements tried)", len(solutions), limit, searcher.nodes
    )
    return SolveOutcome(solutions=solutions, exhausted=searcher.exhausted)


def solve(
    tokens: Iterable[Token],
    limit: Optional[int] = None,
    order: Optional[str] = None,
    locks: Optional[Dict[int, Token]] = None,
) -> List[EquationArrangement]:
    """Up to `limit` distinct arrangements; an empty list means none was found within the budget."""
    return search(tokens, limit, order, locks).solutions
