"""
Token-set generator — builds a solvable tile rack for a constraint spec.

Constructive: sample category counts, lay out a balanced equation that uses
exactly those tiles, then shuffle its display tiles into the rack. A side may
open with a unary minus, and a blank may stand in for an operator, a zero, a
heavy number or a digit. Every candidate is re-checked by the solver before
it is returned.
"""
from __future__ import annotations
import itertools
import logging
import random
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from anagram.core.config import GENERATION_MAX_ATTEMPTS
from anagram.domain.common.errors import GenerationExhausted
from anagram.domain.common.result import Result
from anagram.domain.puzzle.constraints import CATEGORIES, ConstraintSpec, validate_constraint_spec
from anagram.domain.puzzle.evaluator import MAX_NUMBER_DIGITS, evaluate, resolve_order
from anagram.domain.puzzle.models import GeneratedPuzzle, Placement, puzzle_problems
from anagram.domain.puzzle.solver import find_solution
from anagram.domain.puzzle.tokens import (
    BLANK,
    DIGITS,
    DIVIDE,
    EQUALS_SIGN,
    HEAVY,
    HEAVY_NUMBERS,
    MINUS,
    NUMBERS,
    OPERATORS,
    Token,
    bag_count,
    resolve,
)

logger = logging.getLogger(__name__)

# Unit kinds in a planned equation
_ZERO_UNIT = "zero"
_HEAVY_UNIT = "heavy"
_RUN_UNIT = "run"

# Random fills tried per layout before the attempt is abandoned
_FILL_TRIES = 25
# Slots scanned for a balancing value per fill
_FREE_SLOTS = 3

# Every value a run of n digit tiles (1-9) can spell
_RUN_VALUES: Dict[int, List[int]] = {
    n: [int("".join(map(str, ds))) for ds in itertools.product(range(1, 10), repeat=n)]
    for n in range(1, MAX_NUMBER_DIGITS + 1)
}


def _opens_with_minus(tile: Token) -> bool:
    return MINUS in resolve(tile)


@dataclass
class _Counts:
    """Display-tile counts for one attempt."""
    operators: List[Token]
    heavy: int
    wildcards: int
    zeros: int
    light: int

    @property
    def minus_ops(self) -> int:
        """Operator tiles that can open a side as a unary minus."""
        return sum(1 for tile in self.operators if _opens_with_minus(tile))


@dataclass(frozen=True)
class _Shape:
    """What the blanks stand for in one planned equation, and how many sides open with a minus."""
    hidden_ops: int = 0
    hidden_heavy: int = 0
    hidden_zeros: int = 0
    hidden_digits: int = 0
    unary: int = 0


def _shapes(operators: int, heavy: int, zeros: int, wildcards: int, light: int, minus_ops: int) -> List[_Shape]:
    """
    Every way to spend the blanks and unary minuses so the tiles form
    `<left> = <right>`. k binary operators give k + 2 numbers; each number
    is one heavy tile, one 0, or a run of up to three digit tiles.
    """
    shapes = []
    for w_op, w_heavy, w_zero in itertools.product(range(wildcards + 1), repeat=3):
        w_digit = wildcards - w_op - w_heavy - w_zero
        if w_digit < 0 or heavy + w_heavy > len(HEAVY_NUMBERS):
            continue
        ops = operators + w_op
        digits = light + w_digit
        for unary in range(min(2, ops, minus_ops + w_op) + 1):
            numbers = ops - unary + 2
            runs = numbers - heavy - w_heavy - zeros - w_zero
            # a negated number is never 0
            if runs < 1 or zeros + w_zero > numbers - unary:
                continue
            if runs <= digits <= MAX_NUMBER_DIGITS * runs:
                shapes.append(_Shape(w_op, w_heavy, w_zero, w_digit, unary))
    return shapes


def structural_problem(
    operators: int,
    heavy: int,
    zeros: int,
    wildcards: int,
    light: int,
    minus_ops: Optional[int] = None,
) -> Optional[str]:
    """
    Category blamed when these counts cannot form `<left> = <right>`; None when they can.
    `minus_ops` of the operator tiles may open a side as a unary minus (all of them by default).
    """
    if light < 1:
        return "operators"
    if _shapes(operators, heavy, zeros, wildcards, light, operators if minus_ops is None else minus_ops):
        return None
    if operators + 2 - heavy - zeros < 1:
        return "heavy" if heavy else "zeros"
    return "operators"


# ------------------------------------------------------------------
# Count sampling
# ------------------------------------------------------------------
def _operator_count_bounds(spec: ConstraintSpec) -> Tuple[int, int]:
    fixed = sum(spec.fixed_operator_counts().values())
    if spec.operator_symbols is not None and not spec.random_operator_tiles():
        return fixed, fixed
    return max(spec.operators.minimum, fixed), spec.operators.maximum


def _light_count(spec: ConstraintSpec, k: int, h: int, w: int, z: int) -> int:
    return spec.total - k - h - w - z - spec.equals.minimum


def _minus_capacity(spec: ConstraintSpec, k: int) -> int:
    """Most operator tiles out of `k` that could open a side with a minus."""
    fixed = spec.fixed_operator_counts()
    capacity = sum(n for tok, n in fixed.items() if _opens_with_minus(tok))
    if any(_opens_with_minus(tok) for tok in spec.random_operator_tiles()):
        capacity += k - sum(fixed.values())
    return capacity


def _combinations(spec: ConstraintSpec) -> Iterator[Tuple[Tuple[int, int, int, int], Optional[str]]]:
    k_lo, k_hi = _operator_count_bounds(spec)
    for k in range(k_lo, k_hi + 1):
        minus_ops = _minus_capacity(spec, k)
        for h in range(spec.heavy.minimum, spec.heavy.maximum + 1):
            for w in range(spec.wildcards.minimum, spec.wildcards.maximum + 1):
                for z in range(spec.zeros.minimum, spec.zeros.maximum + 1):
                    light = _light_count(spec, k, h, w, z)
                    yield (k, h, w, z), structural_problem(k, h, z, w, light, minus_ops)


def constructible_combinations(spec: ConstraintSpec) -> List[Tuple[int, int, int, int]]:
    """Every (operators, heavy, wildcards, zeros) the constraint ranges allow that can form an equation."""
    return [combo for combo, problem in _combinations(spec) if problem is None]


def _draw_operator_tiles(spec: ConstraintSpec, k: int, rng: random.Random) -> Optional[List[Token]]:
    tiles: List[Token] = []
    for tok, n in spec.fixed_operator_counts().items():
        tiles.extend([tok] * n)
    missing = k - len(tiles)
    if missing <= 0:
        return tiles
    # Random slots follow the bag's proportions, never exceeding what is left in it
    used = Counter(tiles)
    pool = [tok for tok in spec.random_operator_tiles() for _ in range(bag_count(tok) - used[tok])]
    if len(pool) < missing:
        return None
    return tiles + rng.sample(pool, missing)


def _sample_counts(
    spec: ConstraintSpec,
    rng: random.Random,
    combos: Optional[Sequence[Tuple[int, int, int, int]]],
) -> Optional[_Counts]:
    if combos:
        k, h, w, z = rng.choice(combos)
    else:
        k_lo, k_hi = _operator_count_bounds(spec)
        k = rng.randint(k_lo, k_hi)
        h = rng.randint(spec.heavy.minimum, spec.heavy.maximum)
        w = rng.randint(spec.wildcards.minimum, spec.wildcards.maximum)
        z = rng.randint(spec.zeros.minimum, spec.zeros.maximum)
    operators = _draw_operator_tiles(spec, k, rng)
    if operators is None:
        return None
    return _Counts(operators=operators, heavy=h, wildcards=w, zeros=z, light=_light_count(spec, k, h, w, z))


# ------------------------------------------------------------------
# Equation construction
# ------------------------------------------------------------------
@dataclass
class _Slot:
    side: int
    op: Optional[Placement]  # operator placed before this number; None opens a side
    neg: Optional[Placement] = None  # unary minus in front of a side's first number
    kind: str = _RUN_UNIT
    length: int = 1
    value: int = 0

    @property
    def signed_value(self) -> int:
        return -self.value if self.neg is not None else self.value


def _layout(counts: _Counts, shape: _Shape, rng: random.Random) -> Tuple[Optional[List[_Slot]], Optional[str]]:
    ops = [Placement(display=tile, concrete=rng.choice(resolve(tile))) for tile in counts.operators]
    ops.extend(Placement(display=BLANK, concrete=rng.choice(OPERATORS)) for _ in range(shape.hidden_ops))
    rng.shuffle(ops)

    openers = set(rng.sample([i for i, p in enumerate(ops) if _opens_with_minus(p.display)], shape.unary))
    negations = [Placement(display=ops[i].display, concrete=MINUS) for i in sorted(openers)]
    ops = [p for i, p in enumerate(ops) if i not in openers]
    negated_sides = rng.sample((0, 1), shape.unary)

    split = rng.randint(0, len(ops))
    slots: List[_Slot] = []
    for side, side_ops in ((0, ops[:split]), (1, ops[split:])):
        neg = negations.pop() if side in negated_sides else None
        slots.append(_Slot(side=side, op=None, neg=neg))
        slots.extend(_Slot(side=side, op=op) for op in side_ops)

    # zero is never a divisor and never negated
    zeros = counts.zeros + shape.hidden_zeros
    zero_ok = [
        i for i, s in enumerate(slots)
        if s.neg is None and (s.op is None or s.op.concrete != DIVIDE)
    ]
    if len(zero_ok) < zeros:
        return None, "zeros"
    zero_slots = set(rng.sample(zero_ok, zeros))
    rest = [i for i in range(len(slots)) if i not in zero_slots]
    heavy_slots = set(rng.sample(rest, counts.heavy + shape.hidden_heavy))
    run_slots = [i for i in rest if i not in heavy_slots]

    for i in zero_slots:
        slots[i].kind = _ZERO_UNIT
    for i in heavy_slots:
        slots[i].kind = _HEAVY_UNIT

    lengths = [1] * len(run_slots)
    for _ in range(counts.light + shape.hidden_digits - len(run_slots)):
        open_runs = [j for j, n in enumerate(lengths) if n < MAX_NUMBER_DIGITS]
        lengths[rng.choice(open_runs)] += 1
    for i, n in zip(run_slots, lengths):
        slots[i].length = n
    return slots, None


def _side_value(slots: List[_Slot], side: int, order: str) -> Optional[int]:
    numbers = [s.signed_value for s in slots if s.side == side]
    ops = [s.op.concrete for s in slots if s.side == side and s.op is not None]
    return evaluate(numbers, ops, order)


def _candidates(slot: _Slot, slots: List[_Slot]) -> List[int]:
    if slot.kind == _ZERO_UNIT:
        return []
    if slot.kind == _HEAVY_UNIT:
        taken = {s.value for s in slots if s.kind == _HEAVY_UNIT and s is not slot}
        return [h.value for h in HEAVY_NUMBERS if h.value not in taken]
    return _RUN_VALUES[slot.length]


def _fill(slots: List[_Slot], rng: random.Random, order: str) -> bool:
    """Random values everywhere, then one slot solved for so that both sides agree."""
    heavy = [s for s in slots if s.kind == _HEAVY_UNIT]
    for _ in range(_FILL_TRIES):
        for s, h in zip(heavy, rng.sample(HEAVY_NUMBERS, len(heavy))):
            s.value = h.value
        for s in slots:
            if s.kind == _RUN_UNIT:
                s.value = rng.choice(_RUN_VALUES[s.length])
            elif s.kind == _ZERO_UNIT:
                s.value = 0

        free = [s for s in slots if s.kind != _ZERO_UNIT]
        rng.shuffle(free)
        for slot in free[:_FREE_SLOTS]:
            other = _side_value(slots, 1 - slot.side, order)
            if other is None:
                continue
            original = slot.value
            matches = []
            for value in _candidates(slot, slots):
                slot.value = value
                if _side_value(slots, slot.side, order) == other:
                    matches.append(value)
            if matches:
                slot.value = rng.choice(matches)
                return True
            slot.value = original
    return False


def _placements(slots: List[_Slot]) -> List[Placement]:
    placements: List[Placement] = []
    for s in slots:
        if s.side == 1 and s.op is None:
            placements.append(Placement(display=EQUALS_SIGN, concrete=EQUALS_SIGN))
        if s.neg is not None:
            placements.append(s.neg)
        if s.op is not None:
            placements.append(s.op)
        if s.kind == _RUN_UNIT:
            placements.extend(Placement(display=DIGITS[int(c) - 1], concrete=DIGITS[int(c) - 1]) for c in str(s.value))
        else:
            placements.append(Placement(display=NUMBERS[s.value], concrete=NUMBERS[s.value]))
    return placements


def _hide_wildcards(placements: List[Placement], shape: _Shape, rng: random.Random) -> None:
    """Puts blanks over the numbers the shape hides; blank operators were placed by the layout."""
    hidden = (
        (shape.hidden_digits, lambda tok: tok.is_digit),
        (shape.hidden_heavy, lambda tok: tok.kind == HEAVY),
        (shape.hidden_zeros, lambda tok: tok.is_zero),
    )
    for count, wanted in hidden:
        candidates = [i for i, p in enumerate(placements) if p.display != BLANK and wanted(p.concrete)]
        for i in rng.sample(candidates, count):
            placements[i] = Placement(display=BLANK, concrete=placements[i].concrete)


def _bag_problem(elements: Sequence[Token]) -> Optional[str]:
    for tok, n in Counter(elements).items():
        if n > bag_count(tok):
            if tok.is_digit:
                return "light"
            if tok.kind == BLANK.kind:
                return "wildcards"
            return "heavy" if tok.is_number and not tok.is_zero else "operators"
    return None


def _attempt(counts: _Counts, rng: random.Random, order: str) -> Tuple[Optional[GeneratedPuzzle], Optional[str]]:
    sizes = (len(counts.operators), counts.heavy, counts.zeros, counts.wildcards, counts.light)
    problem = structural_problem(*sizes, counts.minus_ops)
    if problem:
        return None, problem
    shape = rng.choice(_shapes(*sizes, counts.minus_ops))

    slots, problem = _layout(counts, shape, rng)
    if slots is None:
        return None, problem
    if not _fill(slots, rng, order):
        return None, "operators"

    solution = _placements(slots)
    _hide_wildcards(solution, shape, rng)
    elements = [p.display for p in solution]
    problem = _bag_problem(elements)
    if problem:
        return None, problem
    rng.shuffle(elements)

    puzzle = GeneratedPuzzle(elements=elements, solution=solution)
    problems = puzzle_problems(puzzle)
    if problems:
        logger.warning("Discarding malformed candidate: %s", "; ".join(problems))
        return None, "operators"
    locks = {i: p.concrete for i, p in enumerate(solution)}
    if find_solution(elements, order, locks) is None:
        logger.warning("Solver rejected constructed equation %s", puzzle.sample_equation)
        return None, "operators"
    return puzzle, None


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------
def generate(
    spec: ConstraintSpec,
    rng: Optional[random.Random] = None,
    order: Optional[str] = None,
    max_attempts: int = GENERATION_MAX_ATTEMPTS,
) -> Result[GeneratedPuzzle]:
    """
    Returns Result.ok(GeneratedPuzzle) without locks, or Result.fail with
    ConfigurationError (bad spec) / GenerationExhausted (retries ran out).

    The first half of the attempts samples ranged categories uniformly; the
    second half only draws combinations that can form an equation at all.
    When no combination can, it fails at once without spending attempts.
    Fixed counts are never changed.
    """
    validation = validate_constraint_spec(spec)
    if not validation.is_success:
        return Result.fail(validation.error)
    rng = rng or random.Random()
    order = resolve_order(order)

    combinations = list(_combinations(spec))
    relaxed = [combo for combo, problem in combinations if problem is None]
    if not relaxed:
        structure = Counter(problem for _, problem in combinations)
        category = structure.most_common(1)[0][0]
        logger.warning("No constructible tile counts for %s (blame: %s)", spec.to_dict(), dict(structure))
        return Result.fail(
            GenerationExhausted(category, 0, "No combination of the requested counts can form an equation.")
        )

    blame: Counter = Counter()
    for attempt in range(1, max_attempts + 1):
        combos = relaxed if attempt > max_attempts // 2 else None
        counts = _sample_counts(spec, rng, combos)
        if counts is None:
            puzzle, problem = None, "operators"
        else:
            puzzle, problem = _attempt(counts, rng, order)
        if puzzle is not None:
            logger.debug("Generated %s on attempt %d", puzzle.sample_equation, attempt)
            return Result.ok(puzzle)
        blame[problem] += 1
        logger.debug("Generation attempt %d failed on '%s'", attempt, problem)

    category = blame.most_common(1)[0][0] if blame else CATEGORIES[0]
    logger.warning("Generation exhausted after %d attempts for %s (blame: %s)", max_attempts, spec.to_dict(), dict(blame))
    return Result.fail(GenerationExhausted(category, max_attempts))
