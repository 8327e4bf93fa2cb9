"""Expression evaluation and answer checking over concrete tile rows."""
from __future__ import annotations
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from anagram.core.config import EVALUATION_ORDER
from anagram.domain.puzzle.models import Placement
from anagram.domain.puzzle.tokens import (
    DIVIDE,
    EQUALS_SIGN,
    MINUS,
    OPERATORS,
    PLUS,
    TIMES,
    Token,
    can_stand_for,
)

PRECEDENCE = "precedence"        # × ÷ bind tighter than + −
LEFT_TO_RIGHT = "left_to_right"  # strictly in placement order
EVALUATION_ORDERS = {PRECEDENCE, LEFT_TO_RIGHT}

MAX_NUMBER_DIGITS = 3

# (sum of closed terms, current term); left-to-right keeps everything in the term
State = Tuple[int, int]


def resolve_order(order: Optional[str] = None) -> str:
    order = (order or EVALUATION_ORDER).strip().lower()
    if order not in EVALUATION_ORDERS:
        raise ValueError(f"Unknown evaluation order '{order}'. Must be one of {sorted(EVALUATION_ORDERS)}.")
    return order


def start_state(n: int) -> State:
    return 0, n


def apply_operator(state: State, op: Token, n: int, order: str) -> Optional[State]:
    """Extend a running evaluation by `op n`. None when the division is by zero or not exact."""
    acc, term = state
    if order == LEFT_TO_RIGHT:
        acc, term = 0, acc + term
        if op == PLUS:
            return 0, term + n
        if op == MINUS:
            return 0, term - n
        if op == TIMES:
            return 0, term * n
    else:
        if op == PLUS:
            return acc + term, n
        if op == MINUS:
            return acc + term, -n
        if op == TIMES:
            return acc, term * n
    if op != DIVIDE:
        raise ValueError(f"'{op.symbol}' is not a concrete operator.")
    if n == 0 or term % n:
        return None
    return acc, term // n


def state_value(state: State) -> int:
    return state[0] + state[1]


def evaluate(numbers: Sequence[int], ops: Sequence[Token], order: Optional[str] = None) -> Optional[int]:
    if not numbers or len(ops) != len(numbers) - 1:
        return None
    order = resolve_order(order)
    state = start_state(numbers[0])
    for op, n in zip(ops, numbers[1:]):
        state = apply_operator(state, op, n, order)
        if state is None:
            return None
    return state_value(state)


# ------------------------------------------------------------------
# Tile rows
# ------------------------------------------------------------------
def parse_side(tokens: Sequence[Token]) -> Optional[Tuple[List[int], List[Token]]]:
    """
    Split one side of an equation into numbers and operators.
    Light digits 1-9 join into numbers of up to three digits; 0 and heavy
    numbers stand alone; one unary minus may open the side (never before 0).
    """
    numbers: List[int] = []
    ops: List[Token] = []
    n = len(tokens)
    i = 0
    negate = False
    if n > 1 and tokens[0] == MINUS:
        negate = True
        i = 1
    expect_number = True
    while i < n:
        tok = tokens[i]
        if expect_number:
            if not tok.is_number:
                return None
            if tok.is_digit:
                j = i
                while j < n and tokens[j].is_digit and j - i < MAX_NUMBER_DIGITS:
                    j += 1
                value = int("".join(t.symbol for t in tokens[i:j]))
            else:
                j = i + 1
                value = tok.value
                if negate and value == 0:
                    return None
            if j < n and tokens[j].is_number:
                return None
            numbers.append(-value if negate else value)
            negate = False
            expect_number = False
            i = j
        else:
            if tok not in OPERATORS:
                return None
            ops.append(tok)
            expect_number = True
            i += 1
    if expect_number:
        return None
    return numbers, ops


def equation_sides(tokens: Sequence[Token], order: Optional[str] = None) -> Optional[Tuple[int, int]]:
    """Values of both sides, or None when the row is not a well-formed equation."""
    if list(tokens).count(EQUALS_SIGN) != 1:
        return None
    split = list(tokens).index(EQUALS_SIGN)
    values = []
    for side in (tokens[:split], tokens[split + 1:]):
        parsed = parse_side(side)
        if parsed is None:
            return None
        value = evaluate(parsed[0], parsed[1], order)
        if value is None:
            return None
        values.append(value)
    return values[0], values[1]


def is_valid_arrangement(tokens: Sequence[Token], order: Optional[str] = None) -> bool:
    sides = equation_sides(tokens, order)
    return sides is not None and sides[0] == sides[1]


_EQUATION_RE = re.compile(r"\d+|[+\-×÷=*/x−]")
_TEXT_OPS: Dict[str, Token] = {"+": PLUS, "-": MINUS, "−": MINUS, "×": TIMES, "*": TIMES, "x": TIMES, "÷": DIVIDE, "/": DIVIDE}


def is_valid_equation(text: str, order: Optional[str] = None) -> bool:
    """Validate a typed equation such as '12+3=15' or '-4+6=2'."""
    compact = re.sub(r"\s+", "", text or "")
    parts = _EQUATION_RE.findall(compact)
    if not parts or "".join(parts) != compact or parts.count("=") != 1:
        return False
    split = parts.index("=")
    values = []
    for side in (parts[:split], parts[split + 1:]):
        numbers: List[int] = []
        ops: List[Token] = []
        negate = False
        expect_number = True
        for i, part in enumerate(side):
            if expect_number:
                if i == 0 and part in ("-", "−") and len(side) > 1:
                    negate = True
                    continue
                if not part.isdigit() or len(part) > MAX_NUMBER_DIGITS or (len(part) > 1 and part[0] == "0"):
                    return False
                if negate and int(part) == 0:
                    return False
                numbers.append(-int(part) if negate else int(part))
                negate = False
                expect_number = False
            else:
                if part not in _TEXT_OPS:
                    return False
                ops.append(_TEXT_OPS[part])
                expect_number = True
        if expect_number:
            return False
        value = evaluate(numbers, ops, order)
        if value is None:
            return False
        values.append(value)
    return values[0] == values[1]


# ------------------------------------------------------------------
# Answer checking
# ------------------------------------------------------------------
@dataclass(frozen=True)
class AnswerCheck:
    valid: bool
    equation: str
    reason: Optional[str] = None


def check_answer(
    elements: Sequence[Token],
    answer: Sequence[Placement],
    locks: Optional[Dict[int, Token]] = None,
    order: Optional[str] = None,
) -> AnswerCheck:
    """Checks a player's row: every tile used once, every choice resolved, locks kept, equation holds."""
    equation = "".join(p.concrete.symbol for p in answer)
    if len(answer) != len(elements):
        return AnswerCheck(False, equation, f"Please use all {len(elements)} tiles. You have used {len(answer)} tiles.")
    if Counter(p.display for p in answer) != Counter(elements):
        return AnswerCheck(False, equation, "You must use each tile exactly once.")
    for i, p in enumerate(answer):
        if not p.concrete.is_concrete or not can_stand_for(p.display, p.concrete):
            return AnswerCheck(False, equation, f"Tile '{p.display.symbol}' at slot {i} cannot be '{p.concrete.symbol}'.")
    for index, value in (locks or {}).items():
        if not 0 <= index < len(answer) or answer[index].concrete != value:
            return AnswerCheck(False, equation, f"Slot {index} is locked to '{value.symbol}'.")
    if not is_valid_arrangement([p.concrete for p in answer], order):
        return AnswerCheck(False, equation, f"'{equation}' is not a valid equation.")
    return AnswerCheck(True, equation)
