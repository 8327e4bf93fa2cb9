"""Position-lock selection and the puzzle domain service."""
import random

from anagram.domain.common.errors import ConfigurationError
from anagram.domain.puzzle.constraints import ConstraintSpec, Fixed
from anagram.domain.puzzle.locks import select_locks
from anagram.domain.puzzle.models import GeneratedPuzzle, LockedPosition, Placement, puzzle_problems
from anagram.domain.puzzle.service import PuzzleDomainService
from anagram.domain.puzzle.solver import has_solution
from anagram.domain.puzzle.tokens import NUMBERS, PLUS, TIMES, parse_tokens


def plain_puzzle(symbols):
    tokens = parse_tokens(symbols)
    return GeneratedPuzzle(elements=list(reversed(tokens)), solution=[Placement(t, t) for t in tokens])


def test_locks_match_the_solution_and_keep_it_solvable():
    puzzle = plain_puzzle(["1", "2", "+", "3", "=", "1", "5"])
    locks = select_locks(puzzle, 2, random.Random(5))
    assert len(locks) == 2
    assert [lp.index for lp in locks] == sorted(lp.index for lp in locks)
    assert len({lp.index for lp in locks}) == 2
    for lp in locks:
        assert puzzle.solution[lp.index].concrete == lp.value
    assert has_solution(puzzle.elements, locks={lp.index: lp.value for lp in locks})


def test_lock_count_is_clamped():
    puzzle = plain_puzzle(["1", "+", "2", "=", "3"])
    assert len(select_locks(puzzle, 50, random.Random(0))) == 5
    assert select_locks(puzzle, -1, random.Random(0)) == []
    assert select_locks(puzzle, 0, random.Random(0)) == []


def test_unsolvable_puzzle_degrades_to_no_locks():
    puzzle = plain_puzzle(["1", "+", "1", "=", "3"])
    assert select_locks(puzzle, 2, random.Random(0), max_retries=3) == []


def test_locked_position_accepts_legacy_field_name():
    assert LockedPosition.from_dict({"pos": 3, "value": "12"}) == LockedPosition(3, NUMBERS[12])
    assert LockedPosition.from_dict({"index": 1, "value": "*"}).to_dict() == {"index": 1, "value": "×"}


# ------------------------------------------------------------------
# PuzzleDomainService
# ------------------------------------------------------------------
def test_lock_mode_locks_total_minus_eight_slots():
    spec = ConstraintSpec(
        total=10, operators=Fixed(2), operator_symbols={PLUS: 1, TIMES: 1}, heavy=Fixed(1), lock_mode=True
    )
    result = PuzzleDomainService().create_puzzle(spec, random.Random(21))
    assert result.is_success, result.error
    puzzle = result.value
    assert len(puzzle.locked_positions) == 2
    assert puzzle_problems(puzzle) == []
    assert has_solution(puzzle.elements, locks={lp.index: lp.value for lp in puzzle.locked_positions})


def test_without_lock_mode_nothing_is_locked():
    spec = ConstraintSpec(total=9, operators=Fixed(1))
    result = PuzzleDomainService().create_puzzle(spec, random.Random(4))
    assert result.is_success, result.error
    assert result.value.locked_positions == []


def test_service_passes_configuration_errors_through():
    result = PuzzleDomainService().create_puzzle(ConstraintSpec(total=5, operators=Fixed(1)), random.Random(0))
    assert not result.is_success
    assert isinstance(result.error, ConfigurationError)


def test_service_checks_answers_against_locks():
    service = PuzzleDomainService()
    elements = parse_tokens(["1", "+", "2", "=", "3"])
    answer = [Placement(t, t) for t in parse_tokens(["3", "=", "1", "+", "2"])]
    assert service.check(elements, answer).valid
    assert not service.check(elements, answer, locks={0: NUMBERS[1]}).valid
    outcome = service.solve(elements, limit=10, locks={0: NUMBERS[3]})
    assert {s.text for s in outcome.solutions} == {"3=1+2", "3=2+1"}
    assert not outcome.exhausted
