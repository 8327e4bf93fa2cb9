"""Expression evaluation, side parsing and answer checking."""
from anagram.domain.puzzle.evaluator import (
    LEFT_TO_RIGHT,
    PRECEDENCE,
    check_answer,
    evaluate,
    is_valid_arrangement,
    is_valid_equation,
    parse_side,
)
from anagram.domain.puzzle.models import Placement
from anagram.domain.puzzle.tokens import (
    BLANK,
    DIVIDE,
    EQUALS_SIGN,
    MINUS,
    NUMBERS,
    PLUS,
    PLUS_MINUS,
    TIMES,
    parse_tokens,
)


def placements(pairs):
    return [Placement(display=d, concrete=c) for d, c in pairs]


# ------------------------------------------------------------------
# evaluate
# ------------------------------------------------------------------
def test_precedence_applies_multiplication_first():
    assert evaluate([2, 3, 4], [PLUS, TIMES], PRECEDENCE) == 14
    assert evaluate([10, 6, 3], [MINUS, DIVIDE], PRECEDENCE) == 8


def test_left_to_right_ignores_precedence():
    assert evaluate([2, 3, 4], [PLUS, TIMES], LEFT_TO_RIGHT) == 20
    assert evaluate([10, 6, 2], [MINUS, DIVIDE], LEFT_TO_RIGHT) == 2


def test_division_must_be_exact_and_nonzero():
    assert evaluate([8, 2], [DIVIDE]) == 4
    assert evaluate([7, 2], [DIVIDE]) is None
    assert evaluate([8, 0], [DIVIDE]) is None
    assert evaluate([-8, 2], [DIVIDE]) == -4


# ------------------------------------------------------------------
# parse_side
# ------------------------------------------------------------------
def test_digits_join_into_numbers():
    assert parse_side(parse_tokens(["1", "2", "+", "3"])) == ([12, 3], [PLUS])
    assert parse_side(parse_tokens(["4", "5", "6"])) == ([456], [])


def test_numbers_longer_than_three_digits_rejected():
    assert parse_side(parse_tokens(["1", "2", "3", "4"])) is None


def test_zero_and_heavy_numbers_stand_alone():
    assert parse_side(parse_tokens(["1", "0"])) is None
    assert parse_side(parse_tokens(["12", "3"])) is None
    assert parse_side(parse_tokens(["0", "×", "12"])) == ([0, 12], [TIMES])


def test_unary_minus_only_at_side_start_and_never_before_zero():
    assert parse_side(parse_tokens(["-", "5", "+", "3"])) == ([-5, 3], [PLUS])
    assert parse_side(parse_tokens(["-", "0"])) is None
    assert parse_side(parse_tokens(["5", "+", "-", "3"])) is None
    assert parse_side(parse_tokens(["-"])) is None


def test_arrangement_validity():
    assert is_valid_arrangement(parse_tokens(["1", "2", "+", "3", "=", "1", "5"]))
    assert is_valid_arrangement(parse_tokens(["12", "+", "3", "=", "15"]))
    assert not is_valid_arrangement(parse_tokens(["1", "+", "1", "=", "3"]))
    assert not is_valid_arrangement(parse_tokens(["1", "=", "1", "=", "1"]))
    assert not is_valid_arrangement(parse_tokens(["=", "1"]))


# ------------------------------------------------------------------
# is_valid_equation
# ------------------------------------------------------------------
def test_typed_equations():
    assert is_valid_equation("12+3=15")
    assert is_valid_equation(" 2 + 3 × 4 = 14 ")
    assert is_valid_equation("2+3*4=14")
    assert is_valid_equation("-4+6=2")
    assert not is_valid_equation("2+3×4=20")
    assert is_valid_equation("2+3×4=20", LEFT_TO_RIGHT)


def test_typed_equation_shape_rules():
    assert not is_valid_equation("012+3=15")
    assert not is_valid_equation("1234=1234")
    assert not is_valid_equation("1+1=2=2")
    assert not is_valid_equation("7÷2=3")
    assert not is_valid_equation("1+=1")
    assert not is_valid_equation("")
    assert not is_valid_equation("a=a")


# ------------------------------------------------------------------
# check_answer
# ------------------------------------------------------------------
ELEMENTS = parse_tokens(["3", "+/-", "2", "=", "?"])


def test_check_answer_accepts_resolved_choice_and_blank():
    answer = placements([
        (NUMBERS[3], NUMBERS[3]),
        (PLUS_MINUS, MINUS),
        (NUMBERS[2], NUMBERS[2]),
        (EQUALS_SIGN, EQUALS_SIGN),
        (BLANK, NUMBERS[1]),
    ])
    result = check_answer(ELEMENTS, answer)
    assert result.valid
    assert result.equation == "3-2=1"
    assert result.reason is None


def test_check_answer_rejects_false_equation():
    answer = placements([
        (NUMBERS[3], NUMBERS[3]),
        (PLUS_MINUS, PLUS),
        (NUMBERS[2], NUMBERS[2]),
        (EQUALS_SIGN, EQUALS_SIGN),
        (BLANK, NUMBERS[1]),
    ])
    result = check_answer(ELEMENTS, answer)
    assert not result.valid
    assert "not a valid equation" in result.reason


def test_check_answer_requires_every_tile_once():
    short = placements([(NUMBERS[3], NUMBERS[3]), (EQUALS_SIGN, EQUALS_SIGN), (BLANK, NUMBERS[3])])
    assert "use all 5 tiles" in check_answer(ELEMENTS, short).reason

    swapped = placements([
        (NUMBERS[3], NUMBERS[3]),
        (PLUS_MINUS, MINUS),
        (NUMBERS[2], NUMBERS[2]),
        (EQUALS_SIGN, EQUALS_SIGN),
        (NUMBERS[1], NUMBERS[1]),
    ])
    assert "exactly once" in check_answer(ELEMENTS, swapped).reason


def test_check_answer_rejects_impossible_resolution():
    answer = placements([
        (NUMBERS[3], NUMBERS[3]),
        (PLUS_MINUS, TIMES),
        (NUMBERS[2], NUMBERS[2]),
        (EQUALS_SIGN, EQUALS_SIGN),
        (BLANK, NUMBERS[6]),
    ])
    result = check_answer(ELEMENTS, answer)
    assert not result.valid
    assert "cannot be" in result.reason


def test_check_answer_honours_locks():
    answer = placements([
        (NUMBERS[3], NUMBERS[3]),
        (PLUS_MINUS, MINUS),
        (NUMBERS[2], NUMBERS[2]),
        (EQUALS_SIGN, EQUALS_SIGN),
        (BLANK, NUMBERS[1]),
    ])
    assert check_answer(ELEMENTS, answer, locks={0: NUMBERS[3]}).valid
    locked_out = check_answer(ELEMENTS, answer, locks={0: NUMBERS[2]})
    assert not locked_out.valid
    assert "locked" in locked_out.reason
