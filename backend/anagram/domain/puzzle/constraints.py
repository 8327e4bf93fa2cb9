"""Constraint specs — what a generated token set must contain, and the rules that keep a spec consistent."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from anagram.domain.common.errors import ConfigurationError
from anagram.domain.common.result import Result
from anagram.domain.puzzle.tokens import (
    BAG_HEAVY_TILES,
    BAG_OPERATOR_TILES,
    BLANK,
    OPERATOR_TILES,
    ZERO,
    Token,
    bag_count,
    parse_token,
)

# Smallest rack the generator accepts; lock mode locks every tile beyond it.
MIN_TOTAL_COUNT = 8
# Largest rack the generator accepts.
MAX_TOTAL_COUNT = 15

CATEGORIES = ("operators", "equals", "heavy", "wildcards", "zeros")


@dataclass(frozen=True)
class Fixed:
    count: int

    @property
    def minimum(self) -> int:
        return self.count

    @property
    def maximum(self) -> int:
        return self.count

    def to_dict(self) -> dict:
        return {"fixed": self.count}


@dataclass(frozen=True)
class Range:
    min: int
    max: int

    @property
    def minimum(self) -> int:
        return self.min

    @property
    def maximum(self) -> int:
        return self.max

    def to_dict(self) -> dict:
        return {"min": self.min, "max": self.max}


CountRule = Union[Fixed, Range]


def count_rule_from(raw: Any) -> CountRule:
    """Accepts 3, {"fixed": 3}, {"min": 1, "max": 3} or [1, 3]."""
    if isinstance(raw, (Fixed, Range)):
        return raw
    if isinstance(raw, bool):
        raise ConfigurationError(f"Invalid count rule: {raw!r}.")
    if isinstance(raw, int):
        return Fixed(raw)
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        return Range(int(raw[0]), int(raw[1]))
    if isinstance(raw, dict):
        if "fixed" in raw:
            return Fixed(int(raw["fixed"]))
        if "min" in raw and "max" in raw:
            return Range(int(raw["min"]), int(raw["max"]))
    raise ConfigurationError(f"Invalid count rule: {raw!r}.")


@dataclass
class ConstraintSpec:
    total: int
    operators: CountRule
    heavy: CountRule = Fixed(0)
    wildcards: CountRule = Fixed(0)
    zeros: CountRule = Fixed(0)
    equals: CountRule = Fixed(1)
    # Operator tile -> fixed count, or None for "eligible for the remaining slots".
    # None as a whole means every operator tile is eligible.
    operator_symbols: Optional[Dict[Token, Optional[int]]] = None
    lock_mode: bool = False

    @property
    def lock_count(self) -> int:
        if not self.lock_mode:
            return 0
        return max(self.total - MIN_TOTAL_COUNT, 0)

    def rule(self, category: str) -> CountRule:
        return getattr(self, category)

    def fixed_operator_counts(self) -> Dict[Token, int]:
        if not self.operator_symbols:
            return {}
        return {tok: n for tok, n in self.operator_symbols.items() if n is not None and n > 0}

    def random_operator_tiles(self) -> tuple:
        if self.operator_symbols is None:
            return OPERATOR_TILES
        return tuple(tok for tok, n in self.operator_symbols.items() if n is None)

    def to_dict(self) -> dict:
        data = {
            "total": self.total,
            "operators": self.operators.to_dict(),
            "equals": self.equals.to_dict(),
            "heavy": self.heavy.to_dict(),
            "wildcards": self.wildcards.to_dict(),
            "zeros": self.zeros.to_dict(),
            "lock_mode": self.lock_mode,
        }
        if self.operator_symbols is not None:
            data["operator_symbols"] = {tok.symbol: n for tok, n in self.operator_symbols.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ConstraintSpec":
        if "total" not in data or "operators" not in data:
            raise ConfigurationError("A constraint spec needs 'total' and 'operators'.")
        symbols = data.get("operator_symbols")
        operator_symbols = None
        if symbols is not None:
            operator_symbols = {}
            for symbol, n in symbols.items():
                tok = parse_token(symbol)
                if tok not in OPERATOR_TILES:
                    raise ConfigurationError(f"'{symbol}' is not an operator tile.")
                operator_symbols[tok] = None if n is None else int(n)
        return cls(
            total=int(data["total"]),
            operators=count_rule_from(data["operators"]),
            equals=count_rule_from(data.get("equals", 1)),
            heavy=count_rule_from(data.get("heavy", 0)),
            wildcards=count_rule_from(data.get("wildcards", 0)),
            zeros=count_rule_from(data.get("zeros", 0)),
            operator_symbols=operator_symbols,
            lock_mode=bool(data.get("lock_mode", False)),
        )


# ------------------------------------------------------------------
# Rules
# ------------------------------------------------------------------
_BAG_LIMITS = {
    "operators": BAG_OPERATOR_TILES,
    "heavy": BAG_HEAVY_TILES,
    "wildcards": bag_count(BLANK),
    "zeros": bag_count(ZERO),
}


def validate_constraint_spec(spec: ConstraintSpec) -> Result[ConstraintSpec]:
    """Returns Result.ok(spec) or Result.fail(ConfigurationError) naming the first inconsistency."""
    if spec.total < MIN_TOTAL_COUNT:
        return _fail(f"Total count must be at least {MIN_TOTAL_COUNT} (got {spec.total}).")
    if spec.total > MAX_TOTAL_COUNT:
        return _fail(f"Total count must be at most {MAX_TOTAL_COUNT} (got {spec.total}).")

    for category in CATEGORIES:
        rule = spec.rule(category)
        if rule.minimum < 0:
            return _fail(f"'{category}' count cannot be negative.")
        if rule.minimum > rule.maximum:
            return _fail(f"'{category}' range is inverted: min {rule.minimum} > max {rule.maximum}.")

    if spec.equals.minimum != 1 or spec.equals.maximum != 1:
        return _fail("Equals count must be exactly 1 for a two-sided equation.")

    for category, limit in _BAG_LIMITS.items():
        if spec.rule(category).maximum > limit:
            return _fail(
                f"Requested number of {category} ({spec.rule(category).maximum}) "
                f"exceeds available tiles ({limit})."
            )

    if spec.operator_symbols is not None:
        fixed_sum = 0
        for tok, n in spec.operator_symbols.items():
            if tok not in OPERATOR_TILES:
                return _fail(f"'{tok.symbol}' is not an operator tile.")
            if n is None:
                continue
            if n < 0:
                return _fail(f"Operator '{tok.symbol}' count cannot be negative.")
            if n > bag_count(tok):
                return _fail(
                    f"Requested number of {tok.symbol} operators ({n}) exceeds available tiles ({bag_count(tok)})."
                )
            fixed_sum += n
        if fixed_sum > spec.operators.maximum:
            return _fail(
                f"Sum of fixed operators ({fixed_sum}) exceeds total operator count ({spec.operators.maximum})."
            )
        if not spec.random_operator_tiles() and fixed_sum < spec.operators.minimum:
            return _fail(
                f"Specified operators ({fixed_sum}) must equal total operator count ({spec.operators.minimum})."
            )

    minimums = sum(spec.rule(c).minimum for c in CATEGORIES)
    if minimums + 1 > spec.total:
        return _fail(
            f"Total count ({spec.total}) leaves no room for a light number "
            f"after the category minimums ({minimums})."
        )

    return Result.ok(spec)


def _fail(message: str) -> Result[ConstraintSpec]:
    return Result.fail(ConfigurationError(message))
