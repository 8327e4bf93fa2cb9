"""Tile vocabulary — display tokens, their concrete resolutions and the tile bag."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from anagram.domain.common.errors import ConfigurationError

# Token kinds
LIGHT = "light"        # 0-9
HEAVY = "heavy"        # 10-20
OPERATOR = "operator"  # + - × ÷
CHOICE = "choice"      # +/- ×/÷
EQUALS = "equals"
WILDCARD = "wildcard"


@dataclass(frozen=True)
class Token:
    symbol: str
    kind: str
    value: Optional[int] = None

    @property
    def is_number(self) -> bool:
        return self.kind in (LIGHT, HEAVY)

    @property
    def is_zero(self) -> bool:
        return self.value == 0

    @property
    def is_digit(self) -> bool:
        """Light tiles 1-9 — the only ones that join into multi-digit numbers."""
        return self.kind == LIGHT and self.value != 0

    @property
    def is_concrete(self) -> bool:
        return self.kind not in (CHOICE, WILDCARD)

    def __str__(self) -> str:
        return self.symbol


NUMBERS: Tuple[Token, ...] = tuple(
    Token(str(n), LIGHT if n < 10 else HEAVY, n) for n in range(21)
)
ZERO = NUMBERS[0]
DIGITS: Tuple[Token, ...] = NUMBERS[1:10]
HEAVY_NUMBERS: Tuple[Token, ...] = NUMBERS[10:]

PLUS = Token("+", OPERATOR)
MINUS = Token("-", OPERATOR)
TIMES = Token("×", OPERATOR)
DIVIDE = Token("÷", OPERATOR)
PLUS_MINUS = Token("+/-", CHOICE)
TIMES_DIVIDE = Token("×/÷", CHOICE)
EQUALS_SIGN = Token("=", EQUALS)
BLANK = Token("?", WILDCARD)

OPERATORS: Tuple[Token, ...] = (PLUS, MINUS, TIMES, DIVIDE)
CHOICES: Tuple[Token, ...] = (PLUS_MINUS, TIMES_DIVIDE)
# Every symbol an operator breakdown may name, in bag order
OPERATOR_TILES: Tuple[Token, ...] = OPERATORS + CHOICES

# Canonical order of the tile bag; also the index order of solver multisets
VOCABULARY: Tuple[Token, ...] = NUMBERS + OPERATOR_TILES + (EQUALS_SIGN, BLANK)
CONCRETE_TOKENS: Tuple[Token, ...] = NUMBERS + OPERATORS + (EQUALS_SIGN,)

INDEX: Dict[Token, int] = {t: i for i, t in enumerate(VOCABULARY)}
BY_SYMBOL: Dict[str, Token] = {t.symbol: t for t in VOCABULARY}

_ALIASES = {
    "*": "×",
    "x": "×",
    "X": "×",
    "/": "÷",
    "−": "-",
    "+-": "+/-",
    "±": "+/-",
    "*/": "×/÷",
    "×÷": "×/÷",
    "*//": "×/÷",
}

_RESOLUTIONS: Dict[Token, Tuple[Token, ...]] = {
    PLUS_MINUS: (PLUS, MINUS),
    TIMES_DIVIDE: (TIMES, DIVIDE),
    BLANK: CONCRETE_TOKENS,
}


def resolve(token: Token) -> Tuple[Token, ...]:
    """Concrete tokens a display token may stand for when solving or answering."""
    return _RESOLUTIONS.get(token, (token,))


def can_stand_for(display: Token, concrete: Token) -> bool:
    return concrete in resolve(display)


def parse_token(symbol: str) -> Token:
    raw = str(symbol).strip()
    canonical = _ALIASES.get(raw, raw)
    tok = BY_SYMBOL.get(canonical)
    if tok is None:
        raise ConfigurationError(f"'{symbol}' is not a known tile.")
    return tok


def parse_tokens(symbols: Iterable[str]) -> List[Token]:
    return [parse_token(s) for s in symbols]


def symbols(tokens: Iterable[Token]) -> List[str]:
    return [t.symbol for t in tokens]


# ------------------------------------------------------------------
# Tile bag
# ------------------------------------------------------------------
@dataclass(frozen=True)
class TileInfo:
    count: int
    points: int


_HEAVY_POINTS = (3, 4, 3, 6, 4, 4, 4, 6, 4, 7, 5)

TILE_BAG: Dict[Token, TileInfo] = {}
for _n in NUMBERS[:10]:
    TILE_BAG[_n] = TileInfo(count=4, points=1 if _n.value < 4 else 2)
for _n, _p in zip(HEAVY_NUMBERS, _HEAVY_POINTS):
    TILE_BAG[_n] = TileInfo(count=1, points=_p)
for _op in OPERATORS:
    TILE_BAG[_op] = TileInfo(count=4, points=2)
for _op in CHOICES:
    TILE_BAG[_op] = TileInfo(count=4, points=1)
TILE_BAG[EQUALS_SIGN] = TileInfo(count=11, points=1)
TILE_BAG[BLANK] = TileInfo(count=4, points=0)

BAG_LIGHT_TILES = sum(TILE_BAG[d].count for d in DIGITS)
BAG_HEAVY_TILES = sum(TILE_BAG[h].count for h in HEAVY_NUMBERS)
BAG_OPERATOR_TILES = sum(TILE_BAG[o].count for o in OPERATOR_TILES)


def bag_count(token: Token) -> int:
    return TILE_BAG[token].count


def total_points(tokens: Iterable[Token]) -> int:
    return sum(TILE_BAG[t].points for t in tokens)
