"""Puzzle domain models — pure Python, no DB or HTTP dependencies."""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from anagram.domain.puzzle.tokens import Token, can_stand_for, parse_token, parse_tokens, symbols, total_points


@dataclass(frozen=True)
class Placement:
    """One answer slot: the tile placed there and the concrete value it takes."""
    display: Token
    concrete: Token


@dataclass(frozen=True)
class EquationArrangement:
    placements: Tuple[Placement, ...]

    @property
    def text(self) -> str:
        return "".join(p.concrete.symbol for p in self.placements)

    @property
    def display_tokens(self) -> List[Token]:
        return [p.display for p in self.placements]

    @property
    def concrete_tokens(self) -> List[Token]:
        return [p.concrete for p in self.placements]

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class LockedPosition:
    index: int
    value: Token

    def to_dict(self) -> dict:
        return {"index": self.index, "value": self.value.symbol}

    @classmethod
    def from_dict(cls, data: dict) -> "LockedPosition":
        # "pos" is the field name older clients send
        index = data["index"] if "index" in data else data["pos"]
        return cls(index=int(index), value=parse_token(data["value"]))


@dataclass
class GeneratedPuzzle:
    elements: List[Token]
    solution: List[Placement] = field(default_factory=list)
    locked_positions: List[LockedPosition] = field(default_factory=list)

    @property
    def solution_tokens(self) -> List[Token]:
        return [p.concrete for p in self.solution]

    @property
    def solution_display(self) -> List[Token]:
        return [p.display for p in self.solution]

    @property
    def sample_equation(self) -> Optional[str]:
        if not self.solution:
            return None
        return "".join(t.symbol for t in self.solution_tokens)

    @property
    def points(self) -> int:
        return total_points(self.elements)

    def to_payload(self) -> dict:
        payload = {"elements": symbols(self.elements)}
        if self.solution:
            payload["solutionTokens"] = symbols(self.solution_tokens)
            payload["solutionDisplay"] = symbols(self.solution_display)
        if self.locked_positions:
            payload["lockedPositions"] = [lp.to_dict() for lp in self.locked_positions]
        return payload

    @classmethod
    def from_payload(cls, data: dict) -> "GeneratedPuzzle":
        elements = parse_tokens(data.get("elements") or [])
        concrete = parse_tokens(data.get("solutionTokens") or [])
        display_raw = data.get("solutionDisplay")
        display = parse_tokens(display_raw) if display_raw else list(concrete)
        solution = [Placement(display=d, concrete=c) for d, c in zip(display, concrete)]
        locks = [LockedPosition.from_dict(lp) for lp in (data.get("lockedPositions") or [])]
        puzzle = cls(elements=elements, solution=solution, locked_positions=locks)
        if len(display) != len(concrete):
            puzzle.solution = []
        return puzzle


def puzzle_problems(puzzle: GeneratedPuzzle) -> List[str]:
    """Invariant violations of a puzzle; empty when it is well formed."""
    problems = []
    if not puzzle.elements:
        problems.append("Puzzle has no elements.")
    if puzzle.solution:
        if Counter(puzzle.solution_display) != Counter(puzzle.elements):
            problems.append("Solution does not use exactly the puzzle's tiles.")
        for i, p in enumerate(puzzle.solution):
            if not p.concrete.is_concrete:
                problems.append(f"Solution slot {i} holds the unresolved tile '{p.concrete.symbol}'.")
            elif not can_stand_for(p.display, p.concrete):
                problems.append(f"Tile '{p.display.symbol}' cannot stand for '{p.concrete.symbol}' at slot {i}.")
    for lp in puzzle.locked_positions:
        if not puzzle.solution:
            problems.append("Locked positions need a solution to refer to.")
            break
        if not 0 <= lp.index < len(puzzle.solution):
            problems.append(f"Locked position {lp.index} is outside the answer row.")
        elif puzzle.solution[lp.index].concrete != lp.value:
            problems.append(f"Locked position {lp.index} does not match the solution.")
    return problems
